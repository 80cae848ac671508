"""Process supervision: graceful shutdown on signals, fatal exit on unrecoverable faults."""

from __future__ import annotations

from collections.abc import Callable
from collections.abc import Generator
from collections.abc import Sequence
from contextlib import contextmanager
from enum import Enum
from typing import Any
from typing import Protocol
import asyncio
import logging
import signal
import socket
import sys
import threading

import uvicorn

logger = logging.getLogger(__name__)

EXIT_GRACEFUL = 0
EXIT_FAILURE = 1

DEFAULT_SHUTDOWN_TIMEOUT_SECONDS = 10.0
HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class SupervisorState(str, Enum):
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"


class SupervisedServerProtocol(Protocol):
    should_exit: bool
    force_exit: bool
    started: bool

    async def serve(self, sockets: list[socket.socket] | None = None) -> None: ...


class SupervisedServer(uvicorn.Server):
    """uvicorn server that leaves signal handling to `ProcessSupervisor`."""

    def install_signal_handlers(self) -> None:
        return None

    @contextmanager
    def capture_signals(self) -> Generator[None, None, None]:
        yield


class ProcessSupervisor:
    """Own the server's lifecycle: RUNNING -> SHUTTING_DOWN -> STOPPED, exactly once.

    Termination signals exit with code 0, unrecoverable faults with code 1.
    Shutdown stops the server from accepting connections and lets it drain
    in-flight requests; if it has not stopped after `shutdown_timeout`
    seconds it is forced to exit. Shutdown callbacks run once the server has
    stopped, before the exit function is called.
    """

    def __init__(
        self,
        server: SupervisedServerProtocol,
        *,
        shutdown_timeout: float = DEFAULT_SHUTDOWN_TIMEOUT_SECONDS,
        on_stopped: Sequence[Callable[[], None]] = (),
        exit_fn: Callable[[int], Any] = sys.exit,
    ) -> None:
        if shutdown_timeout <= 0:
            raise ValueError("shutdown_timeout must be positive")

        self._server = server
        self._shutdown_timeout = shutdown_timeout
        self._on_stopped = list(on_stopped)
        self._exit_fn = exit_fn
        self._state = SupervisorState.RUNNING
        self._exit_code = EXIT_GRACEFUL
        self._loop: asyncio.AbstractEventLoop | None = None
        self._watchdog: asyncio.TimerHandle | None = None
        self._installed_signals: list[signal.Signals] = []
        self._previous_thread_hook: Callable[[threading.ExceptHookArgs], Any] | None = None

    @property
    def state(self) -> SupervisorState:
        return self._state

    @property
    def exit_code(self) -> int:
        return self._exit_code

    def request_shutdown(self, reason: str, exit_code: int = EXIT_GRACEFUL) -> bool:
        """Begin shutdown; later requests while not RUNNING are ignored."""
        if self._state is not SupervisorState.RUNNING:
            logger.warning("Received %s while %s; shutdown already in progress", reason, self._state.value)
            return False

        self._state = SupervisorState.SHUTTING_DOWN
        self._exit_code = exit_code
        logger.info("Received %s. Starting graceful shutdown...", reason)

        self._server.should_exit = True
        if self._loop is not None:
            self._watchdog = self._loop.call_later(self._shutdown_timeout, self._force_exit)
        return True

    def fail(self, reason: str, exc: BaseException | None = None) -> bool:
        """Treat an unrecoverable fault as fatal: log it and shut down with exit code 1."""
        if exc is not None:
            logger.critical("%s! Shutting down...", reason, exc_info=(type(exc), exc, exc.__traceback__))
        else:
            logger.critical("%s! Shutting down...", reason)
        accepted = self.request_shutdown(reason, exit_code=EXIT_FAILURE)
        if not accepted and self._state is SupervisorState.SHUTTING_DOWN:
            self._exit_code = EXIT_FAILURE
        return accepted

    def handle_loop_exception(self, loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
        """Event loop exception handler: unretrieved task failures are fatal."""
        exc = context.get("exception")
        message = context.get("message", "Unhandled exception in event loop")
        self.fail(f"Unhandled rejection ({message})", exc)

    def handle_thread_exception(self, args: threading.ExceptHookArgs) -> None:
        if issubclass(args.exc_type, SystemExit):
            return
        exc = args.exc_value
        thread_name = args.thread.name if args.thread is not None else "unknown"
        reason = f"Uncaught exception in thread {thread_name}"
        if self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self.fail, reason, exc)
        else:
            self.fail(reason, exc)

    def install(self, loop: asyncio.AbstractEventLoop) -> None:
        """Register signal and fault handlers on the running loop."""
        self._loop = loop
        for sig in HANDLED_SIGNALS:
            try:
                loop.add_signal_handler(sig, self.request_shutdown, sig.name)
            except (NotImplementedError, RuntimeError):
                # Windows event loops do not support add_signal_handler.
                signal.signal(sig, self._handle_signal)
            else:
                self._installed_signals.append(sig)
        loop.set_exception_handler(self.handle_loop_exception)
        self._previous_thread_hook = threading.excepthook
        threading.excepthook = self.handle_thread_exception

    def uninstall(self) -> None:
        if self._loop is not None and not self._loop.is_closed():
            for sig in self._installed_signals:
                self._loop.remove_signal_handler(sig)
            self._loop.set_exception_handler(None)
        self._installed_signals.clear()
        if self._previous_thread_hook is not None:
            threading.excepthook = self._previous_thread_hook
            self._previous_thread_hook = None

    async def run(
        self,
        sockets: list[socket.socket] | None = None,
        *,
        install_handlers: bool = True,
    ) -> int:
        """Serve until shutdown completes, then exit through `exit_fn` once."""
        self._loop = asyncio.get_running_loop()
        if install_handlers:
            self.install(self._loop)

        try:
            await self._server.serve(sockets=sockets)
        except Exception as exc:
            self.fail("Uncaught exception", exc)
        finally:
            if install_handlers:
                self.uninstall()

        if self._state is SupervisorState.RUNNING:
            # serve() returned without a shutdown request.
            self._state = SupervisorState.SHUTTING_DOWN
            if not self._server.started:
                logger.error("Server failed to start")
                self._exit_code = EXIT_FAILURE

        return self._stop()

    def _handle_signal(self, signum: int, _frame: Any) -> None:
        name = signal.Signals(signum).name
        if self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self.request_shutdown, name)
        else:
            self.request_shutdown(name)

    def _force_exit(self) -> None:
        if self._state is SupervisorState.SHUTTING_DOWN:
            logger.warning("In-flight requests did not finish within %.1fs; forcing exit", self._shutdown_timeout)
            self._server.force_exit = True

    def _stop(self) -> int:
        if self._watchdog is not None:
            self._watchdog.cancel()
            self._watchdog = None

        logger.info("HTTP server closed")
        for callback in self._on_stopped:
            try:
                callback()
            except Exception:
                logger.exception("Shutdown callback failed")
                self._exit_code = EXIT_FAILURE

        self._state = SupervisorState.STOPPED
        if self._exit_code == EXIT_GRACEFUL:
            logger.info("Graceful shutdown completed")
        else:
            logger.error("Shutdown completed after failure (exit code %d)", self._exit_code)
        self._exit_fn(self._exit_code)
        return self._exit_code
