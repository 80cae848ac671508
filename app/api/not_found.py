"""Unmatched-route responses with endpoint suggestions for the API prefix."""

from __future__ import annotations

from collections.abc import Mapping
from collections.abc import Sequence
import re

from fastapi import Request

from app.core.errors import ClassifiedError
from app.core.errors import ErrorKind

API_PATH_PREFIX = "/api/"
MAX_SUGGESTIONS = 5

# Illustrative directory of resource groups; not derived from the live route table.
ENDPOINT_DIRECTORY: dict[str, tuple[str, ...]] = {
    "auth": (
        "/api/auth/register",
        "/api/auth/login",
        "/api/auth/logout",
        "/api/auth/profile",
        "/api/auth/forgot-password",
        "/api/auth/reset-password",
        "/api/auth/change-password",
    ),
    "products": (
        "/api/products",
        "/api/products/search",
        "/api/products/featured",
        "/api/products/{id}",
        "/api/products/{id}/reviews",
    ),
    "categories": (
        "/api/categories",
        "/api/categories/tree",
        "/api/categories/{id}",
    ),
    "cart": (
        "/api/cart",
        "/api/cart/add",
        "/api/cart/update",
        "/api/cart/remove",
        "/api/cart/clear",
    ),
    "orders": (
        "/api/orders",
        "/api/orders/my-orders",
        "/api/orders/{id}",
        "/api/orders/{id}/cancel",
    ),
    "reviews": ("/api/reviews", "/api/reviews/product/{id}", "/api/reviews/{id}"),
    "users": ("/api/users/profile", "/api/users/addresses", "/api/users/orders"),
    "wishlist": ("/api/wishlist", "/api/wishlist/add", "/api/wishlist/remove"),
    "coupons": ("/api/coupons/active", "/api/coupons/validate"),
    "banners": ("/api/banners/active",),
    "admin": (
        "/api/admin/dashboard",
        "/api/admin/users",
        "/api/admin/orders",
        "/api/admin/products",
        "/api/admin/categories",
    ),
}

COMMON_ENDPOINTS: tuple[str, ...] = (
    "/api/auth/login",
    "/api/auth/register",
    "/api/products",
    "/api/categories",
    "/api/orders",
)

TROUBLESHOOTING_TIPS: tuple[str, ...] = (
    "Check if the HTTP method (GET, POST, PUT, DELETE) is correct",
    "Ensure all required parameters are included",
    "Verify the endpoint URL spelling and format",
    "Check if authentication is required for this endpoint",
)

_VERSION_SEGMENT = re.compile(r"^v\d+$")


def is_api_path(path: str) -> bool:
    return path.startswith(API_PATH_PREFIX)


def resource_group(path: str) -> str | None:
    """Return the lower-cased resource segment after `api` and an optional version."""
    segments = [segment for segment in path.lower().split("/") if segment]
    if not segments or segments[0] != "api":
        return None

    remaining = segments[1:]
    if remaining and _VERSION_SEGMENT.match(remaining[0]):
        remaining = remaining[1:]
    return remaining[0] if remaining else None


def suggest_endpoints(
    path: str,
    *,
    directory: Mapping[str, Sequence[str]] = ENDPOINT_DIRECTORY,
    fallback: Sequence[str] = COMMON_ENDPOINTS,
    limit: int = MAX_SUGGESTIONS,
) -> list[str]:
    """Pick nearby endpoints for an unmatched API path, in directory order."""
    group = resource_group(path)
    candidates = directory.get(group, fallback) if group else fallback
    return list(candidates[:limit])


def api_not_found_error(
    method: str,
    url: str,
    *,
    docs_url: str,
    path: str | None = None,
    directory: Mapping[str, Sequence[str]] = ENDPOINT_DIRECTORY,
) -> ClassifiedError:
    """Build the 404 for an unmatched API endpoint, with suggestions and tips."""
    suggestions = suggest_endpoints(path or url, directory=directory)

    lines = [f"API endpoint '{method} {url}' not found."]
    if suggestions:
        lines.append("")
        lines.append("Did you mean one of these:")
        lines.extend(f"  • {suggestion}" for suggestion in suggestions)
    lines.append("")
    lines.append(f"For complete API documentation, visit: {docs_url}")
    lines.append("")
    lines.append("Troubleshooting tips:")
    lines.extend(f"  • {tip}" for tip in TROUBLESHOOTING_TIPS)

    return ClassifiedError.from_kind(ErrorKind.NOT_FOUND, "\n".join(lines), suggestions=suggestions)


def route_not_found_error(url: str) -> ClassifiedError:
    return ClassifiedError.from_kind(ErrorKind.NOT_FOUND, f"Can't find {url} on this server!")


def method_not_allowed_error(method: str, url: str) -> ClassifiedError:
    return ClassifiedError.from_kind(
        ErrorKind.METHOD_NOT_ALLOWED,
        f"Method {method} is not allowed for {url}. Check the API documentation for supported methods.",
    )


def _original_url(request: Request) -> str:
    if request.url.query:
        return f"{request.url.path}?{request.url.query}"
    return request.url.path


def not_found_error(request: Request) -> ClassifiedError:
    """Classify an unmatched request; only API paths get suggestions."""
    url = _original_url(request)
    if not is_api_path(request.url.path):
        return route_not_found_error(url)
    return api_not_found_error(
        request.method,
        url,
        docs_url=f"{request.base_url}docs",
        path=request.url.path,
    )
