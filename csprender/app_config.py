"""Application configuration helpers for csprender.

Builds the middleware and exception handler configuration for a Litestar
app so that create_app() stays a thin composition of these pieces.
"""

from typing import Any

from litestar.middleware import DefineMiddleware

from csprender.config import Settings
from csprender.lib.exceptions import internal_server_error_handler
from csprender.middleware.csp import CSPReconcileMiddleware

EXCEPTION_HANDLERS: dict[type[Exception], Any] = {
    Exception: internal_server_error_handler,
}


def build_csp_middleware(settings: Settings) -> list:
    """Build the CSP reconciliation middleware list (empty if disabled)."""
    if not settings.csp.enabled:
        return []

    return [
        DefineMiddleware(
            CSPReconcileMiddleware,
            nonce_bytes=settings.csp.nonce_bytes,
            content_types=tuple(settings.csp.content_types),
        )
    ]
