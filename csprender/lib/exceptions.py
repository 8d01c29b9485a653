import logging

from litestar import Request, Response
from litestar.status_codes import HTTP_500_INTERNAL_SERVER_ERROR

from csprender.lib import observability

logger = logging.getLogger(__name__)

ERROR_PAGE = "<!DOCTYPE html><html><head><title>{status_code}</title></head><body><h1>{message}</h1></body></html>"


class CSPRenderError(Exception):
    """Base class for rendering pipeline errors."""


class NonceGenerationError(CSPRenderError):
    """The secure random source could not produce a nonce.

    Fatal for the render: a predictable nonce is never substituted.
    """


def _accepts_html(request: Request) -> bool:
    """Check if the request accepts HTML responses (browser request)."""
    accept = request.headers.get("accept", "")
    return "text/html" in accept


def internal_server_error_handler(request: Request, exc: Exception) -> Response:
    """Handle unexpected exceptions with HTML for browsers, JSON for APIs."""
    status_code = HTTP_500_INTERNAL_SERVER_ERROR
    method = request.method
    path = request.url.path

    if not observability.exception(
        "Unhandled exception on {method} {path}", method=method, path=path
    ):
        logger.exception("Unhandled exception on %s %s", method, path)

    if _accepts_html(request):
        return Response(
            content=ERROR_PAGE.format(
                status_code=status_code, message="An unexpected error occurred."
            ),
            status_code=status_code,
            media_type="text/html",
        )

    # JSON response for API clients
    return Response(
        content={"status_code": status_code, "detail": "Internal Server Error"},
        status_code=status_code,
        media_type="application/json",
    )
