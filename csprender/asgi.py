"""Litestar application factory."""

import logging
from typing import Any, Sequence

from litestar import Litestar

from csprender.app_config import EXCEPTION_HANDLERS, build_csp_middleware
from csprender.config import Settings, get_settings
from csprender.lib import observability

logger = logging.getLogger(__name__)


def create_app(
    route_handlers: Sequence[Any] = (),
    settings: Settings | None = None,
) -> Litestar:
    """Create a Litestar app whose HTML responses get CSP reconciliation.

    Args:
        route_handlers: Controllers and handlers to register.
        settings: Settings to use; defaults to get_settings().
    """
    if settings is None:
        settings = get_settings()

    observability.configure(settings)

    middleware = build_csp_middleware(settings)
    if not middleware:
        logger.info("CSP reconciliation disabled")

    return Litestar(
        route_handlers=list(route_handlers),
        middleware=middleware,
        exception_handlers=EXCEPTION_HANDLERS,
        debug=settings.debug,
    )
