"""Optional tracing through Pydantic Logfire.

Spans cover page rendering, hook dispatch and CSP reconciliation, and
unhandled application errors are reported through :func:`exception`.
Everything here is a no-op until :func:`configure` has succeeded.
"""

from __future__ import annotations

import contextlib
import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from csprender.config import Settings

logger = logging.getLogger(__name__)

# The logfire module once configured, otherwise None.
_logfire: Any = None


def is_available() -> bool:
    return _logfire is not None


def configure(settings: Settings) -> bool:
    """Set up logfire from ``settings.logfire``.

    Returns True when tracing is active afterwards. An enabled config without
    the ``logfire`` extra installed only logs a warning.
    """
    global _logfire

    config = settings.logfire
    if not config.enabled:
        return False

    try:
        import logfire
    except ImportError:
        logger.warning("logfire is enabled but not installed; tracing stays off")
        return False

    logfire.configure(
        service_name=config.service_name,
        environment=config.environment,
        console=logfire.ConsoleOptions() if config.console else False,
        send_to_logfire="if-token-present",
    )
    _logfire = logfire
    return True


def span(name: str, **attributes: Any) -> contextlib.AbstractContextManager:
    """Open a logfire span, or a null context yielding None."""
    if _logfire is None:
        return contextlib.nullcontext()
    return _logfire.span(name, **attributes)


def exception(msg: str, **attributes: Any) -> bool:
    """Report the active exception to logfire. Returns False when tracing is off."""
    if _logfire is None:
        return False
    _logfire.exception(msg, **attributes)
    return True
