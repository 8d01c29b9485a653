"""Extension points fired while a page is rendered.

Three hooks exist, each with a fixed call signature:

``render_head`` (filter)
    ``callback(head, state) -> head``. Runs on the metadata ``<head>``
    before configured head markup is injected.
``render_document`` (filter)
    ``callback(document, state) -> document``. Runs on the assembled
    document, before the document-level CSP pass.
``page_rendered`` (action)
    ``callback(response)``. Runs once the body has been serialized.

Callbacks may be plain functions or coroutine functions. Lower priorities run
first; equal priorities keep registration order.

Usage:
    from csprender.lib.hooks import RENDER_DOCUMENT, render_hook

    @render_hook(RENDER_DOCUMENT)
    def set_language(document, state):
        document.html["lang"] = "en"
        return document
"""

import inspect
import itertools
from typing import Any, Callable, NamedTuple, TypeVar

from csprender.lib.observability import span

T = TypeVar("T")

RENDER_HEAD = "render_head"
RENDER_DOCUMENT = "render_document"
PAGE_RENDERED = "page_rendered"

FILTER_HOOKS = (RENDER_HEAD, RENDER_DOCUMENT)
ACTION_HOOKS = (PAGE_RENDERED,)


class _Callback(NamedTuple):
    priority: int
    order: int
    func: Callable[..., Any]


class RenderHooks:
    """Callbacks attached to the render hooks, kept in run order."""

    def __init__(self) -> None:
        self._order = itertools.count()
        self.callbacks: dict[str, list[_Callback]] = {
            name: [] for name in FILTER_HOOKS + ACTION_HOOKS
        }

    def register(self, hook_name: str, func: Callable[..., Any], priority: int = 10) -> None:
        """Attach ``func`` to a render hook.

        Raises:
            ValueError: If ``hook_name`` is not one of the render hooks.
        """
        if hook_name not in self.callbacks:
            raise ValueError(f"Unknown render hook: {hook_name!r}")
        registered = self.callbacks[hook_name]
        registered.append(_Callback(priority, next(self._order), func))
        registered.sort(key=lambda cb: (cb.priority, cb.order))

    async def apply_filters(self, hook_name: str, value: T, state: Any) -> T:
        """Pass ``value`` through every filter on ``hook_name``."""
        with span("hook.filter", hook_name=hook_name):
            for cb in self.callbacks[hook_name]:
                value = await _call(cb.func, value, state)
        return value

    async def do_action(self, hook_name: str, response: Any) -> None:
        with span("hook.action", hook_name=hook_name):
            for cb in self.callbacks[hook_name]:
                await _call(cb.func, response)


async def _call(func: Callable[..., Any], *args: Any) -> Any:
    result = func(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


hooks = RenderHooks()


def render_hook(hook_name: str, priority: int = 10) -> Callable[[Callable], Callable]:
    """Decorator form of :meth:`RenderHooks.register` on the global registry."""

    def decorator(func: Callable) -> Callable:
        hooks.register(hook_name, func, priority)
        return func

    return decorator
