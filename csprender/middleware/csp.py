"""CSP reconciliation middleware.

Buffers HTML responses, reconciles the document's meta-declared Content
Security Policy with the response header, stamps nonces onto governed
elements, and sends the rewritten body with a corrected content-length.

Non-HTML and content-encoded (compressed) responses are streamed through
untouched.
"""

import logging

from litestar.datastructures import MutableScopeHeaders
from litestar.types import ASGIApp, Message, Receive, Scope, Send

from csprender.pipeline import reconcile_html
from csprender.response import PipelineResponse

logger = logging.getLogger(__name__)


def _media_type_and_charset(content_type: str) -> tuple[str, str]:
    media_type, _, params = content_type.partition(";")
    charset = "utf-8"
    for param in params.split(";"):
        key, _, value = param.strip().partition("=")
        if key.lower() == "charset" and value:
            charset = value.strip('"')
    return media_type.strip().lower(), charset


class CSPReconcileMiddleware:
    """ASGI middleware that reconciles CSP on HTML responses.

    Args:
        app: The ASGI application to wrap.
        enabled: Whether reconciliation runs at all.
        nonce_bytes: Random bytes per generated nonce (at least 16).
        content_types: Media types whose bodies are reconciled.
    """

    def __init__(
        self,
        app: ASGIApp,
        enabled: bool = True,
        nonce_bytes: int = 16,
        content_types: tuple[str, ...] | list[str] = ("text/html",),
    ) -> None:
        self.app = app
        self.enabled = enabled
        self.nonce_bytes = nonce_bytes
        self.content_types = {t.lower() for t in content_types}

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or not self.enabled:
            await self.app(scope, receive, send)
            return

        start_message: Message | None = None
        charset = "utf-8"
        chunks: list[bytes] = []
        buffering = False

        async def send_reconciled(message: Message) -> None:
            nonlocal start_message, charset, buffering

            if message["type"] == "http.response.start":
                message.setdefault("headers", [])
                headers = MutableScopeHeaders(message)
                media_type, charset = _media_type_and_charset(headers.get("content-type", ""))
                encoding = headers.get("content-encoding", "identity").strip().lower()
                # Compressed bodies cannot be parsed as HTML.
                if media_type in self.content_types and encoding in ("", "identity"):
                    start_message = message
                    buffering = True
                    return
                await send(message)
                return

            if message["type"] != "http.response.body" or not buffering:
                await send(message)
                return

            chunks.append(message.get("body", b""))
            if message.get("more_body", False):
                return

            raw = b"".join(chunks)
            response = PipelineResponse.from_message(start_message)
            reconciled = reconcile_html(
                raw.decode(charset, errors="replace"), response, nonce_bytes=self.nonce_bytes
            )

            if response.csp_reconciled:
                encoded = reconciled.encode(charset, errors="xmlcharrefreplace")
                logger.debug("Reconciled CSP for %s", scope.get("path", ""))
            else:
                encoded = raw

            # HEAD and other bodiless responses advertise the length they would have had.
            if raw and scope.get("method") != "HEAD":
                response.headers["content-length"] = str(len(encoded))
            await send(start_message)
            await send({"type": "http.response.body", "body": encoded, "more_body": False})

        await self.app(scope, receive, send_reconciled)
