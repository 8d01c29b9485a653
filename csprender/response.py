"""Response object shared by the render pipeline steps."""

from dataclasses import dataclass, field

from bs4 import BeautifulSoup
from litestar.datastructures import MutableScopeHeaders

from csprender.lib.csp import NonceRequirement


@dataclass
class PipelineResponse:
    """Mutable response produced by a render.

    ``headers`` is case-insensitive. When built from an ASGI
    ``http.response.start`` message, header writes go straight into it.

    ``nonce`` and ``nonce_requirement`` record the CSP nonce of this render
    once one has been generated; ``csp_reconciled`` is set as soon as a
    policy has been reconciled for it.
    """

    status: int = 200
    headers: MutableScopeHeaders = field(default_factory=MutableScopeHeaders)
    document: BeautifulSoup | None = None
    body: str | None = None
    csp_reconciled: bool = False
    nonce: str | None = None
    nonce_requirement: NonceRequirement = field(default_factory=NonceRequirement)

    @classmethod
    def from_message(cls, message: dict) -> "PipelineResponse":
        message.setdefault("headers", [])
        return cls(
            status=message.get("status", 200),
            headers=MutableScopeHeaders(message),
        )
