"""Render pipeline: render, reconcile CSP on the whole document, serialize."""

import logging

from bs4 import BeautifulSoup

from csprender.lib.csp import (
    apply_nonce,
    check_body_for_meta_csp,
    content_security_policy,
    get_header_csp,
)
from csprender.lib.hooks import PAGE_RENDERED, hooks
from csprender.render import PipelineState, render
from csprender.response import PipelineResponse

logger = logging.getLogger(__name__)


def reconcile_html(body: str, response: PipelineResponse, nonce_bytes: int = 16) -> str:
    """Reconcile the CSP of an already serialized HTML document.

    The body is only parsed when the response carries a CSP header or the
    body looks like it declares a meta CSP; otherwise it is returned as is.
    """
    if get_header_csp(response) is None and not check_body_for_meta_csp(body):
        return body

    document = BeautifulSoup(body, "html.parser")
    content_security_policy(response, document, nbytes=nonce_bytes)
    return str(document)


async def render_page(state: PipelineState, response: PipelineResponse | None = None) -> PipelineResponse:
    """Run the full render pipeline for a page and return the response.

    ``response`` may carry headers set by earlier steps (e.g. a configured
    CSP header); a fresh one is used otherwise.
    """
    if response is None:
        response = PipelineResponse()

    await render(state, response)

    # Policies are reconciled once per render; a second pass would rewrite
    # the already nonce-bearing policy text again.
    if not response.csp_reconciled:
        content_security_policy(response, response.document, nbytes=state.nonce_bytes)
    elif response.nonce is not None:
        apply_nonce(response.document, response.nonce, response.nonce_requirement)

    response.body = str(response.document)
    response.headers["content-type"] = "text/html; charset=utf-8"
    logger.debug("Rendered page %r (%d bytes)", state.content.meta.title, len(response.body))

    await hooks.do_action(PAGE_RENDERED, response)
    return response
