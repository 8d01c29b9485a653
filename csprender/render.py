"""Render step: assemble the HTML document for a page.

Builds ``<head>`` from the page metadata, injects configured head markup
(reconciling its Content Security Policy as a fragment before merging) and
wraps the content body in the standard page skeleton.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Union

from bs4 import BeautifulSoup, Doctype, Tag

from csprender.lib.csp import content_security_policy
from csprender.lib.hooks import RENDER_DOCUMENT, RENDER_HEAD, hooks
from csprender.lib.observability import span
from csprender.response import PipelineResponse

logger = logging.getLogger(__name__)

MetaValue = Union[str, list[str], dict[str, Any], None]

_HEADER_VALUE_JUNK = re.compile(r"[^\t\x20-\x7e\x80-\xff]")


@dataclass
class PageMeta:
    """Metadata extracted from the page content."""

    title: str | None = None
    canonical: str | None = None
    feed: str | None = None
    page: dict[str, MetaValue] = field(default_factory=dict)


@dataclass
class PageContent:
    html: str
    meta: PageMeta = field(default_factory=PageMeta)


@dataclass
class PipelineState:
    """Input to a single render."""

    content: PageContent
    selector: str = ""
    head_html: str | None = None
    nonce_bytes: int = 16


def cleanup_header_value(value: str) -> str:
    """Make a string safe to use as a header or attribute value."""
    return _HEADER_VALUE_JUNK.sub(" ", value)[:1024]


def sanitize_json_ld(json_ld: Any) -> str:
    """Escape angle brackets and re-serialize JSON-LD compactly.

    Structured values (e.g. a mapping from a YAML page) are serialized first.

    Raises:
        ValueError: If the value is not valid JSON.
        TypeError: If a structured value cannot be serialized.
    """
    if not isinstance(json_ld, str):
        json_ld = json.dumps(json_ld, ensure_ascii=False)
    escaped = json_ld.replace("<", "&#x3c;").replace(">", "&#x3e;")
    return json.dumps(json.loads(escaped.strip()), separators=(",", ":"), ensure_ascii=False)


def create_element(soup: BeautifulSoup, tag_name: str, **attrs: str | None) -> Tag | None:
    """Create a tag, or None if any attribute value is missing."""
    if any(value is None for value in attrs.values()):
        return None
    return soup.new_tag(tag_name, attrs=attrs)


def _append(parent: Tag, el: Tag | None) -> None:
    if el is not None:
        parent.append(el)


def _meta_attr(name: str) -> str:
    return "property" if ":" in name and not name.startswith("twitter:") else "name"


def build_head(soup: BeautifulSoup, meta: PageMeta) -> Tag:
    head = soup.new_tag("head")

    if meta.title is not None:
        title = soup.new_tag("title")
        title.string = meta.title
        head.append(title)

    if meta.canonical:
        _append(head, create_element(soup, "link", rel="canonical", href=meta.canonical))

    json_ld = None
    for name, value in meta.page.items():
        if name.lower() == "json-ld":
            json_ld = value[0] if isinstance(value, list) and value else value
            continue
        attr = _meta_attr(name)
        values = value if isinstance(value, list) else [value]
        for v in values:
            _append(head, create_element(soup, "meta", **{attr: name, "content": v}))

    _append(
        head,
        create_element(
            soup,
            "link",
            rel="alternate",
            type="application/xml+atom",
            href=meta.feed,
            title=f"{meta.title} feed" if meta.title is not None else "feed",
        ),
    )

    if json_ld:
        script = soup.new_tag("script", attrs={"type": "application/ld+json"})
        try:
            script.string = sanitize_json_ld(json_ld)
        except (TypeError, ValueError) as exc:
            logger.warning("Invalid JSON-LD in page metadata: %s", exc)
            script.string = ""
            script["data-error"] = f"error in json-ld: {cleanup_header_value(str(exc))}"
        head.append(script)

    return head


def inject_head_html(head: Tag, head_html: str, response: PipelineResponse, nonce_bytes: int = 16) -> None:
    """Parse head markup as a fragment, reconcile its CSP and merge it into head."""
    fragment = BeautifulSoup(head_html, "html.parser")
    content_security_policy(response, fragment, nbytes=nonce_bytes)
    for child in list(fragment.contents):
        head.append(child.extract())


async def render(state: PipelineState, response: PipelineResponse) -> None:
    """Render the page described by ``state`` into ``response.document``."""
    content = state.content

    if state.selector == "plain":
        # just return body
        response.document = BeautifulSoup(content.html, "html.parser")
        return

    with span("render.page", title=content.meta.title):
        soup = BeautifulSoup("", "html.parser")
        head = build_head(soup, content.meta)
        head = await hooks.apply_filters(RENDER_HEAD, head, state)

        if state.head_html:
            inject_head_html(head, state.head_html, response, state.nonce_bytes)

        main = soup.new_tag("main")
        body_fragment = BeautifulSoup(content.html, "html.parser")
        for child in list(body_fragment.contents):
            main.append(child.extract())

        body = soup.new_tag("body")
        body.append(soup.new_tag("header"))
        body.append(main)
        body.append(soup.new_tag("footer"))

        html = soup.new_tag("html")
        html.append(head)
        html.append(body)

        soup.append(Doctype("html"))
        soup.append(html)

        response.document = await hooks.apply_filters(RENDER_DOCUMENT, soup, state)
