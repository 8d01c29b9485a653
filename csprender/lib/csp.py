"""Content Security Policy reconciliation and nonce injection.

Keeps the three views of a page's policy consistent: the response header,
the ``<meta http-equiv="content-security-policy">`` element, and the script,
style and stylesheet elements the policy governs.

The same entry point, :func:`content_security_policy`, serves both the full
document (after assembly) and an isolated head fragment (before it is merged
into the document). Any BeautifulSoup tree or fragment can be passed as root.

Usage:
    from csprender.lib.csp import content_security_policy

    content_security_policy(response, soup)
"""

from __future__ import annotations

import logging
import re
import secrets
from dataclasses import dataclass
from typing import TYPE_CHECKING

from bs4 import BeautifulSoup, Tag

from csprender.lib.exceptions import NonceGenerationError
from csprender.lib.observability import span

if TYPE_CHECKING:
    from csprender.response import PipelineResponse

logger = logging.getLogger(__name__)

CSP_HEADER = "content-security-policy"
KEEP_AS_META = "keep-as-meta"
NONCE_KEYWORD = "nonce"
MIN_NONCE_BYTES = 16

_META_CSP_PATTERN = re.compile(
    r"""http-equiv\s*=\s*["']?content-security-policy""", re.IGNORECASE
)


def parse_csp(raw: str) -> dict[str, str]:
    """Parse a policy string into a mapping of directive name to value.

    Later duplicates of a directive overwrite earlier ones. Malformed input
    is never rejected.
    """
    result: dict[str, str] = {}
    for part in raw.split(";"):
        tokens = part.split()
        if not tokens:
            continue
        directive, *values = tokens
        result[directive] = " ".join(values)
    return result


@dataclass(frozen=True)
class NonceRequirement:
    """Whether the script and style directives of a policy ask for a nonce."""

    script: bool = False
    style: bool = False

    def __or__(self, other: NonceRequirement) -> NonceRequirement:
        return NonceRequirement(
            script=self.script or other.script,
            style=self.style or other.style,
        )

    def __bool__(self) -> bool:
        return self.script or self.style


def nonce_requirements(parsed: dict[str, str]) -> NonceRequirement:
    return NonceRequirement(
        script=NONCE_KEYWORD in parsed.get("script-src", ""),
        style=NONCE_KEYWORD in parsed.get("style-src", ""),
    )


def generate_nonce(nbytes: int = MIN_NONCE_BYTES) -> str:
    """Return a fresh URL-safe nonce built from ``nbytes`` random bytes.

    Raises:
        ValueError: If fewer than 16 bytes are requested.
        NonceGenerationError: If the OS random source is unavailable.
    """
    if nbytes < MIN_NONCE_BYTES:
        raise ValueError(f"Nonce must use at least {MIN_NONCE_BYTES} bytes, got {nbytes}")
    try:
        return secrets.token_urlsafe(nbytes)
    except (NotImplementedError, OSError) as exc:
        raise NonceGenerationError("Secure random source unavailable") from exc


def rewrite_policy(raw: str, nonce: str) -> str:
    """Replace every ``nonce`` substring with ``nonce-<value>``.

    Not directive-aware: the word ``nonce`` anywhere in the text is rewritten.
    """
    return raw.replace(NONCE_KEYWORD, f"{NONCE_KEYWORD}-{nonce}")


def _is_stylesheet_link(tag: Tag) -> bool:
    rel = tag.get("rel") or []
    if isinstance(rel, str):
        rel = rel.split()
    return any(token.lower() == "stylesheet" for token in rel)


def apply_script_nonce(root: Tag, nonce: str) -> None:
    for el in root.find_all("script"):
        el["nonce"] = nonce


def apply_style_nonce(root: Tag, nonce: str) -> None:
    for el in root.find_all("style"):
        el["nonce"] = nonce
    for el in root.find_all("link"):
        if _is_stylesheet_link(el):
            el["nonce"] = nonce


def apply_nonce(root: Tag, nonce: str, required: NonceRequirement) -> None:
    """Stamp the governed elements that ``required`` asks a nonce for."""
    if required.script:
        apply_script_nonce(root, nonce)
    if required.style:
        apply_style_nonce(root, nonce)


@dataclass
class MetaPolicy:
    """The meta-declared policy of a tree.

    ``keep_as_meta`` is read once from the element's marker attribute, which
    is removed as soon as it has been read.
    """

    element: Tag
    keep_as_meta: bool = False

    @classmethod
    def from_element(cls, element: Tag) -> MetaPolicy:
        keep = element.attrs.pop(KEEP_AS_META, None) is not None
        return cls(element=element, keep_as_meta=keep)

    @property
    def content(self) -> str:
        value = self.element.get("content") or ""
        return value if isinstance(value, str) else " ".join(value)

    @content.setter
    def content(self, value: str) -> None:
        self.element["content"] = value


def _is_meta_csp(tag: Tag) -> bool:
    if tag.name != "meta":
        return False
    http_equiv = tag.get("http-equiv")
    return isinstance(http_equiv, str) and http_equiv.strip().lower() == CSP_HEADER


def find_meta_csp(root: Tag) -> MetaPolicy | None:
    """Return the first meta CSP element in document order, if any."""
    element = root.find(_is_meta_csp)
    if element is None:
        return None
    return MetaPolicy.from_element(element)


def get_header_csp(response: PipelineResponse) -> str | None:
    return response.headers.get(CSP_HEADER) or None


def check_body_for_meta_csp(body: str | None) -> bool:
    """Cheap textual test for a meta CSP element in an unparsed body."""
    if not body:
        return False
    return _META_CSP_PATTERN.search(body) is not None


def _apply_nonce(
    response: PipelineResponse,
    root: Tag,
    meta: MetaPolicy | None,
    header: str | None,
    nbytes: int,
) -> None:
    nonce = generate_nonce(nbytes)
    required = NonceRequirement()

    if meta is not None:
        required |= nonce_requirements(parse_csp(meta.content))
        meta.content = rewrite_policy(meta.content, nonce)

    if header:
        required |= nonce_requirements(parse_csp(header))
        response.headers[CSP_HEADER] = rewrite_policy(header, nonce)

    apply_nonce(root, nonce, required)
    response.nonce = nonce
    response.nonce_requirement = required

    logger.debug(
        "Applied CSP nonce (script=%s, style=%s)", required.script, required.style
    )


def content_security_policy(
    response: PipelineResponse,
    root: BeautifulSoup | Tag,
    nbytes: int = MIN_NONCE_BYTES,
) -> None:
    """Reconcile the meta and header policies of ``root`` and ``response``.

    Both are mutated in place. When either policy mentions ``nonce``, a single
    nonce is generated, written into each present policy and stamped onto the
    governed elements. A meta policy without a header policy is then promoted
    into the header and removed, unless the element carried ``keep-as-meta``.

    Raises:
        NonceGenerationError: If a nonce is needed and cannot be generated.
    """
    meta = find_meta_csp(root)
    header = get_header_csp(response)

    if meta is None and header is None:
        return

    response.csp_reconciled = True

    with span("csp.reconcile", has_meta=meta is not None, has_header=header is not None):
        if (meta is not None and NONCE_KEYWORD in meta.content) or (
            header is not None and NONCE_KEYWORD in header
        ):
            _apply_nonce(response, root, meta, header, nbytes)

        if meta is not None and header is None:
            if not meta.keep_as_meta:
                response.headers[CSP_HEADER] = meta.content
                meta.element.decompose()
                logger.debug("Promoted meta CSP to response header")
            else:
                logger.debug("Keeping meta CSP in document")
