"""
URL normalization for storage portability.

Absolute URLs that point at the configured site are stored as root-relative
paths so content survives a domain change, and are expanded again when an
item is serialized.

Key behaviors:
- Only URLs on the site's host (and under its path) are rewritten
- Protocol is ignored by default (http and https both match)
- HTML fields rewrite href/src attributes
- Structured bodies rewrite node attrs and link marks
"""

from __future__ import annotations

import copy
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Literal
from urllib.parse import urlparse, urlunparse

TransformKind = Literal["url", "html", "document"]

_ATTR_URL = re.compile(r"""(?P<attr>\b(?:href|src))=(?P<q>["'])(?P<url>.*?)(?P=q)""", re.IGNORECASE)
_DOC_URL_ATTRS = ("href", "src")


@dataclass(frozen=True)
class FieldTransform:
    kind: TransformKind
    ignore_protocol: bool = True


# Item fields rewritten to relative form on write.
ITEM_URL_FIELDS: dict[str, FieldTransform] = {
    "body": FieldTransform("document"),
    "custom_excerpt": FieldTransform("html"),
    "codeinjection_head": FieldTransform("html"),
    "codeinjection_foot": FieldTransform("html"),
    "feature_image": FieldTransform("url"),
    "canonical_url": FieldTransform("url", ignore_protocol=False),
}

# Meta fields rewritten to relative form on write.
META_URL_FIELDS: dict[str, FieldTransform] = {
    "og_image": FieldTransform("url"),
    "twitter_image": FieldTransform("url"),
}


class UrlNormalizer:
    """Rewrites URLs between absolute and site-relative forms."""

    def __init__(self, site_url: str) -> None:
        parsed = urlparse(site_url)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError(f"site_url must be absolute: {site_url!r}")
        self._scheme = parsed.scheme.lower()
        self._netloc = parsed.netloc.lower()
        self._subdir = parsed.path.rstrip("/")

    @property
    def origin(self) -> str:
        return f"{self._scheme}://{self._netloc}"

    # --- Single URLs ---

    def absolute_to_relative(self, url: str, ignore_protocol: bool = True) -> str:
        """Return `url` as a root-relative path when it points at the site."""
        if not url:
            return url
        parsed = urlparse(url)
        if not parsed.netloc or parsed.netloc.lower() != self._netloc:
            return url
        if parsed.scheme and not ignore_protocol and parsed.scheme.lower() != self._scheme:
            return url
        path = parsed.path or "/"
        if self._subdir and not (path == self._subdir or path.startswith(self._subdir + "/")):
            return url
        return urlunparse(("", "", path, parsed.params, parsed.query, parsed.fragment))

    def relative_to_absolute(self, url: str) -> str:
        """Expand a root-relative path against the site origin."""
        if not url or not url.startswith("/") or url.startswith("//"):
            return url
        return self.origin + url

    # --- HTML fragments ---

    def html_absolute_to_relative(self, html: str, ignore_protocol: bool = True) -> str:
        return self._rewrite_html(html, lambda u: self.absolute_to_relative(u, ignore_protocol))

    def html_relative_to_absolute(self, html: str) -> str:
        return self._rewrite_html(html, self.relative_to_absolute)

    def _rewrite_html(self, html: str, fn: Callable[[str], str]) -> str:
        if not html:
            return html

        def _sub(match: re.Match[str]) -> str:
            return f"{match.group('attr')}={match.group('q')}{fn(match.group('url'))}{match.group('q')}"

        return _ATTR_URL.sub(_sub, html)

    # --- Structured documents ---

    def document_absolute_to_relative(
        self, doc: dict[str, Any], ignore_protocol: bool = True
    ) -> dict[str, Any]:
        return self._rewrite_document(doc, lambda u: self.absolute_to_relative(u, ignore_protocol))

    def document_relative_to_absolute(self, doc: dict[str, Any]) -> dict[str, Any]:
        return self._rewrite_document(doc, self.relative_to_absolute)

    def _rewrite_document(self, doc: dict[str, Any], fn: Callable[[str], str]) -> dict[str, Any]:
        result = copy.deepcopy(doc)
        self._walk(result, fn)
        return result

    def _walk(self, node: Any, fn: Callable[[str], str]) -> None:
        if isinstance(node, list):
            for child in node:
                self._walk(child, fn)
            return
        if not isinstance(node, dict):
            return

        attrs = node.get("attrs")
        if isinstance(attrs, dict):
            for key in _DOC_URL_ATTRS:
                if isinstance(attrs.get(key), str):
                    attrs[key] = fn(attrs[key])

        self._walk(node.get("marks", []), fn)
        self._walk(node.get("content", []), fn)

    # --- Field dispatch ---

    def to_relative(self, value: Any, transform: FieldTransform) -> Any:
        if not value:
            return value
        if transform.kind == "document":
            return self.document_absolute_to_relative(value, transform.ignore_protocol)
        if transform.kind == "html":
            return self.html_absolute_to_relative(value, transform.ignore_protocol)
        return self.absolute_to_relative(value, transform.ignore_protocol)

    def to_absolute(self, value: Any, transform: FieldTransform) -> Any:
        if not value:
            return value
        if transform.kind == "document":
            return self.document_relative_to_absolute(value)
        if transform.kind == "html":
            return self.html_relative_to_absolute(value)
        return self.relative_to_absolute(value)
