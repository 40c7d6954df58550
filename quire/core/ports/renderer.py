"""
Document Renderer Port.

Turns a structured body (ProseMirror-style JSON) into derived `html` and
`plaintext`. Any failure surfaces as `DocumentRenderError`, which the
lifecycle engine reports as a validation error on `body`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol


class DocumentRenderError(Exception):
    """Raised when a structured body cannot be rendered."""


@dataclass(frozen=True)
class RenderedDocument:
    html: str
    plaintext: str


class DocumentRendererPort(Protocol):
    def render(self, body: dict[str, Any]) -> RenderedDocument:
        """Render body to html and plaintext. Raises DocumentRenderError."""
        ...
