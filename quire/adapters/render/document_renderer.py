"""
Document renderer - structured body to html and plaintext.

Converts ProseMirror-style JSON (`{"type": "doc", "content": [...]}`) into
the derived `html` and `plaintext` stored on a content item.

Key behaviors:
- Escapes all text and attribute values
- Drops links and images with script URLs
- Unknown node types render their children
- Structurally malformed documents raise DocumentRenderError
"""

from __future__ import annotations

import html
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from quire.core.ports.renderer import DocumentRenderError, RenderedDocument

logger = logging.getLogger(__name__)

_UNSAFE_SCHEMES = ("javascript:", "vbscript:", "data:text/html")

_BLOCK_TYPES = frozenset(
    {
        "paragraph",
        "heading",
        "blockquote",
        "bulletList",
        "orderedList",
        "listItem",
        "codeBlock",
        "image",
        "horizontalRule",
    }
)


@dataclass(frozen=True)
class RenderConfig:
    """Rendering configuration."""

    code_block_class: str = "code-block"
    image_loading: str = "lazy"  # lazy, eager


DEFAULT_RENDER_CONFIG = RenderConfig()


def _escape(text: str) -> str:
    return html.escape(text)


def _is_safe_url(url: str) -> bool:
    return not url.strip().lower().startswith(_UNSAFE_SCHEMES)


# --- Structure checks ---


def validate_document(doc: Any) -> None:
    """Raise DocumentRenderError unless `doc` is a well-formed document tree."""
    if not isinstance(doc, dict):
        raise DocumentRenderError("Document must be an object")
    if doc.get("type") != "doc":
        raise DocumentRenderError("Document root must have type 'doc'")
    _validate_node(doc, path="doc")


def _validate_node(node: Any, path: str) -> None:
    if not isinstance(node, dict):
        raise DocumentRenderError(f"Node at {path} must be an object")
    node_type = node.get("type")
    if not isinstance(node_type, str) or not node_type:
        raise DocumentRenderError(f"Node at {path} is missing a type")
    if node_type == "text" and not isinstance(node.get("text", ""), str):
        raise DocumentRenderError(f"Text node at {path} must carry a string")

    attrs = node.get("attrs", {})
    if not isinstance(attrs, dict):
        raise DocumentRenderError(f"Attributes at {path} must be an object")

    marks = node.get("marks", [])
    if not isinstance(marks, list) or not all(isinstance(m, dict) for m in marks):
        raise DocumentRenderError(f"Marks at {path} must be a list of objects")

    content = node.get("content", [])
    if not isinstance(content, list):
        raise DocumentRenderError(f"Content at {path} must be a list")
    for index, child in enumerate(content):
        _validate_node(child, f"{path}.content[{index}]")


# --- HTML ---


def _apply_mark(content: str, mark: dict[str, Any]) -> str:
    mark_type = mark.get("type", "")
    attrs = mark.get("attrs") or {}

    if mark_type in ("bold", "strong"):
        return f"<strong>{content}</strong>"
    elif mark_type in ("italic", "em"):
        return f"<em>{content}</em>"
    elif mark_type == "code":
        return f"<code>{content}</code>"
    elif mark_type == "link":
        href = str(attrs.get("href", ""))
        if not href or not _is_safe_url(href):
            return content
        title = attrs.get("title")
        if title:
            return f'<a href="{_escape(href)}" title="{_escape(str(title))}">{content}</a>'
        return f'<a href="{_escape(href)}">{content}</a>'

    return content


def _render_text(node: dict[str, Any], config: RenderConfig) -> str:
    text = node.get("text", "")
    if not text:
        return ""
    escaped = _escape(text)
    for mark in reversed(node.get("marks", [])):
        escaped = _apply_mark(escaped, mark)
    return escaped


def _render_heading(node: dict[str, Any], config: RenderConfig) -> str:
    attrs = node.get("attrs") or {}
    level = attrs.get("level", 1)
    level = max(1, min(6, int(level))) if isinstance(level, int) else 1
    return f"<h{level}>{_render_children(node, config)}</h{level}>"


def _render_ordered_list(node: dict[str, Any], config: RenderConfig) -> str:
    start = (node.get("attrs") or {}).get("start", 1)
    items = _render_children(node, config)
    if start != 1:
        return f'<ol start="{_escape(str(start))}">{items}</ol>'
    return f"<ol>{items}</ol>"


def _render_code_block(node: dict[str, Any], config: RenderConfig) -> str:
    language = (node.get("attrs") or {}).get("language", "")
    escaped = _escape(extract_text(node))
    if language:
        return (
            f'<pre class="{config.code_block_class}">'
            f'<code class="language-{_escape(str(language))}">{escaped}</code>'
            f"</pre>"
        )
    return f'<pre class="{config.code_block_class}"><code>{escaped}</code></pre>'


def _render_image(node: dict[str, Any], config: RenderConfig) -> str:
    attrs = node.get("attrs") or {}
    src = str(attrs.get("src", ""))
    if not src or not _is_safe_url(src):
        return ""

    parts = [f'src="{_escape(src)}"', f'alt="{_escape(str(attrs.get("alt", "")))}"']
    if attrs.get("title"):
        parts.append(f'title="{_escape(str(attrs["title"]))}"')
    parts.append(f'loading="{config.image_loading}"')
    return f"<img {' '.join(parts)} />"


def _wrap(tag: str) -> Callable[[dict[str, Any], RenderConfig], str]:
    def render(node: dict[str, Any], config: RenderConfig) -> str:
        return f"<{tag}>{_render_children(node, config)}</{tag}>"

    return render


NODE_RENDERERS: dict[str, Callable[[dict[str, Any], RenderConfig], str]] = {
    "paragraph": _wrap("p"),
    "heading": _render_heading,
    "blockquote": _wrap("blockquote"),
    "bulletList": _wrap("ul"),
    "orderedList": _render_ordered_list,
    "listItem": _wrap("li"),
    "codeBlock": _render_code_block,
    "image": _render_image,
    "hardBreak": lambda node, config: "<br />",
    "horizontalRule": lambda node, config: "<hr />",
}


def render_node(node: dict[str, Any], config: RenderConfig = DEFAULT_RENDER_CONFIG) -> str:
    node_type = node.get("type", "")
    if node_type == "text":
        return _render_text(node, config)
    renderer = NODE_RENDERERS.get(node_type)
    if renderer:
        return renderer(node, config)
    # doc and unknown nodes render their children
    return _render_children(node, config)


def _render_children(node: dict[str, Any], config: RenderConfig) -> str:
    return "".join(render_node(child, config) for child in node.get("content", []))


# --- Plaintext ---


def extract_text(node: dict[str, Any]) -> str:
    """Concatenate the text of a node tree without separators."""
    if node.get("type") == "text":
        text: str = node.get("text", "")
        return text
    return "".join(extract_text(child) for child in node.get("content", []))


def render_plaintext(doc: dict[str, Any]) -> str:
    """Block-separated plain text: blank line between blocks, newline for hard breaks."""
    blocks: list[str] = []
    _collect_blocks(doc, blocks, prefix="")
    return "\n\n".join(b for b in blocks if b).strip()


def _inline_text(node: dict[str, Any]) -> str:
    node_type = node.get("type")
    if node_type == "text":
        text: str = node.get("text", "")
        return text
    if node_type == "hardBreak":
        return "\n"
    return "".join(_inline_text(child) for child in node.get("content", []))


def _collect_blocks(node: dict[str, Any], blocks: list[str], prefix: str) -> None:
    node_type = node.get("type")
    children = node.get("content", [])

    if node_type in ("paragraph", "heading", "codeBlock"):
        blocks.append(prefix + _inline_text(node))
        return
    if node_type == "image":
        return
    if node_type == "listItem":
        before = len(blocks)
        for child in children:
            _collect_blocks(child, blocks, prefix="")
        if len(blocks) > before:
            blocks[before] = "- " + blocks[before]
        return

    if any(child.get("type") in _BLOCK_TYPES for child in children):
        for child in children:
            _collect_blocks(child, blocks, prefix)
    else:
        text = _inline_text(node)
        if text:
            blocks.append(prefix + text)


# --- Renderer ---


class DocumentRenderer:
    """Implements DocumentRendererPort."""

    def __init__(self, config: RenderConfig | None = None) -> None:
        self._config = config or DEFAULT_RENDER_CONFIG

    def render(self, body: dict[str, Any]) -> RenderedDocument:
        validate_document(body)
        try:
            html_out = render_node(body, self._config)
            plaintext = render_plaintext(body)
        except (TypeError, ValueError, AttributeError) as e:
            logger.debug("Document render failed: %s", e)
            raise DocumentRenderError(f"Invalid document structure: {e}") from e
        return RenderedDocument(html=html_out, plaintext=plaintext)
