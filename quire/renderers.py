"""Body rendering for Quire.

The Renderer turns a ContentItem body into a RenderedDocument in three
steps:

1. Directives are scanned and resolved into HTML fragments; each is replaced
   by an HTML comment placeholder so the markup converter leaves it alone.
   Unresolvable directives are passed through unrendered with a warning.
2. The body is converted by the markup renderer for its file type
   (MarkdownRenderer or HTMLRenderer).
3. Placeholders are swapped for their fragments and the result is prefixed
   with RENDERED_MARKER. Text that already starts with the marker is returned
   untouched, so rendering is idempotent.

Key classes:
- Heading: Heading with a generated anchor id.
- RenderedDocument: Final HTML for one item.
- MarkdownRenderer / HTMLRenderer: Markup converters.
- RendererRegistry: Picks a markup converter for a path.
- Renderer: Facade producing RenderedDocuments.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import mistune

from .directives import (
    DirectiveBlock,
    DirectiveRegistry,
    highlight_code,
    resolve,
    scan,
    unrendered,
)
from .errors import BuildWarning, UnknownDirectiveError
from .html_utils import escape_html, first_paragraph, strip_tags
from .protocols import MarkupRenderer
from .utils import is_html, is_markdown

if TYPE_CHECKING:
    from .content import ContentItem

logger = logging.getLogger(__name__)

RENDERED_MARKER = "<!-- quire:rendered -->"

_PLACEHOLDER = "<!-- quire:directive:{} -->"
_PLACEHOLDER_RE = re.compile(r"<!-- quire:directive:(\d+) -->")
_WRAPPED_PLACEHOLDER_RE = re.compile(r"<p>\s*<!-- quire:directive:(\d+) -->\s*</p>\n?")
# A placeholder that ended up inside code, escaped by the markup converter.
_ESCAPED_PLACEHOLDER_RE = re.compile(r"&lt;!-- quire:directive:(\d+) --&gt;")

MARKDOWN_PLUGINS = ["strikethrough", "footnotes", "table", "url"]


def _generate_heading_id(text: str) -> str:
    """Generate a URL-friendly ID from heading text.

    Args:
        text: The heading text (may contain inline HTML).

    Returns:
        URL-friendly slug suitable for anchor links.
    """
    slug = strip_tags(text).lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[-\s]+", "-", slug)
    return slug.strip("-")


@dataclass(frozen=True)
class Heading:
    """A heading extracted while rendering, for tables of contents.

    Attributes:
        id: Anchor ID for the heading (URL-friendly slug).
        text: The text content of the heading.
        level: Heading level (1-6).
    """

    id: str
    text: str
    level: int


@dataclass(frozen=True)
class RenderedDocument:
    """The rendered body of one ContentItem.

    Attributes:
        identifier: Identifier of the originating item.
        body: Final HTML, starting with RENDERED_MARKER.
        excerpt: First paragraph as HTML (or the front matter excerpt).
        toc: Headings in document order.
        warnings: Problems recovered while rendering.
    """

    identifier: str
    body: str
    excerpt: str = ""
    toc: tuple[Heading, ...] = ()
    warnings: tuple[BuildWarning, ...] = ()


class _HighlightRenderer(mistune.HTMLRenderer):
    """Markdown renderer with heading ids and Pygments code blocks.

    Attributes:
        cssclass: CSS class for highlighted code blocks.
        headings: Headings collected during rendering.
    """

    def __init__(self, cssclass: str = "highlight"):
        super().__init__(escape=False)
        self.cssclass = cssclass
        self.headings: list[Heading] = []
        self._heading_id_counts: dict[str, int] = {}

    def heading(self, text: str, level: int, **attrs) -> str:
        """Render a heading with an auto-generated, de-duplicated id."""
        base_id = _generate_heading_id(text) or "section"

        if base_id in self._heading_id_counts:
            self._heading_id_counts[base_id] += 1
            heading_id = f"{base_id}-{self._heading_id_counts[base_id]}"
        else:
            self._heading_id_counts[base_id] = 0
            heading_id = base_id

        self.headings.append(Heading(id=heading_id, text=strip_tags(text), level=level))
        return f'<h{level} id="{heading_id}">{text}</h{level}>\n'

    def block_code(self, code: str, info: str | None = None) -> str:
        """Render a fenced code block with Pygments syntax highlighting."""
        language = info.split()[0] if info and info.strip() else None
        return highlight_code(code, language, self.cssclass)


class MarkdownRenderer:
    """Renders Markdown content to HTML."""

    def __init__(self, cssclass: str = "highlight"):
        self.cssclass = cssclass

    @property
    def source_type(self) -> str:
        """Return the source type identifier."""
        return "markdown"

    def can_render(self, path: Path) -> bool:
        return is_markdown(path)

    def render(self, content: str) -> tuple[str, list[Heading]]:
        """Render Markdown content to HTML.

        A parser is created per call, so one instance can be shared by
        worker threads.

        Args:
            content: Markdown source content.

        Returns:
            Tuple of (rendered HTML, list of Heading objects).
        """
        renderer = _HighlightRenderer(self.cssclass)
        markdown = mistune.create_markdown(renderer=renderer, plugins=MARKDOWN_PLUGINS)
        html = markdown(content)
        return html, list(renderer.headings)


class HTMLRenderer:
    """Passes through HTML bodies unchanged."""

    @property
    def source_type(self) -> str:
        """Return the source type identifier."""
        return "html"

    def can_render(self, path: Path) -> bool:
        return is_html(path)

    def render(self, content: str) -> tuple[str, list[Heading]]:
        return content, []


class RendererRegistry:
    """Registry for markup renderers.

    Renderers are consulted in registration order; the first whose
    ``can_render`` accepts the path wins.
    """

    def __init__(self, cssclass: str = "highlight"):
        """Initialize the registry with default renderers."""
        self._renderers: list[MarkupRenderer] = []
        self.register(MarkdownRenderer(cssclass))
        self.register(HTMLRenderer())

    def register(self, renderer: MarkupRenderer) -> None:
        """Register a new renderer.

        Args:
            renderer: A MarkupRenderer implementation.
        """
        self._renderers.append(renderer)

    def get_renderer(self, path: Path) -> MarkupRenderer | None:
        """Get the appropriate renderer for a file.

        Args:
            path: Path to the source file.

        Returns:
            The first renderer that can handle the file, or None.
        """
        for renderer in self._renderers:
            if renderer.can_render(path):
                return renderer
        return None


def is_rendered(text: str) -> bool:
    """Check whether text already carries the no-render marker."""
    return text.lstrip().startswith(RENDERED_MARKER)


def _starts_line(segments: list, index: int) -> bool:
    if index == 0:
        return True
    before = segments[index - 1]
    if not isinstance(before, str):
        return False
    stripped = before.rstrip(" \t")
    return stripped.endswith("\n") or (index == 1 and stripped == "")


def _line_indent(segments: list, index: int) -> str:
    """Return the whitespace between the last line break and a segment."""
    if index == 0 or not isinstance(segments[index - 1], str):
        return ""
    before = segments[index - 1]
    indent = before[before.rfind("\n") + 1 :]
    return indent if indent.strip(" \t") == "" else ""


def _ends_line(segments: list, index: int) -> bool:
    if index == len(segments) - 1:
        return True
    after = segments[index + 1]
    if not isinstance(after, str):
        return False
    stripped = after.lstrip(" \t")
    return stripped.startswith(("\n", "\r\n")) or (
        index + 2 == len(segments) and stripped == ""
    )


class Renderer:
    """Renders ContentItem bodies into RenderedDocuments.

    Attributes:
        registry: Markup renderers by file type.
        directives: Directive handlers by kind.
    """

    def __init__(
        self,
        registry: RendererRegistry | None = None,
        directives: DirectiveRegistry | None = None,
        highlight_class: str = "highlight",
    ):
        """Initialize the renderer.

        Args:
            registry: Optional custom markup renderer registry.
            directives: Optional custom directive registry.
            highlight_class: CSS class for highlighted code.
        """
        self.registry = registry or RendererRegistry(highlight_class)
        self.directives = directives or DirectiveRegistry(highlight_class)

    def render(self, item: ContentItem) -> RenderedDocument:
        """Render one item.

        Args:
            item: The loaded content item.

        Returns:
            RenderedDocument carrying only the item's identifier.
        """
        body, toc, warnings = self.render_text(item.body, item.path, item.identifier)
        excerpt = item.metadata.get("excerpt")
        if excerpt:
            excerpt_html = f"<p>{escape_html(str(excerpt))}</p>"
        else:
            excerpt_html = first_paragraph(body)
        logger.debug("Rendered %s", item.identifier)
        return RenderedDocument(
            identifier=item.identifier,
            body=body,
            excerpt=excerpt_html,
            toc=tuple(toc),
            warnings=tuple(warnings),
        )

    def render_text(
        self,
        text: str,
        path: Path = Path("untitled.md"),
        source: str | None = None,
    ) -> tuple[str, list[Heading], list[BuildWarning]]:
        """Render body text to marked HTML.

        Args:
            text: Body text, or previously rendered output.
            path: Source path, used to pick the markup renderer.
            source: Identifier used in warnings (defaults to the path).

        Returns:
            Tuple of (HTML, headings, warnings).
        """
        if is_rendered(text):
            return text, [], []
        source = source or path.as_posix()
        prepared, fragments, sources, warnings = self._substitute_directives(
            text, source, skip_code=is_markdown(path)
        )

        renderer = self.registry.get_renderer(path)
        if renderer is None:
            logger.debug("No markup renderer for %s; passing body through", source)
            html, headings = prepared, []
        else:
            html, headings = renderer.render(prepared)

        def restore(match: re.Match) -> str:
            return fragments[int(match.group(1))]

        def restore_escaped(match: re.Match) -> str:
            return escape_html(sources[int(match.group(1))])

        html = _WRAPPED_PLACEHOLDER_RE.sub(restore, html)
        html = _PLACEHOLDER_RE.sub(restore, html)
        html = _ESCAPED_PLACEHOLDER_RE.sub(restore_escaped, html)
        return f"{RENDERED_MARKER}\n{html}", headings, warnings

    def _substitute_directives(
        self, text: str, source: str, skip_code: bool = False
    ) -> tuple[str, list[str], list[str], list[BuildWarning]]:
        """Replace directives with placeholders.

        Block-level placeholders keep the indentation of their line so that a
        directive inside a list item stays in that item.

        Returns:
            Tuple of (text with placeholders, fragments by placeholder index,
            directive source text by placeholder index, warnings for
            directives that could not be resolved).
        """
        segments = scan(text, skip_code=skip_code)
        pieces: list[str] = []
        fragments: list[str] = []
        sources: list[str] = []
        warnings: list[BuildWarning] = []
        for index, segment in enumerate(segments):
            if isinstance(segment, str):
                pieces.append(segment)
                continue
            block_level = _starts_line(segments, index) and _ends_line(segments, index)
            try:
                html = self._render_directive(segment, source)
            except UnknownDirectiveError as exc:
                logger.warning("%s; leaving it unrendered", exc)
                warnings.append(BuildWarning.from_error(exc))
                html = unrendered(segment, block_level)
            placeholder = _PLACEHOLDER.format(len(fragments))
            fragments.append(html)
            sources.append(segment.source)
            if block_level:
                indent = _line_indent(segments, index)
                pieces.append(f"\n\n{indent}{placeholder}\n\n")
            else:
                pieces.append(placeholder)
        return "".join(pieces), fragments, sources, warnings

    def _render_directive(self, block: DirectiveBlock, source: str) -> str:
        directive = resolve(block, source)
        handler = self.directives.get_handler(directive.kind)
        if handler is None:
            raise UnknownDirectiveError(
                source, block.name, f"no handler for '{block.name}'", block.line
            )
        return handler.render(directive)
