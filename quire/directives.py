"""Template directives embedded in content bodies.

Posts can carry Liquid-style block directives::

    {% highlight ruby linenos %}
    def greet = puts "hi"
    {% endhighlight %}

The scanner splits a body into plain text and DirectiveBlock segments
without deciding what each block means. Resolution then maps a block's name
onto a DirectiveKind; names that are not known, stray ``end`` tags and
unclosed blocks raise UnknownDirectiveError. Handlers turn a resolved
Directive into final HTML.

Key classes:
- DirectiveKind: The directive variants Quire understands.
- DirectiveBlock: A scanned, not yet resolved, directive.
- Directive: A resolved directive of a known kind.
- DirectiveRegistry: Maps kinds to handlers (HighlightHandler, RawHandler,
  CommentHandler).
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import get_lexer_by_name
from pygments.util import ClassNotFound

from .errors import UnknownDirectiveError
from .html_utils import escape_html
from .protocols import DirectiveHandler

logger = logging.getLogger(__name__)

TAG_RE = re.compile(
    r"\{%-?\s*(?P<name>[A-Za-z_][\w-]*)(?P<args>[^%]*?)\s*-?%\}"
)
# Opening code fence: three or more backticks or tildes, indented at most 3.
FENCE_RE = re.compile(r"^[ \t]{0,3}(?P<fence>`{3,}|~{3,})[^\n]*$", re.MULTILINE)
CODE_SPAN_RE = re.compile(
    r"(?<!`)(?P<ticks>`+)(?!`)(?:(?!\n[ \t]*\n)[\s\S])*?(?<!`)(?P=ticks)(?!`)"
)


class DirectiveKind(Enum):
    """Directive variants, keyed by their tag name."""

    HIGHLIGHT = "highlight"
    RAW = "raw"
    COMMENT = "comment"


@dataclass(frozen=True)
class DirectiveBlock:
    """A directive as it appears in the source text.

    Attributes:
        name: Tag name (``highlight``, ``endraw``...).
        args: Whitespace separated arguments after the name.
        body: Text between the opening and closing tags.
        source: Exact source text of the whole block.
        line: 1-based line of the opening tag.
        closed: Whether a matching ``end`` tag was found.
    """

    name: str
    args: tuple[str, ...]
    body: str
    source: str
    line: int
    closed: bool


@dataclass(frozen=True)
class Directive:
    """A resolved directive of a known kind."""

    kind: DirectiveKind
    args: tuple[str, ...]
    body: str
    line: int


def _end_tag_re(name: str) -> re.Pattern:
    return re.compile(r"\{%-?\s*end" + re.escape(name) + r"\s*-?%\}")


def code_region(text: str, pos: int = 0) -> tuple[int, int] | None:
    """Find the first Markdown code region starting at or after ``pos``.

    Code regions are fenced blocks (an unclosed fence runs to the end of the
    text) and inline code spans, which never cross a blank line.

    Returns:
        Tuple of (start, end) offsets, or None.
    """
    regions = []
    fence = FENCE_RE.search(text, pos)
    if fence:
        marker = fence.group("fence")
        closing = re.compile(
            rf"^[ \t]{{0,3}}{re.escape(marker[0])}{{{len(marker)},}}[ \t]*$",
            re.MULTILINE,
        ).search(text, fence.end())
        regions.append((fence.start(), closing.end() if closing else len(text)))
    span = CODE_SPAN_RE.search(text, pos)
    if span:
        regions.append((span.start(), span.end()))
    # Ties go to the fence.
    return min(regions, key=lambda region: region[0]) if regions else None


def scan(text: str, skip_code: bool = False) -> list[str | DirectiveBlock]:
    """Split text into plain strings and directive blocks.

    A tag ``{% name %}`` followed later by ``{% endname %}`` forms a block
    covering both tags; a tag with no matching end tag forms a block of its
    own with ``closed`` set to False.

    Args:
        text: Body text.
        skip_code: Leave tags inside Markdown code regions as plain text.

    Returns:
        Segments in source order. Adjacent text is never split.
    """
    segments: list[str | DirectiveBlock] = []
    pos = 0
    text_start = 0
    while True:
        match = TAG_RE.search(text, pos)
        if not match:
            break
        if skip_code:
            region = code_region(text, pos)
            if region and region[0] < match.start():
                pos = region[1]
                continue
        if match.start() > text_start:
            segments.append(text[text_start : match.start()])
        name = match.group("name")
        args = tuple(match.group("args").split())
        line = text.count("\n", 0, match.start()) + 1
        end_match = None
        if not name.startswith("end"):
            end_match = _end_tag_re(name).search(text, match.end())
        if end_match:
            segments.append(
                DirectiveBlock(
                    name=name,
                    args=args,
                    body=text[match.end() : end_match.start()],
                    source=text[match.start() : end_match.end()],
                    line=line,
                    closed=True,
                )
            )
            pos = end_match.end()
        else:
            segments.append(
                DirectiveBlock(
                    name=name,
                    args=args,
                    body="",
                    source=match.group(0),
                    line=line,
                    closed=False,
                )
            )
            pos = match.end()
        text_start = pos
    if text_start < len(text):
        segments.append(text[text_start:])
    return segments


def resolve(block: DirectiveBlock, source: Path | str = "<string>") -> Directive:
    """Resolve a scanned block into a Directive.

    Args:
        block: The scanned block.
        source: Identifier used in error messages.

    Returns:
        Directive of a known kind.

    Raises:
        UnknownDirectiveError: For unknown names, stray end tags, and known
            directives missing their end tag.
    """
    try:
        kind = DirectiveKind(block.name)
    except ValueError:
        if block.name.startswith("end"):
            message = f"'{block.name}' has no matching opening tag"
        else:
            message = f"unknown directive '{block.name}'"
        raise UnknownDirectiveError(source, block.name, message, block.line) from None
    if not block.closed:
        raise UnknownDirectiveError(
            source,
            block.name,
            f"'{block.name}' is missing its 'end{block.name}' tag",
            block.line,
        )
    return Directive(kind=kind, args=block.args, body=block.body, line=block.line)


def unrendered(block: DirectiveBlock, block_level: bool) -> str:
    """HTML for a block that could not be resolved: its source, escaped."""
    escaped = escape_html(block.source)
    if block_level:
        return f'<pre class="unrendered">{escaped}</pre>\n'
    return escaped


def highlight_code(
    code: str,
    language: str | None,
    cssclass: str = "highlight",
    linenos: bool = False,
) -> str:
    """Highlight code with Pygments.

    Falls back to an escaped ``<pre><code>`` block when no language is given
    or Pygments has no lexer for it.

    Args:
        code: The code content.
        language: Lexer alias (e.g. 'ruby', 'python').
        cssclass: CSS class of the wrapping div.
        linenos: Whether to render a line number table.

    Returns:
        HTML string.
    """
    if language:
        try:
            lexer = get_lexer_by_name(language, stripall=True)
        except ClassNotFound:
            logger.debug("No Pygments lexer for %r; emitting plain code", language)
        else:
            formatter = HtmlFormatter(
                cssclass=cssclass, linenos="table" if linenos else False
            )
            return highlight(code, lexer, formatter)
    lang_class = f' class="language-{escape_html(language)}"' if language else ""
    return f"<pre><code{lang_class}>{escape_html(code)}</code></pre>\n"


class HighlightHandler:
    """Renders ``{% highlight <lang> [linenos] %}`` blocks."""

    kind = DirectiveKind.HIGHLIGHT

    def __init__(self, cssclass: str = "highlight"):
        self.cssclass = cssclass

    def render(self, directive: Directive) -> str:
        language = directive.args[0] if directive.args else None
        linenos = "linenos" in directive.args[1:]
        code = directive.body.strip("\n")
        return highlight_code(code, language, self.cssclass, linenos)


class RawHandler:
    """Emits the block body verbatim, bypassing markup conversion."""

    kind = DirectiveKind.RAW

    def render(self, directive: Directive) -> str:
        return directive.body


class CommentHandler:
    """Drops the block entirely."""

    kind = DirectiveKind.COMMENT

    def render(self, directive: Directive) -> str:
        return ""


class DirectiveRegistry:
    """Registry of directive handlers, one per DirectiveKind."""

    def __init__(self, highlight_class: str = "highlight"):
        """Initialize the registry with the default handlers."""
        self._handlers: dict[DirectiveKind, DirectiveHandler] = {}
        self.register(HighlightHandler(highlight_class))
        self.register(RawHandler())
        self.register(CommentHandler())

    def register(self, handler: DirectiveHandler) -> None:
        """Register (or replace) the handler for its kind.

        Args:
            handler: A DirectiveHandler implementation.
        """
        self._handlers[handler.kind] = handler

    def get_handler(self, kind: DirectiveKind) -> DirectiveHandler | None:
        return self._handlers.get(kind)

