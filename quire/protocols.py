"""Protocol definitions for Quire.

These protocols describe the pluggable seams of the pipeline: markup
converters used by the Renderer and handlers for directive kinds. The
registries accept anything that satisfies them.
"""

from __future__ import annotations

from abc import abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .directives import Directive, DirectiveKind
    from .renderers import Heading


@runtime_checkable
class MarkupRenderer(Protocol):
    """Protocol for converting body markup to HTML.

    Implementations handle one markup language each.
    """

    @abstractmethod
    def can_render(self, path: Path) -> bool:
        """Check if this renderer can handle the given file.

        Args:
            path: Path to the source file.

        Returns:
            True if this renderer can process the file.
        """
        ...

    @abstractmethod
    def render(self, content: str) -> tuple[str, list[Heading]]:
        """Render markup to HTML.

        Args:
            content: Body text, with directives already replaced by
                placeholders.

        Returns:
            Tuple of (rendered HTML, list of headings).
        """
        ...

    @property
    @abstractmethod
    def source_type(self) -> str:
        """Return the source type identifier (e.g., 'markdown', 'html')."""
        ...


@runtime_checkable
class DirectiveHandler(Protocol):
    """Protocol for turning a resolved directive into HTML."""

    kind: DirectiveKind

    @abstractmethod
    def render(self, directive: Directive) -> str:
        """Render the directive.

        Args:
            directive: A resolved directive of this handler's kind.

        Returns:
            Final HTML for the directive.
        """
        ...
