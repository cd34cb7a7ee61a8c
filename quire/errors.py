"""Error types for Quire.

Every failure the build knows how to describe derives from BuildError, which
carries the offending source path. Some errors are recovered where they
happen and turned into BuildWarning records; the rest abort the build.

Recovered:
- MetadataParseError: the item is skipped.
- UnknownDirectiveError: the directive block is passed through unrendered.
- LayoutError: the document is written with the fallback layout.

Fatal:
- WriteError: the destination tree cannot be prepared or written.
- ConfigError: the configuration file cannot be parsed.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path


class BuildError(Exception):
    """Error during site build with file context.

    Attributes:
        source_path: Path to the file that caused the error.
        message: Human-readable error message.
        original_error: The original exception that was caught.
    """

    kind = "build"

    def __init__(
        self,
        source_path: Path | str,
        message: str,
        original_error: Exception | None = None,
    ):
        self.source_path = source_path
        self.message = message
        self.original_error = original_error
        super().__init__(f"{source_path}: {message}")


class MetadataParseError(BuildError):
    """Front matter is missing, malformed, or lacks a required key."""

    kind = "metadata"


class UnknownDirectiveError(BuildError):
    """A directive could not be resolved.

    Attributes:
        directive: Name of the offending directive.
        line: 1-based line in the body where the directive starts.
    """

    kind = "directive"

    def __init__(
        self,
        source_path: Path | str,
        directive: str,
        message: str,
        line: int = 0,
    ):
        self.directive = directive
        self.line = line
        location = f"line {line}: " if line else ""
        super().__init__(source_path, f"{location}{message}")


class LayoutError(BuildError):
    """A layout template failed to render."""

    kind = "layout"


class WriteError(BuildError):
    """The destination tree is not writable."""

    kind = "output"


class ConfigError(BuildError):
    """The site configuration file is invalid."""

    kind = "config"


@dataclass(frozen=True)
class BuildWarning:
    """A recovered problem, reported in the build summary."""

    source: str
    kind: str
    message: str

    @classmethod
    def from_error(cls, exc: BuildError) -> BuildWarning:
        return cls(source=str(exc.source_path), kind=exc.kind, message=exc.message)

    def __str__(self) -> str:
        return f"{self.source}: {self.message}"


class BuildReport:
    """Collects the warnings recovered during one build."""

    def __init__(self) -> None:
        self._warnings: list[BuildWarning] = []

    def add(self, warning: BuildWarning) -> None:
        self._warnings.append(warning)

    def add_error(self, exc: BuildError) -> BuildWarning:
        """Record a recovered error and return the warning it became."""
        warning = BuildWarning.from_error(exc)
        self._warnings.append(warning)
        return warning

    def extend(self, warnings: Iterable[BuildWarning]) -> None:
        self._warnings.extend(warnings)

    @property
    def warnings(self) -> list[BuildWarning]:
        return list(self._warnings)

    def by_kind(self) -> dict[str, list[BuildWarning]]:
        """Group warnings by kind, preserving first-seen order."""
        grouped: dict[str, list[BuildWarning]] = {}
        for warning in self._warnings:
            grouped.setdefault(warning.kind, []).append(warning)
        return grouped

    def __len__(self) -> int:
        return len(self._warnings)
