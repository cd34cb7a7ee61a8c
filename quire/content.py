"""Content loading for Quire.

This module discovers content files under a source root, splits off their
front matter and builds immutable ContentItem objects.

Key classes:
- ContentItem: Frozen dataclass for one loaded post.
- FileContentLoader: Discovers content files in a source tree.
- ContentLoader: Lazily turns discovered files into ContentItems, skipping
  (and reporting) files whose metadata cannot be parsed.
"""

from __future__ import annotations

import fnmatch
import logging
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from types import MappingProxyType
from typing import Any

from .errors import BuildReport, MetadataParseError
from .frontmatter import coerce_categories, extract_frontmatter, require_keys
from .utils import (
    is_html,
    is_internal_path,
    is_markdown,
    is_relative_to,
    parse_date,
    slugify,
    titleize,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContentItem:
    """One loaded unit of content plus its metadata.

    Attributes:
        identifier: Source path relative to the source root (POSIX form).
        path: Absolute path to the source file.
        metadata: Read-only front matter mapping.
        body: Raw body text following the front matter.
        date: Publication date parsed from the ``date`` key.
    """

    identifier: str
    path: Path
    metadata: Mapping[str, Any]
    body: str
    date: datetime

    def __post_init__(self) -> None:
        if not isinstance(self.metadata, MappingProxyType):
            object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    @property
    def title(self) -> str:
        title = self.metadata.get("title")
        if title is None or str(title).strip() == "":
            return titleize(self.path.name)
        return str(title)

    @property
    def layout(self) -> str:
        return str(self.metadata.get("layout") or "default")

    @property
    def categories(self) -> tuple[str, ...]:
        if "categories" in self.metadata:
            return coerce_categories(self.metadata["categories"])
        return coerce_categories(self.metadata.get("category"))

    @property
    def slug(self) -> str:
        if self.metadata.get("slug"):
            return slugify(str(self.metadata["slug"]))
        return slugify(self.path.stem)

    @property
    def suffix(self) -> str:
        return self.path.suffix.lower()


def build_item(path: Path, identifier: str, text: str) -> ContentItem:
    """Build a ContentItem from raw file text.

    Args:
        path: Path to the source file.
        identifier: Unique identifier for the item.
        text: Raw file content.

    Returns:
        ContentItem.

    Raises:
        MetadataParseError: If the front matter is malformed, lacks a
            required key, or has an unparseable date.
    """
    metadata, body = extract_frontmatter(text, identifier)
    require_keys(metadata, identifier)
    try:
        date = parse_date(metadata["date"])
    except ValueError as exc:
        raise MetadataParseError(identifier, f"invalid date: {exc}", exc) from exc
    return ContentItem(
        identifier=identifier,
        path=path,
        metadata=metadata,
        body=body,
        date=date,
    )


@dataclass
class FileContentLoader:
    """Discovers content files in a source tree.

    Attributes:
        source_dir: Root of the content tree.
        exclude: Glob patterns, matched against POSIX relative paths.
        skip_dirs: Absolute directories never descended into (for example a
            destination tree nested inside the source).
    """

    source_dir: Path
    exclude: list[str] = field(default_factory=list)
    skip_dirs: list[Path] = field(default_factory=list)

    def iter_files(self) -> list[Path]:
        """List content files in deterministic order.

        Returns:
            Sorted list of paths to content files.
        """
        files: list[Path] = []
        for path in sorted(self.source_dir.rglob("*")):
            if not path.is_file():
                continue
            if any(is_relative_to(path, skip) for skip in self.skip_dirs):
                continue
            rel = path.relative_to(self.source_dir)
            # Skip internal directories and hidden files
            if is_internal_path(rel.parts[:-1]) or rel.name.startswith("."):
                continue
            if self._is_excluded(rel):
                continue
            if is_markdown(path) or is_html(path):
                files.append(path)
        return files

    def _is_excluded(self, rel: Path) -> bool:
        posix = rel.as_posix()
        return any(
            fnmatch.fnmatch(posix, pattern) or fnmatch.fnmatch(rel.name, pattern)
            for pattern in self.exclude
        )


class ContentLoader:
    """Turns content files into ContentItems.

    Loading is lazy: ``load`` returns a one-pass generator, reading each
    file only when the next item is requested. A file whose metadata cannot
    be parsed is reported and skipped so that one bad post never blocks the
    rest of the site.

    Attributes:
        source_dir: Root of the content tree.
    """

    def __init__(
        self,
        source_dir: Path,
        file_loader: FileContentLoader | None = None,
    ):
        """Initialize the content loader.

        Args:
            source_dir: Path to the content tree.
            file_loader: Optional custom file discovery.
        """
        self.source_dir = source_dir
        self._file_loader = file_loader or FileContentLoader(source_dir)

    def load(self, report: BuildReport | None = None) -> Iterator[ContentItem]:
        """Yield ContentItems for every parseable content file.

        Args:
            report: Collector for recovered errors. When omitted, failures are
                only logged.

        Yields:
            ContentItem instances in discovery order.
        """
        return self._load(self._file_loader.iter_files(), report)

    def _load(
        self, paths: Iterable[Path], report: BuildReport | None
    ) -> Iterator[ContentItem]:
        for path in paths:
            identifier = path.relative_to(self.source_dir).as_posix()
            try:
                item = self._read(path, identifier)
            except MetadataParseError as exc:
                logger.warning("Skipping %s: %s", identifier, exc.message)
                if report is not None:
                    report.add_error(exc)
                continue
            logger.debug("Loaded %s", identifier)
            yield item

    def _read(self, path: Path, identifier: str) -> ContentItem:
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise MetadataParseError(
                identifier, f"cannot read file: {exc}", exc
            ) from exc
        return build_item(path, identifier, text)
