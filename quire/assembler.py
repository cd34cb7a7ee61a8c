"""Site assembly for Quire.

The assembler owns the destination tree. It takes the SiteIndex and the
RenderedDocuments of a build, derives a permalink for every item, wraps each
document in its layout and writes one artifact per document, the index page
and the feeds.

Only write failures are fatal (WriteError). Permalink problems, output
collisions and layout failures are recorded as warnings: the affected item is
skipped or written with a placeholder, and the rest of the site is still
written.

Key classes:
- PermalinkResolver: Turns an item into its URL.
- SiteAssembler: Writes the destination tree.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Any

from markupsafe import Markup

from .collections import SiteIndex
from .content import ContentItem
from .errors import BuildReport, BuildWarning, LayoutError, WriteError
from .feeds import FeedRegistry, create_default_feed_registry
from .renderers import RenderedDocument
from .templates import LayoutEngine
from .utils import ensure_clean_dir, is_relative_to, slugify

logger = logging.getLogger(__name__)

DEFAULT_PERMALINK = "/{year}/{month}/{day}/{slug}/"
INDEX_FILENAME = "index.html"
INDEX_LAYOUT = "index"


class PermalinkResolver:
    """Derives URLs from a permalink pattern.

    Placeholders: ``{year}``, ``{month}``, ``{day}``, ``{slug}``,
    ``{categories}`` (slugified, joined by ``/``). An item's own
    ``permalink`` front matter key takes precedence over the site pattern.
    """

    def __init__(self, pattern: str = DEFAULT_PERMALINK):
        self.pattern = pattern

    def resolve(self, item: ContentItem, pattern: str | None = None) -> str:
        """Return the URL for an item.

        Args:
            item: The content item.
            pattern: Pattern to use instead of the item and site patterns.

        Raises:
            ValueError: If the pattern has unknown placeholders or is not a
                valid format string.
        """
        pattern = pattern or str(item.metadata.get("permalink") or self.pattern)
        fields = {
            "year": f"{item.date.year:04d}",
            "month": f"{item.date.month:02d}",
            "day": f"{item.date.day:02d}",
            "slug": item.slug,
            "categories": "/".join(slugify(name) for name in item.categories),
        }
        try:
            url = pattern.format_map(fields)
        except (KeyError, IndexError, AttributeError, ValueError) as exc:
            raise ValueError(f"invalid permalink pattern {pattern!r}: {exc}") from exc
        return normalize_url(url)


def normalize_url(url: str) -> str:
    """Collapse repeated slashes and ensure a leading slash."""
    trailing = url.endswith("/")
    parts = [part for part in url.split("/") if part]
    path = "/" + "/".join(parts)
    if trailing and parts:
        path += "/"
    return path


def output_path(url: str) -> PurePosixPath:
    """Map a URL onto a path relative to the destination root.

    URLs ending in ``/`` become ``<url>/index.html``.
    """
    relative = url.strip("/")
    if url.endswith("/") or not relative:
        return PurePosixPath(relative) / INDEX_FILENAME
    return PurePosixPath(relative)


def _parent_dirs(path: PurePosixPath) -> list[PurePosixPath]:
    return [parent for parent in path.parents if parent != PurePosixPath(".")]


@dataclass
class _Entry:
    item: ContentItem
    document: RenderedDocument
    url: str
    path: PurePosixPath


def page_view(
    item: ContentItem, document: RenderedDocument, url: str
) -> dict[str, Any]:
    """Build the ``page`` mapping exposed to layouts.

    Front matter keys come first so that any extra keys are available, then
    the derived values override them.
    """
    view = dict(item.metadata)
    view.update(
        id=item.identifier,
        title=item.title,
        date=item.date,
        layout=item.layout,
        slug=item.slug,
        categories=list(item.categories),
        url=url,
        excerpt=Markup(document.excerpt),
        toc=list(document.toc),
    )
    return view


class SiteAssembler:
    """Writes the rendered site into the destination directory.

    Attributes:
        destination: Output root, owned exclusively by the assembler.
        layouts: Layout engine.
        config: Site configuration (exposed to layouts as ``site``).
        feeds: Feed generators.
    """

    def __init__(
        self,
        destination: Path,
        layouts: LayoutEngine,
        config: Mapping[str, Any] | None = None,
        feeds: FeedRegistry | None = None,
    ):
        self.destination = destination
        self.layouts = layouts
        self.config = dict(config or {})
        self.feeds = feeds or create_default_feed_registry()
        self.permalinks = PermalinkResolver(
            str(self.config.get("permalink") or DEFAULT_PERMALINK)
        )

    def prepare(self) -> None:
        """Empty (or create) the destination directory.

        Raises:
            WriteError: If the destination cannot be prepared.
        """
        try:
            ensure_clean_dir(self.destination)
        except OSError as exc:
            raise WriteError(
                self.destination, f"cannot prepare destination: {exc}", exc
            ) from exc

    def assemble(
        self,
        index: SiteIndex,
        documents: Mapping[str, RenderedDocument],
        report: BuildReport | None = None,
    ) -> list[Path]:
        """Write every document, the index page and the feeds.

        Args:
            index: Items in publication order.
            documents: Rendered documents by item identifier.
            report: Collector for recovered problems.

        Returns:
            Paths of the files written.

        Raises:
            WriteError: If any file cannot be written.
        """
        if report is None:
            report = BuildReport()
        entries = self._plan(index, documents, report)
        posts = [page_view(e.item, e.document, e.url) for e in entries]
        categories: dict[str, list[dict[str, Any]]] = {}
        for view in posts:
            for name in view["categories"]:
                categories.setdefault(name, []).append(view)

        shared = {
            "site": self.config,
            "posts": posts,
            "categories": categories,
        }
        written: list[Path] = []
        for entry, view in zip(entries, posts):
            html = self._render_entry(entry, view, shared, report)
            written.append(self._write(entry.path, html))

        written.append(self._write_index(shared, report))
        for filename, content in self.feeds.generate_all(posts, self.config):
            written.append(self._write(PurePosixPath(filename), content))
        logger.info("Wrote %d files to %s", len(written), self.destination)
        return written

    def _plan(
        self,
        index: SiteIndex,
        documents: Mapping[str, RenderedDocument],
        report: BuildReport,
    ) -> list[_Entry]:
        """Pair items with documents and claim an output path for each."""
        claimed: dict[PurePosixPath, str] = {
            PurePosixPath(INDEX_FILENAME): "the site index",
        }
        for filename in self.feeds.filenames:
            claimed[PurePosixPath(filename)] = "a feed"
        # Directories implied by claimed files, mapped to the claiming item.
        claimed_dirs: dict[PurePosixPath, str] = {}

        entries: list[_Entry] = []
        for item in index:
            document = documents.get(item.identifier)
            if document is None:
                self._warn(
                    report, item.identifier, "output", "no rendered document; skipped"
                )
                continue
            url = self._resolve_url(item, report)
            path = output_path(url)
            if ".." in path.parts:
                self._warn(
                    report,
                    item.identifier,
                    "output",
                    f"permalink {url!r} leaves the destination; skipped",
                )
                continue
            if path in claimed:
                self._warn(
                    report,
                    item.identifier,
                    "output",
                    f"output {path} already written by {claimed[path]}; skipped",
                )
                continue
            conflict = self._directory_conflict(path, claimed, claimed_dirs)
            if conflict:
                self._warn(report, item.identifier, "output", f"{conflict}; skipped")
                continue
            claimed[path] = item.identifier
            for parent in _parent_dirs(path):
                claimed_dirs.setdefault(parent, item.identifier)
            entries.append(_Entry(item=item, document=document, url=url, path=path))
        return entries

    @staticmethod
    def _directory_conflict(
        path: PurePosixPath,
        claimed: Mapping[PurePosixPath, str],
        claimed_dirs: Mapping[PurePosixPath, str],
    ) -> str | None:
        """Describe a clash between a file and a directory of the same name."""
        if path in claimed_dirs:
            owner = claimed_dirs[path]
            return f"output {path} is a directory holding files of {owner}"
        for parent in _parent_dirs(path):
            if parent in claimed:
                return (
                    f"output {path} needs {parent} as a directory"
                    f" but it is written by {claimed[parent]}"
                )
        return None

    def _resolve_url(self, item: ContentItem, report: BuildReport) -> str:
        try:
            return self.permalinks.resolve(item)
        except ValueError as exc:
            self._warn(
                report, item.identifier, "output", f"{exc}; using default permalink"
            )
            return self.permalinks.resolve(item, DEFAULT_PERMALINK)

    def _render_entry(
        self,
        entry: _Entry,
        view: dict[str, Any],
        shared: Mapping[str, Any],
        report: BuildReport,
    ) -> str:
        slots = dict(shared)
        slots.update(
            content=Markup(entry.document.body),
            page=view,
            title=entry.item.title,
        )
        return self._render_layout(
            entry.item.layout, slots, entry.item.identifier, report
        )

    def _write_index(self, shared: Mapping[str, Any], report: BuildReport) -> Path:
        title = str(self.config.get("title") or "")
        slots = dict(shared)
        slots.update(
            content=Markup(""),
            page={"title": title, "url": "/", "id": INDEX_FILENAME},
            title=title,
        )
        html = self._render_layout(INDEX_LAYOUT, slots, INDEX_FILENAME, report)
        return self._write(PurePosixPath(INDEX_FILENAME), html)

    def _render_layout(
        self,
        layout: str,
        slots: Mapping[str, Any],
        source: str,
        report: BuildReport,
    ) -> str:
        try:
            result = self.layouts.render(layout, slots, source)
        except LayoutError as exc:
            logger.warning("%s; writing placeholder page", exc)
            report.add_error(exc)
            return self.layouts.render_fallback(
                str(slots.get("title", "")), slots["content"]
            )
        if result.fell_back:
            self._warn(
                report,
                source,
                "layout",
                f"layout '{layout}' not found; used {result.layout}",
            )
        for slot in result.missing_slots:
            self._warn(
                report,
                source,
                "layout",
                f"layout {result.layout} declares slot '{slot}' with no value",
            )
        return result.html

    def _write(self, relative: PurePosixPath, content: str) -> Path:
        target = self.destination.joinpath(*relative.parts)
        if not is_relative_to(target.resolve(), self.destination.resolve()):
            raise WriteError(target, "refusing to write outside the destination")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with open(target, "w", encoding="utf-8") as f:
                f.write(content)
        except OSError as exc:
            raise WriteError(target, f"cannot write file: {exc}", exc) from exc
        logger.debug("Wrote %s", target)
        return target

    @staticmethod
    def _warn(report: BuildReport, source: str, kind: str, message: str) -> None:
        logger.warning("%s: %s", source, message)
        report.add(BuildWarning(source=source, kind=kind, message=message))

