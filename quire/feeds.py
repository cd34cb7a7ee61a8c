"""Feed generation for Quire.

Feeds (RSS, sitemap) are generated from the same page views the layouts
see, in index order. Each generator returns its document as a string, or
None when it cannot be produced (no site ``url`` configured); writing is left
to the assembler so that write failures are handled in one place.

Classes:
    FeedGenerator: Abstract base class for feed generators.
    SitemapGenerator: Generates sitemap.xml.
    RSSGenerator: Generates an RSS 2.0 feed.
    FeedRegistry: Registry for managing feed generators.

Functions:
    create_default_feed_registry: Create a registry with default generators.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from datetime import datetime, timezone
from typing import Any

from .html_utils import escape_html, join_root_url, strip_tags
from .utils import date_sort_key

RFC822_FORMAT = "%a, %d %b %Y %H:%M:%S +0000"


def _rfc822(value: datetime) -> str:
    return date_sort_key(value).strftime(RFC822_FORMAT)


class FeedGenerator(ABC):
    """Abstract base class for feed generators."""

    @property
    @abstractmethod
    def filename(self) -> str:
        """Return the output filename for this feed."""
        ...

    @abstractmethod
    def generate(
        self,
        posts: Sequence[Mapping[str, Any]],
        site: Mapping[str, Any],
    ) -> str | None:
        """Generate feed content.

        Args:
            posts: Page views, newest first.
            site: Site configuration.

        Returns:
            Feed content as a string, or None if the feed cannot be generated.
        """
        ...


class SitemapGenerator(FeedGenerator):
    """Generates sitemap.xml following the sitemaps.org protocol."""

    @property
    def filename(self) -> str:
        return "sitemap.xml"

    def generate(
        self,
        posts: Sequence[Mapping[str, Any]],
        site: Mapping[str, Any],
    ) -> str | None:
        base_url = str(site.get("url") or "").rstrip("/")
        if not base_url:
            return None

        lines = [
            '<?xml version="1.0" encoding="UTF-8"?>',
            '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">',
            f"  <url><loc>{escape_html(join_root_url(base_url, '/'))}</loc></url>",
        ]
        for post in posts:
            loc = escape_html(join_root_url(base_url, post["url"]))
            lastmod = post["date"].strftime("%Y-%m-%d")
            lines.append(f"  <url><loc>{loc}</loc><lastmod>{lastmod}</lastmod></url>")
        lines.append("</urlset>")
        return "\n".join(lines) + "\n"


class RSSGenerator(FeedGenerator):
    """Generates an RSS 2.0 feed, newest first.

    Uses 'title' and 'description' from the site configuration.
    """

    def __init__(self, limit: int | None = None):
        self.limit = limit

    @property
    def filename(self) -> str:
        return "feed.xml"

    def generate(
        self,
        posts: Sequence[Mapping[str, Any]],
        site: Mapping[str, Any],
    ) -> str | None:
        base_url = str(site.get("url") or "").rstrip("/")
        if not base_url:
            return None
        title = escape_html(str(site.get("title") or "Quire"))
        description = escape_html(str(site.get("description") or ""))
        selected = list(posts)[: self.limit] if self.limit else list(posts)

        items = []
        for post in selected:
            link = escape_html(join_root_url(base_url, post["url"]))
            summary = escape_html(strip_tags(str(post.get("excerpt") or "")))
            categories = "".join(
                f"<category>{escape_html(name)}</category>"
                for name in post.get("categories", [])
            )
            items.append(
                f"<item><title>{escape_html(post['title'])}</title>"
                f"<link>{link}</link><guid>{link}</guid>"
                f"<description>{summary}</description>{categories}"
                f"<pubDate>{_rfc822(post['date'])}</pubDate></item>"
            )

        build_date = datetime.now(timezone.utc).strftime(RFC822_FORMAT)
        rss = [
            '<?xml version="1.0" encoding="UTF-8"?>',
            '<rss version="2.0"><channel>',
            f"<title>{title}</title>",
            f"<link>{escape_html(base_url)}/</link>",
            f"<description>{description}</description>",
            f"<lastBuildDate>{build_date}</lastBuildDate>",
        ]
        rss.extend(items)
        rss.append("</channel></rss>")
        return "\n".join(rss) + "\n"


class FeedRegistry:
    """Registry for managing feed generators."""

    def __init__(self) -> None:
        self._generators: list[FeedGenerator] = []

    def register(self, generator: FeedGenerator) -> None:
        self._generators.append(generator)

    @property
    def filenames(self) -> list[str]:
        return [generator.filename for generator in self._generators]

    def generate_all(
        self,
        posts: Sequence[Mapping[str, Any]],
        site: Mapping[str, Any],
    ) -> list[tuple[str, str]]:
        """Generate all registered feeds.

        Returns:
            List of (filename, content) for feeds that were produced.
        """
        generated = []
        for generator in self._generators:
            content = generator.generate(posts, site)
            if content is not None:
                generated.append((generator.filename, content))
        return generated


def create_default_feed_registry() -> FeedRegistry:
    """Create a registry with sitemap and RSS generators."""
    registry = FeedRegistry()
    registry.register(SitemapGenerator())
    registry.register(RSSGenerator())
    return registry
