"""Utility functions for Quire.

String, path and date helpers shared by the loader, renderer and assembler.

Key functions:
    slugify: Convert filenames to URL slugs.
    titleize: Convert filenames to human-readable titles.
    parse_date: Coerce a front matter date value into a datetime.
    date_sort_key: Comparable key for naive and aware datetimes alike.
    is_markdown: Check if a path is a Markdown file.
    is_html: Check if a path is an HTML file.
    ensure_clean_dir: Ensure a directory exists and is empty.
"""

from __future__ import annotations

import re
import shutil
from datetime import date, datetime, time, timezone
from pathlib import Path

MARKDOWN_SUFFIXES = (".md", ".markdown")

# Tried in order after datetime.fromisoformat
DATE_FORMATS = (
    "%Y-%m-%d %H:%M:%S %z",
    "%Y-%m-%d %H:%M %z",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d",
    "%B %d, %Y",
    "%b %d, %Y",
    "%d %B %Y",
)


def _strip_date_prefix(name: str) -> str:
    parts = name.split("-")
    if len(parts) >= 4 and all(p.isdigit() for p in parts[:3]):
        return "-".join(parts[3:])
    return name


def slugify(name: str) -> str:
    """Convert filename (without extension) to slug, dropping date prefix.

    Args:
        name: Filename stem.

    Returns:
        URL-friendly slug.
    """
    cleaned = _strip_date_prefix(name)
    cleaned = re.sub(r"[^a-zA-Z0-9]+", "-", cleaned)
    cleaned = cleaned.strip("-").lower()
    return cleaned or "index"


def titleize(filename: str) -> str:
    """Convert a filename to a human-readable title.

    Removes date prefixes (YYYY-MM-DD), replaces hyphens and underscores
    with spaces, and capitalizes each word.

    Args:
        filename: Filename with or without extension.

    Returns:
        Human-readable title string.

    Examples:
        >>> titleize("2014-07-28-hello-world.md")
        'Hello World'
    """
    base = _strip_date_prefix(Path(filename).stem)
    words = re.split(r"[\s\-_]+", base)
    return " ".join(word.capitalize() for word in words if word) or "Untitled"


def parse_date(value: object) -> datetime:
    """Coerce a front matter date value into a datetime.

    PyYAML already turns unquoted ISO dates into ``date``/``datetime``
    objects; strings cover quoted values and offsets written without a colon
    (``2014-07-28 10:00:00 +0200``), which YAML leaves alone.

    Args:
        value: Raw value from the metadata mapping.

    Returns:
        datetime (dates become midnight).

    Raises:
        ValueError: If the value cannot be interpreted as a date.
    """
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time())
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"not a date: {value!r}")
    text = value.strip()
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        pass
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    raise ValueError(f"unrecognized date format: {value!r}")


def date_sort_key(value: datetime) -> datetime:
    """Return a naive UTC datetime usable for ordering.

    Aware values are converted to UTC; naive values are taken as UTC.
    """
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def ensure_clean_dir(path: Path) -> None:
    """Ensure a directory exists and is empty.

    If the directory exists, removes all contents. Creates the
    directory if it doesn't exist.

    Args:
        path: Directory path to clean or create.

    Raises:
        OSError: If the directory cannot be emptied or created.
    """
    if path.exists():
        if not path.is_dir():
            raise NotADirectoryError(f"Not a directory: {path}")
        for child in path.iterdir():
            if child.is_dir() and not child.is_symlink():
                shutil.rmtree(child)
            else:
                child.unlink()
    path.mkdir(parents=True, exist_ok=True)


def is_relative_to(path: Path, other: Path) -> bool:
    """Check whether ``path`` equals or lies below ``other``."""
    try:
        path.relative_to(other)
    except ValueError:
        return False
    return True


def is_internal_path(parts: tuple[str, ...]) -> bool:
    """Check if a relative path passes through an internal directory.

    Internal directories start with ``_`` (layouts, includes, drafts) or
    ``.``; ``_posts`` is the one underscore directory that holds content.

    Args:
        parts: Directory components of a path relative to the source root.

    Returns:
        True if the path should not be treated as content.
    """
    for part in parts:
        if part.startswith("."):
            return True
        if part.startswith("_") and part != "_posts":
            return True
    return False


def is_markdown(path: Path) -> bool:
    """Check if a path is a Markdown file.

    Args:
        path: Path to check.

    Returns:
        True if the file has a .md or .markdown extension (case-insensitive).
    """
    return path.suffix.lower() in MARKDOWN_SUFFIXES


def is_html(path: Path) -> bool:
    """Check if a path is an HTML file."""
    return path.suffix.lower() == ".html"
