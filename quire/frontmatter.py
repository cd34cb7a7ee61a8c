"""Front matter parsing for Quire.

A content file starts with a YAML block between two ``---`` lines::

    ---
    layout: post
    title: Writing a parser
    date: 2014-07-28
    categories: rust parsing
    ---
    Body text...

Unlike a lenient reader that treats a missing block as "no metadata", every
content file must carry one: a missing or unterminated block, invalid YAML,
a block that is not a mapping, or a missing required key all raise
MetadataParseError.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

import yaml

from .errors import MetadataParseError

DELIMITER = "---"

RECOGNIZED_KEYS = ("layout", "title", "date", "categories")
REQUIRED_KEYS = ("date",)

_OPENING_RE = re.compile(r"\A\ufeff?---[ \t]*\r?\n")
# A YAML document end marker ("...") also closes the block.
_CLOSING_RE = re.compile(r"^(?:---|\.\.\.)[ \t]*(?:\r?\n|\Z)", re.MULTILINE)


def extract_frontmatter(
    text: str, source: Path | str = "<string>"
) -> tuple[dict[str, Any], str]:
    """Split a content file into its metadata mapping and body.

    Args:
        text: Raw file content.
        source: Path used in error messages.

    Returns:
        Tuple of (front matter dict, remaining body).

    Raises:
        MetadataParseError: If the block is missing, unterminated, not valid
            YAML, or not a mapping.
    """
    opening = _OPENING_RE.match(text)
    if not opening:
        raise MetadataParseError(
            source, f"content must begin with a '{DELIMITER}' front matter line"
        )
    closing = _CLOSING_RE.search(text, opening.end())
    if not closing:
        raise MetadataParseError(
            source, f"front matter is missing its closing '{DELIMITER}' line"
        )
    block = text[opening.end() : closing.start()]
    try:
        data = yaml.safe_load(block)
    except yaml.YAMLError as exc:
        raise MetadataParseError(
            source, f"front matter is not valid YAML: {exc}", exc
        ) from exc
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise MetadataParseError(
            source,
            f"front matter must be a mapping, got {type(data).__name__}",
        )
    return {str(key): value for key, value in data.items()}, text[closing.end() :]


def dump_frontmatter(metadata: Mapping[str, Any]) -> str:
    """Serialize metadata back into a delimited front matter block.

    Keys keep their original order so that ``extract_frontmatter`` on the
    result reproduces the same key/value pairs.

    Args:
        metadata: Mapping of front matter keys to values.

    Returns:
        The block, including both delimiter lines and a trailing newline.
    """
    if metadata:
        payload = yaml.safe_dump(
            dict(metadata),
            sort_keys=False,
            default_flow_style=False,
            allow_unicode=True,
        )
    else:
        payload = ""
    return f"{DELIMITER}\n{payload}{DELIMITER}\n"


def require_keys(
    metadata: Mapping[str, Any],
    source: Path | str,
    required: Iterable[str] = REQUIRED_KEYS,
) -> None:
    """Raise MetadataParseError if any required key is absent or empty."""
    missing = [key for key in required if metadata.get(key) in (None, "")]
    if missing:
        raise MetadataParseError(
            source, f"missing required front matter key(s): {', '.join(missing)}"
        )


def coerce_categories(value: Any) -> tuple[str, ...]:
    """Normalize a categories value into a tuple of names.

    Accepts a list, or a whitespace separated string as Jekyll does.
    """
    if value is None:
        return ()
    if isinstance(value, str):
        return tuple(value.split())
    if isinstance(value, (list, tuple)):
        return tuple(str(item) for item in value if item is not None)
    return (str(value),)
