"""Site building for Quire.

This module runs the whole pipeline: load configuration, load content,
render every item, build the SiteIndex and hand everything to the
SiteAssembler.

Key functions:
- build_site: Build a source tree into a destination tree.
- load_config: Load site configuration from quire.yaml (or _config.yml).
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .assembler import SiteAssembler
from .collections import SiteIndex
from .content import ContentItem, ContentLoader, FileContentLoader
from .errors import BuildReport, BuildWarning, ConfigError, WriteError
from .renderers import RenderedDocument, Renderer
from .templates import LayoutEngine
from .utils import is_relative_to

logger = logging.getLogger(__name__)

CONFIG_FILENAMES = ("quire.yaml", "_config.yml")

DEFAULT_CONFIG: dict[str, Any] = {
    "title": "Quire",
    "description": "",
    "url": "",
    "permalink": "/{year}/{month}/{day}/{slug}/",
    "layouts_dir": "_layouts",
    "highlight_class": "highlight",
    "workers": 1,
    "exclude": [],
}


@dataclass
class BuildResult:
    """Result of a site build.

    Attributes:
        index: Items that were built, newest first.
        output_dir: Directory where the site was written.
        written: Files written, in write order.
        warnings: Problems recovered during the build.
        config: Effective site configuration.
    """

    index: SiteIndex
    output_dir: Path
    written: list[Path] = field(default_factory=list)
    warnings: list[BuildWarning] = field(default_factory=list)
    config: dict[str, Any] = field(default_factory=dict)

    @property
    def pages(self) -> list[ContentItem]:
        return list(self.index)


def load_config(source_dir: Path) -> dict[str, Any]:
    """Load site configuration, with defaults applied.

    Reads the first of ``quire.yaml`` and ``_config.yml`` found in the source
    root. A document that is not a mapping is ignored.

    Args:
        source_dir: Root of the source tree.

    Returns:
        Dictionary containing configuration values.

    Raises:
        ConfigError: If the file is not valid YAML or ``workers`` is invalid.
    """
    config = {
        key: list(value) if isinstance(value, list) else value
        for key, value in DEFAULT_CONFIG.items()
    }
    for name in CONFIG_FILENAMES:
        config_path = source_dir / name
        if not config_path.exists():
            continue
        try:
            with open(config_path, encoding="utf-8") as f:
                loaded = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(config_path, f"invalid YAML: {exc}", exc) from exc
        if isinstance(loaded, dict):
            config.update(loaded)
        else:
            logger.warning("Ignoring %s: expected a mapping", config_path)
        break
    _validate_config(config, source_dir)
    return config


def _validate_config(config: dict[str, Any], source_dir: Path) -> None:
    workers = config.get("workers")
    if isinstance(workers, bool) or not isinstance(workers, int) or workers < 1:
        raise ConfigError(
            source_dir, f"'workers' must be a positive integer, got {workers!r}"
        )
    exclude = config.get("exclude") or []
    if isinstance(exclude, str):
        exclude = [exclude]
    config["exclude"] = [str(pattern) for pattern in exclude]


def build_site(
    source_dir: Path,
    destination: Path,
    config_overrides: dict[str, Any] | None = None,
) -> BuildResult:
    """Build the site in ``source_dir`` into ``destination``.

    Every build starts from an empty destination, so builds are stateless
    and repeatable.

    Args:
        source_dir: Root of the source tree.
        destination: Output directory (emptied first).
        config_overrides: Values that take precedence over the config file.

    Returns:
        BuildResult.

    Raises:
        WriteError: If the destination is unusable or a file cannot be
            written.
        ConfigError: If the configuration is invalid.
        FileNotFoundError: If the source directory does not exist.
    """
    source_dir = Path(source_dir).resolve()
    destination = Path(destination).resolve()
    if not source_dir.is_dir():
        raise FileNotFoundError(f"Expected source directory at {source_dir}")
    if is_relative_to(source_dir, destination):
        raise WriteError(
            destination, "destination must not be the source directory or contain it"
        )

    config = load_config(source_dir)
    if config_overrides:
        config.update(config_overrides)
        _validate_config(config, source_dir)

    report = BuildReport()
    layouts = LayoutEngine(source_dir / config["layouts_dir"], config)
    assembler = SiteAssembler(destination, layouts, config)
    assembler.prepare()

    loader = ContentLoader(
        source_dir,
        FileContentLoader(
            source_dir,
            exclude=config["exclude"],
            skip_dirs=[destination],
        ),
    )
    renderer = Renderer(highlight_class=config["highlight_class"])

    items: list[ContentItem] = []
    documents: dict[str, RenderedDocument] = {}
    rendered = _render_all(loader.load(report), renderer, config["workers"])
    for item, document in rendered:
        items.append(item)
        documents[item.identifier] = document
        report.extend(document.warnings)

    index = SiteIndex(items)
    written = assembler.assemble(index, documents, report)
    logger.info(
        "Built %d items into %s with %d warning(s)",
        len(index),
        destination,
        len(report),
    )
    return BuildResult(
        index=index,
        output_dir=destination,
        written=written,
        warnings=report.warnings,
        config=config,
    )


def _render_all(
    items: Iterable[ContentItem], renderer: Renderer, workers: int
) -> Iterator[tuple[ContentItem, RenderedDocument]]:
    """Render items sequentially or on a thread pool.

    Output order is unspecified with more than one worker; the SiteIndex sort
    establishes the only ordering that matters.
    """
    if workers <= 1:
        for item in items:
            yield item, renderer.render(item)
        return
    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = [(item, executor.submit(renderer.render, item)) for item in items]
        for item, future in futures:
            yield item, future.result()
