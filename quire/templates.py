"""Layout rendering for Quire.

Layouts are Jinja2 templates in the site's ``_layouts`` directory. A layout
declares the slots it needs simply by using them (``{{ content }}``,
``{{ page.title }}``, ``{% for post in posts %}``); the engine discovers
those names, following ``extends``/``include`` references, and fills each
one from the values the assembler provides. A slot nobody provides is filled
with a visible placeholder instead of failing the page.

Key classes:
- LayoutEngine: Resolves, inspects and renders layouts.
- LayoutResult: Rendered HTML plus what had to be papered over.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from jinja2 import (
    ChoiceLoader,
    DictLoader,
    Environment,
    FileSystemLoader,
    Template,
    TemplateNotFound,
    meta,
    select_autoescape,
)
from markupsafe import Markup

from .errors import LayoutError
from .html_utils import join_root_url

FALLBACK_LAYOUT = "quire/fallback.html"

BUILTIN_LAYOUTS = {
    "default.html": """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>{{ title }} | {{ site.title }}</title>
</head>
<body>
  <article>
    <h1>{{ page.title }}</h1>
    <time datetime="{{ page.date.isoformat() }}">{{ page.date | date }}</time>
    {{ content }}
  </article>
</body>
</html>
""",
    "index.html": """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>{{ site.title }}</title>
</head>
<body>
  <h1>{{ site.title }}</h1>
  <ul class="posts">
  {% for post in posts %}
    <li>
      <time datetime="{{ post.date.isoformat() }}">{{ post.date | date }}</time>
      <a href="{{ url_for(post.url) }}">{{ post.title }}</a>
    </li>
  {% endfor %}
  </ul>
</body>
</html>
""",
    FALLBACK_LAYOUT: """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>{{ title }}</title>
</head>
<body>
{{ content }}
</body>
</html>
""",
}

# Names Jinja binds itself inside templates.
_IMPLICIT_NAMES = frozenset({"loop", "self", "super", "caller", "varargs", "kwargs"})

SLOT_PLACEHOLDER = "<!-- quire: no value for slot '{}' -->"


def format_date(value: Any, fmt: str = "%b %d, %Y") -> str:
    """Jinja filter: format a date, passing other values through."""
    if hasattr(value, "strftime"):
        return value.strftime(fmt)
    return str(value)


@dataclass
class LayoutResult:
    """Outcome of rendering one layout.

    Attributes:
        html: The rendered page.
        layout: Template name actually used.
        fell_back: True if the requested layout was missing.
        missing_slots: Slots filled with a placeholder.
    """

    html: str
    layout: str
    fell_back: bool = False
    missing_slots: list[str] = field(default_factory=list)


class LayoutEngine:
    """Template engine for layouts, built on Jinja2.

    Attributes:
        layouts_dir: Directory searched for layouts (site layouts shadow the
            built-in ones).
        config: Site configuration, used for ``url_for``.
        env: Jinja2 environment.
    """

    def __init__(self, layouts_dir: Path, config: Mapping[str, Any] | None = None):
        """Initialize the layout engine.

        Args:
            layouts_dir: Directory with layout templates (may not exist).
            config: Site configuration.
        """
        self.layouts_dir = layouts_dir
        self.config = dict(config or {})
        self.env = Environment(
            loader=ChoiceLoader(
                [
                    FileSystemLoader(str(layouts_dir)),
                    DictLoader(BUILTIN_LAYOUTS),
                ]
            ),
            autoescape=select_autoescape(["html", "xml", "jinja"], default=True),
            enable_async=False,
        )
        self._slot_cache: dict[str, frozenset[str]] = {}
        self._install_globals()

    def _install_globals(self) -> None:
        """Install global functions and filters in the Jinja environment."""
        self.env.globals["url_for"] = self._url_for
        self.env.globals["pygments_css"] = self._pygments_css
        self.env.filters["date"] = format_date

    def _pygments_css(self) -> Markup:
        """Return Pygments CSS for the configured highlight class."""
        from pygments.formatters import HtmlFormatter

        cssclass = self.config.get("highlight_class", "highlight")
        return Markup(HtmlFormatter().get_style_defs(f".{cssclass}"))

    def _url_for(self, path: str) -> str:
        """Generate a URL for a path, applying the site url if configured."""
        if path.startswith(("http://", "https://", "//")):
            return path
        normalized = path if path.startswith("/") else f"/{path}"
        base = str(self.config.get("url") or "")
        return join_root_url(base, normalized) if base else normalized

    def resolve_layout(self, layout: str) -> tuple[Template, bool]:
        """Find the template for a layout name.

        Searches ``{layout}.html.jinja``, ``{layout}.jinja``,
        ``{layout}.html`` and ``{layout}``, then the same names for
        ``default``.

        Args:
            layout: Layout name from front matter.

        Returns:
            Tuple of (template, whether the default had to be used instead).

        Raises:
            TemplateError: If a candidate exists but cannot be compiled.
        """
        for fell_back, name in self._candidates(layout):
            try:
                return self.env.get_template(name), fell_back
            except TemplateNotFound:
                continue
        # Unreachable while the built-in default layout is registered.
        raise TemplateNotFound(layout)

    @staticmethod
    def _candidates(layout: str) -> list[tuple[bool, str]]:
        suffixes = (".html.jinja", ".jinja", ".html", "")
        candidates = [(False, f"{layout}{suffix}") for suffix in suffixes]
        if layout != "default":
            candidates.extend((True, f"default{suffix}") for suffix in suffixes)
        return candidates

    def declared_slots(self, name: str) -> frozenset[str]:
        """Return the variable names a template (and its parents) use.

        Globals such as ``url_for`` are excluded.

        Args:
            name: Template name as known to the loader.

        Raises:
            TemplateError: If a template cannot be parsed.
        """
        if name in self._slot_cache:
            return self._slot_cache[name]
        slots: set[str] = set()
        seen: set[str] = set()
        pending = [name]
        while pending:
            current = pending.pop()
            if current in seen:
                continue
            seen.add(current)
            try:
                source, _, _ = self.env.loader.get_source(self.env, current)
            except TemplateNotFound:
                continue
            ast = self.env.parse(source, current)
            slots |= meta.find_undeclared_variables(ast)
            pending.extend(
                ref for ref in meta.find_referenced_templates(ast) if ref is not None
            )
        declared = frozenset(slots - set(self.env.globals) - _IMPLICIT_NAMES)
        self._slot_cache[name] = declared
        return declared

    def render(
        self,
        layout: str,
        slots: Mapping[str, Any],
        source: Path | str = "<string>",
    ) -> LayoutResult:
        """Render a layout, filling its declared slots.

        Args:
            layout: Layout name.
            slots: Values the caller can provide, by slot name.
            source: Identifier used in error messages.

        Returns:
            LayoutResult.

        Raises:
            LayoutError: If the template fails to compile or render.
        """
        try:
            template, fell_back = self.resolve_layout(layout)
            context, missing = self._fill(template.name, slots)
            html = template.render(context)
        except Exception as exc:
            raise LayoutError(
                source, f"layout '{layout}' failed: {exc}", exc
            ) from exc
        return LayoutResult(
            html=html,
            layout=template.name,
            fell_back=fell_back,
            missing_slots=missing,
        )

    def _fill(
        self, name: str, slots: Mapping[str, Any]
    ) -> tuple[dict[str, Any], list[str]]:
        context: dict[str, Any] = {}
        missing: list[str] = []
        for slot in sorted(self.declared_slots(name)):
            if slot in slots:
                context[slot] = slots[slot]
            else:
                context[slot] = Markup(SLOT_PLACEHOLDER.format(slot))
                missing.append(slot)
        return context, missing

    def render_fallback(self, title: str, content: str) -> str:
        """Render the bare placeholder layout used after a layout error."""
        template = self.env.get_template(FALLBACK_LAYOUT)
        return template.render(title=title, content=Markup(content))
