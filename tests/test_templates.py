from datetime import datetime
from pathlib import Path

import pytest
from markupsafe import Markup

from quire.errors import LayoutError
from quire.templates import SLOT_PLACEHOLDER, LayoutEngine, format_date


def make_layouts(tmp_path: Path, **layouts: str) -> Path:
    layouts_dir = tmp_path / "_layouts"
    layouts_dir.mkdir(parents=True, exist_ok=True)
    for name, source in layouts.items():
        (layouts_dir / name.replace("__", ".")).write_text(source, encoding="utf-8")
    return layouts_dir


def page_slots(**extra):
    slots = {
        "title": "Hello",
        "content": Markup("<p>Hi</p>"),
        "page": {"title": "Hello", "date": datetime(2020, 1, 1), "url": "/hello/"},
        "site": {"title": "My Site"},
        "posts": [],
        "categories": {},
    }
    slots.update(extra)
    return slots


def test_builtin_default_layout(tmp_path):
    engine = LayoutEngine(tmp_path / "_layouts")
    result = engine.render("default", page_slots())
    assert result.layout == "default.html"
    assert not result.fell_back
    assert result.missing_slots == []
    assert "<title>Hello | My Site</title>" in result.html
    assert "<p>Hi</p>" in result.html
    assert "Jan 01, 2020" in result.html


def test_site_layout_shadows_builtin_and_escapes(tmp_path):
    layouts_dir = make_layouts(
        tmp_path, post__html="<title>{{ title }}</title>{{ content }}"
    )
    engine = LayoutEngine(layouts_dir)
    result = engine.render("post", page_slots(title="<b>A</b>"))
    assert result.html == "<title>&lt;b&gt;A&lt;/b&gt;</title><p>Hi</p>"
    assert result.layout == "post.html"
    assert engine.declared_slots("post.html") == frozenset({"title", "content"})


def test_layout_suffix_resolution(tmp_path):
    layouts_dir = make_layouts(tmp_path, post__html__jinja="jinja:{{ content }}")
    engine = LayoutEngine(layouts_dir)
    assert engine.render("post", page_slots()).html == "jinja:<p>Hi</p>"


def test_missing_layout_falls_back_to_default(tmp_path):
    layouts_dir = make_layouts(tmp_path, default__html="default:{{ content }}")
    engine = LayoutEngine(layouts_dir)
    result = engine.render("nonexistent", page_slots())
    assert result.fell_back
    assert result.layout == "default.html"
    assert result.html == "default:<p>Hi</p>"


def test_missing_slot_gets_placeholder(tmp_path):
    layouts_dir = make_layouts(tmp_path, post__html="{{ content }}{{ sidebar }}")
    result = LayoutEngine(layouts_dir).render("post", page_slots())
    assert result.missing_slots == ["sidebar"]
    assert SLOT_PLACEHOLDER.format("sidebar") in result.html


def test_declared_slots_follow_references(tmp_path):
    layouts_dir = make_layouts(
        tmp_path,
        base__html="{{ site.title }}{% block body %}{% endblock %}",
        child__html=(
            '{% extends "base.html" %}'
            '{% block body %}{% for post in posts %}{{ loop.index }}{% endfor %}'
            '{{ content }}{% include "footer.html" %}{% endblock %}'
        ),
        footer__html="{{ year }} {{ url_for('/') }}",
    )
    engine = LayoutEngine(layouts_dir)
    assert engine.declared_slots("child.html") == frozenset(
        {"site", "posts", "content", "year"}
    )

    result = engine.render("child", page_slots(posts=[1, 2], year=2014))
    assert result.html == "My Site12<p>Hi</p>2014 /"
    assert result.missing_slots == []


def test_layout_errors_raise_layout_error(tmp_path):
    layouts_dir = make_layouts(
        tmp_path,
        broken__html="{% if %}",
        strict__html="{{ page.missing.attr }}",
    )
    engine = LayoutEngine(layouts_dir)
    with pytest.raises(LayoutError, match="layout 'broken' failed"):
        engine.render("broken", page_slots(), "post.md")
    with pytest.raises(LayoutError) as excinfo:
        engine.render("strict", page_slots(), "post.md")
    assert excinfo.value.source_path == "post.md"
    assert excinfo.value.kind == "layout"


def test_render_fallback(tmp_path):
    html = LayoutEngine(tmp_path).render_fallback("T & U", "<p>x</p>")
    assert "<title>T &amp; U</title>" in html
    assert "<p>x</p>" in html


def test_url_for_and_pygments_css(tmp_path):
    engine = LayoutEngine(tmp_path, {"url": "https://example.com/blog/"})
    assert engine._url_for("about/") == "https://example.com/blog/about/"
    assert engine._url_for("http://cdn.com/lib.js") == "http://cdn.com/lib.js"
    assert LayoutEngine(tmp_path)._url_for("about/") == "/about/"

    layouts_dir = make_layouts(tmp_path, css__html="{{ pygments_css() }}")
    engine = LayoutEngine(layouts_dir, {"highlight_class": "code"})
    html = engine.render("css", {}).html
    assert ".code .k" in html
    assert "&gt;" not in html


def test_format_date():
    assert format_date(datetime(2014, 7, 28)) == "Jul 28, 2014"
    assert format_date(datetime(2014, 7, 28), "%Y/%m/%d") == "2014/07/28"
    assert format_date("someday") == "someday"


def test_any_render_time_exception_becomes_layout_error(tmp_path):
    layouts_dir = make_layouts(
        tmp_path, post__html="{{ content }}{{ (page.title | length) // 0 }}"
    )
    with pytest.raises(LayoutError, match="division") as excinfo:
        LayoutEngine(layouts_dir).render("post", page_slots(), "post.md")
    assert isinstance(excinfo.value.original_error, ZeroDivisionError)
    assert isinstance(excinfo.value.__cause__, ZeroDivisionError)


def test_bare_name_layouts_are_autoescaped(tmp_path):
    layouts_dir = make_layouts(tmp_path, post="<h1>{{ title }}</h1>")
    result = LayoutEngine(layouts_dir).render("post", page_slots(title="<b>A</b>"))
    assert result.layout == "post"
    assert result.html == "<h1>&lt;b&gt;A&lt;/b&gt;</h1>"
