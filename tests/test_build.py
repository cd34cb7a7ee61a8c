import logging
from pathlib import Path

import pytest

from quire.build import DEFAULT_CONFIG, build_site, load_config
from quire.errors import ConfigError, WriteError
from quire.renderers import RENDERED_MARKER


def write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def create_source(tmp_path: Path) -> Path:
    source = tmp_path / "src"
    write(source / "_config.yml", "title: My Blog\nurl: https://example.com\n")
    write(
        source / "_layouts" / "post.html",
        "<title>{{ page.title }}</title>\n<main>{{ content }}</main>",
    )
    write(
        source / "_posts" / "2014-07-28-parser.md",
        "---\nlayout: post\ntitle: Writing a parser\ndate: 2014-07-28\n"
        "categories: rust\n---\n"
        "Intro\n\n{% highlight rust %}\nfn main() {}\n{% endhighlight %}\n",
    )
    write(
        source / "_posts" / "2014-08-01-followup.md",
        "---\nlayout: post\ntitle: Follow up\ndate: 2014-08-01\n---\nMore.",
    )
    return source


def test_build_site_end_to_end(tmp_path):
    source = create_source(tmp_path)
    dest = tmp_path / "out"
    result = build_site(source, dest)

    assert result.output_dir == dest.resolve()
    assert [item.identifier for item in result.pages] == [
        "_posts/2014-08-01-followup.md",
        "_posts/2014-07-28-parser.md",
    ]
    assert result.warnings == []
    assert result.config["title"] == "My Blog"

    parser = (dest / "2014/07/28/parser/index.html").read_text(encoding="utf-8")
    assert parser.startswith("<title>Writing a parser</title>")
    assert RENDERED_MARKER in parser
    assert '<div class="highlight">' in parser
    assert (dest / "index.html").exists()
    assert (dest / "feed.xml").exists()
    assert (dest / "sitemap.xml").exists()


def test_minimal_post_is_wrapped_in_its_layout(tmp_path):
    source = tmp_path / "src"
    write(source / "_layouts" / "default.html", "<h1>{{ title }}</h1>{{ content }}")
    write(source / "a.md", "---\ntitle: A\ndate: 2020-01-01\n---\nHello")

    result = build_site(source, tmp_path / "out")
    html = (result.output_dir / "2020/01/01/a/index.html").read_text(encoding="utf-8")
    assert html.startswith("<h1>A</h1>")
    assert "<p>Hello</p>" in html


def test_items_without_date_are_skipped(tmp_path, caplog):
    source = create_source(tmp_path)
    write(source / "_posts" / "2014-09-01-undated.md", "---\ntitle: No date\n---\nX")

    with caplog.at_level(logging.WARNING, logger="quire"):
        result = build_site(source, tmp_path / "out")

    assert len(result.pages) == 2
    assert [w.kind for w in result.warnings] == ["metadata"]
    assert result.warnings[0].source == "_posts/2014-09-01-undated.md"
    assert "Skipping _posts/2014-09-01-undated.md" in caplog.text


def test_unknown_directive_is_kept_and_reported(tmp_path):
    source = create_source(tmp_path)
    write(
        source / "_posts" / "2014-09-01-video.md",
        "---\ndate: 2014-09-01\n---\nWatch:\n\n{% youtube abc %}\n",
    )
    result = build_site(source, tmp_path / "out")
    html = (result.output_dir / "2014/09/01/video/index.html").read_text(
        encoding="utf-8"
    )
    assert "{% youtube abc %}" in html
    assert [(w.kind, w.source) for w in result.warnings] == [
        ("directive", "_posts/2014-09-01-video.md")
    ]


def test_rebuild_is_stateless_with_destination_inside_source(tmp_path):
    source = create_source(tmp_path)
    dest = source / "site"
    first = build_site(source, dest)
    write(dest / "stale.html", "left over")
    second = build_site(source, dest)

    assert [p.relative_to(dest.resolve()) for p in first.written] == [
        p.relative_to(dest.resolve()) for p in second.written
    ]
    assert not (dest / "stale.html").exists()
    assert second.warnings == []


def test_thread_pool_build_matches_sequential(tmp_path):
    source = create_source(tmp_path)
    sequential = build_site(source, tmp_path / "one")
    threaded = build_site(source, tmp_path / "two", {"workers": 4})

    for path in sequential.written:
        relative = path.relative_to(sequential.output_dir)
        if relative.name == "feed.xml":
            continue
        assert (threaded.output_dir / relative).read_text(encoding="utf-8") == (
            path.read_text(encoding="utf-8")
        )


def test_destination_must_not_contain_source(tmp_path):
    source = create_source(tmp_path)
    with pytest.raises(WriteError):
        build_site(source, source)
    with pytest.raises(WriteError):
        build_site(source, tmp_path)


def test_missing_source_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        build_site(tmp_path / "nope", tmp_path / "out")


def test_load_config_defaults_and_precedence(tmp_path):
    assert load_config(tmp_path) == DEFAULT_CONFIG

    write(tmp_path / "_config.yml", "title: From Jekyll\n")
    assert load_config(tmp_path)["title"] == "From Jekyll"

    write(tmp_path / "quire.yaml", "title: From Quire\nexclude: drafts/*\n")
    config = load_config(tmp_path)
    assert config["title"] == "From Quire"
    assert config["exclude"] == ["drafts/*"]
    assert config["workers"] == 1


def test_load_config_ignores_non_mappings(tmp_path, caplog):
    write(tmp_path / "quire.yaml", "- just\n- a list\n")
    with caplog.at_level(logging.WARNING, logger="quire.build"):
        config = load_config(tmp_path)
    assert config == DEFAULT_CONFIG
    assert "expected a mapping" in caplog.text


@pytest.mark.parametrize(
    "text",
    ["title: [unclosed\n", "workers: 0\n", "workers: true\n", "workers: many\n"],
)
def test_load_config_errors(tmp_path, text):
    write(tmp_path / "quire.yaml", text)
    with pytest.raises(ConfigError):
        load_config(tmp_path)


def test_default_config_is_not_shared(tmp_path):
    config = load_config(tmp_path)
    config["exclude"].append("x")
    assert DEFAULT_CONFIG["exclude"] == []


def test_failing_layout_does_not_stop_the_build(tmp_path):
    source = create_source(tmp_path)
    write(
        source / "_layouts" / "post.html",
        "{{ content }}{{ (page.title | length) // 0 }}",
    )
    result = build_site(source, tmp_path / "out")

    for url in ("2014/07/28/parser", "2014/08/01/followup"):
        html = (result.output_dir / url / "index.html").read_text(encoding="utf-8")
        assert "<!DOCTYPE html>" in html
    assert [w.kind for w in result.warnings] == ["layout", "layout"]
    assert "division" in result.warnings[0].message
