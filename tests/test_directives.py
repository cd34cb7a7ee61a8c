import pytest

from quire.directives import (
    CommentHandler,
    Directive,
    DirectiveBlock,
    DirectiveKind,
    DirectiveRegistry,
    HighlightHandler,
    RawHandler,
    code_region,
    highlight_code,
    resolve,
    scan,
    unrendered,
)
from quire.errors import UnknownDirectiveError
from quire.protocols import DirectiveHandler


def test_scan_splits_text_and_blocks():
    segments = scan("before {% highlight ruby linenos %}x = 1{% endhighlight %} after")
    assert segments[0] == "before "
    assert segments[2] == " after"
    block = segments[1]
    assert isinstance(block, DirectiveBlock)
    assert block.name == "highlight"
    assert block.args == ("ruby", "linenos")
    assert block.body == "x = 1"
    assert block.source == "{% highlight ruby linenos %}x = 1{% endhighlight %}"
    assert block.closed
    assert block.line == 1


def test_scan_without_directives_returns_text():
    assert scan("plain text") == ["plain text"]
    assert scan("") == []


def test_scan_tracks_lines_and_unclosed_tags():
    text = "one\ntwo\n{% raw %}{{ x }}{% endraw %}\n{% highlight python %}\nprint()"
    segments = scan(text)
    blocks = [s for s in segments if isinstance(s, DirectiveBlock)]
    assert [(b.name, b.line, b.closed) for b in blocks] == [
        ("raw", 3, True),
        ("highlight", 4, False),
    ]
    assert blocks[0].body == "{{ x }}"
    assert "".join(s if isinstance(s, str) else s.source for s in segments) == text


def test_resolve_known_directive():
    block = scan("{% comment %}note{% endcomment %}")[0]
    directive = resolve(block)
    assert directive == Directive(
        kind=DirectiveKind.COMMENT, args=(), body="note", line=1
    )


@pytest.mark.parametrize(
    "text, fragment",
    [
        ("{% youtube abc123 %}", "unknown directive 'youtube'"),
        ("{% endraw %}", "'endraw' has no matching opening tag"),
        ("{% highlight ruby %}\nputs 1", "is missing its 'endhighlight' tag"),
    ],
)
def test_resolve_rejects_unresolvable_blocks(text, fragment):
    block = scan("intro\n" + text)[1]
    with pytest.raises(UnknownDirectiveError) as excinfo:
        resolve(block, "post.md")
    assert fragment in excinfo.value.message
    assert excinfo.value.message.startswith("line 2: ")
    assert excinfo.value.directive == block.name
    assert excinfo.value.kind == "directive"


def test_unrendered_escapes_source():
    block = scan("{% youtube <id> %}")[0]
    assert unrendered(block, block_level=True) == (
        '<pre class="unrendered">{% youtube &lt;id&gt; %}</pre>\n'
    )
    assert unrendered(block, block_level=False) == "{% youtube &lt;id&gt; %}"


def test_highlight_code_uses_pygments():
    html = highlight_code("def f():\n    return 1\n", "python")
    assert '<div class="highlight">' in html
    assert '<span class="k">def</span>' in html

    numbered = highlight_code("x = 1\n", "python", cssclass="code", linenos=True)
    assert 'class="codetable"' in numbered


def test_highlight_code_falls_back_to_plain_block():
    html = highlight_code("a < b", "no-such-language")
    assert html == (
        '<pre><code class="language-no-such-language">a &lt; b</code></pre>\n'
    )
    assert highlight_code("a < b", None) == "<pre><code>a &lt; b</code></pre>\n"


def test_handlers_render_each_kind():
    directive = Directive(
        kind=DirectiveKind.HIGHLIGHT, args=("ruby",), body="\nputs 1\n", line=1
    )
    html = HighlightHandler("syntax").render(directive)
    assert '<div class="syntax">' in html

    raw = Directive(kind=DirectiveKind.RAW, args=(), body="{{ keep }}", line=1)
    assert RawHandler().render(raw) == "{{ keep }}"

    comment = Directive(kind=DirectiveKind.COMMENT, args=(), body="gone", line=1)
    assert CommentHandler().render(comment) == ""


def test_registry_defaults_and_replacement():
    registry = DirectiveRegistry()
    for kind in DirectiveKind:
        handler = registry.get_handler(kind)
        assert isinstance(handler, DirectiveHandler)
        assert handler.kind is kind

    class LoudRaw:
        kind = DirectiveKind.RAW

        def render(self, directive):
            return directive.body.upper()

    registry.register(LoudRaw())
    raw = Directive(kind=DirectiveKind.RAW, args=(), body="hi", line=1)
    assert registry.get_handler(DirectiveKind.RAW).render(raw) == "HI"


def test_scan_can_skip_markdown_code():
    text = (
        "~~~~\n{% if a %}\n~~~~\n"
        "Inline `{% if b %}` and ``{% if `c` %}``.\n"
        "{% raw %}kept{% endraw %}\n"
        "```\n{% if d %}\n"
    )
    blocks = [s for s in scan(text, skip_code=True) if isinstance(s, DirectiveBlock)]
    assert [b.name for b in blocks] == ["raw"]
    assert len([s for s in scan(text) if isinstance(s, DirectiveBlock)]) == 5


def test_code_region():
    assert code_region("plain text") is None
    assert code_region("a `b` c") == (2, 5)
    # A span never crosses a blank line.
    assert code_region("a `b\n\nc` d") is None
    text = "x\n```py\ncode\n```\nafter"
    assert code_region(text) == (2, 16)
    assert code_region("```\nnever closed") == (0, 16)
