from datetime import datetime

from markupsafe import Markup

from quire.feeds import (
    FeedRegistry,
    RSSGenerator,
    SitemapGenerator,
    create_default_feed_registry,
)

SITE = {
    "title": "Notes & Thoughts",
    "description": "A blog",
    "url": "https://example.com/",
}

POSTS = [
    {
        "title": "Second <post>",
        "url": "/2014/08/01/second/",
        "date": datetime(2014, 8, 1),
        "excerpt": Markup("<p>Second <em>body</em></p>"),
        "categories": ["rust"],
    },
    {
        "title": "First",
        "url": "/2014/07/28/first/",
        "date": datetime(2014, 7, 28),
        "excerpt": Markup(""),
        "categories": [],
    },
]


def test_feeds_need_a_site_url():
    registry = create_default_feed_registry()
    assert registry.filenames == ["sitemap.xml", "feed.xml"]
    assert registry.generate_all(POSTS, {"title": "x"}) == []


def test_sitemap_lists_root_and_posts():
    sitemap = SitemapGenerator().generate(POSTS, SITE)
    assert "<loc>https://example.com/</loc>" in sitemap
    assert (
        "<url><loc>https://example.com/2014/08/01/second/</loc>"
        "<lastmod>2014-08-01</lastmod></url>"
    ) in sitemap
    assert sitemap.index("second") < sitemap.index("first")


def test_rss_items_are_escaped_and_dated():
    rss = RSSGenerator().generate(POSTS, SITE)
    assert "<title>Notes &amp; Thoughts</title>" in rss
    assert "<title>Second &lt;post&gt;</title>" in rss
    assert "<description>Second body</description>" in rss
    assert "<category>rust</category>" in rss
    assert "<pubDate>Mon, 28 Jul 2014 00:00:00 +0000</pubDate>" in rss
    assert "<guid>https://example.com/2014/07/28/first/</guid>" in rss


def test_rss_limit():
    rss = RSSGenerator(limit=1).generate(POSTS, SITE)
    assert rss.count("<item>") == 1
    assert "first" not in rss


def test_registry_generate_all():
    registry = FeedRegistry()
    registry.register(SitemapGenerator())
    generated = registry.generate_all(POSTS, SITE)
    assert [name for name, _ in generated] == ["sitemap.xml"]
