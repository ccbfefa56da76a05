"""Tests for image candidate precedence, validation and size upgrades."""

import pytest

from wedding_news.errors import ImageValidationError
from wedding_news.schemas.search import ImageField
from wedding_news.services.image_resolver import (
    ImageCandidate,
    ImageResolver,
    ImageTier,
    candidates_from_hints,
    find_open_graph_image,
    scan_embedded_images,
    upgrade_host_directive,
    upgrade_size_params,
    validate_image_url,
)

THUMBNAIL = "https://a.com/t.jpg"

ARTICLE_HTML = """
<div>
  <img src="/static/site-logo.png" width="800" height="600">
  <img class="author-avatar" src="https://a.com/jane.jpg" width="400" height="400">
  <img src="https://a.com/inline-small.jpg" width="120" height="90">
  <img src="https://a.com/featured.jpg" width="1200" height="800">
</div>
"""

PAGE_HTML = """
<html><head>
  <meta property="og:image" content="https://a.com/og.jpg">
  <meta name="twitter:image" content="https://a.com/twitter.jpg">
</head><body><p>No pictures in the body.</p></body></html>
"""


@pytest.fixture
def resolver():
    return ImageResolver()


# --- validation gate ---


@pytest.mark.parametrize(
    "url",
    [
        "data:image/jpeg;base64,/9j/4AAQSkZJRg==",
        "https://a.com/img?src=data:image/png;base64,AAAA",
        "/relative/path.jpg",
        "//cdn.a.com/img.jpg",
        "ftp://a.com/img.jpg",
        "https://a.com/undefined",
        "https://a.com/images/placeholder.png",
        "https://a.com/spacer.gif",
        "https://a.com/track/1x1.png",
        "",
        None,
    ],
)
def test_validate_rejects(url):
    with pytest.raises(ImageValidationError):
        validate_image_url(url)


def test_validate_rejects_overlong_url():
    url = "https://cdn.a.com/img.jpg?sig=" + "x" * 2100
    with pytest.raises(ImageValidationError, match="longer than"):
        validate_image_url(url)


def test_validate_accepts_and_strips():
    assert validate_image_url("  https://a.com/photo.jpg ") == "https://a.com/photo.jpg"


def test_validate_allows_dimensions_containing_1x1_digits():
    url = "https://a.com/photo-2001x1500.jpg"
    assert validate_image_url(url) == url


# --- precedence ---


def test_original_beats_everything(resolver):
    candidates = candidates_from_hints(
        {
            ImageField.THUMBNAIL: THUMBNAIL,
            ImageField.LARGE: "https://a.com/large.jpg",
            ImageField.ORIGINAL: "https://a.com/original.jpg",
        }
    )
    assert resolver.resolve(candidates, content=ARTICLE_HTML) == "https://a.com/original.jpg"


def test_source_or_large_beats_thumbnail(resolver):
    candidates = candidates_from_hints(
        {ImageField.THUMBNAIL: THUMBNAIL, ImageField.LARGE: "https://a.com/large.jpg"}
    )
    result = resolver.resolve(candidates)
    assert result == "https://a.com/large.jpg"
    assert result != THUMBNAIL


def test_invalid_original_falls_through(resolver):
    candidates = candidates_from_hints(
        {
            ImageField.ORIGINAL: "data:image/png;base64,AAAA",
            ImageField.SOURCE: "https://a.com/source.jpg",
            ImageField.THUMBNAIL: THUMBNAIL,
        }
    )
    assert resolver.resolve(candidates) == "https://a.com/source.jpg"


def test_source_hint_gets_size_upgrade(resolver):
    candidates = candidates_from_hints(
        {ImageField.SOURCE: "https://a.com/wp-content/uploads/bride-150x150.jpg"}
    )
    assert resolver.resolve(candidates) == "https://a.com/wp-content/uploads/bride.jpg"


def test_embedded_featured_image_beats_thumbnail(resolver):
    candidates = candidates_from_hints({ImageField.THUMBNAIL: THUMBNAIL})
    result = resolver.resolve(candidates, content=ARTICLE_HTML, base_url="https://a.com/1")
    assert result == "https://a.com/featured.jpg"


def test_embedded_at_threshold_is_not_featured(resolver):
    html = (
        '<div><img src="https://a.com/square.jpg" width="300" height="300">'
        '<img src="https://a.com/wide.jpg" width="301" height="400"></div>'
    )
    assert resolver.resolve([], content=html) == "https://a.com/wide.jpg"


def test_overlong_original_falls_through_to_thumbnail(resolver):
    candidates = candidates_from_hints(
        {
            ImageField.ORIGINAL: "https://cdn.a.com/img.jpg?sig=" + "x" * 2100,
            ImageField.THUMBNAIL: THUMBNAIL,
        }
    )
    assert resolver.resolve(candidates) == THUMBNAIL


def test_embedded_without_dimensions_takes_first_valid(resolver):
    html = '<div><img src="data:image/gif;base64,R0lG"><img src="https://a.com/a.jpg"><img src="https://a.com/b.jpg"></div>'
    assert resolver.resolve([], content=html) == "https://a.com/a.jpg"


def test_thumbnail_used_when_nothing_better(resolver):
    candidates = candidates_from_hints({ImageField.THUMBNAIL: THUMBNAIL})
    assert resolver.resolve(candidates, content="<div><p>text only</p></div>") == THUMBNAIL


def test_open_graph_is_last_resort(resolver):
    assert resolver.resolve([], page=PAGE_HTML) == "https://a.com/og.jpg"


def test_thumbnail_beats_open_graph(resolver):
    candidates = candidates_from_hints({ImageField.THUMBNAIL: THUMBNAIL})
    assert resolver.resolve(candidates, page=PAGE_HTML) == THUMBNAIL


def test_page_scanned_for_images_when_no_content(resolver):
    page = '<html><body><img src="/img/cake.jpg" width="640" height="480"></body></html>'
    result = resolver.resolve([], page=page, base_url="https://a.com/story/1")
    assert result == "https://a.com/img/cake.jpg"


def test_returns_none_when_nothing_valid(resolver):
    candidates = [
        ImageCandidate(url="data:image/png;base64,AAAA", tier=ImageTier.THUMBNAIL),
        ImageCandidate(url="https://a.com/undefined.jpg", tier=ImageTier.LARGE),
    ]
    assert resolver.resolve(candidates) is None
    assert resolver.resolve([]) is None


def test_data_uri_never_returned(resolver):
    data_uri = "data:image/jpeg;base64,/9j/4AAQ"
    candidates = candidates_from_hints(
        {
            ImageField.ORIGINAL: data_uri,
            ImageField.SOURCE: data_uri,
            ImageField.LARGE: data_uri,
            ImageField.THUMBNAIL: data_uri,
        }
    )
    html = f'<div><img src="{data_uri}" width="800" height="800"></div>'
    assert resolver.resolve(candidates, content=html, page=html) is None


# --- scanning helpers ---


def test_scan_rejects_icon_logo_avatar_badge():
    html = """
    <div>
      <img src="https://a.com/icons/heart.png">
      <img src="https://a.com/brand-logo.jpg">
      <img class="badge" src="https://a.com/verified.png">
      <img class="user-avatar" src="https://a.com/u.jpg">
      <img src="https://a.com/dress.jpg">
    </div>
    """
    urls = [c.url for c in scan_embedded_images(html)]
    assert urls == ["https://a.com/dress.jpg"]


def test_scan_reads_lazy_sources():
    html = '<div><img src="data:image/gif;base64,R0lG" data-src="/lazy/ring.jpg" width="500" height="500px"></div>'
    candidates = scan_embedded_images(html, base_url="https://a.com/post")
    assert len(candidates) == 1
    assert candidates[0].url == "https://a.com/lazy/ring.jpg"
    assert candidates[0].min_dimension == 500


def test_scan_handles_empty_html():
    assert scan_embedded_images("") == []
    assert scan_embedded_images(None) == []


def test_find_open_graph_prefers_og_over_twitter():
    assert find_open_graph_image(PAGE_HTML) == "https://a.com/og.jpg"
    twitter_only = '<html><head><meta name="twitter:image" content="/t.jpg"></head></html>'
    assert find_open_graph_image(twitter_only, "https://a.com/x") == "https://a.com/t.jpg"


# --- size upgrades ---


def test_upgrade_width_query_param():
    result = upgrade_size_params("https://cdn.a.com/img.jpg?w=150&h=100&q=80")
    assert result == "https://cdn.a.com/img.jpg?w=1600&q=80"


def test_upgrade_drops_resize():
    result = upgrade_size_params("https://i0.wp.com/a.com/img.jpg?resize=150%2C150")
    assert result == "https://i0.wp.com/a.com/img.jpg"


def test_upgrade_leaves_plain_urls_alone():
    url = "https://a.com/img.jpg?id=42"
    assert upgrade_size_params(url) == url


def test_host_directive_upgrade():
    assert (
        upgrade_host_directive("https://lh3.googleusercontent.com/abc123=s120")
        == "https://lh3.googleusercontent.com/abc123=s1600"
    )
    assert (
        upgrade_host_directive("https://lh3.googleusercontent.com/abc123=w120-h80-c")
        == "https://lh3.googleusercontent.com/abc123=s1600"
    )


def test_host_directive_ignores_other_hosts():
    url = "https://a.com/photo=s120"
    assert upgrade_host_directive(url) == url


def test_resolved_url_gets_host_upgrade(resolver):
    candidates = candidates_from_hints(
        {ImageField.THUMBNAIL: "https://lh3.googleusercontent.com/xyz=s90"}
    )
    assert resolver.resolve(candidates) == "https://lh3.googleusercontent.com/xyz=s1600"
