"""Tests for kb_pipeline.services.scraper."""

import pytest
import requests

from kb_pipeline.errors import ScrapeError
from kb_pipeline.services.scraper import (
    discover_article_urls,
    extract_category,
    extract_content,
    extract_title,
    scrape_article,
)

from conftest import BASE_URL, ORIGIN, FakeHttpSession, FakeResponse, article_page, listing_page


class TestExtractTitle:
    def test_prefers_title_tag(self) -> None:
        html = "<title>  Connect   a Calendar </title><h1>Other</h1>"
        assert extract_title(html) == "Connect a Calendar"

    def test_falls_back_to_first_heading(self) -> None:
        assert extract_title("<body><h1 class='t'>Billing FAQ</h1></body>") == "Billing FAQ"

    def test_unescapes_entities(self) -> None:
        assert extract_title("<title>Q&amp;A</title>") == "Q&A"

    def test_returns_none_without_title(self) -> None:
        assert extract_title("<p>no heading</p>") is None


class TestExtractContent:
    def test_strips_scripts_styles_and_tags(self) -> None:
        content = extract_content(article_page("Calendars"))
        assert "tracking" not in content
        assert "color:red" not in content
        assert "<" not in content
        assert content.startswith("Calendars To connect your calendar")

    def test_uses_main_content_container(self) -> None:
        body = "word " * 40
        html = f"<div class='sidebar-nav'>Menu</div><main><p>{body}</p></main>"
        assert extract_content(html) == ("word " * 40).strip()

    def test_keeps_text_after_nested_block(self) -> None:
        body = "Open the settings page and pick the integration you want to enable for this location. " * 2
        html = (
            '<div class="sidebar">Menu</div>'
            f'<div class="article-content"><div class="note">Tip</div><p>{body}</p></div>'
        )

        content = extract_content(html)

        assert content is not None
        assert content.startswith("Tip Open the settings page")
        assert content.endswith("for this location.")
        assert "Menu" not in content

    def test_article_wins_over_content_div(self) -> None:
        body = "Article text that is long enough to be kept as the main body of the page. " * 2
        html = f"<div class='page-content'>Header links</div><article><p>{body}</p></article>"
        assert extract_content(html) == body.strip()

    def test_whole_page_without_container(self) -> None:
        body = "plain " * 30
        assert extract_content(f"<body><p>{body}</p><script>x()</script></body>") == body.strip()

    def test_rejects_short_text(self) -> None:
        assert extract_content("<article><p>Too short.</p></article>") is None


class TestExtractCategory:
    def test_second_to_last_breadcrumb(self) -> None:
        html = article_page("X", breadcrumb="Home/Calendars/Connect a calendar")
        assert extract_category(html) == "Calendars"

    def test_short_trail_is_general(self) -> None:
        html = '<nav aria-label="breadcrumb"><a>Home</a></nav>'
        assert extract_category(html) == "General"

    def test_no_breadcrumb(self) -> None:
        assert extract_category("<html></html>") is None


class TestDiscoverArticleUrls:
    def test_collects_articles_from_seed_and_category_pages(self) -> None:
        http = FakeHttpSession({
            BASE_URL: listing_page([
                "/support/solutions/articles/1-intro",
                f"{ORIGIN}/support/solutions/articles/2-billing",
                "https://elsewhere.com/support/solutions/articles/9-ignored",
                "/support/solutions/48000123-calendars",
            ]),
            f"{ORIGIN}/support/solutions/48000123-calendars": listing_page([
                "/support/solutions/articles/1-intro",
                "/support/solutions/articles/3-calendar-sync",
            ]),
        })

        urls = discover_article_urls(BASE_URL, http)

        assert sorted(urls) == [
            f"{ORIGIN}/support/solutions/articles/1-intro",
            f"{ORIGIN}/support/solutions/articles/2-billing",
            f"{ORIGIN}/support/solutions/articles/3-calendar-sync",
        ]

    def test_failing_category_page_is_skipped(self) -> None:
        http = FakeHttpSession({
            BASE_URL: listing_page([
                "/support/solutions/articles/1-intro",
                "/support/solutions/111-broken",
                "/support/solutions/222-fine",
            ]),
            f"{ORIGIN}/support/solutions/111-broken": requests.ConnectionError("reset"),
            f"{ORIGIN}/support/solutions/222-fine": listing_page(["/support/solutions/articles/5-fine"]),
        })

        urls = discover_article_urls(BASE_URL, http)

        assert sorted(urls) == [
            f"{ORIGIN}/support/solutions/articles/1-intro",
            f"{ORIGIN}/support/solutions/articles/5-fine",
        ]

    def test_seed_failure_returns_empty(self) -> None:
        http = FakeHttpSession({BASE_URL: FakeResponse("down", status_code=503)})
        assert discover_article_urls(BASE_URL, http) == []


class TestScrapeArticle:
    def test_returns_extracted_fields(self) -> None:
        url = f"{ORIGIN}/support/solutions/articles/1-intro"
        http = FakeHttpSession({url: article_page("Intro", breadcrumb="Home/Getting Started/Intro")})

        article = scrape_article(url, http)

        assert article.url == url
        assert article.title == "Intro"
        assert article.category == "Getting Started"
        assert "connect your calendar" in article.content

    def test_http_error_raises(self) -> None:
        with pytest.raises(ScrapeError):
            scrape_article(f"{ORIGIN}/missing", FakeHttpSession())

    def test_page_without_content_raises(self) -> None:
        url = f"{ORIGIN}/support/solutions/articles/2-empty"
        http = FakeHttpSession({url: "<title>Empty</title><article>tiny</article>"})
        with pytest.raises(ScrapeError):
            scrape_article(url, http)
