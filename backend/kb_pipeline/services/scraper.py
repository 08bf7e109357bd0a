"""Discovery and extraction of help-center articles."""

import logging
import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

import requests
from bs4 import BeautifulSoup

from kb_pipeline.config import MIN_CONTENT_LENGTH, REQUEST_TIMEOUT, USER_AGENT
from kb_pipeline.errors import ScrapeError

logger = logging.getLogger(__name__)

ARTICLE_LINK_RE = re.compile(r'href="([^"]*/support/solutions/articles/[^"]+)"')
LISTING_LINK_RE = re.compile(r'href="([^"]*/support/solutions/[0-9]+[^"]+)"')

WHITESPACE_RE = re.compile(r"\s+")
BREADCRUMB_SELECTOR = 'nav[aria-label="breadcrumb"]'


@dataclass
class ScrapedArticle:
    """Fields extracted from one article page."""
    url: str
    title: str
    content: str
    category: Optional[str]


def _origin(base_url: str) -> str:
    parsed = urlparse(base_url)
    return f"{parsed.scheme}://{parsed.netloc}"


def _fetch(url: str, session) -> str:
    response = session.get(url, timeout=REQUEST_TIMEOUT, headers={"User-Agent": USER_AGENT})
    response.raise_for_status()
    return response.text


def _collect_links(pattern: re.Pattern, page: str, origin: str) -> set[str]:
    """Absolute URLs for every matching href on the same origin."""
    links = set()
    for href in pattern.findall(page):
        if href.startswith("/"):
            links.add(f"{origin}{href}")
        elif href.startswith(origin):
            links.add(href)
    return links


def discover_article_urls(base_url: str, session=None) -> list[str]:
    """
    Discover article URLs from the seed listing page and its category pages.

    Args:
        base_url: Seed listing page
        session: requests-compatible session

    Returns:
        Deduplicated list of absolute article URLs. A failing category page
        is skipped; a failing seed page yields an empty list.
    """
    if session is None:
        with requests.Session() as session:
            return discover_article_urls(base_url, session)

    origin = _origin(base_url)

    try:
        seed = _fetch(base_url, session)
    except Exception as e:
        logger.error(f"[SCRAPE] Error fetching seed page {base_url}: {e}")
        return []

    urls = _collect_links(ARTICLE_LINK_RE, seed, origin)
    listing_urls = _collect_links(LISTING_LINK_RE, seed, origin)
    logger.info(f"[SCRAPE] Seed page: {len(urls)} articles, {len(listing_urls)} category pages")

    for listing_url in sorted(listing_urls):
        try:
            page = _fetch(listing_url, session)
        except Exception as e:
            logger.warning(f"[SCRAPE] Error scraping category {listing_url}: {e}")
            continue
        urls |= _collect_links(ARTICLE_LINK_RE, page, origin)

    logger.info(f"[SCRAPE] Discovered {len(urls)} article URLs")
    return sorted(urls)


def _clean(text: str) -> str:
    return WHITESPACE_RE.sub(" ", text).strip()


def _content_container(soup: BeautifulSoup):
    """Main content element, tried in order: article, .content div, .article div, main."""
    return (
        soup.find("article")
        or soup.find("div", class_=re.compile("content", re.I))
        or soup.find("div", class_=re.compile("article", re.I))
        or soup.find("main")
    )


def extract_title(page: str) -> Optional[str]:
    soup = BeautifulSoup(page, "lxml")
    for tag in (soup.find("title"), soup.find("h1")):
        if tag:
            title = _clean(tag.get_text(" "))
            if title:
                return title
    return None


def extract_content(page: str) -> Optional[str]:
    soup = BeautifulSoup(page, "lxml")
    for element in soup(["script", "style"]):
        element.decompose()

    container = _content_container(soup) or soup
    text = _clean(container.get_text(" "))
    return text if len(text) > MIN_CONTENT_LENGTH else None


def extract_category(page: str) -> Optional[str]:
    """Second-to-last breadcrumb entry, 'General' when the trail is too short."""
    nav = BeautifulSoup(page, "lxml").select_one(BREADCRUMB_SELECTOR)
    if nav is None:
        return None

    parts = [_clean(part) for part in nav.stripped_strings]
    parts = [part for part in parts if len(part) > 2]
    if len(parts) < 2:
        return "General"
    return parts[-2]


def scrape_article(url: str, session=None) -> ScrapedArticle:
    """Fetch and parse one article page. Raises ScrapeError if unusable."""
    if session is None:
        with requests.Session() as session:
            return scrape_article(url, session)

    try:
        page = _fetch(url, session)
    except requests.RequestException as e:
        raise ScrapeError(f"Failed to fetch {url}: {e}") from e

    title = extract_title(page)
    content = extract_content(page)
    if not title or not content:
        raise ScrapeError(f"Missing title or content: {url}")

    return ScrapedArticle(
        url=url,
        title=title,
        content=content,
        category=extract_category(page),
    )
