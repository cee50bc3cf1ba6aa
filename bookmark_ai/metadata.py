"""Fetch page metadata used to give the summary prompt something to work with."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from html import unescape
from typing import TYPE_CHECKING
from urllib.parse import urljoin, urlparse

import requests
from bs4 import BeautifulSoup

if TYPE_CHECKING:  # runtime import kept minimal
    from collections.abc import Iterable

    from .models import BookmarkRecord

LOGGER = logging.getLogger(__name__)

HEADERS = {
    "User-Agent": "BookmarkAI Bot/1.0",
    "Accept": "text/html,application/xhtml+xml",
}

# Paragraph fallbacks shorter than this are navigation noise, not descriptions.
_MIN_PARAGRAPH_LENGTH = 20
_DESCRIPTION_LIMIT = 500
# Page text handed to the summariser; the prompt builder trims further.
CONTENT_LIMIT = 4000

_ALLOWED_SCHEMES = {"http", "https"}
_ICON_RELS = ("icon", "shortcut icon", "apple-touch-icon", "apple-touch-icon-precomposed")

_SMALL_BATCH_CUTOFF = 3


@dataclass(frozen=True, slots=True)
class UrlValidationResult:
    is_valid: bool
    normalized_url: str | None = None
    error: str | None = None


@dataclass(slots=True)
class PageMetadata:
    """Metadata scraped from a bookmark target; every field may be missing."""

    title: str | None = None
    description: str | None = None
    favicon: str | None = None
    og_image: str | None = None
    og_title: str | None = None
    og_description: str | None = None
    content: str | None = None


def validate_url(url: str) -> UrlValidationResult:
    """Accept only absolute http(s) URLs."""
    parsed = urlparse(url.strip())
    if not parsed.scheme or not parsed.netloc:
        return UrlValidationResult(is_valid=False, error="Invalid URL format")
    if parsed.scheme.lower() not in _ALLOWED_SCHEMES:
        return UrlValidationResult(is_valid=False, error="URL must use http or https protocol")
    normalized = parsed._replace(scheme=parsed.scheme.lower(), netloc=parsed.netloc.lower())
    normalized = normalized._replace(path=normalized.path or "/")
    return UrlValidationResult(is_valid=True, normalized_url=normalized.geturl())


def extract_metadata(
    url: str,
    timeout: float = 5.0,
    session: requests.Session | None = None,
) -> PageMetadata:
    """Fetch ``url`` and pull title, description, icons and visible text.

    Invalid URLs, non-HTML responses and request failures give an empty
    :class:`PageMetadata`; nothing is raised.
    """
    validation = validate_url(url)
    if not validation.is_valid or validation.normalized_url is None:
        LOGGER.debug("Skipping metadata for %s: %s", url, validation.error)
        return PageMetadata()
    target = validation.normalized_url

    http = session or requests.Session()
    if session is None:
        http.headers.update(HEADERS)
    try:
        response = http.get(target, timeout=timeout, allow_redirects=True)
        response.raise_for_status()
    except requests.RequestException as exc:
        LOGGER.warning("Failed to fetch metadata for %s: %s", target, exc)
        return PageMetadata()

    content_type = response.headers.get("Content-Type", "")
    if "text/html" not in content_type.lower():
        LOGGER.debug("Skipping non-HTML content for %s (content-type=%s)", target, content_type)
        return PageMetadata()

    return parse_metadata(response.text, target)


def parse_metadata(html_text: str, base_url: str) -> PageMetadata:
    soup = BeautifulSoup(html_text, "html.parser")
    og_title = _meta_content(soup, property="og:title")
    og_description = _meta_content(soup, property="og:description")
    og_image = _meta_content(soup, property="og:image")

    title = _text_of(soup.title) or og_title or _text_of(soup.find("h1"))
    description = _meta_content(soup, name="description") or og_description
    if not description:
        paragraph = _text_of(soup.find("p"))
        if paragraph and len(paragraph) > _MIN_PARAGRAPH_LENGTH:
            description = paragraph[:_DESCRIPTION_LIMIT]

    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    body = soup.body or soup
    text = " ".join(body.get_text(" ", strip=True).split())

    return PageMetadata(
        title=unescape(title) if title else None,
        description=unescape(description) if description else None,
        favicon=_favicon(soup, base_url),
        og_image=urljoin(base_url, og_image) if og_image else None,
        og_title=og_title,
        og_description=og_description,
        content=text[:CONTENT_LIMIT] or None,
    )


def enrich_bookmarks(
    records: Iterable[BookmarkRecord],
    timeout: float = 5.0,
    workers: int = 8,
) -> list[BookmarkRecord]:
    """Fill missing descriptions and page text in-place, fetching pages concurrently."""
    target: list[BookmarkRecord] = list(records)
    session = requests.Session()
    session.headers.update(HEADERS)

    def _work(record: BookmarkRecord) -> BookmarkRecord:
        page = extract_metadata(record.url, timeout=timeout, session=session)
        if not record.description and page.description:
            record.description = page.description
        if not record.title and page.title:
            record.title = page.title
        if page.content:
            record.content = page.content
        return record

    # If very small input, avoid thread overhead.
    if len(target) <= _SMALL_BATCH_CUTOFF:
        return [_work(r) for r in target]

    with ThreadPoolExecutor(max_workers=max(1, workers)) as executor:
        futures = {executor.submit(_work, r): r for r in target}
        for future in as_completed(futures):
            try:
                future.result()
            except Exception as exc:  # noqa: BLE001
                LOGGER.warning("Metadata worker failed for %s: %s", futures[future].url, exc)
    return target


def _meta_content(soup: BeautifulSoup, **attrs: str) -> str | None:
    tag = soup.find("meta", attrs=attrs)
    if tag is None:
        return None
    content = tag.get("content")
    if isinstance(content, str) and content.strip():
        return content.strip()
    return None


def _text_of(tag: object) -> str | None:
    text_getter = getattr(tag, "get_text", None)
    if not callable(text_getter):
        return None
    text = text_getter(strip=True)
    return text if isinstance(text, str) and text else None


def _favicon(soup: BeautifulSoup, base_url: str) -> str:
    links: dict[str, str] = {}
    for link in soup.find_all("link"):
        rel = link.get("rel")
        href = link.get("href")
        if not rel or not isinstance(href, str) or not href.strip():
            continue
        # bs4 exposes rel as a list of tokens
        key = " ".join(rel).lower() if isinstance(rel, list) else str(rel).strip().lower()
        links.setdefault(key, href.strip())
    for rel in _ICON_RELS:
        if rel in links:
            return urljoin(base_url, links[rel])
    parsed = urlparse(base_url)
    return f"{parsed.scheme}://{parsed.netloc}/favicon.ico"
