"""Fetch a page and extract bounded plain-text content plus metadata.

Uses ``urllib.request`` for HTTP and BeautifulSoup for extraction.
:meth:`ContentScraper.scrape_url` never raises: any failure is logged
and returned as ``None`` so the caller can fall back to feed content.
"""

from __future__ import annotations

import ipaddress
import logging
import random
import re
import time
from concurrent.futures import ThreadPoolExecutor
from html import unescape
from urllib.error import HTTPError
from urllib.parse import parse_qs, urljoin, urlparse
from urllib.request import HTTPRedirectHandler, Request, build_opener, urlopen

from bs4 import BeautifulSoup, Tag

from feedpress.errors import ScrapeError
from feedpress.models import ScrapedContent
from feedpress.settings import SettingsService

logger = logging.getLogger(__name__)

USER_AGENTS: tuple[str, ...] = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.2 Safari/605.1.15",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
)

_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"

_BOILERPLATE_SELECTORS = (
    "script, style, nav, header, footer, aside, iframe, noscript",
    ".advertisement, .ads, .social-share, .comments, .sidebar",
)

CONTENT_SELECTORS: tuple[str, ...] = (
    "article",
    "[role=main]",
    ".post-content",
    ".entry-content",
    ".article-content",
    ".content",
    "main",
    "#content",
    ".post",
    ".article",
)

_MIN_PARAGRAPH_LENGTH = 30
_BATCH_PAUSE_SECONDS = 1.0

_WHITESPACE_RE = re.compile(r"\s+")
_META_CHARSET_RE = re.compile(rb"<meta\s+charset=[\"']?([^\"'\s/>]+)", re.IGNORECASE)
_HTTP_EQUIV_CHARSET_RE = re.compile(
    rb"<meta[^>]+http-equiv=[\"']?content-type[\"']?[^>]+charset=([^\"'\s;>]+)",
    re.IGNORECASE,
)


def clean_text(text: str) -> str:
    """Decode HTML entities and collapse whitespace."""
    return _WHITESPACE_RE.sub(" ", unescape(text).replace("\xa0", " ")).strip()


def validate_url(url: str) -> str | None:
    """Return an error message if *url* must not be fetched, else None."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return "Invalid URL format"

    if parsed.scheme not in ("http", "https"):
        return f"Invalid URL scheme: {parsed.scheme or '(none)'}"

    hostname = (parsed.hostname or "").lower()
    if not hostname:
        return "Missing hostname"

    if hostname == "localhost" or hostname.endswith(".localhost"):
        return "Private/local URLs not allowed"

    try:
        address = ipaddress.ip_address(hostname)
    except ValueError:
        return None
    if address.is_private or address.is_loopback or address.is_link_local or address.is_unspecified:
        return "Private/local URLs not allowed"
    return None


class _NoRedirect(HTTPRedirectHandler):
    """Surface 3xx responses as HTTPError instead of following them."""

    def redirect_request(self, req, fp, code, msg, headers, newurl):  # type: ignore[no-untyped-def]
        return None


def _head_request(url: str, timeout: float) -> tuple[int, str]:
    """Issue a HEAD request without following redirects.

    Returns:
        ``(status, location)``; location is empty when absent.
    """
    opener = build_opener(_NoRedirect)
    request = Request(url, method="HEAD", headers={"User-Agent": USER_AGENTS[0]})  # noqa: S310
    try:
        with opener.open(request, timeout=timeout) as response:
            return response.status, response.headers.get("Location", "") or ""
    except HTTPError as exc:
        return exc.code, exc.headers.get("Location", "") or ""


def _fetch_html(url: str, user_agent: str, timeout: float) -> tuple[str, str]:
    """Fetch *url* and return ``(html, charset)``.

    Raises:
        ScrapeError: On a non-HTML content type or an empty body.
    """
    request = Request(  # noqa: S310
        url,
        headers={
            "User-Agent": user_agent,
            "Accept": _ACCEPT,
            "Accept-Language": "en-US,en;q=0.9",
        },
    )
    with urlopen(request, timeout=timeout) as response:  # noqa: S310
        content_type = response.headers.get("Content-Type", "") or ""
        if "text/html" not in content_type and "application/xhtml" not in content_type:
            raise ScrapeError(f"Invalid content type: {content_type or '(none)'}")
        header_charset = response.headers.get_content_charset()
        body = response.read()

    if not body:
        raise ScrapeError("Empty response from URL")

    charset = header_charset or _sniff_charset(body) or "utf-8"
    try:
        return body.decode(charset, errors="replace"), charset
    except LookupError:
        return body.decode("utf-8", errors="replace"), "utf-8"


def _sniff_charset(body: bytes) -> str | None:
    """Find a charset declared in the document's meta tags."""
    head = body[:4096]
    for pattern in (_META_CHARSET_RE, _HTTP_EQUIV_CHARSET_RE):
        match = pattern.search(head)
        if match:
            return match.group(1).decode("ascii", errors="ignore").lower()
    return None


def _meta(soup: BeautifulSoup, *, prop: str | None = None, name: str | None = None) -> str:
    attrs = {"property": prop} if prop else {"name": name}
    tag = soup.find("meta", attrs=attrs)
    if isinstance(tag, Tag):
        content = tag.get("content")
        if isinstance(content, str):
            return content
    return ""


def _first_text(soup: BeautifulSoup, selector: str) -> str:
    tag = soup.select_one(selector)
    return tag.get_text(" ") if tag is not None else ""


class ContentScraper:
    """Resolves redirect wrappers, fetches pages and extracts their content.

    All limits (timeout, user agent, content length bounds) are read
    from the settings store on every call.
    """

    def __init__(self, settings: SettingsService) -> None:
        self._settings = settings

    def scrape_url(self, url: str, feed_id: str | None = None) -> ScrapedContent | None:
        """Scrape *url*, returning None on any failure."""
        start = time.monotonic()
        context: dict[str, object] = {"url": url, "feed_id": feed_id}
        try:
            scraped = self._scrape(url)
        except Exception as exc:
            context["error"] = str(exc)
            context["execution_time_ms"] = int((time.monotonic() - start) * 1000)
            logger.warning("Scraping failed for %s: %s", url, exc, extra={"context": context})
            return None

        context["content_length"] = len(scraped.content)
        context["execution_time_ms"] = int((time.monotonic() - start) * 1000)
        logger.info("Scraped %s (%d chars)", scraped.url, len(scraped.content), extra={"context": context})
        return scraped

    def scrape_urls(
        self,
        urls: list[str],
        feed_id: str | None = None,
        concurrency: int = 3,
    ) -> list[ScrapedContent | None]:
        """Scrape *urls* in batches of *concurrency*, pausing between batches.

        Results are returned in input order.
        """
        results: list[ScrapedContent | None] = []
        with ThreadPoolExecutor(max_workers=max(concurrency, 1)) as pool:
            for start in range(0, len(urls), concurrency):
                batch = urls[start : start + concurrency]
                results.extend(pool.map(lambda u: self.scrape_url(u, feed_id), batch))
                if start + concurrency < len(urls):
                    time.sleep(_BATCH_PAUSE_SECONDS)
        return results

    # ── Pipeline steps ───────────────────────────────────────────

    def _scrape(self, url: str) -> ScrapedContent:
        error = validate_url(url)
        if error:
            raise ScrapeError(f"URL validation failed: {error}")

        resolved = url
        if self._settings.get_bool("scraping.follow_redirect_wrappers"):
            resolved = self.resolve_redirect(url)
            if resolved != url:
                error = validate_url(resolved)
                if error:
                    raise ScrapeError(f"Resolved URL validation failed: {error}")

        timeout = self._settings.get_float("scraping.request_timeout") / 1000
        user_agent = self._settings.get_str("scraping.user_agent") or random.choice(USER_AGENTS)  # noqa: S311

        html, _charset = _fetch_html(resolved, user_agent, timeout)
        return self.extract(
            html,
            resolved,
            min_length=self._settings.get_int("scraping.min_content_length"),
            max_length=self._settings.get_int("scraping.max_content_length"),
        )

    def resolve_redirect(self, url: str) -> str:
        """Unwrap known redirector URLs to their destination."""
        parsed = urlparse(url)
        host = (parsed.hostname or "").lower()

        if host.endswith("google.com") and parsed.path == "/url":
            targets = parse_qs(parsed.query).get("url")
            if targets and targets[0]:
                logger.debug("Resolved Google redirect %s -> %s", url, targets[0])
                return targets[0]

        if host == "feedproxy.google.com":
            try:
                status, location = _head_request(url, timeout=10)
            except OSError as exc:
                logger.warning("Failed to resolve FeedProxy redirect %s: %s", url, exc)
                return url
            if location and 300 <= status < 400:
                logger.debug("Resolved FeedProxy redirect %s -> %s", url, location)
                return location

        return url

    def extract(self, html: str, url: str, *, min_length: int, max_length: int) -> ScrapedContent:
        """Extract title, metadata and bounded body text from *html*."""
        soup = BeautifulSoup(html, "html.parser")

        for selector in _BOILERPLATE_SELECTORS:
            for tag in soup.select(selector):
                tag.decompose()

        title = clean_text(
            _meta(soup, prop="og:title")
            or _meta(soup, name="twitter:title")
            or (soup.title.get_text() if soup.title else "")
            or _first_text(soup, "h1")
        )
        description = clean_text(
            _meta(soup, name="description")
            or _meta(soup, prop="og:description")
            or _meta(soup, name="twitter:description")
        )
        author = clean_text(
            _meta(soup, name="author")
            or _meta(soup, prop="article:author")
            or _first_text(soup, "[rel=author]")
            or _first_text(soup, "[itemprop=author]")
            or _first_text(soup, ".byline")
        )
        published = _meta(soup, prop="article:published_time") or _meta(soup, name="pubdate")
        if not published:
            time_tag = soup.select_one("time[datetime]")
            if time_tag is not None:
                published = str(time_tag.get("datetime", ""))

        content, html_content = self._extract_body(soup, min_length)
        if len(content) > max_length:
            logger.warning(
                "Content truncated for %s (%d > %d chars)",
                url,
                len(content),
                max_length,
            )
            content = content[:max_length] + "..."

        return ScrapedContent(
            title=title,
            url=url,
            content=content,
            html_content=html_content,
            description=description,
            author=author,
            published_date=clean_text(published),
            image=self._extract_image(soup, url),
        )

    @staticmethod
    def _extract_body(soup: BeautifulSoup, min_length: int) -> tuple[str, str]:
        """Return ``(text, html)`` from the first container long enough."""
        for selector in CONTENT_SELECTORS:
            element = soup.select_one(selector)
            if element is None:
                continue
            text = clean_text(element.get_text(" "))
            if len(text) >= min_length:
                return text, element.decode_contents()

        paragraphs = [
            p for p in soup.find_all("p") if len(p.get_text().strip()) > _MIN_PARAGRAPH_LENGTH
        ]
        text = clean_text("\n".join(p.get_text(" ") for p in paragraphs))
        if len(text) >= min_length:
            return text, "\n".join(str(p) for p in paragraphs)

        body = soup.body or soup
        return clean_text(body.get_text(" ")), body.decode_contents()

    @staticmethod
    def _extract_image(soup: BeautifulSoup, base_url: str) -> str:
        """Pick a featured image and resolve it against *base_url*."""
        candidate = (
            _meta(soup, prop="og:image")
            or _meta(soup, name="twitter:image")
            or _meta(soup, prop="og:image:url")
        )
        if not candidate:
            itemprop = soup.select_one("[itemprop=image]")
            if itemprop is not None:
                candidate = str(itemprop.get("content") or itemprop.get("src") or "")
        if not candidate:
            for selector in ("article img", ".post-content img", ".entry-content img"):
                img = soup.select_one(selector)
                if img is not None and img.get("src"):
                    candidate = str(img["src"])
                    break
        if not candidate:
            for img in soup.find_all("img"):
                src = str(img.get("src") or img.get("data-src") or "")
                if not src or src.startswith("data:"):
                    continue
                width = str(img.get("width") or "0")
                if not width.isdigit() or int(width) == 0 or int(width) >= 200:
                    candidate = src
                    break
        if not candidate:
            return ""
        if candidate.startswith("//"):
            return "https:" + candidate
        return urljoin(base_url, candidate)
