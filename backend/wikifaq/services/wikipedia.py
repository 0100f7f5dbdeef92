"""
Wikipedia content fetcher.

Talks to the MediaWiki Action API for page HTML, revision metadata and title
search, and to the Wikimedia pageviews API for the most-read pages used as
seeds. Not-found and transport errors are reported as ``None`` (or an empty
list), never raised: a missing page is an ordinary outcome for the pipeline.
"""

import logging
import re
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx
from bs4 import BeautifulSoup

from wikifaq.core.config import Settings, get_settings
from wikifaq.schemas.faq import PageContent

logger = logging.getLogger(__name__)


# ========================================
# Slugs & URLs
# ========================================

_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]+")


def format_slug(title: str) -> str:
    """
    URL-safe slug for a page title.

    Runs of non-alphanumerics collapse to a single dash, the result is
    lower-cased and trimmed of edge dashes:

        >>> format_slug("C++ (programming language)")
        'c-programming-language'
    """
    return _NON_ALNUM.sub("-", title).lower().strip("-")


def page_url(title: str, base_url: str = "https://en.wikipedia.org") -> str:
    """Canonical article URL for ``title``."""
    return f"{base_url}/wiki/{quote(title.strip().replace(' ', '_'), safe='()_,:-.')}"


def is_wikipedia_url(url: Optional[str]) -> bool:
    return bool(url) and "/wiki/" in url and url.startswith(("https://", "http://"))


# Pages that show up in the pageviews top list but are not articles
_NON_ARTICLE_PREFIXES = (
    "Special:", "Wikipedia:", "Portal:", "File:", "Help:", "Talk:", "Category:", "Template:",
)


def is_article_title(title: str) -> bool:
    if not title or title in ("Main_Page", "Main Page", "-"):
        return False
    return not title.startswith(_NON_ARTICLE_PREFIXES)


# ========================================
# Client
# ========================================


class WikipediaClient:
    """
    Async client for Wikipedia.

    Example:
        >>> client = WikipediaClient(settings)
        >>> page = await client.fetch_page("Albert Einstein")
        >>> page.title, len(page.images)
        ('Albert Einstein', 14)
        >>> await client.aclose()
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings or get_settings()
        self.api_url = self.settings.WIKIPEDIA_API_URL
        self.base_url = self.settings.WIKIPEDIA_BASE_URL.rstrip("/")
        self._owns_client = http_client is None
        self.http = http_client or httpx.AsyncClient(
            headers={"User-Agent": self.settings.WIKIPEDIA_USER_AGENT},
            timeout=self.settings.WIKIPEDIA_REQUEST_TIMEOUT,
            follow_redirects=True,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self.http.aclose()

    async def _get_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        try:
            response = await self.http.get(url, params=params)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            logger.warning(f"Wikipedia request failed for {url}: {e}")
            return None
        except ValueError as e:
            logger.warning(f"Wikipedia returned invalid JSON for {url}: {e}")
            return None

        if isinstance(data, dict) and "error" in data:
            error = data["error"]
            logger.info(f"Wikipedia API error: {error.get('code')} - {error.get('info')}")
            return None
        return data

    # ========================================
    # Page Content
    # ========================================

    async def fetch_metadata(self, title: str) -> Optional[Dict[str, Optional[str]]]:
        """
        Canonical display title and last revision timestamp.

        Returns:
            {'title': ..., 'last_updated': ...} or None if the page is missing
        """
        data = await self._get_json(self.api_url, params={
            "action": "query",
            "prop": "revisions|info",
            "rvprop": "timestamp",
            "titles": title,
            "redirects": 1,
            "format": "json",
            "formatversion": 2,
        })
        if not data:
            return None

        pages = data.get("query", {}).get("pages", [])
        if isinstance(pages, dict):
            pages = list(pages.values())
        if not pages:
            return None

        page = pages[0]
        if page.get("missing") or page.get("invalid"):
            logger.info(f"Wikipedia page not found: {title}")
            return None

        revisions = page.get("revisions") or [{}]
        return {
            "title": page.get("title") or title,
            "last_updated": revisions[0].get("timestamp") or page.get("touched"),
        }

    async def fetch_html(self, title: str) -> Optional[str]:
        """Rendered HTML body of the page, or None."""
        data = await self._get_json(self.api_url, params={
            "action": "parse",
            "page": title,
            "prop": "text",
            "redirects": 1,
            "format": "json",
            "formatversion": 2,
        })
        if not data:
            return None

        text = data.get("parse", {}).get("text")
        if isinstance(text, dict):
            text = text.get("*")
        return text or None

    def extract_images(self, html: str) -> List[str]:
        """
        Absolute image URLs in document order, deduplicated.

        ``//upload.wikimedia.org/x.png`` → ``https://upload.wikimedia.org/x.png``
        ``/static/x.png`` → ``https://en.wikipedia.org/static/x.png``
        """
        soup = BeautifulSoup(html, "lxml")
        images: List[str] = []
        for img in soup.find_all("img"):
            src = (img.get("src") or "").strip()
            if not src or src.startswith("data:"):
                continue
            if src.startswith("//"):
                src = "https:" + src
            elif src.startswith("/"):
                src = self.base_url + src
            elif not src.startswith(("https://", "http://")):
                continue
            if src not in images:
                images.append(src)
        return images

    async def fetch_page(self, title: str) -> Optional[PageContent]:
        """
        Fetch page HTML, metadata and images.

        Returns None when the page does not exist or Wikipedia cannot be
        reached; the caller records "No content found".
        """
        metadata = await self.fetch_metadata(title)
        if metadata is None:
            return None

        html = await self.fetch_html(metadata["title"] or title)
        if not html:
            logger.info(f"No HTML returned for {title}")
            return None

        return PageContent(
            title=metadata["title"] or title,
            html=html,
            last_updated=metadata["last_updated"],
            images=self.extract_images(html),
        )

    # ========================================
    # Search & Discovery
    # ========================================

    async def search_title(self, term: str) -> Optional[str]:
        """Title of the best search hit for ``term``, or None."""
        data = await self._get_json(self.api_url, params={
            "action": "query",
            "list": "search",
            "srsearch": term,
            "srlimit": 1,
            "utf8": 1,
            "format": "json",
        })
        if not data:
            return None
        results = data.get("query", {}).get("search", [])
        if not results:
            return None
        return results[0].get("title")

    async def top_pages(self, day: Optional[date] = None) -> List[str]:
        """
        Most-viewed article titles for ``day`` (default: yesterday, UTC).

        Non-article pages (Main_Page, Special:...) are filtered out; titles
        keep their underscore form.
        """
        day = day or (datetime.now(timezone.utc).date() - timedelta(days=1))
        url = f"{self.settings.WIKIMEDIA_TOP_PAGES_URL}/{day:%Y}/{day:%m}/{day:%d}"

        data = await self._get_json(url)
        if not data:
            return []

        items = data.get("items") or []
        if not items:
            return []

        titles = [a.get("article", "") for a in items[0].get("articles", [])]
        return [t for t in titles if is_article_title(t)]
