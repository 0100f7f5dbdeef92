"""
Cross-link resolver.

Turns the article references the LLM attaches to each FAQ into queue
entries, which is how the crawl grows beyond its seeds. References arrive in
every shape the model can think of ("Pro_Football_Hall_of_Fame",
"/wiki/Pro_Football_Hall_of_Fame", full URLs, percent-encoded names,
anchors); only references to whole articles survive.
"""

import logging
import re
from typing import Iterable, List, Optional
from urllib.parse import unquote

from sqlalchemy.exc import SQLAlchemyError

from wikifaq.models.faq import QueueEntry, QueueSource
from wikifaq.schemas.faq import FaqItem
from wikifaq.services.queue import ProcessingQueue
from wikifaq.services.wikipedia import WikipediaClient, format_slug, page_url

logger = logging.getLogger(__name__)

_WIKI_PREFIX = re.compile(r"^(?:https?:)?(?://)?[^/]*/wiki/", re.IGNORECASE)


def normalize_reference(reference: Optional[str]) -> Optional[str]:
    """
    Bare, decoded article name for a reference, or None to drop it.

        >>> normalize_reference("/wiki/Auckland_Zoo")
        'Auckland_Zoo'
        >>> normalize_reference("Auckland_Zoo#Major_exhibits") is None
        True
    """
    if not reference or not isinstance(reference, str):
        return None

    ref = reference.strip()
    if not ref or "#" in ref or "redirected from" in ref.lower():
        return None

    ref = _WIKI_PREFIX.sub("", ref)
    try:
        ref = unquote(ref, errors="strict")
    except UnicodeDecodeError:
        return None

    ref = ref.strip().strip("/")
    return ref or None


def reference_to_title(name: str) -> str:
    return name.replace("_", " ").strip()


def collect_references(faqs: Iterable[FaqItem]) -> List[str]:
    """Every cross-link of every FAQ, in order."""
    return [link for faq in faqs for link in faq.cross_links]


class CrossLinkResolver:
    """
    Normalise cross-links and enqueue them with source=cross_link.

    Discovery is auxiliary to the page being processed: a link that cannot
    be stored is logged and skipped, never failing the page.
    """

    def __init__(
        self,
        queue: ProcessingQueue,
        wikipedia: Optional[WikipediaClient] = None,
        search_enabled: bool = False,
    ):
        self.queue = queue
        self.wikipedia = wikipedia
        self.search_enabled = search_enabled and wikipedia is not None

    async def _resolve_title(self, title: str) -> str:
        """Canonical title via search, falling back to the literal title."""
        if not self.search_enabled:
            return title
        try:
            found = await self.wikipedia.search_title(title)
        except Exception as e:
            logger.warning(f"Title search failed for '{title}': {e}")
            return title
        return found or title

    async def resolve_and_enqueue(
        self,
        references: Iterable[str],
        exclude_slug: Optional[str] = None,
    ) -> List[QueueEntry]:
        """
        Enqueue every valid reference once.

        Args:
            references: Raw cross-links from generated FAQs
            exclude_slug: Slug of the page being processed (self-links are skipped)

        Returns:
            Newly created queue entries (already-queued slugs are not included)
        """
        seen = {exclude_slug} if exclude_slug else set()
        created: List[QueueEntry] = []

        for reference in references:
            name = normalize_reference(reference)
            if name is None:
                continue

            title = await self._resolve_title(reference_to_title(name))
            slug = format_slug(title)
            if not slug or slug in seen:
                continue
            seen.add(slug)

            try:
                entry, was_created = await self.queue.enqueue(
                    title,
                    source=QueueSource.CROSS_LINK,
                    url=page_url(title, self.queue.base_url),
                )
            except (SQLAlchemyError, ValueError) as e:
                logger.error(f"Could not enqueue cross-link '{title}': {e}")
                continue

            if was_created:
                created.append(entry)

        if created:
            logger.info(f"Discovered {len(created)} new pages from cross-links")
        return created
