"""
LLM FAQ Generator

Two-pass FAQ generation with Claude tool use:

1. First pass (``generate_structured_faqs``): the model decides whether to
   call the tool; a reply without a tool call counts as a failed attempt.
2. Second pass (``generate_additional_faqs``): the tool call is forced and
   the prompt lists every existing question plus the images already used,
   offering only the unused ones.

Both passes retry through a RetryPolicy (3 attempts, 1s/2s/4s backoff by
default). First-pass exhaustion returns a GenerationFailed sentinel; the
second pass degrades to an empty list, since the page already has its
first-pass FAQs.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Union

from anthropic import AsyncAnthropic

from wikifaq.core.config import Settings, get_settings
from wikifaq.core.retry import RetryPolicy
from wikifaq.schemas.faq import FaqItem, FirstPassResult, SecondPassResult
from wikifaq.services import prompts

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4
TRUNCATION_MARGIN = 1000


# ========================================
# Content Truncation
# ========================================

def truncate_content(
    content: str,
    media_links: Sequence[str] = (),
    max_tokens: int = 90_000,
) -> str:
    """
    Fit ``content`` plus its media list into ``max_tokens`` (4 chars/token).

    Content that fits is returned unchanged. Otherwise it is cut to the
    budget minus the media text and a 1000-char margin, then back to the
    last sentence boundary (". ") so no sentence is split.
    """
    limit = max_tokens * CHARS_PER_TOKEN
    media_text = "\n".join(media_links)

    if len(content) + len(media_text) <= limit:
        return content

    cut = max(limit - len(media_text) - TRUNCATION_MARGIN, 0)
    truncated = content[:cut]

    last_sentence = truncated.rfind(". ")
    if last_sentence > 0:
        truncated = truncated[:last_sentence + 1]

    logger.info(f"Truncated content from {len(content)} to {len(truncated)} characters")
    return truncated


# ========================================
# Media Bookkeeping
# ========================================

def claim_media(faqs: Iterable[FaqItem], used: Set[str]) -> List[FaqItem]:
    """
    Enforce one use per image across a page.

    Walks ``faqs`` in order; the first FAQ citing a URL keeps it and later
    citations lose it. ``used`` is updated in place so the same set can be
    carried from the first pass into the second.
    """
    claimed = []
    for faq in faqs:
        kept = []
        for link in faq.media_links:
            if link in used:
                continue
            used.add(link)
            kept.append(link)
        claimed.append(faq.model_copy(update={"media_links": kept}))
    return claimed


@dataclass
class GenerationFailed:
    """First-pass exhaustion: the last error and how many attempts were made."""

    error: str
    attempts: int

    def __bool__(self) -> bool:
        return False


class NoToolCallError(Exception):
    """The model replied without calling the expected tool."""
    pass


# ========================================
# Generator
# ========================================

class FaqGenerator:
    """
    FAQ generator using Claude tool use.

    Usage:
    ------
    generator = FaqGenerator(settings)

    first = await generator.generate_first_pass(title, html, last_updated, images)
    if not first:
        # GenerationFailed
        ...
    extra = await generator.generate_second_pass(title, html, first.faqs, unused_images)
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[AsyncAnthropic] = None,
        retry_policy: Optional[RetryPolicy] = None,
        rate_limiter: Any = None,
    ):
        self.settings = settings or get_settings()
        self.model = self.settings.ANTHROPIC_MODEL
        self.max_tokens = self.settings.ANTHROPIC_MAX_TOKENS
        self.temperature = self.settings.ANTHROPIC_TEMPERATURE
        self.token_budget = self.settings.CONTENT_TOKEN_BUDGET

        if client is None:
            if not self.settings.ANTHROPIC_API_KEY:
                raise ValueError("Anthropic API key is required. Set ANTHROPIC_API_KEY in environment.")
            client = AsyncAnthropic(api_key=self.settings.ANTHROPIC_API_KEY)
        self.client = client

        self.retry_policy = retry_policy or RetryPolicy(
            max_attempts=self.settings.LLM_RETRY_ATTEMPTS,
            timeout=self.settings.LLM_CALL_TIMEOUT_SECONDS,
        )
        self.rate_limiter = rate_limiter

        logger.info(f"FaqGenerator initialized with model={self.model}, max_tokens={self.max_tokens}")

    async def _call_tool(
        self,
        system: str,
        user_message: str,
        tool: Dict[str, Any],
        force: bool,
    ) -> Dict[str, Any]:
        """One Messages API call; returns the tool input or raises."""
        if self.rate_limiter is not None:
            await self.rate_limiter.acquire()

        tool_choice = {"type": "tool", "name": tool["name"]} if force else {"type": "auto"}
        response = await self.client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            system=system,
            messages=[{"role": "user", "content": user_message}],
            tools=[tool],
            tool_choice=tool_choice,
        )

        for block in response.content:
            if getattr(block, "type", None) == "tool_use" and block.name == tool["name"]:
                return block.input

        raise NoToolCallError(f"No {tool['name']} call in response (stop_reason={response.stop_reason})")

    # ========================================
    # First Pass
    # ========================================

    async def generate_first_pass(
        self,
        title: str,
        content: str,
        last_updated: Optional[str],
        images: Sequence[str] = (),
    ) -> Union[FirstPassResult, GenerationFailed]:
        """Structured FAQs for a page, or GenerationFailed after all attempts."""
        truncated = truncate_content(content, images, self.token_budget)
        user_message = prompts.build_first_pass_message(
            title, last_updated or "unknown", truncated, list(images)
        )

        async def attempt() -> FirstPassResult:
            payload = await self._call_tool(
                prompts.FIRST_PASS_SYSTEM_PROMPT,
                user_message,
                prompts.FIRST_PASS_TOOL_SCHEMA,
                force=False,
            )
            result = FirstPassResult.model_validate(payload)
            if not result.faqs:
                raise ValueError("First pass returned no valid FAQs")
            return result

        logger.info(f"Generating first-pass FAQs for '{title}'")
        outcome = await self.retry_policy.run(attempt, label=f"first pass '{title}'")

        if not outcome.ok:
            error = f"{type(outcome.error).__name__}: {outcome.error}"
            return GenerationFailed(error=error, attempts=outcome.attempts)

        result = outcome.value
        logger.info(f"First pass produced {len(result.faqs)} FAQs for '{title}'")
        return result

    # ========================================
    # Second Pass
    # ========================================

    async def generate_second_pass(
        self,
        title: str,
        content: str,
        existing_faqs: Sequence[FaqItem],
        images: Sequence[str] = (),
        used_images: Sequence[str] = (),
    ) -> List[FaqItem]:
        """
        Additional FAQs that avoid the existing questions.

        ``images`` should already exclude ``used_images``; any used image the
        model cites anyway is stripped by the caller via claim_media.
        Returns [] when every attempt fails.
        """
        available = [url for url in images if url not in set(used_images)]
        truncated = truncate_content(content, available, self.token_budget)
        user_message = prompts.build_second_pass_message(
            title, truncated, list(existing_faqs), list(used_images), available
        )

        async def attempt() -> SecondPassResult:
            payload = await self._call_tool(
                prompts.SECOND_PASS_SYSTEM_PROMPT,
                user_message,
                prompts.SECOND_PASS_TOOL_SCHEMA,
                force=True,
            )
            return SecondPassResult.model_validate(payload)

        logger.info(f"Generating second-pass FAQs for '{title}'")
        outcome = await self.retry_policy.run(attempt, label=f"second pass '{title}'")

        if not outcome.ok:
            logger.warning(f"Second pass gave up for '{title}', keeping first-pass FAQs only")
            return []

        faqs = outcome.value.additional_faqs
        logger.info(f"Second pass produced {len(faqs)} FAQs for '{title}'")
        return faqs
