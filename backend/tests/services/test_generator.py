"""
Tests for FaqGenerator.

This module tests:
- Content truncation at sentence boundaries
- One-use-per-image media bookkeeping
- First pass: tool use left to the model, retries, GenerationFailed
- Second pass: forced tool use, prompt contents, degradation to []
- Rate limiter acquisition before every call
"""

import pytest

from wikifaq.core.retry import RetryPolicy
from wikifaq.schemas.faq import FaqItem
from wikifaq.services.generator import (
    FaqGenerator,
    GenerationFailed,
    claim_media,
    truncate_content,
)
from wikifaq.services.prompts import FIRST_PASS_TOOL, SECOND_PASS_TOOL
from tests.fakes import FakeAnthropic, faq, text_response, tool_response

IMG_A = "https://upload.wikimedia.org/a.jpg"
IMG_B = "https://upload.wikimedia.org/b.jpg"
IMG_C = "https://upload.wikimedia.org/c.jpg"


def first_pass_payload(*faqs):
    return {
        "title": "Albert Einstein",
        "human_readable_name": "Albert Einstein",
        "last_updated": "2024-05-01T10:00:00Z",
        "faqs": list(faqs),
    }


@pytest.fixture
def make_generator(settings, retry_policy):
    def _make(replies, **kwargs):
        client = FakeAnthropic(replies)
        generator = FaqGenerator(settings, client=client, retry_policy=retry_policy, **kwargs)
        return generator, client
    return _make


# ========================================
# Truncation
# ========================================

class TestTruncateContent:

    def test_short_content_unchanged(self):
        assert truncate_content("Short. Text.", max_tokens=100) == "Short. Text."

    def test_long_content_cut_at_sentence(self):
        content = "This is a sentence. " * 1000  # 20,000 chars
        truncated = truncate_content(content, max_tokens=2000)  # 8,000 char budget

        assert len(truncated) <= 8000 - 1000
        assert truncated.endswith(".")
        assert content.startswith(truncated)

    def test_media_counts_against_budget(self):
        content = "Word. " * 500  # 3,000 chars
        media = ["https://upload.wikimedia.org/" + "x" * 100] * 10

        assert truncate_content(content, max_tokens=1000) == content
        assert len(truncate_content(content, media, max_tokens=1000)) < len(content)


# ========================================
# Media Bookkeeping
# ========================================

class TestClaimMedia:

    def test_first_citation_keeps_image(self):
        used = set()
        faqs = [
            FaqItem(question="Q1", answer="A", media_links=[IMG_A]),
            FaqItem(question="Q2", answer="A", media_links=[IMG_A, IMG_B]),
        ]

        claimed = claim_media(faqs, used)

        assert claimed[0].media_links == [IMG_A]
        assert claimed[1].media_links == [IMG_B]
        assert used == {IMG_A, IMG_B}
        # Originals untouched
        assert faqs[1].media_links == [IMG_A, IMG_B]

    def test_used_set_carries_across_passes(self):
        used = {IMG_A}
        claimed = claim_media([FaqItem(question="Q", answer="A", media_links=[IMG_A])], used)
        assert claimed[0].media_links == []


# ========================================
# First Pass
# ========================================

class TestFirstPass:

    async def test_success(self, make_generator):
        generator, client = make_generator([
            tool_response(FIRST_PASS_TOOL, first_pass_payload(faq("Who was he?"), faq("Where was he born?"))),
        ])

        result = await generator.generate_first_pass(
            "Albert Einstein", "<p>Content</p>", "2024-05-01T10:00:00Z", [IMG_A]
        )

        assert result
        assert result.human_readable_name == "Albert Einstein"
        assert [f.question for f in result.faqs] == ["Who was he?", "Where was he born?"]

        call = client.messages.calls[0]
        assert call["tool_choice"] == {"type": "auto"}
        assert call["tools"][0]["name"] == FIRST_PASS_TOOL
        assert IMG_A in call["messages"][0]["content"]

    async def test_no_tool_call_is_retried(self, make_generator, sleep):
        generator, client = make_generator([
            text_response(),
            tool_response(FIRST_PASS_TOOL, first_pass_payload(faq("Who was he?"))),
        ])

        result = await generator.generate_first_pass("Albert Einstein", "Content", None)

        assert len(result.faqs) == 1
        assert len(client.messages.calls) == 2
        assert sleep.calls == [1]

    async def test_empty_faqs_count_as_failure(self, make_generator):
        generator, client = make_generator([
            tool_response(FIRST_PASS_TOOL, first_pass_payload()),
            tool_response(FIRST_PASS_TOOL, first_pass_payload(faq("", "invalid"))),
            tool_response(FIRST_PASS_TOOL, first_pass_payload()),
        ])

        result = await generator.generate_first_pass("Albert Einstein", "Content", None)

        assert isinstance(result, GenerationFailed)
        assert result.attempts == 3
        assert "no valid FAQs" in result.error

    async def test_exhaustion_returns_generation_failed(self, make_generator, sleep):
        generator, client = make_generator([
            ConnectionError("overloaded"),
            ConnectionError("overloaded"),
            ConnectionError("still overloaded"),
        ])

        result = await generator.generate_first_pass("Albert Einstein", "Content", None)

        assert not result
        assert result == GenerationFailed(error="ConnectionError: still overloaded", attempts=3)
        assert sleep.calls == [1, 2]

    async def test_rate_limiter_acquired_per_call(self, make_generator):
        acquired = []

        class Limiter:
            async def acquire(self):
                acquired.append(True)

        generator, _ = make_generator([
            text_response(),
            tool_response(FIRST_PASS_TOOL, first_pass_payload(faq("Q"))),
        ], rate_limiter=Limiter())

        await generator.generate_first_pass("Albert Einstein", "Content", None)

        assert len(acquired) == 2

    def test_requires_api_key_without_client(self, settings):
        settings.ANTHROPIC_API_KEY = None
        with pytest.raises(ValueError, match="ANTHROPIC_API_KEY"):
            FaqGenerator(settings, retry_policy=RetryPolicy())


# ========================================
# Second Pass
# ========================================

class TestSecondPass:

    async def test_forced_tool_and_prompt_contents(self, make_generator):
        generator, client = make_generator([
            tool_response(SECOND_PASS_TOOL, {"additional_faqs": [faq("What did he win?")]}),
        ])
        existing = [
            FaqItem(question="Who was he?", answer="A physicist.", subheader="Biography"),
            FaqItem(question="Where was he born?", answer="Ulm."),
        ]

        faqs = await generator.generate_second_pass(
            "Albert Einstein", "Content", existing, images=[IMG_A, IMG_B, IMG_C], used_images=[IMG_A]
        )

        assert [f.question for f in faqs] == ["What did he win?"]

        call = client.messages.calls[0]
        assert call["tool_choice"] == {"type": "tool", "name": SECOND_PASS_TOOL}
        assert call["tools"][0]["name"] == SECOND_PASS_TOOL

        message = call["messages"][0]["content"]
        assert "Who was he?" in message
        assert "Where was he born?" in message
        assert "Biography" in message
        assert IMG_B in message and IMG_C in message

    async def test_used_images_not_offered(self, make_generator):
        generator, client = make_generator([
            tool_response(SECOND_PASS_TOOL, {"additional_faqs": []}),
        ])

        await generator.generate_second_pass(
            "Albert Einstein", "Content", [], images=[IMG_A, IMG_B], used_images=[IMG_A]
        )

        message = client.messages.calls[0]["messages"][0]["content"]
        offered = message.split("Images still available:", 1)[1].split("Content:", 1)[0]
        assert f"[Image 1]: {IMG_B}" in offered
        assert IMG_A not in offered
        assert f"- {IMG_A}" in message

    async def test_exhaustion_returns_empty_list(self, make_generator):
        generator, _ = make_generator([RuntimeError("boom")] * 3)

        faqs = await generator.generate_second_pass("Albert Einstein", "Content", [])

        assert faqs == []
