"""
Tests for cross-link normalisation and discovery.
"""

import pytest

from wikifaq.models.faq import QueueSource
from wikifaq.schemas.faq import FaqItem
from wikifaq.services.cross_links import (
    CrossLinkResolver,
    collect_references,
    normalize_reference,
    reference_to_title,
)
from tests.fakes import FakeWikipediaClient


class TestNormalizeReference:

    @pytest.mark.parametrize("reference,expected", [
        ("Pro_Football_Hall_of_Fame", "Pro_Football_Hall_of_Fame"),
        ("/wiki/Pro_Football_Hall_of_Fame", "Pro_Football_Hall_of_Fame"),
        ("https://en.wikipedia.org/wiki/Isaac_Newton", "Isaac_Newton"),
        ("//en.wikipedia.org/wiki/Isaac_Newton", "Isaac_Newton"),
        ("en.wikipedia.org/wiki/Ulm", "Ulm"),
        ("EN.M.WIKIPEDIA.ORG/wiki/Ulm", "Ulm"),
        ("AC/DC", "AC/DC"),
        ("/wiki/Erd%C5%91s_number", "Erdős_number"),
        ("  Physics  ", "Physics"),
    ])
    def test_valid_references(self, reference, expected):
        assert normalize_reference(reference) == expected

    @pytest.mark.parametrize("reference", [
        None,
        "",
        "   ",
        "Auckland_Zoo#Major_exhibits",
        "/wiki/Physics#History",
        "Einstein (redirected from Albert)",
        "/wiki/Bad%FFencoding",
    ])
    def test_rejected_references(self, reference):
        assert normalize_reference(reference) is None

    def test_reference_to_title(self):
        assert reference_to_title("Isaac_Newton") == "Isaac Newton"

    def test_collect_references_keeps_order(self):
        faqs = [
            FaqItem(question="Q1", answer="A", cross_links=["Physics", "Isaac_Newton"]),
            FaqItem(question="Q2", answer="A"),
            FaqItem(question="Q3", answer="A", cross_links=["Ulm"]),
        ]
        assert collect_references(faqs) == ["Physics", "Isaac_Newton", "Ulm"]


class TestCrossLinkResolver:

    async def test_enqueues_new_pages_once(self, queue):
        resolver = CrossLinkResolver(queue)

        created = await resolver.resolve_and_enqueue([
            "/wiki/Isaac_Newton",
            "Isaac_Newton",
            "https://en.wikipedia.org/wiki/Isaac_Newton",
            "Physics",
            "Physics#History",
        ])

        assert [entry.slug for entry in created] == ["isaac-newton", "physics"]
        assert all(entry.source == QueueSource.CROSS_LINK for entry in created)
        assert created[0].url == "https://en.wikipedia.org/wiki/Isaac_Newton"

    async def test_skips_self_links(self, queue):
        resolver = CrossLinkResolver(queue)

        created = await resolver.resolve_and_enqueue(
            ["Albert_Einstein", "Ulm"], exclude_slug="albert-einstein"
        )

        assert [entry.slug for entry in created] == ["ulm"]

    async def test_already_queued_not_returned(self, queue):
        await queue.enqueue("Physics")
        resolver = CrossLinkResolver(queue)

        created = await resolver.resolve_and_enqueue(["Physics"])

        assert created == []
        assert (await queue.stats())["pending"] == 1

    async def test_search_resolves_canonical_title(self, queue):
        wikipedia = FakeWikipediaClient(search_hits={"Newton": "Isaac Newton"})
        resolver = CrossLinkResolver(queue, wikipedia, search_enabled=True)

        created = await resolver.resolve_and_enqueue(["Newton", "Ulm"])

        assert [entry.title for entry in created] == ["Isaac Newton", "Ulm"]

    async def test_enqueue_error_is_skipped(self, queue, monkeypatch):
        resolver = CrossLinkResolver(queue)
        real_enqueue = queue.enqueue

        async def flaky_enqueue(title, **kwargs):
            if title == "Broken":
                raise ValueError("cannot store")
            return await real_enqueue(title, **kwargs)

        monkeypatch.setattr(queue, "enqueue", flaky_enqueue)

        created = await resolver.resolve_and_enqueue(["Broken", "Ulm"])

        assert [entry.slug for entry in created] == ["ulm"]
