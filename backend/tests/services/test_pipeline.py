"""
Tests for PagePipeline.

The pipeline runs with the real queue, repository, generator, cross-link
resolver and indexer; only Wikipedia, the Anthropic client, the embedding
model and the vector store are fakes.
"""

import pytest

from wikifaq.models.faq import QueueSource, QueueStatus
from wikifaq.schemas.faq import PageContent
from wikifaq.services.cross_links import CrossLinkResolver
from wikifaq.services.generator import FaqGenerator
from wikifaq.services.indexer import VectorIndexer
from wikifaq.services.pipeline import (
    FIRST_PASS_FAILED,
    MALFORMED_URL,
    NO_CONTENT,
    NO_NAME,
    PagePipeline,
)
from wikifaq.services.prompts import FIRST_PASS_TOOL, SECOND_PASS_TOOL
from tests.fakes import FakeAnthropic, FakeWikipediaClient, faq, tool_response

IMG_1 = "https://upload.wikimedia.org/einstein.jpg"
IMG_2 = "https://upload.wikimedia.org/ulm.jpg"
IMG_3 = "https://upload.wikimedia.org/nobel.jpg"

PAGE = PageContent(
    title="Albert Einstein",
    html="<p>Albert Einstein was a theoretical physicist. He was born in Ulm.</p>",
    last_updated="2024-05-01T10:00:00Z",
    images=[IMG_1, IMG_2, IMG_3],
)

FIRST_PASS = {
    "title": "Albert Einstein",
    "human_readable_name": "Albert Einstein",
    "last_updated": "2024-05-01T10:00:00Z",
    "faqs": [
        faq("Who was Albert Einstein?", subheader="Biography", media_links=[IMG_1],
            cross_links=["/wiki/Theoretical_physics", "Albert_Einstein"]),
        faq("Where was he born?", subheader="Biography", media_links=[IMG_1, IMG_2],
            cross_links=["Ulm"]),
        faq("What is relativity?", subheader="Science", cross_links=["Physics#History"]),
        faq("When did he win the Nobel Prize?", subheader="Awards"),
        faq("Where did he work?", subheader="Career"),
    ],
}

SECOND_PASS = {
    "additional_faqs": [
        faq("What was his religion?", subheader="Personal life", media_links=[IMG_1]),
        faq("What did he say about the bomb?", subheader="Politics", media_links=[IMG_3],
            cross_links=["Manhattan_Project", "Ulm"]),
    ],
}


@pytest.fixture
def make_pipeline(queue, repository, embedder, vector_store, retry_policy, settings):
    def _make(replies, pages=None):
        client = FakeAnthropic(replies)
        wikipedia = FakeWikipediaClient(pages={"Albert Einstein": PAGE} if pages is None else pages)
        pipeline = PagePipeline(
            queue,
            repository,
            wikipedia,
            FaqGenerator(settings, client=client, retry_policy=retry_policy),
            CrossLinkResolver(queue),
            VectorIndexer(embedder, vector_store, repository, batch_size=50),
        )
        return pipeline, client
    return _make


async def claimed_entry(queue, title="Albert Einstein", **kwargs):
    entry, _ = await queue.enqueue(title, **kwargs)
    return await queue.claim(entry.id)


class TestPagePipelineSuccess:

    async def test_two_pass_page(self, make_pipeline, queue, repository, vector_store):
        pipeline, client = make_pipeline([
            tool_response(FIRST_PASS_TOOL, FIRST_PASS),
            tool_response(SECOND_PASS_TOOL, SECOND_PASS),
        ])
        entry = await claimed_entry(queue)

        outcome = await pipeline.process(entry)

        assert outcome.success
        assert outcome.first_pass_count == 5
        assert outcome.second_pass_count == 2
        assert outcome.indexed_count == 7

        # One FAQ file, seven records, all flagged
        faq_file = await repository.get_faq_file_by_slug("albert-einstein")
        assert faq_file.human_readable_name == "Albert Einstein"
        assert await repository.count_records_for_file(faq_file.id) == 7
        assert await repository.list_unflagged_record_ids(limit=100) == []

        # Seven vectors in a single upsert call
        assert len(vector_store.vectors) == 7
        assert vector_store.upsert_calls == 1
        assert {v.metadata["slug"] for v in vector_store.vectors.values()} == {"albert-einstein"}

        stored = await repository.get_queue_entry(entry.id)
        assert stored.status == QueueStatus.COMPLETED
        assert stored.processed_at is not None

    async def test_each_image_used_once(self, make_pipeline, queue, repository, vector_store):
        pipeline, _ = make_pipeline([
            tool_response(FIRST_PASS_TOOL, FIRST_PASS),
            tool_response(SECOND_PASS_TOOL, SECOND_PASS),
        ])
        entry = await claimed_entry(queue)

        await pipeline.process(entry)

        media = [v.metadata["media_link"] for v in vector_store.vectors.values() if v.metadata["media_link"]]
        assert sorted(media) == sorted([IMG_1, IMG_2, IMG_3])

    async def test_second_pass_sees_first_pass(self, make_pipeline, queue):
        pipeline, client = make_pipeline([
            tool_response(FIRST_PASS_TOOL, FIRST_PASS),
            tool_response(SECOND_PASS_TOOL, SECOND_PASS),
        ])

        await pipeline.process(await claimed_entry(queue))

        first_call, second_call = client.messages.calls
        assert first_call["tool_choice"] == {"type": "auto"}
        assert second_call["tool_choice"] == {"type": "tool", "name": SECOND_PASS_TOOL}

        message = second_call["messages"][0]["content"]
        for item in FIRST_PASS["faqs"]:
            assert item["question"] in message
        available = message.split("Images still available:", 1)[1].split("Content:", 1)[0]
        assert IMG_3 in available
        assert IMG_1 not in available and IMG_2 not in available

    async def test_cross_links_enqueued(self, make_pipeline, queue, repository):
        pipeline, _ = make_pipeline([
            tool_response(FIRST_PASS_TOOL, FIRST_PASS),
            tool_response(SECOND_PASS_TOOL, SECOND_PASS),
        ])

        outcome = await pipeline.process(await claimed_entry(queue))

        assert outcome.discovered_count == 3
        for slug in ("theoretical-physics", "ulm", "manhattan-project"):
            discovered = await repository.get_queue_entry_by_slug(slug)
            assert discovered.source == QueueSource.CROSS_LINK
            assert discovered.status == QueueStatus.PENDING
        assert await repository.get_queue_entry_by_slug("physics") is None

    async def test_entry_name_wins_over_llm(self, make_pipeline, queue, repository):
        pipeline, _ = make_pipeline([
            tool_response(FIRST_PASS_TOOL, FIRST_PASS),
            tool_response(SECOND_PASS_TOOL, {"additional_faqs": []}),
        ])
        entry = await claimed_entry(queue, human_readable_name="Einstein")

        await pipeline.process(entry)

        faq_file = await repository.get_faq_file_by_slug("albert-einstein")
        assert faq_file.human_readable_name == "Einstein"

    async def test_second_pass_failure_keeps_first_pass(self, make_pipeline, queue, repository, vector_store):
        pipeline, _ = make_pipeline([
            tool_response(FIRST_PASS_TOOL, FIRST_PASS),
            RuntimeError("overloaded"),
            RuntimeError("overloaded"),
            RuntimeError("overloaded"),
        ])
        entry = await claimed_entry(queue)

        outcome = await pipeline.process(entry)

        assert outcome.success
        assert outcome.record_count == 5
        assert len(vector_store.vectors) == 5
        assert (await repository.get_queue_entry(entry.id)).status == QueueStatus.COMPLETED

    async def test_vector_failure_does_not_fail_page(self, make_pipeline, queue, repository, vector_store):
        pipeline, _ = make_pipeline([
            tool_response(FIRST_PASS_TOOL, FIRST_PASS),
            tool_response(SECOND_PASS_TOOL, SECOND_PASS),
        ])
        vector_store.fail_upserts = 1
        entry = await claimed_entry(queue)

        outcome = await pipeline.process(entry)

        assert outcome.success
        assert outcome.indexed_count == 0
        assert len(await repository.list_unflagged_record_ids(limit=100)) == 7
        assert (await repository.get_queue_entry(entry.id)).status == QueueStatus.COMPLETED


class TestPagePipelineFailures:

    async def test_malformed_url(self, make_pipeline, queue, repository):
        pipeline, client = make_pipeline([])
        entry = await claimed_entry(queue, url="not-a-url")

        outcome = await pipeline.process(entry)

        assert not outcome.success
        stored = await repository.get_queue_entry(entry.id)
        assert stored.status == QueueStatus.FAILED
        assert stored.error_message == MALFORMED_URL
        assert client.messages.calls == []

    async def test_missing_page(self, make_pipeline, queue, repository):
        pipeline, client = make_pipeline([], pages={})
        entry = await claimed_entry(queue)

        await pipeline.process(entry)

        stored = await repository.get_queue_entry(entry.id)
        assert stored.status == QueueStatus.FAILED
        assert stored.error_message == NO_CONTENT
        assert client.messages.calls == []

    async def test_first_pass_exhaustion(self, make_pipeline, queue, repository, sleep):
        pipeline, client = make_pipeline([
            ConnectionError("overloaded"),
            ConnectionError("overloaded"),
            ConnectionError("overloaded"),
        ])
        entry = await claimed_entry(queue)

        await pipeline.process(entry)

        stored = await repository.get_queue_entry(entry.id)
        assert stored.status == QueueStatus.FAILED
        assert stored.error_message == f"{FIRST_PASS_FAILED}: ConnectionError: overloaded"
        assert len(client.messages.calls) == 3
        assert sleep.calls == [1, 2]
        assert await repository.get_faq_file_by_slug("albert-einstein") is None

    async def test_no_human_readable_name(self, make_pipeline, queue, repository):
        nameless = {**FIRST_PASS, "human_readable_name": ""}
        pipeline, _ = make_pipeline([tool_response(FIRST_PASS_TOOL, nameless)])
        entry = await claimed_entry(queue)

        await pipeline.process(entry)

        stored = await repository.get_queue_entry(entry.id)
        assert stored.status == QueueStatus.FAILED
        assert stored.error_message == NO_NAME
        assert await repository.get_faq_file_by_slug("albert-einstein") is None


class TestPassOrdering:

    async def test_first_pass_records_precede_second_pass(self, make_pipeline, queue, repository, vector_store):
        pipeline, _ = make_pipeline([
            tool_response(FIRST_PASS_TOOL, FIRST_PASS),
            tool_response(SECOND_PASS_TOOL, SECOND_PASS),
        ])

        await pipeline.process(await claimed_entry(queue))

        records = await repository.get_records([int(vector_id) for vector_id in vector_store.vectors])
        first_questions = {item["question"] for item in FIRST_PASS["faqs"]}
        first = [r for r in records if r.question in first_questions]
        second = [r for r in records if r.question not in first_questions]

        assert len(first) == 5 and len(second) == 2
        assert max(r.created_at for r in first) <= min(r.created_at for r in second)
        assert max(r.id for r in first) < min(r.id for r in second)

    async def test_second_pass_gets_no_images_when_first_pass_used_all(
        self, make_pipeline, queue, repository, vector_store
    ):
        page = PageContent(
            title="Albert Einstein",
            html="<p>Albert Einstein was born in Ulm.</p>",
            last_updated="2024-05-01T10:00:00Z",
            images=[IMG_1, IMG_2],
        )
        first_pass = {
            **FIRST_PASS,
            "faqs": [
                faq("Who was Albert Einstein?", media_links=[IMG_1]),
                faq("Where was he born?", media_links=[IMG_2]),
            ],
        }
        second_pass = {"additional_faqs": [faq("What was his religion?", media_links=[IMG_1])]}
        pipeline, client = make_pipeline(
            [
                tool_response(FIRST_PASS_TOOL, first_pass),
                tool_response(SECOND_PASS_TOOL, second_pass),
            ],
            pages={"Albert Einstein": page},
        )

        outcome = await pipeline.process(await claimed_entry(queue))

        assert outcome.success
        message = client.messages.calls[1]["messages"][0]["content"]
        available = message.split("Images still available:", 1)[1].split("Content:", 1)[0]
        assert available.strip() == "(none)"

        media = {v.metadata["question"]: v.metadata["media_link"] for v in vector_store.vectors.values()}
        assert media == {
            "Who was Albert Einstein?": IMG_1,
            "Where was he born?": IMG_2,
            "What was his religion?": "",
        }
