from __future__ import annotations

import asyncio
import json

from transclone.cloner import (
    CANCELLED,
    CLONE_FAILED,
    NO_STORE_RESPONSE,
    PROCESSING_FAILED,
    BatchCloneOrchestrator,
    CloneState,
)
from transclone.documents import collect_fragments
from transclone.errors import ErrorCategory
from transclone.providers import EchoTranslationProvider, TranslationProvider
from transclone.stores import InMemoryContentStore
from transclone.structures import CloneFailure, ClonePair, ContentItem, StoreCloneResponse


class FixedCloneStore(InMemoryContentStore):
    """Returns a scripted bulk clone response."""

    def __init__(self, items, response: StoreCloneResponse | None = None, error=None):
        super().__init__(items)
        self.response = response
        self.error = error

    async def clone_many(self, ids, target_language):
        if self.error is not None:
            raise self.error
        return self.response


def _post(item_id, title, body="<p>Body</p>", **kwargs):
    return ContentItem(id=item_id, post_type="post", title=title, body=body, **kwargs)


def test_example_batch_reports_one_outcome_per_id(scripted_provider, make_translator):
    store = FixedCloneStore(
        [
            _post(10, "Source 10"),
            _post(11, "Source 11"),
            _post(12, "Source 12"),
            _post(20, "Source 10"),
            _post(22, "Source 12"),
        ],
        StoreCloneResponse(
            success=[ClonePair(10, 20, "post"), ClonePair(12, 22, "post")],
            failed=[CloneFailure(id=11, reason="Post type not supported")],
        ),
    )

    def translate(blocks, target_language):
        if blocks["title"] == "Source 12":
            raise RuntimeError("model overloaded")
        return {key: f"[fr] {value}" for key, value in blocks.items()}

    orchestrator = BatchCloneOrchestrator(store, make_translator(scripted_provider(translate)))

    report = asyncio.run(orchestrator.clone([10, 11, 12], "fr"))

    assert report.to_dict() == {
        "success": [{"originalId": 10, "cloneId": 20}],
        "failed": [
            {"id": 11, "reason": "clone failed"},
            {"id": 12, "reason": "Failed to translate or update content after cloning"},
        ],
    }
    assert report.failed[0].detail == "Post type not supported"
    assert store.items[20].title == "[fr] Source 10"
    assert store.items[20].status == "draft"
    assert store.items[22].title == "Source 12"


def test_structured_pages_are_translated_fragment_by_fragment(
    sample_document, sample_fragments, upper_provider, make_translator
):
    page = ContentItem(
        id=5,
        post_type="page",
        title="Home",
        document=json.dumps(sample_document),
    )
    store = InMemoryContentStore([page], next_id=50)
    orchestrator = BatchCloneOrchestrator(store, make_translator(upper_provider))

    report = asyncio.run(orchestrator.clone([5], "es"))

    assert [pair.clone_id for pair in report.success] == [50]
    clone = store.items[50]
    assert clone.title == "HOME"
    assert clone.status == "draft"
    assert collect_fragments(clone.document) == [text.upper() for text in sample_fragments]
    assert "content" not in upper_provider.calls[0]
    assert store.items[5].document == json.dumps(sample_document)


def test_short_translation_keeps_source_text_and_warns(
    sample_document, sample_fragments, scripted_provider, make_translator
):
    last = f"fragment.{len(sample_fragments) - 1}"

    def drop_last(blocks, target_language):
        return {key: value.upper() for key, value in blocks.items() if key != last}

    page = ContentItem(id=5, post_type="page", title="Home", document=sample_document)
    store = InMemoryContentStore([page], next_id=50)
    translator = make_translator(scripted_provider(drop_last))
    orchestrator = BatchCloneOrchestrator(store, translator)

    report = asyncio.run(orchestrator.clone([5], "es"))

    assert len(report.success) == 1
    assert len(report.warnings) == 1
    assert translator.error_policy.count(ErrorCategory.STRUCTURE) == 1
    translated = collect_fragments(store.items[50].document)
    assert translated[:-1] == [text.upper() for text in sample_fragments[:-1]]
    assert translated[-1] == sample_fragments[-1]


def test_malformed_page_data_falls_back_to_body_translation(upper_provider, make_translator):
    page = ContentItem(
        id=5, post_type="page", title="Home", body="<p>Hi</p>", document="{broken"
    )
    store = InMemoryContentStore([page], next_id=50)
    translator = make_translator(upper_provider)
    orchestrator = BatchCloneOrchestrator(store, translator)

    report = asyncio.run(orchestrator.clone([5], "es"))

    assert len(report.success) == 1
    assert store.items[50].body == "<P>HI</P>"
    assert upper_provider.calls == [{"title": "Home", "content": "<p>Hi</p>"}]
    assert translator.error_policy.count(ErrorCategory.FORMAT) == 1


def test_products_translate_descriptions_and_suffix_sku(upper_provider, make_translator):
    product = ContentItem(
        id=7,
        post_type="product",
        title="Rye loaf",
        body="Dense and dark.",
        extra_blocks={"short_description": "Dark rye"},
        sku="RYE-1",
    )
    store = InMemoryContentStore([product], next_id=70)
    orchestrator = BatchCloneOrchestrator(store, make_translator(upper_provider))

    asyncio.run(orchestrator.clone([7], "de"))

    clone = store.items[70]
    assert clone.title == "RYE LOAF"
    assert clone.body == "DENSE AND DARK."
    assert clone.extra_blocks == {"short_description": "DARK RYE"}
    assert clone.sku == "RYE-1-DE"
    assert clone.status == "draft"


def test_duplicates_and_unknown_ids_each_get_an_outcome(make_translator):
    store = InMemoryContentStore([_post(1, "One")], next_id=100)
    orchestrator = BatchCloneOrchestrator(store, make_translator(EchoTranslationProvider()))

    report = asyncio.run(orchestrator.clone([1, 1, 404], "fr"))

    assert report.total == 3
    assert [(pair.original_id, pair.clone_id) for pair in report.success] == [(1, 100), (1, 101)]
    assert [(failure.id, failure.reason) for failure in report.failed] == [(404, CLONE_FAILED)]


def test_ids_missing_from_store_response_fail_explicitly(make_translator):
    store = FixedCloneStore(
        [_post(1, "One"), _post(9, "Nine")],
        StoreCloneResponse(success=[ClonePair(1, 9, "post")]),
    )
    orchestrator = BatchCloneOrchestrator(store, make_translator(EchoTranslationProvider()))

    report = asyncio.run(orchestrator.clone([1, 2], "fr"))

    assert [pair.clone_id for pair in report.success] == [9]
    assert report.failed[0].id == 2
    assert report.failed[0].reason == CLONE_FAILED
    assert report.failed[0].detail == NO_STORE_RESPONSE


def test_store_ids_returned_as_strings_still_match(make_translator):
    store = FixedCloneStore(
        [_post(1, "One"), _post("9", "Nine")],
        StoreCloneResponse(success=[ClonePair("1", "9", "post")]),
    )
    orchestrator = BatchCloneOrchestrator(store, make_translator(EchoTranslationProvider()))

    report = asyncio.run(orchestrator.clone([1], "fr"))

    assert report.success == [ClonePair(original_id=1, clone_id="9", post_type="post")]


def test_bulk_clone_error_fails_every_id(make_translator):
    store = FixedCloneStore([], error=ConnectionError("site down"))
    orchestrator = BatchCloneOrchestrator(store, make_translator(EchoTranslationProvider()))

    report = asyncio.run(orchestrator.clone([1, 2, 3], "fr"))

    assert report.success == []
    assert [failure.reason for failure in report.failed] == [CLONE_FAILED] * 3
    assert all(failure.detail == "site down" for failure in report.failed)


def test_update_failure_is_isolated_to_its_item(make_translator):
    class BrokenUpdateStore(InMemoryContentStore):
        async def update(self, item_id, update, *, post_type=None):
            if item_id == 100:
                raise RuntimeError("HTTP 500")
            await super().update(item_id, update, post_type=post_type)

    store = BrokenUpdateStore([_post(1, "One"), _post(2, "Two")], next_id=100)
    orchestrator = BatchCloneOrchestrator(store, make_translator(EchoTranslationProvider()))

    report = asyncio.run(orchestrator.clone([1, 2], "fr"))

    assert [pair.original_id for pair in report.success] == [2]
    assert report.failed[0].id == 1
    assert report.failed[0].reason == PROCESSING_FAILED
    assert report.failed[0].detail == "injected: HTTP 500"
    assert orchestrator.states == {0: CloneState.FAILED, 1: CloneState.SUCCEEDED}


def test_progress_events_follow_the_clone_lifecycle(make_translator):
    store = InMemoryContentStore([_post(1, "One")], next_id=100)
    events = []
    orchestrator = BatchCloneOrchestrator(
        store,
        make_translator(EchoTranslationProvider()),
        on_progress=events.append,
    )

    asyncio.run(orchestrator.clone([1, 2], "fr"))

    assert [(event.id, event.status, event.progress) for event in events] == [
        (2, "failed", 0),
        (1, "cloning", 25),
        (1, "translating", 50),
        (1, "updating", 75),
        (1, "success", 100),
    ]


def test_cancel_stops_remaining_items(make_translator):
    store = InMemoryContentStore([_post(1, "One"), _post(2, "Two")], next_id=100)
    orchestrator = BatchCloneOrchestrator(store, make_translator(EchoTranslationProvider()))

    def cancel_after_first(event):
        if event.status == "success":
            orchestrator.cancel()

    orchestrator.on_progress = cancel_after_first

    report = asyncio.run(orchestrator.clone([1, 2], "fr"))

    assert [pair.original_id for pair in report.success] == [1]
    assert [(failure.id, failure.reason) for failure in report.failed] == [(2, CANCELLED)]


def test_concurrent_processing_keeps_one_outcome_per_id(scripted_provider, make_translator):
    def translate(blocks, target_language):
        if blocks["title"] == "Two":
            raise RuntimeError("boom")
        return dict(blocks)

    store = InMemoryContentStore(
        [_post(1, "One"), _post(2, "Two"), _post(3, "Three")], next_id=100
    )
    orchestrator = BatchCloneOrchestrator(
        store,
        make_translator(scripted_provider(translate)),
        max_concurrency=3,
    )

    report = asyncio.run(orchestrator.clone([1, 2, 3], "fr"))

    assert report.total == 3
    assert sorted(pair.original_id for pair in report.success) == [1, 3]
    assert [failure.id for failure in report.failed] == [2]


class YieldingProvider(TranslationProvider):
    """Hands control back to the event loop before answering."""

    name = "yielding"

    async def translate(self, blocks, *, target_language, source_language=None, model=None):
        await asyncio.sleep(0)
        if blocks["title"] == "A":
            raise RuntimeError("boom")
        return dict(blocks)


def test_cancel_does_not_carry_over_to_the_next_batch(make_translator):
    store = InMemoryContentStore(
        [_post(1, "One"), _post(2, "Two"), _post(3, "Three")], next_id=100
    )
    orchestrator = BatchCloneOrchestrator(store, make_translator(EchoTranslationProvider()))

    def cancel_after_first(event):
        if event.status == "success":
            orchestrator.cancel()

    orchestrator.on_progress = cancel_after_first
    first = asyncio.run(orchestrator.clone([1, 2], "fr"))
    orchestrator.on_progress = None
    orchestrator.cancel()
    second = asyncio.run(orchestrator.clone([3], "fr"))

    assert [failure.reason for failure in first.failed] == [CANCELLED]
    assert [pair.original_id for pair in second.success] == [3]
    assert second.failed == []


def test_overlapping_batches_keep_their_own_states(make_translator):
    store = InMemoryContentStore([_post(1, "A"), _post(2, "B")], next_id=100)
    translator = make_translator(YieldingProvider())
    orchestrator = BatchCloneOrchestrator(store, translator)

    async def run_both():
        return await asyncio.gather(
            orchestrator.clone([1], "fr"),
            orchestrator.clone([2], "fr"),
        )

    first, second = asyncio.run(run_both())

    assert first.failed[0].detail == "extracted: boom"
    assert [pair.original_id for pair in second.success] == [2]
    assert translator.error_policy.count(ErrorCategory.TRANSLATION) == 1
    assert translator.error_policy.count(ErrorCategory.OTHER) == 0


def test_failing_progress_callback_does_not_stop_the_batch(make_translator):
    store = InMemoryContentStore([_post(1, "One")], next_id=100)
    translator = make_translator(EchoTranslationProvider())

    def broken_pipe(event):
        raise BrokenPipeError("stdout closed")

    orchestrator = BatchCloneOrchestrator(store, translator, on_progress=broken_pipe)

    report = asyncio.run(orchestrator.clone([1], "fr"))

    assert [pair.clone_id for pair in report.success] == [100]
    assert store.items[100].status == "draft"
    assert translator.error_policy.count(ErrorCategory.OTHER) == 4


def test_surplus_fragments_are_reported_as_misalignment(scripted_provider, make_translator):
    document = [
        {"elType": "widget", "widgetType": "heading", "settings": {"title": "a"}},
        {"elType": "widget", "widgetType": "button", "settings": {"text": "b"}},
    ]

    def doubled_separator(blocks, target_language):
        translated = {key: value.upper() for key, value in blocks.items()}
        translated["content"] = translated["content"].replace("|||", "||||||")
        return translated

    page = ContentItem(id=5, post_type="page", title="Home", document=document)
    store = InMemoryContentStore([page], next_id=50)
    translator = make_translator(scripted_provider(doubled_separator), mode="joined")
    orchestrator = BatchCloneOrchestrator(store, translator)

    report = asyncio.run(orchestrator.clone([5], "es"))

    assert len(report.success) == 1
    assert report.warnings == [
        "Clone 50 of 5: 3 fragments came back for 2 text sites; "
        "the surplus was dropped and the text may be misaligned."
    ]
    assert collect_fragments(store.items[50].document) == ["A", ""]
