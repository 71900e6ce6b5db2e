"""Batch cloning of content into another language."""

from __future__ import annotations

import asyncio
from collections import defaultdict, deque
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Callable, Deque, Dict, List, Optional, Sequence, Union

from .documents import FragmentCollector, FragmentInjector, parse_document
from .errors import ErrorCategory, MalformedDocumentError
from .policy import ErrorPolicy
from .schema import DEFAULT_SCHEMA, TranslatableSchema
from .stores import ContentStore
from .structures import (
    BatchCloneReport,
    CloneFailure,
    ClonePair,
    ContentItem,
    ContentUpdate,
    PostId,
    ProgressEvent,
    StoreCloneResponse,
    StructuredDocument,
)
from .translator import FragmentTranslator, language_name

CLONE_FAILED = "clone failed"
PROCESSING_FAILED = "Failed to translate or update content after cloning"
CANCELLED = "cancelled"
NO_STORE_RESPONSE = "no response from content store"

CLONE_STATUS = "draft"

ProgressCallback = Callable[[ProgressEvent], None]
Outcome = Union[ClonePair, CloneFailure]


class CloneState(Enum):
    REQUESTED = auto()
    CLONED = auto()
    EXTRACTED = auto()
    TRANSLATED = auto()
    INJECTED = auto()
    UPDATED = auto()
    SUCCEEDED = auto()
    FAILED = auto()


# Category of an error raised while leaving the given state.
_FAILURE_CATEGORIES = {
    CloneState.CLONED: ErrorCategory.NETWORK,
    CloneState.EXTRACTED: ErrorCategory.TRANSLATION,
    CloneState.TRANSLATED: ErrorCategory.STRUCTURE,
    CloneState.INJECTED: ErrorCategory.UPDATE,
}


@dataclass
class CloneRun:
    """Bookkeeping for a single ``clone()`` call."""

    target_language: str
    report: BatchCloneReport = field(default_factory=BatchCloneReport)
    states: Dict[int, CloneState] = field(default_factory=dict)
    cancelled: bool = False


class BatchCloneOrchestrator:
    """Clones source items and translates each clone independently.

    Every requested id ends up with exactly one outcome in the report: a
    failure on one item never stops the others. Each ``clone()`` call keeps
    its own run state, so one instance may serve overlapping batches.
    """

    def __init__(
        self,
        store: ContentStore,
        translator: FragmentTranslator,
        *,
        schema: TranslatableSchema = DEFAULT_SCHEMA,
        max_concurrency: int = 1,
        on_progress: Optional[ProgressCallback] = None,
        error_policy: Optional[ErrorPolicy] = None,
    ) -> None:
        self.store = store
        self.translator = translator
        self.collector = FragmentCollector(schema)
        self.injector = FragmentInjector(schema)
        self.max_concurrency = max(1, max_concurrency)
        self.on_progress = on_progress
        self.error_policy = error_policy or translator.error_policy
        # States of the most recently finished batch.
        self.states: Dict[int, CloneState] = {}
        self._active_runs: List[CloneRun] = []

    def cancel(self) -> None:
        """Stop batches in progress from starting new items.

        Unstarted ids are reported as cancelled. Later ``clone()`` calls are
        not affected.
        """

        for run in self._active_runs:
            run.cancelled = True

    async def clone(
        self,
        ids: Sequence[PostId],
        target_language: str,
    ) -> BatchCloneReport:
        requested = list(ids)
        run = CloneRun(
            target_language=target_language,
            states={index: CloneState.REQUESTED for index in range(len(requested))},
        )
        self._active_runs.append(run)
        try:
            outcomes = await self._run(run, requested)
        finally:
            self._active_runs.remove(run)
            self.states = run.states
        return self._assemble(run.report, outcomes)

    async def _run(self, run: CloneRun, requested: List[PostId]) -> List[Optional[Outcome]]:
        outcomes: List[Optional[Outcome]] = [None] * len(requested)

        try:
            response = await self.store.clone_many(requested, run.target_language)
        except Exception as exc:
            self.error_policy.handle_error(
                ErrorCategory.CLONE,
                f"Bulk clone request failed for {len(requested)} items.",
                str(exc),
            )
            for index, item_id in enumerate(requested):
                outcomes[index] = self._fail(run, index, item_id, CLONE_FAILED, str(exc))
            return outcomes

        pending = self._match_response(run, requested, response, outcomes)

        if self.max_concurrency == 1:
            for index, pair in pending:
                outcomes[index] = await self._process_guarded(run, index, pair)
        else:
            semaphore = asyncio.Semaphore(self.max_concurrency)

            async def process(index: int, pair: ClonePair) -> None:
                async with semaphore:
                    outcomes[index] = await self._process_guarded(run, index, pair)

            await asyncio.gather(*(process(index, pair) for index, pair in pending))

        return outcomes

    def _match_response(
        self,
        run: CloneRun,
        requested: Sequence[PostId],
        response: StoreCloneResponse,
        outcomes: List[Optional[Outcome]],
    ) -> List[tuple[int, ClonePair]]:
        """Pair each requested id with one entry of the store's response.

        Duplicated ids consume entries in order. Ids the store did not
        mention at all are failed.
        """

        cloned: Dict[str, Deque[ClonePair]] = defaultdict(deque)
        for pair in response.success:
            cloned[_key(pair.original_id)].append(pair)
        rejected: Dict[str, Deque[CloneFailure]] = defaultdict(deque)
        for failure in response.failed:
            rejected[_key(failure.id)].append(failure)

        pending: List[tuple[int, ClonePair]] = []
        for index, item_id in enumerate(requested):
            key = _key(item_id)
            if cloned[key]:
                pair = cloned[key].popleft()
                run.states[index] = CloneState.CLONED
                pending.append(
                    (
                        index,
                        ClonePair(
                            original_id=item_id,
                            clone_id=pair.clone_id,
                            post_type=pair.post_type,
                        ),
                    )
                )
                continue
            detail = rejected[key].popleft().reason if rejected[key] else NO_STORE_RESPONSE
            self.error_policy.handle_error(
                ErrorCategory.CLONE,
                f"Initial clone failed for {item_id}.",
                detail,
            )
            self._emit(item_id, "failed", f"Initial clone failed: {detail}", 0)
            outcomes[index] = self._fail(run, index, item_id, CLONE_FAILED, detail)
        return pending

    async def _process_guarded(
        self,
        run: CloneRun,
        index: int,
        pair: ClonePair,
    ) -> Outcome:
        if run.cancelled:
            return self._fail(run, index, pair.original_id, CANCELLED)

        self._emit(pair.original_id, "cloning", "Cloned, starting translation...", 25)
        try:
            await self._process_pair(run, index, pair)
        except Exception as exc:
            stage = run.states.get(index, CloneState.CLONED)
            category = _FAILURE_CATEGORIES.get(stage, ErrorCategory.OTHER)
            self.error_policy.handle_error(
                category,
                f"Failed processing clone {pair.clone_id} of {pair.original_id}.",
                str(exc),
            )
            self._emit(pair.original_id, "failed", f"Error: {exc}", 0)
            return self._fail(
                run,
                index,
                pair.original_id,
                PROCESSING_FAILED,
                f"{stage.name.lower()}: {exc}",
            )

        run.states[index] = CloneState.SUCCEEDED
        self._emit(pair.original_id, "success", "Completed.", 100)
        return pair

    async def _process_pair(self, run: CloneRun, index: int, pair: ClonePair) -> None:
        target_language = run.target_language
        source = await self.store.get_full(pair.original_id, post_type=pair.post_type)
        post_type = pair.post_type or source.post_type

        document = self._load_document(source)
        blocks: Dict[str, str] = {"title": source.title}
        fragments: List[str] = []
        if document is not None:
            fragments = self.collector.collect(document)
        else:
            blocks["content"] = source.body
        if source.is_product:
            blocks.update(source.extra_blocks)
        run.states[index] = CloneState.EXTRACTED

        self._emit(pair.original_id, "translating", "Translating content...", 50)
        translation = await self.translator.translate_content(
            blocks, fragments, language_name(target_language)
        )
        run.states[index] = CloneState.TRANSLATED

        update = ContentUpdate(title=translation.blocks["title"], status=CLONE_STATUS)
        if document is not None:
            if not translation.complete:
                message = (
                    f"Clone {pair.clone_id} of {pair.original_id}: "
                    + translation.mismatch_note()
                )
                run.report.warnings.append(message)
                self.error_policy.handle_error(ErrorCategory.STRUCTURE, message)
            update.document = self.injector.inject(document, translation.fragments)
        else:
            update.body = translation.blocks["content"]
        if source.is_product:
            update.extra_blocks = {
                name: translation.blocks[name] for name in source.extra_blocks
            }
            if source.sku:
                update.sku = f"{source.sku}-{target_language.upper()}"
        run.states[index] = CloneState.INJECTED

        self._emit(pair.original_id, "updating", "Translation complete, updating...", 75)
        await self.store.update(pair.clone_id, update, post_type=post_type)
        run.states[index] = CloneState.UPDATED

    def _load_document(self, source: ContentItem) -> Optional[StructuredDocument]:
        if source.is_product or not source.has_document:
            return None
        try:
            return parse_document(source.document)  # type: ignore[arg-type]
        except MalformedDocumentError as exc:
            self.error_policy.handle_error(
                ErrorCategory.FORMAT,
                f"Page-builder data of {source.id} is malformed; "
                "translating the body as plain text.",
                str(exc),
            )
            return None

    @staticmethod
    def _fail(
        run: CloneRun,
        index: int,
        item_id: PostId,
        reason: str,
        detail: Optional[str] = None,
    ) -> CloneFailure:
        run.states[index] = CloneState.FAILED
        return CloneFailure(id=item_id, reason=reason, detail=detail)

    def _emit(self, item_id: PostId, status: str, message: str, progress: int) -> None:
        if self.on_progress is None:
            return
        event = ProgressEvent(id=item_id, status=status, message=message, progress=progress)
        try:
            self.on_progress(event)
        except Exception as exc:
            self.error_policy.handle_error(
                ErrorCategory.OTHER,
                f"Progress callback failed for {item_id} ({status}).",
                str(exc),
            )

    @staticmethod
    def _assemble(
        report: BatchCloneReport,
        outcomes: Sequence[Optional[Outcome]],
    ) -> BatchCloneReport:
        for outcome in outcomes:
            if isinstance(outcome, ClonePair):
                report.success.append(outcome)
            elif isinstance(outcome, CloneFailure):
                report.failed.append(outcome)
        return report


def _key(item_id: PostId) -> str:
    return str(item_id)
