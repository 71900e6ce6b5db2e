"""Propagation of source content to every member of a translation group."""

from __future__ import annotations

from typing import Dict, List, Optional

from .documents import FragmentCollector, FragmentInjector, parse_document
from .errors import ErrorCategory, MalformedDocumentError, TranscloneError
from .policy import ErrorPolicy
from .schema import DEFAULT_SCHEMA, TranslatableSchema
from .stores import ContentStore
from .structures import (
    ContentUpdate,
    GroupSyncFailure,
    GroupSyncReport,
    PostId,
    StructuredDocument,
    TranslationGroup,
)
from .translator import FragmentTranslator, language_name


def source_language_of(group: TranslationGroup, source_id: PostId) -> str:
    """Return the language code under which ``source_id`` is registered."""

    for language, post_id in group.members.items():
        if str(post_id) == str(source_id):
            return language
    raise TranscloneError(
        f"Post {source_id} is not a member of translation group {group.group_id}."
    )


class TranslationGroupSync:
    """Re-translates a source post into each sibling of its group.

    Members are processed one after another. A failing language is recorded
    and the remaining languages are still synced.
    """

    def __init__(
        self,
        store: ContentStore,
        translator: FragmentTranslator,
        *,
        schema: TranslatableSchema = DEFAULT_SCHEMA,
        error_policy: Optional[ErrorPolicy] = None,
    ) -> None:
        self.store = store
        self.translator = translator
        self.collector = FragmentCollector(schema)
        self.injector = FragmentInjector(schema)
        self.error_policy = error_policy or translator.error_policy

    async def sync(
        self,
        group: TranslationGroup,
        source_id: PostId,
        *,
        title: Optional[str] = None,
        body: Optional[str] = None,
        post_type: Optional[str] = None,
    ) -> GroupSyncReport:
        source_language = source_language_of(group, source_id)
        document: Optional[StructuredDocument] = None
        if title is None or body is None:
            source = await self.store.get_full(source_id, post_type=post_type)
            post_type = post_type or source.post_type
            title = source.title if title is None else title
            if body is None:
                body = source.body
                if source.has_document and not source.is_product:
                    try:
                        document = parse_document(source.document)  # type: ignore[arg-type]
                    except MalformedDocumentError as exc:
                        self.error_policy.handle_error(
                            ErrorCategory.FORMAT,
                            f"Page-builder data of {source_id} is malformed; "
                            "syncing the body as plain text.",
                            str(exc),
                        )

        fragments: List[str] = (
            self.collector.collect(document) if document is not None else []
        )
        blocks: Dict[str, str] = {"title": title}
        if document is None:
            blocks["content"] = body

        report = GroupSyncReport()
        for language, post_id in group.members.items():
            if language == source_language:
                continue
            try:
                translation = await self.translator.translate_content(
                    blocks, fragments, language_name(language)
                )
                update = ContentUpdate(title=translation.blocks["title"])
                if document is not None:
                    if not translation.complete:
                        message = (
                            f"Sync of {language} ({post_id}): "
                            + translation.mismatch_note()
                        )
                        report.warnings.append(message)
                        self.error_policy.handle_error(ErrorCategory.STRUCTURE, message)
                    update.document = self.injector.inject(document, translation.fragments)
                else:
                    update.body = translation.blocks["content"]
                await self.store.update(post_id, update, post_type=post_type)
            except Exception as exc:
                reason = str(exc) or "Unknown error"
                self.error_policy.handle_error(
                    ErrorCategory.TRANSLATION,
                    f"Failed to sync full content for {language} (post {post_id}).",
                    reason,
                )
                report.failed.append(GroupSyncFailure(language=language, reason=reason))
                continue
            report.success.append(language.upper())
        return report
