"""Translation of named blocks and ordered fragment sequences."""

from __future__ import annotations

import asyncio
import sys
from dataclasses import dataclass, field
from typing import Dict, List, Literal, Mapping, Sequence

from .errors import ErrorCategory, TranslationProviderError
from .policy import ErrorPolicy
from .providers import TranslationProvider
from .segmenter import (
    BatchBuilder,
    build_fragment_blocks,
    join_fragments,
    split_fragments,
)
from .structures import FragmentBlock

FragmentMode = Literal["blocks", "joined"]

JOINED_BLOCK = "content"

LANGUAGE_NAMES: Dict[str, str] = {
    "es": "Spanish",
    "en": "English",
    "fr": "French",
    "de": "German",
    "pt": "Portuguese",
    "it": "Italian",
}


def language_name(code: str) -> str:
    """Map a two-letter code to a language name; other values pass through."""

    return LANGUAGE_NAMES.get(code.strip().lower(), code)


@dataclass
class ContentTranslation:
    """Result of translating one content item."""

    blocks: Dict[str, str]
    fragments: List[str] = field(default_factory=list)
    expected_fragments: int = 0

    @property
    def complete(self) -> bool:
        return len(self.fragments) == self.expected_fragments

    def mismatch_note(self) -> str:
        """Describe how the returned fragments differ from the text sites."""

        returned = len(self.fragments)
        if returned > self.expected_fragments:
            return (
                f"{returned} fragments came back for {self.expected_fragments} "
                "text sites; the surplus was dropped and the text may be misaligned."
            )
        return (
            f"{returned} of {self.expected_fragments} fragments came back "
            "translated; the rest keep the source text."
        )


class FragmentTranslator:
    """Sends named blocks and document fragments through a provider.

    In ``blocks`` mode every fragment travels as its own named block and the
    blocks are packed into calls under a character budget. In ``joined`` mode
    the fragments are concatenated with a separator into a single block, as
    required by providers that only accept one prompt string.
    """

    def __init__(
        self,
        provider: TranslationProvider,
        *,
        mode: FragmentMode = "blocks",
        batch_budget: int = 4000,
        source_language: str | None = None,
        model: str | None = None,
        max_retries: int = 3,
        retry_backoff: Sequence[float] = (1, 4, 9),
        error_policy: ErrorPolicy | None = None,
        verbose: bool = False,
    ) -> None:
        if mode not in ("blocks", "joined"):
            raise ValueError(f"Unknown fragment mode '{mode}'.")
        self.provider = provider
        self.mode = mode
        self.batch_builder = BatchBuilder(batch_budget)
        self.source_language = source_language
        self.model = model
        self.max_retries = max_retries
        self.retry_backoff = list(retry_backoff) or [0]
        self.error_policy = error_policy or ErrorPolicy(verbose=verbose)
        self.verbose = verbose

    async def translate_blocks(
        self,
        blocks: Mapping[str, str],
        target_language: str,
    ) -> Dict[str, str]:
        """Translate named blocks; every input key must come back."""

        if not blocks:
            return {}
        mapping = await self._call_provider(blocks, target_language)
        missing = [name for name in blocks if name not in mapping]
        if missing:
            raise TranslationProviderError(
                "Translation response is missing blocks: " + ", ".join(missing)
            )
        return {name: mapping[name] for name in blocks}

    async def translate_content(
        self,
        blocks: Mapping[str, str],
        fragments: Sequence[str],
        target_language: str,
    ) -> ContentTranslation:
        """Translate named blocks together with an ordered fragment list.

        Named blocks are mandatory. Fragments come back as the longest
        contiguous prefix the provider returned, so the caller can inject
        them positionally.
        """

        if self.mode == "joined":
            return await self._translate_joined(blocks, fragments, target_language)
        return await self._translate_as_blocks(blocks, fragments, target_language)

    async def translate_fragments(
        self,
        fragments: Sequence[str],
        target_language: str,
    ) -> List[str]:
        result = await self.translate_content({}, fragments, target_language)
        return result.fragments

    async def _translate_joined(
        self,
        blocks: Mapping[str, str],
        fragments: Sequence[str],
        target_language: str,
    ) -> ContentTranslation:
        request = dict(blocks)
        if fragments:
            request[JOINED_BLOCK] = join_fragments(fragments)
        translated = await self.translate_blocks(request, target_language)
        translated_fragments: List[str] = []
        if fragments:
            translated_fragments = split_fragments(translated.pop(JOINED_BLOCK))
        return ContentTranslation(
            blocks=translated,
            fragments=translated_fragments,
            expected_fragments=len(fragments),
        )

    async def _translate_as_blocks(
        self,
        blocks: Mapping[str, str],
        fragments: Sequence[str],
        target_language: str,
    ) -> ContentTranslation:
        named = [
            FragmentBlock(block_id=name, text=text, order=idx)
            for idx, (name, text) in enumerate(blocks.items())
        ]
        fragment_blocks = build_fragment_blocks(fragments)
        batches = self.batch_builder.build(named + fragment_blocks)
        if self.verbose:
            print(
                f"[transclone] Prepared {len(named)} named blocks, "
                f"{len(fragment_blocks)} fragments, {len(batches)} batches.",
                file=sys.stderr,
            )

        translated: Dict[str, str] = {}
        for batch in batches:
            request = {block.block_id: block.text for block in batch.blocks}
            translated.update(await self._call_provider(request, target_language))

        missing = [block.block_id for block in named if block.block_id not in translated]
        if missing:
            raise TranslationProviderError(
                "Translation response is missing blocks: " + ", ".join(missing)
            )

        translated_fragments: List[str] = []
        for block in fragment_blocks:
            value = translated.get(block.block_id)
            if value is None:
                break
            translated_fragments.append(value)

        return ContentTranslation(
            blocks={block.block_id: translated[block.block_id] for block in named},
            fragments=translated_fragments,
            expected_fragments=len(fragments),
        )

    async def _call_provider(
        self,
        blocks: Mapping[str, str],
        target_language: str,
    ) -> Dict[str, str]:
        attempt = 0
        while True:
            try:
                return await self.provider.translate(
                    blocks,
                    target_language=target_language,
                    source_language=self.source_language,
                    model=self.model,
                )
            except TranslationProviderError as exc:
                attempt += 1
                if attempt >= self.max_retries:
                    self.error_policy.handle_error(
                        ErrorCategory.TRANSLATION,
                        f"Translation failed after {attempt} attempts.",
                        str(exc),
                    )
                    raise
                wait_time = self.retry_backoff[
                    min(attempt - 1, len(self.retry_backoff) - 1)
                ]
                if self.verbose:
                    print(
                        "[transclone] Could not translate one batch "
                        f"(attempt {attempt} of {self.max_retries}: {exc}). "
                        "Retrying automatically...",
                        file=sys.stderr,
                    )
                await asyncio.sleep(wait_time)
