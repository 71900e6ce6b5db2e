"""Fragment packing and separator utilities."""

from __future__ import annotations

from typing import List, Sequence

from .structures import Batch, FragmentBlock

FRAGMENT_SEPARATOR = "|||"
FRAGMENT_PREFIX = "fragment"


def fragment_block_id(index: int) -> str:
    return f"{FRAGMENT_PREFIX}.{index}"


def build_fragment_blocks(fragments: Sequence[str]) -> List[FragmentBlock]:
    """Wrap fragments as named blocks, preserving their order."""

    return [
        FragmentBlock(block_id=fragment_block_id(idx), text=text, order=idx)
        for idx, text in enumerate(fragments)
    ]


def join_fragments(fragments: Sequence[str], separator: str = FRAGMENT_SEPARATOR) -> str:
    return separator.join(fragments)


def split_fragments(text: str, separator: str = FRAGMENT_SEPARATOR) -> List[str]:
    """Split a joined translation back into fragments.

    The separator is matched exactly; whitespace around it stays with the
    neighbouring fragments.
    """

    if text == "":
        return [""]
    return text.split(separator)


class BatchBuilder:
    """Aggregates blocks into batches within a character budget."""

    def __init__(self, budget: int) -> None:
        self.budget = max(1, budget)

    def build(self, blocks: Sequence[FragmentBlock]) -> List[Batch]:
        batches: List[Batch] = []
        batch_blocks: List[FragmentBlock] = []
        running_total = 0
        batch_id = 1

        for block in blocks:
            size = len(block.text)
            if size > self.budget:
                if batch_blocks:
                    batches.append(Batch(batch_id=batch_id, blocks=batch_blocks))
                    batch_id += 1
                    batch_blocks = []
                    running_total = 0
                batches.append(Batch(batch_id=batch_id, blocks=[block]))
                batch_id += 1
                continue

            if running_total + size > self.budget and batch_blocks:
                batches.append(Batch(batch_id=batch_id, blocks=batch_blocks))
                batch_id += 1
                batch_blocks = []
                running_total = 0

            batch_blocks.append(block)
            running_total += size

        if batch_blocks:
            batches.append(Batch(batch_id=batch_id, blocks=batch_blocks))

        return batches
