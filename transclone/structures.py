"""Core data structures for the Transclone pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union


# An Elementor document: an ordered list of element mappings.
StructuredDocument = List[Dict[str, Any]]
PostId = Union[int, str]


@dataclass
class FragmentBlock:
    """A single named text block sent to a translation provider."""

    block_id: str
    text: str
    order: int


@dataclass
class Batch:
    """A batch of blocks constrained by a character budget."""

    batch_id: int
    blocks: List[FragmentBlock]


@dataclass
class ContentItem:
    """Full content of a post, page, or product as held by a content store."""

    id: PostId
    post_type: str
    title: str
    body: str = ""
    # Page-builder data as stored: JSON text or decoded element list.
    document: Optional[Union[str, StructuredDocument]] = None
    extra_blocks: Dict[str, str] = field(default_factory=dict)
    sku: Optional[str] = None
    status: str = "publish"
    meta: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_product(self) -> bool:
        return self.post_type == "product"

    @property
    def has_document(self) -> bool:
        return bool(self.document)


@dataclass
class ContentUpdate:
    """Fields to write back to a content item. ``None`` means untouched."""

    title: Optional[str] = None
    body: Optional[str] = None
    document: Optional[StructuredDocument] = None
    extra_blocks: Dict[str, str] = field(default_factory=dict)
    sku: Optional[str] = None
    status: Optional[str] = None


@dataclass
class ClonePair:
    original_id: PostId
    clone_id: PostId
    post_type: Optional[str] = None


@dataclass
class CloneFailure:
    id: PostId
    reason: str
    detail: Optional[str] = None


@dataclass
class StoreCloneResponse:
    """What the content store reports after a bulk clone request."""

    success: List[ClonePair] = field(default_factory=list)
    failed: List[CloneFailure] = field(default_factory=list)


@dataclass
class BatchCloneReport:
    """One outcome per requested source id."""

    success: List[ClonePair] = field(default_factory=list)
    failed: List[CloneFailure] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.success) + len(self.failed)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": [
                {"originalId": pair.original_id, "cloneId": pair.clone_id}
                for pair in self.success
            ],
            "failed": [
                {"id": failure.id, "reason": failure.reason}
                for failure in self.failed
            ],
        }


@dataclass
class ProgressEvent:
    """Progress notification for a single source id."""

    id: PostId
    status: str
    message: str
    progress: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status,
            "message": self.message,
            "progress": self.progress,
        }


@dataclass
class TranslationGroup:
    """A source post and its translated siblings, keyed by language code."""

    group_id: str
    members: Dict[str, PostId]


@dataclass
class GroupSyncFailure:
    language: str
    reason: str


@dataclass
class GroupSyncReport:
    success: List[str] = field(default_factory=list)
    failed: List[GroupSyncFailure] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        succeeded = ", ".join(self.success) if self.success else "none"
        return (
            f"Content sync finished. Succeeded: {succeeded}. "
            f"Failed: {len(self.failed)}."
        )
