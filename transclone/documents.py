"""Text extraction and reinsertion for page-builder documents."""

from __future__ import annotations

import copy
import json
from typing import Any, List, Sequence, Union

from .errors import MalformedDocumentError
from .schema import DEFAULT_SCHEMA, TranslatableSchema, iter_text_sites
from .structures import StructuredDocument

DocumentSource = Union[str, bytes, StructuredDocument]


def parse_document(source: DocumentSource) -> StructuredDocument:
    """Parse and validate a document given as JSON text or decoded data."""

    data: Any = source
    if isinstance(source, (str, bytes)):
        try:
            data = json.loads(source)
        except (TypeError, ValueError) as exc:
            raise MalformedDocumentError(
                f"Page-builder data is not valid JSON: {exc}"
            ) from exc
    validate_document(data)
    return data


def validate_document(data: Any, *, path: str = "$") -> None:
    """Raise ``MalformedDocumentError`` unless ``data`` is an element tree."""

    if not isinstance(data, list):
        raise MalformedDocumentError(f"{path}: expected a list of elements.")
    for idx, node in enumerate(data):
        location = f"{path}[{idx}]"
        if not isinstance(node, dict):
            raise MalformedDocumentError(f"{location}: element is not an object.")
        settings = node.get("settings")
        # PHP encodes an empty associative array as [].
        if settings is not None and settings != [] and not isinstance(settings, dict):
            raise MalformedDocumentError(f"{location}.settings: expected an object.")
        children = node.get("elements")
        if children is not None:
            validate_document(children, path=f"{location}.elements")


def serialize_document(document: StructuredDocument) -> str:
    """Encode a document the way Elementor stores it in post meta."""

    return json.dumps(document, ensure_ascii=False, separators=(",", ":"))


class FragmentCollector:
    """Extracts translatable text fragments from a document."""

    def __init__(self, schema: TranslatableSchema = DEFAULT_SCHEMA) -> None:
        self.schema = schema

    def collect(self, document: DocumentSource) -> List[str]:
        """Return every text fragment in traversal order.

        Malformed documents yield an empty list so callers can fall back to
        translating the body as a single blob.
        """

        try:
            tree = parse_document(_detached(document))
        except MalformedDocumentError:
            return []
        return [site.value for site in iter_text_sites(tree, self.schema)]


class FragmentInjector:
    """Writes replacement fragments back into a copy of a document."""

    def __init__(self, schema: TranslatableSchema = DEFAULT_SCHEMA) -> None:
        self.schema = schema

    def inject(
        self,
        document: DocumentSource,
        replacements: Sequence[str],
    ) -> StructuredDocument:
        """Return a new document with text sites replaced in order.

        When ``replacements`` is shorter than the number of sites, the
        remaining sites keep their original text. Surplus replacements are
        ignored.
        """

        tree = parse_document(_detached(document))
        cursor = 0
        total = len(replacements)
        for site in iter_text_sites(tree, self.schema):
            if cursor >= total:
                break
            site.replace(replacements[cursor])
            cursor += 1
        return tree


def _detached(document: DocumentSource) -> DocumentSource:
    if isinstance(document, (str, bytes)):
        return document
    return copy.deepcopy(document)


def collect_fragments(
    document: DocumentSource,
    schema: TranslatableSchema = DEFAULT_SCHEMA,
) -> List[str]:
    return FragmentCollector(schema).collect(document)


def inject_fragments(
    document: DocumentSource,
    replacements: Sequence[str],
    schema: TranslatableSchema = DEFAULT_SCHEMA,
) -> StructuredDocument:
    return FragmentInjector(schema).inject(document, replacements)
