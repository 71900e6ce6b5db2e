"""Declarative description of which page-builder settings carry translatable text.

Both the fragment collector and the fragment injector walk documents through
:func:`iter_text_sites`, so the two always agree on which values are text and
in which order they are visited.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterator, Mapping

from .structures import StructuredDocument

SCHEMA_VERSION = "1"

COMMON_TEXT_KEYS: FrozenSet[str] = frozenset(
    {
        "title",
        "editor",
        "text",
        "button_text",
        "header_title",
        "header_subtitle",
        "description",
        "cta_text",
        "label",
        "placeholder",
        "heading",
        "sub_heading",
        "alert_title",
        "alert_description",
        "title_text",
        "description_text",
        "list_title",
    }
)

WIDGET_TEXT_KEYS: Dict[str, FrozenSet[str]] = {
    "tabs": frozenset({"tab_title", "tab_content"}),
    "accordion": frozenset({"tab_title", "tab_content"}),
    "toggle": frozenset({"tab_title", "tab_content"}),
    "testimonial": frozenset(
        {"testimonial_content", "testimonial_name", "testimonial_job"}
    ),
    "price-table": frozenset({"period", "footer_additional_info", "ribbon_title"}),
    "call-to-action": frozenset({"button", "ribbon_title"}),
    "image": frozenset({"caption"}),
    "form": frozenset({"field_label", "button_text", "success_message"}),
}

_URL_PATTERN = re.compile(r"^(?:https?://|mailto:|tel:|www\.)\S*$", re.IGNORECASE)
_NUMERIC_PATTERN = re.compile(r"^[-+]?\d+(?:[.,]\d+)?(?:px|em|rem|%)?$")
_COLOR_PATTERN = re.compile(
    r"^(?:#[0-9a-f]{3,8}|rgba?\([\d\s.,%]+\))$", re.IGNORECASE
)


@dataclass(frozen=True)
class TranslatableSchema:
    """Allow-list of text-bearing setting keys, keyed by node type."""

    version: str = SCHEMA_VERSION
    common_keys: FrozenSet[str] = COMMON_TEXT_KEYS
    type_keys: Mapping[str, FrozenSet[str]] = field(
        default_factory=lambda: dict(WIDGET_TEXT_KEYS)
    )

    def keys_for(self, node_type: str) -> FrozenSet[str]:
        extra = self.type_keys.get(node_type)
        if not extra:
            return self.common_keys
        return self.common_keys | extra

    def is_text_value(self, value: Any) -> bool:
        """Return True for string values that are prose rather than data."""

        if not isinstance(value, str):
            return False
        stripped = value.strip()
        if not stripped:
            return True
        return not (
            _URL_PATTERN.match(stripped)
            or _NUMERIC_PATTERN.match(stripped)
            or _COLOR_PATTERN.match(stripped)
        )


DEFAULT_SCHEMA = TranslatableSchema()


@dataclass
class TextSite:
    """A location holding one translatable string."""

    container: Dict[str, Any]
    key: str
    node_type: str

    @property
    def value(self) -> str:
        return self.container[self.key]

    def replace(self, text: str) -> None:
        self.container[self.key] = text


def node_type(node: Mapping[str, Any]) -> str:
    """Return the widget type for widgets, else the element type."""

    return str(node.get("widgetType") or node.get("elType") or "")


def iter_text_sites(
    document: StructuredDocument,
    schema: TranslatableSchema = DEFAULT_SCHEMA,
) -> Iterator[TextSite]:
    """Yield text sites in depth-first pre-order.

    The document must already be validated. Callers may replace the value of
    each yielded site before advancing the iterator.
    """

    for node in document:
        kind = node_type(node)
        settings = node.get("settings")
        if isinstance(settings, dict):
            yield from _iter_settings(settings, schema.keys_for(kind), kind, schema)
        children = node.get("elements")
        if children:
            yield from iter_text_sites(children, schema)


def _iter_settings(
    container: Dict[str, Any],
    keys: FrozenSet[str],
    kind: str,
    schema: TranslatableSchema,
) -> Iterator[TextSite]:
    for key, value in container.items():
        if key in keys and schema.is_text_value(value):
            yield TextSite(container=container, key=key, node_type=kind)
        elif isinstance(value, dict):
            yield from _iter_settings(value, keys, kind, schema)
        elif isinstance(value, list):
            for item in value:
                if isinstance(item, dict):
                    yield from _iter_settings(item, keys, kind, schema)
