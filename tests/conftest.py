from __future__ import annotations

import copy
from typing import Callable, Dict, Mapping

import pytest

from transclone.policy import ErrorPolicy
from transclone.providers import TranslationProvider
from transclone.translator import FragmentTranslator

SAMPLE_DOCUMENT = [
    {
        "id": "a1",
        "elType": "section",
        "settings": {"background_color": "#ffffff"},
        "elements": [
            {
                "id": "b1",
                "elType": "column",
                "settings": {"_column_size": 100},
                "elements": [
                    {
                        "id": "c1",
                        "elType": "widget",
                        "widgetType": "heading",
                        "settings": {
                            "title": "Welcome",
                            "header_size": "h1",
                            "link": {"url": "https://example.com"},
                        },
                        "elements": [],
                    },
                    {
                        "id": "c2",
                        "elType": "widget",
                        "widgetType": "text-editor",
                        "settings": {"editor": "<p>Fresh bread daily.</p>"},
                        "elements": [],
                    },
                    {
                        "id": "c3",
                        "elType": "widget",
                        "widgetType": "button",
                        "settings": {
                            "text": "Order now",
                            "link": {"url": "https://example.com/order"},
                        },
                        "elements": [],
                    },
                    {
                        "id": "c4",
                        "elType": "widget",
                        "widgetType": "tabs",
                        "settings": {
                            "tabs": [
                                {"_id": "t1", "tab_title": "Hours", "tab_content": "9 to 5"},
                                {"_id": "t2", "tab_title": "Location", "tab_content": ""},
                            ]
                        },
                        "elements": [],
                    },
                ],
            }
        ],
    },
    {
        "id": "a2",
        "elType": "container",
        "settings": [],
        "elements": [
            {
                "id": "d1",
                "elType": "widget",
                "widgetType": "icon-list",
                "settings": {
                    "icon_list": [
                        {
                            "text": "Organic flour",
                            "selected_icon": {"value": "fas fa-check", "library": "fa-solid"},
                        }
                    ]
                },
                "elements": [],
            }
        ],
    },
]

SAMPLE_FRAGMENTS = [
    "Welcome",
    "<p>Fresh bread daily.</p>",
    "Order now",
    "Hours",
    "9 to 5",
    "Location",
    "",
    "Organic flour",
]


class UpperProvider(TranslationProvider):
    """Upper-cases every block and records each request."""

    name = "upper"

    def __init__(self) -> None:
        self.calls: list[Dict[str, str]] = []

    async def translate(self, blocks, *, target_language, source_language=None, model=None):
        self.calls.append(dict(blocks))
        return {key: value.upper() for key, value in blocks.items()}


class ScriptedProvider(TranslationProvider):
    """Delegates to a callable so each test can shape the response."""

    name = "scripted"

    def __init__(self, respond: Callable[[Mapping[str, str], str], Dict[str, str]]) -> None:
        self.respond = respond
        self.calls: list[Dict[str, str]] = []

    async def translate(self, blocks, *, target_language, source_language=None, model=None):
        self.calls.append(dict(blocks))
        return self.respond(blocks, target_language)


@pytest.fixture
def sample_document():
    return copy.deepcopy(SAMPLE_DOCUMENT)


@pytest.fixture
def upper_provider():
    return UpperProvider()


@pytest.fixture
def scripted_provider():
    return ScriptedProvider


@pytest.fixture
def make_translator():
    def factory(provider: TranslationProvider, **kwargs) -> FragmentTranslator:
        kwargs.setdefault("retry_backoff", (0,))
        kwargs.setdefault("error_policy", ErrorPolicy())
        return FragmentTranslator(provider, **kwargs)

    return factory


@pytest.fixture
def sample_fragments():
    return list(SAMPLE_FRAGMENTS)
