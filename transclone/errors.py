"""Error definitions for the Transclone pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional


class ErrorCategory(Enum):
    """Categorises runtime errors for reporting."""

    CLONE = auto()
    FORMAT = auto()
    TRANSLATION = auto()
    STRUCTURE = auto()
    UPDATE = auto()
    NETWORK = auto()
    OTHER = auto()


class TranscloneError(Exception):
    """Base exception for all custom errors."""


class MalformedDocumentError(TranscloneError):
    """Raised when a page-builder document cannot be parsed as a tree."""


class TranslationProviderConfigurationError(TranscloneError):
    """Raised when the translation provider or store is misconfigured."""


class TranslationProviderError(TranscloneError):
    """Raised when the translation provider fails permanently."""


class ContentStoreError(TranscloneError):
    """Raised when the content store rejects or fails a request."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass
class ErrorRecord:
    """Stores context for a handled error."""

    category: ErrorCategory
    message: str
    details: Optional[str] = None
