"""Error definitions and policy helpers for the Lipyantar transliterator."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional


class ErrorCategory(Enum):
    """Categorises runtime errors to apply policy thresholds."""

    NETWORK = auto()
    STORAGE = auto()
    STORAGE_READ = auto()
    ELIGIBILITY = auto()
    CONFIGURATION = auto()
    OTHER = auto()


class LipyantarError(Exception):
    """Base exception for all custom errors."""


class ConfigurationError(LipyantarError):
    """Raised when configuration or provider selection is invalid."""


class TransliterationServiceError(LipyantarError):
    """Raised when the remote conversion service fails for one text."""


class StorageError(LipyantarError):
    """Raised when durable storage cannot be written."""


class StorageQuotaExceededError(StorageError):
    """Raised when a durable write would exceed the storage quota."""


class StorageReadError(StorageError):
    """Raised when durable storage cannot be read back."""


class OverwriteRefusedError(LipyantarError):
    """Raised when attempting to overwrite an output without consent."""


@dataclass
class ErrorRecord:
    """Stores context for a handled error."""

    category: ErrorCategory
    message: str
    details: Optional[str] = None


class ErrorTracker:
    """Tracks consecutive and aggregate errors to satisfy policy rules."""

    CONSECUTIVE_LIMIT = 3
    TOTAL_LIMIT = 10

    def __init__(self) -> None:
        self.last_category: Optional[ErrorCategory] = None
        self.consecutive: int = 0
        self.total: int = 0

    def register(self, category: ErrorCategory) -> tuple[int, int, bool]:
        """Register a new error and return counters."""

        if self.last_category == category:
            self.consecutive += 1
        else:
            self.last_category = category
            self.consecutive = 1

        self.total += 1

        threshold_reached = (
            self.consecutive == self.CONSECUTIVE_LIMIT
            or self.total == self.TOTAL_LIMIT
        )

        return self.consecutive, self.total, threshold_reached

    def reset_consecutive(self) -> None:
        """Reset the consecutive counter after successful work."""

        self.consecutive = 0
        self.last_category = None
