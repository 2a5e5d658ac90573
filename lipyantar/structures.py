"""Core data structures for the Lipyantar transliterator."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Tuple


class TransliterationMode(str, Enum):
    """Target romanization for visible text."""

    OFF = "off"
    IAST = "iast"
    HUNTERIAN = "hunterian"

    @classmethod
    def parse(cls, value: "TransliterationMode | str") -> "TransliterationMode":
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower()
        for member in cls:
            if member.value == normalized:
                return member
        raise ValueError(f"Unknown transliteration mode '{value}'.")


class DisplayMode(str, Enum):
    """How transliterated text is presented."""

    REPLACE = "replace"
    OVERLAY = "overlay"


class MutationKind(str, Enum):
    CHILD_LIST = "child_list"
    CHARACTER_DATA = "character_data"
    ATTRIBUTES = "attributes"


@dataclass
class MutationRecord:
    """A single change reported by the host document."""

    kind: MutationKind
    target: Any
    added_nodes: List[Any] = field(default_factory=list)
    removed_nodes: List[Any] = field(default_factory=list)
    attribute_name: Optional[str] = None


@dataclass
class TextUnit:
    """A text-bearing host node registered for transliteration."""

    handle: int
    node: Any
    original_text: str


@dataclass(frozen=True)
class CacheEntry:
    result: str
    timestamp: int


@dataclass(frozen=True)
class CacheStats:
    entry_count: int
    oldest_entry: Optional[int]
    newest_entry: Optional[int]


@dataclass(frozen=True)
class LanguageInfo:
    language_code: str
    language: str


@dataclass
class Batch:
    """A fixed-size chunk of texts, keeping their positions in the input."""

    batch_id: int
    items: List[Tuple[int, str]]

    @property
    def texts(self) -> List[str]:
        return [text for _, text in self.items]


@dataclass
class PassSummary:
    """Report returned after one reprocessing pass."""

    mode: TransliterationMode
    total_elements: int
    total_units: int
    transliterated_units: int
    skipped_units: int
    elapsed_seconds: float
    error_messages: List[str] = field(default_factory=list)
