"""Text extraction and restoration for the host document."""

from __future__ import annotations

import time
from typing import Any, Dict, List, Optional, Sequence, Set

import structlog

from .documents import HostDocument
from .engine import ScriptConverter
from .structures import PassSummary, TextUnit, TransliterationMode

logger = structlog.get_logger(__name__)

DEFAULT_CONTAINER_SELECTOR = "div.reader-container"
DEFAULT_PARAGRAPH_TAG = "p"
DEFAULT_LEAF_TAG = "span"


class UnitRegistry:
    """Assigns one stable integer handle to every host node it is shown."""

    def __init__(self) -> None:
        self._handles: Dict[int, int] = {}
        self._nodes: Dict[int, Any] = {}
        self._next_handle = 1

    def handle_for(self, node: Any) -> int:
        # The registry holds a reference to every node, so ids are never reused.
        handle = self._handles.get(id(node))
        if handle is None:
            handle = self._next_handle
            self._next_handle += 1
            self._handles[id(node)] = handle
            self._nodes[handle] = node
        return handle

    def lookup(self, node: Any) -> Optional[int]:
        return self._handles.get(id(node))

    def node(self, handle: int) -> Any:
        return self._nodes[handle]

    def clear(self) -> None:
        self._handles.clear()
        self._nodes.clear()

    def __len__(self) -> int:
        return len(self._nodes)


class ContentProcessor:
    """Finds transliterable text, remembers originals and restores them.

    Originals are captured once per node and never overwritten until
    ``cleanup``; every pass restores them before converting, so output is
    always derived from pristine source text.
    """

    def __init__(
        self,
        document: HostDocument,
        *,
        container_selector: str = DEFAULT_CONTAINER_SELECTOR,
        paragraph_tag: str = DEFAULT_PARAGRAPH_TAG,
        leaf_tag: str = DEFAULT_LEAF_TAG,
    ) -> None:
        self.document = document
        self.container_selector = container_selector
        self.paragraph_tag = paragraph_tag
        self.leaf_tag = leaf_tag
        self.registry = UnitRegistry()
        self.original_content: Dict[int, str] = {}
        self.processed: Set[int] = set()

    @property
    def original_count(self) -> int:
        return len(self.original_content)

    @property
    def processed_count(self) -> int:
        return len(self.processed)

    def find_target_elements(self) -> List[Any]:
        container = self.document.select_one(self.container_selector)
        if container is None:
            return []
        return self.document.find_all(self.paragraph_tag, container)

    def get_text_units(self, paragraph: Any) -> List[Any]:
        """Return the leaf text elements of ``paragraph``, or the paragraph itself."""

        leaves = [
            element
            for element in self.document.find_all(self.leaf_tag, paragraph)
            if element.find(self.leaf_tag) is None
            and self.document.get_text(element).strip()
        ]
        return leaves or [paragraph]

    def store_original(self, node: Any) -> TextUnit:
        handle = self.registry.handle_for(node)
        if handle not in self.original_content:
            self.original_content[handle] = self.document.get_text(node)
        return TextUnit(
            handle=handle,
            node=node,
            original_text=self.original_content[handle],
        )

    def restore_original(self, node: Any) -> None:
        handle = self.registry.lookup(node)
        if handle is None or handle not in self.original_content:
            return
        self._restore(node, self.original_content[handle])
        self.processed.discard(handle)

    def restore_all(self) -> None:
        for handle, original_text in self.original_content.items():
            self._restore(self.registry.node(handle), original_text)
        self.processed.clear()

    def _restore(self, node: Any, original_text: str) -> None:
        # Untouched nodes keep their markup.
        if self.document.get_text(node) != original_text:
            self.document.set_text(node, original_text)

    def collect_units(self, elements: Sequence[Any]) -> List[TextUnit]:
        """Register every text unit of ``elements`` with non-blank original text."""

        units: List[TextUnit] = []
        for paragraph in elements:
            for node in self.get_text_units(paragraph):
                unit = self.store_original(node)
                if unit.original_text and unit.original_text.strip():
                    units.append(unit)
        return units

    async def process_elements(
        self,
        elements: Sequence[Any],
        converter: ScriptConverter,
        mode: TransliterationMode | str,
    ) -> PassSummary:
        start_time = time.monotonic()
        mode = TransliterationMode.parse(mode)
        errors_before = converter.error_policy.handled

        self.restore_all()
        if mode is TransliterationMode.OFF:
            return PassSummary(
                mode=mode,
                total_elements=len(elements),
                total_units=0,
                transliterated_units=0,
                skipped_units=0,
                elapsed_seconds=time.monotonic() - start_time,
            )

        units = self.collect_units(elements)
        transliterated = 0
        if units:
            logger.info("batch_processing", units=len(units), mode=mode.value)
            results = await converter.batch_convert(
                [unit.original_text for unit in units], mode
            )
            for unit, result in zip(units, results):
                if result:
                    self.document.set_text(unit.node, result)
                    self.processed.add(unit.handle)
                    transliterated += 1

        return PassSummary(
            mode=mode,
            total_elements=len(elements),
            total_units=len(units),
            transliterated_units=transliterated,
            skipped_units=len(units) - transliterated,
            elapsed_seconds=time.monotonic() - start_time,
            error_messages=converter.error_policy.messages_since(errors_before),
        )

    async def process_paragraph(
        self,
        paragraph: Any,
        converter: ScriptConverter,
        mode: TransliterationMode | str,
    ) -> int:
        """Convert one paragraph unit by unit; returns how many were written."""

        written = 0
        for node in self.get_text_units(paragraph):
            if await self.process_unit(node, converter, mode):
                written += 1
        return written

    async def process_unit(
        self,
        node: Any,
        converter: ScriptConverter,
        mode: TransliterationMode | str,
    ) -> bool:
        unit = self.store_original(node)
        if not unit.original_text or not unit.original_text.strip():
            return False

        mode = TransliterationMode.parse(mode)
        if mode is TransliterationMode.OFF:
            self.restore_original(node)
            return False

        result = await converter.convert(unit.original_text, mode)
        if not result:
            return False
        self.document.set_text(node, result)
        self.processed.add(unit.handle)
        return True

    def cleanup(self) -> None:
        self.restore_all()
        self.original_content.clear()
        self.processed.clear()
        self.registry.clear()

    def is_processed(self, node: Any) -> bool:
        return self.registry.lookup(node) in self.processed

    def original_text(self, node: Any) -> Optional[str]:
        handle = self.registry.lookup(node)
        if handle is None:
            return None
        return self.original_content.get(handle)
