"""
Unit tests for text extraction, conversion write-back and restoration.
"""

import pytest

from lipyantar.content import ContentProcessor, UnitRegistry
from lipyantar.documents import HostDocument
from lipyantar.engine import ScriptConverter
from lipyantar.structures import TransliterationMode


@pytest.fixture
def processor(document) -> ContentProcessor:
    return ContentProcessor(document)


def _texts(document):
    container = document.select_one("div.reader-container")
    return [document.get_text(p) for p in document.find_all("p", container)]


class TestUnitRegistry:
    def test_handles_are_stable(self, document):
        registry = UnitRegistry()
        paragraph = document.find_all("p")[0]

        handle = registry.handle_for(paragraph)

        assert registry.handle_for(paragraph) == handle
        assert registry.lookup(paragraph) == handle
        assert registry.node(handle) is paragraph
        assert registry.lookup(document.find_all("p")[1]) is None

    def test_clear(self, document):
        registry = UnitRegistry()
        registry.handle_for(document.find_all("p")[0])
        registry.clear()

        assert len(registry) == 0


class TestExtraction:
    """Tests for locating text units."""

    def test_targets_only_inside_container(self, processor):
        assert len(processor.find_target_elements()) == 3

    def test_missing_container(self):
        processor = ContentProcessor(HostDocument("<p>orphan</p>"))
        assert processor.find_target_elements() == []

    def test_leaf_spans_are_units(self, processor, document):
        paragraph = processor.find_target_elements()[0]

        units = processor.get_text_units(paragraph)

        assert [document.get_text(unit) for unit in units] == ["ગુજરાતી", "ભાષા"]

    def test_paragraph_without_spans_is_one_unit(self, processor):
        paragraph = processor.find_target_elements()[1]

        assert processor.get_text_units(paragraph) == [paragraph]

    def test_blank_spans_fall_back_to_paragraph(self, processor):
        paragraph = processor.find_target_elements()[2]

        assert processor.get_text_units(paragraph) == [paragraph]


class TestOriginals:
    """Tests for capture and restoration of original text."""

    def test_store_original_is_idempotent(self, processor, document):
        paragraph = processor.find_target_elements()[1]
        first = processor.store_original(paragraph)
        document.set_text(paragraph, "changed")

        second = processor.store_original(paragraph)

        assert first.handle == second.handle
        assert second.original_text == "સરળ વાક્ય"
        assert processor.original_count == 1

    def test_restore_original(self, processor, document):
        paragraph = processor.find_target_elements()[1]
        processor.store_original(paragraph)
        document.set_text(paragraph, "changed")

        processor.restore_original(paragraph)
        processor.restore_original(paragraph)

        assert document.get_text(paragraph) == "સરળ વાક્ય"

    def test_restore_unknown_node_is_noop(self, processor, document):
        paragraph = processor.find_target_elements()[0]
        before = document.to_html()

        processor.restore_original(paragraph)

        assert document.to_html() == before
        assert processor.original_text(paragraph) is None


class TestProcessElements:
    """Tests for full passes."""

    async def test_iast_pass(self, processor, document, converter):
        summary = await processor.process_elements(
            processor.find_target_elements(), converter, "iast"
        )

        assert _texts(document) == ["gujarātī bhāṣā", "saraḷa vākya", "   "]
        assert summary.total_elements == 3
        assert summary.total_units == 3
        assert summary.transliterated_units == 3
        assert summary.error_messages == []
        assert processor.processed_count == 3

    async def test_outside_container_untouched(self, processor, document, converter):
        await processor.process_elements(
            processor.find_target_elements(), converter, "hunterian"
        )

        assert document.get_text(document.select_one("div.sidebar p")) == "બહાર"

    async def test_mode_switches_do_not_compound(self, processor, document, converter):
        elements = processor.find_target_elements()

        await processor.process_elements(elements, converter, "iast")
        await processor.process_elements(elements, converter, "hunterian")

        assert _texts(document) == ["gujarati bhasha", "sarala vakya", "   "]

    async def test_off_restores_originals(self, processor, document, converter, provider):
        elements = processor.find_target_elements()
        before = _texts(document)

        await processor.process_elements(elements, converter, "hunterian")
        summary = await processor.process_elements(elements, converter, "off")

        assert _texts(document) == before
        assert summary.total_units == 0
        assert processor.processed_count == 0
        assert len(provider.calls) == 3

    async def test_restore_all_twice_matches_once(self, processor, document, converter):
        before = _texts(document)
        await processor.process_elements(
            processor.find_target_elements(), converter, "hunterian"
        )

        processor.restore_all()
        once_html = document.to_html()
        once_texts = _texts(document)
        once_processed = processor.processed_count
        processor.restore_all()

        assert once_texts == before
        assert _texts(document) == once_texts
        assert document.to_html() == once_html
        assert processor.processed_count == once_processed == 0

    async def test_same_mode_twice_gives_same_output(self, processor, document, converter):
        elements = processor.find_target_elements()

        await processor.process_elements(elements, converter, "iast")
        first = _texts(document)
        await processor.process_elements(elements, converter, "iast")

        assert _texts(document) == first == ["gujarātī bhāṣā", "saraḷa vākya", "   "]

    async def test_repeated_pass_uses_originals(self, processor, converter, provider):
        elements = processor.find_target_elements()

        await processor.process_elements(elements, converter, "iast")
        await processor.process_elements(elements, converter, "iast")

        assert sorted(provider.calls) == sorted(["ગુજરાતી", "ભાષા", "સરળ વાક્ય"])

    async def test_failures_leave_original_text(self, processor, document, make_provider, cache):
        converter = ScriptConverter(make_provider(failures={"ભાષા"}), cache)

        summary = await processor.process_elements(
            processor.find_target_elements(), converter, "iast"
        )

        assert _texts(document)[0] == "gujarātī ભાષા"
        assert summary.error_messages == ["transliteration_failed"]


class TestIncrementalProcessing:
    async def test_process_paragraph(self, processor, document, converter):
        paragraph = processor.find_target_elements()[0]

        written = await processor.process_paragraph(paragraph, converter, "hunterian")

        assert written == 2
        assert document.get_text(paragraph) == "gujarati bhasha"

    async def test_process_unit_off_restores(self, processor, document, converter):
        paragraph = processor.find_target_elements()[1]
        await processor.process_unit(paragraph, converter, TransliterationMode.IAST)
        assert processor.is_processed(paragraph)

        assert await processor.process_unit(paragraph, converter, "off") is False
        assert document.get_text(paragraph) == "સરળ વાક્ય"
        assert not processor.is_processed(paragraph)

    async def test_blank_unit_is_skipped(self, processor, converter, provider):
        paragraph = processor.find_target_elements()[2]

        assert await processor.process_unit(paragraph, converter, "iast") is False
        assert provider.calls == []


class TestCleanup:
    async def test_cleanup_restores_and_forgets(self, processor, document, converter):
        before = _texts(document)
        await processor.process_elements(
            processor.find_target_elements(), converter, "iast"
        )

        processor.cleanup()

        assert _texts(document) == before
        assert processor.original_count == 0
        assert len(processor.registry) == 0
