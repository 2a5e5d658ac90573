"""
Unit tests for the two-stage script converter.
"""

import pytest

from lipyantar.cache import make_cache_key, make_intermediate_key
from lipyantar.engine import ScriptConverter, build_converter
from lipyantar.errors import ErrorCategory
from lipyantar.structures import TransliterationMode


class TestConvert:
    """Tests for single-text conversion."""

    async def test_off_returns_input_without_remote_call(self, converter, provider, cache):
        assert await converter.convert("ગુજરાતી", TransliterationMode.OFF) == "ગુજરાતી"
        assert provider.calls == []
        assert len(cache) == 0

    async def test_blank_text_passes_through(self, converter, provider):
        assert await converter.convert("   ", "iast") == "   "
        assert await converter.convert("", "hunterian") == ""
        assert provider.calls == []

    async def test_iast(self, converter):
        assert await converter.convert("ગુજરાતી", "iast") == "gujarātī"

    async def test_hunterian(self, converter):
        assert await converter.convert("ભાષા", TransliterationMode.HUNTERIAN) == "bhasha"

    async def test_results_are_cached(self, converter, provider, cache):
        await converter.convert("ગુજરાતી", "iast")
        await converter.convert("ગુજરાતી", "iast")

        assert provider.calls == ["ગુજરાતી"]
        assert cache.get(make_cache_key("ગુજરાતી", "iast")) == "gujarātī"

    async def test_intermediate_shared_between_modes(self, converter, provider, cache):
        assert await converter.convert("ગુજરાતી", "iast") == "gujarātī"
        assert await converter.convert("ગુજરાતી", "hunterian") == "gujarati"

        assert provider.calls == ["ગુજરાતી"]
        assert cache.get(make_intermediate_key("ગુજરાતી")) == "gujarātī"

    async def test_remote_call_uses_trimmed_text(self, converter, provider):
        await converter.convert("  ભાષા \n", "iast")

        assert provider.calls == ["ભાષા"]

    async def test_failure_returns_original_and_is_not_cached(
        self, make_provider, cache
    ):
        provider = make_provider(failures={"ભાષા"})
        converter = ScriptConverter(provider, cache)

        assert await converter.convert("ભાષા", "hunterian") == "ભાષા"
        assert len(cache) == 0
        record = converter.error_policy.records[0]
        assert record.category is ErrorCategory.NETWORK
        assert record.message == "transliteration_failed"

        provider.failures.clear()
        assert await converter.convert("ભાષા", "hunterian") == "bhasha"
        assert provider.calls == ["ભાષા", "ભાષા"]

    @pytest.mark.parametrize("mode", ["iast", "hunterian"])
    @pytest.mark.parametrize("body", ["", "   "])
    async def test_empty_remote_result_keeps_text_uncached(
        self, make_provider, cache, mode, body
    ):
        provider = make_provider({"ગુજરાતી": body})
        converter = ScriptConverter(provider, cache)

        assert await converter.convert("ગુજરાતી", mode) == "ગુજરાતી"
        assert len(cache) == 0
        assert converter.error_policy.records[-1].category is ErrorCategory.NETWORK

    async def test_empty_remote_result_is_retried(self, make_provider, cache):
        provider = make_provider({"ગુજરાતી": ""})
        converter = ScriptConverter(provider, cache)
        await converter.convert("ગુજરાતી", "hunterian")

        provider.mapping["ગુજરાતી"] = "gujarātī"

        assert await converter.convert("ગુજરાતી", "hunterian") == "gujarati"
        assert len(provider.calls) == 2

    async def test_unknown_mode_raises(self, converter):
        with pytest.raises(ValueError):
            await converter.convert("ભાષા", "devanagari")


class TestBatchConvert:
    """Tests for batched conversion."""

    async def test_preserves_order_despite_completion_order(self, make_provider, cache):
        provider = make_provider(
            {"a": "A", "b": "B", "c": "C"},
            delays={"a": 0.03, "b": 0.0, "c": 0.01},
        )
        converter = ScriptConverter(provider, cache)

        assert await converter.batch_convert(["a", "b", "c"], "iast") == ["A", "B", "C"]

    async def test_at_most_one_batch_in_flight(self, make_provider, cache):
        provider = make_provider({}, default_delay=0.005)
        converter = ScriptConverter(provider, cache, batch_size=10)
        texts = [f"text{i}" for i in range(25)]

        results = await converter.batch_convert(texts, "iast")

        assert results == texts
        assert len(provider.calls) == 25
        assert provider.max_in_flight <= 10

    async def test_off_mode_is_identity(self, converter, provider):
        texts = ["ગુજરાતી", "ભાષા"]

        assert await converter.batch_convert(texts, "off") == texts
        assert provider.calls == []

    async def test_empty_input(self, converter):
        assert await converter.batch_convert([], "iast") == []


class TestBuildConverter:
    def test_supported_language(self, provider, cache):
        converter = build_converter("gu", provider=provider, cache=cache, batch_size=4)

        assert converter.source_script == "Gujarati"
        assert converter.batch_builder.size == 4

    def test_unsupported_language(self, provider, cache):
        assert build_converter("hi", provider=provider, cache=cache) is None
