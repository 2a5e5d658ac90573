"""
Shared pytest fixtures.

Provides a scripted conversion provider, in-memory storage, a sample reader
page and fast observer timings so tests never touch the network.
"""

import asyncio
from typing import Dict, Iterable, List, Optional

import pytest

from lipyantar.cache import CacheWritePolicy, TransliterationCache
from lipyantar.configuration import LipyantarConfig
from lipyantar.documents import HostDocument
from lipyantar.engine import ScriptConverter
from lipyantar.errors import TransliterationServiceError
from lipyantar.providers import INTERMEDIATE_SCRIPT, TransliterationProvider
from lipyantar.settings import SettingsManager
from lipyantar.storage import MemoryStorage


READER_URL = "https://www.lingq.com/en/learn/gu/web/reader/12345/"

READER_HTML = """
<html><body>
<div class="reader-container">
  <p><span><span>ગુજરાતી</span> <span>ભાષા</span></span></p>
  <p>સરળ વાક્ય</p>
  <p><span>   </span></p>
</div>
<div class="sidebar"><p><span>બહાર</span></p></div>
</body></html>
"""

IAST_RESULTS = {
    "ગુજરાતી": "gujarātī",
    "ભાષા": "bhāṣā",
    "સરળ વાક્ય": "saraḷa vākya",
    "નવું": "navuṃ",
}


class FakeProvider(TransliterationProvider):
    """Scripted provider recording every remote call."""

    name = "fake"

    def __init__(
        self,
        mapping: Optional[Dict[str, str]] = None,
        *,
        delays: Optional[Dict[str, float]] = None,
        failures: Iterable[str] = (),
        default_delay: float = 0.0,
    ) -> None:
        self.mapping = dict(mapping if mapping is not None else IAST_RESULTS)
        self.delays = dict(delays or {})
        self.failures = set(failures)
        self.default_delay = default_delay
        self.calls: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.closed = False

    async def transliterate(
        self,
        text: str,
        *,
        source_script: str,
        target_script: str = INTERMEDIATE_SCRIPT,
    ) -> str:
        self.calls.append(text)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delays.get(text, self.default_delay))
            if text in self.failures:
                raise TransliterationServiceError(f"scripted failure for {text}")
            return self.mapping.get(text, text.lower())
        finally:
            self.in_flight -= 1

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def make_provider():
    """Factory for scripted providers."""
    return FakeProvider


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def cache_storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def cache(cache_storage) -> TransliterationCache:
    """Cache that only persists on explicit flush, for deterministic tests."""
    return TransliterationCache(
        cache_storage,
        "test_cache",
        write_policy=CacheWritePolicy.FLUSH_ONLY,
    )


@pytest.fixture
def converter(provider, cache) -> ScriptConverter:
    return ScriptConverter(provider, cache, source_script="Gujarati")


@pytest.fixture
def document() -> HostDocument:
    return HostDocument(READER_HTML)


@pytest.fixture
def settings_manager() -> SettingsManager:
    return SettingsManager(MemoryStorage())


@pytest.fixture
def config(tmp_path) -> LipyantarConfig:
    """Configuration with short timers and storage under tmp_path."""
    return LipyantarConfig(
        storage_dir=tmp_path / "storage",
        debounce_seconds=0.01,
        observer_retry_seconds=0.01,
    )


@pytest.fixture
def reader_url() -> str:
    return READER_URL


@pytest.fixture
def reader_html() -> str:
    return READER_HTML
