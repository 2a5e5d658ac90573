"""Two-stage script conversion: remote IAST, then local Hunterian."""

from __future__ import annotations

import asyncio
from typing import Dict, List, Optional, Sequence

import structlog

from .cache import TransliterationCache, make_cache_key, make_intermediate_key
from .errors import ErrorCategory, TransliterationServiceError
from .policy import ErrorPolicy
from .providers import INTERMEDIATE_SCRIPT, TransliterationProvider
from .schemes import iast_to_hunterian
from .segmenter import DEFAULT_BATCH_SIZE, BatchBuilder
from .structures import TransliterationMode

logger = structlog.get_logger(__name__)

# Languages wired to a real conversion engine, by code -> remote source script.
SOURCE_SCRIPTS: Dict[str, str] = {
    "gu": "Gujarati",
}


class ScriptConverter:
    """Converts text from one source script to IAST or Hunterian.

    Final results are cached per ``(text, mode)``; the raw remote result is
    cached separately so one remote call serves both target modes.
    """

    def __init__(
        self,
        provider: TransliterationProvider,
        cache: TransliterationCache,
        *,
        source_script: str = "Gujarati",
        batch_size: int = DEFAULT_BATCH_SIZE,
        error_policy: Optional[ErrorPolicy] = None,
    ) -> None:
        self.provider = provider
        self.cache = cache
        self.source_script = source_script
        self.batch_builder = BatchBuilder(batch_size)
        self.error_policy = error_policy or ErrorPolicy()

    async def convert(self, text: str, mode: TransliterationMode | str) -> str:
        mode = TransliterationMode.parse(mode)
        if mode is TransliterationMode.OFF:
            return text
        if not text or not text.strip():
            return text

        cache_key = make_cache_key(text, mode)
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        try:
            iast_text = await self.to_intermediate(text)
        except TransliterationServiceError as exc:
            self.error_policy.handle_error(
                ErrorCategory.NETWORK,
                "transliteration_failed",
                details=str(exc),
                source_script=self.source_script,
                mode=mode.value,
            )
            return text

        if mode is TransliterationMode.HUNTERIAN:
            result = iast_to_hunterian(iast_text)
        else:
            result = iast_text

        self.cache.set(cache_key, result)
        return result

    async def to_intermediate(self, text: str) -> str:
        """Return the remote IAST rendering of ``text`` (stage one)."""

        clean_text = text.strip()
        if not clean_text:
            return text

        intermediate_key = make_intermediate_key(clean_text)
        cached = self.cache.get(intermediate_key)
        if cached is not None:
            return cached

        result = await self.provider.transliterate(
            clean_text,
            source_script=self.source_script,
            target_script=INTERMEDIATE_SCRIPT,
        )
        if not result or not result.strip():
            raise TransliterationServiceError(
                "Transliteration service returned an empty result."
            )
        self.error_policy.record_success()

        self.cache.set(intermediate_key, result)
        return result

    async def batch_convert(
        self,
        texts: Sequence[str],
        mode: TransliterationMode | str,
    ) -> List[str]:
        """Convert many texts, at most one batch of requests in flight."""

        mode = TransliterationMode.parse(mode)
        results: List[str] = list(texts)
        for batch in self.batch_builder.build(texts):
            converted = await asyncio.gather(
                *(self.convert(text, mode) for text in batch.texts)
            )
            for (index, _), value in zip(batch.items, converted):
                results[index] = value
            logger.debug(
                "batch_converted",
                batch_id=batch.batch_id,
                size=len(batch.items),
                mode=mode.value,
            )
        return results

    def flush_cache(self) -> None:
        self.cache.flush()

    def clear_cache(self) -> None:
        self.cache.clear()


def build_converter(
    language_code: str,
    *,
    provider: TransliterationProvider,
    cache: TransliterationCache,
    batch_size: int = DEFAULT_BATCH_SIZE,
    error_policy: Optional[ErrorPolicy] = None,
) -> Optional[ScriptConverter]:
    """Return a converter for ``language_code`` or ``None`` when none exists."""

    source_script = SOURCE_SCRIPTS.get(language_code)
    if source_script is None:
        return None
    return ScriptConverter(
        provider,
        cache,
        source_script=source_script,
        batch_size=batch_size,
        error_policy=error_policy,
    )
