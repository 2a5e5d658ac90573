"""High-level orchestration for live page transliteration."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, Optional, Set

import structlog

from .cache import TransliterationCache
from .configuration import LipyantarConfig
from .content import ContentProcessor
from .documents import HostDocument
from .engine import ScriptConverter, build_converter
from .errors import ErrorCategory
from .matcher import URLMatcher
from .observer import ContentObserver
from .policy import ErrorPolicy
from .providers import TransliterationProvider
from .settings import TRANSLITERATION_MODE, SettingsManager
from .structures import LanguageInfo, PassSummary, TransliterationMode

logger = structlog.get_logger(__name__)


class TransliterationController:
    """Coordinates eligibility, settings, extraction, conversion and observation.

    One instance owns every component for one page session. ``initialize``
    runs the first pass and starts watching the page; ``shutdown`` stops
    watching, restores the original text and flushes the cache.
    """

    def __init__(
        self,
        document: HostDocument,
        url: str,
        *,
        settings_manager: SettingsManager,
        provider: TransliterationProvider,
        cache: TransliterationCache,
        config: Optional[LipyantarConfig] = None,
        matcher: Optional[URLMatcher] = None,
        error_policy: Optional[ErrorPolicy] = None,
    ) -> None:
        self.document = document
        self.url = url
        self.settings_manager = settings_manager
        self.provider = provider
        self.cache = cache
        self.config = config or LipyantarConfig()
        self.matcher = matcher or URLMatcher()
        self.error_policy = error_policy or cache.error_policy

        self.content_processor = ContentProcessor(
            document,
            container_selector=self.config.container_selector,
            paragraph_tag=self.config.paragraph_tag,
            leaf_tag=self.config.leaf_tag,
        )
        self.converter: Optional[ScriptConverter] = None
        self.language: Optional[LanguageInfo] = None
        self.observer: Optional[ContentObserver] = None
        self.last_summary: Optional[PassSummary] = None
        self.passes_run = 0

        self._initialized = False
        self._pass_lock = asyncio.Lock()
        self._settings_tasks: Set[asyncio.Task] = set()
        self._unsubscribe_settings: Optional[Callable[[], None]] = None

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        if self._initialized:
            return

        language = self.matcher.is_valid_url(self.url)
        if language is None:
            logger.info("page_not_supported", url=self.url)
            return
        logger.info("language_detected", language=language.language)

        converter = build_converter(
            language.language_code,
            provider=self.provider,
            cache=self.cache,
            batch_size=self.config.batch_size,
            error_policy=self.error_policy,
        )
        if converter is None:
            self.error_policy.handle_error(
                ErrorCategory.ELIGIBILITY,
                "no_transliterator_available",
                language=language.language,
            )
            return

        self.language = language
        self.converter = converter
        self._unsubscribe_settings = self.settings_manager.on_settings_changed(
            self.on_settings_changed
        )

        await self.process_page()

        self.observer = ContentObserver(
            self.document,
            self.process_page,
            container_selector=self.config.container_selector,
            paragraph_tag=self.config.paragraph_tag,
            leaf_tag=self.config.leaf_tag,
            debounce=self.config.debounce_seconds,
            retry_delay=self.config.observer_retry_seconds,
        )
        self.observer.start()

        self._initialized = True
        logger.info("initialized", language=language.language)

    async def process_page(self) -> Optional[PassSummary]:
        """Run one full reprocessing pass; passes never overlap."""

        if self.converter is None:
            return None

        async with self._pass_lock:
            mode = self._current_mode()
            elements = self.content_processor.find_target_elements()
            if not elements:
                logger.info("no_target_elements", selector=self.config.container_selector)
                return None

            logger.info("processing_page", elements=len(elements), mode=mode.value)
            summary = await self.content_processor.process_elements(
                elements, self.converter, mode
            )
            self.last_summary = summary
            self.passes_run += 1
            return summary

    def _current_mode(self) -> TransliterationMode:
        raw = self.settings_manager.get_settings()[TRANSLITERATION_MODE]
        try:
            return TransliterationMode.parse(raw)
        except ValueError:
            logger.warning("unknown_mode", mode=raw)
            return TransliterationMode.OFF

    def on_settings_changed(self, changes: Dict[str, Any]) -> None:
        if TRANSLITERATION_MODE not in changes:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("mode_changed_outside_event_loop")
            return
        logger.info("mode_changed", mode=changes[TRANSLITERATION_MODE])
        task = loop.create_task(self.process_page())
        self._settings_tasks.add(task)
        task.add_done_callback(self._settings_tasks.discard)

    async def wait_idle(self) -> None:
        """Wait for every scheduled or running pass to finish."""

        while True:
            if self._settings_tasks:
                await asyncio.gather(*list(self._settings_tasks), return_exceptions=True)
            if self.observer is not None:
                await self.observer.wait_idle()
            if not self._settings_tasks and (
                self.observer is None or not self.observer.busy
            ):
                return

    async def shutdown(self) -> None:
        if self.observer is not None:
            self.observer.disconnect()
        if self._unsubscribe_settings is not None:
            self._unsubscribe_settings()
            self._unsubscribe_settings = None

        await self.wait_idle()

        self.content_processor.cleanup()
        self.cache.flush()
        await self.provider.aclose()
        self.observer = None
        self._initialized = False
        logger.info("shutdown_complete")
