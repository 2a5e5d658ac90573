"""Mutation-driven reprocessing loop."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, List, Optional, Set

import structlog
from bs4 import Tag

from .documents import HostDocument, Subscription
from .structures import MutationKind, MutationRecord

logger = structlog.get_logger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 0.1
DEFAULT_RETRY_SECONDS = 1.0
WATCHED_ATTRIBUTES = frozenset({"class", "style"})

ChangeHandler = Callable[[], Awaitable[Any]]


def _is_text_bearing(node: Any, *, paragraph_tag: str, leaf_tag: str) -> bool:
    if not isinstance(node, Tag):
        return False
    if node.name in (paragraph_tag, leaf_tag):
        return True
    return node.find(paragraph_tag) is not None or node.find(leaf_tag) is not None


def is_relevant_mutation(
    record: MutationRecord,
    *,
    paragraph_tag: str = "p",
    leaf_tag: str = "span",
) -> bool:
    """Decide whether a mutation can change visible transliterable text."""

    if record.kind is MutationKind.CHILD_LIST:
        return any(
            _is_text_bearing(node, paragraph_tag=paragraph_tag, leaf_tag=leaf_tag)
            for node in (*record.added_nodes, *record.removed_nodes)
        )
    if record.kind is MutationKind.CHARACTER_DATA:
        parent = getattr(record.target, "parent", None)
        return isinstance(parent, Tag) and parent.name == leaf_tag
    if record.kind is MutationKind.ATTRIBUTES:
        return (
            isinstance(record.target, Tag)
            and record.target.name == leaf_tag
            and record.attribute_name in WATCHED_ATTRIBUTES
        )
    return False


class ContentObserver:
    """Watches the reader container and schedules debounced reprocessing.

    While a run is pending, further relevant mutations are dropped rather
    than restarting the timer, so a burst yields exactly one run. If the
    container is missing, setup is retried every ``retry_delay`` seconds
    until it appears or the observer is disconnected.
    """

    def __init__(
        self,
        document: HostDocument,
        on_change: ChangeHandler,
        *,
        container_selector: str = "div.reader-container",
        paragraph_tag: str = "p",
        leaf_tag: str = "span",
        debounce: float = DEFAULT_DEBOUNCE_SECONDS,
        retry_delay: float = DEFAULT_RETRY_SECONDS,
    ) -> None:
        self.document = document
        self.on_change = on_change
        self.container_selector = container_selector
        self.paragraph_tag = paragraph_tag
        self.leaf_tag = leaf_tag
        self.debounce = debounce
        self.retry_delay = retry_delay

        self.setup_attempts = 0
        self.runs_scheduled = 0
        self._subscription: Optional[Subscription] = None
        self._pending: Optional[asyncio.TimerHandle] = None
        self._retry: Optional[asyncio.TimerHandle] = None
        self._tasks: Set[asyncio.Task] = set()
        self._stopped = False

    @property
    def connected(self) -> bool:
        return self._subscription is not None

    @property
    def pending(self) -> bool:
        return self._pending is not None

    @property
    def busy(self) -> bool:
        return bool(self._tasks)

    def classify(self, record: MutationRecord) -> bool:
        return is_relevant_mutation(
            record,
            paragraph_tag=self.paragraph_tag,
            leaf_tag=self.leaf_tag,
        )

    def start(self) -> bool:
        """Subscribe to the container, or schedule another attempt."""

        self._stopped = False
        self._retry = None
        if self._subscription is not None:
            return True

        self.setup_attempts += 1
        container = self.document.select_one(self.container_selector)
        if container is None:
            loop = asyncio.get_running_loop()
            self._retry = loop.call_later(self.retry_delay, self.start)
            logger.debug(
                "observer_container_missing",
                selector=self.container_selector,
                attempt=self.setup_attempts,
            )
            return False

        self._subscription = self.document.subscribe(
            container, self.classify, self._on_relevant
        )
        logger.info("observer_connected", selector=self.container_selector)
        return True

    def _on_relevant(self, records: List[MutationRecord]) -> None:
        if self._stopped:
            return
        if self._pending is not None:
            logger.debug("reprocess_coalesced", mutations=len(records))
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("content_changed_outside_event_loop", mutations=len(records))
            return
        logger.info("content_changed", mutations=len(records))
        self._pending = loop.call_later(self.debounce, self._fire)

    def _fire(self) -> None:
        self._pending = None
        if self._stopped:
            return
        self.runs_scheduled += 1
        task = asyncio.get_running_loop().create_task(self._run())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self) -> None:
        try:
            await self.on_change()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("reprocess_failed")

    async def wait_idle(self) -> None:
        """Wait until every reprocessing run started so far has finished."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def disconnect(self) -> None:
        self._stopped = True
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None
        if self._retry is not None:
            self._retry.cancel()
            self._retry = None
