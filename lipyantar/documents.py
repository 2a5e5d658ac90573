"""Host document model with a mutation feed."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, List, Optional, Sequence

import structlog
from bs4 import BeautifulSoup, NavigableString, Tag

from .structures import MutationKind, MutationRecord

logger = structlog.get_logger(__name__)

MutationClassifier = Callable[[MutationRecord], bool]
MutationCallback = Callable[[List[MutationRecord]], None]


class Subscription:
    """Handle returned by ``HostDocument.subscribe``; cancel to stop delivery."""

    def __init__(
        self,
        document: "HostDocument",
        root: Tag,
        classifier: MutationClassifier,
        callback: MutationCallback,
    ) -> None:
        self.document = document
        self.root = root
        self.classifier = classifier
        self.callback = callback
        self.active = True

    def cancel(self) -> None:
        if not self.active:
            return
        self.active = False
        self.document._unsubscribe(self)

    def _dispatch(self, records: Sequence[MutationRecord]) -> None:
        if not self.active:
            return
        relevant = [
            record
            for record in records
            if self.document.contains(self.root, record.target)
            and self.classifier(record)
        ]
        if relevant:
            self.callback(relevant)


class HostDocument:
    """A BeautifulSoup tree whose mutations are reported to subscribers.

    Every change made through this API (by the page that owns the content or
    by the transliteration write-back) is queued as a ``MutationRecord``.
    Queued records are delivered together on the next event-loop iteration,
    or immediately when no loop is running.
    """

    def __init__(self, html: str = "", *, parser: str = "html.parser") -> None:
        self.soup = BeautifulSoup(html, parser)
        self._subscriptions: List[Subscription] = []
        self._pending: List[MutationRecord] = []
        self._flush_scheduled = False

    @classmethod
    def from_file(cls, path, *, parser: str = "html.parser") -> "HostDocument":
        with open(path, "r", encoding="utf-8") as handle:
            return cls(handle.read(), parser=parser)

    # --- Queries -------------------------------------------------------------

    def select_one(self, selector: str) -> Optional[Tag]:
        return self.soup.select_one(selector)

    def find_all(self, name: str, root: Optional[Tag] = None) -> List[Tag]:
        scope = root if root is not None else self.soup
        return list(scope.find_all(name))

    @staticmethod
    def get_text(node: Any) -> str:
        if isinstance(node, NavigableString):
            return str(node)
        return node.get_text()

    @staticmethod
    def contains(root: Any, node: Any) -> bool:
        """Whether ``node`` is ``root`` or one of its descendants."""

        if node is root:
            return True
        return any(parent is root for parent in node.parents)

    def to_html(self) -> str:
        return str(self.soup)

    # --- Mutations -----------------------------------------------------------

    def set_text(self, element: Tag, text: str) -> None:
        """Replace all children of ``element`` with a single text node."""

        removed = list(element.contents)
        element.clear()
        added: List[Any] = []
        if text:
            node = NavigableString(text)
            element.append(node)
            added.append(node)
        self._queue(
            MutationRecord(
                kind=MutationKind.CHILD_LIST,
                target=element,
                added_nodes=added,
                removed_nodes=removed,
            )
        )

    def append_html(self, parent: Tag, html: str) -> List[Any]:
        fragment = BeautifulSoup(html, "html.parser")
        nodes = list(fragment.contents)
        for node in nodes:
            parent.append(node.extract())
        self._queue(
            MutationRecord(
                kind=MutationKind.CHILD_LIST,
                target=parent,
                added_nodes=nodes,
            )
        )
        return nodes

    def remove(self, node: Any) -> None:
        parent = node.parent
        if parent is None:
            return
        node.extract()
        self._queue(
            MutationRecord(
                kind=MutationKind.CHILD_LIST,
                target=parent,
                removed_nodes=[node],
            )
        )

    def replace_text_node(self, node: NavigableString, text: str) -> NavigableString:
        """Change the data of a text node in place."""

        replacement = NavigableString(text)
        node.replace_with(replacement)
        self._queue(
            MutationRecord(kind=MutationKind.CHARACTER_DATA, target=replacement)
        )
        return replacement

    def set_attribute(self, element: Tag, name: str, value: str) -> None:
        element[name] = value
        self._queue(
            MutationRecord(
                kind=MutationKind.ATTRIBUTES,
                target=element,
                attribute_name=name,
            )
        )

    # --- Mutation feed -------------------------------------------------------

    def subscribe(
        self,
        root: Tag,
        classifier: MutationClassifier,
        on_relevant: MutationCallback,
    ) -> Subscription:
        subscription = Subscription(self, root, classifier, on_relevant)
        self._subscriptions.append(subscription)
        return subscription

    def _unsubscribe(self, subscription: Subscription) -> None:
        self._subscriptions = [
            item for item in self._subscriptions if item is not subscription
        ]

    def take_records(self) -> None:
        """Deliver every queued record now."""

        records, self._pending = self._pending, []
        if not records:
            return
        for subscription in list(self._subscriptions):
            subscription._dispatch(records)

    def _queue(self, record: MutationRecord) -> None:
        if not self._subscriptions:
            return
        self._pending.append(record)
        if self._flush_scheduled:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.take_records()
            return
        self._flush_scheduled = True
        loop.call_soon(self._scheduled_flush)

    def _scheduled_flush(self) -> None:
        self._flush_scheduled = False
        self.take_records()
