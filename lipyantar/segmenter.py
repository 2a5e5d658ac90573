"""Batching utilities for bounded remote conversion."""

from __future__ import annotations

from typing import List, Sequence

from .structures import Batch

DEFAULT_BATCH_SIZE = 10


class BatchBuilder:
    """Splits texts into consecutive fixed-size batches.

    Each batch keeps the input index of every text so results can be written
    back positionally regardless of the order in which they resolve.
    """

    def __init__(self, size: int = DEFAULT_BATCH_SIZE) -> None:
        self.size = max(1, size)

    def build(self, texts: Sequence[str]) -> List[Batch]:
        batches: List[Batch] = []
        batch_id = 1
        for start in range(0, len(texts), self.size):
            items = [
                (index, texts[index])
                for index in range(start, min(start + self.size, len(texts)))
            ]
            batches.append(Batch(batch_id=batch_id, items=items))
            batch_id += 1
        return batches
