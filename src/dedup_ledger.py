#!/usr/bin/env python3
from collections import OrderedDict
from typing import Iterable, List

DEFAULT_CAPACITY = 1000


class DedupLedger:
    """Bounded, insertion-ordered set of event keys already notified.

    When the ledger grows past `capacity`, `compact` drops the oldest entries
    and keeps the newest `capacity // 2`. Insertion order stands in for recency
    because events are handled in ascending block order.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY, keys: Iterable[str] = ()):
        if capacity < 2:
            raise ValueError("DedupLedger capacity must be at least 2")
        self.capacity = int(capacity)
        self._keys: "OrderedDict[str, None]" = OrderedDict()
        for key in keys:
            self.record(key)
        self.compact()

    def __len__(self) -> int:
        return len(self._keys)

    def __contains__(self, key: str) -> bool:
        return self.seen(key)

    def seen(self, key: str) -> bool:
        return key in self._keys

    def record(self, key: str) -> None:
        # re-recording keeps the original position
        if key not in self._keys:
            self._keys[key] = None

    def compact(self) -> None:
        if len(self._keys) <= self.capacity:
            return
        retain = self.capacity // 2
        for _ in range(len(self._keys) - retain):
            self._keys.popitem(last=False)

    def to_list(self) -> List[str]:
        return list(self._keys)

    @classmethod
    def from_list(cls, keys: Iterable[str], capacity: int = DEFAULT_CAPACITY) -> "DedupLedger":
        return cls(capacity=capacity, keys=keys)
