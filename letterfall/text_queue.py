"""Deduplicating queue of strings waiting to be turned into letters."""
from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterable
from typing import Any, Deque, List, Optional, Set

logger = logging.getLogger(__name__)


class TextQueue:
    """Ordered queue fed by the titles poller and consumed by the spawner.

    ``offer`` drops anything already queued or consumed recently, so a feed
    that returns the same titles on every poll does not replay them. The
    spawner only reads entries and removes them by index.
    """

    def __init__(self, *, max_length: int = 200, seen_capacity: int = 2000) -> None:
        self.max_length = max_length
        self._items: List[Any] = []
        self._seen_order: Deque[str] = deque()
        self._seen: Set[str] = set()
        self._seen_capacity = seen_capacity

    def __len__(self) -> int:
        return len(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)

    def peek(self, index: int = 0) -> Optional[Any]:
        if 0 <= index < len(self._items):
            return self._items[index]
        return None

    def snapshot(self) -> List[Any]:
        return list(self._items)

    def offer(self, titles: Iterable[Any]) -> int:
        """Append new titles; returns how many were accepted."""
        accepted = 0
        for title in titles:
            if len(self._items) >= self.max_length:
                logger.debug("text_queue: full (%d), dropping remaining titles", self.max_length)
                break
            if isinstance(title, str):
                if title in self._seen or title in self._items:
                    continue
                self._remember(title)
            self._items.append(title)
            accepted += 1
        if accepted:
            logger.debug("text_queue: accepted %d title(s), %d queued", accepted, len(self._items))
        return accepted

    def remove(self, index: int) -> None:
        if 0 <= index < len(self._items):
            del self._items[index]

    def clear(self) -> None:
        self._items.clear()

    def _remember(self, title: str) -> None:
        if self._seen_capacity <= 0:
            return
        self._seen.add(title)
        self._seen_order.append(title)
        while len(self._seen_order) > self._seen_capacity:
            self._seen.discard(self._seen_order.popleft())


__all__ = ["TextQueue"]
