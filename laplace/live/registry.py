"""
Subscription registry.

Keeps the table of live subscriptions (handle -> entry) and reference
counts per (feed, symbol). Every mutation reports which symbols crossed
the zero boundary, so the caller knows exactly what to send on the wire.
"""

from __future__ import annotations

import itertools
import logging
from collections import Counter
from dataclasses import dataclass
from typing import Iterable, Optional

from laplace.live.types import Feed, TickHandler

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Subscription:
    """One subscribe() call."""

    handle: int
    symbols: frozenset[str]
    feed: Feed
    handler: TickHandler


@dataclass(frozen=True, slots=True)
class SubscriptionDelta:
    """Symbols on one feed whose coverage changed."""

    feed: Feed
    symbols: tuple[str, ...] = ()

    def __bool__(self) -> bool:
        return bool(self.symbols)


class SubscriptionRegistry:
    """
    In-memory table of subscriptions.

    The registry is the only owner of subscription state. Readers get
    copies (handlers_for, aggregate_by_feed), never the live structures.
    """

    def __init__(self) -> None:
        self._entries: dict[int, Subscription] = {}
        self._refcounts: Counter[tuple[Feed, str]] = Counter()
        self._handles = itertools.count()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, handle: object) -> bool:
        return handle in self._entries

    def add(
        self,
        symbols: Iterable[str],
        feed: Feed,
        handler: TickHandler,
    ) -> tuple[int, SubscriptionDelta]:
        """
        Register a subscription.

        Returns the new handle and the symbols that went from zero to one
        subscriber on ``feed``.
        """
        handle = next(self._handles)
        ordered = list(dict.fromkeys(symbols))
        if not ordered:
            return handle, SubscriptionDelta(feed=feed)

        self._entries[handle] = Subscription(
            handle=handle,
            symbols=frozenset(ordered),
            feed=feed,
            handler=handler,
        )

        newly_covered = []
        for symbol in ordered:
            key = (feed, symbol)
            self._refcounts[key] += 1
            if self._refcounts[key] == 1:
                newly_covered.append(symbol)

        logger.debug(f"Added subscription {handle} on {feed.value}: {ordered}")
        return handle, SubscriptionDelta(feed=feed, symbols=tuple(newly_covered))

    def remove(self, handle: int) -> Optional[SubscriptionDelta]:
        """
        Drop a subscription.

        Returns the symbols that lost their last subscriber, or None when
        the handle is unknown.
        """
        entry = self._entries.pop(handle, None)
        if entry is None:
            return None

        uncovered = []
        for symbol in sorted(entry.symbols):
            key = (entry.feed, symbol)
            self._refcounts[key] -= 1
            if self._refcounts[key] <= 0:
                del self._refcounts[key]
                uncovered.append(symbol)

        logger.debug(f"Removed subscription {handle} on {entry.feed.value}")
        return SubscriptionDelta(feed=entry.feed, symbols=tuple(uncovered))

    def handlers_for(self, symbol: str, feed: Feed) -> list[TickHandler]:
        """Handlers whose subscription covers (symbol, feed), in subscription order."""
        return [
            entry.handler
            for entry in self._entries.values()
            if entry.feed == feed and symbol in entry.symbols
        ]

    def aggregate_by_feed(self) -> dict[Feed, frozenset[str]]:
        """Union of subscribed symbols per feed."""
        aggregate: dict[Feed, set[str]] = {}
        for feed, symbol in self._refcounts:
            aggregate.setdefault(feed, set()).add(symbol)
        return {feed: frozenset(symbols) for feed, symbols in aggregate.items()}

    def clear(self) -> None:
        """Forget every subscription. Handles keep increasing afterwards."""
        self._entries.clear()
        self._refcounts.clear()
