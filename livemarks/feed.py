from __future__ import annotations

from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol

from .log import get_logger

log = get_logger(__name__)

EventCallback = Callable[[Mapping[str, Any]], None]


class FeedStatus(str, Enum):
    CONNECTING = "CONNECTING"
    SUBSCRIBED = "SUBSCRIBED"
    CHANNEL_ERROR = "CHANNEL_ERROR"
    TIMED_OUT = "TIMED_OUT"
    CLOSED = "CLOSED"


StatusCallback = Callable[[FeedStatus], None]


class Subscription(Protocol):
    def close(self) -> None: ...


class ChangeFeed(Protocol):
    """Push transport delivering per-row change payloads for one table."""

    def subscribe(
        self,
        channel: str,
        table: str,
        on_event: EventCallback,
        on_status: StatusCallback,
    ) -> Subscription: ...


class _LocalSubscription:
    def __init__(self, feed: "LocalFeed", channel: str, table: str, on_event: EventCallback, on_status: StatusCallback):
        self.feed = feed
        self.channel = channel
        self.table = table
        self.on_event = on_event
        self.on_status = on_status
        self.closed = False

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.feed._remove(self)


class LocalFeed:
    """In-process change feed.

    Whatever receives change events (a websocket client, a message queue
    consumer, a test) calls :meth:`publish` and :meth:`set_status`; the feed
    fans them out to subscribers of the matching table. Callbacks run
    synchronously on the caller's thread, which must be the event loop thread
    of the subscribers.
    """

    def __init__(self) -> None:
        self._subs: List[_LocalSubscription] = []

    def subscribe(
        self,
        channel: str,
        table: str,
        on_event: EventCallback,
        on_status: StatusCallback,
    ) -> _LocalSubscription:
        sub = _LocalSubscription(self, channel, table, on_event, on_status)
        self._subs.append(sub)
        log.debug("Channel %s subscribed to table %s", channel, table)
        sub.on_status(FeedStatus.CONNECTING)
        return sub

    def publish(
        self,
        table: str,
        event_type: str,
        new: Optional[Mapping[str, Any]] = None,
        old: Optional[Mapping[str, Any]] = None,
    ) -> int:
        payload: Dict[str, Any] = {
            "eventType": event_type,
            "new": dict(new) if new else {},
            "old": dict(old) if old else {},
        }
        delivered = 0
        for sub in list(self._subs):
            if sub.table != table or sub.closed:
                continue
            sub.on_event(payload)
            delivered += 1
        return delivered

    def set_status(self, status: FeedStatus, table: Optional[str] = None) -> None:
        for sub in list(self._subs):
            if table is not None and sub.table != table:
                continue
            if not sub.closed:
                sub.on_status(status)

    def subscriber_count(self, table: Optional[str] = None) -> int:
        return sum(1 for s in self._subs if table is None or s.table == table)

    def _remove(self, sub: _LocalSubscription) -> None:
        if sub in self._subs:
            self._subs.remove(sub)
        log.debug("Channel %s removed", sub.channel)
