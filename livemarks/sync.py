"""Live collection sync: snapshot loads, pushed changes, and a polling safety net.

One :class:`LiveCollection` mirrors one table (folders or bookmarks) for the
signed-in owner:

- a snapshot load fetches the whole collection and replaces local state;
- a change-feed subscription merges single-row insert/update/delete events;
- a fallback poller re-runs the snapshot load every few seconds whenever the
  feed has not confirmed it is live;
- events for rows owned by someone else are dropped.

Everything runs on one asyncio event loop. Snapshot results and pushed events
may land in any order; the collection converges on the next load or event.
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, List, Mapping, Optional, Sequence, Tuple, Union

import httpx

from .events import ChangeEvent, Delete, Insert, MalformedEvent, Update, event_id, owner_of, parse_change, parse_record
from .feed import ChangeFeed, FeedStatus, Subscription
from .log import get_logger
from .model import CollectionSpec, R
from .store import StoreError

log = get_logger(__name__)

DEFAULT_POLL_INTERVAL_S = 8.0

FetchRows = Callable[[CollectionSpec, str], Awaitable[Optional[Sequence[Mapping[str, Any]]]]]


class ConnectionState(str, Enum):
    IDLE = "IDLE"
    CONNECTING = "CONNECTING"
    LIVE = "LIVE"
    DEGRADED = "DEGRADED"
    TORN_DOWN = "TORN_DOWN"


class FallbackPoller:
    """Fixed-interval timer; at most one running instance."""

    def __init__(self, interval_s: float, tick: Callable[[], Awaitable[Any]], *, label: str = "poll"):
        self.interval_s = max(0.001, float(interval_s))
        self.label = label
        self.ticks = 0
        self._tick = tick
        self._task: Optional[asyncio.Task] = None

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    def arm(self) -> bool:
        if self.active:
            return False
        self._task = asyncio.get_running_loop().create_task(self._run())
        return True

    def cancel(self) -> bool:
        task, self._task = self._task, None
        if task is None or task.done():
            return False
        task.cancel()
        return True

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_s)
            self.ticks += 1
            try:
                # Cancelling the timer must not abort a load already in flight.
                await asyncio.shield(self._tick())
            except Exception as e:
                log.warning("%s poll tick failed: %s", self.label, e)


class LiveCollection(Generic[R]):
    def __init__(
        self,
        spec: CollectionSpec[R],
        fetch: FetchRows,
        feed: ChangeFeed,
        *,
        poll_interval_s: float = DEFAULT_POLL_INTERVAL_S,
        on_change: Optional[Callable[[Tuple[R, ...]], None]] = None,
    ):
        self.spec = spec
        self.poll_interval_s = poll_interval_s
        self.on_change = on_change
        self._fetch = fetch
        self._feed = feed
        self._items: List[R] = []
        self._owner_id: Optional[str] = None
        self._state = ConnectionState.IDLE
        self._alive = False
        # Bumped on every start/stop so results from an earlier session are ignored.
        self._generation = 0
        self._subscription: Optional[Subscription] = None
        self._poller: Optional[FallbackPoller] = None
        self._initial_load: Optional[asyncio.Task] = None

    @property
    def items(self) -> Tuple[R, ...]:
        return tuple(self._items)

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def owner_id(self) -> Optional[str]:
        return self._owner_id

    @property
    def poll_active(self) -> bool:
        return self._poller is not None and self._poller.active

    def __len__(self) -> int:
        return len(self._items)

    def get(self, record_id: str) -> Optional[R]:
        idx = self._index_of(record_id)
        return None if idx is None else self._items[idx]

    def start(self, owner_id: str) -> None:
        if not owner_id:
            raise ValueError("owner id is required to start a live collection")
        if self._alive:
            raise RuntimeError(f"{self.spec.name} collection already started")
        loop = asyncio.get_running_loop()

        self._generation += 1
        self._owner_id = owner_id
        self._alive = True
        self._items = []
        self._set_state(ConnectionState.CONNECTING)

        # Poll until the feed proves it is live.
        self._poller = FallbackPoller(self.poll_interval_s, self.reload, label=self.spec.name)
        self._poller.arm()
        self._initial_load = loop.create_task(self.reload())

        try:
            self._subscription = self._feed.subscribe(
                f"db-{self.spec.table}",
                self.spec.table,
                self.handle_payload,
                self.handle_status,
            )
        except Exception as e:
            log.warning("%s: change feed subscription failed (%s); polling every %.1fs", self.spec.name, e, self.poll_interval_s)
            self._set_state(ConnectionState.DEGRADED)

    def stop(self) -> None:
        if self._state is ConnectionState.TORN_DOWN:
            return
        self._alive = False
        self._generation += 1

        sub, self._subscription = self._subscription, None
        if sub is not None:
            try:
                sub.close()
            except Exception as e:
                log.warning("%s: failed to release change feed channel: %s", self.spec.name, e)
        if self._poller is not None:
            self._poller.cancel()
        self._set_state(ConnectionState.TORN_DOWN)

    async def reload(self) -> bool:
        """Fetch the whole collection and replace local state.

        Returns True when local state was replaced. A failed fetch keeps the
        previous state; the next poll tick or change event catches up.
        """
        if not self._alive or self._owner_id is None:
            return False
        owner = self._owner_id
        generation = self._generation
        try:
            rows = await self._fetch(self.spec, owner)
        except (StoreError, httpx.HTTPError) as e:
            log.warning("%s: snapshot load failed, keeping %d cached rows: %s", self.spec.name, len(self._items), e)
            return False
        except Exception as e:
            # e.g. a request on a client closed underneath a shielded tick.
            log.warning("%s: snapshot load raised %s, keeping %d cached rows: %s", self.spec.name, type(e).__name__, len(self._items), e)
            return False
        if generation != self._generation or not self._alive:
            log.debug("%s: discarding snapshot that landed after teardown", self.spec.name)
            return False
        if rows is None:
            log.warning("%s: snapshot load returned no data, keeping %d cached rows", self.spec.name, len(self._items))
            return False

        records: List[R] = []
        seen = set()
        for row in rows:
            try:
                rec = parse_record(self.spec.record_type, row)
            except MalformedEvent as e:
                log.debug("%s: skipping malformed row: %s", self.spec.name, e)
                continue
            if rec.user_id != owner or rec.id in seen:
                continue
            seen.add(rec.id)
            records.append(rec)

        self._items = self.spec.sort(records)
        log.debug("%s: loaded %d rows", self.spec.name, len(self._items))
        self._notify()
        return True

    def handle_payload(self, payload: Mapping[str, Any]) -> None:
        if not self._alive:
            return
        try:
            event = parse_change(self.spec.record_type, payload)
        except MalformedEvent as e:
            log.debug("%s: dropped malformed change event: %s", self.spec.name, e)
            return
        self.apply_change(event)

    def handle_status(self, status: Union[FeedStatus, str]) -> None:
        if not self._alive:
            return
        try:
            status = FeedStatus(status)
        except ValueError:
            log.debug("%s: ignoring unknown feed status %r", self.spec.name, status)
            return
        if status is FeedStatus.SUBSCRIBED:
            if self._poller is not None:
                self._poller.cancel()
            if self._state is not ConnectionState.LIVE:
                log.info("%s: realtime channel connected", self.spec.name)
            self._set_state(ConnectionState.LIVE)
        elif status in (FeedStatus.CHANNEL_ERROR, FeedStatus.TIMED_OUT, FeedStatus.CLOSED):
            self._set_state(ConnectionState.DEGRADED)
            if self._poller is not None and self._poller.arm():
                log.warning(
                    "%s: realtime channel %s, falling back to polling every %.1fs",
                    self.spec.name,
                    status.value,
                    self.poll_interval_s,
                )

    def apply_change(self, event: ChangeEvent) -> bool:
        """Merge one change into local state. Returns True if anything changed."""
        if not self._alive:
            return False
        owner = owner_of(event)
        if owner is not None and owner != self._owner_id:
            log.debug("%s: ignoring change for another owner (id=%s)", self.spec.name, event_id(event))
            return False

        if isinstance(event, Insert):
            changed = self._insert(event.record)
        elif isinstance(event, Update):
            changed = self._update(event.record)
        elif isinstance(event, Delete):
            changed = self._delete(event.id)
        else:
            raise TypeError(f"unknown change event: {event!r}")

        if changed:
            self._notify()
        return changed

    def _insert(self, record: R) -> bool:
        if self._index_of(record.id) is not None:
            return False
        if self.spec.resort_on_insert:
            self._items = self.spec.sort(self._items + [record])
        else:
            self._items.insert(0, record)
        return True

    def _update(self, record: R) -> bool:
        idx = self._index_of(record.id)
        if idx is None:
            # Upsert: the insert may have been missed while degraded.
            return self._insert(record)
        if self._items[idx] == record:
            return False
        # Position is kept; the next snapshot load restores sort order.
        self._items[idx] = record
        return True

    def _delete(self, record_id: str) -> bool:
        idx = self._index_of(record_id)
        if idx is None:
            return False
        del self._items[idx]
        return True

    def _index_of(self, record_id: str) -> Optional[int]:
        for i, rec in enumerate(self._items):
            if rec.id == record_id:
                return i
        return None

    def _set_state(self, state: ConnectionState) -> None:
        if state is not self._state:
            log.debug("%s: %s -> %s", self.spec.name, self._state.value, state.value)
        self._state = state

    def _notify(self) -> None:
        if self.on_change is None:
            return
        try:
            self.on_change(self.items)
        except Exception as e:
            log.warning("%s: change listener failed: %s", self.spec.name, e)
