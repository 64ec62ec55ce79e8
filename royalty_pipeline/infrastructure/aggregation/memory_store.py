"""In-process aggregation store.

Single-process deployments and tests. Every window has its own lock, so
increments and seal on the same window are serialized while different
windows proceed independently. Counters are lost on restart; the audit
log rebuilds open windows at startup.

Sealed windows are kept for sealed_retention_seconds after the newest
sealed window, then dropped; their snapshot lives in the database.
"""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from royalty_pipeline.application.dtos.aggregation import AggregateBucket, BucketDelta
from royalty_pipeline.domain.entities import StreamEvent
from royalty_pipeline.domain.exceptions import WindowSealedError
from royalty_pipeline.domain.value_objects import AggregationWindow
from royalty_pipeline.shared.utils.datetime import ensure_utc


@dataclass
class _WindowState:
    start: datetime
    end: datetime
    lock: threading.Lock = field(default_factory=threading.Lock)
    buckets: dict[tuple[str, str], AggregateBucket] = field(default_factory=dict)
    sealed: bool = False
    closed: bool = False


class InMemoryAggregationStore:
    """IAggregationStore backed by dicts guarded by per-window locks."""

    def __init__(
        self,
        window_seconds: int = 3600,
        history_max_entries: int = 200,
        sealed_retention_seconds: int = 7 * 86_400,
    ) -> None:
        self.window_seconds = window_seconds
        self.history_max_entries = history_max_entries
        self.sealed_retention_seconds = sealed_retention_seconds
        self._windows: dict[datetime, _WindowState] = {}
        self._windows_lock = threading.Lock()
        self._history_lock = threading.Lock()
        self._listener_history: dict[str, deque[StreamEvent]] = {}
        self._device_history: dict[str, deque[StreamEvent]] = {}

    def _window(self, window_start: datetime) -> _WindowState:
        window = AggregationWindow(start=ensure_utc(window_start), size_seconds=self.window_seconds)
        with self._windows_lock:
            state = self._windows.get(window.start)
            if state is None:
                state = _WindowState(start=window.start, end=window.end)
                self._windows[window.start] = state
            return state

    def _evict_sealed(self) -> None:
        """Drop sealed windows ending more than the retention before the newest sealed window."""
        with self._windows_lock:
            sealed_ends = [s.end for s in self._windows.values() if s.sealed]
            if not sealed_ends:
                return
            cutoff = max(sealed_ends) - timedelta(seconds=self.sealed_retention_seconds)
            for start in [s.start for s in self._windows.values() if s.sealed and s.end < cutoff]:
                del self._windows[start]

    async def increment(
        self,
        artist_id: str,
        track_id: str,
        window_start: datetime,
        delta: BucketDelta,
    ) -> None:
        state = self._window(window_start)
        with state.lock:
            if state.sealed or state.closed:
                raise WindowSealedError(state.start)
            key = (artist_id, track_id)
            bucket = state.buckets.get(key) or AggregateBucket(
                artist_id=artist_id,
                track_id=track_id,
                window_start=state.start,
                window_end=state.end,
            )
            state.buckets[key] = bucket.apply(delta)

    async def seal(self, window_start: datetime, window_end: datetime) -> list[AggregateBucket]:
        snapshot: list[AggregateBucket] = []
        current = ensure_utc(window_start)
        end = ensure_utc(window_end)
        step = timedelta(seconds=self.window_seconds)
        while current < end:
            state = self._window(current)
            with state.lock:
                state.sealed = True
                snapshot.extend(state.buckets.values())
            current += step
        if self.sealed_retention_seconds > 0:
            self._evict_sealed()
        return sorted(snapshot, key=lambda b: (b.window_start, b.artist_id, b.track_id))

    async def get(
        self, artist_id: str, track_id: str, window_start: datetime
    ) -> AggregateBucket | None:
        with self._windows_lock:
            state = self._windows.get(ensure_utc(window_start))
        if state is None:
            return None
        with state.lock:
            return state.buckets.get((artist_id, track_id))

    async def is_sealed(self, window_start: datetime) -> bool:
        with self._windows_lock:
            state = self._windows.get(ensure_utc(window_start))
        return state is not None and state.sealed

    async def close_window(self, window_start: datetime) -> None:
        state = self._window(window_start)
        with state.lock:
            state.closed = True

    async def replace_window(
        self, window_start: datetime, buckets: list[AggregateBucket]
    ) -> None:
        state = self._window(window_start)
        with state.lock:
            if state.sealed:
                raise WindowSealedError(state.start)
            state.buckets = {(b.artist_id, b.track_id): b for b in buckets}

    async def open_window_starts(self, before: datetime | None = None) -> list[datetime]:
        with self._windows_lock:
            states = list(self._windows.values())
        return sorted(
            s.start
            for s in states
            if not s.sealed and s.buckets and (before is None or s.start < before)
        )

    async def remember(self, event: StreamEvent) -> None:
        with self._history_lock:
            for index, key in (
                (self._listener_history, event.listener_id),
                (self._device_history, event.device_id),
            ):
                entries = index.get(key)
                if entries is None:
                    entries = deque(maxlen=self.history_max_entries)
                    index[key] = entries
                entries.append(event)

    async def recent_history(
        self,
        listener_id: str,
        device_id: str,
        until: datetime,
        lookback_seconds: int,
    ) -> list[StreamEvent]:
        upper = ensure_utc(until)
        lower = upper - timedelta(seconds=lookback_seconds)
        with self._history_lock:
            candidates = [
                *self._listener_history.get(listener_id, ()),
                *self._device_history.get(device_id, ()),
            ]
        unique = {e.event_id: e for e in candidates if lower <= e.timestamp <= upper}
        return sorted(unique.values(), key=lambda e: e.timestamp)
