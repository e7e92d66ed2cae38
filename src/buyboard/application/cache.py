from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Literal

from ..domain.errors import RefreshError
from ..domain.models import Snapshot

log = logging.getLogger(__name__)

CacheState = Literal["empty", "fresh", "stale"]


@dataclass(slots=True, frozen=True)
class CacheResult:
    snapshot: Snapshot
    stale: bool
    error: str | None = None     # why a stale snapshot was served, if a refresh failed


class FreshnessCache:
    """
    Single-slot TTL cache in front of an expensive `refresh` coroutine.

    - fresh: served as is, no refresh
    - stale/empty: one refresh at a time; concurrent callers with a snapshot
      get it immediately, callers without one wait for the refresh
    - failed refresh: the previous snapshot is served with `stale=True`;
      with no previous snapshot a RefreshError is raised
    """

    def __init__(
        self,
        refresh: Callable[[], Awaitable[Snapshot]],
        ttl: float,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if ttl < 0:
            raise ValueError(f"ttl must be >= 0, got {ttl}")
        self._refresh = refresh
        self.ttl = ttl
        self._clock = clock
        self._snapshot: Snapshot | None = None
        self._invalidated = False
        self._last_error: str | None = None
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CacheState:
        if self._snapshot is None:
            return "empty"
        return "fresh" if self._is_fresh(self._snapshot) else "stale"

    @property
    def refreshing(self) -> bool:
        return self._lock.locked()

    def peek(self) -> Snapshot | None:
        return self._snapshot

    def invalidate(self) -> None:
        self._invalidated = True

    def _is_fresh(self, snap: Snapshot | None) -> bool:
        return (
            snap is not None
            and not self._invalidated
            and self._clock() - snap.produced_at < self.ttl
        )

    def _publish(self, snap: Snapshot) -> Snapshot:
        snap = dataclasses.replace(snap, produced_at=self._clock())
        self._snapshot = snap
        self._invalidated = False
        self._last_error = None
        return snap

    async def get(self) -> CacheResult:
        snap = self._snapshot
        if self._is_fresh(snap):
            return CacheResult(snap, stale=False)
        if snap is not None and self._lock.locked():
            # a refresh is already running; don't queue behind it
            return CacheResult(snap, stale=True, error=self._last_error)
        async with self._lock:
            snap = self._snapshot
            if self._is_fresh(snap):
                return CacheResult(snap, stale=False)
            try:
                new = await self._refresh()
            except Exception as e:
                self._last_error = f"{type(e).__name__}: {e}"
                if snap is None:
                    raise RefreshError(f"refresh failed with no snapshot to fall back to: {self._last_error}") from e
                log.warning("refresh failed, serving snapshot from %.0fs ago: %s",
                            self._clock() - snap.produced_at, self._last_error)
                return CacheResult(snap, stale=True, error=self._last_error)
            return CacheResult(self._publish(new), stale=False)

    async def refresh(self) -> Snapshot:
        """Force a refresh regardless of age; failures raise RefreshError."""
        async with self._lock:
            try:
                new = await self._refresh()
            except Exception as e:
                self._last_error = f"{type(e).__name__}: {e}"
                raise RefreshError(f"refresh failed: {self._last_error}") from e
            return self._publish(new)
