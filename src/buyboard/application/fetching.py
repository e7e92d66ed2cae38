from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Sequence, TypeVar, Union

from ..domain.errors import CapacityExceededError, ProviderError
from ..domain.models import BlockRange, LogRecord
from ..domain.value_types import Topic0
from ..ports.rpc import RPCClient
from .planning import plan_windows

log = logging.getLogger(__name__)

T = TypeVar("T")


# ──────────────────────────────
# Outcome of a single eth_getLogs attempt
# ──────────────────────────────

@dataclass(slots=True, frozen=True)
class FetchOk:
    logs: list[LogRecord]


@dataclass(slots=True, frozen=True)
class SplitNeeded:
    range: BlockRange
    hint: BlockRange | None = None
    reason: str = ""


@dataclass(slots=True, frozen=True)
class FetchFatal:
    error: ProviderError


FetchOutcome = Union[FetchOk, SplitNeeded, FetchFatal]


async def gather_or_cancel(*aws: Awaitable[T]) -> list[T]:
    """asyncio.gather that cancels the remaining siblings when one of them fails."""
    tasks = [asyncio.ensure_future(a) for a in aws]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for t in tasks:
            t.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


def plan_split(rng: BlockRange, hint: BlockRange | None) -> tuple[BlockRange, BlockRange]:
    """
    Split at the end of the provider's suggested range when it starts at `rng.start`
    and is strictly shorter, else bisect.
    """
    if hint is not None and hint.start == rng.start <= hint.end < rng.end:
        return rng.split(at=hint.end)
    return rng.split()


class RangeLimitedLogFetcher:
    """
    Retrieves every log for (address, topic0s) over a block range, recovering from
    provider result caps by splitting the range. Sub-ranges are fetched as
    concurrent tasks; at most `concurrency` requests are in flight at once.
    """

    def __init__(self, rpc: RPCClient, *, concurrency: int = 8) -> None:
        if concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {concurrency}")
        self.rpc = rpc
        self._sem = asyncio.Semaphore(concurrency)
        self.requests = 0
        self.splits = 0

    async def attempt(self, address: str, topic0s: Sequence[Topic0], rng: BlockRange) -> FetchOutcome:
        async with self._sem:
            self.requests += 1
            try:
                logs = await self.rpc.get_logs(address, list(topic0s), rng.start, rng.end)
            except CapacityExceededError as e:
                return SplitNeeded(rng, e.hint, str(e))
            except ProviderError as e:
                return FetchFatal(e)
        return FetchOk(logs)

    async def fetch(self, address: str, topic0s: Sequence[Topic0], rng: BlockRange) -> list[LogRecord]:
        if rng.is_empty():
            return []
        match await self.attempt(address, topic0s, rng):
            case FetchOk(logs=logs):
                return logs
            case FetchFatal(error=err):
                raise err
            case SplitNeeded(range=r, hint=hint, reason=reason):
                if r.is_single():
                    raise ProviderError(
                        f"block {r.start} alone exceeds the provider's result cap: {reason}"
                    )
                left, right = plan_split(r, hint)
                self.splits += 1
                log.warning("getLogs too large, splitting range %s into %s and %s", r, left, right)
                a, b = await gather_or_cancel(
                    self.fetch(address, topic0s, left),
                    self.fetch(address, topic0s, right),
                )
                return a + b
        raise AssertionError("unreachable")

    async def _fetch_tagged(self, address: str, topic0s: Sequence[Topic0], rng: BlockRange) -> tuple[BlockRange, list[LogRecord]]:
        return rng, await self.fetch(address, topic0s, rng)

    async def iter_windows(
        self,
        address: str,
        topic0s: Sequence[Topic0],
        start_block: int,
        end_block: int,
        window: int,
    ) -> AsyncIterator[tuple[BlockRange, list[LogRecord]]]:
        """
        Pre-chunk [start_block, end_block] into fixed windows, fetch them concurrently
        and yield (window, logs) in completion order. A failing window cancels the rest.
        """
        windows = plan_windows(start_block, end_block, window)
        tasks = [asyncio.ensure_future(self._fetch_tagged(address, topic0s, w)) for w in windows]
        try:
            for fut in asyncio.as_completed(tasks):
                rng, logs = await fut
                log.debug("window %s: %d logs", rng, len(logs))
                yield rng, logs
        finally:
            for t in tasks:
                t.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    async def fetch_windows(
        self,
        address: str,
        topic0s: Sequence[Topic0],
        start_block: int,
        end_block: int,
        window: int,
    ) -> list[LogRecord]:
        out: list[LogRecord] = []
        async for _, logs in self.iter_windows(address, topic0s, start_block, end_block, window):
            out.extend(logs)
        return out
