from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Mapping

from ..domain.models import AccountStat, ContractReads, EnrichedAccount
from ..domain.value_types import Address

log = logging.getLogger(__name__)

Reader = Callable[[Address], Awaitable[ContractReads]]


def _describe(exc: BaseException) -> str:
    if isinstance(exc, asyncio.TimeoutError):
        return "TimeoutError: read timed out"
    return f"{type(exc).__name__}: {exc}"


class ConcurrentReadPool:
    """
    Fixed pool of `size` workers draining a shared queue of accounts. Each read is
    bounded by `read_timeout`; a failed or timed-out read marks only that account.
    """

    def __init__(self, size: int = 10, *, read_timeout: float | None = 20.0) -> None:
        if size < 1:
            raise ValueError(f"pool size must be >= 1, got {size}")
        self.size = size
        self.read_timeout = read_timeout

    async def _read_one(self, reader: Reader, account: Address) -> tuple[ContractReads | None, str | None]:
        try:
            reads = await asyncio.wait_for(reader(account), self.read_timeout)
        except Exception as e:
            log.debug("read failed for %s: %s", account, _describe(e))
            return None, _describe(e)
        return reads, None

    async def enrich(self, stats: Mapping[Address, AccountStat], reader: Reader) -> dict[Address, EnrichedAccount]:
        queue: asyncio.Queue[Address] = asyncio.Queue()
        for addr in stats:
            queue.put_nowait(addr)
        out: dict[Address, EnrichedAccount] = {}

        async def worker(wid: int) -> None:
            while True:
                try:
                    addr = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                reads, err = await self._read_one(reader, addr)
                out[addr] = EnrichedAccount(stats[addr], reads, err)
                if len(out) % 100 == 0:
                    log.info("Processed %d/%d wallets...", len(out), len(stats))

        n = min(self.size, len(stats))
        workers = [asyncio.create_task(worker(i)) for i in range(n)]
        try:
            await asyncio.gather(*workers)
        finally:
            for w in workers:
                w.cancel()
            await asyncio.gather(*workers, return_exceptions=True)

        failed = sum(1 for e in out.values() if e.read_failed)
        if failed:
            log.warning("%d/%d account reads failed", failed, len(out))
        return out


def without_reads(stats: Mapping[Address, AccountStat]) -> dict[Address, EnrichedAccount]:
    return {a: EnrichedAccount(s) for a, s in stats.items()}
