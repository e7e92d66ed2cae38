from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Sequence

from ..adapters.contract_reader import TBagContractReader
from ..domain.aggregation import fold, merge
from ..domain.decoding import DEFAULT_SCHEMA, EventDecoder, EventSchema
from ..domain.models import AccountStat, EnrichedAccount, ScanStats, Snapshot
from ..domain.value_types import Address
from ..ports.rpc import RPCClient
from .cache import FreshnessCache
from .enrichment import ConcurrentReadPool, Reader, without_reads
from .fetching import RangeLimitedLogFetcher

if TYPE_CHECKING:
    from ..config import Settings

log = logging.getLogger(__name__)


async def scan_wallet_stats(
    *,
    rpc: RPCClient,
    contract: str,
    start_block: int,
    end_block: int | None,
    window: int,
    concurrency: int = 8,
    schema: EventSchema = DEFAULT_SCHEMA,
) -> tuple[dict[Address, AccountStat], ScanStats]:
    """
    Fetch every log of `contract` over [start_block, end_block], decode and fold them.
    Windows are folded independently and merged in block order.
    """
    e_block = await rpc.latest_block() if end_block is None else end_block
    stats = ScanStats(from_block=start_block, to_block=e_block)
    if start_block > e_block:
        return {}, stats

    log.info("Scanning %s, blocks %s-%s in windows of %s", contract, f"{start_block:,}", f"{e_block:,}", f"{window:,}")
    fetcher = RangeLimitedLogFetcher(rpc, concurrency=concurrency)
    decoder = EventDecoder(schema)
    partials: list[tuple[int, dict[Address, AccountStat]]] = []

    async for rng, logs in fetcher.iter_windows(contract, decoder.topic0s, start_block, e_block, window):
        stats.logs += len(logs)
        partials.append((rng.start, fold(decoder.decode_all(logs))))

    totals = merge(*(p for _, p in sorted(partials, key=lambda x: x[0])))
    stats.requests = fetcher.requests
    stats.splits = fetcher.splits
    stats.decoded = decoder.decoded
    stats.skipped = decoder.skipped
    stats.accounts = len(totals)
    if decoder.skipped:
        log.info("skipped %d undecodable logs (%d unknown, %d malformed)",
                 decoder.skipped, decoder.skipped_unknown, decoder.skipped_malformed)
    return totals, stats


def order_by_buys(rows: Sequence[EnrichedAccount]) -> list[EnrichedAccount]:
    """Descending by buy count; ties keep first-seen order."""
    return sorted(rows, key=lambda e: e.stat.buy_count, reverse=True)


@dataclass(slots=True)
class WalletStatsPipeline:
    """
    fetch → decode → fold → (enrich) → Snapshot. Used as the cache's refresh function.
    Snapshot rows are in first-seen (block) order; consumers sort.
    """
    rpc: RPCClient
    contract: str
    start_block: int
    end_block: int | None = None
    window: int = 30_000
    fetch_concurrency: int = 8
    reader: Reader | None = None
    pool: ConcurrentReadPool | None = None
    schema: EventSchema = field(default_factory=lambda: DEFAULT_SCHEMA)

    async def run(self) -> Snapshot:
        t0 = time.time()
        totals, stats = await scan_wallet_stats(
            rpc=self.rpc, contract=self.contract,
            start_block=self.start_block, end_block=self.end_block,
            window=self.window, concurrency=self.fetch_concurrency, schema=self.schema,
        )
        if self.reader is not None:
            pool = self.pool or ConcurrentReadPool()
            enriched = await pool.enrich(totals, self.reader)
            accounts = {a: enriched[a] for a in totals}
            stats.read_failures = sum(1 for e in accounts.values() if e.read_failed)
        else:
            accounts = without_reads(totals)

        log.info(
            "Built stats for %d wallets from %d logs (%d requests, %d splits) in %.2fs",
            stats.accounts, stats.logs, stats.requests, stats.splits, time.time() - t0,
        )
        return Snapshot(rows=tuple(accounts.values()), produced_at=time.time(), stats=stats)


# ──────────────────────────────
# Query surface
# ──────────────────────────────

@dataclass(slots=True, frozen=True)
class LeaderboardRow:
    wallet: str
    total_buys: int


@dataclass(slots=True, frozen=True)
class Leaderboard:
    rows: Sequence[LeaderboardRow]
    stale: bool
    produced_at: float
    error: str | None = None


class LeaderboardService:
    """Best-known ordered (wallet, buys) list, fronted by a FreshnessCache."""

    def __init__(self, cache: FreshnessCache, max_entries: int = 500) -> None:
        self.cache = cache
        self.max_entries = max_entries

    async def leaderboard(self, limit: int | None = None) -> Leaderboard:
        if limit is not None and limit < 0:
            raise ValueError(f"limit must be >= 0, got {limit}")
        res = await self.cache.get()
        n = self.max_entries if limit is None else min(limit, self.max_entries)
        rows = [LeaderboardRow(e.address, e.stat.buy_count) for e in order_by_buys(res.snapshot.rows)[:n]]
        return Leaderboard(rows=rows, stale=res.stale, produced_at=res.snapshot.produced_at, error=res.error)


def pipeline_from_settings(settings: Settings, rpc: RPCClient, *, enrich: bool = True) -> WalletStatsPipeline:
    return WalletStatsPipeline(
        rpc=rpc,
        contract=settings.contract_checksum,
        start_block=settings.start_block,
        end_block=settings.end_block,
        window=settings.window,
        fetch_concurrency=settings.fetch_concurrency,
        reader=TBagContractReader(rpc, settings.contract_checksum) if enrich else None,
        pool=ConcurrentReadPool(settings.workers, read_timeout=settings.timeout),
    )
