from __future__ import annotations
from dataclasses import dataclass, field
from typing import Union
from .value_types import Address


@dataclass(slots=True, frozen=True)
class BlockRange:
    start: int
    end: int

    def span(self) -> int: return self.end - self.start + 1
    def is_empty(self) -> bool: return self.start > self.end
    def is_single(self) -> bool: return self.start == self.end

    def split(self, at: int | None = None) -> tuple["BlockRange", "BlockRange"]:
        """Split into [start, at] and [at+1, end]; `at` defaults to the midpoint."""
        if self.start >= self.end:
            raise ValueError(f"cannot split {self}")
        mid = (self.start + self.end) // 2 if at is None else at
        if not self.start <= mid < self.end:
            raise ValueError(f"split point {mid} outside {self}")
        return BlockRange(self.start, mid), BlockRange(mid + 1, self.end)

    def __str__(self) -> str:
        return f"{self.start:,}-{self.end:,}"


@dataclass(slots=True, frozen=True)
class LogRecord:
    address: str                       # lowercased hex with 0x
    topics: tuple[str, ...]            # all topics, lowercased with 0x
    data_hex: str                      # hex with 0x (or "0x")
    block_number: int
    tx_hash: str = ""
    log_index: int = 0

    @property
    def topic0(self) -> str | None:
        return self.topics[0] if self.topics else None


# ──────────────────────────────
# Decoded events (closed union)
# ──────────────────────────────

@dataclass(slots=True, frozen=True)
class BuyRecorded:
    account: Address
    user_total_buys: int
    buys_in_window: int


@dataclass(slots=True, frozen=True)
class ClaimRecorded:
    account: Address
    units_claimed: int
    amount_paid: int


DecodedEvent = Union[BuyRecorded, ClaimRecorded]


# ──────────────────────────────
# Aggregates
# ──────────────────────────────

@dataclass(slots=True)
class AccountStat:
    address: Address
    buy_count: int = 0
    claim_tx_count: int = 0
    units_claimed_total: int = 0
    amount_claimed_total: int = 0      # token base units; python int, never float


@dataclass(slots=True, frozen=True)
class ContractReads:
    total_buys: int
    claimable_buys: int
    claimable_tokens: int

    @property
    def claimed_buys(self) -> int:
        """Buys already claimed, derived from the two live counters."""
        return max(0, self.total_buys - self.claimable_buys)


@dataclass(slots=True, frozen=True)
class EnrichedAccount:
    stat: AccountStat
    reads: ContractReads | None = None
    read_error: str | None = None

    @property
    def address(self) -> Address: return self.stat.address

    @property
    def read_failed(self) -> bool: return self.read_error is not None


@dataclass(slots=True)
class ScanStats:
    from_block: int = 0
    to_block: int = 0
    requests: int = 0
    splits: int = 0
    logs: int = 0
    decoded: int = 0
    skipped: int = 0
    accounts: int = 0
    read_failures: int = 0


@dataclass(slots=True, frozen=True)
class Snapshot:
    rows: tuple[EnrichedAccount, ...]
    produced_at: float
    stats: ScanStats = field(default_factory=ScanStats)

    def as_mapping(self) -> dict[Address, EnrichedAccount]:
        return {r.address: r for r in self.rows}
