from __future__ import annotations

import csv
import io
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from ..domain.models import AccountStat, EnrichedAccount
from ..domain.value_types import SORT_KEYS, Address, SortKey

BASE_COLUMNS: tuple[str, ...] = (
    "address",
    "buy_count",
    "claim_tx_count",
    "units_claimed_total",
    "amount_claimed_raw",
)
SCALED_COLUMN = "amount_claimed"
ENRICHED_COLUMNS: tuple[str, ...] = (
    "total_buys_onchain",
    "claimable_buys",
    "claimed_buys_onchain",
    "claimable_tokens_raw",
    "read_error",
)


def format_units(raw: int, scale: int) -> str:
    """
    Exact decimal rendering of `raw / 10**scale` without floats:
    1500000000000000000 @ 18 -> "1.5", 10**18 @ 18 -> "1.0".
    """
    if raw < 0:
        raise ValueError(f"amount must be non-negative, got {raw}")
    if scale < 0:
        raise ValueError(f"scale must be non-negative, got {scale}")
    if scale == 0:
        return str(raw)
    whole, frac = divmod(raw, 10 ** scale)
    frac_s = str(frac).rjust(scale, "0").rstrip("0") or "0"
    return f"{whole}.{frac_s}"


@dataclass(slots=True, frozen=True)
class ExportRow:
    address: str
    buy_count: int
    claim_tx_count: int
    units_claimed_total: int
    amount_claimed_raw: str              # exact integer string
    amount_claimed: str | None = None    # scaled decimal, if a scale is configured
    total_buys_onchain: int | None = None
    claimable_buys: int | None = None
    claimed_buys_onchain: int | None = None
    claimable_tokens_raw: str | None = None
    read_error: str | None = None

    def values(self, columns: Sequence[str]) -> list[Any]:
        return [getattr(self, c) for c in columns]


def columns_for(*, scaled: bool, enriched: bool) -> list[str]:
    cols = list(BASE_COLUMNS)
    if scaled:
        cols.append(SCALED_COLUMN)
    if enriched:
        cols.extend(ENRICHED_COLUMNS)
    return cols


def _row(item: AccountStat | EnrichedAccount, scale: int | None) -> ExportRow:
    stat = item.stat if isinstance(item, EnrichedAccount) else item
    reads = item.reads if isinstance(item, EnrichedAccount) else None
    return ExportRow(
        address=stat.address,
        buy_count=stat.buy_count,
        claim_tx_count=stat.claim_tx_count,
        units_claimed_total=stat.units_claimed_total,
        amount_claimed_raw=str(stat.amount_claimed_total),
        amount_claimed=format_units(stat.amount_claimed_total, scale) if scale is not None else None,
        total_buys_onchain=reads.total_buys if reads else None,
        claimable_buys=reads.claimable_buys if reads else None,
        claimed_buys_onchain=reads.claimed_buys if reads else None,
        claimable_tokens_raw=str(reads.claimable_tokens) if reads else None,
        read_error=item.read_error if isinstance(item, EnrichedAccount) else None,
    )


def render(
    accounts: Mapping[Address, AccountStat | EnrichedAccount],
    sort_key: SortKey = "buy_count",
    limit: int | None = None,
    scale: int | None = None,
) -> list[ExportRow]:
    """Rows sorted descending by `sort_key`; ties keep the mapping's insertion order."""
    if sort_key not in SORT_KEYS:
        raise ValueError(f"unknown sort key {sort_key!r}; expected one of {', '.join(SORT_KEYS)}")
    if limit is not None and limit < 0:
        raise ValueError(f"limit must be >= 0, got {limit}")

    def key(item: AccountStat | EnrichedAccount) -> int:
        stat = item.stat if isinstance(item, EnrichedAccount) else item
        return getattr(stat, sort_key)

    # sorted() is stable under reverse=True
    ordered = sorted(accounts.values(), key=key, reverse=True)
    if limit is not None:
        ordered = ordered[:limit]
    return [_row(item, scale) for item in ordered]


def is_enriched(rows: Sequence[ExportRow]) -> bool:
    return any(r.total_buys_onchain is not None or r.read_error is not None for r in rows)


def to_csv(
    rows: Sequence[ExportRow],
    *,
    scaled: bool | None = None,
    enriched: bool | None = None,
    delimiter: str = ",",
) -> str:
    """Delimited text with a header row; column set inferred from the rows unless given."""
    if scaled is None:
        scaled = any(r.amount_claimed is not None for r in rows)
    if enriched is None:
        enriched = is_enriched(rows)
    cols = columns_for(scaled=scaled, enriched=enriched)
    buf = io.StringIO()
    w = csv.writer(buf, delimiter=delimiter, lineterminator="\n")
    w.writerow(cols)
    for r in rows:
        w.writerow(["" if v is None else v for v in r.values(cols)])
    return buf.getvalue()
