from __future__ import annotations

from typing import Iterable, Mapping

from eth_utils import to_checksum_address

from .models import AccountStat, BuyRecorded, ClaimRecorded, DecodedEvent
from .value_types import Address


def _key(addr: str) -> Address:
    return Address(to_checksum_address(addr))


def apply_event(acc: dict[Address, AccountStat], ev: DecodedEvent) -> None:
    """Fold one event into `acc` in place. Every event is a delta."""
    key = _key(ev.account)
    stat = acc.get(key)
    if stat is None:
        stat = acc[key] = AccountStat(address=key)
    match ev:
        case BuyRecorded():
            stat.buy_count += 1
        case ClaimRecorded(units_claimed=units, amount_paid=amount):
            stat.claim_tx_count += 1
            stat.units_claimed_total += units
            stat.amount_claimed_total += amount


def fold(events: Iterable[DecodedEvent]) -> dict[Address, AccountStat]:
    acc: dict[Address, AccountStat] = {}
    for ev in events:
        apply_event(acc, ev)
    return acc


def merge(*parts: Mapping[Address, AccountStat]) -> dict[Address, AccountStat]:
    """Field-wise sum of partial folds; inputs are not mutated."""
    out: dict[Address, AccountStat] = {}
    for part in parts:
        for addr, s in part.items():
            key = _key(addr)
            t = out.get(key)
            if t is None:
                t = out[key] = AccountStat(address=key)
            t.buy_count += s.buy_count
            t.claim_tx_count += s.claim_tx_count
            t.units_claimed_total += s.units_claimed_total
            t.amount_claimed_total += s.amount_claimed_total
    return out
