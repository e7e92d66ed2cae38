from __future__ import annotations
from typing import NewType, Literal

Address = NewType("Address", str)   # EIP-55 checksummed, 0x-prefixed
Topic0  = NewType("Topic0", str)    # 66-char 0x-hash, lowercase
EventKind = Literal["Buy", "ClaimAll"]
SortKey = Literal["buy_count", "claim_tx_count", "units_claimed_total", "amount_claimed_total"]

SORT_KEYS: tuple[str, ...] = ("buy_count", "claim_tx_count", "units_claimed_total", "amount_claimed_total")
