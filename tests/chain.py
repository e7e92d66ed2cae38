"""In-memory stand-in for an Ethereum JSON-RPC provider."""
from __future__ import annotations

import asyncio
from typing import Callable, Iterable, Sequence

from eth_utils import to_checksum_address

from buyboard.adapters.contract_reader import selector
from buyboard.domain.decoding import BUY, CLAIM_ALL
from buyboard.domain.errors import CapacityExceededError, ProviderError
from buyboard.domain.models import BlockRange, LogRecord

CONTRACT = "0xca2538de53e21128b298a80d92f67b33605feecc"


def word(v: int) -> str:
    return v.to_bytes(32, "big").hex()

def addr_topic(addr: str) -> str:
    return "0x" + "0" * 24 + addr.lower().removeprefix("0x")

def buy_log(account: str, block: int, total: int = 1, in_window: int = 1, log_index: int = 0) -> LogRecord:
    return LogRecord(
        address=CONTRACT,
        topics=(BUY.topic0, addr_topic(account)),
        data_hex="0x" + word(total) + word(in_window),
        block_number=block,
        tx_hash="0x" + f"{block:064x}",
        log_index=log_index,
    )

def claim_log(account: str, block: int, units: int, paid: int, log_index: int = 0) -> LogRecord:
    return LogRecord(
        address=CONTRACT,
        topics=(CLAIM_ALL.topic0, addr_topic(account)),
        data_hex="0x" + word(units) + word(paid),
        block_number=block,
        tx_hash="0x" + f"{block:064x}",
        log_index=log_index,
    )

def account(n: int) -> str:
    return to_checksum_address("0x" + f"{n:040x}")


class FakeChain:
    """
    Serves `logs` through get_logs, raising CapacityExceededError when a query
    matches more than `cap` records. View functions are answered from `views`,
    keyed by function signature.
    """

    def __init__(
        self,
        logs: Iterable[LogRecord] = (),
        *,
        cap: int | None = None,
        head: int = 1_000_000,
        hint: Callable[[BlockRange, int], BlockRange | None] | None = None,
        views: dict[str, Callable[[str], int]] | None = None,
        delay: float = 0.0,
    ) -> None:
        self.logs = sorted(logs, key=lambda l: (l.block_number, l.log_index))
        self.cap = cap
        self.head = head
        self.hint = hint
        self.delay = delay
        self.views = {selector(sig): fn for sig, fn in (views or {}).items()}
        self.calls: list[BlockRange] = []
        self.failing: dict[BlockRange, ProviderError] = {}
        self.in_flight = 0
        self.max_in_flight = 0
        self.closed = False

    async def get_logs(self, address: str, topic0s: Sequence[str], from_block: int, to_block: int) -> list[LogRecord]:
        rng = BlockRange(from_block, to_block)
        self.calls.append(rng)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            if rng in self.failing:
                raise self.failing[rng]
            wanted = {t.lower() for t in topic0s}
            found = [
                l for l in self.logs
                if from_block <= l.block_number <= to_block
                and l.address == address.lower()
                and l.topic0 in wanted
            ]
            if self.cap is not None and len(found) > self.cap:
                raise CapacityExceededError(
                    f"query returned more than {self.cap} results",
                    code=-32005,
                    hint=self.hint(rng, self.cap) if self.hint else None,
                )
            return found
        finally:
            self.in_flight -= 1

    async def call(self, to: str, data: str, block: str = "latest") -> str:
        fn = self.views.get(data[:10])
        if fn is None:
            raise ProviderError("execution reverted", code=3)
        return "0x" + word(fn(to_checksum_address("0x" + data[-40:])))

    async def latest_block(self) -> int:
        return self.head

    async def aclose(self) -> None:
        self.closed = True
