# buyboard/ports/rpc.py
from __future__ import annotations

from typing import Protocol, Sequence
from ..domain.models import LogRecord
from ..domain.value_types import Topic0


class RPCClient(Protocol):
    """Port defining the contract for an Ethereum JSON-RPC provider."""

    async def get_logs(
        self,
        address: str,
        topic0s: Sequence[Topic0],
        from_block: int,
        to_block: int,
    ) -> list[LogRecord]:
        """
        Return typed logs for [from_block, to_block] inclusive.
        Raises CapacityExceededError when the provider caps the result count,
        ProviderError for anything else.
        """

    async def call(self, to: str, data: str, block: str = "latest") -> str:
        """eth_call; returns the raw 0x-hex return data."""

    async def latest_block(self) -> int:
        """Return the latest block number as an integer."""

    async def aclose(self) -> None:
        """Release the underlying connection pool."""


class AccountReader(Protocol):
    """Per-account contract state read used by the enrichment pool."""

    async def __call__(self, account: str) -> object: ...
