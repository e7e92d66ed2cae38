from __future__ import annotations

import asyncio

from eth_utils import is_address, keccak, to_canonical_address

from ..domain.errors import ReadError
from ..domain.models import ContractReads
from ..ports.rpc import RPCClient


def selector(signature: str) -> str:
    """0x-prefixed 4-byte function selector."""
    return "0x" + keccak(text=signature)[:4].hex()

def encode_address_call(signature: str, account: str) -> str:
    if not is_address(account):
        raise ReadError(f"not an address: {account!r}")
    return selector(signature) + to_canonical_address(account).rjust(32, b"\x00").hex()

def decode_uint256(result: str) -> int:
    h = result[2:] if result[:2].lower() == "0x" else result
    if len(h) != 64:
        raise ReadError(f"expected a single 32-byte word, got {len(h)//2} bytes")
    try:
        return int(h, 16)
    except ValueError as e:
        raise ReadError(f"non-hex return data: {result!r}") from e


TOTAL_BUYS = "totalBuys(address)"
CLAIMABLE_BUYS = "claimableBuys(address)"
CLAIMABLE_TOKENS = "claimableTokens(address)"


class TBagContractReader:
    """Reads the per-user view functions of the daily-buys contract."""

    def __init__(self, rpc: RPCClient, contract: str, block: str = "latest") -> None:
        self.rpc = rpc
        self.contract = contract
        self.block = block

    async def read_uint(self, signature: str, account: str) -> int:
        raw = await self.rpc.call(self.contract, encode_address_call(signature, account), self.block)
        return decode_uint256(raw)

    async def __call__(self, account: str) -> ContractReads:
        total, claimable_buys, claimable_tokens = await asyncio.gather(
            self.read_uint(TOTAL_BUYS, account),
            self.read_uint(CLAIMABLE_BUYS, account),
            self.read_uint(CLAIMABLE_TOKENS, account),
        )
        return ContractReads(
            total_buys=total,
            claimable_buys=claimable_buys,
            claimable_tokens=claimable_tokens,
        )
