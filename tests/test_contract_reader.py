import pytest
from chain import CONTRACT, FakeChain, account

from buyboard.adapters.contract_reader import (
    CLAIMABLE_BUYS, CLAIMABLE_TOKENS, TOTAL_BUYS, TBagContractReader,
    decode_uint256, encode_address_call, selector,
)
from buyboard.domain.errors import ProviderError, ReadError
from buyboard.domain.models import ContractReads


def test_selector_matches_known_abi():
    assert selector("balanceOf(address)") == "0x70a08231"
    assert selector("transfer(address,uint256)") == "0xa9059cbb"


def test_encode_address_call_pads_to_one_word():
    data = encode_address_call("balanceOf(address)", account(0xABC))
    assert data == "0x70a08231" + "00" * 12 + f"{0xABC:040x}"


def test_encode_rejects_non_address():
    with pytest.raises(ReadError):
        encode_address_call(TOTAL_BUYS, "0x1234")


def test_decode_uint256():
    assert decode_uint256("0x" + f"{2**200:064x}") == 2**200
    with pytest.raises(ReadError):
        decode_uint256("0x")
    with pytest.raises(ReadError):
        decode_uint256("0x" + "zz" * 32)


async def test_reader_returns_all_three_views():
    who = account(7)
    chain = FakeChain(views={
        TOTAL_BUYS: lambda a: 9,
        CLAIMABLE_BUYS: lambda a: 4,
        CLAIMABLE_TOKENS: lambda a: 4 * 10**18 if a == who else 0,
    })
    reads = await TBagContractReader(chain, CONTRACT)(who)
    assert reads == ContractReads(total_buys=9, claimable_buys=4, claimable_tokens=4 * 10**18)


async def test_reader_propagates_reverts():
    chain = FakeChain(views={TOTAL_BUYS: lambda a: 1})
    with pytest.raises(ProviderError):
        await TBagContractReader(chain, CONTRACT)(account(1))
