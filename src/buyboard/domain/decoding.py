from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable, Iterator, Mapping, Sequence

from eth_utils import keccak, to_checksum_address

from buyboard.domain.models import BuyRecorded, ClaimRecorded, DecodedEvent, LogRecord
from buyboard.domain.value_types import Address, EventKind, Topic0


WORD = 32


# ---------------------------- schema ------------------------------------------

@dataclass(slots=True, frozen=True)
class EventShape:
    """
    Static description of one event: the first indexed parameter is the account
    address, the non-indexed `fields` are (name, bit width) unsigned integers laid
    out one 32-byte word each in the log payload.
    """
    kind: EventKind
    signature: str
    indexed: tuple[str, ...]
    fields: tuple[tuple[str, int], ...]

    @property
    def topic0(self) -> Topic0:
        return Topic0("0x" + keccak(text=self.signature).hex())

    @property
    def topic_count(self) -> int:
        return 1 + len(self.indexed)

    @property
    def payload_size(self) -> int:
        return WORD * len(self.fields)


# event Buy(address indexed user, uint64 userTotalBuys, uint32 buysInCurrentWindow)
BUY = EventShape(
    kind="Buy",
    signature="Buy(address,uint64,uint32)",
    indexed=("address",),
    fields=(("user_total_buys", 64), ("buys_in_window", 32)),
)

# event ClaimAll(address indexed user, uint256 buysClaimed, uint256 tokensPaid)
CLAIM_ALL = EventShape(
    kind="ClaimAll",
    signature="ClaimAll(address,uint256,uint256)",
    indexed=("address",),
    fields=(("buys_claimed", 256), ("tokens_paid", 256)),
)

EventSchema = Mapping[str, EventShape]


def build_schema(shapes: Iterable[EventShape]) -> dict[str, EventShape]:
    return {s.topic0: s for s in shapes}


DEFAULT_SCHEMA: dict[str, EventShape] = build_schema([BUY, CLAIM_ALL])

_BUILDERS: dict[str, Callable[[Address, Sequence[int]], DecodedEvent]] = {
    "Buy":      lambda acct, v: BuyRecorded(acct, user_total_buys=v[0], buys_in_window=v[1]),
    "ClaimAll": lambda acct, v: ClaimRecorded(acct, units_claimed=v[0], amount_paid=v[1]),
}


# --------- 32B word slicing (fast, no eth_abi) --------------------------------

def _hex_bytes(s: str) -> bytes | None:
    h = s[2:] if s[:2].lower() == "0x" else s
    if len(h) % 2:
        return None
    try:
        return bytes.fromhex(h)
    except ValueError:
        return None

def _address_from_topic(t: str) -> Address | None:
    """Topic slot holds a 20-byte address right-aligned behind 12 zero bytes."""
    b = _hex_bytes(t)
    if b is None or len(b) != WORD or any(b[:12]):
        return None
    return Address(to_checksum_address("0x" + b[12:].hex()))

def _uint_words(data: bytes, widths: Sequence[int]) -> list[int] | None:
    out: list[int] = []
    for i, bits in enumerate(widths):
        v = int.from_bytes(data[i*WORD:(i+1)*WORD], "big")
        if v >> bits:
            return None
        out.append(v)
    return out


# ---------------------------- public API --------------------------------------

def decode_log(log: LogRecord, schema: EventSchema = DEFAULT_SCHEMA) -> DecodedEvent | None:
    """Return the typed event for `log`, or None if it is unknown or malformed."""
    t0 = log.topic0
    shape = schema.get(t0.lower()) if t0 else None
    if shape is None:
        return None
    return _decode_shape(log, shape)

def _decode_shape(log: LogRecord, shape: EventShape) -> DecodedEvent | None:
    if len(log.topics) != shape.topic_count:
        return None
    account = _address_from_topic(log.topics[1])
    if account is None:
        return None
    data = _hex_bytes(log.data_hex or "0x")
    if data is None or len(data) != shape.payload_size:
        return None
    values = _uint_words(data, [bits for _, bits in shape.fields])
    if values is None:
        return None
    return _BUILDERS[shape.kind](account, values)


class EventDecoder:
    """Schema-driven decoder that keeps skip counters for diagnostics."""

    def __init__(self, schema: EventSchema = DEFAULT_SCHEMA) -> None:
        self.schema = {k.lower(): v for k, v in schema.items()}
        self.decoded = 0
        self.skipped_unknown = 0
        self.skipped_malformed = 0

    @property
    def topic0s(self) -> list[Topic0]:
        return [Topic0(t) for t in self.schema]

    @property
    def skipped(self) -> int:
        return self.skipped_unknown + self.skipped_malformed

    def decode(self, log: LogRecord) -> DecodedEvent | None:
        t0 = log.topic0
        shape = self.schema.get(t0.lower()) if t0 else None
        if shape is None:
            self.skipped_unknown += 1
            return None
        ev = _decode_shape(log, shape)
        if ev is None:
            self.skipped_malformed += 1
        else:
            self.decoded += 1
        return ev

    def decode_all(self, logs: Iterable[LogRecord]) -> Iterator[DecodedEvent]:
        for log in logs:
            ev = self.decode(log)
            if ev is not None:
                yield ev
