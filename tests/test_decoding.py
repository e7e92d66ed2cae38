from chain import CONTRACT, account, addr_topic, buy_log, claim_log, word

from buyboard.domain.decoding import BUY, CLAIM_ALL, DEFAULT_SCHEMA, EventDecoder, EventShape, decode_log
from buyboard.domain.models import BuyRecorded, ClaimRecorded, LogRecord

WALLET = "0x52908400098527886E0F7030069857D2E4169EE7"


def test_topic0_is_keccak_of_signature():
    transfer = EventShape("Buy", "Transfer(address,address,uint256)", ("address", "address"), (("value", 256),))
    assert transfer.topic0 == "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"
    assert set(DEFAULT_SCHEMA) == {BUY.topic0, CLAIM_ALL.topic0}


def test_decode_buy():
    ev = decode_log(buy_log(WALLET, 10, total=7, in_window=3))
    assert ev == BuyRecorded(WALLET, user_total_buys=7, buys_in_window=3)


def test_decode_claim_keeps_full_precision():
    amount = 2**200 + 12345
    ev = decode_log(claim_log(WALLET, 10, units=4, paid=amount))
    assert isinstance(ev, ClaimRecorded)
    assert ev.units_claimed == 4
    assert ev.amount_paid == amount


def test_address_is_checksummed_regardless_of_topic_casing():
    lower = buy_log(WALLET.lower(), 1)
    upper = LogRecord(
        address=CONTRACT,
        topics=(lower.topics[0].upper().replace("0X", "0x"), lower.topics[1].upper().replace("0X", "0x")),
        data_hex=lower.data_hex,
        block_number=1,
    )
    a, b = decode_log(lower), decode_log(upper)
    assert a is not None and b is not None
    assert a.account == b.account == WALLET


def test_unknown_topic_is_skipped_and_counted():
    dec = EventDecoder()
    log = LogRecord(address=CONTRACT, topics=("0x" + "ab" * 32, addr_topic(WALLET)), data_hex="0x", block_number=1)
    assert dec.decode(log) is None
    assert (dec.skipped_unknown, dec.skipped_malformed, dec.decoded) == (1, 0, 0)


def test_no_topics_is_unknown():
    dec = EventDecoder()
    assert dec.decode(LogRecord(address=CONTRACT, topics=(), data_hex="0x", block_number=1)) is None
    assert dec.skipped_unknown == 1


def _with(log: LogRecord, **kw) -> LogRecord:
    fields = dict(address=log.address, topics=log.topics, data_hex=log.data_hex, block_number=log.block_number)
    fields.update(kw)
    return LogRecord(**fields)


def test_malformed_records_are_skipped():
    good = buy_log(WALLET, 1)
    bad = [
        _with(good, topics=good.topics[:1]),                                   # missing indexed topic
        _with(good, topics=good.topics + (addr_topic(WALLET),)),              # extra topic
        _with(good, data_hex="0x" + word(1)),                                 # short payload
        _with(good, data_hex=good.data_hex + "00" * 32),                      # long payload
        _with(good, data_hex="0x" + word(2**64) + word(1)),                   # exceeds uint64
        _with(good, data_hex="0x" + word(1) + word(2**32)),                   # exceeds uint32
        _with(good, data_hex="0xzz" + "00" * 63),                             # not hex
        _with(good, topics=(good.topics[0], "0x" + "11" * 12 + "22" * 20)),   # dirty address padding
    ]
    dec = EventDecoder()
    assert list(dec.decode_all(bad)) == []
    assert dec.skipped_malformed == len(bad)
    assert dec.decoded == 0


def test_decode_all_filters_and_counts():
    dec = EventDecoder()
    logs = [buy_log(account(1), 1), _with(buy_log(account(2), 2), data_hex="0x"), claim_log(account(3), 3, 1, 5)]
    out = list(dec.decode_all(logs))
    assert [type(e) for e in out] == [BuyRecorded, ClaimRecorded]
    assert dec.decoded == 2 and dec.skipped == 1


def test_topic0s_follow_schema():
    dec = EventDecoder({BUY.topic0: BUY})
    assert dec.topic0s == [BUY.topic0]
    assert dec.decode(claim_log(WALLET, 1, 1, 1)) is None
