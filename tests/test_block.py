import json
import time
from datetime import datetime

import pytest

from blockledger.block import (
    Block,
    BlockHeader,
    BlockRecord,
    Hash,
    Tx,
    new_block,
    new_tx,
)

LEGACY_LINE = (
    '{"hash":"96a7306a8be62774de3799f1e605026327203d7eddf979ddee344eeeca05673a",'
    '"block":{"header":{"ParentHash":"0000000000000000000000000000000000000000000000000000000000000000",'
    '"Time":1746709322},"payload":[{"from":"andrej","to":"andrej","value":3,"data":"",'
    '"createdAt":"2025-05-08T16:02:02+03:00"},{"from":"andrej","to":"andrej","value":700,'
    '"data":"reward","createdAt":"2025-05-08T16:02:02+03:00"}]}}'
)


def _sample_block():
    return Block(
        BlockHeader(Hash(bytes(range(32))), 4, 1700000000),
        [Tx("andrej", "babayaga", 20, "", "2025-05-08T16:02:02+03:00")],
    )


def test_zero_hash():
    zero = Hash.zero()
    assert zero.is_zero()
    assert str(zero) == "0" * 64


def test_hash_hex_round_trip():
    value = Hash(bytes(range(32)))
    assert not value.is_zero()
    assert Hash.from_hex(str(value)) == value
    assert Hash.from_hex(str(value).upper()) == value


def test_from_hex_short_input_fills_leading_bytes():
    assert Hash.from_hex("ab").digest == b"\xab" + bytes(31)


@pytest.mark.parametrize("text", ["abc", "zz", "ab cd", "00" * 33])
def test_from_hex_rejects_bad_input(text):
    with pytest.raises(ValueError):
        Hash.from_hex(text)


def test_hash_requires_32_bytes():
    with pytest.raises(ValueError):
        Hash(b"\x01")


def test_reward_detection():
    assert Tx("a", "b", 1, "reward").is_reward()
    assert not Tx("a", "b", 1, "").is_reward()


def test_negative_value_rejected():
    with pytest.raises(ValueError):
        Tx("a", "b", -1)


def test_tx_dict_round_trip():
    tx = Tx("andrej", "caesar", 1000, "", "2025-05-08T16:02:02+03:00")
    data = tx.to_dict()
    assert list(data) == ["from", "to", "value", "data", "createdAt"]
    assert Tx.from_dict(data) == tx


def test_tx_from_dict_ignores_key_case():
    tx = Tx.from_dict({"From": "andrej", "TO": "caesar", "Value": 5})
    assert (tx.sender, tx.to, tx.value, tx.data) == ("andrej", "caesar", 5, "")


def test_tx_from_dict_rejects_fractional_value():
    with pytest.raises(ValueError):
        Tx.from_dict({"from": "a", "to": "b", "value": 3.5})


def test_new_tx_is_timestamped():
    tx = new_tx("andrej", "babayaga", "reward", 10)
    assert tx.is_reward()
    stamp = datetime.fromisoformat(tx.created_at.replace("Z", "+00:00"))
    assert stamp.tzinfo is not None


def test_new_block_records_time_and_payload():
    before = int(time.time())
    block = new_block(Hash.zero(), 7, [Tx("a", "b", 1)])
    after = int(time.time())
    assert before <= block.header.time <= after
    assert block.header.number == 7
    assert block.payload == [Tx("a", "b", 1)]


def test_block_hash_is_stable_and_sensitive():
    block = _sample_block()
    assert block.hash() == _sample_block().hash()
    changed = _sample_block()
    changed.payload.append(Tx("babayaga", "caesar", 1))
    assert changed.hash() != block.hash()


def test_block_hash_survives_record_round_trip():
    block = _sample_block()
    record = BlockRecord(block.hash(), block)
    parsed = BlockRecord.from_json(record.to_json())
    assert parsed == record
    assert parsed.value.hash() == parsed.key


def test_record_json_layout():
    block = _sample_block()
    line = BlockRecord(block.hash(), block).to_json()
    assert "\n" not in line
    data = json.loads(line)
    assert list(data) == ["hash", "block"]
    assert data["hash"] == str(block.hash())
    assert data["block"]["header"]["parentHash"] == str(block.header.parent_hash)


def test_empty_payload_serialises_as_null():
    block = Block(BlockHeader(Hash.zero(), 1, 5), [])
    assert block.to_dict()["payload"] is None
    assert Block.from_dict(block.to_dict()) == block


def test_html_characters_are_escaped():
    block = Block(BlockHeader(), [Tx("a", "b", 1, "<a&b>")])
    line = BlockRecord(block.hash(), block).to_json()
    assert "<" not in line and "&" not in line
    assert "\\u003c" in line
    assert BlockRecord.from_json(line).value.payload[0].data == "<a&b>"


def test_parse_legacy_record():
    record = BlockRecord.from_json(LEGACY_LINE)
    assert str(record.key) == "96a7306a8be62774de3799f1e605026327203d7eddf979ddee344eeeca05673a"
    assert record.value.header.parent_hash.is_zero()
    assert record.value.header.time == 1746709322
    assert record.value.header.number == 0
    assert [tx.value for tx in record.value.payload] == [3, 700]
    assert record.value.payload[1].is_reward()


def test_record_must_be_object():
    with pytest.raises(ValueError):
        BlockRecord.from_json("[1, 2]")