import json
import struct

import pytest

from spray import metrics
from spray.ingest.mapping import (
    UNKNOWN_ERROR_JSON,
    MappingError,
    decode_transaction_error,
    map_transaction,
    render_address_table_lookups,
)
from spray.ingest.updates import (
    CompiledInstruction,
    InnerInstruction,
    InnerInstructions,
    MessageAddressTableLookup,
    MessageHeader,
    TokenBalanceRecord,
    TransactionStatusMeta,
    TransactionUpdate,
    UiTokenAmount,
)
from spray.json_builder import b58encode

KEYS = [bytes([1]) * 32, bytes([2]) * 32]


def make_update(**meta):
    return TransactionUpdate(
        slot=10,
        index=3,
        signatures=[bytes([9]) * 64],
        header=MessageHeader(1, 0, 1),
        account_keys=list(KEYS),
        recent_blockhash=bytes([5]) * 32,
        instructions=[CompiledInstruction(program_id_index=1, accounts=[0], data=b"\x01\x02")],
        meta=TransactionStatusMeta(**meta),
    )


CUSTOM_ERR = struct.pack("<IBII", 8, 0, 24, 1)


def test_simple_transaction():
    tx = map_transaction(make_update())
    assert tx.accounts == tuple(b58encode(k) for k in KEYS)
    assert tx.transaction.account_keys == 2
    assert tx.transaction.err is None
    (ins,) = tx.instructions
    assert ins.instruction_address == [0]
    assert ins.data == b58encode(b"\x01\x02")
    assert ins.binary_data == b"\x01\x02"
    assert ins.is_committed


def test_inner_instruction_addresses():
    inner = [InnerInstruction(0, [], b"", h) for h in (2, 3, 2)]
    tx = map_transaction(make_update(inner_instructions=[InnerInstructions(0, inner)]))
    assert [i.instruction_address for i in tx.instructions] == [[0], [0, 0], [0, 0, 0], [0, 1]]


def test_invalid_stack_height():
    inner = [InnerInstruction(0, [], b"", 1)]
    with pytest.raises(MappingError):
        map_transaction(make_update(inner_instructions=[InnerInstructions(0, inner)]))


def test_instruction_error_sets_error():
    tx = map_transaction(make_update(err=CUSTOM_ERR))
    assert json.loads(tx.transaction.err) == {"InstructionError": [0, {"Custom": 1}]}
    _, (index, message) = decode_transaction_error(CUSTOM_ERR)
    assert index == 0
    assert tx.instructions[0].error == message
    assert not tx.instructions[0].is_committed


def test_unit_error_decoding():
    text, ins_err = decode_transaction_error(struct.pack("<I", 7))
    assert json.loads(text) == "BlockhashNotFound"
    assert ins_err is None


def test_bad_error_data():
    with pytest.raises(ValueError):
        decode_transaction_error(b"\xff\xff")


def test_unparsed_error_counted():
    before = metrics._UNPARSED_TRANSACTION_ERRORS.value
    tx = map_transaction(make_update(err=b"\xff"))
    assert tx.transaction.err == UNKNOWN_ERROR_JSON
    assert metrics._UNPARSED_TRANSACTION_ERRORS.value == before + 1


def test_balances_only_changed():
    tx = map_transaction(make_update(pre_balances=[5, 5], post_balances=[5, 7]))
    assert len(tx.balances) == 1
    assert tx.balances[0].account == b58encode(KEYS[1])
    assert (tx.balances[0].pre, tx.balances[0].post) == (5, 7)


def test_balances_length_mismatch():
    with pytest.raises(MappingError):
        map_transaction(make_update(pre_balances=[1], post_balances=[]))


def test_token_balances():
    rec = TokenBalanceRecord(1, "mint", "owner", "prog", UiTokenAmount(6, "100"))
    tx = map_transaction(make_update(post_token_balances=[rec]))
    (tb,) = tx.token_balances
    assert tb.account == b58encode(KEYS[1])
    assert tb.post_mint == "mint" and tb.pre_mint is None
    assert tb.post_decimals == 6 and tb.post_amount == "100"


def test_token_balance_index_out_of_range():
    rec = TokenBalanceRecord(5, "mint", "owner", "prog")
    with pytest.raises(MappingError):
        map_transaction(make_update(pre_token_balances=[rec]))


def test_header_overflow():
    upd = make_update()
    upd.header = MessageHeader(300, 0, 0)
    with pytest.raises(MappingError):
        map_transaction(upd)


def test_program_id_out_of_range():
    upd = make_update()
    upd.instructions = [CompiledInstruction(program_id_index=2)]
    with pytest.raises(MappingError):
        map_transaction(upd)


def test_address_table_lookups():
    assert render_address_table_lookups([]) == "[]"
    key = bytes([3]) * 32
    out = json.loads(render_address_table_lookups(
        [MessageAddressTableLookup(key, writable_indexes=[1, 2], readonly_indexes=[4])]))
    assert out == [{"accountKey": b58encode(key), "readonlyIndexes": [4], "writableIndexes": [1, 2]}]