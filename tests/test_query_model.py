import pytest

from spray.query.model import (
    BalanceRequest,
    FieldSelection,
    InstructionRequest,
    QueryError,
    SolanaQuery,
    TokenBalanceRequest,
    TransactionRequest,
    dump_query,
    parse_hex,
    parse_query,
)


def test_parse_hex_valid():
    assert parse_hex("0xabCD") == bytes.fromhex("abcd")
    assert parse_hex("0x") == b""


@pytest.mark.parametrize("text", ["abcd", "0xabc", "0xzz", "0x 1", "0xé1"])
def test_parse_hex_invalid(text):
    assert parse_hex(text) is None


def test_parse_and_dump_round_trip():
    obj = {
        "fields": {
            "block": {"number": True, "parentHash": True},
            "transaction": {"numReadonlySignedAccounts": True, "feePayer": True},
            "tokenBalance": {"preMint": True},
        },
        "includeAllBlocks": True,
        "instructions": [
            {"programId": ["prog"], "d8": ["0x01"], "isCommitted": False, "a15": ["acc"]}
        ],
        "transactions": [{"feePayer": ["payer"], "balances": True}],
    }
    query = parse_query(obj)
    assert query.fields.block.parent_hash is True
    assert query.fields.block.hash is False
    assert query.fields.token_balance.pre_mint is True
    assert query.instructions[0].a15 == ["acc"]
    assert query.instructions[0].is_committed is False
    assert query.transactions[0].fee_payer == ["payer"]
    assert dump_query(query) == obj


def test_default_query_dumps_empty():
    assert dump_query(SolanaQuery()) == {}
    assert parse_query({}) == SolanaQuery()


def test_parse_from_text():
    query = parse_query('{"includeAllBlocks": true, "balances": [{"account": ["x"]}]}')
    assert query.include_all_blocks is True
    assert query.balances == [BalanceRequest(account=["x"])]


def test_invalid_json_text():
    with pytest.raises(QueryError):
        parse_query("{")


def test_unknown_field_rejected():
    with pytest.raises(QueryError, match="foo"):
        parse_query({"foo": 1})


def test_unknown_nested_field_rejected():
    with pytest.raises(QueryError, match="bogus"):
        parse_query({"fields": {"block": {"bogus": True}}})


def test_snake_case_key_rejected():
    with pytest.raises(QueryError):
        parse_query({"include_all_blocks": True})


def test_null_for_bool_rejected():
    with pytest.raises(QueryError):
        parse_query({"includeAllBlocks": None})


def test_null_for_optional_list_accepted():
    query = parse_query({"transactions": [{"feePayer": None}]})
    assert query.transactions == [TransactionRequest()]


def test_wrong_list_type_rejected():
    with pytest.raises(QueryError):
        parse_query({"transactions": [{"feePayer": "payer"}]})
    with pytest.raises(QueryError):
        parse_query({"transactions": [{"feePayer": [1]}]})


def test_non_object_rejected():
    with pytest.raises(QueryError):
        parse_query([])


def test_validate_counts_item_requests():
    query = SolanaQuery(
        transactions=[TransactionRequest()] * 40,
        instructions=[InstructionRequest()] * 30,
        balances=[BalanceRequest()] * 20,
        token_balances=[TokenBalanceRequest()] * 10,
    )
    assert query.validate() == 100


def test_validate_rejects_too_many_requests():
    query = SolanaQuery(
        transactions=[TransactionRequest()] * 60,
        balances=[BalanceRequest()] * 41,
    )
    with pytest.raises(QueryError, match="101"):
        query.validate()


def test_field_selection_default_is_omitted_in_dump():
    query = SolanaQuery(fields=FieldSelection(), include_all_blocks=True)
    assert dump_query(query) == {"includeAllBlocks": True}