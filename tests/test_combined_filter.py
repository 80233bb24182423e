from spray.data import Balance, Instruction, Transaction, TransactionData, TransactionVersion
from spray.query.filter.combined import Filter
from spray.query.model import (
    BalanceRequest,
    InstructionRequest,
    SolanaQuery,
    TransactionRequest,
)

ACCOUNTS = ("payer", "prog", "alice")


def make_tx():
    transaction = Transaction(
        version=TransactionVersion(),
        account_keys=len(ACCOUNTS),
        address_table_lookups="[]",
        num_readonly_signed_accounts=0,
        num_readonly_unsigned_accounts=0,
        num_required_signatures=1,
        recent_blockhash="hash",
        signatures="[]",
        err=None,
        compute_units_consumed=None,
        fee=5000,
        loaded_addresses="{}",
    )
    instructions = [
        Instruction(
            instruction_address=[i],
            program_id=1,
            accounts=[2],
            data="",
            binary_data=b"",
            is_committed=True,
            account_list=ACCOUNTS,
        )
        for i in range(2)
    ]
    return TransactionData(
        slot=9,
        transaction_index=4,
        transaction=transaction,
        instructions=instructions,
        balances=[Balance("payer", 10, 5), Balance("alice", 0, 5)],
        accounts=ACCOUNTS,
    )


def test_empty_query_selects_nothing():
    assert Filter(SolanaQuery()).eval(make_tx()).is_empty()


def test_transaction_request_with_relations():
    query = SolanaQuery(transactions=[TransactionRequest(fee_payer=["payer"], balances=True)])
    sel = Filter(query).eval(make_tx())
    assert sel.transaction is True
    assert list(sel.balances.selected()) == [0, 1]
    assert sel.instructions.is_empty()


def test_filters_are_combined():
    query = SolanaQuery(
        balances=[BalanceRequest(account=["alice"])],
        instructions=[InstructionRequest(program_id=["prog"], transaction=True)],
    )
    sel = Filter(query).eval(make_tx())
    assert list(sel.balances.selected()) == [1]
    assert list(sel.instructions.selected()) == [0, 1]
    assert sel.transaction is True


def test_non_matching_query_selects_nothing():
    query = SolanaQuery(
        transactions=[TransactionRequest(mentions_account=["stranger"])],
        instructions=[InstructionRequest(program_id=["other"])],
    )
    assert Filter(query).eval(make_tx()).is_empty()