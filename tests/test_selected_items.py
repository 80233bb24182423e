import pytest

from spray.data import (
    Balance,
    Instruction,
    TokenBalance,
    Transaction,
    TransactionData,
    TransactionVersion,
)
from spray.query.filter.selected_items import ItemSelection, new_selection


def _tx(n_instructions, n_balances, n_token_balances):
    transaction = Transaction(
        version=TransactionVersion(0),
        account_keys=1,
        address_table_lookups="[]",
        num_readonly_signed_accounts=0,
        num_readonly_unsigned_accounts=0,
        num_required_signatures=1,
        recent_blockhash="h",
        signatures="[]",
        err=None,
        compute_units_consumed=None,
        fee=0,
        loaded_addresses="{}",
    )
    instructions = [
        Instruction([i], 0, [], "", b"", True, ("a",)) for i in range(n_instructions)
    ]
    return TransactionData(
        slot=1,
        transaction_index=0,
        transaction=transaction,
        instructions=instructions,
        balances=[Balance("a", 0, 1)] * n_balances,
        token_balances=[TokenBalance()] * n_token_balances,
        accounts=("a",),
    )


def test_new_selection_is_empty_and_sized():
    sel = new_selection(_tx(3, 2, 1))
    assert sel.is_empty()
    assert sel.instructions.length == 3
    assert sel.balances.length == 2
    assert sel.token_balances.length == 1


def test_add_selects_indexes_in_order():
    selection = ItemSelection(5)
    selection.add(3)
    selection.add(1)
    assert not selection.is_empty()
    assert list(selection.selected()) == [1, 3]


def test_add_all_selects_everything():
    selection = ItemSelection(4)
    selection.add_all(True)
    selection.add(2)
    assert selection.includes_all()
    assert not selection.is_empty()
    assert list(selection.selected()) == list(range(4))


def test_add_all_false_changes_nothing():
    selection = ItemSelection(4)
    selection.add_all(False)
    assert not selection.includes_all()
    assert selection.is_empty()
    assert list(selection.selected()) == []


def test_add_all_after_explicit_adds_wins():
    selection = ItemSelection(3)
    selection.add(0)
    selection.add_all(True)
    assert list(selection.selected()) == [0, 1, 2]


def test_include_all_of_zero_items_is_empty():
    selection = ItemSelection(0)
    selection.add_all(True)
    assert selection.is_empty()
    assert list(selection.selected()) == []


def test_add_out_of_range_raises():
    selection = ItemSelection(2)
    with pytest.raises(IndexError):
        selection.add(2)


def test_selected_items_not_empty_with_transaction_or_items():
    sel = new_selection(_tx(2, 0, 1))
    sel.transaction = True
    assert not sel.is_empty()

    sel = new_selection(_tx(2, 0, 1))
    sel.token_balances.add(0)
    assert not sel.is_empty()
    assert list(sel.token_balances.selected()) == [0]