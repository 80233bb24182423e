"""A compiled query evaluated against transactions."""

from __future__ import annotations

from spray.data import TransactionData
from spray.query.filter.balance import BalanceFilter
from spray.query.filter.instruction import InstructionFilter
from spray.query.filter.selected_items import SelectedItems, new_selection
from spray.query.filter.token_balance import TokenBalanceFilter
from spray.query.filter.transaction import TransactionFilter
from spray.query.model import SolanaQuery


class Filter:
    """All item filters of one query."""

    def __init__(self, query: SolanaQuery) -> None:
        self._transaction = TransactionFilter(query.transactions)
        self._instruction = InstructionFilter(query.instructions)
        self._balance = BalanceFilter(query.balances)
        self._token_balance = TokenBalanceFilter(query.token_balances)

    def eval(self, tx: TransactionData) -> SelectedItems:
        """Return what the query selects from ``tx``."""
        sel = new_selection(tx)
        for item_filter in (
            self._transaction,
            self._balance,
            self._token_balance,
            self._instruction,
        ):
            if item_filter.is_non_trivial():
                item_filter.eval(sel, tx)
        return sel