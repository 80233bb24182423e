"""Selection of native balance changes by account."""

from __future__ import annotations

import enum
from collections.abc import Iterable

from spray.data import Balance, TransactionData
from spray.query.filter.relations import ItemFilter, any_match
from spray.query.filter.selected_items import SelectedItems
from spray.query.model import BalanceRequest


class BalanceRelations(enum.Flag):
    """Related items requested along with a matching balance."""

    NONE = 0
    TRANSACTION = 1
    TRANSACTION_INSTRUCTIONS = 2

    @classmethod
    def of(cls, transaction: bool, transaction_instructions: bool) -> BalanceRelations:
        relations = cls.NONE
        if transaction:
            relations |= cls.TRANSACTION
        if transaction_instructions:
            relations |= cls.TRANSACTION_INSTRUCTIONS
        return relations


def compile_balance_request(req: BalanceRequest) -> ItemFilter[Balance, BalanceRelations] | None:
    """Prepare a request; None when it can never match anything."""
    item_filter: ItemFilter[Balance, BalanceRelations] = ItemFilter(
        relations=BalanceRelations.of(req.transaction, req.transaction_instructions)
    )
    if req.account is not None:
        if not req.account:
            return None
        accounts = frozenset(req.account)
        item_filter.add(lambda balance: balance.account in accounts)
    return item_filter


class BalanceFilter:
    """Union of prepared balance requests."""

    def __init__(self, requests: Iterable[BalanceRequest]) -> None:
        compiled = (compile_balance_request(req) for req in requests)
        self._requests = [f for f in compiled if f is not None]

    def is_non_trivial(self) -> bool:
        return bool(self._requests)

    def eval(self, sel: SelectedItems, tx: TransactionData) -> None:
        """Mark matching balances and the items they request in ``sel``."""
        for i, balance in enumerate(tx.balances):
            relations = any_match(self._requests, balance)
            if relations is None:
                continue
            sel.balances.add(i)
            sel.transaction |= bool(relations & BalanceRelations.TRANSACTION)
            sel.instructions.add_all(bool(relations & BalanceRelations.TRANSACTION_INSTRUCTIONS))