"""Selection of whole transactions by fee payer or mentioned accounts."""

from __future__ import annotations

import enum
from collections.abc import Iterable

from spray.data import TransactionData
from spray.query.filter.relations import ItemFilter, any_match
from spray.query.filter.selected_items import SelectedItems
from spray.query.model import TransactionRequest


class TransactionRelations(enum.Flag):
    """Items requested along with a matching transaction."""

    NONE = 0
    INSTRUCTIONS = 1
    LOGS = 2
    BALANCES = 4
    TOKEN_BALANCES = 8


def _relations(req: TransactionRequest) -> TransactionRelations:
    relations = TransactionRelations.NONE
    for flag, on in (
        (TransactionRelations.INSTRUCTIONS, req.instructions),
        (TransactionRelations.LOGS, req.logs),
        (TransactionRelations.BALANCES, req.balances),
        (TransactionRelations.TOKEN_BALANCES, req.token_balances),
    ):
        if on:
            relations |= flag
    return relations


def compile_transaction_request(
    req: TransactionRequest,
) -> ItemFilter[TransactionData, TransactionRelations] | None:
    """Prepare a request; None when it can never match anything."""
    item_filter: ItemFilter[TransactionData, TransactionRelations] = ItemFilter(
        relations=_relations(req)
    )

    if req.fee_payer is not None:
        if not req.fee_payer:
            return None
        payers = frozenset(req.fee_payer)
        item_filter.add(lambda tx: bool(tx.accounts) and tx.accounts[0] in payers)

    if req.mentions_account is not None:
        if not req.mentions_account:
            return None
        mentioned = frozenset(req.mentions_account)
        item_filter.add(lambda tx: any(account in mentioned for account in tx.accounts))

    return item_filter


class TransactionFilter:
    """Union of prepared transaction requests."""

    def __init__(self, requests: Iterable[TransactionRequest]) -> None:
        compiled = (compile_transaction_request(req) for req in requests)
        self._requests = [f for f in compiled if f is not None]

    def is_non_trivial(self) -> bool:
        return bool(self._requests)

    def eval(self, sel: SelectedItems, tx: TransactionData) -> None:
        relations = any_match(self._requests, tx)
        if relations is None:
            return
        sel.transaction = True
        sel.instructions.add_all(bool(relations & TransactionRelations.INSTRUCTIONS))
        sel.balances.add_all(bool(relations & TransactionRelations.BALANCES))
        sel.token_balances.add_all(bool(relations & TransactionRelations.TOKEN_BALANCES))