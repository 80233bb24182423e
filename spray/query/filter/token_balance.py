"""Selection of token balances by account, mint, program and owner."""

from __future__ import annotations

from collections.abc import Callable, Iterable

from spray.data import TokenBalance, TransactionData
from spray.query.filter.balance import BalanceRelations
from spray.query.filter.relations import ItemFilter, any_match
from spray.query.filter.selected_items import SelectedItems
from spray.query.model import TokenBalanceRequest

_OPTIONAL_FIELDS = (
    "pre_mint",
    "post_mint",
    "pre_program_id",
    "post_program_id",
    "pre_owner",
    "post_owner",
)


def _optional_in(name: str, values: frozenset[str]) -> Callable[[TokenBalance], bool]:
    def predicate(balance: TokenBalance) -> bool:
        value = getattr(balance, name)
        return value is not None and value in values

    return predicate


def compile_token_balance_request(
    req: TokenBalanceRequest,
) -> ItemFilter[TokenBalance, BalanceRelations] | None:
    """Prepare a request; None when it can never match anything."""
    item_filter: ItemFilter[TokenBalance, BalanceRelations] = ItemFilter(
        relations=BalanceRelations.of(req.transaction, req.transaction_instructions)
    )
    if req.account is not None:
        if not req.account:
            return None
        accounts = frozenset(req.account)
        item_filter.add(lambda balance: balance.account in accounts)

    for name in _OPTIONAL_FIELDS:
        values = getattr(req, name)
        if values is None:
            continue
        if not values:
            return None
        item_filter.add(_optional_in(name, frozenset(values)))

    return item_filter


class TokenBalanceFilter:
    """Union of prepared token balance requests."""

    def __init__(self, requests: Iterable[TokenBalanceRequest]) -> None:
        compiled = (compile_token_balance_request(req) for req in requests)
        self._requests = [f for f in compiled if f is not None]

    def is_non_trivial(self) -> bool:
        return bool(self._requests)

    def eval(self, sel: SelectedItems, tx: TransactionData) -> None:
        """Mark matches in ``sel``; matching indexes go to the balance selection."""
        for i, balance in enumerate(tx.token_balances):
            relations = any_match(self._requests, balance)
            if relations is None:
                continue
            sel.balances.add(i)
            sel.transaction |= bool(relations & BalanceRelations.TRANSACTION)
            sel.instructions.add_all(bool(relations & BalanceRelations.TRANSACTION_INSTRUCTIONS))