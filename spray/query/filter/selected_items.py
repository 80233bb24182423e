"""Which items of a transaction a query selected."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass

from spray.data import TransactionData


class ItemSelection:
    """Selection over ``length`` items: either explicit indexes or all of them."""

    def __init__(self, length: int) -> None:
        self.length = length
        self._mask: list[bool] = []
        self._include_all = False

    def add_all(self, yes: bool) -> None:
        self._include_all |= yes

    def add(self, i: int) -> None:
        if not self._mask:
            if self._include_all:
                return
            self._mask = [False] * self.length
        self._mask[i] = True

    def includes_all(self) -> bool:
        return self._include_all

    def is_empty(self) -> bool:
        return not self._mask and (self.length == 0 or not self._include_all)

    def selected(self) -> Iterator[int]:
        """Yield selected indexes in ascending order."""
        if self._include_all:
            yield from range(self.length)
        else:
            yield from (i for i, included in enumerate(self._mask) if included)


@dataclass
class SelectedItems:
    transaction: bool
    instructions: ItemSelection
    balances: ItemSelection
    token_balances: ItemSelection

    def is_empty(self) -> bool:
        return (
            not self.transaction
            and self.instructions.is_empty()
            and self.token_balances.is_empty()
            and self.balances.is_empty()
        )


def new_selection(tx: TransactionData) -> SelectedItems:
    """An empty selection sized for the items of ``tx``."""
    return SelectedItems(
        transaction=False,
        instructions=ItemSelection(len(tx.instructions)),
        balances=ItemSelection(len(tx.balances)),
        token_balances=ItemSelection(len(tx.token_balances)),
    )