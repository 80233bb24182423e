"""Selection of instructions by program, data discriminators and accounts."""

from __future__ import annotations

import enum
from collections.abc import Callable, Iterable

from spray.data import Instruction, TransactionData
from spray.query.filter.relations import ItemFilter, any_match
from spray.query.filter.selected_items import SelectedItems
from spray.query.model import InstructionRequest, parse_hex

_ACCOUNT_POSITIONS = 16


class InstructionRelations(enum.Flag):
    """Items requested along with a matching instruction."""

    NONE = 0
    TRANSACTION = 1
    TRANSACTION_BALANCES = 2
    TRANSACTION_TOKEN_BALANCES = 4
    TRANSACTION_INSTRUCTIONS = 8
    INNER_INSTRUCTIONS = 16
    PARENT_INSTRUCTIONS = 32
    LOGS = 64


def _relations(req: InstructionRequest) -> InstructionRelations:
    relations = InstructionRelations.NONE
    for flag, on in (
        (InstructionRelations.TRANSACTION, req.transaction),
        (InstructionRelations.TRANSACTION_BALANCES, req.transaction_balances),
        (InstructionRelations.TRANSACTION_TOKEN_BALANCES, req.transaction_token_balances),
        (InstructionRelations.TRANSACTION_INSTRUCTIONS, req.transaction_instructions),
        (InstructionRelations.INNER_INSTRUCTIONS, req.inner_instructions),
        (InstructionRelations.PARENT_INSTRUCTIONS, req.parent_instructions),
        (InstructionRelations.LOGS, req.logs),
    ):
        if on:
            relations |= flag
    return relations


def _prefix_in(length: int, prefixes: frozenset[bytes]) -> Callable[[Instruction], bool]:
    def predicate(ins: Instruction) -> bool:
        return len(ins.binary_data) >= length and bytes(ins.binary_data[:length]) in prefixes

    return predicate


def _account_at(position: int, accounts: frozenset[str]) -> Callable[[Instruction], bool]:
    def predicate(ins: Instruction) -> bool:
        return len(ins.accounts) > position and ins.account_list[ins.accounts[position]] in accounts

    return predicate


def compile_instruction_request(
    req: InstructionRequest,
) -> ItemFilter[Instruction, InstructionRelations] | None:
    """Prepare a request; None when it can never match anything."""
    item_filter: ItemFilter[Instruction, InstructionRelations] = ItemFilter(
        relations=_relations(req)
    )

    if req.program_id is not None:
        if not req.program_id:
            return None
        programs = frozenset(req.program_id)
        item_filter.add(lambda ins: ins.account_list[ins.program_id] in programs)

    if req.discriminator is not None:
        discriminators = [d for d in map(parse_hex, req.discriminator) if d is not None]
        if not discriminators:
            return None
        if all(discriminators):
            item_filter.add(
                lambda ins: any(bytes(ins.binary_data[: len(d)]) == d for d in discriminators)
            )

    for name, length in (("d1", 1), ("d2", 2), ("d4", 4), ("d8", 8)):
        values = getattr(req, name)
        if values is None:
            continue
        prefixes = frozenset(
            d for d in map(parse_hex, values) if d is not None and len(d) == length
        )
        if not prefixes:
            return None
        item_filter.add(_prefix_in(length, prefixes))

    if req.mentions_account is not None:
        if not req.mentions_account:
            return None
        mentioned = frozenset(req.mentions_account)
        item_filter.add(lambda ins: any(ins.account_list[i] in mentioned for i in ins.accounts))

    for position in range(_ACCOUNT_POSITIONS):
        values = getattr(req, f"a{position}")
        if values is None:
            continue
        if not values:
            return None
        item_filter.add(_account_at(position, frozenset(values)))

    if req.is_committed is not None:
        committed = req.is_committed
        item_filter.add(lambda ins: ins.is_committed == committed)

    return item_filter


class InstructionFilter:
    """Union of prepared instruction requests."""

    def __init__(self, requests: Iterable[InstructionRequest]) -> None:
        compiled = (compile_instruction_request(req) for req in requests)
        self._requests = [f for f in compiled if f is not None]

    def is_non_trivial(self) -> bool:
        return bool(self._requests)

    def eval(self, sel: SelectedItems, tx: TransactionData) -> None:
        for i, ins in enumerate(tx.instructions):
            relations = any_match(self._requests, ins)
            if relations is None:
                continue
            sel.transaction |= bool(relations & InstructionRelations.TRANSACTION)
            sel.instructions.add_all(bool(relations & InstructionRelations.TRANSACTION_INSTRUCTIONS))
            sel.balances.add_all(bool(relations & InstructionRelations.TRANSACTION_BALANCES))
            sel.token_balances.add_all(
                bool(relations & InstructionRelations.TRANSACTION_TOKEN_BALANCES)
            )

            sel.instructions.add(i)

            if not sel.instructions.includes_all():
                if relations & InstructionRelations.INNER_INSTRUCTIONS:
                    self._select_inner(sel, tx, i)
                if relations & InstructionRelations.PARENT_INSTRUCTIONS:
                    self._select_parents(sel, tx, i)

    @staticmethod
    def _select_inner(sel: SelectedItems, tx: TransactionData, index: int) -> None:
        this = tx.instructions[index].instruction_address
        for j, other_ins in enumerate(tx.instructions[index + 1 :], start=index + 1):
            other = other_ins.instruction_address
            if len(this) < len(other) and other[: len(this)] == this:
                sel.instructions.add(j)
            else:
                return

    @staticmethod
    def _select_parents(sel: SelectedItems, tx: TransactionData, index: int) -> None:
        depth = len(tx.instructions[index].instruction_address) - 1
        if depth == 0:
            return
        for j in reversed(range(index)):
            if len(tx.instructions[j].instruction_address) == depth:
                sel.instructions.add(j)
                depth -= 1
                if depth == 0:
                    return