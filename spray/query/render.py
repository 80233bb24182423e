"""Rendering of selected block and transaction data as notification JSON."""

from __future__ import annotations

from collections.abc import Callable
from typing import TypeVar

from spray.data import (
    Balance,
    BlockData,
    Instruction,
    TokenBalance,
    TransactionData,
)
from spray.json_builder import JsonBuilder
from spray.query.filter.selected_items import SelectedItems
from spray.query.model import (
    BalanceFieldSelection,
    BlockFieldSelection,
    FieldSelection,
    InstructionFieldSelection,
    TokenBalanceFieldSelection,
    TransactionFieldSelection,
)

T = TypeVar("T")

_DISCRIMINATORS = (("d1", 1), ("d2", 2), ("d4", 4), ("d8", 8))

_TOKEN_ACCOUNT_FIELDS = (
    ("preMint", "pre_mint"),
    ("postMint", "post_mint"),
    ("preProgramId", "pre_program_id"),
    ("postProgramId", "post_program_id"),
    ("preOwner", "pre_owner"),
    ("postOwner", "post_owner"),
)


def _optional(out: JsonBuilder, value: T | None, write: Callable[[T], object]) -> None:
    if value is None:
        out.null()
    else:
        write(value)


def _render_transaction(out: JsonBuilder, fields: TransactionFieldSelection, data: TransactionData) -> None:
    accounts = data.accounts
    tx = data.transaction
    out.begin_object()
    if fields.transaction_index:
        with out.prop("transactionIndex"):
            out.number(data.transaction_index)
    if fields.version:
        with out.prop("version"):
            out.value(tx.version)
    if fields.account_keys:
        with out.prop("accountKeys"):
            out.array(range(tx.account_keys), lambda o, i: o.safe_str(accounts[i]))
    if fields.address_table_lookups:
        with out.prop("addressTableLookups"):
            out.raw(tx.address_table_lookups)
    if fields.num_required_signatures:
        with out.prop("numRequiredSignatures"):
            out.number(tx.num_required_signatures)
    if fields.num_readonly_signed_accounts:
        with out.prop("numReadonlySignedAccounts"):
            out.number(tx.num_readonly_signed_accounts)
    if fields.num_readonly_unsigned_accounts:
        with out.prop("numReadonlyUnsignedAccounts"):
            out.number(tx.num_readonly_unsigned_accounts)
    if fields.recent_blockhash:
        with out.prop("recentBlockhash"):
            out.safe_str(tx.recent_blockhash)
    if fields.signatures:
        with out.prop("signatures"):
            out.raw(tx.signatures)
    if fields.err:
        with out.prop("err"):
            _optional(out, tx.err, out.raw)
    if fields.fee:
        with out.prop("fee"):
            out.number_str(tx.fee)
    if fields.compute_units_consumed:
        with out.prop("computeUnitsConsumed"):
            _optional(out, tx.compute_units_consumed, out.number_str)
    if fields.loaded_addresses:
        with out.prop("loadedAddresses"):
            out.raw(tx.loaded_addresses)
    if fields.fee_payer:
        with out.prop("feePayer"):
            _optional(out, accounts[0] if accounts else None, out.safe_str)
    if fields.has_dropped_log_messages:
        with out.prop("hasDroppedLogMessages"):
            out.raw("true")
    out.end_object()


def _render_instruction(
    out: JsonBuilder,
    fields: InstructionFieldSelection,
    data: TransactionData,
    ins: Instruction,
) -> None:
    accounts = data.accounts
    out.begin_object()
    if fields.transaction_index:
        with out.prop("transactionIndex"):
            out.number(data.transaction_index)
    if fields.instruction_address:
        with out.prop("instructionAddress"):
            out.value(list(ins.instruction_address))
    if fields.program_id:
        with out.prop("programId"):
            out.safe_str(accounts[ins.program_id])
    if fields.accounts:
        with out.prop("accounts"):
            out.array(ins.accounts, lambda o, i: o.safe_str(accounts[i]))
    if fields.data:
        with out.prop("data"):
            out.safe_str(ins.data)
    for name, length in _DISCRIMINATORS:
        if getattr(fields, name):
            with out.prop(name):
                prefix = ins.binary_data[:length] if len(ins.binary_data) >= length else None
                _optional(out, prefix, out.binary)
    if fields.error:
        with out.prop("error"):
            _optional(out, ins.error, out.string)
    if fields.compute_units_consumed:
        with out.prop("computeUnitsConsumed"):
            out.null()
    if fields.is_committed:
        with out.prop("isCommitted"):
            out.boolean(ins.is_committed)
    if fields.has_dropped_log_messages:
        with out.prop("hasDroppedLogMessages"):
            out.raw("true")
    out.end_object()


def _render_balance(
    out: JsonBuilder,
    fields: BalanceFieldSelection,
    data: TransactionData,
    balance: Balance,
) -> None:
    out.begin_object()
    if fields.transaction_index:
        with out.prop("transactionIndex"):
            out.number(data.transaction_index)
    if fields.account:
        with out.prop("account"):
            out.safe_str(balance.account)
    if fields.pre:
        with out.prop("pre"):
            out.number_str(balance.pre)
    if fields.post:
        with out.prop("post"):
            out.number_str(balance.post)
    out.end_object()


def _render_token_balance(
    out: JsonBuilder,
    fields: TokenBalanceFieldSelection,
    data: TransactionData,
    balance: TokenBalance,
) -> None:
    out.begin_object()
    if fields.transaction_index:
        with out.prop("transactionIndex"):
            out.number(data.transaction_index)
    if fields.account:
        with out.prop("account"):
            out.safe_str(balance.account)
    for key, name in _TOKEN_ACCOUNT_FIELDS:
        if getattr(fields, name):
            with out.prop(key):
                _optional(out, getattr(balance, name), out.safe_str)
    if fields.pre_decimals:
        with out.prop("preDecimals"):
            _optional(out, balance.pre_decimals, out.number)
    if fields.post_decimals:
        with out.prop("postDecimals"):
            _optional(out, balance.post_decimals, out.number)
    if fields.pre_amount:
        with out.prop("preAmount"):
            _optional(out, balance.pre_amount, out.safe_str)
    if fields.post_amount:
        with out.prop("postAmount"):
            _optional(out, balance.post_amount, out.safe_str)
    out.end_object()


def render_transaction_message(fields: FieldSelection, tx: TransactionData, sel: SelectedItems) -> str:
    """Render the parts of ``tx`` chosen by ``sel`` with the requested fields."""
    out = JsonBuilder()
    out.begin_object()
    with out.prop("type"):
        out.safe_str("transaction")
    with out.prop("slot"):
        out.number(tx.slot)
    with out.prop("transactionIndex"):
        out.number(tx.transaction_index)

    if sel.transaction:
        with out.prop("transaction"):
            _render_transaction(out, fields.transaction, tx)

    if not sel.instructions.is_empty():
        with out.prop("instructions"):
            out.array(
                sel.instructions.selected(),
                lambda o, i: _render_instruction(o, fields.instruction, tx, tx.instructions[i]),
            )

    if not sel.balances.is_empty():
        with out.prop("balances"):
            out.array(
                sel.balances.selected(),
                lambda o, i: _render_balance(o, fields.balance, tx, tx.balances[i]),
            )

    if not sel.token_balances.is_empty():
        with out.prop("tokenBalances"):
            out.array(
                sel.token_balances.selected(),
                lambda o, i: _render_token_balance(o, fields.token_balance, tx, tx.token_balances[i]),
            )

    out.end_object()
    return out.getvalue()


def render_block_message(fields: BlockFieldSelection, block: BlockData) -> str:
    """Render a block notification with the requested header fields."""
    out = JsonBuilder()
    out.begin_object()
    with out.prop("type"):
        out.safe_str("block")
    with out.prop("slot"):
        out.number(block.slot)

    if (
        fields.number
        or fields.hash
        or fields.parent_number
        or fields.parent_hash
        or fields.height
        or fields.timestamp
    ):
        with out.prop("header"):
            out.begin_object()
            if fields.number:
                with out.prop("number"):
                    out.number(block.slot)
            if fields.hash:
                with out.prop("hash"):
                    out.safe_str(block.hash)
            if fields.parent_number:
                with out.prop("parentNumber"):
                    out.number(block.parent_slot)
            if fields.parent_hash:
                with out.prop("parentHash"):
                    out.safe_str(block.parent_hash)
            if fields.height:
                with out.prop("height"):
                    _optional(out, block.height, out.number)
            if fields.timestamp:
                with out.prop("timestamp"):
                    out.number(block.timestamp)
            out.end_object()

    out.end_object()
    return out.getvalue()