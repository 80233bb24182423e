"""Updates received from a data source, as plain records."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union


@dataclass
class MessageHeader:
    num_required_signatures: int = 0
    num_readonly_signed_accounts: int = 0
    num_readonly_unsigned_accounts: int = 0


@dataclass
class CompiledInstruction:
    program_id_index: int
    accounts: list[int] = field(default_factory=list)
    data: bytes = b""


@dataclass
class InnerInstruction:
    program_id_index: int
    accounts: list[int] = field(default_factory=list)
    data: bytes = b""
    stack_height: int | None = None


@dataclass
class InnerInstructions:
    """Inner instructions invoked by the top-level instruction at ``index``."""

    index: int
    instructions: list[InnerInstruction] = field(default_factory=list)


@dataclass
class MessageAddressTableLookup:
    account_key: bytes
    writable_indexes: list[int] = field(default_factory=list)
    readonly_indexes: list[int] = field(default_factory=list)


@dataclass
class UiTokenAmount:
    decimals: int
    amount: str


@dataclass
class TokenBalanceRecord:
    account_index: int
    mint: str
    owner: str
    program_id: str
    ui_token_amount: UiTokenAmount | None = None


@dataclass
class TransactionStatusMeta:
    err: bytes | None = None
    fee: int = 0
    pre_balances: list[int] = field(default_factory=list)
    post_balances: list[int] = field(default_factory=list)
    inner_instructions: list[InnerInstructions] = field(default_factory=list)
    pre_token_balances: list[TokenBalanceRecord] = field(default_factory=list)
    post_token_balances: list[TokenBalanceRecord] = field(default_factory=list)
    loaded_writable_addresses: list[bytes] = field(default_factory=list)
    loaded_readonly_addresses: list[bytes] = field(default_factory=list)
    compute_units_consumed: int | None = None


@dataclass
class BlockMeta:
    slot: int
    blockhash: str
    parent_slot: int
    parent_blockhash: str
    block_height: int | None = None
    block_time: int | None = None


@dataclass
class TransactionUpdate:
    slot: int
    index: int
    signatures: list[bytes] = field(default_factory=list)
    header: MessageHeader = field(default_factory=MessageHeader)
    account_keys: list[bytes] = field(default_factory=list)
    recent_blockhash: bytes = b""
    instructions: list[CompiledInstruction] = field(default_factory=list)
    versioned: bool = False
    address_table_lookups: list[MessageAddressTableLookup] = field(default_factory=list)
    meta: TransactionStatusMeta = field(default_factory=TransactionStatusMeta)


SourceUpdate = Union[BlockMeta, TransactionUpdate]


@dataclass
class SourceMessage:
    """An update tagged with the name of the source it came from."""

    source: str
    update: SourceUpdate