"""Records produced by ingestion and consumed by query evaluation and rendering."""

from __future__ import annotations

from dataclasses import dataclass, field

AccountList = tuple[str, ...]


@dataclass
class BlockData:
    """Header of a published block."""

    slot: int
    hash: str
    parent_slot: int
    parent_hash: str
    height: int | None
    timestamp: int


@dataclass(frozen=True)
class TransactionVersion:
    """Transaction format version: legacy when ``number`` is None."""

    number: int | None = None

    def __post_init__(self) -> None:
        if self.number is not None and not 0 <= self.number <= 255:
            raise ValueError(f"transaction version {self.number} does not fit into a byte")

    @property
    def is_legacy(self) -> bool:
        return self.number is None

    def to_json(self) -> str:
        """Render the version the way clients receive it."""
        return '"legacy"' if self.number is None else str(self.number)


@dataclass
class Transaction:
    """Transaction-level fields, with list-like parts kept as ready JSON."""

    version: TransactionVersion
    account_keys: int
    address_table_lookups: str
    num_readonly_signed_accounts: int
    num_readonly_unsigned_accounts: int
    num_required_signatures: int
    recent_blockhash: str
    signatures: str
    err: str | None
    compute_units_consumed: int | None
    fee: int
    loaded_addresses: str


@dataclass
class Instruction:
    """A top-level or inner instruction of a transaction."""

    instruction_address: list[int]
    program_id: int
    accounts: list[int]
    data: str
    binary_data: bytes
    is_committed: bool
    account_list: AccountList
    error: str | None = None


@dataclass
class TokenBalance:
    """Token balance of an account before and after a transaction."""

    account: str = ""
    pre_mint: str | None = None
    post_mint: str | None = None
    pre_decimals: int | None = None
    post_decimals: int | None = None
    pre_program_id: str | None = None
    post_program_id: str | None = None
    pre_owner: str | None = None
    post_owner: str | None = None
    pre_amount: str | None = None
    post_amount: str | None = None


@dataclass
class Balance:
    """Native balance change of an account."""

    account: str
    pre: int
    post: int


@dataclass
class TransactionData:
    """A mapped transaction together with its items."""

    slot: int
    transaction_index: int
    transaction: Transaction
    instructions: list[Instruction] = field(default_factory=list)
    balances: list[Balance] = field(default_factory=list)
    token_balances: list[TokenBalance] = field(default_factory=list)
    accounts: AccountList = ()