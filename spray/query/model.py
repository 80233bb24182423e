"""Subscription query model: field selections, item requests and their JSON form."""

import binascii
import json
import types
from dataclasses import dataclass, field, fields, is_dataclass
from typing import Any, Union, get_args, get_origin

MAX_ITEM_REQUESTS = 100


class QueryError(ValueError):
    """Raised for a malformed or disallowed query."""


def parse_hex(s: str) -> bytes | None:
    """Decode a ``0x``-prefixed hex string, or return None if it is not one."""
    if not s.startswith("0x") or len(s) % 2 != 0:
        return None
    try:
        return binascii.unhexlify(s[2:])
    except (binascii.Error, ValueError):
        return None


@dataclass
class BlockFieldSelection:
    number: bool = False
    hash: bool = False
    parent_number: bool = False
    parent_hash: bool = False
    height: bool = False
    timestamp: bool = False


@dataclass
class TransactionFieldSelection:
    transaction_index: bool = False
    version: bool = False
    account_keys: bool = False
    address_table_lookups: bool = False
    num_readonly_signed_accounts: bool = False
    num_readonly_unsigned_accounts: bool = False
    num_required_signatures: bool = False
    recent_blockhash: bool = False
    signatures: bool = False
    err: bool = False
    fee: bool = False
    compute_units_consumed: bool = False
    loaded_addresses: bool = False
    fee_payer: bool = False
    has_dropped_log_messages: bool = False


@dataclass
class InstructionFieldSelection:
    transaction_index: bool = False
    instruction_address: bool = False
    program_id: bool = False
    accounts: bool = False
    data: bool = False
    d1: bool = False
    d2: bool = False
    d4: bool = False
    d8: bool = False
    error: bool = False
    compute_units_consumed: bool = False
    is_committed: bool = False
    has_dropped_log_messages: bool = False


@dataclass
class BalanceFieldSelection:
    transaction_index: bool = False
    account: bool = False
    pre: bool = False
    post: bool = False


@dataclass
class TokenBalanceFieldSelection:
    transaction_index: bool = False
    account: bool = False
    pre_mint: bool = False
    post_mint: bool = False
    pre_decimals: bool = False
    post_decimals: bool = False
    pre_program_id: bool = False
    post_program_id: bool = False
    pre_owner: bool = False
    post_owner: bool = False
    pre_amount: bool = False
    post_amount: bool = False


@dataclass
class FieldSelection:
    block: BlockFieldSelection = field(default_factory=BlockFieldSelection)
    transaction: TransactionFieldSelection = field(default_factory=TransactionFieldSelection)
    instruction: InstructionFieldSelection = field(default_factory=InstructionFieldSelection)
    balance: BalanceFieldSelection = field(default_factory=BalanceFieldSelection)
    token_balance: TokenBalanceFieldSelection = field(default_factory=TokenBalanceFieldSelection)


@dataclass
class TransactionRequest:
    fee_payer: list[str] | None = None
    mentions_account: list[str] | None = None
    instructions: bool = False
    logs: bool = False
    balances: bool = False
    token_balances: bool = False


@dataclass
class InstructionRequest:
    program_id: list[str] | None = None
    discriminator: list[str] | None = None
    d1: list[str] | None = None
    d2: list[str] | None = None
    d4: list[str] | None = None
    d8: list[str] | None = None
    mentions_account: list[str] | None = None
    a0: list[str] | None = None
    a1: list[str] | None = None
    a2: list[str] | None = None
    a3: list[str] | None = None
    a4: list[str] | None = None
    a5: list[str] | None = None
    a6: list[str] | None = None
    a7: list[str] | None = None
    a8: list[str] | None = None
    a9: list[str] | None = None
    a10: list[str] | None = None
    a11: list[str] | None = None
    a12: list[str] | None = None
    a13: list[str] | None = None
    a14: list[str] | None = None
    a15: list[str] | None = None
    is_committed: bool | None = None
    transaction: bool = False
    transaction_balances: bool = False
    transaction_token_balances: bool = False
    transaction_instructions: bool = False
    inner_instructions: bool = False
    parent_instructions: bool = False
    logs: bool = False


@dataclass
class TokenBalanceRequest:
    account: list[str] | None = None
    pre_mint: list[str] | None = None
    post_mint: list[str] | None = None
    pre_program_id: list[str] | None = None
    post_program_id: list[str] | None = None
    pre_owner: list[str] | None = None
    post_owner: list[str] | None = None
    transaction: bool = False
    transaction_instructions: bool = False


@dataclass
class BalanceRequest:
    account: list[str] | None = None
    transaction: bool = False
    transaction_instructions: bool = False


@dataclass
class SolanaQuery:
    fields: FieldSelection = field(default_factory=FieldSelection)
    include_all_blocks: bool = False
    transactions: list[TransactionRequest] = field(default_factory=list)
    instructions: list[InstructionRequest] = field(default_factory=list)
    balances: list[BalanceRequest] = field(default_factory=list)
    token_balances: list[TokenBalanceRequest] = field(default_factory=list)

    def validate(self) -> int:
        """Check the query's limits and return its number of item requests."""
        num_items = (
            len(self.transactions)
            + len(self.instructions)
            + len(self.balances)
            + len(self.token_balances)
        )
        if num_items > MAX_ITEM_REQUESTS:
            raise QueryError(
                f"query contains {num_items} item requests, "
                f"but only {MAX_ITEM_REQUESTS} is allowed"
            )
        return num_items


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(word[:1].upper() + word[1:] for word in rest)


def _parse_struct(cls: type, obj: Any, path: str) -> Any:
    if not isinstance(obj, dict):
        raise QueryError(f"{path}: expected an object")
    by_key = {_camel(f.name): f for f in fields(cls)}
    kwargs = {}
    for key, value in obj.items():
        f = by_key.get(key)
        if f is None:
            expected = ", ".join(f"`{k}`" for k in by_key)
            raise QueryError(f"{path}: unknown field `{key}`, expected one of {expected}")
        kwargs[f.name] = _convert(f.type, value, f"{path}.{key}")
    return cls(**kwargs)


def _convert(tp: Any, value: Any, path: str) -> Any:
    if tp is bool:
        if not isinstance(value, bool):
            raise QueryError(f"{path}: expected a boolean")
        return value
    if tp is str:
        if not isinstance(value, str):
            raise QueryError(f"{path}: expected a string")
        return value
    origin = get_origin(tp)
    if origin in (Union, types.UnionType):
        if value is None:
            return None
        (inner,) = [arg for arg in get_args(tp) if arg is not type(None)]
        return _convert(inner, value, path)
    if origin is list:
        if not isinstance(value, list):
            raise QueryError(f"{path}: expected an array")
        (item_type,) = get_args(tp)
        return [_convert(item_type, item, f"{path}[{i}]") for i, item in enumerate(value)]
    if is_dataclass(tp):
        return _parse_struct(tp, value, path)
    raise TypeError(f"unsupported query field type {tp!r}")


def parse_query(obj: Any) -> SolanaQuery:
    """Build a query from decoded JSON (or JSON text), rejecting unknown fields."""
    if isinstance(obj, (str, bytes)):
        try:
            obj = json.loads(obj)
        except json.JSONDecodeError as exc:
            raise QueryError(f"invalid JSON: {exc}") from exc
    return _parse_struct(SolanaQuery, obj, "query")


def _dump(obj: Any) -> dict[str, Any]:
    default = type(obj)()
    result = {}
    for f in fields(obj):
        value = getattr(obj, f.name)
        if value == getattr(default, f.name):
            continue
        result[_camel(f.name)] = _jsonify(value)
    return result


def _jsonify(value: Any) -> Any:
    if is_dataclass(value):
        return _dump(value)
    if isinstance(value, list):
        return [_jsonify(item) for item in value]
    return value


def dump_query(query: SolanaQuery) -> dict[str, Any]:
    """Convert a query to its JSON form, omitting default values."""
    return _dump(query)