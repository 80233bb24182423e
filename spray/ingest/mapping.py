"""Conversion of raw transaction updates into transaction data."""

from __future__ import annotations

import json
import logging
import struct

from spray import metrics
from spray.data import Balance, Instruction, TokenBalance, Transaction, TransactionData, TransactionVersion
from spray.ingest.updates import MessageAddressTableLookup, TransactionUpdate
from spray.json_builder import JsonBuilder, b58encode, render

log = logging.getLogger(__name__)

UNKNOWN_ERROR_JSON = '{"_Unknown": true}'


class MappingError(ValueError):
    """Raised when an update is inconsistent and cannot be mapped."""


_TX_ERRORS = [
    "AccountInUse", "AccountLoadedTwice", "AccountNotFound", "ProgramAccountNotFound",
    "InsufficientFundsForFee", "InvalidAccountForFee", "AlreadyProcessed",
    "BlockhashNotFound", "InstructionError", "CallChainTooDeep", "MissingSignatureForFee",
    "InvalidAccountIndex", "SignatureFailure", "InvalidProgramForExecution",
    "SanitizeFailure", "ClusterMaintenance", "AccountBorrowOutstanding",
    "WouldExceedMaxBlockCostLimit", "UnsupportedVersion", "InvalidWritableAccount",
    "WouldExceedMaxAccountCostLimit", "WouldExceedAccountDataBlockLimit",
    "TooManyAccountLocks", "AddressLookupTableNotFound", "InvalidAddressLookupTableOwner",
    "InvalidAddressLookupTableData", "InvalidAddressLookupTableIndex",
    "InvalidRentPayingAccount", "WouldExceedMaxVoteCostLimit",
    "WouldExceedAccountDataTotalLimit", "DuplicateInstruction", "InsufficientFundsForRent",
    "MaxLoadedAccountsDataSizeExceeded", "InvalidLoadedAccountsDataSizeLimit",
    "ResanitizationNeeded", "ProgramExecutionTemporarilyRestricted",
    "UnbalancedTransaction", "ProgramCacheHitMaxLimit", "CommitCancelled",
]

_INSTRUCTION_ERRORS = [
    ("GenericError", "generic instruction error"),
    ("InvalidArgument", "invalid program argument"),
    ("InvalidInstructionData", "invalid instruction data"),
    ("InvalidAccountData", "invalid account data for instruction"),
    ("AccountDataTooSmall", "account data too small for instruction"),
    ("InsufficientFunds", "insufficient funds for instruction"),
    ("IncorrectProgramId", "incorrect program id for instruction"),
    ("MissingRequiredSignature", "missing required signature for instruction"),
    ("AccountAlreadyInitialized", "instruction requires an uninitialized account"),
    ("UninitializedAccount", "instruction requires an initialized account"),
    ("UnbalancedInstruction", "sum of account balances before and after instruction do not match"),
    ("ModifiedProgramId", "instruction illegally modified the program id of an account"),
    ("ExternalAccountLamportSpend", "instruction spent from the balance of an account it does not own"),
    ("ReadonlyLamportChange", "instruction changed the balance of a read-only account"),
    ("ReadonlyDataModified", "instruction modified data of a read-only account"),
    ("DuplicateAccountIndex", "instruction contains duplicate accounts"),
    ("ExecutableModified", "instruction changed executable bit of an account"),
    ("RentEpochModified", "instruction modified rent epoch of an account"),
    ("NotEnoughAccountKeys", "insufficient account keys for instruction"),
    ("AccountDataSizeChanged", "program other than the account's owner changed the size of the account data"),
    ("AccountNotExecutable", "instruction expected an executable account"),
    ("AccountBorrowFailed", "instruction tries to borrow reference for an account which is already borrowed"),
    ("AccountBorrowOutstanding", "instruction left account with an outstanding borrowed reference"),
    ("DuplicateAccountOutOfSync", "instruction modifications of multiply-passed account differ"),
    ("Custom", None),
    ("InvalidError", "program returned invalid error code"),
    ("ExecutableDataModified", "instruction changed executable accounts data"),
    ("ExecutableLamportChange", "instruction changed the balance of an executable account"),
    ("ExecutableAccountNotRentExempt", "executable accounts must be rent exempt"),
    ("UnsupportedProgramId", "Unsupported program id"),
    ("CallDepth", "Cross-program invocation call depth too deep"),
    ("MissingAccount", "An account required by the instruction is missing"),
    ("ReentrancyNotAllowed", "Cross-program invocation reentrancy not allowed for this instruction"),
    ("MaxSeedLengthExceeded", "Length of the seed is too long for address generation"),
    ("InvalidSeeds", "Provided seeds do not result in a valid address"),
    ("InvalidRealloc", "Failed to reallocate account data"),
    ("ComputationalBudgetExceeded", "Computational budget exceeded"),
    ("PrivilegeEscalation", "Cross-program invocation with unauthorized signer or writable account"),
    ("ProgramEnvironmentSetupFailure", "Failed to create program execution environment"),
    ("ProgramFailedToComplete", "Program failed to complete"),
    ("ProgramFailedToCompile", "Program failed to compile"),
    ("Immutable", "Account is immutable"),
    ("IncorrectAuthority", "Incorrect authority provided"),
    ("BorshIoError", None),
    ("AccountNotRentExempt", "An account does not have enough lamports to be rent-exempt"),
    ("InvalidAccountOwner", "Invalid account owner"),
    ("ArithmeticOverflow", "Program arithmetic overflowed"),
    ("UnsupportedSysvar", "Unsupported sysvar"),
    ("IllegalOwner", "Provided owner is not allowed"),
    ("MaxAccountsDataAllocationsExceeded", "Accounts data allocations exceeded the maximum allowed per transaction"),
    ("MaxAccountsResizesExceeded", "Max accounts exceeded"),
    ("MaxInstructionTraceLengthExceeded", "Max instruction trace length exceeded"),
    ("BuiltinProgramsMustConsumeComputeUnits", "Builtin programs must consume compute units"),
]


class _Reader:
    def __init__(self, raw: bytes) -> None:
        self._raw = bytes(raw)
        self._pos = 0

    def take(self, fmt: str) -> int:
        size = struct.calcsize(fmt)
        if self._pos + size > len(self._raw):
            raise ValueError("unexpected end of transaction error data")
        (value,) = struct.unpack_from(fmt, self._raw, self._pos)
        self._pos += size
        return value

    def string(self) -> str:
        length = self.take("<Q")
        if self._pos + length > len(self._raw):
            raise ValueError("unexpected end of transaction error data")
        data = self._raw[self._pos:self._pos + length]
        self._pos += length
        return data.decode("utf-8")


def _decode_instruction_error(reader: _Reader) -> tuple[object, str]:
    tag = reader.take("<I")
    if tag >= len(_INSTRUCTION_ERRORS):
        raise ValueError(f"unknown instruction error variant {tag}")
    name, message = _INSTRUCTION_ERRORS[tag]
    if name == "Custom":
        code = reader.take("<I")
        return {name: code}, f"custom program error: {code:#x}"
    if name == "BorshIoError":
        text = reader.string()
        return {name: text}, f"Failed to serialize or deserialize account data: {text}"
    return name, message


def decode_transaction_error(raw: bytes) -> tuple[str, tuple[int, str] | None]:
    """Decode a bincode transaction error.

    Returns its JSON text and, for an instruction error, the failed
    instruction's index with the error message. Raises ValueError on bad data.
    """
    reader = _Reader(raw)
    tag = reader.take("<I")
    if tag >= len(_TX_ERRORS):
        raise ValueError(f"unknown transaction error variant {tag}")
    name = _TX_ERRORS[tag]
    instruction_err = None
    value: object
    if name == "InstructionError":
        index = reader.take("<B")
        ins_value, message = _decode_instruction_error(reader)
        value = {name: [index, ins_value]}
        instruction_err = (index, message)
    elif name == "DuplicateInstruction":
        value = {name: reader.take("<B")}
    elif name in ("InsufficientFundsForRent", "ProgramExecutionTemporarilyRestricted"):
        value = {name: {"account_index": reader.take("<B")}}
    else:
        value = name
    return json.dumps(value, separators=(",", ":")), instruction_err


def _as_u8(value: int, what: str) -> int:
    if not 0 <= value <= 255:
        raise MappingError(f"{what} = {value} does not fit into u8")
    return value


def render_address_table_lookups(lookups: list[MessageAddressTableLookup]) -> str:
    """Render lookups as a JSON array."""
    json_out = JsonBuilder()
    json_out.begin_array()
    for lookup in lookups:
        json_out.begin_object()
        with json_out.prop("accountKey"):
            json_out.base58(lookup.account_key)
        with json_out.prop("readonlyIndexes"):
            json_out.number_list(lookup.readonly_indexes)
        with json_out.prop("writableIndexes"):
            json_out.number_list(lookup.writable_indexes)
        json_out.end_object()
        json_out.comma()
    json_out.end_array()
    return json_out.getvalue()


def _loaded_addresses(writable: list[bytes], readonly: list[bytes]) -> str:
    def build(json_out: JsonBuilder) -> None:
        json_out.begin_object()
        with json_out.prop("writable"):
            json_out.base58_list(writable)
        with json_out.prop("readonly"):
            json_out.base58_list(readonly)
        json_out.end_object()

    return render(build)


def map_transaction(update: TransactionUpdate) -> TransactionData:
    """Map a transaction update; raises MappingError on inconsistent input."""
    meta = update.meta
    instruction_err: tuple[int, str] | None = None
    transaction_error: str | None = None

    if meta.err is not None:
        try:
            transaction_error, instruction_err = decode_transaction_error(meta.err)
        except ValueError as exc:
            signature = b58encode(update.signatures[0]) if update.signatures else "?"
            log.error("failed to deserialize transaction error of %s: %r", signature, exc)
            metrics.register_unparsed_transaction_error()
            transaction_error = UNKNOWN_ERROR_JSON

    header = update.header
    transaction = Transaction(
        version=TransactionVersion() if update.versioned else TransactionVersion(0),
        account_keys=len(update.account_keys),
        address_table_lookups=render_address_table_lookups(update.address_table_lookups),
        num_readonly_signed_accounts=_as_u8(
            header.num_readonly_signed_accounts, "header.num_readonly_signed_accounts"),
        num_readonly_unsigned_accounts=_as_u8(
            header.num_readonly_unsigned_accounts, "header.num_readonly_unsigned_accounts"),
        num_required_signatures=_as_u8(
            header.num_required_signatures, "header.num_required_signatures"),
        recent_blockhash=b58encode(update.recent_blockhash),
        signatures=render(lambda j: j.base58_list(update.signatures)),
        err=transaction_error,
        compute_units_consumed=meta.compute_units_consumed,
        fee=meta.fee,
        loaded_addresses=_loaded_addresses(
            meta.loaded_writable_addresses, meta.loaded_readonly_addresses),
    )

    accounts = tuple(
        b58encode(a)
        for a in (*update.account_keys, *meta.loaded_writable_addresses,
                  *meta.loaded_readonly_addresses)
    )
    committed = transaction.err is None

    inner: list[list] = [[] for _ in update.instructions]
    for item in meta.inner_instructions:
        if not 0 <= item.index < len(inner):
            raise MappingError(
                f"inner instructions refer to instruction {item.index}, "
                f"while there are only {len(inner)}")
        inner[item.index].extend(item.instructions)

    instructions: list[Instruction] = []

    def push(ins, address: list[int]) -> None:
        program_id = _as_u8(ins.program_id_index, "program_id_index")
        if program_id >= len(accounts):
            raise MappingError(
                f"program_id_index = {program_id} is out of range of {len(accounts)} accounts")
        instructions.append(Instruction(
            instruction_address=list(address),
            program_id=program_id,
            accounts=list(ins.accounts),
            data=b58encode(ins.data),
            binary_data=bytes(ins.data),
            is_committed=committed,
            account_list=accounts,
        ))

    for i, (ins, inner_list) in enumerate(zip(update.instructions, inner)):
        address = [i]
        push(ins, address)

        for inner_ins in inner_list:
            stack_height = 2 if inner_ins.stack_height is None else inner_ins.stack_height
            if stack_height <= 1:
                raise MappingError(f"invalid inner instruction stack height {stack_height}")
            del address[stack_height:]
            if len(address) == stack_height:
                address[-1] += 1
            elif len(address) + 1 == stack_height:
                address.append(0)
            else:
                raise MappingError(f"unexpected inner instruction stack height {stack_height}")
            push(inner_ins, address)

        if instruction_err is not None and instruction_err[0] == i:
            for recorded in reversed(instructions):
                if recorded.instruction_address[0] != i:
                    break
                if recorded.instruction_address == address:
                    recorded.error = instruction_err[1]
                    address.pop()

    if len(meta.pre_balances) != len(meta.post_balances):
        raise MappingError("pre and post balances differ in length")
    if len(accounts) < len(meta.pre_balances):
        raise MappingError("there are more balances than accounts")
    balances = sorted(
        (
            Balance(account=accounts[i], pre=pre, post=post)
            for i, (pre, post) in enumerate(zip(meta.pre_balances, meta.post_balances))
            if pre != post
        ),
        key=lambda b: b.account,
    )

    token_records = [TokenBalance() for _ in accounts]
    for prefix, records in (("pre", meta.pre_token_balances), ("post", meta.post_token_balances)):
        for b in records:
            if not 0 <= b.account_index < len(accounts):
                raise MappingError(
                    f"got account_index = {b.account_index} in {prefix}_token_balances "
                    f"while there are only {len(accounts)} accounts")
            rec = token_records[b.account_index]
            rec.account = accounts[b.account_index]
            amount = b.ui_token_amount
            setattr(rec, f"{prefix}_mint", b.mint)
            setattr(rec, f"{prefix}_decimals", None if amount is None else amount.decimals)
            setattr(rec, f"{prefix}_program_id", b.program_id)
            setattr(rec, f"{prefix}_owner", b.owner)
            setattr(rec, f"{prefix}_amount", None if amount is None else amount.amount)
    token_balances = sorted(
        (b for b in token_records if b.pre_mint is not None or b.post_mint is not None),
        key=lambda b: b.account,
    )

    return TransactionData(
        slot=update.slot,
        transaction_index=update.index,
        transaction=transaction,
        instructions=instructions,
        balances=balances,
        token_balances=token_balances,
        accounts=accounts,
    )