from spray.ingest.updates import (
    BlockMeta,
    InnerInstruction,
    MessageHeader,
    SourceMessage,
    TransactionStatusMeta,
    TransactionUpdate,
)


def test_meta_lists_are_independent():
    a = TransactionStatusMeta()
    b = TransactionStatusMeta()
    a.pre_balances.append(1)
    assert b.pre_balances == []
    assert a.err is None


def test_inner_instruction_default_stack_height():
    ins = InnerInstruction(program_id_index=3)
    assert ins.stack_height is None
    assert ins.program_id_index == 3


def test_transaction_update_defaults():
    upd = TransactionUpdate(slot=7, index=2)
    assert upd.header == MessageHeader()
    assert upd.versioned is False
    assert upd.meta.inner_instructions == []


def test_source_message_carries_update():
    block = BlockMeta(slot=1, blockhash="h", parent_slot=0, parent_blockhash="p")
    msg = SourceMessage(source="s", update=block)
    assert msg.update.block_time is None
    assert msg.source == "s"