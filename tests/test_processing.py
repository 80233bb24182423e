import asyncio

import pytest

from spray.data import BlockData, TransactionData
from spray.ingest.processing import (
    Broadcast,
    Closed,
    Lagged,
    Mask,
    dedupe,
    processing_loop,
    to_data_message,
)
from spray.ingest.updates import BlockMeta, CompiledInstruction, SourceMessage, TransactionUpdate


def block(slot):
    return SourceMessage("a", BlockMeta(slot=slot, blockhash="h", parent_slot=slot - 1, parent_blockhash="p"))


def tx(slot, index):
    return SourceMessage("a", TransactionUpdate(
        slot=slot, index=index, account_keys=[b"\x01" * 32],
        instructions=[CompiledInstruction(program_id_index=0)],
    ))


async def _feed(messages):
    for message in messages:
        yield message


def test_mask():
    mask = Mask(4)
    assert mask.mark(1) is True
    assert mask.mark(1) is False
    mask.reset()
    assert mask.mark(1) is True


def test_dedupe_drops_repeats_and_old():
    msgs = [tx(5, 0), tx(5, 0), tx(5, 1), block(5), block(5), tx(5, 2), tx(6, 0)]
    out = list(dedupe(msgs))
    assert out == [msgs[0], msgs[2], msgs[3], msgs[6]]


def test_to_data_message_block():
    data = to_data_message(block(9))
    assert isinstance(data, BlockData)
    assert data.slot == 9 and data.timestamp == 0


def test_to_data_message_bad_tx():
    bad = SourceMessage("a", TransactionUpdate(slot=1, index=0,
                                               instructions=[CompiledInstruction(program_id_index=3)]))
    assert to_data_message(bad) is None


@pytest.mark.asyncio
async def test_broadcast_send_recv_close():
    bc = Broadcast(4)
    rx = bc.subscribe()
    assert bc.send("x") == 1
    assert await rx.recv() == "x"
    bc.close()
    with pytest.raises(Closed):
        await rx.recv()


@pytest.mark.asyncio
async def test_broadcast_lag():
    bc = Broadcast(2)
    rx = bc.subscribe()
    for i in range(5):
        bc.send(i)
    with pytest.raises(Lagged) as info:
        await rx.recv()
    assert info.value.skipped == 3
    assert await rx.recv() == 3


@pytest.mark.asyncio
async def test_loop_publishes_deduplicated_data():
    bc = Broadcast()
    rx = bc.subscribe()

    await processing_loop(bc, _feed([block(2), tx(3, 0), tx(3, 0)]))
    first = await asyncio.wait_for(rx.recv(), 1)
    second = await asyncio.wait_for(rx.recv(), 1)
    assert isinstance(first, BlockData)
    assert isinstance(second, TransactionData) and second.slot == 3
    bc.close()
    with pytest.raises(Closed):
        await rx.recv()