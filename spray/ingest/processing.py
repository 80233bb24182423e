"""Deduplication of source updates and their fan-out to subscribers."""

from __future__ import annotations

import asyncio
import logging
import weakref
from collections import deque
from collections.abc import AsyncIterable, Iterable, Iterator
from typing import Union

from spray import metrics
from spray.data import BlockData, TransactionData
from spray.ingest.mapping import map_transaction
from spray.ingest.updates import BlockMeta, SourceMessage

log = logging.getLogger(__name__)

DataMessage = Union[BlockData, TransactionData]


class Mask:
    """Growable set of marked indexes."""

    def __init__(self, capacity: int) -> None:
        self._inner = [False] * capacity

    def mark(self, i: int) -> bool:
        """Mark ``i``; True if it was not marked before."""
        if i < len(self._inner):
            was_set = self._inner[i]
            self._inner[i] = True
            return not was_set
        new_len = max(i, len(self._inner) * 2)
        self._inner.extend([False] * (new_len - len(self._inner)))
        return True

    def reset(self) -> None:
        self._inner = [False] * len(self._inner)


class _Deduper:
    def __init__(self) -> None:
        self._slot = 0
        self._received = Mask(5000)

    def accept(self, msg: SourceMessage) -> bool:
        update = msg.update
        if isinstance(update, BlockMeta):
            if update.slot >= self._slot:
                self._slot = update.slot + 1
                self._received.reset()
                return True
            return False
        if update.slot > self._slot:
            self._slot = update.slot
            self._received.reset()
        return update.slot == self._slot and self._received.mark(update.index)


def dedupe(messages: Iterable[SourceMessage]) -> Iterator[SourceMessage]:
    """Drop repeated and outdated updates coming from several sources."""
    deduper = _Deduper()
    return (msg for msg in messages if deduper.accept(msg))


async def _dedupe_async(messages: AsyncIterable[SourceMessage]):
    deduper = _Deduper()
    async for msg in messages:
        if deduper.accept(msg):
            yield msg


class Lagged(Exception):
    """The receiver fell behind and ``skipped`` messages were lost."""

    def __init__(self, skipped: int) -> None:
        super().__init__(f"lagged behind by {skipped} messages")
        self.skipped = skipped


class Closed(Exception):
    """The broadcast was closed and all messages were received."""


class BroadcastReceiver:
    """One subscriber's view of a broadcast."""

    def __init__(self, capacity: int) -> None:
        self._queue: deque = deque()
        self._capacity = capacity
        self._skipped = 0
        self._closed = False
        self._event = asyncio.Event()

    def _push(self, message: object) -> None:
        if len(self._queue) >= self._capacity:
            self._queue.popleft()
            self._skipped += 1
        self._queue.append(message)
        self._event.set()

    def _close(self) -> None:
        self._closed = True
        self._event.set()

    async def recv(self) -> object:
        """Next message; raises Lagged after losses and Closed at the end."""
        while True:
            if self._skipped:
                skipped, self._skipped = self._skipped, 0
                raise Lagged(skipped)
            if self._queue:
                return self._queue.popleft()
            if self._closed:
                raise Closed()
            self._event.clear()
            await self._event.wait()


class Broadcast:
    """Bounded multi-subscriber channel; slow subscribers lose old messages."""

    def __init__(self, capacity: int = 20_000) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._capacity = capacity
        self._receivers: weakref.WeakSet[BroadcastReceiver] = weakref.WeakSet()
        self._closed = False

    def subscribe(self) -> BroadcastReceiver:
        receiver = BroadcastReceiver(self._capacity)
        if self._closed:
            receiver._close()
        else:
            self._receivers.add(receiver)
        return receiver

    def send(self, message: object) -> int:
        """Deliver to current subscribers and return how many got it."""
        receivers = list(self._receivers)
        for receiver in receivers:
            receiver._push(message)
        return len(receivers)

    def close(self) -> None:
        self._closed = True
        for receiver in list(self._receivers):
            receiver._close()


def to_data_message(message: SourceMessage) -> DataMessage | None:
    """Turn a source update into published data; None if mapping failed."""
    update = message.update
    if isinstance(update, BlockMeta):
        block = BlockData(
            slot=update.slot,
            hash=update.blockhash,
            parent_slot=update.parent_slot,
            parent_hash=update.parent_blockhash,
            height=update.block_height,
            timestamp=update.block_time or 0,
        )
        log.debug("published block %d from %s", block.slot, message.source)
        metrics.register_block_publication(message.source, block.slot, block.timestamp)
        return block
    try:
        tx = map_transaction(update)
    except Exception as exc:
        log.error(
            "failed to map transaction %d/%d from %s: %r",
            update.slot, update.index, message.source, exc,
        )
        metrics.register_mapping_error(message.source)
        return None
    log.debug("published transaction %d/%d from %s", tx.slot, tx.transaction_index, message.source)
    metrics.register_tx_publication(message.source)
    return tx


async def processing_loop(broadcast: Broadcast, messages: AsyncIterable[SourceMessage]) -> None:
    """Deduplicate, map and broadcast messages until the input ends."""
    async for msg in _dedupe_async(messages):
        data = to_data_message(msg)
        if data is not None:
            broadcast.send(data)