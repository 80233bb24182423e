# spray

`spray` fans out a stream of Solana blocks and transactions to many clients.
Updates handed to it are de-duplicated, mapped into a compact form and pushed
to every subscriber whose query matches them, over JSON-RPC websocket
subscriptions. An HTTP endpoint exposes service metrics.

Install with `pip install .`; the test suite needs the `test` extra
(`pip install .[test]`, then `pytest`).

## Subscriptions

`spray.server.rpc.create_app` builds an aiohttp application. A websocket
opened on `/` accepts JSON-RPC 2.0 requests:

- `spraySubscribe` with a single query object as its only parameter. The reply's
  `result` is a numeric subscription id. Matching data then arrives as
  `sprayNotification` messages whose `params` hold `subscription` and `result`.
  When the broadcast feeding the server is closed, a last notification with a
  `null` result is sent.
- `sprayUnsubscribe` with the subscription id; the result is `true` if the
  subscription existed.

Malformed requests get JSON-RPC error objects (`-32700`, `-32600`, `-32601`,
`-32602`). A plain `POST /` is parsed the same way but can only answer with
an error, since subscriptions need the websocket.

A query selects which fields to return and which items to watch:

```json
{
  "fields": {
    "block": {"number": true, "hash": true, "timestamp": true},
    "transaction": {"signatures": true, "err": true, "fee": true},
    "instruction": {"programId": true, "accounts": true, "data": true}
  },
  "includeAllBlocks": false,
  "instructions": [
    {"programId": ["11111111111111111111111111111111"], "transaction": true}
  ]
}
```

Keys are camel case and unknown keys are rejected. Item requests come in four
kinds: `transactions`, `instructions`, `balances` and `tokenBalances`; a query
may hold at most 100 of them in total. Every list-valued condition in a request
is a set of allowed values, and all conditions of one request must hold. An
empty list means the request can never match and it is dropped. Requests can
also ask for related items: the parent transaction, all instructions or
balances of the transaction, or the inner and parent instructions of a matched
instruction.

Instruction data can be matched on its leading bytes with `discriminator`
(any length) or with `d1`, `d2`, `d4` and `d8` (exactly 1, 2, 4 or 8 bytes),
all given as `0x`-prefixed hex strings. `a0` … `a15` match the account at that
position of the instruction, `mentionsAccount` any of its accounts.

A block is sent when `includeAllBlocks` is set, when the subscriber received a
transaction in that block's slot, or when at least five slots have passed since
the last block sent to it.

## Metrics

`spray.server.app.RpcServer` also answers `/metrics` with text in the
OpenMetrics format: `spray_mapping_errors`, `spray_unparsed_transaction_errors`,
`spray_data_source_errors`, `spray_transactions_published`,
`spray_blocks_published` (the labelled ones carry a `source` label),
`spray_last_block`, `spray_last_block_timestamp_seconds` and
`spray_active_subscriptions`. The counters live in `spray.metrics`, which also
offers the `register_*` functions and the `subscription_scope()` context
manager that update them.

## Running a server

```python
import asyncio

from spray.ingest.processing import Broadcast, processing_loop
from spray.server.app import RpcServer


async def serve(messages):
    """``messages`` is an async iterable of spray.ingest.updates.SourceMessage."""
    broadcast = Broadcast()
    server = RpcServer(broadcast, port=3000)
    port = await server.start()
    print("listening on", port)
    try:
        await processing_loop(broadcast, messages)
    finally:
        broadcast.close()
        await server.stop()
```

`processing_loop` drops repeated and outdated updates (several sources may
deliver the same data), maps transactions with
`spray.ingest.mapping.map_transaction` and sends the results to every
subscriber of the `Broadcast`. A subscriber that falls more than the
broadcast's capacity (20,000 messages by default) behind loses the oldest
messages.

## Using the library

Queries can be parsed and checked on their own:

```python
from spray.query.model import QueryError, parse_query

query = parse_query({"transactions": [{"feePayer": ["So11111111111111111111111111111111111111112"]}]})
try:
    query.validate()
except QueryError as exc:
    print(exc)
```

`spray.query.filter.combined.Filter(query).eval(tx)` tells which parts of a
`spray.data.TransactionData` a query selects, and `spray.query.render`
renders them straight into JSON text:

```python
from spray.data import BlockData
from spray.query.model import BlockFieldSelection
from spray.query.render import render_block_message

block = BlockData(
    slot=100,
    hash="5eykt4UsFv8P8NJdTREpY1vzqKqZKvdpKuc147dw2N9d",
    parent_slot=99,
    parent_hash="4sGjMW1sUnHzSxGspuhpqLDx6wiyjNtZAMdL4VZHirAn",
    height=90,
    timestamp=1700000000,
)
print(render_block_message(BlockFieldSelection(number=True, hash=True), block))
# {"type":"block","slot":100,"header":{"number":100,"hash":"5eykt4UsFv8P8NJdTREpY1vzqKqZKvdpKuc147dw2N9d"}}
```

## What it does not do

- It does not connect to any upstream data source. The caller supplies the
  updates as `SourceMessage` records (`spray.ingest.updates`), for example
  decoded from a feed of its own choosing.
- There is no command-line program and no configuration file; a server is
  started from Python code as shown above.
- Log messages are not carried: the `logs` request options are accepted but
  deliver nothing, `hasDroppedLogMessages` is always `true`, and instruction
  `computeUnitsConsumed` is always `null`.