"""JSON-RPC subscription endpoint that streams selected data to clients."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import secrets
import weakref
from dataclasses import dataclass
from typing import Any, Union

from aiohttp import WSCloseCode, WSMsgType, web

from spray import metrics
from spray.data import BlockData, TransactionData
from spray.ingest.processing import Broadcast, BroadcastReceiver, Closed, Lagged
from spray.metrics import Registry
from spray.query.filter.combined import Filter
from spray.query.model import QueryError, SolanaQuery, dump_query, parse_query
from spray.query.render import render_block_message, render_transaction_message

log = logging.getLogger(__name__)

SUBSCRIBE_METHOD = "spraySubscribe"
NOTIFICATION_METHOD = "sprayNotification"
UNSUBSCRIBE_METHOD = "sprayUnsubscribe"

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602

MAX_REQUEST_SIZE = 257 * 1024

BROADCAST_KEY = web.AppKey("broadcast", Broadcast)
REGISTRY_KEY = web.AppKey("registry", Registry)
_WEBSOCKETS_KEY = web.AppKey("websockets", weakref.WeakSet)

RequestId = Union[int, str, None]


class SubscriptionState:
    """Per-subscription filter and block emission bookkeeping."""

    def __init__(self, query: SolanaQuery) -> None:
        self.fields = query.fields
        self.include_all_blocks = query.include_all_blocks
        self.filter = Filter(query)
        self.last_emitted_block = 0
        self.last_non_empty_block = 0

    def emit(self, msg: BlockData | TransactionData) -> str | None:
        """Rendered notification for ``msg``, or None if it is not wanted."""
        if isinstance(msg, BlockData):
            if (
                self.include_all_blocks
                or self.last_emitted_block + 5 <= msg.slot
                or self.last_non_empty_block == msg.slot
            ):
                self.last_emitted_block = msg.slot
                return render_block_message(self.fields.block, msg)
            return None
        selection = self.filter.eval(msg)
        if selection.is_empty():
            return None
        self.last_non_empty_block = msg.slot
        return render_transaction_message(self.fields, msg, selection)


class _RpcError(ValueError):
    """A request that is answered with a JSON-RPC error object."""

    def __init__(self, code: int, message: str, request_id: RequestId = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.request_id = request_id

    def to_json(self) -> str:
        return json.dumps(
            {
                "jsonrpc": "2.0",
                "id": self.request_id,
                "error": {"code": self.code, "message": self.message},
            },
            separators=(",", ":"),
        )


@dataclass
class _Call:
    id: RequestId
    method: str
    query: SolanaQuery | None = None
    subscription: int | str | None = None


def _is_id(value: Any) -> bool:
    return value is None or (isinstance(value, (int, str)) and not isinstance(value, bool))


def _subscription_query(request_id: RequestId, params: Any) -> SolanaQuery:
    if not isinstance(params, list) or not params:
        raise _RpcError(INVALID_PARAMS, "Invalid params", request_id)
    try:
        query = parse_query(params[0])
    except (QueryError, ValueError, TypeError) as exc:
        log.debug("invalid query - %s", exc)
        raise _RpcError(INVALID_PARAMS, f"Invalid params: {exc}", request_id) from exc
    try:
        query.validate()
    except (QueryError, ValueError) as exc:
        message = f"invalid query: {exc}"
        log.debug(message)
        raise _RpcError(INVALID_PARAMS, message, request_id) from exc
    log.debug("query %s", dump_query(query))
    return query


def handle_rpc_message(text: str | bytes) -> _Call:
    """Parse one JSON-RPC request; raises a ValueError carrying the error reply."""
    try:
        obj = json.loads(text)
    except (ValueError, TypeError) as exc:
        raise _RpcError(PARSE_ERROR, "Parse error") from exc
    if not isinstance(obj, dict):
        raise _RpcError(INVALID_REQUEST, "Invalid request")
    request_id = obj.get("id")
    if not _is_id(request_id):
        raise _RpcError(INVALID_REQUEST, "Invalid request")
    method = obj.get("method")
    if obj.get("jsonrpc") != "2.0" or not isinstance(method, str) or "id" not in obj:
        raise _RpcError(INVALID_REQUEST, "Invalid request", request_id)
    params = obj.get("params", [])

    if method == SUBSCRIBE_METHOD:
        return _Call(request_id, method, query=_subscription_query(request_id, params))

    if method == UNSUBSCRIBE_METHOD:
        if (
            not isinstance(params, list)
            or len(params) != 1
            or params[0] is None
            or not _is_id(params[0])
        ):
            raise _RpcError(INVALID_PARAMS, "Invalid params", request_id)
        return _Call(request_id, method, subscription=params[0])

    raise _RpcError(METHOD_NOT_FOUND, "Method not found", request_id)


def _response(request_id: RequestId, result: Any) -> str:
    return json.dumps(
        {"jsonrpc": "2.0", "id": request_id, "result": result}, separators=(",", ":")
    )


def _notification(subscription: int, rendered: str) -> str:
    return (
        f'{{"jsonrpc":"2.0","method":"{NOTIFICATION_METHOD}",'
        f'"params":{{"subscription":{json.dumps(subscription)},"result":{rendered}}}}}'
    )


async def _run_subscription(
    ws: web.WebSocketResponse,
    receiver: BroadcastReceiver,
    subscription: int,
    state: SubscriptionState,
) -> None:
    with metrics.subscription_scope():
        while not ws.closed:
            try:
                message = await receiver.recv()
            except Lagged as lag:
                log.debug("subscription %s is lagging behind by %d", subscription, lag.skipped)
                continue
            except Closed:
                log.debug("subscription %s is terminating", subscription)
                with contextlib.suppress(ConnectionError, RuntimeError):
                    await ws.send_str(_notification(subscription, "null"))
                return
            rendered = state.emit(message)
            if rendered is None:
                continue
            try:
                await ws.send_str(_notification(subscription, rendered))
            except (ConnectionError, RuntimeError):
                log.debug("subscription %s closed", subscription)
                return


async def _serve_ws_message(
    ws: web.WebSocketResponse,
    broadcast: Broadcast,
    subscriptions: dict[Any, asyncio.Task],
    text: str,
) -> None:
    try:
        call = handle_rpc_message(text)
    except _RpcError as err:
        await ws.send_str(err.to_json())
        return

    if call.method == SUBSCRIBE_METHOD:
        subscription = secrets.randbelow(2**53)
        while subscription in subscriptions:
            subscription = secrets.randbelow(2**53)
        receiver = broadcast.subscribe()
        await ws.send_str(_response(call.id, subscription))
        log.debug("subscription %s accepted", subscription)
        task = asyncio.create_task(
            _run_subscription(ws, receiver, subscription, SubscriptionState(call.query))
        )
        subscriptions[subscription] = task
        task.add_done_callback(
            lambda done, key=subscription: subscriptions.pop(key, None)
            if subscriptions.get(key) is done
            else None
        )
        return

    task = subscriptions.pop(call.subscription, None)
    if task is not None:
        task.cancel()
    await ws.send_str(_response(call.id, task is not None))


async def _websocket_handler(request: web.Request) -> web.StreamResponse:
    ws = web.WebSocketResponse(max_msg_size=MAX_REQUEST_SIZE)
    if not ws.can_prepare(request).ok:
        raise web.HTTPBadRequest(text="expected a websocket upgrade")
    await ws.prepare(request)
    request.app[_WEBSOCKETS_KEY].add(ws)
    broadcast = request.app[BROADCAST_KEY]
    subscriptions: dict[Any, asyncio.Task] = {}
    try:
        async for message in ws:
            if message.type is WSMsgType.TEXT:
                await _serve_ws_message(ws, broadcast, subscriptions, message.data)
            elif message.type is WSMsgType.BINARY:
                try:
                    text = message.data.decode("utf-8")
                except UnicodeDecodeError:
                    await ws.send_str(_RpcError(PARSE_ERROR, "Parse error").to_json())
                    continue
                await _serve_ws_message(ws, broadcast, subscriptions, text)
    finally:
        tasks = list(subscriptions.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        log.debug("connection closed")
    return ws


async def _http_handler(request: web.Request) -> web.Response:
    text = await request.text()
    try:
        call = handle_rpc_message(text)
    except _RpcError as err:
        return web.Response(text=err.to_json(), content_type="application/json")
    # Subscriptions need a persistent connection.
    err = _RpcError(METHOD_NOT_FOUND, "Method not found", call.id)
    return web.Response(text=err.to_json(), content_type="application/json")


async def _close_websockets(app: web.Application) -> None:
    for ws in list(app[_WEBSOCKETS_KEY]):
        await ws.close(code=WSCloseCode.GOING_AWAY, message=b"server shutdown")


def create_app(broadcast: Broadcast, registry: Registry) -> web.Application:
    """Web application serving JSON-RPC subscriptions fed from ``broadcast``."""
    app = web.Application(client_max_size=MAX_REQUEST_SIZE)
    app[BROADCAST_KEY] = broadcast
    app[REGISTRY_KEY] = registry
    app[_WEBSOCKETS_KEY] = weakref.WeakSet()
    app.router.add_get("/", _websocket_handler)
    app.router.add_post("/", _http_handler)
    app.on_shutdown.append(_close_websockets)
    return app