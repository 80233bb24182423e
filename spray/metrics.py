"""Process-wide service metrics and their text exposition."""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Protocol

Sample = tuple[str, dict[str, str], int]


class _Metric(Protocol):
    type_name: str

    def samples(self) -> list[Sample]: ...


class Counter:
    """Monotonically increasing integer."""

    type_name = "counter"

    def __init__(self) -> None:
        self._value = 0
        self._lock = threading.Lock()

    @property
    def value(self) -> int:
        return self._value

    def inc(self) -> int:
        with self._lock:
            self._value += 1
            return self._value

    def samples(self) -> list[Sample]:
        return [("_total", {}, self._value)]


class Gauge:
    """Integer that can go up and down."""

    type_name = "gauge"

    def __init__(self) -> None:
        self._value = 0
        self._lock = threading.Lock()

    @property
    def value(self) -> int:
        return self._value

    def inc(self) -> int:
        with self._lock:
            self._value += 1
            return self._value

    def dec(self) -> int:
        with self._lock:
            self._value -= 1
            return self._value

    def set(self, value: int) -> None:
        with self._lock:
            self._value = int(value)

    def samples(self) -> list[Sample]:
        return [("", {}, self._value)]


class CounterFamily:
    """Counters labelled by data source name."""

    type_name = "counter"

    def __init__(self) -> None:
        self._counters: dict[str, Counter] = {}
        self._lock = threading.Lock()

    def get_or_create(self, source: str) -> Counter:
        with self._lock:
            counter = self._counters.get(source)
            if counter is None:
                counter = self._counters[source] = Counter()
            return counter

    def samples(self) -> list[Sample]:
        with self._lock:
            items = sorted(self._counters.items())
        return [("_total", {"source": source}, counter.value) for source, counter in items]


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


@dataclass
class _Entry:
    name: str
    help: str
    metric: _Metric
    unit: str | None


class Registry:
    """Named metrics exposed in the OpenMetrics text format."""

    def __init__(self) -> None:
        self._entries: list[_Entry] = []

    def register(self, name: str, help: str, metric: _Metric, unit: str | None = None) -> None:
        self._entries.append(_Entry(name, help, metric, unit))

    def encode(self) -> str:
        lines = []
        for entry in self._entries:
            name = f"{entry.name}_{entry.unit}" if entry.unit else entry.name
            lines.append(f"# HELP {name} {entry.help}.")
            lines.append(f"# TYPE {name} {entry.metric.type_name}")
            if entry.unit:
                lines.append(f"# UNIT {name} {entry.unit}")
            for suffix, labels, value in entry.metric.samples():
                label_text = ""
                if labels:
                    label_text = "{" + ",".join(
                        f'{key}="{_escape(val)}"' for key, val in labels.items()
                    ) + "}"
                lines.append(f"{name}{suffix}{label_text} {value}")
        lines.append("# EOF")
        return "\n".join(lines) + "\n"


_MAPPING_ERRORS = CounterFamily()
_UNPARSED_TRANSACTION_ERRORS = Counter()
_DATA_SOURCE_ERRORS = CounterFamily()
_TRANSACTIONS_PUBLISHED = CounterFamily()
_BLOCKS_PUBLISHED = CounterFamily()
_LAST_BLOCK = Gauge()
_LAST_BLOCK_TIMESTAMP = Gauge()
_ACTIVE_SUBSCRIPTIONS = Gauge()


def register_mapping_error(source: str) -> None:
    _MAPPING_ERRORS.get_or_create(source).inc()


def register_unparsed_transaction_error() -> None:
    _UNPARSED_TRANSACTION_ERRORS.inc()


def register_data_source_error(source: str) -> None:
    _DATA_SOURCE_ERRORS.get_or_create(source).inc()


def register_tx_publication(source: str) -> None:
    _TRANSACTIONS_PUBLISHED.get_or_create(source).inc()


def register_block_publication(source: str, slot: int, timestamp: int) -> None:
    _BLOCKS_PUBLISHED.get_or_create(source).inc()
    _LAST_BLOCK.set(slot)
    _LAST_BLOCK_TIMESTAMP.set(timestamp)


@contextmanager
def subscription_scope() -> Iterator[None]:
    """Count an active client subscription for the duration of the block."""
    _ACTIVE_SUBSCRIPTIONS.inc()
    try:
        yield
    finally:
        _ACTIVE_SUBSCRIPTIONS.dec()


def create_metrics_registry() -> Registry:
    """A registry holding all service metrics."""
    registry = Registry()
    registry.register("spray_mapping_errors", "Number of data mapping errors", _MAPPING_ERRORS)
    registry.register(
        "spray_unparsed_transaction_errors",
        "Number of transactions with error deserialization failures",
        _UNPARSED_TRANSACTION_ERRORS,
    )
    registry.register(
        "spray_data_source_errors",
        "Number of data source (connection) errors",
        _DATA_SOURCE_ERRORS,
    )
    registry.register(
        "spray_transactions_published",
        "Number of transactions pushed to subscriptions",
        _TRANSACTIONS_PUBLISHED,
    )
    registry.register(
        "spray_blocks_published",
        "Number of blocks pushed to subscriptions",
        _BLOCKS_PUBLISHED,
    )
    registry.register("spray_last_block", "Last published block", _LAST_BLOCK)
    registry.register(
        "spray_last_block_timestamp",
        "Timestamp of the last published block",
        _LAST_BLOCK_TIMESTAMP,
        "seconds",
    )
    registry.register(
        "spray_active_subscriptions",
        "Number of active client subscriptions",
        _ACTIVE_SUBSCRIPTIONS,
    )
    return registry