"""Incremental writer of compact JSON text."""

from __future__ import annotations

import json
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from typing import Any, TypeVar

T = TypeVar("T")

_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"


def b58encode(data: bytes) -> str:
    """Encode bytes with the Bitcoin base58 alphabet."""
    data = bytes(data)
    stripped = data.lstrip(b"\0")
    zeros = len(data) - len(stripped)
    num = int.from_bytes(stripped, "big")
    digits = []
    while num:
        num, rem = divmod(num, 58)
        digits.append(_ALPHABET[rem])
    return "1" * zeros + "".join(reversed(digits))


def render(build: Callable[[JsonBuilder], Any]) -> str:
    """Run ``build`` on a fresh builder and return the produced text."""
    builder = JsonBuilder()
    build(builder)
    return builder.getvalue()


class JsonBuilder:
    """Appends JSON fragments; trailing commas are dropped when a container closes."""

    def __init__(self) -> None:
        self._parts: list[str] = []

    def number(self, num: int | float) -> None:
        if isinstance(num, bool):
            raise TypeError("booleans are not numbers")
        self._parts.append(str(num) if isinstance(num, int) else repr(num))

    def number_str(self, num: int | float) -> None:
        self._parts.append('"')
        self.number(num)
        self._parts.append('"')

    def string(self, s: str) -> None:
        """Write a string with JSON escaping."""
        self._parts.append(json.dumps(s, ensure_ascii=False))

    def safe_str(self, s: str) -> None:
        """Write a string known to need no escaping."""
        self._parts.append(f'"{s}"')

    def boolean(self, val: bool) -> None:
        self._parts.append("true" if val else "false")

    def safe_prop(self, name: str) -> None:
        self.safe_str(name)
        self._parts.append(":")

    @contextmanager
    def prop(self, name: str) -> Iterator[JsonBuilder]:
        """Write ``name:``, let the body write the value, then a comma."""
        self.safe_prop(name)
        yield self
        self.comma()

    def base58(self, data: bytes) -> None:
        self._parts.append(f'"{b58encode(data)}"')

    def binary(self, data: bytes) -> None:
        self._parts.append(f'"0x{bytes(data).hex()}"')

    def value(self, val: Any) -> None:
        """Serialize a plain value, or one that renders itself via ``to_json``."""
        to_json = getattr(val, "to_json", None)
        if callable(to_json):
            self._parts.append(to_json())
        else:
            self._parts.append(json.dumps(val, ensure_ascii=False, separators=(",", ":")))

    def raw(self, json: str) -> None:  # noqa: A002 - name fixed by the public API
        """Append already rendered JSON text as is."""
        self._parts.append(json)

    def null(self) -> None:
        self._parts.append("null")

    def comma(self) -> None:
        self._parts.append(",")

    def begin_object(self) -> None:
        self._parts.append("{")

    def end_object(self) -> None:
        self._close("}")

    def begin_array(self) -> None:
        self._parts.append("[")

    def end_array(self) -> None:
        self._close("]")

    def _close(self, end: str) -> None:
        if self._parts and self._parts[-1].endswith(","):
            self._parts[-1] = self._parts[-1][:-1] + end
        else:
            self._parts.append(end)

    def array(self, items: Iterable[T], callback: Callable[[JsonBuilder, T], Any]) -> None:
        self.begin_array()
        for item in items:
            callback(self, item)
            self.comma()
        self.end_array()

    def number_list(self, items: Iterable[int | float]) -> None:
        self.begin_array()
        for item in items:
            self.number(item)
            self.comma()
        self.end_array()

    def base58_list(self, items: Iterable[bytes]) -> None:
        self.begin_array()
        for item in items:
            self.base58(item)
            self.comma()
        self.end_array()

    def getvalue(self) -> str:
        return "".join(self._parts)