"""Item filters: conjunctions of predicates tagged with requested relations."""

from __future__ import annotations

import enum
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

T = TypeVar("T")
R = TypeVar("R", bound=enum.Flag)

Predicate = Callable[[T], bool]


@dataclass
class ItemFilter(Generic[T, R]):
    """Matches an item when every predicate holds; carries relation flags."""

    relations: R
    predicates: list[Callable[[T], bool]] = field(default_factory=list)

    def add(self, predicate: Callable[[T], bool]) -> None:
        self.predicates.append(predicate)

    def eval(self, value: T) -> bool:
        return all(predicate(value) for predicate in self.predicates)

    def matches_all(self) -> bool:
        return not self.predicates


def any_match(filters: Iterable[ItemFilter[T, R]], value: T) -> R | None:
    """Union of relations of the filters matching ``value``, or None when none match.

    The union may be an empty flag, which is falsy; compare the result with None.
    """
    relations: R | None = None
    for item_filter in filters:
        if item_filter.eval(value):
            if relations is None:
                relations = item_filter.relations
            else:
                relations = relations | item_filter.relations
    return relations