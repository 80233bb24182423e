import enum

from spray.query.filter.relations import ItemFilter, any_match


class Rel(enum.Flag):
    TRANSACTION = enum.auto()
    INSTRUCTIONS = enum.auto()
    LOGS = enum.auto()


def test_empty_filter_matches_everything():
    item_filter = ItemFilter(Rel(0))
    assert item_filter.matches_all()
    assert item_filter.eval(object())


def test_predicates_are_conjunctive():
    item_filter = ItemFilter(Rel(0))
    item_filter.add(lambda x: x > 0)
    item_filter.add(lambda x: x % 2 == 0)
    assert not item_filter.matches_all()
    assert item_filter.eval(4)
    assert not item_filter.eval(3)
    assert not item_filter.eval(-2)


def test_any_match_unions_relations_of_matching_filters():
    even = ItemFilter(Rel.TRANSACTION)
    even.add(lambda x: x % 2 == 0)
    positive = ItemFilter(Rel.INSTRUCTIONS)
    positive.add(lambda x: x > 0)
    negative = ItemFilter(Rel.LOGS)
    negative.add(lambda x: x < 0)

    filters = [even, positive, negative]
    assert any_match(filters, 2) == Rel.TRANSACTION | Rel.INSTRUCTIONS
    assert any_match(filters, 3) == Rel.INSTRUCTIONS
    assert any_match(filters, -1) == Rel.LOGS


def test_any_match_none_when_nothing_matches():
    item_filter = ItemFilter(Rel.LOGS)
    item_filter.add(lambda x: False)
    assert any_match([item_filter], 1) is None
    assert any_match([], 1) is None


def test_any_match_with_empty_relations_is_not_none():
    item_filter = ItemFilter(Rel(0))
    result = any_match([item_filter], 1)
    assert result is not None
    assert result == Rel(0)