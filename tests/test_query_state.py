"""Tests for descriptor ownership and the page-reset rule."""

import pytest

from reflex_table_browser.models import (
    FilterClause,
    FilterOperation,
    QueryDescriptor,
    SortClause,
)
from reflex_table_browser.query_state import QueryStateController


def _controller_on_page(page: int) -> QueryStateController:
    controller = QueryStateController(
        QueryDescriptor(
            filters=(FilterClause(column="a", operation=FilterOperation.EQUALS, values=("1",)),),
            sorts=(SortClause(column="b", priority=1),),
            search_term="foo",
            page=page,
            page_size=50,
        )
    )
    return controller


class TestApplyUpdate:
    @pytest.mark.parametrize(
        "changes",
        [
            {"filters": ()},
            {"sorts": ()},
            {"search_term": "bar"},
            {"page_size": 200},
        ],
    )
    def test_page_resets_to_zero(self, changes):
        controller = _controller_on_page(4)
        assert controller.apply_update(**changes).page == 0

    def test_page_reset_wins_over_explicit_page(self):
        controller = _controller_on_page(4)
        assert controller.apply_update(search_term="bar", page=3).page == 0

    def test_page_only_preserves_everything_else(self):
        controller = _controller_on_page(0)
        before = controller.descriptor
        after = controller.apply_update(page=3)

        assert after.page == 3
        assert after.model_copy(update={"page": 0}) == before

    def test_descriptor_replaced_not_mutated(self):
        controller = _controller_on_page(2)
        before = controller.descriptor
        controller.apply_update(search_term="bar")
        assert before.search_term == "foo"
        assert before.page == 2

    def test_lists_become_tuples(self):
        controller = QueryStateController()
        after = controller.apply_update(sorts=[SortClause(column="b", priority=1)])
        assert isinstance(after.sorts, tuple)

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError):
            QueryStateController().apply_update(colour="red")

    def test_subscribers_notified(self):
        seen = []
        controller = QueryStateController()
        controller.subscribe(seen.append)
        controller.apply_update(page=1)
        assert seen == [controller.descriptor]


def test_reset_keeps_page_size():
    controller = _controller_on_page(3)
    assert controller.reset() == QueryDescriptor(page_size=50)


def test_descriptors_compare_by_value():
    assert QueryDescriptor(search_term="x") == QueryDescriptor(search_term="x")
    assert QueryDescriptor(search_term="x") != QueryDescriptor(search_term="y")
