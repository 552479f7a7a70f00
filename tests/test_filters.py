"""Tests for filter validation and assembly."""

from reflex_table_browser.filters import FilterBuilder, describe_filter
from reflex_table_browser.models import (
    ColumnSchema,
    FilterClause,
    FilterOperation,
    LogicalOperator,
)

from tests.conftest import SCHEMA


def _builder() -> FilterBuilder:
    return FilterBuilder(SCHEMA)


class TestAddFilter:
    def test_value_operation_with_empty_value_rejected(self):
        builder = _builder()
        existing = (FilterClause(column="city", operation=FilterOperation.EQUALS, values=("Rome",)),)

        result = builder.add_filter(existing, "name", FilterOperation.EQUALS, "")

        assert result == existing
        assert not builder.can_add("name", FilterOperation.EQUALS, "")
        assert builder.rejection_reason("name", FilterOperation.EQUALS, "") == "Enter a value"

    def test_null_check_accepted_without_value(self):
        result = _builder().add_filter((), "city", FilterOperation.IS_NULL)

        assert len(result) == 1
        assert result[0].values == ()
        assert result[0].operation is FilterOperation.IS_NULL

    def test_null_check_ignores_value(self):
        result = _builder().add_filter((), "city", FilterOperation.IS_NOT_NULL, "ignored")
        assert result[0].values == ()

    def test_missing_column_rejected(self):
        builder = _builder()
        assert builder.add_filter((), "", FilterOperation.EQUALS, "x") == ()
        assert builder.rejection_reason("", FilterOperation.EQUALS, "x") == "Select a column"

    def test_unfilterable_column_rejected(self):
        builder = _builder()
        assert "notes" not in builder.available_columns
        assert builder.add_filter((), "notes", FilterOperation.CONTAINS, "x") == ()

    def test_appends_with_logical_operator(self):
        builder = _builder()
        filters = builder.add_filter((), "age", FilterOperation.GREATER_THAN, "30")
        filters = builder.add_filter(
            filters, "city", FilterOperation.EQUALS, "Rome", LogicalOperator.OR
        )

        assert [f.column for f in filters] == ["age", "city"]
        assert filters[1].logical_operator is LogicalOperator.OR
        assert filters[1].values == ("Rome",)


class TestRemoveFilter:
    def _three(self):
        return tuple(
            FilterClause(column=c, operation=FilterOperation.EQUALS, values=("x",))
            for c in ("a", "b", "c")
        )

    def test_remove_middle_keeps_order(self):
        result = FilterBuilder.remove_filter(self._three(), 1)
        assert [f.column for f in result] == ["a", "c"]

    def test_out_of_range_is_noop(self):
        filters = self._three()
        assert FilterBuilder.remove_filter(filters, 5) == filters
        assert FilterBuilder.remove_filter(filters, -1) == filters

    def test_clear_all(self):
        assert FilterBuilder.clear_all() == ()


def test_describe_filter():
    clause = FilterClause(column="age", operation=FilterOperation.GREATER_THAN, values=("30",))
    assert describe_filter(clause) == 'age greater than "30"'
    assert describe_filter(FilterClause(column="city", operation=FilterOperation.IS_NULL)) == "city is null"


def test_unfilterable_schema():
    builder = FilterBuilder([ColumnSchema(name="x", filterable=False)])
    assert builder.available_columns == ()
