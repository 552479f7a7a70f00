"""Tests for metric labels and formatting."""

from reflex_table_browser.metrics import categorize_metrics, format_metric, metric_label


def test_format_units():
    assert format_metric("avgQueryTimeMs", 12.5) == "12.5ms"
    assert format_metric("usedMemoryMB", 512) == "512MB"
    assert format_metric("arrowLimitMB", -1) == "Unlimited"
    assert format_metric("memoryUsagePercent", 40) == "40%"
    assert format_metric("rowCount", 1234567) == "1,234,567"
    assert format_metric("implementation", "DuckDB") == "DuckDB"


def test_labels_fall_back_to_key():
    assert metric_label("avgQueryTimeMs") == "Avg Query Time"
    assert metric_label("somethingNew") == "somethingNew"


def test_categorize():
    grouped = categorize_metrics(
        {"implementation": "H2", "avgQueryTimeMs": 3, "usedMemoryMB": 100, "totalQueries": 9}
    )
    assert list(grouped) == ["general", "performance", "memory"]
    assert [m["key"] for m in grouped["performance"]] == ["avgQueryTimeMs", "totalQueries"]
    assert grouped["memory"][0] == {"key": "usedMemoryMB", "label": "JVM Used Memory", "value": "100MB"}
