"""Labels and formatting for the engine's performance metrics panel.

Metrics are purely observational: the browser polls them and shows them,
nothing else depends on their values.
"""

from typing import Any

METRIC_LABELS: dict[str, str] = {
    # Query performance
    "loadTimeMs": "Load Time",
    "avgQueryTimeMs": "Avg Query Time",
    "stdDevQueryTimeMs": "Query Time Std Dev",
    "minQueryTimeMs": "Min Query Time",
    "maxQueryTimeMs": "Max Query Time",
    "totalQueries": "Total Queries",
    "rowCount": "Row Count",
    "implementation": "Implementation",
    # Process memory
    "totalMemoryMB": "JVM Total Memory",
    "usedMemoryMB": "JVM Used Memory",
    "freeMemoryMB": "JVM Free Memory",
    "maxMemoryMB": "JVM Max Memory",
    "memoryUsagePercent": "JVM Memory Usage",
    # Off-heap memory
    "arrowAllocatedMB": "Arrow Allocated",
    "arrowPeakMB": "Arrow Peak",
    "arrowLimitMB": "Arrow Limit",
    "totalMemoryUsedMB": "Total Memory Used",
}

CATEGORY_TITLES: dict[str, str] = {
    "general": "General",
    "performance": "Query Performance",
    "memory": "Memory Statistics",
}


def metric_label(key: str) -> str:
    return METRIC_LABELS.get(key, key)


def format_metric(key: str, value: Any) -> str:
    """Render a metric value with the unit implied by its key."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return str(value)
    if "Time" in key or "Ms" in key:
        return f"{value}ms"
    if key.endswith("MB") and ("Memory" in key or key.startswith("arrow")):
        if key == "arrowLimitMB" and value == -1:
            return "Unlimited"
        return f"{value}MB"
    if "Percent" in key:
        return f"{value}%"
    if key in ("rowCount", "totalQueries"):
        return f"{value:,}"
    return str(value)


def metric_category(key: str) -> str:
    if "Memory" in key or "memoryUsage" in key or "arrow" in key:
        return "memory"
    if "Time" in key or "Ms" in key or key == "totalQueries":
        return "performance"
    return "general"


def categorize_metrics(metrics: dict[str, Any]) -> dict[str, list[dict[str, str]]]:
    """Group metrics by category as ``{"category": [{"key", "label", "value"}, ...]}``.

    Categories appear in first-seen order, metrics in mapping order.
    """
    grouped: dict[str, list[dict[str, str]]] = {}
    for key, value in metrics.items():
        grouped.setdefault(metric_category(key), []).append(
            {"key": key, "label": metric_label(key), "value": format_metric(key, value)}
        )
    return grouped
