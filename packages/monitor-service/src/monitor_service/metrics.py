"""Prometheus metrics for the monitor service."""

from prometheus_client import Counter, Gauge

# Mutation metrics
MUTATIONS = Counter(
    "monitor_mutations_total",
    "Total mutation requests processed",
    ["operation", "result"],  # result: "ok" or "error"
)

RELOADS = Counter(
    "monitor_daemon_reloads_total",
    "Total daemon reloads triggered",
    ["result"],  # "success" or "failure"
)

# Store size metrics
SCRAPE_TARGETS = Gauge(
    "monitor_scrape_targets",
    "Number of scrape targets held",
)

ALERT_RULES = Gauge(
    "monitor_alert_rules",
    "Number of alert rules held",
)

LABELLED_NODES = Gauge(
    "monitor_labelled_nodes",
    "Number of nodes with stored labels",
)


def record_mutation(operation: str, ok: bool) -> None:
    """Record a processed mutation request."""
    MUTATIONS.labels(operation=operation, result="ok" if ok else "error").inc()


def record_reload(success: bool) -> None:
    """Record a daemon reload result."""
    RELOADS.labels(result="success" if success else "failure").inc()


def set_store_sizes(scrapes: int, alerts: int, nodes: int) -> None:
    """Set the store size gauges."""
    SCRAPE_TARGETS.set(scrapes)
    ALERT_RULES.set(alerts)
    LABELLED_NODES.set(nodes)
