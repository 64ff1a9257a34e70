"""
Decoding of flat parameter maps into scrape targets and alert rules.

Reconfigure requests (query string or form) and inventory rows share the
same flat string-to-string shape, so both go through these functions.
Decoding never fails: malformed optional values fall back to their zero
value and validity is decided later by the store.
"""

import json
import logging
from collections.abc import Iterable, Mapping

from .naming import alert_key
from .types import AlertRule, DiscoveryMode, NodeInfo, ScrapeTarget

logger = logging.getLogger(__name__)

MAX_INDEXED_ALERTS = 10

_TRUE_VALUES = {"1", "true", "yes", "on"}


def parse_label_csv(value: str | None) -> dict[str, str]:
    """Parse "k1=v1,k2=v2". Entries without "=" are ignored."""
    labels: dict[str, str] = {}
    if not value:
        return labels
    for item in value.split(","):
        key, sep, val = item.partition("=")
        if not sep or not key:
            continue
        labels[key] = val
    return labels


def parse_int(value: str | None, default: int = 0) -> int:
    try:
        return int(value) if value else default
    except ValueError:
        return default


def parse_bool(value: str | None) -> bool:
    return (value or "").strip().lower() in _TRUE_VALUES


def parse_nodes(raw: str | None) -> frozenset[NodeInfo]:
    """
    Parse the JSON-encoded nodeInfo parameter.

    Accepts a list of objects with name, addr (or address) and id keys,
    in any letter case. Invalid JSON yields an empty set.
    """
    if not raw:
        return frozenset()
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Ignoring malformed nodeInfo: %s", raw)
        return frozenset()
    if not isinstance(data, list):
        return frozenset()

    nodes = set()
    for item in data:
        if not isinstance(item, dict):
            continue
        fields = {str(k).lower(): str(v) for k, v in item.items() if v is not None}
        addr = fields.get("addr") or fields.get("address", "")
        if not addr:
            continue
        nodes.add(NodeInfo(name=fields.get("name", ""), addr=addr, id=fields.get("id", "")))
    return frozenset(nodes)


def scrape_from_params(
    params: Mapping[str, str], label_names: Iterable[str] = ()
) -> ScrapeTarget:
    """
    Build a ScrapeTarget from request parameters.

    Args:
        params: Flat request parameters.
        label_names: Parameters copied verbatim into the scrape's labels.
    """
    labels = {name: params[name] for name in label_names if params.get(name)}
    return ScrapeTarget(
        service_name=params.get("serviceName", ""),
        port=parse_int(params.get("scrapePort")),
        metrics_path=params.get("metricsPath", ""),
        interval=params.get("scrapeInterval", ""),
        timeout=params.get("scrapeTimeout", ""),
        discovery=DiscoveryMode.parse(params.get("scrapeType")),
        labels=labels,
        nodes=parse_nodes(params.get("nodeInfo")),
    )


def alert_from_params(params: Mapping[str, str], suffix: str = "") -> AlertRule | None:
    """
    Build the alert whose parameters carry suffix (e.g. ".3").

    serviceName and replicas are shared by every alert of a request.

    Returns:
        None when the request has no alertName<suffix> parameter at all.
    """
    if f"alertName{suffix}" not in params:
        return None

    service_name = params.get("serviceName", "")
    alert_name = params.get(f"alertName{suffix}", "")
    return AlertRule(
        service_name=service_name,
        alert_name=alert_name,
        expression=params.get(f"alertIf{suffix}", ""),
        for_duration=params.get(f"alertFor{suffix}", ""),
        annotations=parse_label_csv(params.get(f"alertAnnotations{suffix}")),
        labels=parse_label_csv(params.get(f"alertLabels{suffix}")),
        replicas=parse_int(params.get("replicas")),
        persistent=parse_bool(params.get(f"alertPersistent{suffix}")),
        key=alert_key(service_name, alert_name),
    )


def indexed_suffixes() -> list[str]:
    """Suffixes of the additional alerts a request may carry, in order."""
    return [f".{i}" for i in range(1, MAX_INDEXED_ALERTS + 1)]
