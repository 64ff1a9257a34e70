"""
Shared data types for the monitor service.

This module defines the records held by the reconciliation store: scrape
targets, alert rules and the nodes a scrape fans out to, plus the
shortcut macro definitions used to expand alert expressions. These are
internal types - the HTTP layer converts them to Pydantic models for
responses.

All types use @dataclass. Pydantic models are reserved for settings and
API responses.
"""

from dataclasses import dataclass, field
from enum import Enum

NodeId = str
"""Opaque node identifier assigned by the inventory service."""

AlertKey = str
"""Normalized service + alert name, the identity of an AlertRule."""


def is_safe_file_name(name: str) -> bool:
    """True if name can be used as a file name inside a single directory."""
    return not any(sep in name for sep in ("/", "\\", "\0")) and ".." not in name


class DiscoveryMode(str, Enum):
    """How the metrics daemon locates a scrape target's endpoints."""

    DNS_SD = "dns_sd_configs"
    STATIC = "static_configs"
    FILE_SD = "file_sd_configs"

    @classmethod
    def parse(cls, raw: str | None) -> "DiscoveryMode":
        """Map a request's scrapeType to a mode. Anything unknown is DNS-SD."""
        for mode in cls:
            if mode.value == raw:
                return mode
        return cls.DNS_SD


@dataclass(frozen=True)
class NodeInfo:
    """
    A node a scrape target runs on.

    Attributes:
        name: Node hostname, rendered as the "node" label.
        addr: Address the daemon scrapes (port comes from the scrape).
        id: Inventory node ID, used to look up node-level labels.
    """

    name: str
    addr: str
    id: NodeId = ""


@dataclass
class ScrapeTarget:
    """
    A named endpoint the metrics daemon polls.

    A scrape with a non-empty node set always resolves through a
    per-node file-SD side file; the store forces discovery to FILE_SD.

    Attributes:
        service_name: Unique key; also the job name in the rendered config.
            Also the file-SD side file name, so path separators and ".."
            make a target invalid.
        port: Scrape port. Must be positive for the scrape to be stored.
        metrics_path: Path to scrape, "/metrics" when empty.
        interval: Optional scrape interval (e.g. "15s").
        timeout: Optional scrape timeout.
        discovery: DNS-SD, static or file-SD.
        labels: Static labels copied onto every file-SD target group.
        nodes: Nodes the service runs on.
    """

    service_name: str = ""
    port: int = 0
    metrics_path: str = ""
    interval: str = ""
    timeout: str = ""
    discovery: DiscoveryMode = DiscoveryMode.DNS_SD
    labels: dict[str, str] = field(default_factory=dict)
    nodes: frozenset[NodeInfo] = field(default_factory=frozenset)

    def is_valid(self) -> bool:
        return len(self.service_name) > 0 and self.port > 0 and is_safe_file_name(self.service_name)


@dataclass
class AlertRule:
    """
    A named alert expression evaluated by the metrics daemon.

    Attributes:
        service_name: Service the alert belongs to.
        alert_name: Alert name as submitted.
        expression: Alert expression; may be an @shortcut before expansion.
        for_duration: Optional pending duration ("for" in the rule file).
        annotations: Annotations map.
        labels: Labels map.
        replicas: Expected replica count, used by replica shortcuts.
        persistent: Survives a plain service removal.
        key: Derived normalized key, see naming.alert_key.
    """

    service_name: str = ""
    alert_name: str = ""
    expression: str = ""
    for_duration: str = ""
    annotations: dict[str, str] = field(default_factory=dict)
    labels: dict[str, str] = field(default_factory=dict)
    replicas: int = 0
    persistent: bool = False
    key: AlertKey = ""

    def is_valid(self) -> bool:
        return len(self.alert_name) > 0 and len(self.expression) > 0


@dataclass(frozen=True)
class ShortcutDefinition:
    """
    An alert-expression macro.

    Templates may reference [SERVICE_NAME], [REPLICAS], [VALUE] (the whole
    argument string) and [VALUE_<n>] (the n-th comma-separated argument).

    Attributes:
        name: Macro name including the sigil, e.g. "@service_mem_limit".
        expanded: Expression template.
        annotations: Default annotation templates.
        labels: Default label templates.
    """

    name: str
    expanded: str
    annotations: dict[str, str] = field(default_factory=dict)
    labels: dict[str, str] = field(default_factory=dict)
