"""
Reconciliation store: the authoritative in-memory state.

Holds three independent maps:
- scrapes: service name -> ScrapeTarget
- alerts: alert key -> AlertRule
- node labels: node ID -> label map

The store is the only component that mutates these maps; the renderer
reads them. Methods are synchronous. Callers serialise whole mutations
(decode, mutate, render, reload) by holding `lock` for the duration.
"""

import asyncio
import dataclasses
import logging
from collections.abc import Iterable, Mapping
from types import MappingProxyType

from .decode import alert_from_params, indexed_suffixes
from .naming import service_prefix
from .shortcuts import ShortcutTable
from .types import AlertKey, AlertRule, DiscoveryMode, NodeId, ScrapeTarget

logger = logging.getLogger(__name__)


class ReconciliationStore:
    """
    Live scrapes, alerts and node labels.

    Args:
        shortcuts: Table used to expand alert expressions before validation.
    """

    def __init__(self, shortcuts: ShortcutTable | None = None):
        self.lock = asyncio.Lock()
        self._shortcuts = shortcuts if shortcuts is not None else ShortcutTable()
        self._scrapes: dict[str, ScrapeTarget] = {}
        self._alerts: dict[AlertKey, AlertRule] = {}
        self._node_labels: dict[NodeId, dict[str, str]] = {}

    @property
    def scrapes(self) -> Mapping[str, ScrapeTarget]:
        return MappingProxyType(self._scrapes)

    @property
    def alerts(self) -> Mapping[AlertKey, AlertRule]:
        return MappingProxyType(self._alerts)

    @property
    def node_labels(self) -> Mapping[NodeId, dict[str, str]]:
        return MappingProxyType(self._node_labels)

    # -- scrapes --------------------------------------------------------------

    def upsert_scrape(self, target: ScrapeTarget) -> bool:
        """
        Store target, replacing any scrape with the same service name.

        Invalid targets (empty name or non-positive port) are dropped.
        A target with nodes is switched to file-based discovery.

        Returns:
            True if the target was stored.
        """
        if not target.is_valid():
            return False
        if target.nodes:
            target = dataclasses.replace(target, discovery=DiscoveryMode.FILE_SD)
        self._scrapes[target.service_name] = target
        logger.info(
            "Adding scrape %s (port %d, %s)",
            target.service_name,
            target.port,
            target.discovery.value,
        )
        return True

    def remove_scrape(self, service_name: str) -> ScrapeTarget:
        """
        Remove the scrape of service_name.

        Returns:
            The removed target, or an empty ScrapeTarget if there was none.
        """
        removed = self._scrapes.pop(service_name, None)
        if removed is None:
            return ScrapeTarget()
        logger.info("Removing scrape %s", service_name)
        return removed

    # -- alerts ---------------------------------------------------------------

    def upsert_alerts(self, params: Mapping[str, str]) -> list[AlertRule]:
        """
        Decode, expand and store the alerts carried by request parameters.

        The primary alert (unsuffixed parameters) is optional. Indexed
        alerts .1 to .10 are read in order and reading stops at the first
        one that is missing or invalid.

        Returns:
            The alerts that were stored, in request order.
        """
        added = []
        primary = alert_from_params(params)
        if primary is not None and self._store_alert(primary):
            added.append(primary)

        for suffix in indexed_suffixes():
            alert = alert_from_params(params, suffix)
            if alert is None or not self._store_alert(alert):
                break
            added.append(alert)
        return added

    def _store_alert(self, alert: AlertRule) -> bool:
        self._shortcuts.expand(alert)
        if not alert.is_valid():
            logger.debug("Dropping invalid alert %r of %s", alert.alert_name, alert.service_name)
            return False
        self._alerts[alert.key] = alert
        logger.info("Adding alert %s for the service %s", alert.alert_name, alert.service_name)
        return True

    def delete_alerts_for_service(
        self, service_name: str, keep_persistent: bool = False
    ) -> list[AlertRule]:
        """
        Remove every alert of service_name.

        Args:
            service_name: Service whose alerts go.
            keep_persistent: Retain alerts marked persistent. Explicit
                removals pass True; reconfiguration replaces everything.

        Returns:
            The removed alerts, ordered by key.
        """
        prefix = service_prefix(service_name)
        removed = []
        for key in sorted(self._alerts):
            alert = self._alerts[key]
            if not key.startswith(prefix) or alert.service_name != service_name:
                continue
            if keep_persistent and alert.persistent:
                continue
            removed.append(self._alerts.pop(key))

        if removed:
            logger.info("Removed %d alert(s) of the service %s", len(removed), service_name)
        return removed

    # -- node labels ----------------------------------------------------------

    def upsert_node_labels(
        self,
        node_id: NodeId,
        label_names: Iterable[str],
        values: Mapping[str, str],
    ) -> dict[str, str]:
        """
        Replace the labels of node_id with the requested names found in values.

        Returns:
            The labels now stored for the node.
        """
        if not node_id:
            return {}
        labels = {name: values[name] for name in label_names if name in values}
        self._node_labels[node_id] = labels
        logger.info("Setting labels of node %s: %s", node_id, labels)
        return labels

    def remove_node_labels(self, node_id: NodeId) -> dict[str, str]:
        """Forget node_id. Returns the labels it had."""
        removed = self._node_labels.pop(node_id, {})
        if removed:
            logger.info("Removing labels of node %s", node_id)
        return removed
