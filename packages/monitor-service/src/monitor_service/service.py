"""
Mutation pipeline tying the store, renderer and daemon together.

Every mutation runs decode -> expand -> mutate -> render -> reload while
holding the store lock, so the files on disk always reflect whole
requests. A failed write or reload is reported in the result with status
500; the store keeps the new state either way.
"""

import asyncio
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

import httpx

from .decode import scrape_from_params
from .exceptions import RenderError
from .inventory import ListenerClient, scrapes_from_env
from .metrics import record_mutation, record_reload, set_store_sizes
from .process import ProcessRunner
from .renderer import ConfigRenderer
from .store import ReconciliationStore
from .types import AlertRule, NodeId, ScrapeTarget

logger = logging.getLogger(__name__)

STATUS_OK = 200
STATUS_ERROR = 500


@dataclass
class MutationResult:
    """Outcome of a reconfigure or remove request."""

    status: int = STATUS_OK
    message: str = ""
    alerts: list[AlertRule] = field(default_factory=list)
    scrape: ScrapeTarget = field(default_factory=ScrapeTarget)


@dataclass
class NodeResult:
    """Outcome of a node reconfigure or remove request."""

    node_id: NodeId
    status: int = STATUS_OK
    message: str = ""
    labels: dict[str, str] = field(default_factory=dict)


class MonitorService:
    """
    Entry points for every store mutation.

    Args:
        store: The reconciliation store.
        renderer: Writes config artifacts after each mutation.
        process: Reloads the daemon after each write.
        scrape_label_names: Request parameters copied into scrape labels.
        node_label_names: Allow-list of node labels.
    """

    def __init__(
        self,
        store: ReconciliationStore,
        renderer: ConfigRenderer,
        process: ProcessRunner,
        scrape_label_names: Iterable[str] = (),
        node_label_names: Iterable[str] = (),
    ):
        self.store = store
        self.renderer = renderer
        self.process = process
        self.scrape_label_names = list(scrape_label_names)
        self.node_label_names = list(node_label_names)

    async def reconfigure(self, params: Mapping[str, str]) -> MutationResult:
        """Replace the scrape and alerts of the service named in params."""
        async with self.store.lock:
            target = scrape_from_params(params, self.scrape_label_names)
            stored = self.store.upsert_scrape(target)
            self.store.delete_alerts_for_service(params.get("serviceName", ""))
            alerts = self.store.upsert_alerts(params)

            status, message = await self._publish()
            record_mutation("reconfigure", status == STATUS_OK)
            return MutationResult(
                status=status,
                message=message,
                alerts=alerts,
                scrape=self.store.scrapes[target.service_name] if stored else ScrapeTarget(),
            )

    async def remove(self, service_name: str) -> MutationResult:
        """Remove the scrape and the non-persistent alerts of service_name."""
        async with self.store.lock:
            scrape = self.store.remove_scrape(service_name)
            alerts = self.store.delete_alerts_for_service(service_name, keep_persistent=True)

            status, message = await self._publish()
            record_mutation("remove", status == STATUS_OK)
            return MutationResult(status=status, message=message, alerts=alerts, scrape=scrape)

    async def node_reconfigure(self, node_id: NodeId, params: Mapping[str, str]) -> NodeResult:
        """Store the allow-listed labels of node_id found in params."""
        async with self.store.lock:
            labels = self.store.upsert_node_labels(node_id, self.node_label_names, params)

            status, message = await self._publish()
            record_mutation("node_reconfigure", status == STATUS_OK)
            return NodeResult(node_id=node_id, status=status, message=message, labels=labels)

    async def node_remove(self, node_id: NodeId) -> NodeResult:
        async with self.store.lock:
            labels = self.store.remove_node_labels(node_id)

            status, message = await self._publish()
            record_mutation("node_remove", status == STATUS_OK)
            return NodeResult(node_id=node_id, status=status, message=message, labels=labels)

    async def load_initial(
        self,
        client: ListenerClient | None,
        environ: Mapping[str, str],
    ) -> None:
        """
        Seed the store from the inventory service and the environment.

        Raises:
            httpx.HTTPError: The service fetch failed. Node fetch failures
                are logged and ignored.
            ValueError: The SERVICE_NAME_n / SCRAPE_PORT_n variables are invalid.
        """
        async with self.store.lock:
            if client is not None:
                logger.info("Requesting services from the swarm listener")
                for row in await client.get_services():
                    self.store.upsert_scrape(scrape_from_params(row, self.scrape_label_names))
                    self.store.upsert_alerts(row)

                try:
                    nodes = await client.get_nodes()
                except httpx.HTTPError as e:
                    logger.warning("Unable to fetch nodes from the swarm listener: %s", e)
                    nodes = []
                for row in nodes:
                    self.store.upsert_node_labels(row.get("id", ""), self.node_label_names, row)

            for target in scrapes_from_env(environ):
                self.store.upsert_scrape(target)
            self._update_gauges()

    async def render(self) -> None:
        """
        Write the config artifacts without reloading the daemon.

        Raises:
            RenderError: A file could not be written.
        """
        async with self.store.lock:
            await asyncio.to_thread(self.renderer.write, self.store)

    async def _publish(self) -> tuple[int, str]:
        """Write the config and reload the daemon. Caller holds the lock."""
        self._update_gauges()
        try:
            await asyncio.to_thread(self.renderer.write, self.store)
        except RenderError as e:
            logger.error("%s", e)
            return STATUS_ERROR, str(e)

        result = await self.process.reload()
        record_reload(result["success"])
        if not result["success"]:
            return STATUS_ERROR, result["error"]
        return STATUS_OK, ""

    def _update_gauges(self) -> None:
        set_store_sizes(
            len(self.store.scrapes),
            len(self.store.alerts),
            len(self.store.node_labels),
        )
