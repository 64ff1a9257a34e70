"""
Tests for the inventory sources.

These tests verify that:
- ListenerClient fetches services and nodes and flattens values to strings
- ListenerClient raises on HTTP errors
- SERVICE_NAME_n / SCRAPE_PORT_n pairs become static scrapes
- MonitorService.load_initial seeds the store and tolerates node fetch failures
"""

from unittest.mock import MagicMock

import httpx
import pytest
from httpx import Request, Response

from monitor_service.inventory import ListenerClient, listener_base_url, scrapes_from_env
from monitor_service.service import MonitorService
from monitor_service.shortcuts import ShortcutTable
from monitor_service.store import ReconciliationStore
from monitor_service.types import DiscoveryMode


class MockTransport(httpx.AsyncBaseTransport):
    """Mock transport for testing HTTP responses."""

    def __init__(self, responses: dict[str, dict]):
        """
        Initialize with mapping of paths to response data.

        Args:
            responses: Dict mapping URL paths to response data.
                       Each value should have 'status_code' and 'json' keys.
        """
        self._responses = responses

    async def handle_async_request(self, request: Request) -> Response:
        """Handle an async request by returning mocked response."""
        path = request.url.path
        if path in self._responses:
            resp_data = self._responses[path]
            return Response(
                status_code=resp_data.get("status_code", 200),
                json=resp_data.get("json", []),
                request=request,
            )
        # Return 404 for unknown paths
        return Response(status_code=404, request=request)


SERVICES_PATH = "/v1/docker-flow-swarm-listener/get-services"
NODES_PATH = "/v1/docker-flow-swarm-listener/get-nodes"


@pytest.fixture
def services_response():
    """Sample get-services response."""
    return [
        {
            "serviceName": "my-service",
            "scrapePort": 1234,
            "alertName": "mem",
            "alertIf": "@service_mem_limit:0.8",
            "alertName.1": "replicas",
            "alertIf.1": "@replicas_less_than",
            "replicas": "3",
        },
        {"serviceName": "no-port"},
    ]


@pytest.fixture
def nodes_response():
    """Sample get-nodes response."""
    return [
        {"id": "n1", "hostname": "node-1", "env": "prod", "region": "eu"},
        {"id": "n2", "hostname": "node-2", "env": "dev"},
    ]


def make_service() -> MonitorService:
    return MonitorService(
        store=ReconciliationStore(ShortcutTable.builtin()),
        renderer=MagicMock(),
        process=MagicMock(),
        node_label_names=["env", "region"],
    )


class TestListenerBaseUrl:
    def test_bare_host(self):
        assert listener_base_url("swarm-listener") == "http://swarm-listener:8080"

    def test_full_url(self):
        assert listener_base_url("http://listener:9000/") == "http://listener:9000"


class TestListenerClient:
    """Tests for ListenerClient."""

    @pytest.mark.asyncio
    async def test_get_services(self, services_response):
        transport = MockTransport({SERVICES_PATH: {"json": services_response}})
        async with httpx.AsyncClient(transport=transport, base_url="http://listener:8080") as http:
            rows = await ListenerClient(http=http).get_services()

        assert len(rows) == 2
        assert rows[0]["scrapePort"] == "1234"

    @pytest.mark.asyncio
    async def test_get_services_error_raises(self):
        transport = MockTransport({SERVICES_PATH: {"status_code": 500}})
        async with httpx.AsyncClient(transport=transport, base_url="http://listener:8080") as http:
            with pytest.raises(httpx.HTTPStatusError):
                await ListenerClient(http=http).get_services()

    @pytest.mark.asyncio
    async def test_get_nodes(self, nodes_response):
        transport = MockTransport({NODES_PATH: {"json": nodes_response}})
        async with httpx.AsyncClient(transport=transport, base_url="http://listener:8080") as http:
            rows = await ListenerClient(http=http).get_nodes()

        assert [row["id"] for row in rows] == ["n1", "n2"]


class TestScrapesFromEnv:
    """Tests for env-declared scrapes."""

    def test_pairs(self):
        scrapes = scrapes_from_env(
            {
                "SERVICE_NAME_1": "node-exporter",
                "SCRAPE_PORT_1": "9100",
                "SERVICE_NAME_2": "cadvisor",
                "SCRAPE_PORT_2": "8080",
                "PATH": "/usr/bin",
            }
        )

        assert [(s.service_name, s.port) for s in scrapes] == [("node-exporter", 9100), ("cadvisor", 8080)]
        assert all(s.discovery == DiscoveryMode.STATIC for s in scrapes)

    def test_unpaired_raises(self):
        with pytest.raises(ValueError, match="not valid"):
            scrapes_from_env({"SERVICE_NAME_1": "node-exporter"})

    def test_bad_port_raises(self):
        with pytest.raises(ValueError, match="SCRAPE_PORT_1"):
            scrapes_from_env({"SERVICE_NAME_1": "node-exporter", "SCRAPE_PORT_1": "http"})


class TestLoadInitial:
    """Tests for MonitorService.load_initial."""

    @pytest.mark.asyncio
    async def test_seeds_store(self, services_response, nodes_response):
        service = make_service()
        transport = MockTransport(
            {
                SERVICES_PATH: {"json": services_response},
                NODES_PATH: {"json": nodes_response},
            }
        )
        async with httpx.AsyncClient(transport=transport, base_url="http://listener:8080") as http:
            await service.load_initial(
                ListenerClient(http=http),
                {"SERVICE_NAME_1": "node-exporter", "SCRAPE_PORT_1": "9100"},
            )

        store = service.store
        assert sorted(store.scrapes) == ["my-service", "node-exporter"]
        assert sorted(store.alerts) == ["myservice_mem", "myservice_replicas"]
        assert store.alerts["myservice_replicas"].expression.endswith("< 3")
        assert store.node_labels["n1"] == {"env": "prod", "region": "eu"}
        assert store.node_labels["n2"] == {"env": "dev"}

    @pytest.mark.asyncio
    async def test_node_fetch_failure_ignored(self, services_response):
        service = make_service()
        transport = MockTransport(
            {
                SERVICES_PATH: {"json": services_response},
                NODES_PATH: {"status_code": 503},
            }
        )
        async with httpx.AsyncClient(transport=transport, base_url="http://listener:8080") as http:
            await service.load_initial(ListenerClient(http=http), {})

        assert "my-service" in service.store.scrapes
        assert len(service.store.node_labels) == 0

    @pytest.mark.asyncio
    async def test_service_fetch_failure_raises(self):
        service = make_service()
        transport = MockTransport({SERVICES_PATH: {"status_code": 500}})
        async with httpx.AsyncClient(transport=transport, base_url="http://listener:8080") as http:
            with pytest.raises(httpx.HTTPStatusError):
                await service.load_initial(ListenerClient(http=http), {})

    @pytest.mark.asyncio
    async def test_env_scrapes_without_listener(self):
        service = make_service()

        await service.load_initial(None, {"SERVICE_NAME_1": "node-exporter", "SCRAPE_PORT_1": "9100"})

        assert service.store.scrapes["node-exporter"].discovery == DiscoveryMode.STATIC
