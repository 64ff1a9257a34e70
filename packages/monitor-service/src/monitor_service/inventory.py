"""
Inventory sources for the initial store state.

This module provides the ListenerClient class for querying the swarm
listener's HTTP API at startup, plus the SERVICE_NAME_n / SCRAPE_PORT_n
environment convention for statically declared scrapes.

ListenerClient receives an injected httpx.AsyncClient with base_url set to
the listener and a bounded timeout. Methods fail loudly on HTTP errors;
the caller decides which failures are fatal.
"""

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass

import httpx

from .types import DiscoveryMode, ScrapeTarget

logger = logging.getLogger(__name__)

LISTENER_API_PREFIX = "/v1/docker-flow-swarm-listener"
DEFAULT_LISTENER_PORT = 8080

_SCRAPE_ENV = re.compile(r"^(SERVICE_NAME|SCRAPE_PORT)_(\d+)$")


def listener_base_url(address: str) -> str:
    """
    Base URL for the listener address.

    A bare host name gets the http scheme and the listener's default port.
    """
    if address.startswith("http"):
        return address.rstrip("/")
    return f"http://{address}:{DEFAULT_LISTENER_PORT}"


@dataclass
class ListenerClient:
    """
    Swarm listener API client with injected httpx client.

    Attributes:
        http: Pre-configured httpx.AsyncClient with base_url set to the
            listener and a bounded timeout.

    Example:
        async with httpx.AsyncClient(base_url=listener_base_url("listener"), timeout=30) as http:
            client = ListenerClient(http=http)
            for row in await client.get_services():
                print(row["serviceName"])
    """

    http: httpx.AsyncClient

    async def get_services(self) -> list[dict[str, str]]:
        """
        Get the monitored services.

        Each row is a flat parameter map, decoded exactly like a
        reconfigure request.

        Raises:
            httpx.HTTPError: On connection errors, timeouts and 4xx/5xx.
        """
        response = await self.http.get(f"{LISTENER_API_PREFIX}/get-services")
        response.raise_for_status()
        rows = _string_rows(response.json())
        logger.info("Received %d service(s) from the listener", len(rows))
        return rows

    async def get_nodes(self) -> list[dict[str, str]]:
        """
        Get the swarm nodes.

        Each row carries the node's id plus its labels.

        Raises:
            httpx.HTTPError: On connection errors, timeouts and 4xx/5xx.
        """
        response = await self.http.get(f"{LISTENER_API_PREFIX}/get-nodes")
        response.raise_for_status()
        rows = _string_rows(response.json())
        logger.info("Received %d node(s) from the listener", len(rows))
        return rows


def _string_rows(data: object) -> list[dict[str, str]]:
    if not isinstance(data, list):
        return []
    return [
        {str(k): "" if v is None else str(v) for k, v in row.items()}
        for row in data
        if isinstance(row, dict)
    ]


def scrapes_from_env(environ: Mapping[str, str]) -> list[ScrapeTarget]:
    """
    Static scrapes declared as SERVICE_NAME_n / SCRAPE_PORT_n pairs.

    Raises:
        ValueError: A name or port has no partner, or a port is not a number.
    """
    names: dict[int, str] = {}
    ports: dict[int, str] = {}
    for key, value in environ.items():
        match = _SCRAPE_ENV.match(key)
        if not match:
            continue
        target = names if match.group(1) == "SERVICE_NAME" else ports
        target[int(match.group(2))] = value

    if set(names) != set(ports):
        raise ValueError(
            "SCRAPE_PORT_* and SERVICE_NAME_* environment variable configuration are not valid"
        )

    scrapes = []
    for index in sorted(names):
        if not names[index] or not ports[index]:
            continue
        try:
            port = int(ports[index])
        except ValueError:
            raise ValueError(
                f"SCRAPE_PORT_{index} is not a number: {ports[index]!r}"
            ) from None
        scrapes.append(
            ScrapeTarget(
                service_name=names[index],
                port=port,
                discovery=DiscoveryMode.STATIC,
            )
        )
    return scrapes
