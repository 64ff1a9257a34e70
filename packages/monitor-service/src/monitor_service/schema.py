"""
Static schema of the metrics daemon's configuration document.

The config is held as plain dicts and lists while it is assembled. This
module describes its shape, field by field, so that:

1. envconfig can walk an environment key path (GLOBAL__SCRAPE_INTERVAL,
   SCRAPE_CONFIGS_2__DNS_SD_CONFIGS_1__PORT, ...) without reflection
2. canonical() can emit the document in a stable field order with empty
   values dropped, keeping rendered output byte-stable

Only the parts of the daemon's format this service writes or passes
through are described. Keys outside the schema (e.g. from scrape
fragments) are kept verbatim after the known ones.

Service discovery and HTTP client settings are flattened into the
structs that embed them, mirroring the daemon's own format.
"""

from dataclasses import dataclass
from typing import Any, Union


@dataclass
class Scalar:
    """A leaf value; type is str, int or bool."""

    type: type


@dataclass
class ListOf:
    """A list; env paths address entries as name_N (1-based)."""

    item: "Node"


@dataclass
class MapOf:
    """A string-keyed map; env values are inserted one "key=value" at a time."""

    item: "Node"


@dataclass
class Struct:
    """A record; field order is the order fields are rendered in."""

    fields: dict[str, "Node"]


Node = Union[Scalar, ListOf, MapOf, Struct]

STR = Scalar(str)
INT = Scalar(int)
BOOL = Scalar(bool)

TARGET_GROUP = Struct(
    {
        "targets": ListOf(STR),
        "labels": MapOf(STR),
        "source": STR,
    }
)

RELABEL_CONFIG = Struct(
    {
        "source_labels": ListOf(STR),
        "separator": STR,
        "regex": STR,
        "modulus": INT,
        "target_label": STR,
        "replacement": STR,
        "action": STR,
    }
)

DNS_SD_CONFIG = Struct(
    {
        "names": ListOf(STR),
        "refresh_interval": STR,
        "type": STR,
        "port": INT,
    }
)

FILE_SD_CONFIG = Struct(
    {
        "files": ListOf(STR),
        "refresh_interval": STR,
    }
)

SERVICE_DISCOVERY_FIELDS: dict[str, Node] = {
    "static_configs": ListOf(TARGET_GROUP),
    "dns_sd_configs": ListOf(DNS_SD_CONFIG),
    "file_sd_configs": ListOf(FILE_SD_CONFIG),
}

HTTP_CLIENT_FIELDS: dict[str, Node] = {
    "basic_auth": Struct(
        {
            "username": STR,
            "password": STR,
            "password_file": STR,
        }
    ),
    "bearer_token": STR,
    "bearer_token_file": STR,
    "proxy_url": STR,
    "tls_config": Struct(
        {
            "ca_file": STR,
            "cert_file": STR,
            "key_file": STR,
            "server_name": STR,
            "insecure_skip_verify": BOOL,
        }
    ),
}

GLOBAL_CONFIG = Struct(
    {
        "scrape_interval": STR,
        "scrape_timeout": STR,
        "evaluation_interval": STR,
        "external_labels": MapOf(STR),
    }
)

ALERTMANAGER_CONFIG = Struct(
    {
        **SERVICE_DISCOVERY_FIELDS,
        **HTTP_CLIENT_FIELDS,
        "scheme": STR,
        "path_prefix": STR,
        "timeout": STR,
        "relabel_configs": ListOf(RELABEL_CONFIG),
    }
)

ALERTING_CONFIG = Struct(
    {
        "alert_relabel_configs": ListOf(RELABEL_CONFIG),
        "alertmanagers": ListOf(ALERTMANAGER_CONFIG),
    }
)

SCRAPE_CONFIG = Struct(
    {
        "job_name": STR,
        "honor_labels": BOOL,
        "params": MapOf(ListOf(STR)),
        "scrape_interval": STR,
        "scrape_timeout": STR,
        "metrics_path": STR,
        "scheme": STR,
        "sample_limit": INT,
        **SERVICE_DISCOVERY_FIELDS,
        **HTTP_CLIENT_FIELDS,
        "relabel_configs": ListOf(RELABEL_CONFIG),
        "metric_relabel_configs": ListOf(RELABEL_CONFIG),
    }
)

QUEUE_CONFIG = Struct(
    {
        "capacity": INT,
        "max_shards": INT,
        "max_samples_per_send": INT,
        "batch_send_deadline": STR,
        "max_retries": INT,
        "min_backoff": STR,
        "max_backoff": STR,
    }
)

REMOTE_WRITE_CONFIG = Struct(
    {
        "url": STR,
        "remote_timeout": STR,
        "write_relabel_configs": ListOf(RELABEL_CONFIG),
        **HTTP_CLIENT_FIELDS,
        "queue_config": QUEUE_CONFIG,
    }
)

REMOTE_READ_CONFIG = Struct(
    {
        "url": STR,
        "remote_timeout": STR,
        "read_recent": BOOL,
        "required_matchers": MapOf(STR),
        **HTTP_CLIENT_FIELDS,
    }
)

CONFIG = Struct(
    {
        "global": GLOBAL_CONFIG,
        "alerting": ALERTING_CONFIG,
        "rule_files": ListOf(STR),
        "scrape_configs": ListOf(SCRAPE_CONFIG),
        "remote_write": ListOf(REMOTE_WRITE_CONFIG),
        "remote_read": ListOf(REMOTE_READ_CONFIG),
    }
)


def is_empty(value: Any) -> bool:
    """Zero values are omitted from the rendered document."""
    if value is None or value is False:
        return True
    if isinstance(value, (str, list, dict)):
        return len(value) == 0
    if isinstance(value, int):
        return value == 0
    return False


def canonical(node: Node, value: Any) -> Any:
    """
    Return value ordered and pruned according to node.

    Struct fields come out in schema order followed by unknown keys in
    their original order; map keys are sorted; empty values and empty
    list entries are dropped. Values whose shape does not match the
    schema are returned unchanged.
    """
    if isinstance(node, Struct):
        if not isinstance(value, dict):
            return value
        result = {}
        for name, child in node.fields.items():
            if name in value:
                item = canonical(child, value[name])
                if not is_empty(item):
                    result[name] = item
        for name, item in value.items():
            if name not in node.fields and not is_empty(item):
                result[name] = item
        return result

    if isinstance(node, ListOf):
        if not isinstance(value, list):
            return value
        items = (canonical(node.item, item) for item in value)
        return [item for item in items if not is_empty(item)]

    if isinstance(node, MapOf):
        if not isinstance(value, dict):
            return value
        result = {}
        for key in sorted(value, key=str):
            item = canonical(node.item, value[key])
            if not is_empty(item):
                result[key] = item
        return result

    return value
