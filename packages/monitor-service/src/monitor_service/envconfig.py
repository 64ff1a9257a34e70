"""
Environment variable passthrough into the daemon config.

Variables under the recognised prefixes are mapped onto the config
document by a key path: the name is lower-cased and split on "__", each
segment consuming one schema field.

    GLOBAL__SCRAPE_INTERVAL=20s
    GLOBAL__EXTERNAL_LABELS=cluster=swarm        (maps: one key=value per variable)
    SCRAPE_CONFIGS_1__DNS_SD_CONFIGS_1__NAMES_1=tasks.app
    REMOTE_WRITE_2__QUEUE_CONFIG__MAX_SHARDS=2  (lists: name_N, 1-based)
    SCRAPE_CONFIGS_1__PARAMS=module_1=http_2xx  (map of lists: key_N=value)

Names without "__" use the legacy single-underscore form and are
upgraded first:

    GLOBAL_SCRAPE_INTERVAL              -> GLOBAL__SCRAPE_INTERVAL
    GLOBAL_EXTERNAL_LABELS-CLUSTER=swarm -> GLOBAL__EXTERNAL_LABELS=cluster=swarm
    REMOTE_WRITE_URL                    -> REMOTE_WRITE_1__URL
    REMOTE_READ_URL                     -> REMOTE_READ_1__URL
"""

import logging
import re
from collections.abc import Mapping
from typing import Any

from .exceptions import EnvPathError
from .schema import CONFIG, ListOf, MapOf, Node, Scalar, Struct

logger = logging.getLogger(__name__)

PASSTHROUGH_PREFIXES = (
    "GLOBAL_",
    "ALERTING_",
    "SCRAPE_CONFIGS_",
    "REMOTE_WRITE_",
    "REMOTE_READ_",
)

PATH_SEPARATOR = "__"

_INDEXED = re.compile(r"^(.+)_(\d+)$")

_TRUE = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE = {"0", "f", "F", "FALSE", "false", "False"}


def upgrade_legacy_env(env_key: str, env_value: str) -> tuple[str, str]:
    """Rewrite a single-underscore variable into the key-path form."""
    if PATH_SEPARATOR in env_key:
        return env_key, env_value

    for prefix, upgraded in (
        ("GLOBAL_", "GLOBAL__"),
        ("REMOTE_WRITE_", "REMOTE_WRITE_1__"),
        ("REMOTE_READ_", "REMOTE_READ_1__"),
    ):
        if env_key.startswith(prefix):
            env_key = upgraded + env_key[len(prefix):]
            break

    if env_key.startswith("GLOBAL__EXTERNAL_LABELS"):
        parts = env_key.split("-")
        if len(parts) == 2:
            env_key = parts[0]
            env_value = f"{parts[1].lower()}={env_value}"
    return env_key, env_value


def insert_env(doc: dict[str, Any], env_key: str, env_value: str) -> None:
    """
    Insert one variable into doc.

    Raises:
        EnvPathError: The key does not map onto the schema or the value
            cannot be converted. doc may hold empty containers created
            along the way; they are dropped when rendering.
    """
    env_key, env_value = upgrade_legacy_env(env_key, env_value)
    location = env_key.lower().split(PATH_SEPARATOR)
    _insert(CONFIG, doc, location, 0, env_value, env_key)


def apply_environment(doc: dict[str, Any], environ: Mapping[str, str]) -> list[str]:
    """
    Insert every passthrough variable of environ into doc.

    Variables are applied in sorted name order. A variable that fails to
    insert is logged and skipped.

    Returns:
        Names of the variables that were rejected.
    """
    rejected = []
    for key in sorted(environ):
        if not key.startswith(PASSTHROUGH_PREFIXES):
            continue
        try:
            insert_env(doc, key, environ[key])
        except EnvPathError as e:
            logger.warning("Unable to insert %s into prometheus config: %s", key, e.reason)
            rejected.append(key)
    return rejected


def _insert(
    node: Node, current: Any, location: list[str], index: int, value: str, env_key: str
) -> Any:
    if isinstance(node, Struct):
        return _insert_struct(node, current, location, index, value, env_key)
    if isinstance(node, ListOf):
        return _insert_list(node, current, location, index, value, env_key)
    if isinstance(node, MapOf):
        return _insert_map(node, current, value, env_key)
    if index < len(location):
        raise EnvPathError(env_key, f"{location[index]} is below a scalar field")
    return _convert(node, value, env_key)


def _insert_struct(
    node: Struct, current: Any, location: list[str], index: int, value: str, env_key: str
) -> dict:
    if index >= len(location):
        raise EnvPathError(env_key, "incomplete location")
    target = location[index]
    obj = current if isinstance(current, dict) else {}

    if target in node.fields:
        obj[target] = _insert(node.fields[target], obj.get(target), location, index + 1, value, env_key)
        return obj

    # name_N addresses an entry of the list field "name"
    match = _INDEXED.match(target)
    if match and isinstance(node.fields.get(match.group(1)), ListOf):
        name = match.group(1)
        obj[name] = _insert(node.fields[name], obj.get(name), location, index, value, env_key)
        return obj

    raise EnvPathError(env_key, f"unable to find field {target}")


def _insert_list(
    node: ListOf, current: Any, location: list[str], index: int, value: str, env_key: str
) -> list:
    if index >= len(location):
        raise EnvPathError(env_key, "incomplete location")
    match = _INDEXED.match(location[index])
    if not match:
        raise EnvPathError(env_key, "list entries must be of the form name_N")
    position = int(match.group(2))
    if position < 1:
        raise EnvPathError(env_key, "list indexes start at 1")

    items = current if isinstance(current, list) else []
    while len(items) < position:
        items.append(None)
    items[position - 1] = _insert(node.item, items[position - 1], location, index + 1, value, env_key)
    return items


def _insert_map(node: MapOf, current: Any, value: str, env_key: str) -> dict:
    parts = value.split("=")
    if len(parts) != 2 or not parts[0]:
        raise EnvPathError(env_key, "map values must be of the form key=value")
    key, item_value = parts
    obj = current if isinstance(current, dict) else {}

    if isinstance(node.item, ListOf):
        match = _INDEXED.match(key)
        if not match:
            raise EnvPathError(env_key, "list-valued map keys must be of the form key_N")
        key = match.group(1)
        obj[key] = _insert(node.item, obj.get(key), [match.group(0)], 0, item_value, env_key)
    else:
        obj[key] = _insert(node.item, obj.get(key), [], 0, item_value, env_key)
    return obj


def _convert(node: Scalar, value: str, env_key: str) -> Any:
    if node.type is bool:
        if value in _TRUE:
            return True
        if value in _FALSE:
            return False
        raise EnvPathError(env_key, f"{value!r} is not a bool")
    if node.type is int:
        try:
            return int(value)
        except ValueError:
            raise EnvPathError(env_key, f"{value!r} is not an int") from None
    return value
