"""
Config renderer: store state -> files the metrics daemon reads.

Every render regenerates, from the store alone:
- the main config (YAML) at config_path
- the alert rule file "alert.rules" next to it, when any alert exists
- one file-SD side file per node-bearing scrape in file_sd_dir

Side files no scrape refers to any more are deleted, so the side-file
directory always mirrors current state. Output is ordered
deterministically; the same state renders the same bytes.

Write failures raise RenderError and are not retried.
"""

import json
import logging
import os
import tempfile
import textwrap
from collections.abc import Mapping
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

import yaml

from .envconfig import apply_environment
from .exceptions import RenderError
from .schema import CONFIG, canonical
from .store import ReconciliationStore
from .types import AlertKey, AlertRule, DiscoveryMode, NodeId, ScrapeTarget

logger = logging.getLogger(__name__)

ALERT_RULES_FILE = "alert.rules"
ALERT_RULES_GROUP = "alert.rules"
SCRAPE_FRAGMENT_PREFIX = "scrape_"
DEFAULT_METRICS_PATH = "/metrics"

# Long alert expressions must stay on one line
_YAML_WIDTH = 1 << 16


def dump_yaml(doc: Any) -> str:
    return yaml.safe_dump(
        doc,
        sort_keys=False,
        default_flow_style=False,
        allow_unicode=True,
        width=_YAML_WIDTH,
    )


def alertmanager_config(url: str) -> dict[str, Any] | None:
    """Alertmanager entry for url, or None if url has no scheme and host."""
    parts = urlsplit(url)
    if not parts.scheme or not parts.netloc:
        return None
    return {
        "static_configs": [{"targets": [parts.netloc]}],
        "scheme": parts.scheme,
    }


def rules_document(alerts: Mapping[AlertKey, AlertRule]) -> dict[str, Any]:
    """Alert rule file content, one rule per alert ordered by key."""
    rules = []
    for key in sorted(alerts):
        alert = alerts[key]
        rule: dict[str, Any] = {"alert": alert.key, "expr": alert.expression}
        if alert.for_duration:
            rule["for"] = alert.for_duration
        if alert.labels:
            rule["labels"] = dict(sorted(alert.labels.items()))
        if alert.annotations:
            rule["annotations"] = dict(sorted(alert.annotations.items()))
        rules.append(rule)
    return {"groups": [{"name": ALERT_RULES_GROUP, "rules": rules}]}


def target_groups(
    target: ScrapeTarget, node_labels: Mapping[NodeId, Mapping[str, str]]
) -> list[dict[str, Any]]:
    """
    File-SD target groups for a node-bearing scrape, one per node.

    Labels are the scrape's static labels, then node and service, then
    the node's own labels (when its ID has any).
    """
    groups = []
    for node in sorted(target.nodes, key=lambda n: (n.name, n.addr, n.id)):
        labels = dict(target.labels)
        labels["node"] = node.name
        labels["service"] = target.service_name
        if node.id and node_labels.get(node.id):
            labels.update(node_labels[node.id])
        groups.append(
            {
                "targets": [f"{node.addr}:{target.port}"],
                "labels": labels,
            }
        )
    return groups


def load_scrape_fragments(directory: Path) -> list[dict[str, Any]]:
    """
    Read scrape_* fragment files from directory.

    Each file holds a YAML list of scrape configs. Files written in the
    old indented style are dedented first. Unparseable files are skipped.
    """
    if not directory.is_dir():
        return []

    fragments = []
    for path in sorted(directory.iterdir()):
        if not path.is_file() or not path.name.startswith(SCRAPE_FRAGMENT_PREFIX):
            continue
        try:
            content = yaml.safe_load(textwrap.dedent(path.read_text(encoding="utf-8")))
        except (OSError, yaml.YAMLError) as e:
            logger.warning("Skipping scrape fragment %s: %s", path, e)
            continue
        if not isinstance(content, list) or not all(isinstance(c, dict) for c in content):
            logger.warning("Skipping scrape fragment %s: not a list of scrape configs", path)
            continue
        fragments.extend(content)
    return fragments


class ConfigRenderer:
    """
    Writes the daemon's configuration for the current store state.

    Args:
        config_path: Main config file; the rule file is written beside it.
        file_sd_dir: Directory holding file-SD side files. Its *.json
            content is owned by the renderer.
        secrets_dir: Directory searched for scrape_* fragments.
        alertmanager_url: Optional alertmanager to route alerts to.
        environ: Source of passthrough variables (defaults to os.environ).
    """

    def __init__(
        self,
        config_path: Path,
        file_sd_dir: Path,
        secrets_dir: Path | None = None,
        alertmanager_url: str = "",
        environ: Mapping[str, str] | None = None,
    ):
        self.config_path = Path(config_path)
        self.file_sd_dir = Path(file_sd_dir)
        self.secrets_dir = Path(secrets_dir) if secrets_dir else None
        self.alertmanager_url = alertmanager_url
        self._environ = environ if environ is not None else os.environ

    @property
    def rules_path(self) -> Path:
        return self.config_path.parent / ALERT_RULES_FILE

    def side_file_path(self, service_name: str) -> Path:
        return self.file_sd_dir / f"{service_name}.json"

    def scrape_config(self, target: ScrapeTarget) -> dict[str, Any]:
        """Scrape job for one target."""
        job: dict[str, Any] = {
            "job_name": target.service_name,
            "scrape_interval": target.interval,
            "scrape_timeout": target.timeout,
            "metrics_path": target.metrics_path or DEFAULT_METRICS_PATH,
        }
        if target.nodes:
            job["file_sd_configs"] = [{"files": [str(self.side_file_path(target.service_name))]}]
        elif target.discovery == DiscoveryMode.STATIC:
            job["static_configs"] = [{"targets": [f"{target.service_name}:{target.port}"]}]
        else:
            job["dns_sd_configs"] = [
                {
                    "names": [f"tasks.{target.service_name}"],
                    "type": "A",
                    "port": target.port,
                }
            ]
        return job

    def build(self, store: ReconciliationStore) -> dict[str, Any]:
        """
        Assemble the main config document.

        Passthrough variables go in first, so dynamic scrapes and the
        alertmanager are appended after any operator-declared entries.
        """
        doc: dict[str, Any] = {}
        apply_environment(doc, self._environ)

        scrape_configs = doc.setdefault("scrape_configs", [])
        for name in sorted(store.scrapes):
            scrape_configs.append(self.scrape_config(store.scrapes[name]))
        if self.secrets_dir is not None:
            scrape_configs.extend(load_scrape_fragments(self.secrets_dir))

        if self.alertmanager_url:
            am = alertmanager_config(self.alertmanager_url)
            if am is None:
                logger.warning(
                    "Unable to insert alertmanager url %s into prometheus config",
                    self.alertmanager_url,
                )
            else:
                alerting = doc.setdefault("alerting", {})
                alerting.setdefault("alertmanagers", []).append(am)

        if store.alerts:
            doc.setdefault("rule_files", []).append(ALERT_RULES_FILE)

        return canonical(CONFIG, doc)

    def render_config(self, store: ReconciliationStore) -> str:
        return dump_yaml(self.build(store))

    def render_rules(self, store: ReconciliationStore) -> str:
        return dump_yaml(rules_document(store.alerts))

    def write(self, store: ReconciliationStore) -> None:
        """
        Write every artifact for the current state.

        Side files are written first and the main config last, so the
        config never references a file that does not exist yet.

        Raises:
            RenderError: A file could not be written or removed.
        """
        self._mkdir(self.config_path.parent)
        self._mkdir(self.file_sd_dir)

        self._write_side_files(store)

        if store.alerts:
            logger.info("Writing to %s", self.rules_path)
            self._write(self.rules_path, self.render_rules(store))
        else:
            self._remove(self.rules_path)

        logger.info("Writing to %s", self.config_path)
        self._write(self.config_path, self.render_config(store))

    def _write_side_files(self, store: ReconciliationStore) -> None:
        current = set()
        for name in sorted(store.scrapes):
            target = store.scrapes[name]
            if not target.nodes:
                continue
            path = self.side_file_path(name)
            groups = target_groups(target, store.node_labels)
            self._write(path, json.dumps(groups, indent=2, sort_keys=True) + "\n")
            current.add(path)

        for path in sorted(self.file_sd_dir.glob("*.json")):
            if path not in current:
                logger.info("Removing orphaned side file %s", path)
                self._remove(path)

    def _mkdir(self, path: Path) -> None:
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise RenderError(path, e) from e

    def _write(self, path: Path, content: str) -> None:
        # Replace atomically; the daemon may read side files at any time
        try:
            fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(content)
                os.chmod(tmp, 0o644)
                os.replace(tmp, path)
            except BaseException:
                Path(tmp).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise RenderError(path, e) from e

    def _remove(self, path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise RenderError(path, e) from e
