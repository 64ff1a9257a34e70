"""Config sidecar for the metrics daemon.

Accepts scrape targets and alert rules over HTTP, renders them into the
daemon's configuration and reloads the daemon.
"""

from .renderer import ConfigRenderer
from .shortcuts import ShortcutTable
from .store import ReconciliationStore

__all__ = ["ConfigRenderer", "ReconciliationStore", "ShortcutTable"]
