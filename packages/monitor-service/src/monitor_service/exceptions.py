"""
Exception classes for the monitor service.

- RenderError: writing the daemon config, rule file or a side file failed
- EnvPathError: an environment variable does not map onto the config schema
- ShortcutLoadError: a shortcut definition file is malformed

Validation failures of submitted scrapes and alerts are not exceptions;
invalid records are simply not stored.
"""

from pathlib import Path


class RenderError(Exception):
    """
    Raised when a rendered artifact cannot be written.

    Not retried; the HTTP caller receives a 500 and may resubmit.

    Attributes:
        path: File that failed to write or delete
    """

    def __init__(self, path: Path, cause: OSError) -> None:
        self.path = path
        super().__init__(f"Unable to write {path}: {cause.strerror or cause}")


class EnvPathError(ValueError):
    """
    Raised when an environment key path cannot be inserted into the config.

    Attributes:
        env_key: The (normalized) key that failed
        reason: What went wrong
    """

    def __init__(self, env_key: str, reason: str) -> None:
        self.env_key = env_key
        self.reason = reason
        super().__init__(f"Unable to insert {env_key}: {reason}")


class ShortcutLoadError(Exception):
    """Raised when a shortcut definition source is not a name -> definition mapping."""

    def __init__(self, source: str, reason: str) -> None:
        self.source = source
        super().__init__(f"Invalid shortcut definitions in {source}: {reason}")
