"""Daemon process manager for the metrics daemon.

Starts the daemon with flags derived from ARG_* environment variables and
reloads it with SIGHUP after every config write.

All commands use asyncio.create_subprocess_exec with array arguments.
Flags are passed as separate arguments; no shell is involved.
"""

import asyncio
import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger(__name__)

ARG_PREFIX = "ARG_"

# Flags renamed between daemon 1.x and 2.x
LEGACY_FLAGS = {
    "storage.local.path": "storage.tsdb.path",
    "storage.local.retention": "storage.tsdb.retention",
    "query.staleness-delta": "query.lookback-delta",
}

# Handled by the config renderer, not a daemon flag
SKIPPED_FLAGS = {"alertmanager.url"}


class ProcessRunner(Protocol):
    """Starts and reloads the metrics daemon."""

    async def run(self) -> dict[str, Any]: ...

    async def reload(self) -> dict[str, Any]: ...


def flags_from_env(environ: Mapping[str, str]) -> list[str]:
    """Convert ARG_* variables into daemon flags.

    ARG_WEB_ROUTE-PREFIX=/monitor becomes --web.route-prefix=/monitor.
    An empty value yields a bare flag. Legacy 1.x flag names are
    translated to their 2.x equivalents.

    Args:
        environ: Environment to read, e.g. os.environ

    Returns:
        Flags in sorted variable order
    """
    flags = []
    for env_key in sorted(environ):
        if not env_key.startswith(ARG_PREFIX):
            continue
        key = env_key[len(ARG_PREFIX):].lower().replace("_", ".")
        value = environ[env_key]

        if key == "web.enable-remote-shutdown":
            if value != "true":
                continue
            key, value = "web.enable-lifecycle", ""
        elif key in SKIPPED_FLAGS:
            continue
        key = LEGACY_FLAGS.get(key, key)

        flags.append(f"--{key}={value}" if value else f"--{key}")
    return flags


class PrometheusProcess:
    """Process manager for the metrics daemon.

    Implements ProcessRunner. Failures are reported in the result dict
    and never raised.

    Note:
        Tests mock asyncio.create_subprocess_exec, so no daemon binary
        is needed to exercise this class.
    """

    def __init__(
        self,
        binary: str = "prometheus",
        config_path: Path | None = None,
        environ: Mapping[str, str] | None = None,
    ):
        """Initialize process manager.

        Args:
            binary: Daemon executable name or path
            config_path: Config file passed as --config.file unless an
                ARG_CONFIG_FILE variable sets it already
            environ: Source of ARG_* variables (defaults to os.environ)
        """
        self.binary = binary
        self.config_path = config_path
        self._environ = environ if environ is not None else os.environ

    def command(self) -> list[str]:
        """Full daemon command line as an argument list."""
        flags = flags_from_env(self._environ)
        if self.config_path is not None and not any(
            f.startswith("--config.file") for f in flags
        ):
            flags.insert(0, f"--config.file={self.config_path}")
        return [self.binary, *flags]

    async def run(self) -> dict[str, Any]:
        """Start the daemon and wait for it to exit.

        The daemon inherits this process's stdout and stderr. Cancelling
        the call terminates the daemon.

        Returns:
            Dict with command, returncode, success, stdout, stderr
        """
        cmd = self.command()
        logger.info("Starting Prometheus: %s", " ".join(cmd))
        try:
            proc = await asyncio.create_subprocess_exec(*cmd)
        except OSError as e:
            logger.error("Unable to start Prometheus: %s", e)
            return _result("run", None, "", str(e))

        try:
            returncode = await proc.wait()
        except asyncio.CancelledError:
            logger.info("Stopping Prometheus")
            proc.terminate()
            await proc.wait()
            raise

        logger.info("Prometheus exited with status %s", returncode)
        return _result("run", returncode, "", "")

    async def reload(self) -> dict[str, Any]:
        """Send SIGHUP to the daemon via pkill.

        Returns:
            Dict with command, returncode, success, stdout, stderr
        """
        logger.info("Reloading Prometheus")
        try:
            proc = await asyncio.create_subprocess_exec(
                "pkill",
                "-HUP",
                Path(self.binary).name,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error("Unable to reload Prometheus: %s", e)
            return _result("reload", None, "", str(e))

        stdout, stderr = await proc.communicate()
        result = _result(
            "reload",
            proc.returncode,
            stdout.decode("utf-8").strip(),
            stderr.decode("utf-8").strip(),
        )
        if result["success"]:
            logger.info("Prometheus was reloaded")
        else:
            logger.error("Prometheus reload failed: %s", result["error"])
        return result


def _result(command: str, returncode: int | None, stdout: str, stderr: str) -> dict[str, Any]:
    success = returncode == 0
    error = ""
    if not success:
        error = stderr or f"{command} exited with status {returncode}"
    return {
        "command": command,
        "returncode": returncode,
        "success": success,
        "stdout": stdout,
        "stderr": stderr,
        "error": error,
    }
