"""Environment-based configuration for the monitor service."""

from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings


def split_csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    """Monitor service configuration.

    Settings are read from unprefixed environment variables, using the
    names the sidecar has always been deployed with. For example:
        LISTENER_ADDRESS=swarm-listener
        ARG_ALERTMANAGER_URL=http://alert-manager:9093
        DF_NODE_TARGET_LABELS=env,aws_region
    """

    # Inventory service
    listener_address: str = ""
    listener_timeout_seconds: float = 30.0

    # Daemon config artifacts
    alertmanager_url: str = Field(
        default="",
        validation_alias=AliasChoices("ARG_ALERTMANAGER_URL", "ALERTMANAGER_URL"),
    )
    config_path: Path = Path("/etc/prometheus/prometheus.yml")
    file_sd_dir: Path = Path("/etc/prometheus/file_sd")
    secrets_dir: Path = Path("/run/secrets")

    # Comma-separated label allow-lists
    node_target_labels: str = Field(
        default="",
        validation_alias=AliasChoices("DF_NODE_TARGET_LABELS", "NODE_TARGET_LABELS"),
    )
    scrape_target_labels: str = Field(
        default="",
        validation_alias=AliasChoices("DF_SCRAPE_TARGET_LABELS", "SCRAPE_TARGET_LABELS"),
    )

    # HTTP surface
    api_prefix: str = "/v1/docker-flow-monitor"
    host: str = "0.0.0.0"
    port: int = 8080

    # Daemon process
    prometheus_binary: str = "prometheus"
    start_daemon: bool = True

    model_config = {"case_sensitive": False, "populate_by_name": True}

    @property
    def node_label_names(self) -> list[str]:
        return split_csv(self.node_target_labels)

    @property
    def scrape_label_names(self) -> list[str]:
        return split_csv(self.scrape_target_labels)


settings = Settings()
