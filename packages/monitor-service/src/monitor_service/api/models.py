"""Response models for the monitor API.

Field names are camelCase on the wire to match the request parameters.
"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from ..service import MutationResult, NodeResult
from ..types import AlertRule, ScrapeTarget


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class NodeModel(CamelModel):
    """A node a scrape fans out to."""

    name: str
    addr: str
    id: str = ""


class ScrapeModel(CamelModel):
    """A scrape target as accepted or removed."""

    service_name: str = ""
    scrape_port: int = 0
    metrics_path: str = ""
    scrape_interval: str = ""
    scrape_timeout: str = ""
    scrape_type: str = ""
    scrape_labels: dict[str, str] = {}
    node_info: list[NodeModel] = []

    @classmethod
    def from_target(cls, target: ScrapeTarget) -> "ScrapeModel":
        return cls(
            service_name=target.service_name,
            scrape_port=target.port,
            metrics_path=target.metrics_path,
            scrape_interval=target.interval,
            scrape_timeout=target.timeout,
            scrape_type=target.discovery.value if target.service_name else "",
            scrape_labels=target.labels,
            node_info=[
                NodeModel(name=n.name, addr=n.addr, id=n.id)
                for n in sorted(target.nodes, key=lambda n: (n.name, n.addr))
            ],
        )


class AlertModel(CamelModel):
    """An alert rule after shortcut expansion."""

    service_name: str
    alert_name: str
    alert_name_formatted: str
    alert_if: str
    alert_for: str = ""
    alert_annotations: dict[str, str] = {}
    alert_labels: dict[str, str] = {}
    alert_persistent: bool = False
    replicas: int = 0

    @classmethod
    def from_rule(cls, alert: AlertRule) -> "AlertModel":
        return cls(
            service_name=alert.service_name,
            alert_name=alert.alert_name,
            alert_name_formatted=alert.key,
            alert_if=alert.expression,
            alert_for=alert.for_duration,
            alert_annotations=alert.annotations,
            alert_labels=alert.labels,
            alert_persistent=alert.persistent,
            replicas=alert.replicas,
        )


class ReconfigureResponse(CamelModel):
    """Response from /reconfigure and /remove."""

    status: int
    message: str = ""
    alerts: list[AlertModel] = []
    scrape: ScrapeModel

    @classmethod
    def from_result(cls, result: MutationResult) -> "ReconfigureResponse":
        return cls(
            status=result.status,
            message=result.message,
            alerts=[AlertModel.from_rule(a) for a in result.alerts],
            scrape=ScrapeModel.from_target(result.scrape),
        )


class NodeResponse(CamelModel):
    """Response from /node/reconfigure and /node/remove."""

    status: int
    message: str = ""
    node_id: str
    labels: dict[str, str] = {}

    @classmethod
    def from_result(cls, result: NodeResult) -> "NodeResponse":
        return cls(
            status=result.status,
            message=result.message,
            node_id=result.node_id,
            labels=result.labels,
        )
