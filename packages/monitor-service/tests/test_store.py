"""Tests for the reconciliation store."""

import pytest

from monitor_service.decode import parse_label_csv, parse_nodes, scrape_from_params
from monitor_service.shortcuts import ShortcutTable
from monitor_service.store import ReconciliationStore
from monitor_service.types import DiscoveryMode, NodeInfo, ScrapeTarget


@pytest.fixture
def store():
    """Store with the packaged shortcuts."""
    return ReconciliationStore(ShortcutTable.builtin())


# ===== Decode Tests =====


class TestDecode:
    """Tests for flat parameter decoding."""

    def test_label_csv(self):
        assert parse_label_csv("a=1,b=2,junk") == {"a": "1", "b": "2"}
        assert parse_label_csv("") == {}

    def test_nodes(self):
        nodes = parse_nodes('[{"Name": "node-1", "Addr": "10.0.0.1", "ID": "n1"}]')
        assert nodes == frozenset({NodeInfo(name="node-1", addr="10.0.0.1", id="n1")})

    def test_malformed_nodes(self):
        assert parse_nodes("not json") == frozenset()

    def test_scrape_from_params(self):
        target = scrape_from_params(
            {
                "serviceName": "svc",
                "scrapePort": "1234",
                "scrapeType": "static_configs",
                "metricsPath": "/stats",
                "env": "prod",
            },
            label_names=["env", "missing"],
        )
        assert target.service_name == "svc"
        assert target.port == 1234
        assert target.discovery == DiscoveryMode.STATIC
        assert target.metrics_path == "/stats"
        assert target.labels == {"env": "prod"}

    def test_bad_port_is_zero(self):
        assert scrape_from_params({"serviceName": "svc", "scrapePort": "abc"}).port == 0


# ===== Scrape Tests =====


class TestScrapes:
    """Tests for scrape upsert and removal."""

    def test_upsert_valid(self, store):
        assert store.upsert_scrape(ScrapeTarget(service_name="svc", port=8080)) is True
        assert store.scrapes["svc"].port == 8080

    def test_second_submission_replaces_first(self, store):
        """No stale fields survive a resubmission."""
        store.upsert_scrape(ScrapeTarget(service_name="svc", port=8080, interval="15s", labels={"a": "1"}))
        store.upsert_scrape(ScrapeTarget(service_name="svc", port=9090))

        assert store.scrapes["svc"] == ScrapeTarget(service_name="svc", port=9090)

    @pytest.mark.parametrize(
        "target",
        [
            ScrapeTarget(service_name="", port=8080),
            ScrapeTarget(service_name="svc", port=0),
            ScrapeTarget(service_name="svc", port=-1),
            ScrapeTarget(service_name="../escape", port=8080),
            ScrapeTarget(service_name="a/b", port=8080),
            ScrapeTarget(service_name="a\\b", port=8080),
            ScrapeTarget(service_name="..", port=8080),
        ],
    )
    def test_invalid_scrape_is_dropped(self, store, target):
        assert store.upsert_scrape(target) is False
        assert len(store.scrapes) == 0

    def test_nodes_force_file_sd(self, store):
        nodes = frozenset({NodeInfo(name="node-1", addr="10.0.0.1")})
        store.upsert_scrape(
            ScrapeTarget(service_name="svc", port=8080, discovery=DiscoveryMode.STATIC, nodes=nodes)
        )

        assert store.scrapes["svc"].discovery == DiscoveryMode.FILE_SD

    def test_remove_returns_removed(self, store):
        store.upsert_scrape(ScrapeTarget(service_name="svc", port=8080))

        removed = store.remove_scrape("svc")

        assert removed.service_name == "svc"
        assert "svc" not in store.scrapes

    def test_remove_unknown_returns_zero_value(self, store):
        assert store.remove_scrape("never-added") == ScrapeTarget()

    def test_maps_are_read_only(self, store):
        with pytest.raises(TypeError):
            store.scrapes["svc"] = ScrapeTarget(service_name="svc", port=1)


# ===== Alert Tests =====


class TestAlerts:
    """Tests for alert upsert and deletion."""

    def test_primary_alert_expanded(self, store):
        added = store.upsert_alerts(
            {
                "serviceName": "my-service",
                "alertName": "my-alert",
                "alertIf": "@service_mem_limit:0.8",
                "alertFor": "my-for",
            }
        )

        assert [a.key for a in added] == ["myservice_myalert"]
        alert = store.alerts["myservice_myalert"]
        assert alert.expression.endswith("> 0.8")
        assert alert.for_duration == "my-for"
        assert alert.labels == {"receiver": "system", "service": "my-service"}

    def test_indexed_alerts(self, store):
        added = store.upsert_alerts(
            {
                "serviceName": "svc",
                "alertName": "a",
                "alertIf": "up == 0",
                "alertName.1": "b",
                "alertIf.1": "up == 1",
                "alertName.2": "c",
                "alertIf.2": "up == 2",
            }
        )

        assert [a.alert_name for a in added] == ["a", "b", "c"]

    def test_indexed_alerts_stop_at_gap(self, store):
        """.3 is not read when .2 is missing."""
        store.upsert_alerts(
            {
                "serviceName": "svc",
                "alertName.1": "b",
                "alertIf.1": "up == 1",
                "alertName.3": "d",
                "alertIf.3": "up == 3",
            }
        )

        assert sorted(store.alerts) == ["svc_b"]

    def test_indexed_alerts_stop_at_invalid(self, store):
        store.upsert_alerts(
            {
                "serviceName": "svc",
                "alertName.1": "b",
                "alertIf.1": "",
                "alertName.2": "c",
                "alertIf.2": "up == 2",
            }
        )

        assert len(store.alerts) == 0

    def test_invalid_primary_does_not_block_indexed(self, store):
        store.upsert_alerts(
            {
                "serviceName": "svc",
                "alertName": "a",
                "alertName.1": "b",
                "alertIf.1": "up == 1",
            }
        )

        assert sorted(store.alerts) == ["svc_b"]

    def test_same_pair_collides(self, store):
        store.upsert_alerts({"serviceName": "svc", "alertName": "a", "alertIf": "up == 0"})
        store.upsert_alerts({"serviceName": "svc", "alertName": "a", "alertIf": "up == 1"})

        assert len(store.alerts) == 1
        assert store.alerts["svc_a"].expression == "up == 1"

    def test_annotations_and_labels_parsed(self, store):
        store.upsert_alerts(
            {
                "serviceName": "svc",
                "alertName": "a",
                "alertIf": "up == 0",
                "alertAnnotations": "summary=down,runbook=http://x",
                "alertLabels": "severity=high",
                "replicas": "3",
            }
        )

        alert = store.alerts["svc_a"]
        assert alert.annotations == {"summary": "down", "runbook": "http://x"}
        assert alert.labels == {"severity": "high"}
        assert alert.replicas == 3

    def _add_mixed_alerts(self, store):
        store.upsert_alerts(
            {
                "serviceName": "svc",
                "alertName": "keep",
                "alertIf": "up == 0",
                "alertPersistent": "true",
                "alertName.1": "drop",
                "alertIf.1": "up == 1",
            }
        )
        store.upsert_alerts({"serviceName": "other", "alertName": "a", "alertIf": "up == 0"})

    def test_delete_keep_persistent(self, store):
        """Removal leaves exactly the persistent alerts of the service."""
        self._add_mixed_alerts(store)

        removed = store.delete_alerts_for_service("svc", keep_persistent=True)

        assert [a.key for a in removed] == ["svc_drop"]
        assert sorted(store.alerts) == ["other_a", "svc_keep"]

    def test_delete_all(self, store):
        """Reconfiguration leaves no alerts of the service."""
        self._add_mixed_alerts(store)

        removed = store.delete_alerts_for_service("svc")

        assert [a.key for a in removed] == ["svc_drop", "svc_keep"]
        assert sorted(store.alerts) == ["other_a"]

    def test_delete_unknown_service(self, store):
        assert store.delete_alerts_for_service("never-added") == []

    def test_delete_leaves_underscored_service(self, store):
        """Removing a service keeps the alerts of a longer stack-style name."""
        store.upsert_alerts({"serviceName": "exporter", "alertName": "a", "alertIf": "up == 0"})
        store.upsert_alerts({"serviceName": "exporter_node", "alertName": "a", "alertIf": "up == 0"})

        removed = store.delete_alerts_for_service("exporter", keep_persistent=True)

        assert [a.service_name for a in removed] == ["exporter"]
        assert [a.service_name for a in store.alerts.values()] == ["exporter_node"]

    def test_underscored_pairs_stored_separately(self, store):
        store.upsert_alerts({"serviceName": "a", "alertName": "b_c", "alertIf": "up == 0"})
        store.upsert_alerts({"serviceName": "a_b", "alertName": "c", "alertIf": "up == 1"})

        assert len(store.alerts) == 2
        assert store.delete_alerts_for_service("a_b")[0].alert_name == "c"
        assert [a.alert_name for a in store.alerts.values()] == ["b_c"]


# ===== Node Label Tests =====


class TestNodeLabels:
    """Tests for node label storage."""

    def test_only_allowed_labels_stored(self, store):
        labels = store.upsert_node_labels("n1", ["env", "region"], {"id": "n1", "env": "prod", "other": "x"})

        assert labels == {"env": "prod"}
        assert store.node_labels["n1"] == {"env": "prod"}

    def test_labels_replaced(self, store):
        store.upsert_node_labels("n1", ["env", "region"], {"env": "prod", "region": "eu"})
        store.upsert_node_labels("n1", ["env", "region"], {"env": "dev"})

        assert store.node_labels["n1"] == {"env": "dev"}

    def test_empty_node_id_ignored(self, store):
        assert store.upsert_node_labels("", ["env"], {"env": "prod"}) == {}
        assert len(store.node_labels) == 0

    def test_remove(self, store):
        store.upsert_node_labels("n1", ["env"], {"env": "prod"})

        assert store.remove_node_labels("n1") == {"env": "prod"}
        assert store.remove_node_labels("n1") == {}
