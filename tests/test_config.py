"""Tests for the extensions configuration."""

import pytest

from helm_extensions.config import (
    ClusterExtensions,
    ControllerConfig,
    StorageType,
)
from helm_extensions.exceptions import InputException

CLUSTER_CONFIG = """\
apiVersion: k0s.k0sproject.io/v1beta1
kind: ClusterConfig
metadata:
  name: k0s
spec:
  extensions:
    helm:
      repositories:
        - name: stable
          url: https://charts.helm.sh/stable
        - name: private
          url: https://charts.example.com
          username: admin
          password: hunter2
          caFile: /etc/ca.pem
          insecure: true
      charts:
        - name: prometheus-stack
          chartname: prometheus-community/prometheus
          version: "14.6.1"
          namespace: monitoring
          values: |
            server:
              retention: 1d
        - name: nginx
          chartname: stable/nginx
    storage:
      type: openebs_local_storage
      create_default_storage_class: true
"""


def test_parse_cluster_config() -> None:
    """Test parsing the extensions from a cluster configuration."""
    extensions = ClusterExtensions.parse_yaml(CLUSTER_CONFIG)
    assert extensions.helm is not None
    assert [repo.name for repo in extensions.helm.repositories] == [
        "stable",
        "private",
    ]
    private = extensions.helm.repositories[1]
    assert private.username == "admin"
    assert private.password == "hunter2"
    assert private.ca_file == "/etc/ca.pem"
    assert private.insecure
    assert private.cert_file is None

    prometheus, nginx = extensions.helm.charts
    assert prometheus.chart_name == "prometheus-community/prometheus"
    assert prometheus.version == "14.6.1"
    assert prometheus.target_ns == "monitoring"
    assert prometheus.values == "server:\n  retention: 1d\n"
    assert nginx.version == ""
    assert nginx.values == ""
    assert nginx.target_ns == "default"

    assert extensions.storage.type == StorageType.OPENEBS_LOCAL
    assert extensions.storage.create_default_storage_class


def test_parse_extensions_mapping() -> None:
    """Test parsing the extensions mapping without the cluster config."""
    extensions = ClusterExtensions.parse_doc(
        {"helm": {"charts": [{"name": "foo", "chartname": "stable/foo"}]}}
    )
    assert extensions.helm is not None
    assert extensions.helm.repositories == []
    assert extensions.helm.charts[0].name == "foo"
    assert extensions.storage.type == StorageType.EXTERNAL
    assert not extensions.storage.create_default_storage_class


def test_empty_extensions() -> None:
    """Test a cluster config without extensions."""
    extensions = ClusterExtensions.parse_doc({"spec": {"network": {}}})
    assert extensions.helm is None
    assert extensions.storage.type == StorageType.EXTERNAL


@pytest.mark.parametrize(
    "doc",
    [
        {"helm": {"charts": [{"name": "foo"}]}},
        {"helm": {"charts": [{"name": "", "chartname": "stable/foo"}]}},
        {"helm": {"repositories": [{"name": "stable"}]}},
        {"helm": {"repositories": [{"name": "stable", "url": ""}]}},
        {"storage": {"type": "nfs"}},
        {"spec": "invalid"},
    ],
)
def test_invalid_extensions(doc: dict) -> None:
    """Test invalid extensions are rejected."""
    with pytest.raises(InputException):
        ClusterExtensions.parse_doc(doc)


def test_invalid_yaml() -> None:
    """Test invalid YAML is rejected."""
    with pytest.raises(InputException):
        ClusterExtensions.parse_yaml("spec: [")


def test_controller_config_defaults() -> None:
    """Test the controller defaults."""
    config = ControllerConfig()
    assert config.namespace == "kube-system"
    assert config.max_concurrent_reconciles == 1
    assert config.requeue_backoff.max_delay == 300.0
