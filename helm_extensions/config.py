"""Configuration objects for helm-extensions.

The cluster extensions configuration describes the desired helm repositories
and charts. It is parsed from the `spec.extensions` section of a cluster
configuration document, for example:

```yaml
spec:
  extensions:
    helm:
      repositories:
        - name: stable
          url: https://charts.helm.sh/stable
      charts:
        - name: prometheus-stack
          chartname: prometheus-community/prometheus
          version: "14.6.1"
          namespace: default
          values: |
            server:
              retention: 1d
    storage:
      type: openebs_local_storage
```
"""

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from mashumaro import DataClassDictMixin, field_options
from mashumaro.config import BaseConfig
import yaml

from .backoff import Backoff
from .exceptions import InputException
from .manifest import DEFAULT_NAMESPACE

__all__ = [
    "Repository",
    "ChartSettings",
    "HelmExtensions",
    "StorageType",
    "StorageExtension",
    "ClusterExtensions",
    "ControllerConfig",
]


class StorageType(StrEnum):
    """Storage backends supported by the extensions."""

    EXTERNAL = "external_storage"
    OPENEBS_LOCAL = "openebs_local_storage"


@dataclass
class _Settings(DataClassDictMixin):
    class Config(BaseConfig):
        omit_none = True
        serialize_by_alias = True


@dataclass
class Repository(_Settings):
    """A helm repository to register with the package manager."""

    name: str
    """Local name of the repository."""

    url: str
    """URL of the repository index."""

    ca_file: str | None = field(default=None, metadata=field_options(alias="caFile"))
    """CA bundle used to verify the repository certificate."""

    cert_file: str | None = field(
        default=None, metadata=field_options(alias="certFile")
    )
    """Client certificate for the repository."""

    key_file: str | None = field(default=None, metadata=field_options(alias="keyfile"))
    """Client key for the repository."""

    insecure: bool | None = None
    """Skip TLS verification of the repository."""

    username: str | None = None
    """Basic auth username."""

    password: str | None = None
    """Basic auth password."""

    def __post_init__(self) -> None:
        if not self.name:
            raise InputException("Invalid repository missing name")
        if not self.url:
            raise InputException(f"Invalid repository {self.name} missing url")


@dataclass
class ChartSettings(_Settings):
    """A chart to be installed as an extension."""

    name: str
    """Release name and identity of the chart record."""

    chart_name: str = field(metadata=field_options(alias="chartname"))
    """Chart reference in the form `<repository>/<chart>`."""

    version: str = ""
    """Chart version."""

    values: str = ""
    """Values payload as a YAML document."""

    target_ns: str = field(
        default="default", metadata=field_options(alias="namespace")
    )
    """Namespace to install the release into."""

    def __post_init__(self) -> None:
        if not self.name:
            raise InputException("Invalid chart missing name")
        if not self.chart_name:
            raise InputException(f"Invalid chart {self.name} missing chartname")


@dataclass
class HelmExtensions(_Settings):
    """Helm based extensions: repositories and charts."""

    repositories: list[Repository] = field(default_factory=list)
    charts: list[ChartSettings] = field(default_factory=list)


@dataclass
class StorageExtension(_Settings):
    """Storage settings of the cluster."""

    type: StorageType = StorageType.EXTERNAL
    """The storage backend in use."""

    create_default_storage_class: bool = False
    """Mark the built-in provisioner storage class as the cluster default."""


@dataclass
class ClusterExtensions(_Settings):
    """The desired extensions of a cluster."""

    helm: HelmExtensions | None = None
    storage: StorageExtension = field(default_factory=StorageExtension)

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "ClusterExtensions":
        """Parse the extensions from a cluster configuration document.

        Accepts either the full cluster configuration or the extensions
        mapping itself.
        """
        if (spec := doc.get("spec")) is not None:
            if not isinstance(spec, dict):
                raise InputException(f"Invalid cluster config spec: {spec}")
            doc = spec.get("extensions") or {}
        try:
            return cls.from_dict(doc)
        except InputException:
            raise
        except (TypeError, ValueError, LookupError) as err:
            raise InputException(f"Invalid extensions config: {err}") from err

    @classmethod
    def parse_yaml(cls, content: str) -> "ClusterExtensions":
        """Parse the extensions from a YAML cluster configuration."""
        try:
            doc = yaml.safe_load(content)
        except yaml.YAMLError as err:
            raise InputException(f"Invalid extensions config: {err}") from err
        if not isinstance(doc, dict):
            raise InputException(f"Invalid extensions config: {content!r}")
        return cls.parse_doc(doc)


@dataclass
class ControllerConfig:
    """Configuration for the ExtensionsController."""

    namespace: str = DEFAULT_NAMESPACE
    """The only namespace whose Chart records are reconciled."""

    max_concurrent_reconciles: int = 1
    """Number of records reconciled in parallel."""

    readiness_backoff: Backoff = field(default_factory=Backoff)
    """Backoff between attempts to resolve the Chart kind at startup."""

    requeue_backoff: Backoff = field(
        default_factory=lambda: Backoff(initial_delay=1.0, max_delay=300.0)
    )
    """Backoff before a failed record is reconciled again."""
