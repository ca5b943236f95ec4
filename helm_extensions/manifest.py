"""Representation of the declarative Chart records.

A Chart record carries the desired state of a helm release in its spec and
the state observed by the reconciler in its status. Records are rendered to
YAML by the extensions synchronizer and parsed back when they are applied to
the record store.
"""

from dataclasses import dataclass, field
import logging
from typing import Any, ClassVar

from mashumaro import DataClassDictMixin, field_options
from mashumaro.config import BaseConfig
import yaml

from .exceptions import InputException

__all__ = [
    "NamedResource",
    "ObjectMeta",
    "ChartSpec",
    "ChartStatus",
    "Chart",
    "render_yaml",
    "manifest_filename",
]

_LOGGER = logging.getLogger(__name__)


HELM_DOMAIN = "helm.k0sproject.io"
API_VERSION = f"{HELM_DOMAIN}/v1beta1"
CHART_KIND = "Chart"
FINALIZER_NAME = f"{HELM_DOMAIN}/uninstall-helm-release"
DEFAULT_NAMESPACE = "kube-system"
CHART_NAME_PREFIX = "k0s-addon-chart-"
MANIFEST_FILENAME_TEMPLATE = "addon_crd_manifest_{name}.yaml"


def _check_version(doc: dict[str, Any], version: str) -> None:
    """Assert that the resource has the specified version."""
    if not (api_version := doc.get("apiVersion")):
        raise InputException(f"Invalid object missing apiVersion: {doc}")
    if not api_version.startswith(version):
        raise InputException(f"Invalid object expected '{version}': {doc}")


class _ManifestDumper(yaml.SafeDumper):
    """Dumper that renders multi-line strings as literal blocks."""


def _str_presenter(dumper: yaml.SafeDumper, data: str) -> yaml.ScalarNode:
    return dumper.represent_scalar(
        "tag:yaml.org,2002:str", data, style="|" if data.count("\n") > 0 else None
    )


_ManifestDumper.add_representer(str, _str_presenter)


def render_yaml(doc: dict[str, Any]) -> str:
    """Render a document as YAML with readable multi-line values."""
    return yaml.dump(doc, Dumper=_ManifestDumper, sort_keys=False)


def manifest_filename(chart_name: str) -> str:
    """Return the stable filename for the rendered record of a chart."""
    return MANIFEST_FILENAME_TEMPLATE.format(name=chart_name)


@dataclass
class BaseManifest(DataClassDictMixin):
    """Base class for all manifest objects."""

    class Config(BaseConfig):
        omit_none = True
        serialize_by_alias = True


@dataclass(frozen=True, order=True)
class NamedResource:
    """Identifier for a kubernetes resource."""

    kind: str
    namespace: str | None
    name: str

    @property
    def namespaced_name(self) -> str:
        if self.namespace:
            return f"{self.namespace}/{self.name}"
        return self.name

    def __str__(self) -> str:
        """Return the kind and namespaced name concatenated as an id."""
        return f"{self.kind}/{self.namespaced_name}"


@dataclass
class ObjectMeta(BaseManifest):
    """Metadata common to all records in the store."""

    name: str
    """The name of the object."""

    namespace: str | None = None
    """The namespace of the object."""

    finalizers: list[str] = field(default_factory=list)
    """Tags that block physical removal until their owner cleans up."""

    labels: dict[str, str] | None = None
    """Labels on the object."""

    generation: int = 0
    """Incremented by the store on every change of the desired state."""

    resource_version: int = field(
        default=0, metadata=field_options(alias="resourceVersion")
    )
    """Incremented by the store on every write, used for optimistic concurrency."""

    deletion_timestamp: str | None = field(
        default=None, metadata=field_options(alias="deletionTimestamp")
    )
    """Set by the store when deletion was requested but finalizers remain."""

    def compact_dict(self) -> dict[str, Any]:
        """Return the user owned metadata fields only."""
        data: dict[str, Any] = {"name": self.name}
        if self.namespace:
            data["namespace"] = self.namespace
        if self.labels:
            data["labels"] = dict(self.labels)
        if self.finalizers:
            data["finalizers"] = list(self.finalizers)
        return data

    @property
    def is_being_deleted(self) -> bool:
        """Return True if the object is pending deletion."""
        return bool(self.deletion_timestamp)

    def has_finalizer(self, finalizer: str) -> bool:
        """Return True if the finalizer is present."""
        return finalizer in self.finalizers

    def add_finalizer(self, finalizer: str) -> bool:
        """Add the finalizer, returning True if the object changed."""
        if finalizer in self.finalizers:
            return False
        self.finalizers.append(finalizer)
        return True

    def remove_finalizer(self, finalizer: str) -> bool:
        """Remove the finalizer, returning True if the object changed."""
        if finalizer not in self.finalizers:
            return False
        self.finalizers = [f for f in self.finalizers if f != finalizer]
        return True


@dataclass
class ChartSpec(BaseManifest):
    """Desired state of a chart, written by the extensions synchronizer."""

    chart_name: str = field(metadata=field_options(alias="chartName"))
    """Chart reference in the form `<repository>/<chart>`."""

    release_name: str = field(default="", metadata=field_options(alias="releaseName"))
    """Name of the release to install, defaults to the record name without prefix."""

    version: str = ""
    """The chart version to install."""

    namespace: str = ""
    """The namespace to install the release into."""

    values: str = ""
    """Values payload as a YAML document."""

    def values_dict(self) -> dict[str, Any]:
        """Return the values payload parsed into a mapping."""
        if not self.values.strip():
            return {}
        try:
            values = yaml.safe_load(self.values)
        except yaml.YAMLError as err:
            raise InputException(
                f"Invalid values for chart {self.chart_name}: {err}"
            ) from err
        if values is None:
            return {}
        if not isinstance(values, dict):
            raise InputException(
                f"Invalid values for chart {self.chart_name}: expected a mapping"
            )
        return values


@dataclass
class ChartStatus(BaseManifest):
    """Observed state of a chart, written only by the chart reconciler."""

    release_name: str = field(default="", metadata=field_options(alias="releaseName"))
    """Name of the installed release, empty if never installed."""

    version: str = ""
    """Installed chart version."""

    app_version: str = field(default="", metadata=field_options(alias="appVersion"))
    """Application version of the installed chart."""

    revision: int = 0
    """Release revision reported by helm."""

    namespace: str = ""
    """Namespace the release was installed into."""

    updated: str = ""
    """Timestamp of the last successful install or upgrade."""

    error: str = ""
    """Last error message, empty on success."""


@dataclass
class Chart(BaseManifest):
    """A declarative record for a single helm chart."""

    kind: ClassVar[str] = CHART_KIND
    """The kind of the object."""

    api_version: ClassVar[str] = API_VERSION
    """The apiVersion of the object."""

    metadata: ObjectMeta
    """Object metadata."""

    spec: ChartSpec
    """Desired state."""

    status: ChartStatus = field(default_factory=ChartStatus)
    """Observed state."""

    @property
    def name(self) -> str:
        """The name of the record."""
        return self.metadata.name

    @property
    def namespace(self) -> str | None:
        """The namespace of the record."""
        return self.metadata.namespace

    @property
    def resource_id(self) -> NamedResource:
        """Identifier of the record in the store."""
        return NamedResource(CHART_KIND, self.metadata.namespace, self.metadata.name)

    @property
    def namespaced_name(self) -> str:
        """Return the namespace and name concatenated as an id."""
        return self.resource_id.namespaced_name

    @property
    def release_name(self) -> str:
        """The name of the release managed for this record."""
        if self.spec.release_name:
            return self.spec.release_name
        return self.metadata.name.removeprefix(CHART_NAME_PREFIX)

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "Chart":
        """Parse a Chart from a kubernetes resource object."""
        _check_version(doc, HELM_DOMAIN)
        if doc.get("kind") != CHART_KIND:
            raise InputException(f"Invalid {cls.__name__} unexpected kind: {doc}")
        if not (metadata := doc.get("metadata")):
            raise InputException(f"Invalid {cls.__name__} missing metadata: {doc}")
        if not metadata.get("name"):
            raise InputException(
                f"Invalid {cls.__name__} missing metadata.name: {doc}"
            )
        if not (spec := doc.get("spec")):
            raise InputException(f"Invalid {cls.__name__} missing spec: {doc}")
        if not spec.get("chartName"):
            raise InputException(
                f"Invalid {cls.__name__} missing spec.chartName: {doc}"
            )
        try:
            return cls(
                metadata=ObjectMeta.from_dict(metadata),
                spec=ChartSpec.from_dict(spec),
                status=ChartStatus.from_dict(doc.get("status") or {}),
            )
        except (TypeError, ValueError, LookupError) as err:
            raise InputException(f"Invalid {cls.__name__}: {err}") from err

    @classmethod
    def parse_yaml(cls, content: str) -> "Chart":
        """Parse a serialized Chart record."""
        try:
            doc = yaml.safe_load(content)
        except yaml.YAMLError as err:
            raise InputException(f"Invalid {cls.__name__} document: {err}") from err
        if not isinstance(doc, dict):
            raise InputException(f"Invalid {cls.__name__} document: {content!r}")
        return cls.parse_doc(doc)

    def to_doc(self) -> dict[str, Any]:
        """Return the kubernetes resource representation of the record."""
        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "metadata": self.metadata.to_dict(),
            "spec": self.spec.to_dict(),
            "status": self.status.to_dict(),
        }

    def compact_dict(self) -> dict[str, Any]:
        """Return the representation written to disk for later apply.

        Store bookkeeping and the status are omitted since both are owned by
        the record store and the reconciler respectively.
        """
        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "metadata": self.metadata.compact_dict(),
            "spec": self.spec.to_dict(),
        }
