"""Translate the desired extensions configuration into Chart records."""

import logging
import re

from helm_extensions.config import (
    ChartSettings,
    ClusterExtensions,
    HelmExtensions,
    Repository,
    StorageType,
)
from helm_extensions.exceptions import (
    HelmExtensionsException,
    InputException,
    SynchronizationError,
)
from helm_extensions.helm import PackageManager
from helm_extensions.manifest import (
    CHART_NAME_PREFIX,
    DEFAULT_NAMESPACE,
    FINALIZER_NAME,
    Chart,
    ChartSpec,
    ObjectMeta,
    manifest_filename,
    render_yaml,
)
from helm_extensions.saver import ManifestSaver

__all__ = [
    "ExtensionsSynchronizer",
    "add_openebs_extension",
    "desired_helm_extensions",
    "render_chart",
]

_LOGGER = logging.getLogger(__name__)


OPENEBS_REPOSITORY_NAME = "openebs-internal"
OPENEBS_REPOSITORY = "https://openebs.github.io/charts"
OPENEBS_CHART = "openebs"
OPENEBS_VERSION = "3.3.0"
OPENEBS_NAMESPACE = "openebs"
OPENEBS_DEFAULT_CLASS_VALUES = """\
localprovisioner:
  hostpathClass:
    enabled: true
    isDefaultClass: true
"""

# Record names must be valid DNS subdomain names
_NAME_RE = re.compile(
    r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*$"
)
_MAX_NAME_LENGTH = 253


def add_openebs_extension(
    helm: HelmExtensions | None, create_default_storage_class: bool = False
) -> HelmExtensions:
    """Return a copy of the helm extensions including the OpenEBS chart.

    The input is never modified. Entries already present by name are kept
    as configured so that applying this twice does not duplicate them.
    """
    repositories = list(helm.repositories) if helm else []
    charts = list(helm.charts) if helm else []
    if not any(repo.name == OPENEBS_REPOSITORY_NAME for repo in repositories):
        repositories.append(
            Repository(name=OPENEBS_REPOSITORY_NAME, url=OPENEBS_REPOSITORY)
        )
    if not any(chart.name == OPENEBS_CHART for chart in charts):
        charts.append(
            ChartSettings(
                name=OPENEBS_CHART,
                chart_name=f"{OPENEBS_REPOSITORY_NAME}/{OPENEBS_CHART}",
                version=OPENEBS_VERSION,
                values=(
                    OPENEBS_DEFAULT_CLASS_VALUES if create_default_storage_class else ""
                ),
                target_ns=OPENEBS_NAMESPACE,
            )
        )
    return HelmExtensions(repositories=repositories, charts=charts)


def desired_helm_extensions(extensions: ClusterExtensions) -> HelmExtensions | None:
    """Return the helm extensions to apply, including built-in charts."""
    if extensions.storage.type == StorageType.OPENEBS_LOCAL:
        return add_openebs_extension(
            extensions.helm, extensions.storage.create_default_storage_class
        )
    return extensions.helm


def render_chart(chart: ChartSettings, namespace: str = DEFAULT_NAMESPACE) -> Chart:
    """Build the Chart record for a configured chart.

    Raises:
        InputException: If the chart can't be represented as a valid record.
    """
    name = f"{CHART_NAME_PREFIX}{chart.name}"
    if len(name) > _MAX_NAME_LENGTH or not _NAME_RE.match(name):
        raise InputException(f"Invalid chart name {chart.name!r}")
    record = Chart(
        metadata=ObjectMeta(
            name=name,
            namespace=namespace,
            finalizers=[FINALIZER_NAME],
        ),
        spec=ChartSpec(
            chart_name=chart.chart_name,
            release_name=chart.name,
            version=chart.version,
            namespace=chart.target_ns,
            values=chart.values,
        ),
    )
    # Fail on values helm would not be able to use
    record.spec.values_dict()
    return record


class ExtensionsSynchronizer:
    """Registers repositories and writes a Chart record for every chart.

    The actual helm install, upgrade and uninstall is done by the
    ChartReconciler once the records are applied to the store.
    """

    def __init__(
        self,
        saver: ManifestSaver,
        package_manager: PackageManager,
        namespace: str = DEFAULT_NAMESPACE,
    ) -> None:
        """Initialize ExtensionsSynchronizer."""
        self._saver = saver
        self._package_manager = package_manager
        self._namespace = namespace

    async def synchronize(self, extensions: ClusterExtensions) -> None:
        """Apply the desired extensions.

        Stops at the first failure. Repositories added and manifests saved
        before the failure are kept.

        Raises:
            SynchronizationError: Identifying the failing repository or chart.
        """
        if (helm := desired_helm_extensions(extensions)) is None:
            _LOGGER.debug("No helm extensions configured")
            return

        for repo in helm.repositories:
            try:
                await self._package_manager.add_repository(repo)
            except HelmExtensionsException as err:
                raise SynchronizationError(
                    f"can't init repository `{repo.url}`: {err}",
                    repository_url=repo.url,
                ) from err
            _LOGGER.info("Added helm repository %s (%s)", repo.name, repo.url)

        for chart in helm.charts:
            try:
                record = render_chart(chart, self._namespace)
                content = render_yaml(record.compact_dict()).encode()
            except InputException as err:
                _LOGGER.error("can't create chart CR instance `%s`: %s", chart.name, err)
                raise SynchronizationError(
                    f"can't create chart CR instance `{chart.name}`: {err}",
                    chart_name=chart.name,
                ) from err
            try:
                await self._saver.save(manifest_filename(chart.name), content)
            except HelmExtensionsException as err:
                raise SynchronizationError(
                    f"can't save addon CRD manifest for `{chart.name}`: {err}",
                    chart_name=chart.name,
                ) from err
            _LOGGER.debug("Saved Chart record %s", record.namespaced_name)
