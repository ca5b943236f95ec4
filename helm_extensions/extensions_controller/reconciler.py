"""Convergence of Chart records with the package manager.

Every reconciliation reads the record fresh from the store and performs at
most one package manager operation:

- pending deletion: uninstall the release, then remove the finalizer
- no release name in the status: install
- otherwise: upgrade

The status written after a successful install or upgrade always reflects
what the package manager reported. When the record changed while helm was
running the status write conflicts; the record is then re-read and the status
written once more. A release whose name is not recorded in the status is
installed again by the next attempt. Failures are raised as
ChartReconcileError and leave the status untouched, the dispatcher retries
the record later.
"""

from collections.abc import Callable
import datetime
import logging

from helm_extensions.dispatch import ReconcileResult, Reconciler
from helm_extensions.exceptions import (
    ChartReconcileError,
    ConflictError,
    HelmExtensionsException,
    StoreException,
)
from helm_extensions.helm import PackageManager, Release
from helm_extensions.leader import LeaderElector
from helm_extensions.manifest import FINALIZER_NAME, Chart, ChartStatus, NamedResource
from helm_extensions.store import Store

__all__ = ["ChartReconciler"]

_LOGGER = logging.getLogger(__name__)


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class ChartReconciler(Reconciler):
    """Drives helm releases toward the desired state of Chart records.

    Only the leader mutates releases or records. Callers must not reconcile
    the same record concurrently, which the Dispatcher guarantees.
    """

    def __init__(
        self,
        store: Store,
        package_manager: PackageManager,
        leader_elector: LeaderElector,
        clock: Callable[[], datetime.datetime] = _utcnow,
    ) -> None:
        """Initialize ChartReconciler."""
        self._store = store
        self._package_manager = package_manager
        self._leader_elector = leader_elector
        self._clock = clock

    async def reconcile(self, request: NamedResource) -> ReconcileResult:
        """Reconcile the Chart record identified by the request."""
        if not self._leader_elector.is_leader():
            _LOGGER.debug("Not the leader, ignoring %s", request)
            return ReconcileResult()
        _LOGGER.debug("Got helm chart reconciliation request: %s", request)

        if (chart := self._store.get(request)) is None:
            _LOGGER.debug("Chart %s no longer exists", request)
            return ReconcileResult()

        if chart.metadata.is_being_deleted:
            _LOGGER.debug("Uninstall reconciliation request: %s", request)
            await self._uninstall(chart)
        else:
            _LOGGER.debug("Install or update reconciliation request: %s", request)
            await self._install_or_upgrade(chart)
        return ReconcileResult()

    async def _uninstall(self, chart: Chart) -> None:
        if not chart.metadata.has_finalizer(FINALIZER_NAME):
            _LOGGER.debug("Chart %s has no finalizer, nothing to clean up", chart.name)
            return
        status = chart.status
        if status.release_name:
            try:
                await self._package_manager.uninstall(
                    status.release_name, status.namespace
                )
            except HelmExtensionsException as err:
                raise ChartReconcileError(
                    chart.namespaced_name,
                    f"can't uninstall release "
                    f"`{status.namespace}/{status.release_name}`: {err}",
                ) from err
            _LOGGER.info(
                "Uninstalled release %s/%s of chart %s",
                status.namespace,
                status.release_name,
                chart.namespaced_name,
            )
        else:
            _LOGGER.info(
                "Chart %s was never installed, removing finalizer", chart.namespaced_name
            )
        chart.metadata.remove_finalizer(FINALIZER_NAME)
        try:
            self._store.update(chart)
        except StoreException as err:
            raise ChartReconcileError(
                chart.namespaced_name,
                f"can't remove finalizer from `{chart.namespaced_name}`: {err}",
            ) from err

    async def _install_or_upgrade(self, chart: Chart) -> None:
        if chart.metadata.add_finalizer(FINALIZER_NAME):
            try:
                chart = self._store.update(chart)
            except StoreException as err:
                raise ChartReconcileError(
                    chart.namespaced_name,
                    f"can't add finalizer to `{chart.namespaced_name}`: {err}",
                ) from err

        release: Release
        try:
            values = chart.spec.values_dict()
            if not chart.status.release_name:
                release = await self._package_manager.install(
                    chart.spec.chart_name,
                    chart.spec.version,
                    chart.release_name,
                    chart.spec.namespace,
                    values,
                )
                _LOGGER.info(
                    "Installed chart %s as release %s/%s revision %d",
                    chart.spec.chart_name,
                    release.namespace,
                    release.name,
                    release.revision,
                )
            else:
                release = await self._package_manager.upgrade(
                    chart.spec.chart_name,
                    chart.status.version,
                    chart.spec.version,
                    chart.status.release_name,
                    chart.status.namespace,
                    values,
                )
                _LOGGER.info(
                    "Upgraded release %s/%s to %s revision %d",
                    release.namespace,
                    release.name,
                    release.version,
                    release.revision,
                )
        except HelmExtensionsException as err:
            action = "upgrade" if chart.status.release_name else "installation"
            raise ChartReconcileError(
                chart.namespaced_name,
                f"can't reconcile {action} for `{chart.name}`: {err}",
            ) from err

        self._write_status(
            chart,
            ChartStatus(
                release_name=release.name,
                version=release.version,
                app_version=release.app_version,
                revision=release.revision,
                namespace=release.namespace,
                updated=self._clock().isoformat(),
                error="",
            ),
        )

    def _write_status(self, chart: Chart, status: ChartStatus) -> None:
        """Write the observed status, re-reading the record once on conflict."""
        chart.status = status
        try:
            self._store.update_status(chart)
            return
        except ConflictError:
            _LOGGER.debug(
                "Chart %s changed during reconciliation, re-reading",
                chart.namespaced_name,
            )
        except StoreException as err:
            raise ChartReconcileError(
                chart.namespaced_name,
                f"can't update status for `{chart.name}`: {err}",
            ) from err

        if (fresh := self._store.get(chart.resource_id)) is None:
            raise ChartReconcileError(
                chart.namespaced_name,
                f"can't update status for `{chart.name}`: record no longer exists",
            )
        fresh.status = status
        try:
            self._store.update_status(fresh)
        except StoreException as err:
            raise ChartReconcileError(
                chart.namespaced_name,
                f"can't update status for `{chart.name}`: {err}",
            ) from err
