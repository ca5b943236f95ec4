"""Extensions controller implementation.

This controller owns the lifecycle of helm based cluster extensions. It is
made of two independent parts connected only through the record store:

    - ExtensionsSynchronizer: runs whenever the cluster configuration
      changes and writes one Chart record per configured chart
    - ChartReconciler: driven by store notifications for Chart records, it
      installs, upgrades and uninstalls the releases

The reconciler is only started once the Chart kind is known to the store,
since watching an unknown kind fails.
"""

import asyncio
from collections.abc import Callable
import logging

from helm_extensions.backoff import retry
from helm_extensions.config import ClusterExtensions, ControllerConfig
from helm_extensions.dispatch import Dispatcher
from helm_extensions.exceptions import (
    ExtensionsControllerException,
    ReadinessError,
    SynchronizationError,
)
from helm_extensions.helm import PackageManager
from helm_extensions.leader import LeaderElector
from helm_extensions.manifest import CHART_KIND
from helm_extensions.saver import ManifestSaver
from helm_extensions.store import Store, all_of, generation_changed, in_namespace
from helm_extensions.task import TaskService

from .reconciler import ChartReconciler
from .synchronizer import ExtensionsSynchronizer

_LOGGER = logging.getLogger(__name__)


class ExtensionsController:
    """Controller for helm based cluster extensions."""

    def __init__(
        self,
        saver: ManifestSaver,
        store: Store,
        package_manager: PackageManager,
        leader_elector: LeaderElector,
        config: ControllerConfig | None = None,
        resolve_kind: Callable[[str], None] | None = None,
        task_service: TaskService | None = None,
    ) -> None:
        """
        Initialize the controller.

        Args:
            saver: Persists the rendered Chart records
            store: The record store holding Chart records
            package_manager: Used to add repositories and manage releases
            leader_elector: Queried before every reconciliation
            config: The configuration for the controller
            resolve_kind: Raises if a kind is unknown, defaults to the store
            task_service: Runs the reconcile workers
        """
        self._store = store
        self._config = config or ControllerConfig()
        self._resolve_kind = resolve_kind or store.resolve_kind
        self._task_service = task_service
        self._synchronizer = ExtensionsSynchronizer(
            saver, package_manager, namespace=self._config.namespace
        )
        self._reconciler = ChartReconciler(store, package_manager, leader_elector)
        self._dispatcher: Dispatcher | None = None

    async def reconcile(self, extensions: ClusterExtensions) -> None:
        """Write the Chart records for the desired extensions."""
        _LOGGER.info("Extensions reconciliation started")
        try:
            await self._synchronizer.synchronize(extensions)
        except SynchronizationError as err:
            raise ExtensionsControllerException(
                f"can't reconcile helm based extensions: {err}"
            ) from err
        finally:
            _LOGGER.info("Extensions reconciliation finished")

    async def wait_for_crd(self, stop: asyncio.Event | None = None) -> None:
        """Wait until the Chart kind can be resolved.

        Raises:
            ExtensionsControllerException: If `stop` is set first.
        """

        async def resolve() -> None:
            self._resolve_kind(CHART_KIND)

        def on_error(attempt: int, err: Exception) -> None:
            _LOGGER.warning(
                "Extensions CRD is not yet ready, waiting before starting "
                "ExtensionsController (attempt %d): %s",
                attempt,
                err,
            )

        try:
            await retry(resolve, self._config.readiness_backoff, stop, on_error)
        except ReadinessError as err:
            raise ExtensionsControllerException(
                "can't start ExtensionsReconciler, helm CRD is not registered, "
                f"check CRD registration reconciler: {err}"
            ) from err
        _LOGGER.info("Extensions CRD is ready")

    async def start(self, stop: asyncio.Event | None = None) -> None:
        """Wait for the Chart kind and start reconciling Chart records."""
        if self._dispatcher is not None:
            raise ExtensionsControllerException("ExtensionsController already started")
        await self.wait_for_crd(stop)
        self._dispatcher = Dispatcher(
            self._store,
            self._reconciler,
            kind=CHART_KIND,
            predicate=all_of(generation_changed, in_namespace(self._config.namespace)),
            max_concurrent_reconciles=self._config.max_concurrent_reconciles,
            backoff=self._config.requeue_backoff,
            task_service=self._task_service,
        )
        self._dispatcher.start()

    async def block_till_done(self) -> None:
        """Wait until all pending Chart notifications were reconciled."""
        if self._dispatcher is not None:
            await self._dispatcher.block_till_done()

    async def close(self) -> None:
        """Stop reconciling Chart records."""
        if self._dispatcher is not None:
            await self._dispatcher.close()
            self._dispatcher = None

    def healthy(self) -> None:
        """Raise if the controller is unhealthy."""
