"""Dispatch store notifications to a reconciler.

The dispatcher subscribes to the record store, filters notifications with a
predicate and queues the keys of the records that changed. A fixed number of
workers pull keys from the queue and call the reconciler. The queue holds each
key at most once and a key is never reconciled by two workers at the same
time: a key that changes while it is being reconciled is queued again once
the running reconciliation finishes. Failed keys are queued again after an
exponential backoff.
"""

from abc import ABC, abstractmethod
import asyncio
from collections import defaultdict
from dataclasses import dataclass
import logging
from typing import Any

from .backoff import Backoff
from .exceptions import HelmExtensionsException
from .manifest import NamedResource
from .store import Store, StoreEvent, WatchEvent, Predicate
from .task import TaskService, get_task_service

__all__ = ["ReconcileResult", "Reconciler", "Dispatcher"]

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of a successful reconciliation."""

    requeue: bool = False
    """Reconcile again after the backoff delay."""

    requeue_after: float | None = None
    """Reconcile again after this many seconds."""


class Reconciler(ABC):
    """Converges the state of a single record."""

    @abstractmethod
    async def reconcile(self, request: NamedResource) -> ReconcileResult:
        """Reconcile the record, raising an exception to have it retried."""


class Dispatcher:
    """Delivers store notifications for one kind to a reconciler."""

    def __init__(
        self,
        store: Store,
        reconciler: Reconciler,
        kind: str,
        predicate: Predicate | None = None,
        max_concurrent_reconciles: int = 1,
        backoff: Backoff | None = None,
        task_service: TaskService | None = None,
    ) -> None:
        """Initialize the Dispatcher.

        Args:
            store: The store to watch
            reconciler: Called with the key of every record that changed
            kind: Only records of this kind are dispatched
            predicate: Notifications rejected by the predicate are dropped
            max_concurrent_reconciles: Number of workers
            backoff: Delay before a failed key is reconciled again
            task_service: Service used to run workers and requeue timers
        """
        if max_concurrent_reconciles < 1:
            raise ValueError("max_concurrent_reconciles must be at least 1")
        self._store = store
        self._reconciler = reconciler
        self._kind = kind
        self._predicate = predicate
        self._workers = max_concurrent_reconciles
        self._backoff = backoff or Backoff(initial_delay=1.0, max_delay=300.0)
        self._task_service = task_service or get_task_service()
        self._queue: asyncio.Queue[NamedResource] = asyncio.Queue()
        self._queued: set[NamedResource] = set()
        self._processing: set[NamedResource] = set()
        self._dirty: set[NamedResource] = set()
        self._failures: defaultdict[NamedResource, int] = defaultdict(int)
        self._tasks: list[asyncio.Task[Any]] = []
        self._timers: set[asyncio.Task[Any]] = set()
        self._remove_listeners: list[Any] = []
        self._closed = False

    def start(self) -> None:
        """Start the workers and subscribe to the store.

        Records that already exist are dispatched immediately.
        """
        if self._tasks:
            raise HelmExtensionsException("Dispatcher already started")
        _LOGGER.info(
            "Starting dispatcher for %s with %d workers", self._kind, self._workers
        )
        for i in range(self._workers):
            self._tasks.append(
                self._task_service.create_background_task(
                    self._worker(), name=f"{self._kind} worker {i}"
                )
            )
        self._remove_listeners = [
            self._store.add_listener(StoreEvent.UPDATED, self._on_event),
            self._store.add_listener(StoreEvent.DELETED, self._on_event),
            self._store.add_listener(StoreEvent.ADDED, self._on_event, flush=True),
        ]

    async def close(self) -> None:
        """Unsubscribe from the store and stop all workers."""
        self._closed = True
        for remove in self._remove_listeners:
            remove()
        self._remove_listeners = []
        tasks = [*self._tasks, *self._timers]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks = []
        self._timers.clear()

    async def block_till_done(self) -> None:
        """Wait until every queued key was reconciled.

        Keys waiting for a requeue delay are not waited for.
        """
        await self._queue.join()

    def _on_event(self, event: WatchEvent) -> None:
        if event.resource_id.kind != self._kind:
            return
        if self._predicate is not None and not self._predicate(event):
            _LOGGER.debug("Ignoring %s event for %s", event.type, event.resource_id)
            return
        _LOGGER.debug("Queueing %s after %s event", event.resource_id, event.type)
        self.enqueue(event.resource_id)

    def enqueue(self, resource_id: NamedResource) -> None:
        """Queue the key unless it is already queued."""
        if self._closed:
            return
        if resource_id in self._processing:
            self._dirty.add(resource_id)
            return
        if resource_id in self._queued:
            return
        self._queued.add(resource_id)
        self._queue.put_nowait(resource_id)

    async def _worker(self) -> None:
        while True:
            resource_id = await self._queue.get()
            self._queued.discard(resource_id)
            self._processing.add(resource_id)
            try:
                await self._process(resource_id)
            finally:
                self._processing.discard(resource_id)
                if resource_id in self._dirty:
                    self._dirty.discard(resource_id)
                    self.enqueue(resource_id)
                self._queue.task_done()

    async def _process(self, resource_id: NamedResource) -> None:
        try:
            result = await self._reconciler.reconcile(resource_id)
        except HelmExtensionsException as err:
            delay = self._failed(resource_id)
            _LOGGER.warning(
                "Reconciliation of %s failed, retrying in %.1fs: %s",
                resource_id,
                delay,
                err,
            )
            return
        except Exception:
            delay = self._failed(resource_id)
            _LOGGER.exception(
                "Unexpected error reconciling %s, retrying in %.1fs", resource_id, delay
            )
            return
        if result.requeue_after is not None:
            self._failures.pop(resource_id, None)
            self._requeue_after(resource_id, result.requeue_after)
        elif result.requeue:
            self._failed(resource_id)
        else:
            self._failures.pop(resource_id, None)

    def _failed(self, resource_id: NamedResource) -> float:
        """Schedule a retry with backoff, returning the delay."""
        self._failures[resource_id] += 1
        delay = self._backoff.delay(self._failures[resource_id])
        self._requeue_after(resource_id, delay)
        return delay

    def _requeue_after(self, resource_id: NamedResource, delay: float) -> None:
        if self._closed:
            return
        timer = self._task_service.create_background_task(
            self._delayed_enqueue(resource_id, delay), name=f"requeue {resource_id}"
        )
        self._timers.add(timer)
        timer.add_done_callback(self._timers.discard)

    async def _delayed_enqueue(self, resource_id: NamedResource, delay: float) -> None:
        await asyncio.sleep(delay)
        self.enqueue(resource_id)
