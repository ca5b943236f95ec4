"""Module for in memory record store."""

from collections import defaultdict
from collections.abc import Callable
import copy
import datetime
from typing import DefaultDict
import logging

from helm_extensions.manifest import Chart, NamedResource, CHART_KIND
from helm_extensions.exceptions import (
    ConflictError,
    KindNotRegisteredError,
    ObjectNotFoundError,
)

from .store import Store, StoreEvent, WatchEvent


_LOGGER = logging.getLogger(__name__)


def _now() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


class InMemoryStore(Store):
    """In-memory implementation of the Store interface.

    Records are keyed by NamedResource. Every write bumps a store wide
    resource version; changes of the spec and the transition to pending
    deletion also bump the record generation.
    """

    def __init__(self) -> None:
        """Initialize the InMemoryStore."""
        self._objects: dict[NamedResource, Chart] = {}
        self._kinds: set[str] = set()
        self._resource_version = 0
        self._listeners: DefaultDict[
            StoreEvent, list[Callable[[WatchEvent], None]]
        ] = defaultdict(list)

    def register_kind(self, kind: str) -> None:
        """Register a record kind so it can be resolved and watched."""
        _LOGGER.debug("Registering kind %s", kind)
        self._kinds.add(kind)

    def resolve_kind(self, kind: str) -> None:
        """Raise KindNotRegisteredError if the kind is not registered."""
        if kind not in self._kinds:
            raise KindNotRegisteredError(f"Kind {kind} is not registered")

    def _next_version(self) -> int:
        self._resource_version += 1
        return self._resource_version

    def _check_kind(self, obj: Chart) -> None:
        if obj.kind != CHART_KIND:
            raise ValueError(
                f"Object {obj.namespaced_name} has unsupported kind {obj.kind}"
            )
        self.resolve_kind(obj.kind)

    def _current(self, obj: Chart) -> Chart:
        """Return the stored record, checking the version of the given copy."""
        resource_id = obj.resource_id
        if (existing := self._objects.get(resource_id)) is None:
            raise ObjectNotFoundError(f"Object {resource_id} not found")
        if existing.metadata.resource_version != obj.metadata.resource_version:
            raise ConflictError(
                f"Object {resource_id} was modified: version "
                f"{obj.metadata.resource_version} is stale "
                f"(current {existing.metadata.resource_version})"
            )
        return existing

    def create(self, obj: Chart) -> Chart:
        """Create a new record, returning the stored copy."""
        self._check_kind(obj)
        resource_id = obj.resource_id
        if resource_id in self._objects:
            raise ConflictError(f"Object {resource_id} already exists")
        stored = copy.deepcopy(obj)
        stored.metadata.generation = 1
        stored.metadata.resource_version = self._next_version()
        stored.metadata.deletion_timestamp = None
        stored.status = type(obj.status)()
        _LOGGER.debug("Adding object %s to store", resource_id)
        self._objects[resource_id] = stored
        self._fire_event(
            WatchEvent(StoreEvent.ADDED, resource_id, new=copy.deepcopy(stored))
        )
        return copy.deepcopy(stored)

    def apply(self, obj: Chart) -> Chart:
        """Create the record or update the desired state of an existing one."""
        if (existing := self._objects.get(obj.resource_id)) is None:
            return self.create(obj)
        desired = copy.deepcopy(existing)
        desired.spec = copy.deepcopy(obj.spec)
        desired.metadata.labels = copy.deepcopy(obj.metadata.labels)
        for finalizer in obj.metadata.finalizers:
            desired.metadata.add_finalizer(finalizer)
        if desired == existing:
            _LOGGER.debug("Object %s unchanged, skipping", obj.resource_id)
            return copy.deepcopy(existing)
        return self.update(desired)

    def get(self, resource_id: NamedResource) -> Chart | None:
        """Return a copy of the record or None if it does not exist."""
        if (obj := self._objects.get(resource_id)) is None:
            return None
        return copy.deepcopy(obj)

    def list_objects(self, namespace: str | None = None) -> list[Chart]:
        """Return copies of all records, optionally filtered by namespace."""
        return [
            copy.deepcopy(obj)
            for obj in self._objects.values()
            if namespace is None or obj.namespace == namespace
        ]

    def update(self, obj: Chart) -> Chart:
        """Update spec and metadata of a record. The status is ignored."""
        existing = self._current(obj)
        resource_id = obj.resource_id
        if existing.metadata.is_being_deleted and not obj.metadata.finalizers:
            _LOGGER.debug("Last finalizer removed, deleting %s", resource_id)
            del self._objects[resource_id]
            removed = copy.deepcopy(existing)
            removed.metadata.finalizers = []
            self._fire_event(WatchEvent(StoreEvent.DELETED, resource_id, old=removed))
            return removed
        stored = copy.deepcopy(existing)
        stored.spec = copy.deepcopy(obj.spec)
        stored.metadata.labels = copy.deepcopy(obj.metadata.labels)
        stored.metadata.finalizers = list(obj.metadata.finalizers)
        if stored.spec != existing.spec:
            stored.metadata.generation += 1
        stored.metadata.resource_version = self._next_version()
        self._objects[resource_id] = stored
        _LOGGER.debug(
            "Updated object %s (generation %d)", resource_id, stored.metadata.generation
        )
        self._fire_event(
            WatchEvent(
                StoreEvent.UPDATED,
                resource_id,
                old=copy.deepcopy(existing),
                new=copy.deepcopy(stored),
            )
        )
        return copy.deepcopy(stored)

    def update_status(self, obj: Chart) -> Chart:
        """Update the status of a record. Spec and metadata are ignored."""
        existing = self._current(obj)
        stored = copy.deepcopy(existing)
        stored.status = copy.deepcopy(obj.status)
        stored.metadata.resource_version = self._next_version()
        self._objects[obj.resource_id] = stored
        _LOGGER.debug("Updated status of %s", obj.resource_id)
        self._fire_event(
            WatchEvent(
                StoreEvent.UPDATED,
                obj.resource_id,
                old=copy.deepcopy(existing),
                new=copy.deepcopy(stored),
            )
        )
        return copy.deepcopy(stored)

    def delete(self, resource_id: NamedResource) -> None:
        """Request deletion of a record."""
        if (existing := self._objects.get(resource_id)) is None:
            raise ObjectNotFoundError(f"Object {resource_id} not found")
        if not existing.metadata.finalizers:
            _LOGGER.debug("Deleting object %s", resource_id)
            del self._objects[resource_id]
            self._fire_event(
                WatchEvent(StoreEvent.DELETED, resource_id, old=copy.deepcopy(existing))
            )
            return
        if existing.metadata.is_being_deleted:
            _LOGGER.debug("Object %s is already being deleted", resource_id)
            return
        stored = copy.deepcopy(existing)
        stored.metadata.deletion_timestamp = _now()
        stored.metadata.generation += 1
        stored.metadata.resource_version = self._next_version()
        self._objects[resource_id] = stored
        _LOGGER.debug(
            "Object %s marked for deletion, waiting for finalizers %s",
            resource_id,
            stored.metadata.finalizers,
        )
        self._fire_event(
            WatchEvent(
                StoreEvent.UPDATED,
                resource_id,
                old=copy.deepcopy(existing),
                new=copy.deepcopy(stored),
            )
        )

    def add_listener(
        self,
        event: StoreEvent,
        callback: Callable[[WatchEvent], None],
        flush: bool = False,
    ) -> Callable[[], None]:
        """Register a callback for a specific event."""

        def remove() -> None:
            if callback in self._listeners[event]:
                self._listeners[event].remove(callback)

        self._listeners[event].append(callback)

        if flush and event == StoreEvent.ADDED:
            _LOGGER.debug("Flushing objects for event type %s", event)
            for resource_id, obj in list(self._objects.items()):
                callback(WatchEvent(event, resource_id, new=copy.deepcopy(obj)))

        return remove

    def _fire_event(self, event: WatchEvent) -> None:
        for cb in list(self._listeners[event.type]):
            try:
                cb(event)
            except Exception:
                _LOGGER.exception(
                    "Store listener callback failed for event %s on %s",
                    event.type,
                    event.resource_id,
                )
