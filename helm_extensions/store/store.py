"""Record store interface for Chart records."""

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from helm_extensions.manifest import Chart, NamedResource


class StoreEvent(str, Enum):
    """Enum for store events."""

    ADDED = "added"
    UPDATED = "updated"
    DELETED = "deleted"


@dataclass(frozen=True)
class WatchEvent:
    """A change notification delivered to store listeners.

    `old` is unset for ADDED events and `new` is unset for DELETED events.
    """

    type: StoreEvent
    resource_id: NamedResource
    old: Chart | None = None
    new: Chart | None = None

    @property
    def obj(self) -> Chart:
        """The most recent state of the object."""
        obj = self.new or self.old
        assert obj is not None
        return obj


class Store(ABC):
    """Abstract base class for the record store with listener support.

    All reads return copies of the stored records. All writes check the
    `resource_version` of the record passed in and raise `ConflictError`
    when it is stale, so concurrent writers never overwrite each other.
    """

    @abstractmethod
    def register_kind(self, kind: str) -> None:
        """Register a record kind so it can be resolved and watched."""

    @abstractmethod
    def resolve_kind(self, kind: str) -> None:
        """Raise KindNotRegisteredError if the kind is not registered."""

    @abstractmethod
    def create(self, obj: Chart) -> Chart:
        """Create a new record, returning the stored copy."""

    @abstractmethod
    def apply(self, obj: Chart) -> Chart:
        """Create the record or update the desired state of an existing one."""

    @abstractmethod
    def get(self, resource_id: NamedResource) -> Chart | None:
        """Return a copy of the record or None if it does not exist."""

    @abstractmethod
    def list_objects(self, namespace: str | None = None) -> list[Chart]:
        """Return copies of all records, optionally filtered by namespace."""

    @abstractmethod
    def update(self, obj: Chart) -> Chart:
        """Update spec and metadata of a record. The status is ignored."""

    @abstractmethod
    def update_status(self, obj: Chart) -> Chart:
        """Update the status of a record. Spec and metadata are ignored."""

    @abstractmethod
    def delete(self, resource_id: NamedResource) -> None:
        """Request deletion of a record.

        Records with finalizers are only marked for deletion and removed once
        the last finalizer is removed with `update`.
        """

    @abstractmethod
    def add_listener(
        self,
        event: StoreEvent,
        callback: Callable[[WatchEvent], None],
        flush: bool = False,
    ) -> Callable[[], None]:
        """Register a callback for a specific event.

        When `flush` is set, ADDED listeners are immediately called for every
        existing record. Returns a callable that removes the listener.
        """
