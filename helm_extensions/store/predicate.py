"""Filters deciding which store events trigger a reconciliation."""

from collections.abc import Callable

from .store import StoreEvent, WatchEvent

__all__ = ["Predicate", "generation_changed", "in_namespace", "all_of"]


Predicate = Callable[[WatchEvent], bool]


def generation_changed(event: WatchEvent) -> bool:
    """Pass creations, deletions and updates of the desired state.

    Updates that only touch the status or metadata such as labels and
    finalizers leave the generation unchanged and are dropped.
    """
    if event.type != StoreEvent.UPDATED:
        return True
    if event.old is None or event.new is None:
        return True
    return event.old.metadata.generation != event.new.metadata.generation


def in_namespace(namespace: str) -> Predicate:
    """Pass events for objects in the namespace."""

    def predicate(event: WatchEvent) -> bool:
        return event.resource_id.namespace == namespace

    return predicate


def all_of(*predicates: Predicate) -> Predicate:
    """Pass events accepted by every predicate."""

    def predicate(event: WatchEvent) -> bool:
        return all(p(event) for p in predicates)

    return predicate
