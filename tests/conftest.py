"""Test fixtures shared by the helm-extensions tests."""

from collections.abc import Generator

import pytest

from helm_extensions.leader import StaticLeaderElector
from helm_extensions.manifest import CHART_KIND
from helm_extensions.store import InMemoryStore
from helm_extensions.task import TaskService, task_service_context

from .fakes import FakePackageManager


@pytest.fixture(name="task_service", autouse=True)
def task_service_fixture() -> Generator[TaskService, None, None]:
    """Create a task service for testing."""
    with task_service_context() as service:
        yield service


@pytest.fixture(name="store")
def store_fixture() -> InMemoryStore:
    """Create an in-memory store with the Chart kind registered."""
    store = InMemoryStore()
    store.register_kind(CHART_KIND)
    return store


@pytest.fixture(name="package_manager")
def package_manager_fixture() -> FakePackageManager:
    """Create a fake package manager."""
    return FakePackageManager()


@pytest.fixture(name="leader_elector")
def leader_elector_fixture() -> StaticLeaderElector:
    """Create a leader elector that holds leadership."""
    return StaticLeaderElector(leader=True)
