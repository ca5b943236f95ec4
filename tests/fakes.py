"""Fake implementations of the controller dependencies."""

from collections.abc import Callable
from typing import Any

from helm_extensions.config import Repository
from helm_extensions.exceptions import HelmException
from helm_extensions.helm import PackageManager, Release


class FakePackageManager(PackageManager):
    """Records calls and reports releases like helm would.

    A hook registered for an operation runs once, while that operation is in
    progress, to simulate concurrent writers.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[Any, ...]] = []
        self.errors: dict[str, Exception] = {}
        self.hooks: dict[str, Callable[[], None]] = {}
        self.failing_urls: set[str] = set()
        self.app_version = "9.9.9"
        self._revisions: dict[tuple[str, str], int] = {}

    def _run(self, op: str) -> None:
        if (hook := self.hooks.pop(op, None)) is not None:
            hook()
        if (err := self.errors.get(op)) is not None:
            raise err

    async def add_repository(self, repo: Repository) -> None:
        self.calls.append(("add_repository", repo.name, repo.url))
        if repo.url in self.failing_urls:
            raise HelmException(
                f"Error: looks like {repo.url} is not a valid chart repository"
            )
        self._run("add_repository")

    async def install(
        self,
        chart_ref: str,
        version: str,
        release_name: str,
        namespace: str,
        values: dict[str, Any],
    ) -> Release:
        self.calls.append(("install", chart_ref, version, release_name, namespace, values))
        self._run("install")
        if (namespace, release_name) in self._revisions:
            raise HelmException(
                f"Error: INSTALLATION FAILED: cannot re-use a name that is still "
                f"in use: {release_name}"
            )
        self._revisions[(namespace, release_name)] = 1
        return Release(
            name=release_name,
            namespace=namespace,
            revision=1,
            version=version,
            app_version=self.app_version,
        )

    async def upgrade(
        self,
        chart_ref: str,
        current_version: str,
        version: str,
        release_name: str,
        namespace: str,
        values: dict[str, Any],
    ) -> Release:
        self.calls.append(
            ("upgrade", chart_ref, current_version, version, release_name, namespace, values)
        )
        self._run("upgrade")
        revision = self._revisions.get((namespace, release_name), 1) + 1
        self._revisions[(namespace, release_name)] = revision
        return Release(
            name=release_name,
            namespace=namespace,
            revision=revision,
            version=version,
            app_version=self.app_version,
        )

    async def uninstall(self, release_name: str, namespace: str) -> None:
        self.calls.append(("uninstall", release_name, namespace))
        self._run("uninstall")
        self._revisions.pop((namespace, release_name), None)

    def operations(self) -> list[str]:
        """Return the names of the operations called, in order."""
        return [call[0] for call in self.calls]

    def releases(self) -> list[tuple[str, str]]:
        """Return the (namespace, name) of every installed release."""
        return sorted(self._revisions)
