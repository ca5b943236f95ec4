"""Library for running `helm` to manage releases in the cluster.

The `PackageManager` interface is the only thing the controllers depend on.
`Helm` implements it by shelling out to the helm binary, for example:

```python
from helm_extensions.helm import Helm
from helm_extensions.config import Repository

helm = Helm(Path("/tmp/helm"), Path("/tmp/helm/cache"), kube_config="/etc/admin.conf")
await helm.add_repository(Repository(name="stable", url="https://charts.helm.sh/stable"))
release = await helm.install(
    "stable/nginx", "1.0.0", "nginx", "web", {"replicaCount": 2}
)
print(f"Installed {release.name} revision {release.revision}")
```
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
import json
import logging
from pathlib import Path
from typing import Any

import aiofiles
import yaml

from . import command
from .config import Repository
from .exceptions import HelmException

__all__ = [
    "PackageManager",
    "Release",
    "Helm",
]

_LOGGER = logging.getLogger(__name__)


HELM_BIN = "helm"


@dataclass(frozen=True, kw_only=True)
class Release:
    """The state of a release as reported by the package manager."""

    name: str
    """Name of the release."""

    namespace: str
    """Namespace the release is installed into."""

    revision: int
    """Revision number of the release."""

    version: str
    """Version of the chart backing the release."""

    app_version: str = ""
    """Application version declared by the chart."""

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "Release":
        """Parse a Release from the JSON output of helm install or upgrade."""
        if not (name := doc.get("name")):
            raise HelmException(f"Invalid release missing name: {doc}")
        if not (namespace := doc.get("namespace")):
            raise HelmException(f"Invalid release missing namespace: {doc}")
        metadata = (doc.get("chart") or {}).get("metadata") or {}
        if not (version := metadata.get("version")):
            raise HelmException(
                f"Invalid release missing chart.metadata.version: {doc}"
            )
        return cls(
            name=name,
            namespace=namespace,
            revision=int(doc.get("version", 0)),
            version=version,
            app_version=metadata.get("appVersion") or "",
        )


class PackageManager(ABC):
    """Idempotent operations used to converge charts."""

    @abstractmethod
    async def add_repository(self, repo: Repository) -> None:
        """Register the repository so its charts can be referenced."""

    @abstractmethod
    async def install(
        self,
        chart_ref: str,
        version: str,
        release_name: str,
        namespace: str,
        values: dict[str, Any],
    ) -> Release:
        """Install the chart as a new release named `release_name`."""

    @abstractmethod
    async def upgrade(
        self,
        chart_ref: str,
        current_version: str,
        version: str,
        release_name: str,
        namespace: str,
        values: dict[str, Any],
    ) -> Release:
        """Upgrade an existing release from `current_version` to `version`."""

    @abstractmethod
    async def uninstall(self, release_name: str, namespace: str) -> None:
        """Remove a release."""


class Helm(PackageManager):
    """Manages helm releases and repositories using the helm binary."""

    def __init__(
        self,
        tmp_dir: Path,
        cache_dir: Path,
        kube_config: str | None = None,
        timeout: float = command.DEFAULT_TIMEOUT,
    ) -> None:
        """Initialize Helm."""
        self._tmp_dir = tmp_dir
        self._timeout = timeout
        self._flags = [
            "--repository-cache",
            str(cache_dir),
            "--repository-config",
            str(tmp_dir / "repositories.yaml"),
        ]
        if kube_config:
            self._flags.extend(["--kubeconfig", kube_config])

    async def _run(self, args: list[str], redact: frozenset[str] = frozenset()) -> str:
        cmd = [HELM_BIN, *args, *self._flags]
        return await command.run(
            command.Command(
                cmd, exc=HelmException, timeout=self._timeout, redact=redact
            )
        )

    async def _run_release(
        self, args: list[str], name: str, namespace: str, values: dict[str, Any]
    ) -> Release:
        """Run a command producing a release, passing values through a file."""
        values_path = self._tmp_dir / f"{namespace}-{name}-values.yaml"
        try:
            async with aiofiles.open(values_path, mode="w") as f:
                await f.write(yaml.dump(values, sort_keys=False))
            out = await self._run(
                [*args, "--values", str(values_path), "--output", "json"]
            )
        finally:
            values_path.unlink(missing_ok=True)
        try:
            doc = json.loads(out)
        except json.JSONDecodeError as err:
            raise HelmException(f"Unable to parse helm output: {out}") from err
        if not isinstance(doc, dict):
            raise HelmException(f"Unexpected helm output: {out}")
        return Release.parse_doc(doc)

    async def add_repository(self, repo: Repository) -> None:
        """Add the repository to the local helm repository config."""
        _LOGGER.debug("Adding repository %s (%s)", repo.name, repo.url)
        args = ["repo", "add", repo.name, repo.url, "--force-update"]
        redact: set[str] = set()
        if repo.username:
            args.extend(["--username", repo.username])
        if repo.password:
            args.extend(["--password", repo.password])
            redact.add(repo.password)
        if repo.ca_file:
            args.extend(["--ca-file", repo.ca_file])
        if repo.cert_file:
            args.extend(["--cert-file", repo.cert_file])
        if repo.key_file:
            args.extend(["--key-file", repo.key_file])
        if repo.insecure:
            args.append("--insecure-skip-tls-verify")
        await self._run(args, redact=frozenset(redact))

    async def install(
        self,
        chart_ref: str,
        version: str,
        release_name: str,
        namespace: str,
        values: dict[str, Any],
    ) -> Release:
        """Install the chart as a new release."""
        _LOGGER.debug(
            "Installing %s %s as %s/%s", chart_ref, version, namespace, release_name
        )
        args = [
            "install",
            release_name,
            chart_ref,
            "--namespace",
            namespace,
            "--create-namespace",
        ]
        if version:
            args.extend(["--version", version])
        return await self._run_release(args, release_name, namespace, values)

    async def upgrade(
        self,
        chart_ref: str,
        current_version: str,
        version: str,
        release_name: str,
        namespace: str,
        values: dict[str, Any],
    ) -> Release:
        """Upgrade the release to the desired chart version."""
        _LOGGER.debug(
            "Upgrading %s/%s (%s) from %s to %s",
            namespace,
            release_name,
            chart_ref,
            current_version,
            version,
        )
        args = ["upgrade", release_name, chart_ref, "--namespace", namespace]
        if version:
            args.extend(["--version", version])
        return await self._run_release(args, release_name, namespace, values)

    async def uninstall(self, release_name: str, namespace: str) -> None:
        """Uninstall the release."""
        _LOGGER.debug("Uninstalling %s/%s", namespace, release_name)
        await self._run(["uninstall", release_name, "--namespace", namespace])
