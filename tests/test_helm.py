"""Tests for the helm package manager."""

import json
from pathlib import Path
from typing import Any

import pytest
import yaml

from helm_extensions import command
from helm_extensions.config import Repository
from helm_extensions.exceptions import HelmException
from helm_extensions.helm import Helm, Release

RELEASE_OUTPUT = {
    "name": "foo",
    "namespace": "apps",
    "version": 2,
    "chart": {"metadata": {"name": "foo", "version": "2.0.0", "appVersion": "v5"}},
}


class FakeRun:
    """Captures the commands run by Helm."""

    def __init__(self) -> None:
        self.commands: list[command.Command] = []
        self.values: list[Any] = []
        self.output = json.dumps(RELEASE_OUTPUT)

    async def __call__(self, cmd: command.Command) -> str:
        self.commands.append(cmd)
        if "--values" in cmd.cmd:
            values_path = Path(cmd.cmd[cmd.cmd.index("--values") + 1])
            self.values.append(yaml.safe_load(values_path.read_text()))
        return self.output

    @property
    def args(self) -> list[str]:
        return self.commands[-1].cmd


@pytest.fixture(name="fake_run")
def fake_run_fixture(monkeypatch: pytest.MonkeyPatch) -> FakeRun:
    """Replace command execution with a fake."""
    fake = FakeRun()
    monkeypatch.setattr(command, "run", fake)
    return fake


@pytest.fixture(name="helm")
def helm_fixture(tmp_path: Path) -> Helm:
    """Create a Helm instance using a temporary directory."""
    return Helm(tmp_path, tmp_path / "cache", kube_config="/etc/admin.conf")


def test_parse_release() -> None:
    """Test parsing helm release output."""
    release = Release.parse_doc(RELEASE_OUTPUT)
    assert release == Release(
        name="foo", namespace="apps", revision=2, version="2.0.0", app_version="v5"
    )


@pytest.mark.parametrize(
    "doc",
    [
        {"namespace": "apps", "chart": {"metadata": {"version": "1.0.0"}}},
        {"name": "foo", "chart": {"metadata": {"version": "1.0.0"}}},
        {"name": "foo", "namespace": "apps"},
    ],
)
def test_parse_invalid_release(doc: dict) -> None:
    """Test invalid release output is rejected."""
    with pytest.raises(HelmException):
        Release.parse_doc(doc)


async def test_add_repository(helm: Helm, fake_run: FakeRun, tmp_path: Path) -> None:
    """Test adding a plain repository."""
    await helm.add_repository(Repository(name="stable", url="https://charts.helm.sh"))
    assert fake_run.args == [
        "helm",
        "repo",
        "add",
        "stable",
        "https://charts.helm.sh",
        "--force-update",
        "--repository-cache",
        str(tmp_path / "cache"),
        "--repository-config",
        str(tmp_path / "repositories.yaml"),
        "--kubeconfig",
        "/etc/admin.conf",
    ]
    assert fake_run.commands[-1].exc is HelmException


async def test_add_repository_auth(helm: Helm, fake_run: FakeRun) -> None:
    """Test repository credentials are passed and the password redacted."""
    await helm.add_repository(
        Repository(
            name="private",
            url="https://charts.example.com",
            username="admin",
            password="hunter2",
            ca_file="/etc/ca.pem",
            cert_file="/etc/cert.pem",
            key_file="/etc/key.pem",
            insecure=True,
        )
    )
    args = fake_run.args
    assert args[args.index("--username") + 1] == "admin"
    assert args[args.index("--password") + 1] == "hunter2"
    assert args[args.index("--ca-file") + 1] == "/etc/ca.pem"
    assert args[args.index("--cert-file") + 1] == "/etc/cert.pem"
    assert args[args.index("--key-file") + 1] == "/etc/key.pem"
    assert "--insecure-skip-tls-verify" in args
    assert "hunter2" not in str(fake_run.commands[-1])


async def test_install(helm: Helm, fake_run: FakeRun, tmp_path: Path) -> None:
    """Test installing a chart."""
    release = await helm.install(
        "stable/foo", "2.0.0", "foo", "apps", {"replicaCount": 2}
    )
    assert release.name == "foo"
    assert release.revision == 2
    args = fake_run.args
    assert args[:7] == [
        "helm",
        "install",
        "foo",
        "stable/foo",
        "--namespace",
        "apps",
        "--create-namespace",
    ]
    assert args[args.index("--version") + 1] == "2.0.0"
    assert args[args.index("--output") + 1] == "json"
    assert fake_run.values == [{"replicaCount": 2}]
    # The values file is removed once helm finished
    assert not list(tmp_path.glob("*-values.yaml"))


async def test_install_same_chart_twice(helm: Helm, fake_run: FakeRun) -> None:
    """Test releases of the same chart are named after their extension."""
    await helm.install("bitnami/nginx", "1.0.0", "web-a", "apps", {"a": 1})
    await helm.install("bitnami/nginx", "1.0.0", "web-b", "apps", {"b": 2})
    first, second = fake_run.commands
    assert first.cmd[1:4] == ["install", "web-a", "bitnami/nginx"]
    assert second.cmd[1:4] == ["install", "web-b", "bitnami/nginx"]
    assert fake_run.values == [{"a": 1}, {"b": 2}]


async def test_install_without_version(helm: Helm, fake_run: FakeRun) -> None:
    """Test installing the latest version of a chart."""
    await helm.install("stable/foo", "", "foo", "apps", {})
    assert "--version" not in fake_run.args
    assert fake_run.values == [{}]


async def test_upgrade(helm: Helm, fake_run: FakeRun) -> None:
    """Test upgrading a release."""
    release = await helm.upgrade("stable/foo", "1.0.0", "2.0.0", "foo", "apps", {})
    assert release.version == "2.0.0"
    args = fake_run.args
    assert args[:6] == ["helm", "upgrade", "foo", "stable/foo", "--namespace", "apps"]
    assert args[args.index("--version") + 1] == "2.0.0"


async def test_uninstall(helm: Helm, fake_run: FakeRun) -> None:
    """Test uninstalling a release."""
    await helm.uninstall("foo", "apps")
    assert fake_run.args[:5] == ["helm", "uninstall", "foo", "--namespace", "apps"]


async def test_invalid_output(
    helm: Helm, fake_run: FakeRun, tmp_path: Path
) -> None:
    """Test unparseable helm output."""
    fake_run.output = "Error: not json"
    with pytest.raises(HelmException, match="Unable to parse"):
        await helm.install("stable/foo", "1.0.0", "foo", "apps", {})
    assert not list(tmp_path.glob("*-values.yaml"))
