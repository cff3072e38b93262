"""Shared test fixtures for testnet-deploy tests.

This module provides fakes for the process-external capabilities:
- FakeCluster: a kubectl client backed by in-memory cluster state
- FakeHelm: a helm client that "deploys" into a FakeCluster
- FakeGenerator: a genesis generator that writes a stub genesis file
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
import yaml

from testnet_deploy.bootstrap import (
    ClusterDeploymentController,
    ExternalAddressResolver,
    GenesisWorkspaceBuilder,
    HelmClient,
    KubectlClient,
    ServiceEndpoint,
    Workspace,
    cluster_nodes,
)
from testnet_deploy.config import ClusterTarget, DeployConfig
from testnet_deploy.errors import GenesisGeneratorError

RELEASE = "penumbra-testnet-preview"

# =============================================================================
# Fake cluster - Simulates kubectl against one target
# =============================================================================


class FakeCluster(KubectlClient):
    """In-memory cluster for one release."""

    def __init__(self, release: str, validators: int, fullnodes: int, pending_polls: int = 0):
        super().__init__()
        self.release = release
        self.nodes = cluster_nodes(validators, fullnodes)
        self.pending_polls = pending_polls  # Polls answered with <pending>
        self.deployed = False
        self.has_pvcs = False
        self.durable = {"ingress", "managedcertificate"}
        self.ready = True
        self.missing_pods: set[str] = set()
        self.polls = 0
        self.calls: list[tuple[Any, ...]] = []
        self.image: str | None = None

    def address_of(self, position: int) -> str:
        return f"198.51.100.{position + 1}"

    def node_id_of(self, label: str) -> str:
        return f"id-{label}"

    def delete(self, kind: str, selector: str, wait: bool = True) -> tuple[bool, str]:
        self.calls.append(("delete", kind, selector))
        if kind == "deployments":
            self.deployed = False
        elif kind == "pvc":
            self.has_pvcs = False
        else:
            self.durable.discard(kind)
        return True, "No resources found"

    def get_service_endpoints(self, selector: str) -> list[ServiceEndpoint]:
        self.calls.append(("get_services", selector))
        self.polls += 1
        pending = self.polls <= self.pending_polls
        return [
            ServiceEndpoint(
                name=f"{self.release}-p2p-{node.label}",
                address=None if pending else self.address_of(position),
            )
            for position, node in enumerate(self.nodes)
        ]

    def list_pods(self, selector: str) -> list[str]:
        if not self.deployed:
            return []
        return [
            f"{self.release}-{node.label}-5d8f7b9c4-x2k9z"
            for node in self.nodes
            if node.label not in self.missing_pods
        ]

    def exec_in_pod(self, pod: str, container: str, command: list[str]) -> tuple[bool, str]:
        self.calls.append(("exec", pod, container))
        label = pod.removeprefix(f"{self.release}-").rsplit("-", 2)[0]
        return True, f"{self.node_id_of(label)}\r\n"

    def wait_for_pods_ready(self, selector: str, timeout_seconds: int = 300) -> tuple[bool, str]:
        self.calls.append(("wait", selector))
        if self.deployed and self.ready:
            return True, "All pods ready"
        return False, "Pods not ready: timed out waiting for the condition"

    def set_image(self, kind: str, selector: str, container: str, image: str) -> tuple[bool, str]:
        self.calls.append(("set_image", selector, container, image))
        self.image = image
        return True, "image updated"

    def rollout_status(self, kind: str, selector: str, timeout_seconds: int = 600) -> tuple[bool, str]:
        self.calls.append(("rollout_status", selector))
        return True, "successfully rolled out"

    def call_names(self) -> list[str]:
        return [call[0] for call in self.calls]


class FakeHelm(HelmClient):
    """Helm client that deploys into a FakeCluster."""

    def __init__(self, cluster: FakeCluster, fail: bool = False):
        super().__init__()
        self.cluster = cluster
        self.fail = fail
        self.applies: list[dict[str, Any]] = []

    def upgrade_install(self, release: str, chart: Path, values_files: list[Path]) -> tuple[bool, str]:
        # Overrides live in a temp dir, read them while it exists.
        self.applies.append(
            {
                "release": release,
                "chart": chart,
                "values_files": list(values_files),
                "overrides": yaml.safe_load(values_files[-1].read_text()),
            }
        )
        self.cluster.calls.append(("apply", release))
        if self.fail:
            return False, "Error: UPGRADE FAILED"
        self.cluster.deployed = True
        self.cluster.has_pvcs = True
        return True, f"Release {release} applied"


class FakeGenerator:
    """Genesis generator stand-in."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: list[tuple[Path, bool]] = []

    def generate(self, workspace: Workspace, preserve_chain_id: bool) -> None:
        self.calls.append((workspace.root, preserve_chain_id))
        if self.fail:
            raise GenesisGeneratorError("testnet generate exited with status 1: boom")
        (workspace.root / "genesis.json").write_text("{}")


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def values_file(tmp_path: Path) -> Path:
    path = tmp_path / "networks" / "testnet-preview" / f"helm-values-for-{RELEASE}.yml"
    path.parent.mkdir(parents=True)
    path.write_text("ingress:\n  enabled: true\n")
    return path


@pytest.fixture
def config(tmp_path: Path, values_file: Path) -> DeployConfig:
    return DeployConfig(
        version="v0.51.0",
        release=RELEASE,
        validators=2,
        fullnodes=2,
        workdir=tmp_path / "pdcli",
        networks_dir=tmp_path / "networks",
        address_poll_interval=0,
        address_timeout=60,
        settle_seconds=0,
        container_cli="docker",
    )


@pytest.fixture
def target(values_file: Path) -> ClusterTarget:
    return ClusterTarget(name=RELEASE, values_file=values_file)


@pytest.fixture
def cluster() -> FakeCluster:
    return FakeCluster(RELEASE, validators=2, fullnodes=2)


@pytest.fixture
def helm(cluster: FakeCluster) -> FakeHelm:
    return FakeHelm(cluster)


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def controller(config: DeployConfig, cluster: FakeCluster, helm: FakeHelm) -> ClusterDeploymentController:
    return ClusterDeploymentController(config, cluster, helm)


@pytest.fixture
def builder(config: DeployConfig, generator: FakeGenerator) -> GenesisWorkspaceBuilder:
    return GenesisWorkspaceBuilder(config, generator)


@pytest.fixture
def resolver(config: DeployConfig, cluster: FakeCluster) -> ExternalAddressResolver:
    return ExternalAddressResolver(config, cluster, sleep=lambda _: None)
