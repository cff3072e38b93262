"""Two-phase bootstrap orchestration.

Node configuration has to embed the external address and identity of every
other node, but external addresses are only assigned after the first deploy.
A full rebuild therefore deploys twice:

1. Tear down old workloads, generate genesis, deploy with empty peer lists.
2. Wait for external addresses and readiness, read each node's identity,
   write the peer mesh into the workspace.
3. Tear down again and redeploy. Pods read peer config only from files bound
   at creation, so they must be replaced to pick up the mesh.

A patch release skips all of this and rolls the new image onto the running
deployment, keeping chain state.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from ..config import ClusterTarget, DeployConfig
from ..errors import DeployError, IdentityLookupError
from ..shared.logging import bind_target, get_logger
from .deploy import ClusterDeploymentController
from .genesis import GenesisWorkspaceBuilder, Workspace
from .mesh import PeerMeshAssembler
from .models import IdentityRecord, NodeRef
from .release import ReleaseKind, classify_release, requires_rebuild
from .resolver import ExternalAddressResolver

logger = get_logger(__name__)


class BootstrapPhase(Enum):
    """States of a bootstrap run."""

    START = "start"
    CLASSIFIED = "classified"
    BUMPING = "bumping"  # Patch path only
    TORN_DOWN = "torn_down"
    GENESIS_BUILT = "genesis_built"
    PRIVATELY_DEPLOYED = "privately_deployed"
    ADDRESSES_RESOLVED = "addresses_resolved"
    MESH_ASSEMBLED = "mesh_assembled"
    TORN_DOWN_AGAIN = "torn_down_again"
    PUBLICLY_DEPLOYED = "publicly_deployed"
    DONE = "done"
    FAILED = "failed"


@dataclass
class BootstrapResult:
    """Outcome of a bootstrap run."""

    success: bool = False
    kind: ReleaseKind | None = None
    phase: BootstrapPhase = BootstrapPhase.START
    history: list[BootstrapPhase] = field(default_factory=lambda: [BootstrapPhase.START])
    failed_step: str | None = None
    error: DeployError | None = None
    records: dict[NodeRef, IdentityRecord] = field(default_factory=dict)
    mesh: dict[NodeRef, str] = field(default_factory=dict)

    @property
    def exit_code(self) -> int:
        if self.success:
            return 0
        return self.error.exit_code if self.error else 1


class BootstrapOrchestrator:
    """Sequence classification, deployment, discovery and redeployment."""

    def __init__(
        self,
        config: DeployConfig,
        target: ClusterTarget,
        controller: ClusterDeploymentController,
        builder: GenesisWorkspaceBuilder,
        resolver: ExternalAddressResolver,
        assembler: PeerMeshAssembler | None = None,
        on_progress: Callable[[str], None] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize orchestrator.

        Args:
            config: Deployment configuration.
            target: Resolved deployment target; every step is scoped to it.
            controller: Cluster deployment controller.
            builder: Genesis workspace builder (rebuild path only).
            resolver: External address resolver (rebuild path only).
            assembler: Peer mesh assembler.
            on_progress: Optional callback receiving a human-readable line
                before each step and on failure.
            sleep: Sleep function, injectable for tests.
        """
        self.config = config
        self.target = target
        self.controller = controller
        self.builder = builder
        self.resolver = resolver
        self.assembler = assembler or PeerMeshAssembler()
        self.on_progress = on_progress
        self.sleep = sleep
        self._result = BootstrapResult()
        self._step = "classify"

    def _report(self, message: str) -> None:
        if self.on_progress:
            self.on_progress(message)

    def _begin(self, step: str, message: str) -> None:
        self._step = step
        logger.info(message, step=step)
        self._report(message)

    def _advance(self, phase: BootstrapPhase) -> None:
        self._result.phase = phase
        self._result.history.append(phase)

    def run(self) -> BootstrapResult:
        """Run the bootstrap to completion or first failure.

        Errors are not raised; they end the run and are recorded on the
        result, which carries the exit code.
        """
        self._result = result = BootstrapResult()
        version = self.config.version
        bind_target(self.target.name, version)

        result.kind = classify_release(version)
        self._advance(BootstrapPhase.CLASSIFIED)

        try:
            if requires_rebuild(result.kind):
                self._report(
                    f"Release target '{version}' requires a full re-deploy; "
                    "will generate new testnet chain info."
                )
                self._full_rebuild()
            else:
                self._report(
                    f"Release target '{version}' is a patch release; "
                    "will preserve testnet while bumping version."
                )
                self._patch()
        except DeployError as e:
            result.success = False
            result.error = e
            result.failed_step = self._step
            self._advance(BootstrapPhase.FAILED)
            logger.error("bootstrap failed", step=self._step, error=str(e))
            self._report(f"ERROR: {self._step} failed: {e}")
            return result

        result.success = True
        self._advance(BootstrapPhase.DONE)
        return result

    def _patch(self) -> None:
        self._advance(BootstrapPhase.BUMPING)
        self._begin("image bump", f"Rolling out {self.config.image_ref} to running nodes...")
        self.controller.bump_image(self.target)

        self._begin("readiness", "Waiting for pods to be running...")
        self.controller.wait_until_ready(self.target)
        self._report("Deploy complete!")

    def _full_rebuild(self) -> None:
        target = self.target

        self._begin("teardown", "Shutting down existing testnet if necessary...")
        self.controller.teardown(target)
        self._advance(BootstrapPhase.TORN_DOWN)

        self._begin("genesis", "Creating new genesis config...")
        workspace = self.builder.build(target)
        self._advance(BootstrapPhase.GENESIS_BUILT)

        # Nodes come up but cannot peer until external addresses are known.
        self._begin("private deploy", "Performing initial deploy of network, with private IPs...")
        self.controller.apply(target)
        self._advance(BootstrapPhase.PRIVATELY_DEPLOYED)

        try:
            records = self._discover(workspace)
        except DeployError:
            # Leave the target torn down, not privately deployed.
            logger.warning("discovery failed, tearing down", step=self._step)
            self.controller.teardown(target)
            raise
        self._result.records = records
        self._advance(BootstrapPhase.ADDRESSES_RESOLVED)

        self._begin("mesh", "Assembling peer mesh...")
        mesh = self.assembler.assemble(records)
        self.assembler.write(workspace, records, mesh)
        self._result.mesh = mesh
        self._advance(BootstrapPhase.MESH_ASSEMBLED)

        self._begin(
            "public teardown",
            "Applying fresh values so that nodes can peer and advertise external addresses.",
        )
        self.controller.teardown(target)
        self._advance(BootstrapPhase.TORN_DOWN_AGAIN)
        self.sleep(self.config.settle_seconds)

        self._begin("public deploy", "Redeploying network with public peer config...")
        self.controller.apply(target)
        self._advance(BootstrapPhase.PUBLICLY_DEPLOYED)

        self._begin("final readiness", "Waiting for pods to be running...")
        self.controller.wait_until_ready(target)
        self._report("Deploy complete!")

        self._release_workspace(workspace)

    def _discover(self, workspace: Workspace) -> dict[NodeRef, IdentityRecord]:
        target = self.target

        self._begin("external addresses", "Waiting for load balancer external IPs to be provisioned...")
        addresses = self.resolver.wait_for_external_addresses(target, workspace.nodes)

        self._begin("readiness", "Waiting for pods to be running...")
        self.controller.wait_until_ready(target)

        self._begin("identities", "Collecting config values for each node...")
        records = self.resolver.resolve_identities(target, addresses)
        expected = len(workspace.nodes)
        if len(records) != expected:
            raise IdentityLookupError(f"Resolved {len(records)} of {expected} nodes")
        return records

    def _release_workspace(self, workspace: Workspace) -> None:
        if self.config.keep_workspace:
            logger.info("keeping workspace", path=str(workspace.root))
            return
        workspace.remove()
