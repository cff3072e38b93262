"""Genesis workspace preparation.

The workspace is a local directory the chart reads at install time. It holds
per-node configuration produced by the genesis generator and the flat files
carrying each node's external address and persistent peers.
"""

from __future__ import annotations

import json
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from ..config import ClusterTarget, DeployConfig
from ..errors import GenesisGeneratorError, WorkspaceIOError
from ..shared.logging import get_logger
from .models import NodeRef, cluster_nodes
from .prerequisites import detect_container_cli

logger = get_logger(__name__)

# Overwritten by the generator. If it never runs, nodes deploy with these
# inert values.
PLACEHOLDER_VALIDATOR = {
    "identity_key": "penumbravalid1lr73zgd726gpk7rl45hvpg9f7r9wchgg8gpjhx2gqntx4md6gg9sser05u",
    "consensus_key": "9OQ8HOy4YsryEPLbTtPKoKdmmjSqEJhzvS+x0WC8YoM=",
    "name": "",
    "website": "",
    "description": "",
    "enabled": False,
    "funding_streams": [
        {
            "address": (
                "penumbrav2t1wz70yfqlgzfgwml5ne04vhnhahg8axmaupuv7x0gpuzesfhhz63y52cqffv93k7"
                "qvuuq6yqtgcj0z267v59qxpjuvc0hvfaynaaemgmqzyj38xhj8yjx7vcftnyq9q28exjrdj"
            ),
            "rate_bps": 100,
        }
    ],
    "sequence_number": 0,
    "governance_key": "penumbragovern1lr73zgd726gpk7rl45hvpg9f7r9wchgg8gpjhx2gqntx4md6gg9sthagp6",
}

VALIDATORS_DOCUMENT = "vals.json"


@dataclass
class Workspace:
    """Local staging directory for one bootstrap run."""

    root: Path
    validators: int
    fullnodes: int

    @property
    def nodes(self) -> list[NodeRef]:
        return cluster_nodes(self.validators, self.fullnodes)

    @property
    def validators_document(self) -> Path:
        return self.root / VALIDATORS_DOCUMENT

    def node_dir(self, index: int) -> Path:
        """Per-validator config directory."""
        return self.root / f"node{index}"

    def external_address_file(self, node: NodeRef) -> Path:
        return self.root / f"external_address_{node.file_suffix}.txt"

    def persistent_peers_file(self, node: NodeRef) -> Path:
        return self.root / f"persistent_peers_{node.file_suffix}.txt"

    def node_address_file(self, node: NodeRef) -> Path:
        return self.root / f"node_address_{node.file_suffix}.txt"

    def remove(self) -> None:
        """Delete the staging directory."""
        shutil.rmtree(self.root, ignore_errors=True)


class GenesisGenerator(Protocol):
    """Populates a workspace with generated genesis and node configuration."""

    def generate(self, workspace: Workspace, preserve_chain_id: bool) -> None:
        """Raises GenesisGeneratorError on failure."""
        ...


class ContainerGenesisGenerator:
    """Run the node image's ``testnet generate`` in a throwaway container."""

    def __init__(self, config: DeployConfig):
        self.image_ref = config.image_ref
        self.container_home = config.container_home
        self.container_cli = config.container_cli or detect_container_cli()

    def build_command(self, workspace: Workspace, preserve_chain_id: bool) -> list[str]:
        cmd = [
            self.container_cli,
            "run",
            "--user",
            "0:0",
            "--pull",
            "always",
            "-v",
            f"{workspace.root.resolve()}:{self.container_home}",
            "--rm",
            "--entrypoint",
            "pd",
            self.image_ref,
            "testnet",
            "generate",
        ]
        if preserve_chain_id:
            cmd.append("--preserve-chain-id")
        cmd.extend(["--validators-input-file", f"{self.container_home}/{VALIDATORS_DOCUMENT}"])
        return cmd

    def generate(self, workspace: Workspace, preserve_chain_id: bool) -> None:
        cmd = self.build_command(workspace, preserve_chain_id)
        logger.debug("running genesis generator", command=" ".join(cmd))
        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except FileNotFoundError:
            raise GenesisGeneratorError(
                f"{self.container_cli} not found. Is a container runtime installed?"
            ) from None
        except OSError as e:
            raise GenesisGeneratorError(f"Failed to run {self.container_cli}: {e}") from e
        if result.returncode != 0:
            raise GenesisGeneratorError(
                f"testnet generate exited with status {result.returncode}: "
                f"{result.stderr.strip()}"
            )


class GenesisWorkspaceBuilder:
    """Prepare a fresh workspace and generate genesis into it."""

    def __init__(self, config: DeployConfig, generator: GenesisGenerator):
        """Initialize builder.

        Args:
            config: Deployment configuration (workdir and node counts).
            generator: Genesis generator capability.
        """
        self.root = config.workdir
        self.validators = config.validators
        self.fullnodes = config.fullnodes
        self.generator = generator

    def build(self, target: ClusterTarget) -> Workspace:
        """Build the workspace for a full rebuild.

        Args:
            target: Deployment target; decides whether the chain id is kept.

        Returns:
            Workspace with generated config and empty peer files.

        Raises:
            WorkspaceIOError: If the directory cannot be reset or written.
            GenesisGeneratorError: If the generator fails.
        """
        workspace = Workspace(self.root, self.validators, self.fullnodes)

        try:
            self._reset(workspace)
            self._write_placeholders(workspace)
        except OSError as e:
            raise WorkspaceIOError(f"Failed to prepare workspace {self.root}: {e}") from e

        logger.info(
            "generating testnet files",
            target=target.name,
            validators=self.validators,
            preserve_chain_id=target.preserve_chain_id,
        )
        self.generator.generate(workspace, preserve_chain_id=target.preserve_chain_id)

        # The chart requires these files to exist before every apply, but
        # external addresses are unknown until the first deploy.
        try:
            for node in workspace.nodes:
                workspace.external_address_file(node).write_text("")
                workspace.persistent_peers_file(node).write_text("")
        except OSError as e:
            raise WorkspaceIOError(f"Failed to write peer files in {self.root}: {e}") from e

        return workspace

    def _reset(self, workspace: Workspace) -> None:
        if workspace.root.exists():
            shutil.rmtree(workspace.root)
        workspace.root.mkdir(parents=True)

    def _write_placeholders(self, workspace: Workspace) -> None:
        descriptors = []
        for index in range(workspace.validators):
            node_dir = workspace.node_dir(index)
            node_dir.mkdir(parents=True, exist_ok=True)
            descriptor = dict(PLACEHOLDER_VALIDATOR)
            (node_dir / "val.json").write_text(json.dumps(descriptor))
            descriptors.append(descriptor)

        workspace.validators_document.write_text(json.dumps(descriptors, indent=2))
