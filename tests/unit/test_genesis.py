"""Unit tests for genesis workspace preparation."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from testnet_deploy.bootstrap import ContainerGenesisGenerator, GenesisWorkspaceBuilder, Workspace
from testnet_deploy.config import ClusterTarget, DeployConfig
from testnet_deploy.errors import GenesisGeneratorError, WorkspaceIOError


class TestGenesisWorkspaceBuilder:
    """Tests for GenesisWorkspaceBuilder."""

    def test_build_layout(self, builder, target, generator, config):
        """Test placeholders, validator document and empty peer files."""
        workspace = builder.build(target)

        assert workspace.root == config.workdir
        assert (workspace.root / "node0" / "val.json").exists()
        assert (workspace.root / "node1" / "val.json").exists()
        assert not (workspace.root / "node2").exists()

        descriptors = json.loads(workspace.validators_document.read_text())
        assert len(descriptors) == 2
        assert all("identity_key" in d for d in descriptors)

        for suffix in ["val_0", "val_1", "fn_0", "fn_1"]:
            assert (workspace.root / f"external_address_{suffix}.txt").read_text() == ""
            assert (workspace.root / f"persistent_peers_{suffix}.txt").read_text() == ""

        assert generator.calls == [(config.workdir, False)]

    def test_build_recreates_workspace(self, builder, target, config):
        """Test stale files from a previous run are removed."""
        config.workdir.mkdir(parents=True)
        stale = config.workdir / "node_address_val_7.txt"
        stale.write_text("stale@1.2.3.4:26656")

        builder.build(target)

        assert not stale.exists()

    def test_preserve_chain_id_passed(self, builder, generator, values_file):
        target = ClusterTarget("penumbra-testnet", values_file, preserve_chain_id=True)
        builder.build(target)
        assert generator.calls[0][1] is True

    def test_generator_failure(self, config, target):
        """Test generator errors propagate and peer files are not created."""
        failing = MagicMock()
        failing.generate.side_effect = GenesisGeneratorError("boom")
        builder = GenesisWorkspaceBuilder(config, failing)

        with pytest.raises(GenesisGeneratorError):
            builder.build(target)

        assert not (config.workdir / "persistent_peers_val_0.txt").exists()

    def test_unwritable_workspace(self, tmp_path, generator, target):
        """Test a workdir under a regular file raises WorkspaceIOError."""
        blocker = tmp_path / "file"
        blocker.write_text("")
        config = DeployConfig(workdir=blocker / "pdcli")
        builder = GenesisWorkspaceBuilder(config, generator)

        with pytest.raises(WorkspaceIOError):
            builder.build(target)
        assert generator.calls == []


class TestWorkspace:
    """Tests for Workspace."""

    def test_nodes_and_paths(self, tmp_path: Path):
        workspace = Workspace(tmp_path, validators=1, fullnodes=2)
        assert [n.label for n in workspace.nodes] == ["val-0", "fn-0", "fn-1"]
        assert workspace.node_dir(0) == tmp_path / "node0"

    def test_remove(self, tmp_path: Path):
        root = tmp_path / "ws"
        root.mkdir()
        (root / "x").write_text("")
        Workspace(root, 1, 0).remove()
        assert not root.exists()


class TestContainerGenesisGenerator:
    """Tests for ContainerGenesisGenerator."""

    def _config(self, tmp_path: Path) -> DeployConfig:
        return DeployConfig(
            image="ghcr.io/example/node",
            version="v0.51.0",
            workdir=tmp_path,
            container_cli="podman",
        )

    def test_command(self, tmp_path: Path):
        """Test the generator command line."""
        generator = ContainerGenesisGenerator(self._config(tmp_path))
        cmd = generator.build_command(Workspace(tmp_path, 2, 2), preserve_chain_id=False)

        assert cmd[:2] == ["podman", "run"]
        assert "ghcr.io/example/node:v0.51.0" in cmd
        assert f"{tmp_path.resolve()}:/root" in cmd
        assert "--preserve-chain-id" not in cmd
        assert cmd[-2:] == ["--validators-input-file", "/root/vals.json"]

    def test_command_preserve_chain_id(self, tmp_path: Path):
        generator = ContainerGenesisGenerator(self._config(tmp_path))
        cmd = generator.build_command(Workspace(tmp_path, 2, 2), preserve_chain_id=True)
        assert "--preserve-chain-id" in cmd

    def test_detects_runtime(self, tmp_path: Path):
        """Test podman is preferred, docker is the fallback."""
        with patch("shutil.which", side_effect=lambda name: None):
            generator = ContainerGenesisGenerator(DeployConfig(workdir=tmp_path))
        assert generator.container_cli == "docker"

        with patch("shutil.which", side_effect=lambda name: f"/usr/bin/{name}"):
            generator = ContainerGenesisGenerator(DeployConfig(workdir=tmp_path))
        assert generator.container_cli == "podman"

    def test_generate_success(self, tmp_path: Path):
        with patch("subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=0, stderr="")
            ContainerGenesisGenerator(self._config(tmp_path)).generate(
                Workspace(tmp_path, 1, 0), preserve_chain_id=False
            )
            assert mock_run.called

    def test_generate_failure(self, tmp_path: Path):
        """Test a non-zero exit raises GenesisGeneratorError."""
        with patch("subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=1, stderr="invalid validators file")
            with pytest.raises(GenesisGeneratorError, match="invalid validators file"):
                ContainerGenesisGenerator(self._config(tmp_path)).generate(
                    Workspace(tmp_path, 1, 0), preserve_chain_id=False
                )

    def test_runtime_not_executable(self, tmp_path: Path):
        with patch("subprocess.run", side_effect=PermissionError("Permission denied")):
            with pytest.raises(GenesisGeneratorError, match="Permission denied"):
                ContainerGenesisGenerator(self._config(tmp_path)).generate(
                    Workspace(tmp_path, 1, 0), preserve_chain_id=False
                )

    def test_runtime_missing(self, tmp_path: Path):
        with patch("subprocess.run", side_effect=FileNotFoundError):
            with pytest.raises(GenesisGeneratorError, match="not found"):
                ContainerGenesisGenerator(self._config(tmp_path)).generate(
                    Workspace(tmp_path, 1, 0), preserve_chain_id=False
                )
