"""Unit tests for peer mesh assembly."""

from __future__ import annotations

from pathlib import Path

import pytest

from testnet_deploy.bootstrap import (
    IdentityRecord,
    NodeClass,
    NodeRef,
    PeerMeshAssembler,
    Workspace,
    cluster_nodes,
)
from testnet_deploy.errors import WorkspaceIOError


def make_records(validators: int, fullnodes: int) -> dict[NodeRef, IdentityRecord]:
    return {
        node: IdentityRecord(node_id=f"id{position}", endpoint=f"10.0.0.{position}:26656")
        for position, node in enumerate(cluster_nodes(validators, fullnodes))
    }


class TestAssemble:
    """Tests for PeerMeshAssembler.assemble."""

    def test_single_node_has_no_peers(self):
        """Test a one-node network yields an empty peer string."""
        records = make_records(1, 0)
        mesh = PeerMeshAssembler().assemble(records)
        assert mesh == {NodeRef(NodeClass.VALIDATOR, 0): ""}

    @pytest.mark.parametrize("validators,fullnodes", [(1, 0), (1, 1), (2, 2), (4, 3)])
    def test_own_entry_excluded(self, validators, fullnodes):
        """Test no node appears in its own peer list."""
        records = make_records(validators, fullnodes)
        mesh = PeerMeshAssembler().assemble(records)

        assert set(mesh) == set(records)
        for node, peers in mesh.items():
            entries = peers.split(",") if peers else []
            assert records[node].connection_string not in entries
            assert len(entries) == len(records) - 1

    def test_two_by_two_order(self):
        """Test validator 0 peers with the others in discovery order."""
        records = make_records(2, 2)
        mesh = PeerMeshAssembler().assemble(records)

        assert mesh[NodeRef(NodeClass.VALIDATOR, 0)] == (
            "id1@10.0.0.1:26656,id2@10.0.0.2:26656,id3@10.0.0.3:26656"
        )
        assert mesh[NodeRef(NodeClass.FULLNODE, 0)] == (
            "id0@10.0.0.0:26656,id1@10.0.0.1:26656,id3@10.0.0.3:26656"
        )

    def test_no_trailing_comma(self):
        records = make_records(2, 1)
        for peers in PeerMeshAssembler().assemble(records).values():
            assert not peers.endswith(",")
            assert not peers.startswith(",")

    def test_input_order_not_resorted(self):
        """Test the mapping's iteration order is kept as-is."""
        fn = NodeRef(NodeClass.FULLNODE, 0)
        val1 = NodeRef(NodeClass.VALIDATOR, 1)
        val0 = NodeRef(NodeClass.VALIDATOR, 0)
        records = {
            fn: IdentityRecord("c", "3.3.3.3:1"),
            val1: IdentityRecord("b", "2.2.2.2:1"),
            val0: IdentityRecord("a", "1.1.1.1:1"),
        }
        mesh = PeerMeshAssembler().assemble(records)
        assert mesh[val0] == "c@3.3.3.3:1,b@2.2.2.2:1"

    def test_empty_mapping(self):
        assert PeerMeshAssembler().assemble({}) == {}


class TestWrite:
    """Tests for PeerMeshAssembler.write."""

    def test_writes_flat_files(self, tmp_path: Path):
        """Test addresses, node addresses and peers land in the workspace."""
        workspace = Workspace(tmp_path, validators=1, fullnodes=1)
        records = make_records(1, 1)
        assembler = PeerMeshAssembler()
        mesh = assembler.assemble(records)

        assembler.write(workspace, records, mesh)

        assert (tmp_path / "external_address_val_0.txt").read_text() == "10.0.0.0:26656"
        assert (tmp_path / "node_address_fn_0.txt").read_text() == "id1@10.0.0.1:26656"
        assert (tmp_path / "persistent_peers_val_0.txt").read_text() == "id1@10.0.0.1:26656"
        assert (tmp_path / "persistent_peers_fn_0.txt").read_text() == "id0@10.0.0.0:26656"

    def test_write_failure(self, tmp_path: Path):
        """Test an unwritable workspace raises WorkspaceIOError."""
        workspace = Workspace(tmp_path / "missing", validators=1, fullnodes=0)
        records = make_records(1, 0)
        assembler = PeerMeshAssembler()

        with pytest.raises(WorkspaceIOError):
            assembler.write(workspace, records, assembler.assemble(records))
