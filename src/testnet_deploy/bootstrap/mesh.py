"""Peer mesh assembly.

Every node peers with every other node. A node's peer string is the
comma-joined connection strings of all other nodes, in discovery order.
"""

from __future__ import annotations

from ..errors import WorkspaceIOError
from .genesis import Workspace
from .models import IdentityRecord, NodeRef


class PeerMeshAssembler:
    """Build and persist per-node persistent peer lists."""

    def assemble(self, records: dict[NodeRef, IdentityRecord]) -> dict[NodeRef, str]:
        """Compute each node's peer string.

        Input order is preserved and not re-sorted. A single-node mapping
        yields an empty peer string.
        """
        return {
            node: ",".join(
                record.connection_string for other, record in records.items() if other != node
            )
            for node in records
        }

    def write(
        self,
        workspace: Workspace,
        records: dict[NodeRef, IdentityRecord],
        mesh: dict[NodeRef, str],
    ) -> None:
        """Write addresses and peer lists into the workspace flat files.

        Raises:
            WorkspaceIOError: If a file cannot be written.
        """
        try:
            for node, record in records.items():
                workspace.external_address_file(node).write_text(record.endpoint)
                workspace.node_address_file(node).write_text(record.connection_string)
                workspace.persistent_peers_file(node).write_text(mesh[node])
        except OSError as e:
            raise WorkspaceIOError(
                f"Failed to write peer files in {workspace.root}: {e}", phase="mesh"
            ) from e
