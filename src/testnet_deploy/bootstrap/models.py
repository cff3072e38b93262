"""Node and identity types shared by the bootstrap components."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class NodeClass(Enum):
    """The two classes of node in a cluster."""

    VALIDATOR = "validator"  # Participates in consensus
    FULLNODE = "fullnode"  # Observes only

    @property
    def short_name(self) -> str:
        """Abbreviation used in resource and file names."""
        return "val" if self is NodeClass.VALIDATOR else "fn"


@dataclass(frozen=True)
class NodeRef:
    """A node, identified by its class and ordinal index within the class."""

    node_class: NodeClass
    index: int

    @property
    def label(self) -> str:
        """Resource-name fragment, e.g. ``val-0``."""
        return f"{self.node_class.short_name}-{self.index}"

    @property
    def file_suffix(self) -> str:
        """Workspace file-name fragment, e.g. ``val_0``."""
        return f"{self.node_class.short_name}_{self.index}"

    def __str__(self) -> str:
        return self.label


@dataclass(frozen=True)
class IdentityRecord:
    """A node's stable identity token and externally reachable endpoint."""

    node_id: str
    endpoint: str

    @property
    def connection_string(self) -> str:
        return f"{self.node_id}@{self.endpoint}"


def cluster_nodes(validators: int, fullnodes: int) -> list[NodeRef]:
    """All nodes of a cluster, validators first, each class in index order."""
    nodes = [NodeRef(NodeClass.VALIDATOR, i) for i in range(validators)]
    nodes.extend(NodeRef(NodeClass.FULLNODE, i) for i in range(fullnodes))
    return nodes
