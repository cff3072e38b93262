"""Bootstrap package for deploying a testnet cluster.

This package provides the pieces the ``testnet-deploy`` command sequences:
1. Classifies the release as a patch or a full rebuild
2. Generates genesis into a local workspace
3. Deploys the cluster with empty peer lists
4. Discovers external addresses and node identities
5. Assembles the peer mesh and redeploys
"""

from .deploy import ClusterDeploymentController
from .genesis import ContainerGenesisGenerator, GenesisGenerator, GenesisWorkspaceBuilder, Workspace
from .k8s import HelmClient, KubectlClient, ServiceEndpoint
from .mesh import PeerMeshAssembler
from .models import IdentityRecord, NodeClass, NodeRef, cluster_nodes
from .orchestrator import BootstrapOrchestrator, BootstrapPhase, BootstrapResult
from .prerequisites import PrerequisiteDetector, PrerequisiteReport, ToolInfo, detect_container_cli
from .release import ReleaseKind, classify_release, requires_rebuild
from .resolver import ExternalAddressResolver

__all__ = [
    # Models
    "NodeClass",
    "NodeRef",
    "IdentityRecord",
    "cluster_nodes",
    # Release classification
    "ReleaseKind",
    "classify_release",
    "requires_rebuild",
    # Prerequisites
    "PrerequisiteDetector",
    "PrerequisiteReport",
    "ToolInfo",
    "detect_container_cli",
    # Genesis workspace
    "Workspace",
    "GenesisGenerator",
    "ContainerGenesisGenerator",
    "GenesisWorkspaceBuilder",
    # Kubernetes
    "KubectlClient",
    "HelmClient",
    "ServiceEndpoint",
    "ClusterDeploymentController",
    # Discovery and mesh
    "ExternalAddressResolver",
    "PeerMeshAssembler",
    # Orchestration
    "BootstrapOrchestrator",
    "BootstrapPhase",
    "BootstrapResult",
]
