"""External address and identity discovery.

After the first (private) deploy, each node's p2p Service is assigned an
external load-balancer address by the platform. This module waits for those
addresses and reads each node's identity token from its running container.
"""

from __future__ import annotations

import re
import time
from collections.abc import Callable

from ..config import ClusterTarget, DeployConfig
from ..errors import AddressProvisioningStalled, IdentityLookupError, NodeNotFound
from ..shared.logging import get_logger
from .k8s import KubectlClient
from .models import IdentityRecord, NodeRef, cluster_nodes

logger = get_logger(__name__)

# Consensus engine container and the command printing its node id.
CONSENSUS_CONTAINER = "tm"
NODE_ID_COMMAND = ["tendermint", "--home=/home/.tendermint", "show-node-id"]


def p2p_service_name(target: ClusterTarget, node: NodeRef) -> str:
    return f"{target.name}-p2p-{node.label}"


def pod_name_pattern(node: NodeRef) -> str:
    """Regex matching a node's pod name but not e.g. ``val-10`` for ``val-1``."""
    return rf"-{re.escape(node.label)}(-|$)"


class ExternalAddressResolver:
    """Discover every node's identity record."""

    def __init__(
        self,
        config: DeployConfig,
        kubectl: KubectlClient | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize resolver.

        Args:
            config: Deployment configuration (port, poll interval, timeout).
            kubectl: Cluster client.
            clock: Monotonic clock, injectable for tests.
            sleep: Sleep function, injectable for tests.
        """
        self.kubectl = kubectl or KubectlClient(config.kubeconfig)
        self.p2p_port = config.p2p_port
        self.poll_interval = config.address_poll_interval
        self.timeout = config.address_timeout
        self.clock = clock
        self.sleep = sleep

    def _pending(self, target: ClusterTarget, nodes: list[NodeRef]) -> tuple[dict, list[NodeRef]]:
        endpoints = {ep.name: ep for ep in self.kubectl.get_service_endpoints(target.selector)}
        addresses: dict[NodeRef, str] = {}
        pending: list[NodeRef] = []
        for node in nodes:
            endpoint = endpoints.get(p2p_service_name(target, node))
            if endpoint is None or endpoint.pending:
                pending.append(node)
            else:
                addresses[node] = f"{endpoint.address}:{self.p2p_port}"
        return addresses, pending

    def wait_for_external_addresses(
        self,
        target: ClusterTarget,
        nodes: list[NodeRef],
    ) -> dict[NodeRef, str]:
        """Poll until every node's p2p Service has an external address.

        The whole batch is re-read on every attempt. A timeout of zero (or
        None) polls indefinitely.

        Returns:
            Mapping of node to ``host:port``, in ``nodes`` order.

        Raises:
            AddressProvisioningStalled: If the timeout elapses first.
        """
        deadline = self.clock() + self.timeout if self.timeout else None
        attempt = 0

        while True:
            attempt += 1
            addresses, pending = self._pending(target, nodes)
            if not pending:
                logger.info("external addresses provisioned", target=target.name, attempts=attempt)
                return addresses

            pending_labels = tuple(str(node) for node in pending)
            if deadline is not None and self.clock() >= deadline:
                raise AddressProvisioningStalled(
                    f"External addresses still pending after {self.timeout:.0f}s: "
                    f"{', '.join(pending_labels)}",
                    pending=pending_labels,
                )

            logger.info(
                "waiting for load balancer external IPs",
                target=target.name,
                pending=list(pending_labels),
                attempt=attempt,
            )
            self.sleep(self.poll_interval)

    def lookup_node_id(self, target: ClusterTarget, node: NodeRef) -> str:
        """Read a node's identity token from its consensus container.

        Raises:
            NodeNotFound: If no pod matches the node.
            IdentityLookupError: If the command fails or prints nothing.
        """
        pod = self.kubectl.find_pod(target.selector, pod_name_pattern(node))
        if pod is None:
            raise NodeNotFound(f"No pod found for {node} in {target.name}", node=str(node))

        success, output = self.kubectl.exec_in_pod(pod, CONSENSUS_CONTAINER, NODE_ID_COMMAND)
        node_id = output.replace("\r", "").strip() if success else ""
        if not node_id:
            reason = output.strip() if not success else "empty output"
            raise IdentityLookupError(
                f"Failed to read node id for {node} from {pod}: {reason}", node=str(node)
            )
        return node_id

    def resolve_identities(
        self,
        target: ClusterTarget,
        addresses: dict[NodeRef, str],
    ) -> dict[NodeRef, IdentityRecord]:
        """Pair every address with the node's identity token.

        Pods must already be running. Any failed lookup fails the whole call.
        """
        records: dict[NodeRef, IdentityRecord] = {}
        for node, endpoint in addresses.items():
            logger.info("getting public peer string", target=target.name, node=str(node))
            records[node] = IdentityRecord(
                node_id=self.lookup_node_id(target, node),
                endpoint=endpoint,
            )
        return records

    def resolve(
        self,
        target: ClusterTarget,
        validators: int,
        fullnodes: int,
    ) -> dict[NodeRef, IdentityRecord]:
        """Wait for external addresses, then discover identities.

        Returns:
            One record per node, validators first, in index order.
        """
        nodes = cluster_nodes(validators, fullnodes)
        addresses = self.wait_for_external_addresses(target, nodes)
        records = self.resolve_identities(target, addresses)
        if len(records) != len(nodes):
            raise IdentityLookupError(
                f"Resolved {len(records)} of {len(nodes)} nodes in {target.name}"
            )
        return records
