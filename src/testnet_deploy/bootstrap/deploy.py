"""Cluster deployment control.

Applies and removes a target's workloads. Durable resources (ingress,
managed certificates) carry ``helm.sh/resource-policy=keep`` and are never
selected for deletion here, so recreating them never delays endpoint
availability.
"""

from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Any

import yaml

from ..config import ClusterTarget, DeployConfig
from ..errors import DeploymentApplyError, ReadinessTimeout, RolloutError
from ..shared.logging import get_logger
from .k8s import HelmClient, KubectlClient

logger = get_logger(__name__)

# Mutable workload kinds removed on teardown, in order.
TEARDOWN_KINDS = ("deployments", "pvc")

# Container running the node software in every node pod.
NODE_CONTAINER = "pd"


def component_selector(target: ClusterTarget) -> str:
    """Selector for the node workloads (not monitoring) of a target."""
    return f"{target.selector}, app.kubernetes.io/component in (fullnode, validator)"


class ClusterDeploymentController:
    """Apply, remove and roll out a target's deployment."""

    def __init__(
        self,
        config: DeployConfig,
        kubectl: KubectlClient | None = None,
        helm: HelmClient | None = None,
    ):
        self.config = config
        self.kubectl = kubectl or KubectlClient(config.kubeconfig)
        self.helm = helm or HelmClient(config.kubeconfig)

    def teardown(self, target: ClusterTarget) -> None:
        """Remove the target's deployments and volume claims.

        Best effort and idempotent: nothing to delete is not an error, and
        failures are logged rather than raised.
        """
        for kind in TEARDOWN_KINDS:
            # PVC deletion waits so the next apply starts from empty storage.
            success, msg = self.kubectl.delete(kind, target.selector, wait=kind != "deployments")
            if success:
                logger.debug("teardown", target=target.name, kind=kind, result=msg)
            else:
                logger.warning("teardown incomplete", target=target.name, kind=kind, error=msg)

    def build_values(self) -> dict[str, Any]:
        """Values document overriding the target's values file."""
        config = self.config
        return {
            "numValidators": config.validators,
            "numFullNodes": config.fullnodes,
            "penumbra": {
                "image": config.image,
                "version": config.version,
                "uidGid": config.uid_gid,
            },
            "grafana": {"version": config.version},
            "tendermint": {"version": config.tendermint_version},
        }

    def apply(self, target: ClusterTarget) -> None:
        """Install or upgrade the target's release.

        Safe to repeat with the same values; the release converges.

        Raises:
            DeploymentApplyError: If helm rejects the release.
        """
        try:
            with tempfile.TemporaryDirectory(prefix="testnet-deploy-") as tmpdir:
                overrides = Path(tmpdir) / "values.yaml"
                with open(overrides, "w") as f:
                    yaml.safe_dump(self.build_values(), f, default_flow_style=False, sort_keys=False)

                success, msg = self.helm.upgrade_install(
                    target.name,
                    self.config.chart,
                    [target.values_file, overrides],
                )
        except OSError as e:
            raise DeploymentApplyError(f"Failed to write values overrides: {e}") from e

        if not success:
            raise DeploymentApplyError(msg)
        logger.info("release applied", target=target.name)

    def wait_until_ready(self, target: ClusterTarget, timeout: int | None = None) -> None:
        """Block until every pod of the target is ready.

        Raises:
            ReadinessTimeout: If the timeout elapses first.
        """
        timeout = timeout if timeout is not None else self.config.readiness_timeout
        success, msg = self.kubectl.wait_for_pods_ready(target.selector, timeout)
        if not success:
            raise ReadinessTimeout(msg)

    def bump_image(self, target: ClusterTarget) -> None:
        """Roll the node workloads onto the configured image.

        Chain state is untouched; pods are replaced by the platform.

        Raises:
            RolloutError: If the image update or rollout fails.
        """
        selector = component_selector(target)
        success, msg = self.kubectl.set_image(
            "deployments", selector, NODE_CONTAINER, self.config.image_ref
        )
        if not success:
            raise RolloutError(msg)

        success, msg = self.kubectl.rollout_status(
            "deployment", selector, self.config.rollout_timeout
        )
        if not success:
            raise RolloutError(msg)
        logger.info("image rolled out", target=target.name, image=self.config.image_ref)
