"""Kubernetes and Helm command wrappers.

Thin wrappers over ``kubectl`` and ``helm``. Every method returns a
``(success, message)`` tuple or plain data; the components built on top
decide which failures are fatal.
"""

from __future__ import annotations

import json
import re
import subprocess
from dataclasses import dataclass
from pathlib import Path


@dataclass
class ServiceEndpoint:
    """External endpoint state of one Service."""

    name: str
    address: str | None = None  # None while the load balancer is pending

    @property
    def pending(self) -> bool:
        return self.address is None


def _ingress_address(service: dict) -> str | None:
    """First load-balancer ingress IP (or hostname) of a Service, if assigned."""
    ingress = service.get("status", {}).get("loadBalancer", {}).get("ingress") or []
    if not ingress:
        return None
    return ingress[0].get("ip") or ingress[0].get("hostname") or None


class KubectlClient:
    """Query and control cluster resources with kubectl."""

    def __init__(self, kubeconfig: str | None = None):
        """Initialize client.

        Args:
            kubeconfig: Path to kubeconfig file.
        """
        self.kubeconfig = kubeconfig

    def _kubectl_cmd(self) -> list[str]:
        """Build base kubectl command."""
        cmd = ["kubectl"]
        if self.kubeconfig:
            cmd.extend(["--kubeconfig", self.kubeconfig])
        return cmd

    def _run(self, args: list[str]) -> tuple[bool, str]:
        try:
            result = subprocess.run(
                self._kubectl_cmd() + args,
                capture_output=True,
                text=True,
            )
        except FileNotFoundError:
            return False, "kubectl not found. Is kubectl installed?"
        except OSError as e:
            return False, f"Failed to run kubectl: {e}"
        if result.returncode != 0:
            return False, (result.stderr or "").strip()
        return True, result.stdout or ""

    def delete(self, kind: str, selector: str, wait: bool = True) -> tuple[bool, str]:
        """Delete all resources of a kind matching a label selector.

        Args:
            kind: Resource kind, e.g. ``deployments`` or ``pvc``.
            selector: Label selector.
            wait: Whether to block until the resources are gone.

        Returns:
            Tuple of (success, message).
        """
        args = ["delete", kind, "-l", selector]
        if not wait:
            args.append("--wait=false")
        success, output = self._run(args)
        if not success:
            return False, f"Failed to delete {kind}: {output}"
        return True, output.strip() or f"Deleted {kind}"

    def get_service_endpoints(self, selector: str) -> list[ServiceEndpoint]:
        """List Services matching a selector with their external addresses.

        Returns:
            List of endpoints; empty if the query fails.
        """
        success, output = self._run(["get", "svc", "-l", selector, "-o", "json"])
        if not success:
            return []
        try:
            items = json.loads(output).get("items", [])
        except json.JSONDecodeError:
            return []
        return [
            ServiceEndpoint(
                name=item.get("metadata", {}).get("name", ""),
                address=_ingress_address(item),
            )
            for item in items
        ]

    def list_pods(self, selector: str) -> list[str]:
        """Names of pods matching a selector (without the ``pod/`` prefix)."""
        success, output = self._run(["get", "pods", "-l", selector, "-o", "name"])
        if not success:
            return []
        return [line.strip().removeprefix("pod/") for line in output.splitlines() if line.strip()]

    def find_pod(self, selector: str, pattern: str) -> str | None:
        """First pod matching a selector whose name matches a regex."""
        regex = re.compile(pattern)
        for name in self.list_pods(selector):
            if regex.search(name):
                return name
        return None

    def exec_in_pod(self, pod: str, container: str, command: list[str]) -> tuple[bool, str]:
        """Run a command inside a running pod's container.

        Returns:
            Tuple of (success, stdout or error message).
        """
        return self._run(["exec", pod, "-c", container, "--"] + command)

    def wait_for_pods_ready(self, selector: str, timeout_seconds: int = 300) -> tuple[bool, str]:
        """Wait for all pods matching a selector to be ready.

        Args:
            selector: Label selector.
            timeout_seconds: Timeout in seconds.

        Returns:
            Tuple of (success, message).
        """
        success, output = self._run(
            [
                "wait",
                "--for=condition=ready",
                "pods",
                f"--timeout={timeout_seconds}s",
                "-l",
                selector,
            ]
        )
        if not success:
            return False, f"Pods not ready: {output}"
        return True, "All pods ready"

    def set_image(self, kind: str, selector: str, container: str, image: str) -> tuple[bool, str]:
        """Update a container image on all resources matching a selector."""
        success, output = self._run(["set", "image", kind, "-l", selector, f"{container}={image}"])
        if not success:
            return False, f"Failed to set image: {output}"
        return True, output.strip()

    def rollout_status(self, kind: str, selector: str, timeout_seconds: int = 600) -> tuple[bool, str]:
        """Block until a rollout converges (pods replaced and ready)."""
        success, output = self._run(
            ["rollout", "status", kind, "-l", selector, f"--timeout={timeout_seconds}s"]
        )
        if not success:
            return False, f"Rollout did not complete: {output}"
        return True, output.strip()


class HelmClient:
    """Apply charts with helm."""

    def __init__(self, kubeconfig: str | None = None):
        self.kubeconfig = kubeconfig

    def _helm_cmd(self) -> list[str]:
        cmd = ["helm"]
        if self.kubeconfig:
            cmd.extend(["--kubeconfig", self.kubeconfig])
        return cmd

    def upgrade_install(
        self,
        release: str,
        chart: Path,
        values_files: list[Path],
    ) -> tuple[bool, str]:
        """Install or upgrade a release.

        Args:
            release: Release name.
            chart: Chart directory.
            values_files: Values files, later files taking precedence.

        Returns:
            Tuple of (success, message).
        """
        cmd = self._helm_cmd() + ["upgrade", "--install", release, str(chart)]
        for values_file in values_files:
            cmd.extend(["--values", str(values_file)])

        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except FileNotFoundError:
            return False, "helm not found. Is helm installed?"
        except OSError as e:
            return False, f"Failed to run helm: {e}"
        if result.returncode != 0:
            return False, f"Failed to apply release {release}: {result.stderr.strip()}"
        return True, f"Release {release} applied"
