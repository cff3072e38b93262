"""Prerequisite detection for the deploy command.

This module selects the container runtime used to run the genesis generator
and checks that the cluster tooling is installed.
"""

from __future__ import annotations

import shutil
import subprocess
from dataclasses import dataclass, field

from ..errors import PrerequisiteError

# Preferred first; podman is friendlier on workstations.
CONTAINER_RUNTIMES = ("podman", "docker")


def detect_container_cli() -> str:
    """Pick the container CLI: podman if available, docker otherwise."""
    for candidate in CONTAINER_RUNTIMES:
        if shutil.which(candidate):
            return candidate
    return CONTAINER_RUNTIMES[-1]


@dataclass
class ToolInfo:
    """Detection result for one command-line tool."""

    name: str
    available: bool
    version: str | None = None
    error: str | None = None


@dataclass
class PrerequisiteReport:
    """Detection results for a set of tools."""

    tools: list[ToolInfo] = field(default_factory=list)

    @property
    def missing(self) -> list[str]:
        return [t.name for t in self.tools if not t.available]

    @property
    def ok(self) -> bool:
        return not self.missing


# Version probe per tool; tools absent here are only checked for presence.
VERSION_COMMANDS: dict[str, list[str]] = {
    "kubectl": ["kubectl", "version", "--client"],
    "helm": ["helm", "version", "--short"],
    "podman": ["podman", "--version"],
    "docker": ["docker", "--version"],
}


class PrerequisiteDetector:
    """Detect the command-line tools a bootstrap run shells out to."""

    def detect_tool(self, name: str) -> ToolInfo:
        """Check that a tool is on PATH and report its version."""
        if not shutil.which(name):
            return ToolInfo(name=name, available=False, error=f"{name} not found on PATH")

        command = VERSION_COMMANDS.get(name)
        if command is None:
            return ToolInfo(name=name, available=True)

        try:
            result = subprocess.run(command, capture_output=True, text=True, timeout=10)
        except subprocess.TimeoutExpired:
            return ToolInfo(name=name, available=True, error=f"{name} not responding (timeout)")

        version = result.stdout.strip().splitlines()[0] if result.stdout.strip() else None
        return ToolInfo(name=name, available=True, version=version)

    def detect(self, names: list[str]) -> PrerequisiteReport:
        return PrerequisiteReport(tools=[self.detect_tool(name) for name in names])

    def require(self, names: list[str]) -> PrerequisiteReport:
        """Detect tools and fail if any is missing.

        Raises:
            PrerequisiteError: Naming every missing tool.
        """
        report = self.detect(names)
        if not report.ok:
            raise PrerequisiteError(f"Required tools not found: {', '.join(report.missing)}")
        return report


def required_tools(rebuild: bool, container_cli: str) -> list[str]:
    """Tools needed for a run; the patch path only talks to the cluster."""
    if rebuild:
        return ["kubectl", "helm", container_cli]
    return ["kubectl"]
