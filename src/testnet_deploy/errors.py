"""Error taxonomy for testnet deployment.

Every fatal condition in a bootstrap run is one of these errors. Each carries
the phase it was raised in and the process exit status the CLI reports.
"""

from dataclasses import dataclass

# Process exit codes
EXIT_UNSUPPORTED_TARGET = 1
EXIT_MISSING_VALUES_FILE = 2
EXIT_MISSING_PREREQUISITE = 3
EXIT_WORKSPACE_IO = 4
EXIT_GENESIS_FAILED = 5
EXIT_APPLY_FAILED = 6
EXIT_ADDRESSES_STALLED = 7
EXIT_IDENTITY_LOOKUP = 8
EXIT_READINESS_TIMEOUT = 9
EXIT_ROLLOUT_FAILED = 10


@dataclass
class DeployError(Exception):
    """Base error class for deployment errors."""

    message: str
    phase: str = "bootstrap"
    exit_code: int = 1

    def __str__(self) -> str:
        return self.message


@dataclass
class ConfigurationError(DeployError):
    """Invalid configuration, unsupported target or missing values file.

    Always raised pre-flight, before anything is mutated.
    """

    message: str = "Invalid configuration"
    phase: str = "configuration"
    exit_code: int = EXIT_UNSUPPORTED_TARGET


@dataclass
class PrerequisiteError(ConfigurationError):
    """A required command-line tool is not installed."""

    message: str = "Required tool not found"
    phase: str = "preflight"
    exit_code: int = EXIT_MISSING_PREREQUISITE


@dataclass
class WorkspaceIOError(DeployError):
    """The local staging workspace could not be prepared."""

    message: str = "Workspace could not be prepared"
    phase: str = "genesis"
    exit_code: int = EXIT_WORKSPACE_IO


@dataclass
class GenesisGeneratorError(DeployError):
    """The external genesis generator exited non-zero."""

    message: str = "Genesis generation failed"
    phase: str = "genesis"
    exit_code: int = EXIT_GENESIS_FAILED


@dataclass
class DeploymentApplyError(DeployError):
    """The deployment engine rejected or failed to apply the values."""

    message: str = "Deployment apply failed"
    phase: str = "apply"
    exit_code: int = EXIT_APPLY_FAILED


@dataclass
class AddressProvisioningStalled(DeployError):
    """External endpoints were not provisioned within the configured bound."""

    message: str = "External addresses were not provisioned in time"
    phase: str = "addresses"
    exit_code: int = EXIT_ADDRESSES_STALLED
    pending: tuple[str, ...] = ()


@dataclass
class NodeNotFound(DeployError):
    """No running pod matches a node that must be queried."""

    message: str = "Node pod not found"
    phase: str = "identities"
    exit_code: int = EXIT_IDENTITY_LOOKUP
    node: str = ""


@dataclass
class IdentityLookupError(DeployError):
    """A node's identity token could not be read from its container."""

    message: str = "Node identity lookup failed"
    phase: str = "identities"
    exit_code: int = EXIT_IDENTITY_LOOKUP
    node: str = ""


@dataclass
class ReadinessTimeout(DeployError):
    """Pods did not report ready within the timeout."""

    message: str = "Pods did not become ready"
    phase: str = "readiness"
    exit_code: int = EXIT_READINESS_TIMEOUT


@dataclass
class RolloutError(DeployError):
    """An in-place image bump failed or did not converge."""

    message: str = "Image rollout failed"
    phase: str = "rollout"
    exit_code: int = EXIT_ROLLOUT_FAILED
