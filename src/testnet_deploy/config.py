"""Deployment configuration.

The configuration is built once at startup from defaults, an optional YAML
file and environment variables, then passed explicitly to every component.
Precedence (highest to lowest):

1. Environment variables
2. Config file (``--config``)
3. Defaults
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from .errors import EXIT_MISSING_VALUES_FILE, EXIT_UNSUPPORTED_TARGET, ConfigurationError

# Default values
DEFAULT_IMAGE = "ghcr.io/penumbra-zone/penumbra"
DEFAULT_VERSION = "main"
DEFAULT_UID_GID = "1000:1000"
DEFAULT_TENDERMINT_VERSION = "v0.34.23"
DEFAULT_RELEASE = "penumbra-testnet-preview"  # less likely to break the public testnet
DEFAULT_P2P_PORT = 26656

# Environment variable mappings
ENV_VARS = {
    "image": "IMAGE",
    "version": "PENUMBRA_VERSION",
    "uid_gid": "PENUMBRA_UID_GID",
    "tendermint_version": "TENDERMINT_VERSION",
    "validators": "NVALS",
    "fullnodes": "NFULLNODES",
    "release": "HELM_RELEASE",
    "workdir": "WORKDIR",
    "container_home": "CONTAINERHOME",
    "chart": "HELM_CHART",
    "networks_dir": "NETWORKS_DIR",
    "kubeconfig": "KUBECONFIG_PATH",
    "container_cli": "CONTAINER_CLI",
    "p2p_port": "P2P_PORT",
    "address_poll_interval": "ADDRESS_POLL_INTERVAL",
    "address_timeout": "ADDRESS_TIMEOUT",
    "readiness_timeout": "READINESS_TIMEOUT",
    "rollout_timeout": "ROLLOUT_TIMEOUT",
    "settle_seconds": "SETTLE_SECONDS",
    "keep_workspace": "KEEP_WORKSPACE",
}

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


@dataclass(frozen=True)
class DeployConfig:
    """Immutable deployment configuration."""

    image: str = DEFAULT_IMAGE
    version: str = DEFAULT_VERSION
    uid_gid: str = DEFAULT_UID_GID
    tendermint_version: str = DEFAULT_TENDERMINT_VERSION
    validators: int = 2
    fullnodes: int = 2
    release: str = DEFAULT_RELEASE
    workdir: Path = Path("charts/penumbra/pdcli")
    container_home: str = "/root"
    chart: Path = Path("charts/penumbra")
    networks_dir: Path = Path("networks")
    kubeconfig: str | None = None
    container_cli: str | None = None
    p2p_port: int = DEFAULT_P2P_PORT
    address_poll_interval: float = 5.0
    address_timeout: float = 900.0
    readiness_timeout: int = 300
    rollout_timeout: int = 600
    settle_seconds: float = 5.0
    keep_workspace: bool = False

    # Track where each value came from
    sources: dict[str, str] = field(default_factory=dict, compare=False, repr=False)

    @property
    def image_ref(self) -> str:
        """Full container image reference."""
        return f"{self.image}:{self.version}"

    def get_source(self, key: str) -> str:
        """Get the source of a config value."""
        return self.sources.get(key, "default")

    def as_dict(self) -> dict[str, Any]:
        """Plain values, for display."""
        values = {}
        for f in fields(self):
            if f.name == "sources":
                continue
            value = getattr(self, f.name)
            values[f.name] = str(value) if isinstance(value, Path) else value
        return values


@dataclass(frozen=True)
class ClusterTarget:
    """A named logical deployment and its values overlay."""

    name: str
    values_file: Path
    preserve_chain_id: bool = False

    @property
    def selector(self) -> str:
        """Label selector scoping every cluster query to this target."""
        return f"app.kubernetes.io/instance={self.name}"


@dataclass(frozen=True)
class TargetSpec:
    """A recognized target-name pattern."""

    pattern: str
    network: str
    preserve_chain_id: bool = False

    def matches(self, name: str) -> bool:
        return re.match(self.pattern, name) is not None


# Only the weekly testnet keeps its chain id across rebuilds; every other
# target mints a fresh one per deploy.
KNOWN_TARGETS: tuple[TargetSpec, ...] = (
    TargetSpec(r"^penumbra-testnet$", "testnet", preserve_chain_id=True),
    TargetSpec(r"^penumbra-testnet-preview$", "testnet-preview"),
    TargetSpec(r"^penumbra-devnet$", "devnet"),
)


def _coerce(key: str, raw: Any, default: Any) -> Any:
    """Convert a raw env/file value to the type of the field default."""
    if raw is None:
        # YAML null only unsets optional fields
        if default is None:
            return None
        raise ConfigurationError(f"Invalid value for {key}: null")
    try:
        if isinstance(default, bool):
            text = str(raw).strip().lower()
            if text in _TRUE:
                return True
            if text in _FALSE:
                return False
            raise ValueError(raw)
        if isinstance(default, int):
            return int(raw)
        if isinstance(default, float):
            return float(raw)
        if isinstance(default, Path):
            return Path(str(raw))
    except (TypeError, ValueError):
        raise ConfigurationError(f"Invalid value for {key}: {raw!r}") from None
    return str(raw)


def _read_config_file(config_file: Path) -> dict[str, Any]:
    try:
        with open(config_file) as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        raise ConfigurationError(f"Config file not found: {config_file}") from None
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to read config file {config_file}: {e}") from None
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {config_file} must contain a mapping")
    unknown = sorted(set(data) - set(ENV_VARS))
    if unknown:
        raise ConfigurationError(f"Unknown config keys in {config_file}: {', '.join(unknown)}")
    return data


def load_config(
    environ: Mapping[str, str],
    config_file: str | Path | None = None,
) -> DeployConfig:
    """Load deployment configuration.

    Args:
        environ: Environment mapping (normally ``os.environ``).
        config_file: Optional YAML file with overrides.

    Returns:
        DeployConfig with values and sources.

    Raises:
        ConfigurationError: On an unreadable file or an unparsable value.
    """
    defaults = DeployConfig()
    values: dict[str, Any] = {}
    sources: dict[str, str] = {key: "default" for key in ENV_VARS}

    # Load from config file
    if config_file:
        for key, raw in _read_config_file(Path(config_file)).items():
            values[key] = _coerce(key, raw, getattr(defaults, key))
            sources[key] = "config file"

    # Override with environment variables
    for key, env_var in ENV_VARS.items():
        raw = environ.get(env_var)
        if raw:
            values[key] = _coerce(key, raw, getattr(defaults, key))
            sources[key] = "environment"

    config = DeployConfig(**values, sources=sources)

    if config.validators < 1:
        raise ConfigurationError(f"At least one validator is required, got {config.validators}")
    if config.fullnodes < 0:
        raise ConfigurationError(f"Fullnode count cannot be negative, got {config.fullnodes}")
    return config


def values_file_for(name: str, network: str, networks_dir: Path) -> Path:
    """Path of the values overlay for a target."""
    return networks_dir / network / f"helm-values-for-{name}.yml"


def resolve_target(config: DeployConfig) -> ClusterTarget:
    """Check that the configured release names a supported target.

    Raises:
        ConfigurationError: If the name is not recognized (exit 1) or its
            values file does not exist (exit 2).
    """
    name = config.release
    spec = next((t for t in KNOWN_TARGETS if t.matches(name)), None)
    if spec is None:
        raise ConfigurationError(
            f"helm release name '{name}' not supported",
            exit_code=EXIT_UNSUPPORTED_TARGET,
        )

    values_file = values_file_for(name, spec.network, config.networks_dir)
    if not values_file.exists():
        raise ConfigurationError(
            f"file not found: '{values_file}'",
            exit_code=EXIT_MISSING_VALUES_FILE,
        )

    return ClusterTarget(
        name=name,
        values_file=values_file,
        preserve_chain_id=spec.preserve_chain_id,
    )
