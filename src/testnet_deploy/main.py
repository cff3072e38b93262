"""CLI main entry point.

``testnet-deploy`` is driven entirely by environment variables (see
``config.ENV_VARS``); options only control logging and diagnostics.
"""

import os
import sys
from collections.abc import Callable

import click
from rich.console import Console
from rich.markup import escape

from . import __version__
from .bootstrap import (
    BootstrapOrchestrator,
    ClusterDeploymentController,
    ContainerGenesisGenerator,
    ExternalAddressResolver,
    GenesisWorkspaceBuilder,
    HelmClient,
    KubectlClient,
    PrerequisiteDetector,
    classify_release,
    detect_container_cli,
    requires_rebuild,
)
from .bootstrap.prerequisites import required_tools
from .config import ENV_VARS, ClusterTarget, DeployConfig, load_config, resolve_target
from .errors import ConfigurationError
from .shared.logging import configure_logging

err_console = Console(stderr=True)


def build_orchestrator(
    config: DeployConfig,
    target: ClusterTarget,
    on_progress: Callable[[str], None] | None = None,
) -> BootstrapOrchestrator:
    """Wire the production components for a target."""
    kubectl = KubectlClient(config.kubeconfig)
    controller = ClusterDeploymentController(config, kubectl, HelmClient(config.kubeconfig))
    builder = GenesisWorkspaceBuilder(config, ContainerGenesisGenerator(config))
    resolver = ExternalAddressResolver(config, kubectl)
    return BootstrapOrchestrator(
        config,
        target,
        controller,
        builder,
        resolver,
        on_progress=on_progress,
    )


def print_config(config: DeployConfig) -> None:
    """Print effective configuration with the source of each value."""
    click.echo("testnet-deploy configuration:\n")
    for key, value in config.as_dict().items():
        click.echo(f"  {key} = {value}  [{config.get_source(key)}] ({ENV_VARS[key]})")


def print_error(message: str) -> None:
    err_console.print(f"[red]ERROR:[/red] {escape(message)}")


def on_progress(message: str) -> None:
    if message.startswith("ERROR: "):
        print_error(message.removeprefix("ERROR: "))
    else:
        click.echo(message)


@click.command()
@click.option(
    "-c",
    "--config",
    "config_file",
    type=click.Path(dir_okay=False),
    default=None,
    help="YAML file with configuration overrides",
)
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"]),
    default="warning",
    help="Log level for structured logs (stderr)",
)
@click.option(
    "--json-logs/--console-logs",
    default=None,
    help="Structured log format (default: JSON when CI is set)",
)
@click.option("--show-config", is_flag=True, help="Print effective configuration and exit")
@click.option("--skip-preflight", is_flag=True, help="Do not check for kubectl/helm/container CLI")
@click.version_option(__version__, prog_name="testnet-deploy")
def cli(
    config_file: str | None,
    log_level: str,
    json_logs: bool | None,
    show_config: bool,
    skip_preflight: bool,
) -> None:
    """Deploy a validator/fullnode testnet to Kubernetes.

    Patch releases (e.g. v0.51.2) roll the new image onto the running
    network. Any other version regenerates genesis and deploys twice: once to
    obtain external addresses, once more with the full peer mesh.

    Configuration is read from environment variables: IMAGE,
    PENUMBRA_VERSION, HELM_RELEASE, NVALS, NFULLNODES, PENUMBRA_UID_GID,
    TENDERMINT_VERSION and others (see --show-config).
    """
    configure_logging(log_level, json_output=json_logs)

    try:
        config = load_config(os.environ, config_file)
        if show_config:
            print_config(config)
            return

        target = resolve_target(config)

        if not skip_preflight:
            rebuild = requires_rebuild(classify_release(config.version))
            container_cli = config.container_cli or detect_container_cli()
            PrerequisiteDetector().require(required_tools(rebuild, container_cli))
    except ConfigurationError as e:
        print_error(e.message)
        sys.exit(e.exit_code)

    result = build_orchestrator(config, target, on_progress=on_progress).run()
    if not result.success:
        sys.exit(result.exit_code)


def main() -> None:
    """Console script entry point."""
    cli()
