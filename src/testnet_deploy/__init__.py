"""testnet-deploy - Two-phase bootstrap of a testnet cluster on Kubernetes."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("testnet-deploy")
except PackageNotFoundError:
    __version__ = "0.0.0.dev0"  # Fallback for source checkouts without metadata

__all__ = ["__version__"]
