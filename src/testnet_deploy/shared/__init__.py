"""Shared modules for testnet-deploy."""

from .logging import bind_target, configure_logging, get_logger

__all__ = [
    "bind_target",
    "configure_logging",
    "get_logger",
]
