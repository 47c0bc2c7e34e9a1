"""Top-level package for the bitcoind configuration manager."""

# Re-export commonly used namespaces for convenience when running as a module.
from . import btcconf, cli, utils  # noqa: F401

__all__ = ["btcconf", "cli", "utils"]
