"""luals-bridge package root."""

from luals_bridge.exceptions import (
    BridgeError,
    ConfigurationError,
    NeverThrown,
    TransportError,
    UnknownCommandError,
)
from luals_bridge.invariants import never

__all__ = [
    "__version__",
    "BridgeError",
    "ConfigurationError",
    "NeverThrown",
    "TransportError",
    "UnknownCommandError",
    "never",
]

__version__ = "0.1.0"
