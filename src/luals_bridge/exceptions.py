"""Error taxonomy for the language-server bridge."""

from __future__ import annotations


class BridgeError(RuntimeError):
    pass


class ConfigurationError(BridgeError):
    """Raised when no usable server command can be resolved.

    Covers unsupported platforms and a missing bundled binary. Fatal to
    session start; never retried.
    """


class TransportError(BridgeError):
    """Raised when the server channel fails to start or a round trip is rejected."""


class UnknownCommandError(BridgeError):
    def __init__(self, command: str) -> None:
        super().__init__(f"command '{command}' not found")
        self.command = command


class NeverThrown(BridgeError):
    """Raised by :func:`luals_bridge.invariants.never` on an unreachable path.

    The keyword payload passed to ``never`` is kept on ``env`` for diagnostics.
    """

    def __init__(self, message: str, *, env: dict[str, object] | None = None):
        super().__init__(message)
        self.env = dict(env or {})
