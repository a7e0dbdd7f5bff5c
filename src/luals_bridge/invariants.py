"""Invariant markers for bridge state machines."""

from __future__ import annotations

from typing import NoReturn

from luals_bridge.exceptions import NeverThrown


def never(reason: str = "", **env: object) -> NoReturn:
    """Mark a code path as intentionally unreachable.

    The optional env payload is metadata only; it travels on the raised
    exception so the failing state can be reported.
    """
    detail = ", ".join(f"{key}={value!r}" for key, value in sorted(env.items()))
    message = reason or "never() marker reached"
    if detail:
        message = f"{message} ({detail})"
    raise NeverThrown(message, env=env)
