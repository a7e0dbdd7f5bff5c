"""Configuration bridge between the editor store and the language server.

``set_config``/``get_config`` round-trip through the server's
``workspace/executeCommand`` handlers. ``apply_local_changes`` implements the
editor-side ``lua.config`` command, which edits the editor's own store with no
server round trip.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Iterable, Mapping

from luals_bridge.config import TomlValue
from luals_bridge.exceptions import ConfigurationError
from luals_bridge.invariants import never
from luals_bridge.protocol import (
    GET_CONFIG_COMMAND,
    SET_CONFIG_COMMAND,
    AddChange,
    ConfigChange,
    PropChange,
    SetChange,
    changes_to_wire,
    config_query,
    parse_changes,
)

if TYPE_CHECKING:
    from luals_bridge.extension import BridgeContext
    from luals_bridge.host import EditorHost

logger = logging.getLogger(__name__)


async def set_config(ctx: "BridgeContext", changes: Iterable[ConfigChange]) -> bool:
    """Send a batch of configuration changes to the server in one round trip.

    Returns ``False`` without any traffic when no session exists. Transport
    failures propagate as :class:`~luals_bridge.exceptions.TransportError`.
    """
    session = ctx.session
    if session is None:
        return False
    records = changes_to_wire(changes)
    logger.debug("Sending %d configuration change(s)", len(records))
    await session.execute_command(SET_CONFIG_COMMAND, records)
    return True


async def get_config(ctx: "BridgeContext", key: str, uri: str) -> Any:
    """Read the server's effective value of ``key`` for ``uri``; ``None`` without a session."""
    session = ctx.session
    if session is None:
        return None
    return await session.execute_command(GET_CONFIG_COMMAND, [config_query(key, uri)])


def apply_local_changes(
    host: "EditorHost", changes: Iterable[ConfigChange | Mapping[str, Any]]
) -> None:
    """Apply a batch of changes directly to the editor's configuration store.

    Mapping values patched by ``prop`` changes are cached per key for the
    duration of this call only, so several ``prop`` entries for one key in a
    batch build on each other instead of re-reading the store.
    """
    prop_cache: dict[str, dict[str, TomlValue]] = {}
    for change in parse_changes(changes):
        if isinstance(change, SetChange):
            host.update_configuration(change.key, change.value, change.uri, change.global_)
        elif isinstance(change, AddChange):
            current = host.get_configuration(change.key, change.uri)
            if current is None:
                sequence = []
            elif isinstance(current, list):
                sequence = list(current)
            else:
                raise ConfigurationError(
                    f"cannot add to {change.key}: stored value is not a list"
                )
            sequence.append(change.value)
            host.update_configuration(change.key, sequence, change.uri, change.global_)
        elif isinstance(change, PropChange):
            if change.key not in prop_cache:
                current = host.get_configuration(change.key, change.uri)
                if current is not None and not isinstance(current, dict):
                    raise ConfigurationError(
                        f"cannot set {change.key}.{change.prop}: stored value is not a table"
                    )
                prop_cache[change.key] = dict(current or {})
            mapping = prop_cache[change.key]
            mapping[change.prop] = change.value
            host.update_configuration(change.key, mapping, change.uri, change.global_)
        else:
            never("unknown configuration change", change_type=type(change).__name__)
