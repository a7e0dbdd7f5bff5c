from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Mapping

from luals_bridge.config import EXECUTABLE_PATH_KEY, PARAMETERS_KEY, TomlValue
from luals_bridge.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

SERVER_DIR = "server"
SHARED_BIN_DIR = "bin"

# platform -> (fallback bin directory, executable name, needs chmod)
PLATFORM_BINARIES: Mapping[str, tuple[str, str, bool]] = {
    "win32": ("bin-Windows", "lua-language-server.exe", False),
    "linux": ("bin-Linux", "lua-language-server", True),
    "darwin": ("bin-macOS", "lua-language-server", True),
}

EXECUTABLE_MODE = 0o777


def _override_path(value: TomlValue) -> str | None:
    if isinstance(value, str) and value != "":
        return value
    return None


def bundled_server_path(extension_root: Path, platform: str) -> Path:
    entry = PLATFORM_BINARIES.get(platform)
    if entry is None:
        raise ConfigurationError(
            f"no bundled language server for platform '{platform}'; "
            f"set {EXECUTABLE_PATH_KEY} to a server executable"
        )
    fallback_dir, executable, _ = entry
    server_root = extension_root / SERVER_DIR
    bin_dir = SHARED_BIN_DIR if (server_root / SHARED_BIN_DIR).is_dir() else fallback_dir
    return server_root / bin_dir / executable


def resolve_server_command(
    executable_path: TomlValue,
    extension_root: Path,
    *,
    platform: str | None = None,
) -> str:
    """Return the server executable, first match wins.

    An explicit override is used verbatim. Otherwise the bundled binary under
    ``<extension_root>/server`` is picked for the platform, preferring a shared
    ``bin`` directory over the per-platform one. On POSIX platforms the
    resolved file is made executable before use.

    Raises:
        ConfigurationError: unsupported platform, or the bundled binary does not exist.
    """
    override = _override_path(executable_path)
    if override is not None:
        logger.info("Using configured language server executable %s", override)
        return override
    platform = platform or sys.platform
    command = bundled_server_path(extension_root, platform)
    if not command.is_file():
        raise ConfigurationError(f"language server executable not found at {command}")
    if PLATFORM_BINARIES[platform][2]:
        try:
            os.chmod(command, EXECUTABLE_MODE)
        except OSError as exc:
            raise ConfigurationError(f"cannot mark {command} executable: {exc}") from exc
    logger.info("Resolved bundled language server %s", command)
    return str(command)


def server_arguments(value: TomlValue) -> list[str]:
    """Normalize the ``Lua.misc.parameters`` setting into an argument list."""
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value else []
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value]
    raise ConfigurationError(f"{PARAMETERS_KEY} must be a list of strings")
