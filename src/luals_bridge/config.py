from __future__ import annotations

import copy
from datetime import date, datetime, time
from pathlib import Path
from typing import TypeAlias
from urllib.parse import unquote, urlparse
import tomllib

DEFAULT_CONFIG_NAME = "luals-bridge.toml"

EXECUTABLE_PATH_KEY = "Lua.misc.executablePath"
PARAMETERS_KEY = "Lua.misc.parameters"
RUNTIME_VERSION_KEY = "Lua.runtime.version"

TomlScalar: TypeAlias = str | int | float | bool | None | date | datetime | time
TomlValue: TypeAlias = TomlScalar | list["TomlValue"] | dict[str, "TomlValue"]
TomlTable: TypeAlias = dict[str, TomlValue]

DEFAULT_SETTINGS: TomlTable = {
    "Lua": {
        "misc": {
            "executablePath": "",
            "parameters": [],
        },
        "runtime": {
            "version": "Lua 5.4",
        },
    }
}


def _load_toml(path: Path) -> TomlTable:
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except OSError:
        return {}
    try:
        data = tomllib.loads(raw)
    except tomllib.TOMLDecodeError:
        return {}
    return data if isinstance(data, dict) else {}


def load_config(root: Path | None = None, config_path: Path | None = None) -> TomlTable:
    if config_path is None:
        base = root if root is not None else Path.cwd()
        config_path = base / DEFAULT_CONFIG_NAME
    return _load_toml(config_path)


def uri_to_path(uri: str) -> Path | None:
    parsed = urlparse(uri)
    if parsed.scheme == "file":
        return Path(unquote(parsed.path))
    return None


def _lookup(table: TomlTable, key: str) -> tuple[bool, TomlValue]:
    node: TomlValue = table
    for part in key.split("."):
        if not isinstance(node, dict) or part not in node:
            return False, None
        node = node[part]
    return True, node


def _assign(table: TomlTable, key: str, value: TomlValue) -> None:
    *parents, leaf = key.split(".")
    node = table
    for part in parents:
        child = node.get(part)
        if not isinstance(child, dict):
            child = {}
            node[part] = child
        node = child
    if value is None:
        node.pop(leaf, None)
    else:
        node[leaf] = copy.deepcopy(value)


class ConfigurationStore:
    """Layered settings store keyed by dot-scoped configuration identifiers.

    Lookups resolve narrowest-first: the layer of the workspace folder that
    contains the scope, then the workspace layer, then the global layer, then
    the built-in defaults. Values handed out are copies; writes only happen
    through :meth:`update`.
    """

    def __init__(
        self,
        *,
        defaults: TomlTable | None = None,
        global_settings: TomlTable | None = None,
        workspace: TomlTable | None = None,
        folders: dict[Path, TomlTable] | None = None,
    ) -> None:
        self.defaults: TomlTable = copy.deepcopy(
            DEFAULT_SETTINGS if defaults is None else defaults
        )
        self.global_settings: TomlTable = copy.deepcopy(global_settings or {})
        self.workspace: TomlTable = copy.deepcopy(workspace or {})
        self.folders: dict[Path, TomlTable] = {
            Path(folder).resolve(): copy.deepcopy(table)
            for folder, table in (folders or {}).items()
        }

    @classmethod
    def from_workspace(
        cls, root: Path, folders: list[Path] | None = None
    ) -> "ConfigurationStore":
        root = root.resolve()
        folder_tables: dict[Path, TomlTable] = {}
        for folder in folders or [root]:
            folder = folder.resolve()
            folder_tables[folder] = {} if folder == root else load_config(root=folder)
        return cls(workspace=load_config(root=root), folders=folder_tables)

    @property
    def folder_paths(self) -> list[Path]:
        return list(self.folders)

    def folder_for(self, scope: str | None) -> Path | None:
        if not scope:
            return None
        path = uri_to_path(scope)
        if path is None:
            return None
        path = path.resolve()
        best: Path | None = None
        for folder in self.folders:
            if path == folder or folder in path.parents:
                if best is None or len(folder.parts) > len(best.parts):
                    best = folder
        return best

    def _layers(self, scope: str | None) -> list[TomlTable]:
        layers: list[TomlTable] = []
        folder = self.folder_for(scope)
        if folder is not None:
            layers.append(self.folders[folder])
        layers.extend([self.workspace, self.global_settings, self.defaults])
        return layers

    def get(self, key: str, scope: str | None = None, default: TomlValue = None) -> TomlValue:
        for layer in self._layers(scope):
            found, value = _lookup(layer, key)
            if found:
                return copy.deepcopy(value)
        return default

    def inspect(self, key: str, scope: str | None = None) -> dict[str, TomlValue]:
        folder = self.folder_for(scope)
        values = {
            "default": _lookup(self.defaults, key)[1],
            "global": _lookup(self.global_settings, key)[1],
            "workspace": _lookup(self.workspace, key)[1],
            "folder": _lookup(self.folders[folder], key)[1] if folder is not None else None,
        }
        return copy.deepcopy(values)

    def update(
        self,
        key: str,
        value: TomlValue,
        scope: str | None = None,
        global_: bool | None = None,
    ) -> None:
        """Write ``value`` at ``key``; ``None`` removes the key from the target layer."""
        if global_ is True:
            target = self.global_settings
        elif global_ is False:
            target = self.workspace
        else:
            folder = self.folder_for(scope)
            target = self.folders[folder] if folder is not None else self.workspace
        _assign(target, key, value)
