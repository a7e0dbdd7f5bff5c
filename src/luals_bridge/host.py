"""Boundary with the host editor.

The bridge only calls documented read/update/display operations on the
editor. :class:`EditorHost` names those operations; :class:`HeadlessHost`
implements them over a :class:`~luals_bridge.config.ConfigurationStore` so the
bridge can run from the command line and under test.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterable, Protocol
from urllib.parse import urlparse

from luals_bridge.config import ConfigurationStore, TomlValue
from luals_bridge.exceptions import UnknownCommandError
from luals_bridge.protocol import LANGUAGE_ID

logger = logging.getLogger(__name__)

DocumentListener = Callable[["Document"], Awaitable[None] | None]


class Disposable:
    """Releases one registration exactly once."""

    def __init__(self, callback: Callable[[], None] | None = None) -> None:
        self._callback = callback
        self.disposed = False

    def dispose(self) -> None:
        if self.disposed:
            return
        self.disposed = True
        if self._callback is not None:
            self._callback()


@dataclass(frozen=True)
class Document:
    uri: str
    language_id: str
    text: str = ""
    version: int = 0

    @property
    def scheme(self) -> str:
        return urlparse(self.uri).scheme

    @classmethod
    def from_path(cls, path: Path, *, language_id: str | None = None) -> "Document":
        path = path.resolve()
        if language_id is None:
            language_id = LANGUAGE_ID if path.suffix == ".lua" else path.suffix.lstrip(".")
        text = path.read_text(encoding="utf-8") if path.is_file() else ""
        return cls(uri=path.as_uri(), language_id=language_id, text=text)


@dataclass(frozen=True)
class DocumentSelector:
    language: str = LANGUAGE_ID
    schemes: tuple[str, ...] = ("file", "untitled")

    def matches(self, document: Document) -> bool:
        return document.language_id == self.language and document.scheme in self.schemes


class StatusItem(Protocol):
    text: str
    tooltip: str | None
    command: str | None

    def show(self) -> None: ...

    def hide(self) -> None: ...

    def update(self, text: str, tooltip: str | None) -> None: ...

    def dispose(self) -> None: ...


class EditorHost(Protocol):
    @property
    def workspace_folders(self) -> list[Path]: ...

    @property
    def text_documents(self) -> list[Document]: ...

    def get_configuration(self, key: str, scope: str | None = None) -> TomlValue: ...

    def update_configuration(
        self,
        key: str,
        value: TomlValue,
        scope: str | None = None,
        global_: bool | None = None,
    ) -> None: ...

    def register_command(self, name: str, callback: Callable[..., Any]) -> Disposable: ...

    def execute_command(self, name: str, *args: Any) -> Any: ...

    def create_status_item(self) -> StatusItem: ...

    def show_error_message(self, message: str) -> None: ...

    def on_did_open_text_document(self, listener: DocumentListener) -> Disposable: ...

    def on_did_change_configuration(self, listener: Callable[[str], None]) -> Disposable: ...


class ConsoleStatusItem:
    """Status affordance that reports its visible state through ``echo``."""

    def __init__(self, echo: Callable[[str], None] | None = None) -> None:
        self._echo = echo
        self.text = ""
        self.tooltip: str | None = None
        self.command: str | None = None
        self.visible = False
        self.disposed = False

    def _render(self) -> None:
        if self._echo is None or not self.visible:
            return
        line = f"[status] {self.text}"
        if self.tooltip:
            line = f"{line} ({self.tooltip})"
        self._echo(line)

    def show(self) -> None:
        self.visible = True
        self._render()

    def hide(self) -> None:
        self.visible = False

    def update(self, text: str, tooltip: str | None) -> None:
        self.text = text
        self.tooltip = tooltip
        self._render()

    def dispose(self) -> None:
        self.visible = False
        self.disposed = True


@dataclass
class HeadlessHost:
    """In-process editor host backed by a layered configuration store."""

    configuration: ConfigurationStore = field(default_factory=ConfigurationStore)
    folders: list[Path] = field(default_factory=list)
    echo: Callable[[str], None] | None = None
    documents: list[Document] = field(default_factory=list)
    commands: dict[str, Callable[..., Any]] = field(default_factory=dict)
    status_items: list[ConsoleStatusItem] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    _open_listeners: list[DocumentListener] = field(default_factory=list, init=False, repr=False)
    _config_listeners: list[Callable[[str], None]] = field(
        default_factory=list, init=False, repr=False
    )

    @property
    def workspace_folders(self) -> list[Path]:
        return list(self.folders or self.configuration.folder_paths)

    @property
    def text_documents(self) -> list[Document]:
        return list(self.documents)

    def get_configuration(self, key: str, scope: str | None = None) -> TomlValue:
        return self.configuration.get(key, scope)

    def update_configuration(
        self,
        key: str,
        value: TomlValue,
        scope: str | None = None,
        global_: bool | None = None,
    ) -> None:
        self.configuration.update(key, value, scope, global_)
        for listener in list(self._config_listeners):
            listener(key)

    def register_command(self, name: str, callback: Callable[..., Any]) -> Disposable:
        if name in self.commands:
            raise ValueError(f"command '{name}' already exists")
        self.commands[name] = callback
        return Disposable(lambda: self.commands.pop(name, None))

    def execute_command(self, name: str, *args: Any) -> Any:
        callback = self.commands.get(name)
        if callback is None:
            raise UnknownCommandError(name)
        logger.debug("Executing editor command %s", name)
        return callback(*args)

    def create_status_item(self) -> ConsoleStatusItem:
        item = ConsoleStatusItem(self.echo)
        self.status_items.append(item)
        return item

    def show_error_message(self, message: str) -> None:
        self.errors.append(message)
        logger.error("%s", message)
        if self.echo is not None:
            self.echo(f"error: {message}")

    def on_did_open_text_document(self, listener: DocumentListener) -> Disposable:
        self._open_listeners.append(listener)
        return Disposable(lambda: self._open_listeners.remove(listener))

    def on_did_change_configuration(self, listener: Callable[[str], None]) -> Disposable:
        self._config_listeners.append(listener)
        return Disposable(lambda: self._config_listeners.remove(listener))

    async def open_document(self, document: Document) -> None:
        """Record ``document`` as open and notify listeners in registration order."""
        self.documents.append(document)
        await _notify_all(self._open_listeners, document)


async def _notify_all(listeners: Iterable[DocumentListener], document: Document) -> None:
    for listener in list(listeners):
        outcome = listener(document)
        if inspect.isawaitable(outcome):
            await outcome
