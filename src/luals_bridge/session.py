"""Session lifecycle controller for the default language server session."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Sequence

from luals_bridge.config import EXECUTABLE_PATH_KEY, PARAMETERS_KEY
from luals_bridge.dispatch import CommandChannel
from luals_bridge.exceptions import TransportError
from luals_bridge.host import Disposable, Document, DocumentSelector
from luals_bridge.resolve import resolve_server_command, server_arguments
from luals_bridge.status import StatusChannel
from luals_bridge.transport import LanguageServerTransport

if TYPE_CHECKING:
    from luals_bridge.host import EditorHost

logger = logging.getLogger(__name__)

INITIALIZATION_OPTIONS = {"changeConfiguration": True}
CONFIG_SECTION_PREFIX = "Lua."

TransportFactory = Callable[..., LanguageServerTransport]


class SessionState(Enum):
    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    FAILED = "failed"
    STOPPED = "stopped"


class Session:
    """Owns one transport plus every subscription attached to it.

    ``start`` always settles into ``RUNNING`` or ``FAILED``; ``stop`` always
    ends in ``STOPPED`` with every subscription released, whether or not the
    server shut down cleanly.
    """

    def __init__(
        self,
        host: "EditorHost",
        extension_root: Path,
        *,
        selector: DocumentSelector | None = None,
        transport_factory: TransportFactory = LanguageServerTransport,
        platform: str | None = None,
    ) -> None:
        self.host = host
        self.extension_root = extension_root
        self.selector = selector or DocumentSelector()
        self.state = SessionState.IDLE
        self.transport: LanguageServerTransport | None = None
        self.status: StatusChannel | None = None
        self.commands: CommandChannel | None = None
        self.disposables: list[Disposable] = []
        self._transport_factory = transport_factory
        self._platform = platform
        self._settled = asyncio.Event()
        self._announced: set[str] = set()

    @property
    def running(self) -> bool:
        return self.state is SessionState.RUNNING

    def _workspace_scope(self) -> str | None:
        folders = self.host.workspace_folders
        return folders[0].resolve().as_uri() if folders else None

    def _configuration_value(self, section: str | None, scope: str | None) -> Any:
        if not section:
            return None
        return self.host.get_configuration(section, scope)

    async def start(self) -> None:
        """Resolve the server command, bring the transport up and attach channels.

        Raises:
            ConfigurationError: no usable server command was resolved.
            TransportError: the server failed to spawn or initialize.
        """
        self.state = SessionState.STARTING
        try:
            scope = self._workspace_scope()
            command = resolve_server_command(
                self.host.get_configuration(EXECUTABLE_PATH_KEY, scope),
                self.extension_root,
                platform=self._platform,
            )
            args = server_arguments(self.host.get_configuration(PARAMETERS_KEY, scope))
            self.transport = self._transport_factory(
                configuration_provider=self._configuration_value
            )
            await self.transport.start(
                command,
                args,
                workspace_folders=self.host.workspace_folders,
                initialization_options=dict(INITIALIZATION_OPTIONS),
            )
        except BaseException as exc:
            if self.state is not SessionState.STOPPED:
                self.state = SessionState.FAILED
            self._settled.set()
            logger.error("Language server session failed to start: %s", exc)
            raise
        if self.state is SessionState.STOPPED:
            logger.info("Session stopped while starting; shutting the server down")
            await self.transport.stop()
            return
        self.state = SessionState.RUNNING
        try:
            self.commands, disposables = CommandChannel.attach(self.host, self.transport)
            self.disposables.extend(disposables)
            self.status, disposables = StatusChannel.attach(self.host, self.transport)
            self.disposables.extend(disposables)
            self.disposables.append(
                self.host.on_did_change_configuration(self._configuration_changed)
            )
            for document in self.host.text_documents:
                self.open_document(document)
        finally:
            self._settled.set()
        logger.info("Language server session running")

    async def stop(self) -> None:
        """Stop the transport, then release every subscription regardless of the outcome.

        A session stopped while starting leaves the transport to ``start``, which
        shuts it down once it is up instead of attaching channels.
        """
        starting = self.state is SessionState.STARTING
        try:
            if self.transport is not None and not starting:
                await self.transport.stop()
        finally:
            for disposable in self.disposables:
                disposable.dispose()
            released = len(self.disposables)
            self.disposables.clear()
            self.state = SessionState.STOPPED
            self._settled.set()
            logger.info("Language server session stopped (%d subscriptions released)", released)

    async def _require_transport(self, what: str) -> LanguageServerTransport:
        if self.state is SessionState.STARTING:
            await self._settled.wait()
        if self.state is not SessionState.RUNNING or self.transport is None:
            raise TransportError(f"cannot send {what}: session is {self.state.value}")
        return self.transport

    async def notify(self, method: str, params: Any = None) -> None:
        transport = await self._require_transport(method)
        transport.send_notification(method, params)

    async def execute_command(self, command: str, arguments: Sequence[Any]) -> Any:
        transport = await self._require_transport(command)
        return await transport.execute_command(command, arguments)

    def open_document(self, document: Document) -> bool:
        """Announce ``document`` to the server once, when it matches the session selector."""
        if not self.running or self.transport is None:
            return False
        if not self.selector.matches(document) or document.uri in self._announced:
            return False
        self.transport.did_open(document)
        self._announced.add(document.uri)
        return True

    def _configuration_changed(self, key: str) -> None:
        if self.running and self.transport is not None and key.startswith(CONFIG_SECTION_PREFIX):
            self.transport.did_change_configuration()
