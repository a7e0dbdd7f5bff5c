"""Transport session: one stdio JSON-RPC channel to a language server process."""

from __future__ import annotations

import asyncio
import inspect
import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Callable, Sequence

from lsprotocol import types as lsp
from pygls.exceptions import JsonRpcException
from pygls.lsp.client import LanguageClient
from pygls.protocol import LanguageServerProtocol
from pygls.protocol.json_rpc import JsonRPCNotification, JsonRPCResponseMessage

from luals_bridge import __version__
from luals_bridge.exceptions import TransportError
from luals_bridge.host import Disposable, Document

logger = logging.getLogger(__name__)

CLIENT_NAME = "luals-bridge"

NotificationHandler = Callable[[Any], Any]
ConfigurationProvider = Callable[[str | None, str | None], Any]

_LOG_LEVELS = {
    lsp.MessageType.Error: logging.ERROR,
    lsp.MessageType.Warning: logging.WARNING,
    lsp.MessageType.Info: logging.INFO,
    lsp.MessageType.Log: logging.DEBUG,
}


class ExtensionProtocol(LanguageServerProtocol):
    """Client protocol that keeps untyped payloads as decoded JSON.

    pygls maps the params of unknown notifications and the results of
    untyped requests onto namedtuples, renaming every key that is not a valid
    identifier (``global``, ``unused-local``). Extension messages carry such
    keys, so they skip that conversion.
    """

    def structure_message(self, data: dict[str, Any]):
        if data.get("jsonrpc") != self.VERSION or "error" in data:
            return super().structure_message(data)
        method = data.get("method")
        if method is not None:
            if "id" not in data and self.get_message_type(method) is None:
                return JsonRPCNotification(
                    method=method, jsonrpc=data["jsonrpc"], params=data.get("params")
                )
        elif "id" in data and self._result_types.get(data["id"]) is None:
            self._result_types.pop(data["id"], None)
            return JsonRPCResponseMessage(
                id=data["id"], jsonrpc=data["jsonrpc"], result=data.get("result")
            )
        return super().structure_message(data)


def plain(value: Any) -> Any:
    """Convert deserialized params into plain dicts and lists.

    Extension notifications already arrive as decoded JSON; attribute objects
    only show up when a typed LSP method is routed through the transport.
    """
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Mapping):
        return {str(key): plain(item) for key, item in value.items()}
    as_dict = getattr(value, "_asdict", None)
    if callable(as_dict):
        return {str(key): plain(item) for key, item in as_dict().items()}
    if isinstance(value, (list, tuple)):
        return [plain(item) for item in value]
    if hasattr(value, "__dict__"):
        return {key: plain(item) for key, item in vars(value).items() if not key.startswith("_")}
    return value


class LanguageServerTransport:
    """Request/notification channel to a single server process.

    Notification subscriptions are routed through one pygls handler per
    method, so individual subscriptions can be released without touching the
    underlying client registration.
    """

    def __init__(
        self,
        *,
        configuration_provider: ConfigurationProvider | None = None,
        client: LanguageClient | None = None,
    ) -> None:
        self._client = client or LanguageClient(
            CLIENT_NAME, __version__, protocol_cls=ExtensionProtocol
        )
        self._configuration_provider = configuration_provider
        self._routes: dict[str, list[NotificationHandler]] = {}
        self._pending: set[asyncio.Future[Any]] = set()
        self._spawned = False
        self.running = False
        self.server_info: lsp.ServerInfo | None = None
        self._register_builtin_features()

    def _register_builtin_features(self) -> None:
        @self._client.feature(lsp.WORKSPACE_CONFIGURATION)
        def on_workspace_configuration(params: lsp.ConfigurationParams) -> list[Any]:
            return self._configuration_items(params)

        @self._client.feature(lsp.WINDOW_LOG_MESSAGE)
        def on_log_message(params: lsp.LogMessageParams) -> None:
            logger.log(_LOG_LEVELS.get(params.type, logging.INFO), "server: %s", params.message)

        @self._client.feature(lsp.WINDOW_SHOW_MESSAGE)
        def on_show_message(params: lsp.ShowMessageParams) -> None:
            logger.log(_LOG_LEVELS.get(params.type, logging.INFO), "server: %s", params.message)

    def _configuration_items(self, params: lsp.ConfigurationParams) -> list[Any]:
        if self._configuration_provider is None:
            return [None for _ in params.items]
        return [
            self._configuration_provider(item.section, item.scope_uri) for item in params.items
        ]

    def _route(self, method: str) -> list[NotificationHandler]:
        handlers = self._routes.get(method)
        if handlers is None:
            handlers = []
            self._routes[method] = handlers

            @self._client.feature(method)
            def on_notification(params: Any) -> None:
                self.dispatch(method, params)

        return handlers

    def on_notification(self, method: str, handler: NotificationHandler) -> Disposable:
        handlers = self._route(method)
        handlers.append(handler)

        def _release() -> None:
            if handler in handlers:
                handlers.remove(handler)

        return Disposable(_release)

    def dispatch(self, method: str, params: Any) -> None:
        """Deliver one server notification to its subscribers in subscription order."""
        payload = plain(params)
        logger.debug("<- %s %r", method, payload)
        for handler in list(self._routes.get(method, ())):
            outcome = handler(payload)
            if inspect.isawaitable(outcome):
                task = asyncio.ensure_future(outcome)
                self._pending.add(task)
                task.add_done_callback(self._pending.discard)

    async def start(
        self,
        command: str,
        args: Sequence[str] = (),
        *,
        workspace_folders: Sequence[Path] = (),
        initialization_options: Any = None,
    ) -> None:
        logger.info("Starting language server: %s", " ".join([command, *args]))
        try:
            await self._client.start_io(command, *args)
        except OSError as exc:
            raise TransportError(f"failed to spawn {command}: {exc}") from exc
        self._spawned = True
        folders = [
            lsp.WorkspaceFolder(uri=folder.resolve().as_uri(), name=folder.name)
            for folder in workspace_folders
        ]
        try:
            result = await self._client.initialize_async(
                lsp.InitializeParams(
                    process_id=os.getpid(),
                    client_info=lsp.ClientInfo(name=CLIENT_NAME, version=__version__),
                    capabilities=lsp.ClientCapabilities(
                        workspace=lsp.WorkspaceClientCapabilities(
                            configuration=True,
                            workspace_folders=True,
                            did_change_configuration=lsp.DidChangeConfigurationClientCapabilities(
                                dynamic_registration=False,
                            ),
                            execute_command=lsp.ExecuteCommandClientCapabilities(),
                        ),
                        window=lsp.WindowClientCapabilities(work_done_progress=True),
                    ),
                    root_uri=folders[0].uri if folders else None,
                    workspace_folders=folders or None,
                    initialization_options=initialization_options,
                )
            )
        except Exception as exc:
            if self._spawned:
                await self._abandon()
            raise TransportError(f"initialize failed: {exc}") from exc
        if not self._spawned:
            raise TransportError("transport was stopped during initialize")
        self.server_info = getattr(result, "server_info", None)
        self._client.initialized(lsp.InitializedParams())
        self.running = True
        logger.info("Language server ready: %s", self.server_info)

    async def _abandon(self) -> None:
        """Tell a spawned but uninitialized server to exit, then stop the client."""
        self._spawned = False
        try:
            self._client.exit(None)
        except OSError as exc:
            logger.debug("exit notification not delivered: %s", exc)
        await self._client.stop()

    async def stop(self) -> None:
        """Shut the server down; a transport that never spawned only drops its routes."""
        if not self.running:
            try:
                if self._spawned:
                    await self._abandon()
            finally:
                self._drop_subscriptions()
            return
        self.running = False
        self._spawned = False
        try:
            await self._client.shutdown_async(None)
            self._client.exit(None)
        except JsonRpcException as exc:
            raise TransportError(f"shutdown failed: {exc}") from exc
        finally:
            await self._client.stop()
            self._drop_subscriptions()
        logger.info("Language server stopped")

    def _drop_subscriptions(self) -> None:
        for handlers in self._routes.values():
            handlers.clear()

    def _require_running(self, what: str) -> None:
        if not self.running:
            raise TransportError(f"cannot send {what}: transport is not running")

    def send_notification(self, method: str, params: Any = None) -> None:
        self._require_running(method)
        logger.debug("-> %s %r", method, params)
        self._client.protocol.notify(method, params)

    async def send_request(self, method: str, params: Any = None) -> Any:
        self._require_running(method)
        logger.debug("-> request %s", method)
        try:
            result = await self._client.protocol.send_request_async(method, params)
        except JsonRpcException as exc:
            raise TransportError(f"{method} rejected: {exc}") from exc
        return plain(result)

    async def execute_command(self, command: str, arguments: Sequence[Any]) -> Any:
        self._require_running(command)
        logger.debug("-> workspace/executeCommand %s (%d args)", command, len(arguments))
        try:
            result = await self._client.workspace_execute_command_async(
                lsp.ExecuteCommandParams(command=command, arguments=list(arguments))
            )
        except JsonRpcException as exc:
            raise TransportError(f"{command} rejected: {exc}") from exc
        return plain(result)

    def did_open(self, document: Document) -> None:
        self._require_running(lsp.TEXT_DOCUMENT_DID_OPEN)
        self._client.text_document_did_open(
            lsp.DidOpenTextDocumentParams(
                text_document=lsp.TextDocumentItem(
                    uri=document.uri,
                    language_id=document.language_id,
                    version=document.version,
                    text=document.text,
                )
            )
        )

    def did_change_configuration(self) -> None:
        self._require_running(lsp.WORKSPACE_DID_CHANGE_CONFIGURATION)
        self._client.workspace_did_change_configuration(
            lsp.DidChangeConfigurationParams(settings=None)
        )
