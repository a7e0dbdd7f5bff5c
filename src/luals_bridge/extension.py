"""Entry points wired to host editor events.

A :class:`BridgeContext` is passed to every entry point and holds the single
default session, created lazily by the first qualifying document-open event.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from luals_bridge.config import RUNTIME_VERSION_KEY
from luals_bridge.configuration import apply_local_changes, get_config, set_config
from luals_bridge.exceptions import ConfigurationError, TransportError
from luals_bridge.host import Disposable, Document, DocumentSelector, EditorHost
from luals_bridge.protocol import API_REPORT, LOCAL_CONFIG_COMMAND, SetChange
from luals_bridge.session import Session, SessionState

logger = logging.getLogger(__name__)

JOIN_RUNTIME_VERSION = "Lua 5.4"

SessionFactory = Callable[[EditorHost, Path, DocumentSelector], Session]


def _default_session_factory(
    host: EditorHost, extension_root: Path, selector: DocumentSelector
) -> Session:
    return Session(host, extension_root, selector=selector)


@dataclass
class BridgeContext:
    host: EditorHost
    extension_root: Path
    selector: DocumentSelector = field(default_factory=DocumentSelector)
    session_factory: SessionFactory = _default_session_factory
    session: Session | None = None
    subscriptions: list[Disposable] = field(default_factory=list)


def activate(ctx: BridgeContext) -> None:
    """Register the local config command and start watching document-open events.

    Documents the host already has open are not replayed here; call
    :func:`open_existing_documents` once the event loop is running.
    """
    ctx.subscriptions.append(
        ctx.host.register_command(
            LOCAL_CONFIG_COMMAND, lambda changes: apply_local_changes(ctx.host, changes)
        )
    )
    ctx.subscriptions.append(
        ctx.host.on_did_open_text_document(
            lambda document: did_open_text_document(ctx, document)
        )
    )


async def open_existing_documents(ctx: BridgeContext) -> None:
    for document in ctx.host.text_documents:
        await did_open_text_document(ctx, document)


async def did_open_text_document(ctx: BridgeContext, document: Document) -> None:
    if not ctx.selector.matches(document):
        return

    if ctx.session is None:
        session = ctx.session_factory(ctx.host, ctx.extension_root, ctx.selector)
        ctx.session = session
        try:
            await session.start()
        except (ConfigurationError, TransportError) as exc:
            ctx.host.show_error_message(f"Lua language server failed to start: {exc}")
        return

    session = ctx.session
    if session.state is SessionState.FAILED:
        logger.warning("Skipping %s: the language server session failed to start", document.uri)
        return

    session.open_document(document)
    try:
        version = await get_config(ctx, RUNTIME_VERSION_KEY, document.uri)
        logger.debug("%s runtime version for %s: %r", RUNTIME_VERSION_KEY, document.uri, version)
        # The value read above does not gate this write.
        await set_config(
            ctx,
            [SetChange(key=RUNTIME_VERSION_KEY, value=JOIN_RUNTIME_VERSION, uri=document.uri)],
        )
    except TransportError as exc:
        logger.warning("Runtime version fixup for %s failed: %s", document.uri, exc)
        ctx.host.show_error_message(str(exc))


async def deactivate(ctx: BridgeContext) -> None:
    session = ctx.session
    ctx.session = None
    try:
        if session is not None:
            await session.stop()
    finally:
        for disposable in ctx.subscriptions:
            disposable.dispose()
        ctx.subscriptions.clear()


async def report_api_doc(ctx: BridgeContext, params: Any) -> None:
    if ctx.session is None:
        return
    await ctx.session.notify(API_REPORT, params)
