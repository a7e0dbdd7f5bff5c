from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from luals_bridge.exceptions import TransportError
from luals_bridge.extension import (
    JOIN_RUNTIME_VERSION,
    BridgeContext,
    activate,
    deactivate,
    did_open_text_document,
    open_existing_documents,
    report_api_doc,
)
from luals_bridge.host import Document, HeadlessHost
from luals_bridge.protocol import (
    API_REPORT,
    GET_CONFIG_COMMAND,
    LOCAL_CONFIG_COMMAND,
    SET_CONFIG_COMMAND,
    STATUS_BAR_COMMAND,
    STATUS_REFRESH,
)
from luals_bridge.session import SessionState
from tests.transport_helpers import RecordingTransport

FIRST = Document(uri="file:///w/main.lua", language_id="lua", text="print(1)\n")
SECOND = Document(uri="file:///w/util.lua", language_id="lua")


@pytest.mark.parametrize(
    "document",
    [
        Document(uri="file:///w/main.py", language_id="python"),
        Document(uri="git:/w/main.lua", language_id="lua"),
        Document(uri="vscode-notebook-cell:/w/x", language_id="lua"),
    ],
)
def test_non_matching_documents_are_ignored(
    ctx: BridgeContext, transport: RecordingTransport, document: Document
) -> None:
    asyncio.run(did_open_text_document(ctx, document))
    asyncio.run(did_open_text_document(ctx, document))
    assert ctx.session is None
    assert transport.started_with is None
    assert transport.commands == []


def test_first_document_starts_default_session(ctx: BridgeContext, transport: RecordingTransport) -> None:
    asyncio.run(did_open_text_document(ctx, FIRST))
    assert ctx.session is not None
    assert ctx.session.state is SessionState.RUNNING
    assert transport.notifications == [(STATUS_REFRESH, None)]
    assert transport.commands == []


def test_untitled_buffers_qualify(ctx: BridgeContext) -> None:
    asyncio.run(did_open_text_document(ctx, Document(uri="untitled:Untitled-1", language_id="lua")))
    assert ctx.session is not None


def test_join_reads_then_overwrites_runtime_version(
    ctx: BridgeContext, transport: RecordingTransport
) -> None:
    transport.results[GET_CONFIG_COMMAND] = "Lua 5.1"

    async def _scenario() -> None:
        await did_open_text_document(ctx, FIRST)
        session = ctx.session
        await did_open_text_document(ctx, SECOND)
        assert ctx.session is session

    asyncio.run(_scenario())

    assert transport.opened == [SECOND]
    assert transport.commands == [
        (GET_CONFIG_COMMAND, [{"uri": SECOND.uri, "key": "Lua.runtime.version"}]),
        (
            SET_CONFIG_COMMAND,
            [
                {
                    "action": "set",
                    "key": "Lua.runtime.version",
                    "value": JOIN_RUNTIME_VERSION,
                    "uri": SECOND.uri,
                }
            ],
        ),
    ]


def test_start_failure_is_surfaced_to_host(host: HeadlessHost, tmp_path: Path) -> None:
    host.configuration.update("Lua.misc.executablePath", "", global_=False)
    ctx = BridgeContext(host=host, extension_root=tmp_path / "missing")

    asyncio.run(did_open_text_document(ctx, FIRST))

    assert ctx.session is not None
    assert ctx.session.state is SessionState.FAILED
    assert len(host.errors) == 1
    assert "failed to start" in host.errors[0]


def test_join_failure_is_logged_and_surfaced(
    ctx: BridgeContext, host: HeadlessHost, transport: RecordingTransport
) -> None:
    transport.results[GET_CONFIG_COMMAND] = TransportError("lua.getConfig rejected")

    async def _scenario() -> None:
        await did_open_text_document(ctx, FIRST)
        await did_open_text_document(ctx, SECOND)

    asyncio.run(_scenario())
    assert host.errors == ["lua.getConfig rejected"]
    assert [command for command, _ in transport.commands] == [GET_CONFIG_COMMAND]


def test_activate_routes_host_events_and_deactivate_cleans_up(
    ctx: BridgeContext, host: HeadlessHost, transport: RecordingTransport
) -> None:
    activate(ctx)
    assert LOCAL_CONFIG_COMMAND in host.commands

    async def _scenario() -> None:
        await host.open_document(FIRST)
        assert ctx.session is not None
        await deactivate(ctx)

    asyncio.run(_scenario())

    assert ctx.session is None
    assert transport.stop_calls == 1
    assert transport.subscriber_count() == 0
    assert LOCAL_CONFIG_COMMAND not in host.commands
    assert transport.opened == [FIRST]


def test_open_existing_documents_replays_host_state(
    ctx: BridgeContext, host: HeadlessHost, transport: RecordingTransport
) -> None:
    host.documents.extend([FIRST, SECOND])

    asyncio.run(open_existing_documents(ctx))

    assert ctx.session is not None
    assert transport.opened == [FIRST, SECOND]
    assert [command for command, _ in transport.commands] == [GET_CONFIG_COMMAND, SET_CONFIG_COMMAND]


def test_report_api_doc_requires_session(ctx: BridgeContext, transport: RecordingTransport) -> None:
    asyncio.run(report_api_doc(ctx, {"type": "dump"}))
    assert transport.notifications == []

    async def _scenario() -> None:
        await did_open_text_document(ctx, FIRST)
        await report_api_doc(ctx, {"type": "dump", "data": [1, 2]})

    asyncio.run(_scenario())
    assert transport.notifications[-1] == (API_REPORT, {"type": "dump", "data": [1, 2]})


def test_deactivate_without_session_is_noop(ctx: BridgeContext) -> None:
    asyncio.run(deactivate(ctx))
    assert ctx.session is None


def test_deactivate_while_starting_leaves_nothing_running(
    ctx: BridgeContext, host: HeadlessHost, transport: RecordingTransport
) -> None:
    activate(ctx)

    async def _scenario() -> None:
        transport.start_gate = asyncio.Event()
        opening = asyncio.ensure_future(did_open_text_document(ctx, FIRST))
        await asyncio.sleep(0)
        session = ctx.session
        assert session is not None and session.state is SessionState.STARTING
        await deactivate(ctx)
        transport.start_gate.set()
        await opening
        assert session.state is SessionState.STOPPED

    asyncio.run(_scenario())

    assert ctx.session is None
    assert transport.running is False
    assert transport.subscriber_count() == 0
    assert STATUS_BAR_COMMAND not in host.commands
    assert host.errors == []


def test_opens_after_failed_start_are_not_surfaced_again(host: HeadlessHost, tmp_path: Path) -> None:
    host.configuration.update("Lua.misc.executablePath", "", global_=False)
    ctx = BridgeContext(host=host, extension_root=tmp_path / "missing")

    async def _scenario() -> None:
        await did_open_text_document(ctx, FIRST)
        await did_open_text_document(ctx, SECOND)
        await did_open_text_document(ctx, SECOND)

    asyncio.run(_scenario())

    assert ctx.session is not None
    assert ctx.session.state is SessionState.FAILED
    assert len(host.errors) == 1
