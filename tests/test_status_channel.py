from __future__ import annotations

import itertools

import pytest

from luals_bridge.host import HeadlessHost
from luals_bridge.protocol import STATUS_BAR_COMMAND, STATUS_CLICK, STATUS_REFRESH
from luals_bridge.status import TRANSITIONS, StatusChannel, StatusEvent, StatusState
from tests.transport_helpers import RecordingTransport


def _attached() -> tuple[HeadlessHost, RecordingTransport, StatusChannel, list]:
    host = HeadlessHost()
    transport = RecordingTransport()
    transport.running = True
    channel, disposables = StatusChannel.attach(host, transport)
    return host, transport, channel, disposables


def test_transition_table_is_exhaustive() -> None:
    for state, event in itertools.product(StatusState, StatusEvent):
        assert (state, event) in TRANSITIONS


def test_attach_sends_single_refresh_first() -> None:
    host, transport, channel, _ = _attached()
    assert transport.notifications == [(STATUS_REFRESH, None)]
    host.execute_command(STATUS_BAR_COMMAND)
    assert transport.notifications == [(STATUS_REFRESH, None), (STATUS_CLICK, None)]
    assert channel.state is StatusState.HIDDEN


def test_initial_affordance_is_hidden_with_default_text() -> None:
    host, _, channel, _ = _attached()
    item = host.status_items[0]
    assert channel.state is StatusState.HIDDEN
    assert item.visible is False
    assert item.text == "Lua"
    assert item.command == STATUS_BAR_COMMAND


def test_report_while_hidden_is_stored_until_show() -> None:
    echoed: list[str] = []
    host = HeadlessHost(echo=echoed.append)
    transport = RecordingTransport()
    transport.running = True
    channel, _ = StatusChannel.attach(host, transport)

    transport.dispatch(StatusEvent.REPORT.value, {"text": "Lua 3/10", "tooltip": "indexing"})
    assert echoed == []
    assert channel.text == "Lua 3/10"

    transport.dispatch(StatusEvent.SHOW.value)
    assert channel.state is StatusState.SHOWN
    assert host.status_items[0].visible is True
    assert echoed == ["[status] Lua 3/10 (indexing)"]


@pytest.mark.parametrize(
    "sequence",
    [
        ["show", "report:a", "hide", "report:b"],
        ["report:a", "hide", "show", "report:b", "show"],
        ["hide", "report:a", "report:b", "show", "hide", "show"],
    ],
)
def test_state_follows_last_show_hide_and_last_report(sequence: list[str]) -> None:
    host, transport, channel, _ = _attached()
    visible = False
    text = "Lua"
    for step in sequence:
        if step == "show":
            transport.dispatch(StatusEvent.SHOW.value)
            visible = True
        elif step == "hide":
            transport.dispatch(StatusEvent.HIDE.value)
            visible = False
        else:
            text = step.split(":", 1)[1]
            transport.dispatch(StatusEvent.REPORT.value, {"text": text, "tooltip": f"tip {text}"})
    assert channel.state is (StatusState.SHOWN if visible else StatusState.HIDDEN)
    assert host.status_items[0].visible is visible
    assert channel.text == text


def test_click_never_changes_local_state() -> None:
    host, transport, channel, _ = _attached()
    transport.dispatch(StatusEvent.SHOW.value)
    channel.click()
    assert channel.state is StatusState.SHOWN
    assert transport.notifications[-1] == (STATUS_CLICK, None)


def test_disposing_releases_command_subscriptions_and_item() -> None:
    host, transport, _, disposables = _attached()
    for disposable in disposables:
        disposable.dispose()
    assert STATUS_BAR_COMMAND not in host.commands
    assert transport.subscriber_count() == 0
    assert host.status_items[0].disposed is True
