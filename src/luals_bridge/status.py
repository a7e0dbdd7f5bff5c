"""Server-driven status affordance.

Two UI states, ``hidden`` (initial) and ``shown``. The server is the only
authority on visibility; clicks are forwarded and never change local state.
Reports update text/tooltip in either state, so a report received while
hidden becomes visible on the next show.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable

from luals_bridge.invariants import never
from luals_bridge.protocol import (
    STATUS_BAR_COMMAND,
    STATUS_CLICK,
    STATUS_HIDE,
    STATUS_REFRESH,
    STATUS_REPORT,
    STATUS_SHOW,
    StatusReport,
)

if TYPE_CHECKING:
    from luals_bridge.host import Disposable, EditorHost, StatusItem
    from luals_bridge.transport import LanguageServerTransport

logger = logging.getLogger(__name__)

DEFAULT_STATUS_TEXT = "Lua"


class StatusState(Enum):
    HIDDEN = "hidden"
    SHOWN = "shown"


class StatusEvent(Enum):
    SHOW = STATUS_SHOW
    HIDE = STATUS_HIDE
    REPORT = STATUS_REPORT


TRANSITIONS: dict[tuple[StatusState, StatusEvent], StatusState] = {
    (StatusState.HIDDEN, StatusEvent.SHOW): StatusState.SHOWN,
    (StatusState.HIDDEN, StatusEvent.HIDE): StatusState.HIDDEN,
    (StatusState.HIDDEN, StatusEvent.REPORT): StatusState.HIDDEN,
    (StatusState.SHOWN, StatusEvent.SHOW): StatusState.SHOWN,
    (StatusState.SHOWN, StatusEvent.HIDE): StatusState.HIDDEN,
    (StatusState.SHOWN, StatusEvent.REPORT): StatusState.SHOWN,
}


class StatusChannel:
    def __init__(self, item: "StatusItem", notify: Callable[[str], None]) -> None:
        self.item = item
        self.state = StatusState.HIDDEN
        self._notify = notify
        self.item.command = STATUS_BAR_COMMAND
        self.item.update(DEFAULT_STATUS_TEXT, None)

    @property
    def text(self) -> str:
        return self.item.text

    @property
    def tooltip(self) -> str | None:
        return self.item.tooltip

    def handle(self, event: StatusEvent, params: Any = None) -> StatusState:
        target = TRANSITIONS.get((self.state, event))
        if target is None:
            never("unhandled status transition", state=self.state.value, event=event.value)
        if event is StatusEvent.REPORT:
            report = StatusReport.model_validate(params or {})
            self.item.update(report.text, report.tooltip)
        if target is not self.state:
            logger.debug("status %s -> %s", self.state.value, target.value)
            if target is StatusState.SHOWN:
                self.item.show()
            else:
                self.item.hide()
        self.state = target
        return target

    def click(self) -> None:
        self._notify(STATUS_CLICK)

    @classmethod
    def attach(
        cls,
        host: "EditorHost",
        transport: "LanguageServerTransport",
    ) -> tuple["StatusChannel", list["Disposable"]]:
        """Create the affordance, subscribe to status notifications and request a refresh.

        The refresh goes out after every subscription is in place and before
        any other client-originated status traffic.
        """
        item = host.create_status_item()
        channel = cls(item, transport.send_notification)
        disposables = [host.register_command(STATUS_BAR_COMMAND, channel.click)]
        for event in StatusEvent:
            disposables.append(
                transport.on_notification(
                    event.value,
                    lambda params, event=event: channel.handle(event, params),
                )
            )
        transport.send_notification(STATUS_REFRESH)
        disposables.append(item)
        return channel, disposables
