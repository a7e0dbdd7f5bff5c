from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from luals_bridge.protocol import COMMAND, CommandNotification

if TYPE_CHECKING:
    from luals_bridge.host import Disposable, EditorHost
    from luals_bridge.transport import LanguageServerTransport

logger = logging.getLogger(__name__)


class CommandChannel:
    """Runs editor commands named by ``$/command`` notifications.

    No acknowledgment goes back to the server, and failures of the editor
    command (including an unknown command name) propagate to the host.
    """

    def __init__(self, host: "EditorHost") -> None:
        self._host = host

    def handle(self, params: Any) -> Any:
        notification = CommandNotification.model_validate(params)
        logger.debug("server requested editor command %s", notification.command)
        return self._host.execute_command(notification.command, notification.data)

    @classmethod
    def attach(
        cls, host: "EditorHost", transport: "LanguageServerTransport"
    ) -> tuple["CommandChannel", list["Disposable"]]:
        channel = cls(host)
        return channel, [transport.on_notification(COMMAND, channel.handle)]
