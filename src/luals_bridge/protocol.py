"""Extension protocol messages exchanged with the Lua language server.

The standard LSP transport carries a small application-level message set on
top: status affordance control, server-driven editor commands, structured
reports and the configuration read/write commands.
"""

from __future__ import annotations

from typing import Annotated, Any, Iterable, List, Literal, Mapping, Optional, TypeAlias, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

JSONScalar: TypeAlias = str | int | float | bool | None
JSONValue: TypeAlias = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]
JSONObject: TypeAlias = dict[str, JSONValue]

# server -> client notifications
STATUS_SHOW = "$/status/show"
STATUS_HIDE = "$/status/hide"
STATUS_REPORT = "$/status/report"
COMMAND = "$/command"

# client -> server notifications
STATUS_CLICK = "$/status/click"
STATUS_REFRESH = "$/status/refresh"
API_REPORT = "$/api/report"

# workspace/executeCommand identifiers handled by the server
SET_CONFIG_COMMAND = "lua.setConfig"
GET_CONFIG_COMMAND = "lua.getConfig"

# commands registered with the host editor
LOCAL_CONFIG_COMMAND = "lua.config"
STATUS_BAR_COMMAND = "Lua.statusBar"

LANGUAGE_ID = "lua"


class StatusReport(BaseModel):
    model_config = ConfigDict(extra="ignore")

    text: str = ""
    tooltip: Optional[str] = None


class CommandNotification(BaseModel):
    model_config = ConfigDict(extra="ignore")

    command: str
    data: Any = None


class _Change(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    key: str
    value: Any = None
    uri: str
    global_: Optional[bool] = Field(default=None, alias="global")

    def to_wire(self) -> JSONObject:
        record: JSONObject = {
            "action": self.action,  # type: ignore[attr-defined]
            "key": self.key,
            "value": self.value,
            "uri": str(self.uri),
        }
        if self.global_ is not None:
            record["global"] = self.global_
        return record


class SetChange(_Change):
    """Replace the value at ``key``."""

    action: Literal["set"] = "set"


class AddChange(_Change):
    """Append ``value`` to the sequence stored at ``key``."""

    action: Literal["add"] = "add"


class PropChange(_Change):
    """Set sub-field ``prop`` of the mapping stored at ``key``."""

    action: Literal["prop"] = "prop"
    prop: str

    def to_wire(self) -> JSONObject:
        record = super().to_wire()
        record["prop"] = self.prop
        return record


ConfigChange = Annotated[Union[SetChange, AddChange, PropChange], Field(discriminator="action")]

_CHANGES_ADAPTER: TypeAdapter[List[ConfigChange]] = TypeAdapter(List[ConfigChange])


def parse_changes(raw: Iterable[ConfigChange | Mapping[str, Any]]) -> list[ConfigChange]:
    """Validate a batch of change descriptors into the closed change union."""
    return _CHANGES_ADAPTER.validate_python(list(raw))


def changes_to_wire(changes: Iterable[ConfigChange]) -> list[JSONObject]:
    return [change.to_wire() for change in changes]


def config_query(key: str, uri: str) -> JSONObject:
    return {"uri": str(uri), "key": key}
