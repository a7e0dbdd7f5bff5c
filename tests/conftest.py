from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
for entry in (ROOT, ROOT / "src"):
    if str(entry) not in sys.path:
        sys.path.insert(0, str(entry))

import pytest

from luals_bridge.config import ConfigurationStore
from luals_bridge.extension import BridgeContext
from luals_bridge.host import HeadlessHost
from luals_bridge.session import Session
from tests.transport_helpers import OVERRIDE_EXECUTABLE, RecordingTransport, transport_factory


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    root = tmp_path / "workspace"
    root.mkdir()
    return root


@pytest.fixture
def host(workspace: Path) -> HeadlessHost:
    store = ConfigurationStore(
        workspace={"Lua": {"misc": {"executablePath": OVERRIDE_EXECUTABLE}}},
        folders={workspace: {}},
    )
    return HeadlessHost(configuration=store, folders=[workspace])


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def ctx(host: HeadlessHost, transport: RecordingTransport, tmp_path: Path) -> BridgeContext:
    def _session_factory(host, extension_root, selector):
        return Session(
            host,
            extension_root,
            selector=selector,
            transport_factory=transport_factory(transport),
        )

    return BridgeContext(
        host=host,
        extension_root=tmp_path / "extension",
        session_factory=_session_factory,
    )
