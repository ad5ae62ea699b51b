from __future__ import annotations

import sys
import types

import pytest

from btrepl.core.errors import SdpUnavailableError
from btrepl.core.sdp import BluezSdpClient, record_rfcomm_channel, record_service_name


class FakeBluezError(OSError):
    pass


def _install_fake_bluez(monkeypatch: pytest.MonkeyPatch, *, fail_connect: bool = False) -> list:
    sessions: list = []

    class FakeSDPSession:
        def __init__(self) -> None:
            self.closed = False
            self.address = None
            sessions.append(self)

        def connect(self, address: str) -> None:
            if fail_connect:
                raise FakeBluezError("Host is down")
            self.address = address

        def search(self, uuid: str):
            if uuid == "bad":
                raise FakeBluezError("search failed")
            return [{"name": "schmeep", "protocol": "RFCOMM", "port": 7, "host": self.address}]

        def close(self) -> None:
            self.closed = True

    bluez = types.SimpleNamespace(SDPSession=FakeSDPSession, error=FakeBluezError)
    package = types.ModuleType("bluetooth")
    package._bluetooth = bluez
    monkeypatch.setitem(sys.modules, "bluetooth", package)
    return sessions


def test_missing_pybluez_is_reported_as_unavailable(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setitem(sys.modules, "bluetooth", None)
    with pytest.raises(SdpUnavailableError, match="PyBluez"):
        BluezSdpClient().open("AA:BB:CC:DD:EE:FF")


def test_bluez_session_search_and_close(monkeypatch: pytest.MonkeyPatch) -> None:
    sessions = _install_fake_bluez(monkeypatch)
    session = BluezSdpClient().open("AA:BB:CC:DD:EE:FF")
    records = session.search("0003")
    session.close()

    assert records[0]["port"] == 7
    assert sessions[0].address == "AA:BB:CC:DD:EE:FF"
    assert sessions[0].closed


def test_bluez_search_failure_is_wrapped(monkeypatch: pytest.MonkeyPatch) -> None:
    _install_fake_bluez(monkeypatch)
    session = BluezSdpClient().open("AA:BB:CC:DD:EE:FF")
    with pytest.raises(SdpUnavailableError):
        session.search("bad")


def test_failed_connect_releases_session(monkeypatch: pytest.MonkeyPatch) -> None:
    sessions = _install_fake_bluez(monkeypatch, fail_connect=True)
    with pytest.raises(SdpUnavailableError, match="Host is down"):
        BluezSdpClient().open("AA:BB:CC:DD:EE:FF")
    assert sessions[0].closed


def test_record_helpers_reject_wrong_types() -> None:
    assert record_service_name({"name": "schmeep"}) == "schmeep"
    assert record_service_name({"name": b"\xff\xfe"}) is None
    assert record_service_name({"name": 3}) is None
    assert record_service_name("schmeep") is None
    assert record_rfcomm_channel({"protocol": "RFCOMM", "port": 30}) == 30
    assert record_rfcomm_channel({"protocol": "RFCOMM", "port": 0}) is None
    assert record_rfcomm_channel({"protocol": "RFCOMM", "port": 31}) is None
    assert record_rfcomm_channel({"protocol": "L2CAP", "port": 5}) is None
