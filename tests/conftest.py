from __future__ import annotations

from typing import Any

import pytest

from btrepl.core.errors import SdpUnavailableError
from btrepl.core.sdp import RFCOMM_PROTOCOL_UUID

SERVICE_UUID = "611a1a1a-94ba-11f0-b0a8-5f754c08f133"


class FakeSdpSession:
    def __init__(self, client: FakeSdpClient, address: str) -> None:
        self.client = client
        self.address = address
        self.closed = False

    def search(self, uuid: str) -> list[dict[str, Any]]:
        self.client.searches.append((self.address, uuid))
        if self.address in self.client.failing_searches:
            raise SdpUnavailableError("search failed")
        return list(self.client.records.get(self.address, {}).get(uuid, []))

    def close(self) -> None:
        self.closed = True


class FakeSdpClient:
    """Scripted SDP responder keyed by address and searched UUID."""

    def __init__(self) -> None:
        self.records: dict[str, dict[str, list[Any]]] = {}
        self.unreachable: set[str] = set()
        self.failing_searches: set[str] = set()
        self.opened: list[str] = []
        self.sessions: list[FakeSdpSession] = []
        self.searches: list[tuple[str, str]] = []

    def advertise(self, address: str, name: str = "schmeep", channel: int = 7) -> None:
        record = {"name": name, "protocol": "RFCOMM", "port": channel, "host": address}
        by_uuid = self.records.setdefault(address, {})
        by_uuid.setdefault(RFCOMM_PROTOCOL_UUID, []).append(record)
        by_uuid.setdefault(SERVICE_UUID, []).append(record)

    def open(self, address: str) -> FakeSdpSession:
        self.opened.append(address)
        if address in self.unreachable:
            raise SdpUnavailableError(f"no SDP responder on {address}")
        session = FakeSdpSession(self, address)
        self.sessions.append(session)
        return session


class MemoryCache:
    def __init__(self, address: str | None = None) -> None:
        self.address = address
        self.saved: list[str] = []

    def load(self) -> str | None:
        return self.address

    def save(self, address: str) -> None:
        self.saved.append(address)
        self.address = address


@pytest.fixture
def sdp() -> FakeSdpClient:
    return FakeSdpClient()
