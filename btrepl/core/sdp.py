"""SDP access through PyBluez, plus helpers for reading service records."""

from __future__ import annotations

import logging
from typing import Any, Protocol

from btrepl.core.errors import SdpUnavailableError

RFCOMM_PROTOCOL_UUID = "0003"
MIN_RFCOMM_CHANNEL = 1
MAX_RFCOMM_CHANNEL = 30
LOGGER = logging.getLogger(__name__)

SdpRecord = dict[str, Any]


class SdpSession(Protocol):
    def search(self, uuid: str) -> list[SdpRecord]:
        """Return the service records matching `uuid`."""

    def close(self) -> None:
        """Release the session."""


class SdpClient(Protocol):
    def open(self, address: str) -> SdpSession:
        """Open an SDP session to `address` or raise SdpUnavailableError."""


class _BluezSdpSession:
    def __init__(self, session: Any, error_types: tuple[type[BaseException], ...]) -> None:
        self._session = session
        self._error_types = error_types

    def search(self, uuid: str) -> list[SdpRecord]:
        try:
            return list(self._session.search(uuid))
        except self._error_types as exc:
            raise SdpUnavailableError(f"SDP search for {uuid} failed: {exc}") from exc

    def close(self) -> None:
        self._session.close()


class BluezSdpClient:
    def open(self, address: str) -> SdpSession:
        try:
            from bluetooth import _bluetooth as bluez  # type: ignore
        except ImportError as exc:
            raise SdpUnavailableError(
                "SDP lookups require PyBluez ('bluetooth' module). Install dependency and retry."
            ) from exc

        error_types: tuple[type[BaseException], ...] = (bluez.error, OSError)
        try:
            session = bluez.SDPSession()
        except error_types as exc:
            raise SdpUnavailableError(f"Could not create SDP session: {exc}") from exc
        try:
            session.connect(address)
        except error_types as exc:
            session.close()
            raise SdpUnavailableError(f"Failed to connect to SDP server on {address}: {exc}") from exc
        return _BluezSdpSession(session, error_types)


def record_service_name(record: SdpRecord) -> str | None:
    """Primary service name of `record`, or None when absent or not text."""
    name = record.get("name") if isinstance(record, dict) else None
    if isinstance(name, bytes):
        try:
            return name.decode("utf-8")
        except UnicodeDecodeError:
            LOGGER.debug("Skipping SDP record with undecodable name %r", name)
            return None
    if isinstance(name, str):
        return name
    return None


def record_rfcomm_channel(record: SdpRecord) -> int | None:
    """RFCOMM channel bound in `record`'s protocol descriptors, if any."""
    if not isinstance(record, dict):
        return None
    if record.get("protocol") != "RFCOMM":
        return None
    port = record.get("port")
    if isinstance(port, bool) or not isinstance(port, int):
        return None
    if not MIN_RFCOMM_CHANNEL <= port <= MAX_RFCOMM_CHANNEL:
        return None
    return port
