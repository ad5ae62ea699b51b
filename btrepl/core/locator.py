"""Find a device advertising the evaluation service and its RFCOMM channel."""

from __future__ import annotations

import logging
import re
import subprocess
from collections.abc import Callable, Sequence
from contextlib import closing

from btrepl.core.cache import AddressCache
from btrepl.core.errors import SdpUnavailableError, ServiceNotFoundError
from btrepl.core.model import DEFAULT_SERVICE_NAME, DEFAULT_SERVICE_UUID, is_valid_address
from btrepl.core.sdp import RFCOMM_PROTOCOL_UUID, SdpClient, record_rfcomm_channel, record_service_name

_MAC_RE = re.compile(r"([0-9A-F]{2}(?::[0-9A-F]{2}){5})", re.IGNORECASE)
LOGGER = logging.getLogger(__name__)

CONNECTION_LIST_COMMANDS: tuple[tuple[str, ...], ...] = (
    ("hcitool", "con"),
    ("bluetoothctl", "devices", "Connected"),
)


class ServiceLocator:
    """Ordered lookup: cached address, active connections, static fallbacks.

    The first address whose SDP records advertise `service_name` wins. A
    winner found by scanning is written back to the cache.
    """

    def __init__(
        self,
        sdp: SdpClient,
        cache: AddressCache,
        *,
        service_name: str = DEFAULT_SERVICE_NAME,
        service_uuid: str = DEFAULT_SERVICE_UUID,
        fallback_addresses: Sequence[str] = (),
        active_connections: Callable[[], list[str]] | None = None,
    ) -> None:
        self.sdp = sdp
        self.cache = cache
        self.service_name = service_name
        self.service_uuid = service_uuid
        self.fallback_addresses = tuple(fallback_addresses)
        self._active_connections = active_connections or list_active_connections

    def resolve(self) -> str:
        cached = self.cache.load()
        if cached is not None:
            LOGGER.info("Checking cached address %s.", cached)
            if self.probe(cached):
                LOGGER.info("Using cached device: %s.", cached)
                return cached
            LOGGER.info("Cached device %s does not offer %s.", cached, self.service_name)

        LOGGER.info("Scanning active connections.")
        found = self._probe_each(self._active_connections())
        if found is None and self.fallback_addresses:
            LOGGER.info("Trying configured fallback addresses.")
            found = self._probe_each(self.fallback_addresses)

        if found is None:
            raise ServiceNotFoundError(
                f"No {self.service_name} service found (UUID {self.service_uuid})."
            )

        LOGGER.info("Using discovered device: %s.", found)
        self.cache.save(found)
        return found

    def _probe_each(self, addresses: Sequence[str]) -> str | None:
        for address in addresses:
            if not is_valid_address(address):
                LOGGER.debug("Skipping malformed address %r", address)
                continue
            LOGGER.info("Checking %s.", address)
            if self.probe(address):
                return address
        return None

    def probe(self, address: str) -> bool:
        """Whether `address` advertises an RFCOMM service named like ours."""
        try:
            session = self.sdp.open(address)
        except SdpUnavailableError as exc:
            LOGGER.info("SDP connection to %s failed: %s", address, exc)
            return False

        with closing(session):
            try:
                records = session.search(RFCOMM_PROTOCOL_UUID)
            except SdpUnavailableError as exc:
                LOGGER.info("SDP search on %s failed: %s", address, exc)
                return False
            for record in records:
                name = record_service_name(record)
                if name is not None and self.service_name in name:
                    LOGGER.info("%s service found on %s.", self.service_name, address)
                    return True

        LOGGER.info("No %s service on %s.", self.service_name, address)
        return False

    def channel_for(self, address: str) -> int:
        """RFCOMM channel of the service on `address`, or -1 if not advertised."""
        LOGGER.info("Searching for service with UUID %s.", self.service_uuid)
        try:
            session = self.sdp.open(address)
        except SdpUnavailableError as exc:
            LOGGER.warning("Failed to connect to SDP server on %s: %s", address, exc)
            return -1

        with closing(session):
            try:
                records = session.search(self.service_uuid)
            except SdpUnavailableError as exc:
                LOGGER.warning("SDP search on %s failed: %s", address, exc)
                return -1
            for record in records:
                channel = record_rfcomm_channel(record)
                if channel is None:
                    continue
                LOGGER.info("Found service on RFCOMM channel %d.", channel)
                return channel
        return -1


def list_active_connections() -> list[str]:
    """Addresses with a live baseband connection, in the order reported."""
    seen: set[str] = set()
    addresses: list[str] = []

    for cmd in CONNECTION_LIST_COMMANDS:
        result = _run_discovery_command(cmd)
        if result is None:
            continue
        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            LOGGER.info("%s failed: %s", " ".join(cmd), stderr or f"exit {result.returncode}")
            continue

        for line in result.stdout.splitlines():
            match = _MAC_RE.search(line)
            if not match:
                continue
            mac = match.group(1).upper()
            if mac in seen:
                continue
            seen.add(mac)
            addresses.append(mac)

    LOGGER.info("Found %d active connections.", len(addresses))
    return addresses


def _run_discovery_command(cmd: Sequence[str]) -> subprocess.CompletedProcess[str] | None:
    try:
        return subprocess.run(
            cmd,
            check=False,
            capture_output=True,
            text=True,
        )
    except FileNotFoundError:
        return None
