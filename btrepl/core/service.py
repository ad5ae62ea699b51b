"""Service layer used by the CLI: settings, discovery, and connection setup."""

from __future__ import annotations

import logging
import socket
from collections.abc import Callable

from btrepl.core.cache import AddressCache
from btrepl.core.config import load_settings
from btrepl.core.errors import ServiceNotFoundError
from btrepl.core.locator import ServiceLocator
from btrepl.core.model import ServiceEndpoint, Settings, normalize_address
from btrepl.core.sdp import BluezSdpClient, SdpClient
from btrepl.transports.rfcomm import RFCOMMSession

LOGGER = logging.getLogger(__name__)


class ReplService:
    def __init__(
        self,
        *,
        settings: Settings | None = None,
        config_path: str | None = None,
        sdp: SdpClient | None = None,
        cache: AddressCache | None = None,
        active_connections: Callable[[], list[str]] | None = None,
    ) -> None:
        if settings is None:
            loaded = load_settings(config_path)
            settings = loaded.settings
            self.load_warnings = loaded.warnings
        else:
            self.load_warnings = ()
        self.settings = settings
        self.runtime_warnings = _runtime_warnings()
        self.cache = cache or AddressCache(settings.cache_path)
        self.locator = ServiceLocator(
            sdp or BluezSdpClient(),
            self.cache,
            service_name=settings.service_name,
            service_uuid=settings.service_uuid,
            fallback_addresses=settings.fallback_addresses,
            active_connections=active_connections,
        )

    def resolve_endpoint(self, address: str | None = None) -> ServiceEndpoint:
        """Pick the device and look up the service channel on it.

        An explicit `address` skips discovery and is remembered for next time.
        """
        if address is not None:
            resolved = normalize_address(address)
            self.cache.save(resolved)
        else:
            resolved = self.locator.resolve()

        channel = self.locator.channel_for(resolved)
        if channel < 0:
            raise ServiceNotFoundError(
                f"Service {self.settings.service_uuid} not found on {resolved}."
            )
        return ServiceEndpoint(address=resolved, channel=channel)

    def connect(self, endpoint: ServiceEndpoint) -> RFCOMMSession:
        LOGGER.info("Connecting to %s on channel %d.", endpoint.address, endpoint.channel)
        return RFCOMMSession.connect(
            endpoint.address,
            endpoint.channel,
            attempts=self.settings.connect_attempts,
            backoff_s=self.settings.connect_backoff_s,
        )


def _runtime_warnings() -> tuple[str, ...]:
    warnings: list[str] = []
    if not hasattr(socket, "AF_BLUETOOTH") or not hasattr(socket, "BTPROTO_RFCOMM"):
        warnings.append(
            "Python runtime missing AF_BLUETOOTH/BTPROTO_RFCOMM; RFCOMM connections will fail."
        )
    return tuple(warnings)
