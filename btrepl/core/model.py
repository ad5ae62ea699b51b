"""Core data models used across discovery, transport, and the REPL."""

from __future__ import annotations

import re
from dataclasses import dataclass

from btrepl.core.errors import InvalidAddressError

_ADDRESS_RE = re.compile(r"^[0-9A-F]{2}(?::[0-9A-F]{2}){5}$", re.IGNORECASE)

ADDRESS_LENGTH = 17
DEFAULT_SERVICE_NAME = "schmeep"
DEFAULT_SERVICE_UUID = "611a1a1a-94ba-11f0-b0a8-5f754c08f133"


def is_valid_address(text: str) -> bool:
    return len(text) == ADDRESS_LENGTH and bool(_ADDRESS_RE.match(text))


def normalize_address(text: str) -> str:
    """Return `text` as an upper-case XX:XX:XX:XX:XX:XX address.

    Raises InvalidAddressError for anything else.
    """
    candidate = text.strip().upper()
    if not is_valid_address(candidate):
        raise InvalidAddressError(
            f"'{text}' is not a Bluetooth address (expected XX:XX:XX:XX:XX:XX)"
        )
    return candidate


@dataclass(frozen=True)
class ServiceEndpoint:
    address: str
    channel: int


@dataclass(frozen=True)
class Frame:
    kind: str
    payload: bytes = b""


@dataclass(frozen=True)
class Settings:
    service_name: str = DEFAULT_SERVICE_NAME
    service_uuid: str = DEFAULT_SERVICE_UUID
    fallback_addresses: tuple[str, ...] = ()
    connect_attempts: int = 4
    connect_backoff_s: float = 4.0
    receive_buffer: int = 254
    prompt: str = "scheme> "
    cache_path: str | None = None
