"""Per-user cache of the last device address that hosted the service."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from btrepl.core.model import ADDRESS_LENGTH, is_valid_address

CACHE_DIR_NAME = "btrepl"
CACHE_FILE_NAME = "mac-address.txt"
LOGGER = logging.getLogger(__name__)


def default_cache_path() -> Path | None:
    xdg_cache = os.environ.get("XDG_CACHE_HOME")
    if xdg_cache:
        return Path(xdg_cache) / CACHE_DIR_NAME / CACHE_FILE_NAME
    home = os.environ.get("HOME")
    if not home:
        return None
    return Path(home) / ".cache" / CACHE_DIR_NAME / CACHE_FILE_NAME


class AddressCache:
    """Best-effort storage for a single address.

    Neither `load` nor `save` raises; failures are logged and treated as
    "nothing cached".
    """

    def __init__(self, path: Path | str | None = None) -> None:
        self._path = Path(path).expanduser() if path is not None else None

    @property
    def path(self) -> Path | None:
        return self._path if self._path is not None else default_cache_path()

    def load(self) -> str | None:
        path = self.path
        if path is None:
            LOGGER.debug("No cache location available (HOME is not set)")
            return None
        try:
            with path.open("r", encoding="utf-8") as handle:
                line = handle.readline()
        except FileNotFoundError:
            LOGGER.debug("No cached address at %s", path)
            return None
        except (OSError, UnicodeDecodeError) as exc:
            LOGGER.warning("Could not read address cache %s: %s", path, exc)
            return None

        address = line[:-1] if line.endswith("\n") else line
        if len(address) != ADDRESS_LENGTH or not is_valid_address(address):
            LOGGER.warning("Ignoring malformed cached address in %s", path)
            return None
        return address

    def save(self, address: str) -> None:
        path = self.path
        if path is None:
            LOGGER.debug("No cache location available; not caching %s", address)
            return
        try:
            path.parent.mkdir(mode=0o755, parents=True, exist_ok=True)
        except OSError as exc:
            LOGGER.warning("Failed to create cache directory %s: %s", path.parent, exc)
            return
        try:
            path.write_text(f"{address}\n", encoding="utf-8")
        except OSError as exc:
            LOGGER.warning("Failed to write address cache %s: %s", path, exc)
            return
        LOGGER.debug("Cached address %s in %s", address, path)
