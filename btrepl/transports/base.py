"""Transport interfaces."""

from __future__ import annotations

from typing import Protocol


class Connection(Protocol):
    def send(self, data: bytes) -> None:
        """Write all of `data`, serialized against other writers."""

    def recv(self, size: int) -> bytes:
        """Read up to `size` bytes; an empty result means end of stream."""

    def fileno(self) -> int:
        """Descriptor to wait on for readability."""

    def shutdown(self) -> None:
        """Stop traffic in both directions, waking any blocked reader."""

    def close(self) -> None:
        """Release the underlying socket."""
