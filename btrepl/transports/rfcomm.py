"""RFCOMM transport implementation using Python sockets."""

from __future__ import annotations

import errno
import logging
import socket
import threading
import time
from collections.abc import Callable

from btrepl.core.errors import TransportConnectError, TransportSendError

DEFAULT_CONNECT_ATTEMPTS = 4
DEFAULT_CONNECT_BACKOFF_S = 4.0
LOGGER = logging.getLogger(__name__)

SocketFactory = Callable[[], socket.socket]


def _rfcomm_socket() -> socket.socket:
    try:
        af_bluetooth = socket.AF_BLUETOOTH
        btproto_rfcomm = socket.BTPROTO_RFCOMM
    except AttributeError as exc:
        raise TransportConnectError(
            "This Python build does not expose Bluetooth socket APIs (AF_BLUETOOTH/BTPROTO_RFCOMM)."
        ) from exc

    try:
        bt_socket = socket.socket(af_bluetooth, socket.SOCK_STREAM, btproto_rfcomm)
    except OSError as exc:
        raise TransportConnectError(f"Could not create RFCOMM socket: {exc}") from exc
    try:
        bt_socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    except OSError as exc:
        bt_socket.close()
        raise TransportConnectError(f"Failed to set SO_REUSEADDR: {exc}") from exc
    return bt_socket


class RFCOMMSession:
    """A connected RFCOMM stream.

    Reads belong to a single reader thread. Writes may come from several
    threads and go through one lock so frames never interleave on the wire.
    """

    def __init__(self, bt_socket: socket.socket, address: str, channel: int) -> None:
        self._socket = bt_socket
        self.address = address
        self.channel = channel
        self._send_lock = threading.Lock()
        self._shut_down = False

    @classmethod
    def connect(
        cls,
        address: str,
        channel: int,
        *,
        attempts: int = DEFAULT_CONNECT_ATTEMPTS,
        backoff_s: float = DEFAULT_CONNECT_BACKOFF_S,
        socket_factory: SocketFactory = _rfcomm_socket,
        sleep: Callable[[float], None] = time.sleep,
    ) -> RFCOMMSession:
        """Connect to `address` on `channel`.

        EBUSY (BlueZ still tearing down a previous link) is retried with a
        fresh socket after `backoff_s`, for at most `attempts` tries in
        total. Any other error fails immediately. No timeout is set on the
        resulting socket.
        """
        if attempts < 1:
            raise ValueError("attempts must be at least 1")

        attempt = 0
        while True:
            attempt += 1
            bt_socket = socket_factory()
            try:
                bt_socket.connect((address, channel))
            except OSError as exc:
                bt_socket.close()
                if exc.errno != errno.EBUSY:
                    raise TransportConnectError(
                        f"RFCOMM connect failed for {address} on channel {channel}: {exc}"
                    ) from exc
                if attempt == attempts:
                    raise TransportConnectError(
                        f"RFCOMM connect to {address} on channel {channel} still busy "
                        f"after {attempts} attempts"
                    ) from exc
                LOGGER.info(
                    "Connection busy. Waiting for BlueZ cleanup (attempt %d/%d).",
                    attempt,
                    attempts,
                )
                sleep(backoff_s)
                continue
            return cls(bt_socket, address, channel)

    def fileno(self) -> int:
        return self._socket.fileno()

    def send(self, data: bytes) -> None:
        with self._send_lock:
            try:
                self._socket.sendall(data)
            except OSError as exc:
                raise TransportSendError(f"RFCOMM send failed: {exc}") from exc

    def recv(self, size: int) -> bytes:
        while True:
            try:
                return self._socket.recv(size)
            except InterruptedError:
                continue
            except OSError as exc:
                raise TransportSendError(f"RFCOMM receive failed: {exc}") from exc

    def shutdown(self) -> None:
        if self._shut_down:
            return
        self._shut_down = True
        try:
            self._socket.shutdown(socket.SHUT_RDWR)
        except OSError as exc:
            if exc.errno not in (errno.ENOTCONN, errno.EBADF):
                LOGGER.debug("RFCOMM shutdown failed: %s", exc)

    def close(self) -> None:
        self.shutdown()
        self._socket.close()

    def __enter__(self) -> RFCOMMSession:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
