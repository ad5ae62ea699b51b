"""Interactive session: one input thread, one network thread, Ctrl-C relay.

The input thread reads lines and submits them one at a time. The network
thread waits on the socket, the interrupt pipe and the shutdown pipe at
once, so an interrupt raised while it is blocked wakes it immediately. The
SIGINT handler does nothing but write a byte to the interrupt pipe.
"""

from __future__ import annotations

import logging
import os
import selectors
import signal
import sys
import threading
from typing import Any, BinaryIO

from btrepl.core.errors import BtreplError, ProtocolError, TransportError
from btrepl.core.model import Frame
from btrepl.core.protocol import (
    DEFAULT_RECEIVE_BUFFER,
    FRAME_COMPLETE,
    FRAME_OUTPUT,
    OutputDecoder,
    encode_expression,
    encode_interrupt,
)
from btrepl.transports.base import Connection

QUIT_COMMANDS = frozenset({b"quit", b"exit", b":q"})
RECV_CHUNK_SIZE = 1024
READ_CHUNK_SIZE = 4096
LOGGER = logging.getLogger(__name__)

# epoll refuses regular files, which stdin may be when redirected.
_Selector = getattr(selectors, "PollSelector", selectors.SelectSelector)

_SOCKET = "socket"
_INPUT = "input"
_INTERRUPT = "interrupt"
_SHUTDOWN = "shutdown"


def _make_pipe() -> tuple[int, int]:
    read_fd, write_fd = os.pipe()
    os.set_blocking(read_fd, False)
    os.set_blocking(write_fd, False)
    return read_fd, write_fd


def _drain(fd: int) -> int:
    drained = 0
    while True:
        try:
            data = os.read(fd, 64)
        except BlockingIOError:
            return drained
        if not data:
            return drained
        drained += len(data)


class PendingSlot:
    """Holds at most one submitted expression until its output completes."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._request: bytes | None = None
        self._closed = False

    @property
    def pending(self) -> bool:
        with self._cond:
            return self._request is not None

    def submit(self, expression: bytes) -> None:
        with self._cond:
            if self._closed:
                raise BtreplError("Session is closed")
            if self._request is not None:
                raise BtreplError("An evaluation is already in progress")
            self._request = expression

    def complete(self) -> bytes | None:
        with self._cond:
            request, self._request = self._request, None
            self._cond.notify_all()
            return request

    def wait_complete(self) -> bool:
        """Block until the pending request completes.

        Returns False if the slot was closed before that happened.
        """
        with self._cond:
            while self._request is not None and not self._closed:
                self._cond.wait()
            return self._request is None

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()


class LineReader:
    """Line reader over a raw descriptor that a second descriptor can wake."""

    def __init__(self, fd: int, wake_fd: int) -> None:
        self._fd = fd
        self._wake_fd = wake_fd
        self._buffer = bytearray()
        self._eof = False
        self._selector = _Selector()
        self._selector.register(fd, selectors.EVENT_READ, _INPUT)
        self._selector.register(wake_fd, selectors.EVENT_READ, _SHUTDOWN)

    def readline(self) -> bytes | None:
        """Next line including its newline, or None on end of input or wake-up."""
        while True:
            newline = self._buffer.find(b"\n")
            if newline >= 0:
                line = bytes(self._buffer[: newline + 1])
                del self._buffer[: newline + 1]
                return line
            if self._eof:
                if not self._buffer:
                    return None
                line = bytes(self._buffer)
                self._buffer.clear()
                return line

            ready = {key.data for key, _ in self._selector.select()}
            if _SHUTDOWN in ready:
                return None
            data = os.read(self._fd, READ_CHUNK_SIZE)
            if data:
                self._buffer += data
            else:
                self._eof = True

    def close(self) -> None:
        self._selector.close()


class ReplCoordinator:
    """Runs one REPL session over an open connection until either side ends it."""

    def __init__(
        self,
        connection: Connection,
        *,
        input_fd: int | None = None,
        output: BinaryIO | None = None,
        interactive: bool | None = None,
        prompt: str = "scheme> ",
        receive_buffer: int = DEFAULT_RECEIVE_BUFFER,
    ) -> None:
        self.connection = connection
        self.input_fd = sys.stdin.fileno() if input_fd is None else input_fd
        self.output = sys.stdout.buffer if output is None else output
        self.interactive = os.isatty(self.input_fd) if interactive is None else interactive
        self.prompt = prompt.encode("utf-8")
        self.receive_buffer = receive_buffer

        self.pending = PendingSlot()
        self.failure: BtreplError | None = None
        self._interrupt_r, self._interrupt_w = _make_pipe()
        self._shutdown_r, self._shutdown_w = _make_pipe()
        self._output_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._stopping = False
        self._threads: list[threading.Thread] = []

    def request_interrupt(self) -> None:
        """Ask the network thread to send an interrupt. Safe in a signal handler."""
        try:
            os.write(self._interrupt_w, b"\x00")
        except BlockingIOError:
            # Pipe full: an interrupt is already waiting to be sent.
            return

    def _handle_sigint(self, signum: int, frame: Any) -> None:
        self.request_interrupt()

    def install_signal_handler(self) -> Any:
        """Route SIGINT to `request_interrupt`; returns the previous handler."""
        return signal.signal(signal.SIGINT, self._handle_sigint)

    def start(self) -> None:
        if self.interactive:
            self._write(self.prompt)
        self._threads = [
            threading.Thread(target=self._network_loop, name="btrepl-network"),
            threading.Thread(target=self._input_loop, name="btrepl-input"),
        ]
        for thread in self._threads:
            thread.start()

    def join(self) -> None:
        for thread in self._threads:
            thread.join()

    def run(self, *, handle_signals: bool = True) -> int:
        """Run the session to completion; 0 on a clean end, 1 after an error."""
        previous_handler = None
        install = handle_signals and threading.current_thread() is threading.main_thread()
        if install:
            previous_handler = self.install_signal_handler()
        try:
            self.start()
            self.join()
        finally:
            if install:
                signal.signal(signal.SIGINT, previous_handler)
            self.close()
        return 1 if self.failure is not None else 0

    def stop(self) -> None:
        """Wake both threads and shut the connection down. Idempotent."""
        with self._state_lock:
            if self._stopping:
                return
            self._stopping = True
        os.write(self._shutdown_w, b"\x00")
        self.pending.close()
        self.connection.shutdown()

    def close(self) -> None:
        for fd in (self._interrupt_r, self._interrupt_w, self._shutdown_r, self._shutdown_w):
            os.close(fd)

    def _write(self, data: bytes) -> None:
        with self._output_lock:
            self.output.write(data)
            self.output.flush()

    def _fail(self, exc: BtreplError) -> None:
        if self.failure is None:
            self.failure = exc
        LOGGER.error("%s", exc)

    def _input_loop(self) -> None:
        reader = LineReader(self.input_fd, self._shutdown_r)
        try:
            while True:
                line = reader.readline()
                if line is None:
                    break
                expression = line.rstrip(b"\r\n")
                if not expression.strip():
                    if self.interactive:
                        self._write(self.prompt)
                    continue
                if expression.strip() in QUIT_COMMANDS:
                    break

                self.pending.submit(expression)
                try:
                    self.connection.send(encode_expression(expression))
                except TransportError as exc:
                    self.pending.complete()
                    self._fail(exc)
                    break
                if not self.pending.wait_complete():
                    break
                if not self.interactive:
                    break
        except BtreplError as exc:
            LOGGER.debug("Input loop stopped: %s", exc)
        finally:
            reader.close()
            self.stop()

    def _network_loop(self) -> None:
        decoder = OutputDecoder(self.receive_buffer)
        selector = _Selector()
        selector.register(self.connection, selectors.EVENT_READ, _SOCKET)
        selector.register(self._interrupt_r, selectors.EVENT_READ, _INTERRUPT)
        selector.register(self._shutdown_r, selectors.EVENT_READ, _SHUTDOWN)
        try:
            while True:
                ready = {key.data for key, _ in selector.select()}
                if _SHUTDOWN in ready:
                    return
                if _INTERRUPT in ready and _drain(self._interrupt_r):
                    LOGGER.debug("Sending interrupt")
                    self.connection.send(encode_interrupt())
                    self._write(b"\n")
                if _SOCKET in ready:
                    data = self.connection.recv(RECV_CHUNK_SIZE)
                    if not data:
                        LOGGER.debug("Connection closed by peer")
                        return
                    for frame in decoder.feed(data):
                        self._handle_frame(frame)
        except (ProtocolError, TransportError) as exc:
            self._fail(exc)
        finally:
            selector.close()
            self.stop()

    def _handle_frame(self, frame: Frame) -> None:
        if frame.kind == FRAME_OUTPUT:
            self._write(frame.payload)
        elif frame.kind == FRAME_COMPLETE:
            self.pending.complete()
            if self.interactive:
                self._write(self.prompt)
