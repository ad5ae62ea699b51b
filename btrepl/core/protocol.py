"""Byte-level framing for the evaluation service link.

Both directions use the same block shape: one tag byte that is either a
payload length or a reserved command, followed by that many payload bytes
when it is a length.

Client to service::

    [LEN][LEN bytes] ... [CMD_EVALUATE]     submit one expression
    [CMD_INTERRUPT]                         abort the running evaluation

Service to client::

    [LEN][LEN bytes]                        streamed output
    [CMD_COMPLETE]                          end of the current evaluation

Payload bytes are never interpreted here.
"""

from __future__ import annotations

from collections.abc import Iterator

from btrepl.core.errors import ProtocolError
from btrepl.core.model import Frame

CMD_EVALUATE = 254
CMD_INTERRUPT = 255
CMD_COMPLETE = 255
MAX_BLOCK_LENGTH = CMD_EVALUATE - 1
DEFAULT_RECEIVE_BUFFER = 254

FRAME_OUTPUT = "output"
FRAME_COMPLETE = "complete"
FRAME_EXPRESSION = "expression"
FRAME_INTERRUPT = "interrupt"


def iter_blocks(data: bytes) -> Iterator[bytes]:
    for start in range(0, len(data), MAX_BLOCK_LENGTH):
        yield data[start : start + MAX_BLOCK_LENGTH]


def encode_block(chunk: bytes) -> bytes:
    if len(chunk) > MAX_BLOCK_LENGTH:
        raise ProtocolError(
            f"Data block too large: {len(chunk)} bytes (max {MAX_BLOCK_LENGTH})"
        )
    return bytes([len(chunk)]) + chunk


def encode_expression(data: bytes) -> bytes:
    """Split `data` into length-prefixed blocks terminated by CMD_EVALUATE."""
    encoded = bytearray()
    for chunk in iter_blocks(data):
        encoded += encode_block(chunk)
    encoded.append(CMD_EVALUATE)
    return bytes(encoded)


def encode_interrupt() -> bytes:
    return bytes([CMD_INTERRUPT])


class OutputDecoder:
    """Incremental decoder for service-to-client traffic.

    `feed` accepts whatever `recv` returned and yields every frame completed
    by it. Incomplete blocks are kept until the rest arrives.
    """

    def __init__(self, max_length: int = DEFAULT_RECEIVE_BUFFER) -> None:
        if not 0 < max_length <= DEFAULT_RECEIVE_BUFFER:
            raise ValueError(f"max_length must be in 1..{DEFAULT_RECEIVE_BUFFER}")
        self.max_length = max_length
        self._buffer = bytearray()

    @property
    def pending(self) -> int:
        return len(self._buffer)

    def feed(self, data: bytes) -> list[Frame]:
        self._buffer += data
        frames: list[Frame] = []
        while self._buffer:
            tag = self._buffer[0]
            if tag == CMD_COMPLETE:
                del self._buffer[:1]
                frames.append(Frame(FRAME_COMPLETE))
                continue
            if tag > self.max_length:
                raise ProtocolError(
                    f"Data block too large: {tag} bytes (receive buffer {self.max_length})"
                )
            if len(self._buffer) < tag + 1:
                break
            payload = bytes(self._buffer[1 : tag + 1])
            del self._buffer[: tag + 1]
            frames.append(Frame(FRAME_OUTPUT, payload))
        return frames


class RequestDecoder:
    """Incremental decoder for client-to-service traffic.

    Blocks accumulate until CMD_EVALUATE, which yields one expression frame
    holding everything received since the previous one. CMD_INTERRUPT is
    yielded as soon as it is seen and does not disturb a partial expression.
    """

    def __init__(self) -> None:
        self._buffer = bytearray()
        self._expression = bytearray()

    def feed(self, data: bytes) -> list[Frame]:
        self._buffer += data
        frames: list[Frame] = []
        while self._buffer:
            tag = self._buffer[0]
            if tag == CMD_EVALUATE:
                del self._buffer[:1]
                frames.append(Frame(FRAME_EXPRESSION, bytes(self._expression)))
                self._expression.clear()
                continue
            if tag == CMD_INTERRUPT:
                del self._buffer[:1]
                frames.append(Frame(FRAME_INTERRUPT))
                continue
            if len(self._buffer) < tag + 1:
                break
            self._expression += self._buffer[1 : tag + 1]
            del self._buffer[: tag + 1]
        return frames
