"""
openDAQ binary protocol: command framing, integrity checks, and dispatch.

This module sits between the transport (raw serial I/O) and the device
facade (user-facing API).  It knows how to:

* turn a :class:`Command` into a wire frame and back,
* verify the checksum, opcode echo, and length of a response,
* serialise access to the port and retry failed exchanges.

It does **not** own the serial port — that belongs to
:class:`~opendaq_driver.transport.SerialTransport`.

Frame layout (both directions)::

    +----------+----------+--------+-------------+----------------+
    | cksum_hi | cksum_lo | opcode | payload_len | payload ...    |
    +----------+----------+--------+-------------+----------------+

The checksum is the 16-bit sum of every byte after the checksum field.
"""

from __future__ import annotations

import abc
import logging
import struct
import threading
from dataclasses import dataclass
from typing import Protocol

from .constants import MAX_ATTEMPTS, NAK
from .exceptions import CommandError, FrameError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Data
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Command:
    """A single request: opcode plus payload bytes."""

    opcode: int
    payload: bytes = b""

    def __post_init__(self) -> None:
        if not (0 <= self.opcode <= 0xFF):
            raise ValueError(f"Opcode must fit in one byte, got {self.opcode}")
        # Accept lists of ints for convenience, but store immutable bytes
        object.__setattr__(self, "payload", bytes(self.payload))


class ByteTransport(Protocol):
    """What the dispatcher needs from a transport."""

    def write(self, data: bytes) -> None: ...

    def read(self, size: int) -> bytes: ...

    def flush_input(self) -> None: ...


# ---------------------------------------------------------------------------
# Codecs
# ---------------------------------------------------------------------------


class FrameCodec(abc.ABC):
    """Encodes requests and decodes fixed-length responses."""

    @abc.abstractmethod
    def encode(self, command: Command) -> bytes:
        """Return the wire frame for *command*."""

    @abc.abstractmethod
    def frame_length(self, payload_len: int) -> int:
        """Return the total response frame size for a payload of *payload_len*."""

    @abc.abstractmethod
    def decode(self, command: Command, frame: bytes, payload_len: int) -> bytes:
        """Validate *frame* as the response to *command* and return its payload.

        Raises:
            FrameError: On short frames or failed integrity checks.
        """


def checksum(data: bytes) -> int:
    """16-bit byte sum used by the openDAQ firmware."""
    return sum(data) & 0xFFFF


class OpenDAQCodec(FrameCodec):
    """The checksum-prefixed framing spoken by openDAQ boards."""

    HEADER_LEN = 4

    def encode(self, command: Command) -> bytes:
        if len(command.payload) > 0xFF:
            raise ValueError(f"Payload too long for one frame: {len(command.payload)} bytes")
        body = bytes([command.opcode, len(command.payload)]) + command.payload
        return struct.pack(">H", checksum(body)) + body

    def frame_length(self, payload_len: int) -> int:
        return self.HEADER_LEN + payload_len

    def decode(self, command: Command, frame: bytes, payload_len: int) -> bytes:
        expected = self.frame_length(payload_len)
        if len(frame) < expected:
            raise FrameError(
                f"Short response to opcode {command.opcode}: "
                f"got {len(frame)} of {expected} bytes"
            )

        (received_sum,) = struct.unpack(">H", frame[:2])
        computed_sum = checksum(frame[2:expected])
        if received_sum != computed_sum:
            raise FrameError(
                f"Checksum mismatch for opcode {command.opcode}: "
                f"received {received_sum:#06x}, computed {computed_sum:#06x}"
            )

        opcode, length = frame[2], frame[3]
        if opcode == NAK:
            raise FrameError(f"Device rejected opcode {command.opcode} (NAK)")
        if opcode != command.opcode:
            raise FrameError(f"Opcode echo mismatch: sent {command.opcode}, got {opcode}")
        if length != payload_len:
            raise FrameError(
                f"Opcode {command.opcode} declared {length} payload bytes, expected {payload_len}"
            )
        return frame[self.HEADER_LEN : expected]


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------


class CommandDispatcher:
    """Sends commands one at a time, retrying on any failure.

    Every exception raised while writing, reading, or decoding an attempt
    counts as a failed attempt; the error class does not matter.

    A single re-entrant lock is held for the whole send-and-wait cycle,
    including every retry, so concurrent callers never interleave frames.
    The device facade acquires the same :attr:`lock` around operations
    that also touch its input configuration.

    Args:
        transport: An open byte transport.
        codec: Frame codec (defaults to :class:`OpenDAQCodec`).
        max_attempts: Total attempts per command (1 initial + retries).
    """

    def __init__(
        self,
        transport: ByteTransport,
        codec: FrameCodec | None = None,
        max_attempts: int = MAX_ATTEMPTS,
    ) -> None:
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
        self._tx = transport
        self.codec = codec if codec is not None else OpenDAQCodec()
        self.max_attempts = max_attempts
        self.lock = threading.RLock()

    def send(self, command: Command, response_len: int) -> bytes:
        """Send *command* and return the decoded response payload.

        Raises:
            CommandError: If every attempt failed.  The last underlying
                error is attached.
        """
        frame = self.codec.encode(command)
        frame_len = self.codec.frame_length(response_len)
        last_error: Exception | None = None

        with self.lock:
            for attempt in range(1, self.max_attempts + 1):
                try:
                    logger.debug("TX: %s", frame.hex(" "))
                    self._tx.write(frame)
                    raw = self._tx.read(frame_len)
                    logger.debug("RX: %s", raw.hex(" "))
                    return self.codec.decode(command, raw, response_len)
                except Exception as exc:
                    last_error = exc
                    logger.warning(
                        "Attempt %d/%d for opcode %d failed: %s",
                        attempt,
                        self.max_attempts,
                        command.opcode,
                        exc,
                    )
                    self._flush_after_error()

        logger.error("Giving up on opcode %d after %d attempts", command.opcode, self.max_attempts)
        raise CommandError(
            f"Opcode {command.opcode} failed after {self.max_attempts} attempts: {last_error}",
            last_error,
        ) from last_error

    def _flush_after_error(self) -> None:
        try:
            self._tx.flush_input()
        except Exception as exc:
            logger.warning("Input flush failed: %s", exc)
