"""
Serial transport layer for the openDAQ driver.

Handles the physical serial connection and raw byte I/O.  Knows nothing
about frames or opcodes — that's :mod:`protocol`'s job.

Typical usage (via :class:`~opendaq_driver.device.OpenDAQ`)::

    transport = SerialTransport("/dev/ttyUSB0")
    transport.open()
    transport.write(frame)
    data = transport.read(10)
    transport.close()
"""

from __future__ import annotations

import logging
import time

import serial

from .constants import DEFAULT_BAUD, DEFAULT_PORT, DEFAULT_TIMEOUT, SETTLE_TIME
from .exceptions import ConnectionError, TransportError

logger = logging.getLogger(__name__)


class SerialTransport:
    """Manages a serial connection to an openDAQ board.

    Args:
        port: Serial port path (e.g. ``/dev/ttyUSB0``).
        baudrate: Baud rate (default 115200).
        timeout: Per-read timeout in seconds.
        settle_time: Seconds to wait after opening before the board
            accepts its first command.
    """

    def __init__(
        self,
        port: str = DEFAULT_PORT,
        baudrate: int = DEFAULT_BAUD,
        timeout: float = DEFAULT_TIMEOUT,
        settle_time: float = SETTLE_TIME,
    ) -> None:
        self.port = port
        self.baudrate = baudrate
        self.timeout = timeout
        self.settle_time = settle_time
        self._ser: serial.Serial | None = None

    # -- Lifecycle ----------------------------------------------------------

    def open(self) -> None:
        """Open the serial port and wait for the board to settle.

        An already open port is closed first, so calling this twice
        leaves exactly one handle open.

        Raises:
            ConnectionError: If the port cannot be opened.
        """
        if self.is_open:
            self.close()
        logger.info("Opening serial port %s at %d baud", self.port, self.baudrate)
        try:
            self._ser = serial.Serial(
                port=self.port,
                baudrate=self.baudrate,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                timeout=self.timeout,
            )
        except serial.SerialException as exc:
            raise ConnectionError(f"Cannot open {self.port}: {exc}") from exc

        if self.settle_time > 0:
            time.sleep(self.settle_time)

    def close(self) -> None:
        """Close the serial port (safe to call multiple times)."""
        if self._ser and self._ser.is_open:
            self._ser.close()
            logger.info("Serial port %s closed", self.port)

    @property
    def is_open(self) -> bool:
        """Return ``True`` if the serial port is currently open."""
        return self._ser is not None and self._ser.is_open

    # -- I/O ----------------------------------------------------------------

    def write(self, data: bytes) -> None:
        """Write *data* and push it out of the OS buffer.

        Raises:
            ConnectionError: If the port is not open.
            TransportError: If the write fails.
        """
        ser = self._require_open()
        try:
            ser.write(data)
            ser.flush()
        except serial.SerialException as exc:
            raise TransportError(f"Write to {self.port} failed: {exc}") from exc

    def read(self, size: int) -> bytes:
        """Read up to *size* bytes, blocking at most the port timeout.

        Fewer bytes than requested means the timeout expired; it is up to
        the caller to decide whether that is an error.
        """
        ser = self._require_open()
        try:
            return ser.read(size)
        except serial.SerialException as exc:
            raise TransportError(f"Read from {self.port} failed: {exc}") from exc

    def flush_input(self) -> None:
        """Discard any stale bytes waiting in the input buffer."""
        ser = self._require_open()
        try:
            ser.reset_input_buffer()
        except serial.SerialException as exc:
            raise TransportError(f"Flush of {self.port} failed: {exc}") from exc

    # -- Internal -----------------------------------------------------------

    def _require_open(self) -> serial.Serial:
        """Return the open serial port or raise."""
        if not self.is_open:
            raise ConnectionError("Serial port not open — call open() first.")
        assert self._ser is not None  # for type-checker
        return self._ser
