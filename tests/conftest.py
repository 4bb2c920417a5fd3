"""Shared pytest fixtures for openDAQ tests."""

from __future__ import annotations

import struct
from unittest.mock import patch

import pytest

from opendaq_driver import OpenDAQ
from opendaq_driver.constants import NAK, Opcode
from opendaq_driver.protocol import checksum


def frame(opcode: int, payload: bytes = b"") -> bytes:
    """Build a wire frame the way the firmware does."""
    body = bytes([opcode, len(payload)]) + payload
    return struct.pack(">H", checksum(body)) + body


class FakeSerial:
    """Lightweight stand-in for ``serial.Serial`` that behaves like a board.

    Implements the subset of the pyserial API used by
    :class:`~opendaq_driver.transport.SerialTransport`:
    ``write``, ``read``, ``flush``, ``reset_input_buffer``, ``close``,
    and ``is_open``.

    Every written frame is decoded and answered the way the firmware would
    answer it.  The answer is queued for the following :meth:`read` calls.

    Knobs for tests:

    * ``calib`` — ``{register: (raw_gain, raw_offset)}``; missing
      registers read as zero.
    * ``adc_value`` — raw code returned by ADC reads.
    * ``fail_next`` — answer the next *n* commands with nothing (timeout).
    * ``dead_registers`` — calibration registers that never answer.
    """

    def __init__(self, model_id: int = 2, version: int = 130, serial_no: int = 123) -> None:
        self.is_open: bool = True
        self.written: list[bytes] = []
        self.flushes = 0
        self.model_id = model_id
        self.version = version
        self.serial_no = serial_no
        self.calib: dict[int, tuple[int, int]] = {}
        self.dead_registers: set[int] = set()
        self.adc_value = 0
        self.port_value = 0
        self.pio_values: dict[int, int] = {}
        self.fail_next = 0
        self._rx = b""

    # -- Helpers for tests --------------------------------------------------

    @property
    def commands(self) -> list[tuple[int, bytes]]:
        """``(opcode, payload)`` for every frame written so far."""
        return [(f[2], f[4:]) for f in self.written]

    def opcodes(self) -> list[int]:
        return [op for op, _ in self.commands]

    # -- Firmware simulation ------------------------------------------------

    def _answer(self, opcode: int, payload: bytes) -> bytes:
        if opcode == Opcode.ID_CONFIG:
            if payload:
                (self.serial_no,) = struct.unpack(">i", payload)
            return frame(opcode, struct.pack(">BBI", self.model_id, self.version, self.serial_no))
        if opcode == Opcode.GET_CALIB:
            reg = payload[0]
            if reg in self.dead_registers:
                return b""
            gain, offset = self.calib.get(reg, (0, 0))
            return frame(opcode, struct.pack(">Bhh", reg, gain, offset))
        if opcode == Opcode.AIN:
            return frame(opcode, struct.pack(">h", self.adc_value))
        if opcode == Opcode.AIN_CFG:
            return frame(opcode, struct.pack(">h", self.adc_value) + payload)
        if opcode == Opcode.PIO:
            if len(payload) == 2:
                self.pio_values[payload[0]] = payload[1]
                return frame(opcode, payload)
            return frame(opcode, bytes([payload[0], self.pio_values.get(payload[0], 0)]))
        if opcode == Opcode.PORT:
            if payload:
                self.port_value = payload[0]
            return frame(opcode, bytes([self.port_value]))
        if opcode in (Opcode.PIO_DIR, Opcode.PORT_DIR, Opcode.SET_DAC, Opcode.LED_W):
            return frame(opcode, payload)
        return frame(NAK)

    # -- pyserial interface -------------------------------------------------

    def write(self, data: bytes) -> int:
        self.written.append(data)
        if self.fail_next:
            self.fail_next -= 1
            self._rx = b""
        else:
            self._rx = self._answer(data[2], data[4:])
        return len(data)

    def read(self, size: int = 1) -> bytes:
        data = self._rx[:size]
        self._rx = self._rx[size:]
        return data

    def flush(self) -> None:
        pass

    def reset_input_buffer(self) -> None:
        self.flushes += 1
        self._rx = b""

    def close(self) -> None:
        self.is_open = False


def connect_daq(fake: FakeSerial) -> OpenDAQ:
    """Return an ``OpenDAQ`` connected to *fake* with a clean write log."""
    with patch("opendaq_driver.transport.serial.Serial", return_value=fake):
        daq = OpenDAQ("/dev/fake", settle_time=0)
        daq.connect()
    fake.written.clear()
    return daq


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def fake_serial() -> FakeSerial:
    """Return a fresh ``FakeSerial`` posing as an openDAQ [S]."""
    return FakeSerial()


@pytest.fixture()
def daq(fake_serial: FakeSerial) -> OpenDAQ:
    """Return a fully connected ``OpenDAQ`` wired to a fake [S] board."""
    return connect_daq(fake_serial)
