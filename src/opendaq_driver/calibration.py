"""
Calibration registers: decoding and storage.

Each register holds a ``(gain, offset)`` correction for one channel,
mode, or stage.  The registers are read once when the device connects
and never change afterwards, so the store is an immutable sequence.
"""

from __future__ import annotations

import struct
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from .constants import GAIN_DIVISOR, INPUT_OFFSET_DIVISOR, OUTPUT_OFFSET_DIVISOR
from .exceptions import ResponseError

_REGISTER_FORMAT = ">Bhh"  # reserved byte, gain, offset
REGISTER_PAYLOAD_LEN = struct.calcsize(_REGISTER_FORMAT)


@dataclass(frozen=True)
class Calib:
    """One calibration correction.

    Attributes:
        gain: Multiplicative correction, centred at 1.0.
        offset: Additive correction in device-native units.
    """

    gain: float = 1.0
    offset: float = 0.0

    def apply(self, value: float) -> float:
        return value * self.gain + self.offset

    def invert(self, value: float) -> float:
        return (value - self.offset) / self.gain


IDENTITY = Calib()


def decode_register(raw_gain: int, raw_offset: int, output_class: bool) -> Calib:
    """Convert the raw fixed-point fields of a register into a :class:`Calib`.

    Output and hidden-output registers store their offset in steps of
    2**-16, input registers in steps of 2**-5, so an output offset of one
    raw count is 2**11 times smaller than an input offset of one count.
    """
    divisor = OUTPUT_OFFSET_DIVISOR if output_class else INPUT_OFFSET_DIVISOR
    return Calib(1.0 + raw_gain / GAIN_DIVISOR, raw_offset / divisor)


def parse_register_payload(payload: bytes, index: int, output_class: bool) -> Calib:
    """Decode a calibration-read response payload for register *index*."""
    if len(payload) != REGISTER_PAYLOAD_LEN:
        raise ResponseError(
            f"Calibration register {index}: expected {REGISTER_PAYLOAD_LEN} bytes, "
            f"got {len(payload)}"
        )
    _, raw_gain, raw_offset = struct.unpack(_REGISTER_FORMAT, payload)
    return decode_register(raw_gain, raw_offset, output_class)


class CalibrationStore(Sequence):
    """Read-only, index-ordered array of :class:`Calib` entries."""

    def __init__(self, entries: Iterable[Calib]) -> None:
        self._entries = tuple(entries)

    @classmethod
    def zeroed(cls, count: int) -> CalibrationStore:
        """A store where every register decodes to the identity correction."""
        return cls(IDENTITY for _ in range(count))

    def __getitem__(self, index):
        return self._entries[index]

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"CalibrationStore({list(self._entries)!r})"
