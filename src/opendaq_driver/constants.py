"""Shared runtime constants for the openDAQ driver.

This is the canonical source of truth for opcodes, protocol limits and
connection defaults.  Other modules should import from here rather than
defining their own copies.
"""

from enum import IntEnum

# ---------------------------------------------------------------------------
# Opcodes
# ---------------------------------------------------------------------------


class Opcode(IntEnum):
    """Command numbers understood by the instrument firmware."""

    AIN = 1
    AIN_CFG = 2
    PIO = 3
    PIO_DIR = 5
    PORT = 7
    PORT_DIR = 9
    SET_DAC = 13
    LED_W = 18
    GET_CALIB = 36
    ID_CONFIG = 39


NAK = 160  # opcode echoed back when the firmware rejects a command


class Color(IntEnum):
    """LED colours."""

    OFF = 0
    GREEN = 1
    RED = 2
    YELLOW = 3


# ---------------------------------------------------------------------------
# Protocol / validation limits
# ---------------------------------------------------------------------------

MAX_DEVICE_ID = 1000
MAX_SAMPLES = 255
DAC_FIELD_MIN = -(1 << 15)
DAC_FIELD_MAX = (1 << 15) - 1

# Fixed-point scale of the offset field, per register class
OUTPUT_OFFSET_DIVISOR = 1 << 16
INPUT_OFFSET_DIVISOR = 1 << 5
GAIN_DIVISOR = 1 << 16

# ---------------------------------------------------------------------------
# Connection / runtime defaults
# ---------------------------------------------------------------------------

DEFAULT_PORT = "/dev/ttyUSB0"
DEFAULT_BAUD = 115200
DEFAULT_TIMEOUT = 0.1
SETTLE_TIME = 1.5  # seconds the board needs after the port opens
MAX_ATTEMPTS = 8
