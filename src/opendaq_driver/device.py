"""
openDAQ device interface

Clean Python API for openDAQ data-acquisition boards over a serial link.
Channel-oriented operations work in volts; raw ADC/DAC codes are also
available.

Protocol details:
    - Baud: 115200, 8N1, 1.5 s settle time after opening
    - Binary frames: 16-bit checksum, opcode, length, payload
    - Multi-byte fields are big-endian
"""

from __future__ import annotations

import functools
import logging
import struct
from dataclasses import dataclass

from .calibration import (
    IDENTITY,
    REGISTER_PAYLOAD_LEN,
    Calib,
    CalibrationStore,
    parse_register_payload,
)
from .constants import (
    DAC_FIELD_MAX,
    DAC_FIELD_MIN,
    DEFAULT_BAUD,
    DEFAULT_PORT,
    DEFAULT_TIMEOUT,
    MAX_ATTEMPTS,
    MAX_DEVICE_ID,
    MAX_SAMPLES,
    SETTLE_TIME,
    Color,
    Opcode,
)
from .exceptions import (
    ConnectionError,
    InvalidColorError,
    InvalidIDError,
    InvalidLedError,
    InvalidOutputError,
    InvalidPIOError,
    InvalidPIOValueError,
    ResponseError,
    ValidationError,
)
from .models import HwFeatures, HwModel, ModelRegistry, build_registry
from .protocol import Command, CommandDispatcher, FrameCodec
from .transport import SerialTransport

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Data
# ---------------------------------------------------------------------------


def _unpack(fmt: str, payload: bytes, what: str) -> tuple:
    """``struct.unpack`` that reports a shape mismatch as :class:`ResponseError`."""
    size = struct.calcsize(fmt)
    if len(payload) != size:
        raise ResponseError(f"{what}: expected {size} payload bytes, got {len(payload)}")
    return struct.unpack(fmt, payload)


@dataclass(frozen=True)
class DeviceInfo:
    """Identity returned by the ``ID_CONFIG`` command."""

    model: int
    version: int
    serial: str

    @classmethod
    def from_payload(cls, payload: bytes) -> DeviceInfo:
        model, version, serial_no = _unpack(">BBI", payload, "Device info")
        return cls(model, version, f"{serial_no:04d}")


@dataclass(frozen=True)
class InputConfig:
    """The analog input selection that governs how ADC reads are converted."""

    pos: int = 1
    neg: int = 0
    gain_id: int = 0

    @property
    def diff_mode(self) -> bool:
        return self.neg != 0


def _synchronized(method):
    """Run *method* while holding the dispatcher lock."""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._require_dispatcher().lock:
            return method(self, *args, **kwargs)

    return wrapper


# ---------------------------------------------------------------------------
# Device
# ---------------------------------------------------------------------------


class OpenDAQ:
    """Interface for an openDAQ board.

    Use as a context manager for automatic connection handling::

        with OpenDAQ('/dev/ttyUSB0') as daq:
            daq.configure_adc(1, 0, gain_id=1)
            print(daq.read_analog())

    Connecting opens the port, identifies the board, and loads every
    calibration register.  If any of that fails the port is closed again
    and the device stays unusable.

    Input configuration and command dispatch share one lock, so a
    ``configure_adc`` from one thread cannot slip between another
    thread's ADC read and its conversion.

    Args:
        port: Serial port path.
        baudrate: Baud rate.
        timeout: Per-read timeout in seconds.
        settle_time: Delay after opening the port.
        max_attempts: Total attempts per command before giving up.
        registry: Known hardware models (default: :func:`build_registry`).
        transport: Pre-built byte transport; overrides the serial settings.
        codec: Frame codec (default: the openDAQ checksum framing).
    """

    def __init__(
        self,
        port: str = DEFAULT_PORT,
        *,
        baudrate: int = DEFAULT_BAUD,
        timeout: float = DEFAULT_TIMEOUT,
        settle_time: float = SETTLE_TIME,
        max_attempts: int = MAX_ATTEMPTS,
        registry: ModelRegistry | None = None,
        transport: SerialTransport | None = None,
        codec: FrameCodec | None = None,
    ) -> None:
        self.port = port
        self.max_attempts = max_attempts
        self._registry = registry if registry is not None else build_registry()
        self._tx = transport or SerialTransport(port, baudrate, timeout, settle_time)
        self._codec = codec
        self._dispatcher: CommandDispatcher | None = None
        self._model: HwModel | None = None
        self._calib: CalibrationStore | None = None
        self._input = InputConfig()

    # -- Context manager ----------------------------------------------------

    def __enter__(self) -> OpenDAQ:
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # -- Connection ---------------------------------------------------------

    def connect(self) -> None:
        """Open the port, identify the board, and load its calibration.

        Raises:
            ConnectionError: If the port cannot be opened.
            UnknownModelError: If the board reports an unregistered model.
            CommandError: If identification or any register read fails.
        """
        self._dispatcher = None
        self._tx.open()
        dispatcher =CommandDispatcher(self._tx, self._codec, self.max_attempts)
        try:
            info = self._query_info(dispatcher)
            model = self._registry.lookup(info.model)
            logger.info(
                "Detected %s (model %d, firmware %d, serial %s)",
                model.features.name,
                info.model,
                info.version,
                info.serial,
            )
            calib = self._read_calibration(dispatcher, model.features)
        except Exception:
            self._tx.close()
            raise

        self._model = model
        self._calib = calib
        self._input = InputConfig()
        self._dispatcher = dispatcher

    def close(self) -> None:
        """Close the serial connection (safe to call multiple times)."""
        self._dispatcher = None
        self._tx.close()

    @property
    def is_connected(self) -> bool:
        """Return True once :meth:`connect` has fully succeeded."""
        return self._dispatcher is not None and self._tx.is_open

    # -- State --------------------------------------------------------------

    @property
    def model(self) -> HwModel:
        self._require_dispatcher()
        assert self._model is not None
        return self._model

    @property
    def features(self) -> HwFeatures:
        return self.model.features

    @property
    def calibration(self) -> CalibrationStore:
        self._require_dispatcher()
        assert self._calib is not None
        return self._calib

    @property
    def input_config(self) -> InputConfig:
        """The input selection used to convert the next ADC read."""
        return self._input

    # -- Low-level I/O ------------------------------------------------------

    def _require_dispatcher(self) -> CommandDispatcher:
        if self._dispatcher is None:
            raise ConnectionError("Device not connected — call connect() first.")
        return self._dispatcher

    def _send(self, opcode: Opcode, payload: bytes = b"", response_len: int = 0) -> bytes:
        return self._require_dispatcher().send(Command(opcode, payload), response_len)

    @staticmethod
    def _query_info(dispatcher: CommandDispatcher) -> DeviceInfo:
        payload = dispatcher.send(Command(Opcode.ID_CONFIG), 6)
        return DeviceInfo.from_payload(payload)

    @staticmethod
    def _read_calibration(
        dispatcher: CommandDispatcher, features: HwFeatures
    ) -> CalibrationStore:
        entries = []
        for idx in range(features.n_calib_regs):
            command = Command(Opcode.GET_CALIB, bytes([idx]))
            payload = dispatcher.send(command, REGISTER_PAYLOAD_LEN)
            output_class = idx < features.n_dac_channels
            entries.append(parse_register_payload(payload, idx, output_class))
        logger.debug("Loaded %d calibration registers", len(entries))
        return CalibrationStore(entries)

    # -- Information --------------------------------------------------------

    def get_info(self) -> DeviceInfo:
        """Query model number, firmware version, and serial number."""
        return self._query_info(self._require_dispatcher())

    def set_device_id(self, device_id: int) -> DeviceInfo:
        """Store a new serial number (0-1000) and return the updated identity."""
        if not (0 <= device_id <= MAX_DEVICE_ID):
            raise InvalidIDError(f"Device id must be 0-{MAX_DEVICE_ID}, got {device_id}")
        payload = self._send(Opcode.ID_CONFIG, struct.pack(">i", device_id), 6)
        return DeviceInfo.from_payload(payload)

    def get_calib(
        self,
        is_output: bool,
        diff_mode: bool,
        second_stage: bool,
        n: int,
        gain_id: int = 0,
    ) -> Calib:
        """Return the calibration entry for a channel request."""
        idx = self.model.calib_index(is_output, diff_mode, second_stage, n, gain_id)
        return self.calibration[idx]

    # -- LEDs ---------------------------------------------------------------

    def set_led(self, n: int, color: int) -> None:
        """Set LED *n* to *color* (see :class:`~opendaq_driver.constants.Color`)."""
        n_leds = self.features.n_leds
        if not (1 <= n <= n_leds):
            raise InvalidLedError(f"LED must be 1-{n_leds}, got {n}")
        try:
            color = Color(color)
        except ValueError as err:
            raise InvalidColorError(
                f"Invalid LED color {color}; expected one of {list(Color)}"
            ) from err
        self._send(Opcode.LED_W, bytes([color, n]), 2)

    # -- Analog inputs ------------------------------------------------------

    @_synchronized
    def configure_adc(
        self,
        pos_input: int,
        neg_input: int = 0,
        gain_id: int = 0,
        n_samples: int = 1,
    ) -> None:
        """Select the ADC inputs, amplifier gain, and samples per read.

        ``neg_input == 0`` selects single-ended mode.  The new selection is
        recorded before the command is sent and governs the conversion of
        every following :meth:`read_analog`.
        """
        model = self.model
        model.validate_input_pair(pos_input, neg_input)
        model.features.adc.gain(gain_id)
        if not (0 <= n_samples <= MAX_SAMPLES):
            raise ValidationError(f"Samples per read must be 0-{MAX_SAMPLES}, got {n_samples}")

        self._input = InputConfig(pos_input, neg_input, gain_id)
        self._send(Opcode.AIN_CFG, bytes([pos_input, neg_input, gain_id, n_samples]), 6)

    @_synchronized
    def read_adc(self) -> int:
        """Read a raw, signed 16-bit ADC code."""
        payload = self._send(Opcode.AIN, response_len=2)
        (value,) = _unpack(">h", payload, "ADC read")
        return value

    @_synchronized
    def read_analog(self) -> float:
        """Read the configured input in volts."""
        raw = self.read_adc()
        return self.adc_to_volts(raw)

    def adc_to_volts(self, raw: int) -> float:
        """Convert *raw* using the current input configuration."""
        cfg = self._input
        model = self.model
        cal1 = self.get_calib(False, cfg.diff_mode, False, cfg.pos, cfg.gain_id)
        cal2 = IDENTITY
        if model.has_second_stage:
            cal2 = self.get_calib(False, cfg.diff_mode, True, cfg.pos, cfg.gain_id)
        return model.features.adc.to_volts(raw, cfg.gain_id, cal1, cal2)

    # -- Analog outputs -----------------------------------------------------

    def set_dac(self, n: int, value: int) -> None:
        """Write raw code *value* to output *n* (hidden outputs included)."""
        n_channels = self.features.n_dac_channels
        if not (1 <= n <= n_channels):
            raise InvalidOutputError(f"Output must be 1-{n_channels}, got {n}")
        if not (DAC_FIELD_MIN <= value <= DAC_FIELD_MAX):
            raise ValidationError(f"DAC value must be {DAC_FIELD_MIN}-{DAC_FIELD_MAX}, got {value}")
        self._send(Opcode.SET_DAC, struct.pack(">hB", value, n), 3)

    def set_analog(self, n: int, volts: float) -> None:
        """Set output *n* to *volts*."""
        self.set_dac(n, self.volts_to_dac(volts, n))

    def volts_to_dac(self, volts: float, n: int) -> int:
        """Calibrated DAC code that produces *volts* on output *n*."""
        cal = self.get_calib(True, False, False, n)
        return self.features.dac.from_volts(volts, cal)

    # -- Digital I/O --------------------------------------------------------

    def _check_pio(self, n: int) -> None:
        n_pios = self.features.n_pios
        if not (1 <= n <= n_pios):
            raise InvalidPIOError(f"PIO must be 1-{n_pios}, got {n}")

    def _check_port_value(self, value: int, label: str) -> None:
        limit = 1 << self.features.n_pios
        if not (0 <= value < limit):
            raise InvalidPIOValueError(f"{label} must be 0-{limit - 1}, got {value}")

    def set_pio(self, n: int, value: bool) -> None:
        """Drive PIO *n* high or low."""
        self._check_pio(n)
        self._send(Opcode.PIO, bytes([n, int(bool(value))]), 2)

    def set_pio_dir(self, n: int, output: bool) -> None:
        """Make PIO *n* an output (``True``) or an input."""
        self._check_pio(n)
        self._send(Opcode.PIO_DIR, bytes([n, int(bool(output))]), 2)

    def read_pio(self, n: int) -> bool:
        """Return the level of PIO *n*."""
        self._check_pio(n)
        payload = self._send(Opcode.PIO, bytes([n]), 2)
        pin, value = _unpack(">BB", payload, "PIO read")
        if pin != n:
            raise ResponseError(f"Asked for PIO {n}, device answered for PIO {pin}")
        return bool(value)

    def set_port(self, value: int) -> None:
        """Write all PIO levels at once; bit 0 is PIO 1."""
        self._check_port_value(value, "Port value")
        self._send(Opcode.PORT, bytes([value]), 1)

    def set_port_dir(self, directions: int) -> None:
        """Set all PIO directions at once; a set bit makes the pin an output."""
        self._check_port_value(directions, "Port direction")
        self._send(Opcode.PORT_DIR, bytes([directions]), 1)

    def read_port(self) -> int:
        """Read all PIO levels as a bit mask."""
        payload = self._send(Opcode.PORT, response_len=1)
        (value,) = _unpack(">B", payload, "Port read")
        return value


# ---------------------------------------------------------------------------
# Convenience factory
# ---------------------------------------------------------------------------


def open_daq(port: str = DEFAULT_PORT, **kwargs) -> OpenDAQ:
    """Return a connected device.

    Example::

        with open_daq('/dev/ttyUSB0') as daq:
            daq.set_analog(1, 1.0)
    """
    daq = OpenDAQ(port, **kwargs)
    daq.connect()
    return daq
