"""openDAQ data-acquisition board Python interface"""

from .calibration import Calib, CalibrationStore
from .constants import Color, Opcode
from .device import DeviceInfo, InputConfig, OpenDAQ, open_daq
from .exceptions import (
    CalibStageError,
    CommandError,
    ConnectionError,
    FrameError,
    InvalidColorError,
    InvalidGainIDError,
    InvalidIDError,
    InvalidInputError,
    InvalidLedError,
    InvalidOutputError,
    InvalidPIOError,
    InvalidPIOValueError,
    ModelRegistryError,
    OpenDAQError,
    ResponseError,
    TransportError,
    UnknownModelError,
    ValidationError,
)
from .models import (
    ADC,
    DAC,
    HwFeatures,
    HwModel,
    ModelM,
    ModelRegistry,
    ModelS,
    ModelTP04AB,
    build_registry,
)
from .protocol import Command, CommandDispatcher, FrameCodec, OpenDAQCodec

__all__ = [
    "ADC",
    "Calib",
    "CalibStageError",
    "CalibrationStore",
    "Color",
    "Command",
    "CommandDispatcher",
    "CommandError",
    "ConnectionError",
    "DAC",
    "DeviceInfo",
    "FrameCodec",
    "FrameError",
    "HwFeatures",
    "HwModel",
    "InputConfig",
    "InvalidColorError",
    "InvalidGainIDError",
    "InvalidIDError",
    "InvalidInputError",
    "InvalidLedError",
    "InvalidOutputError",
    "InvalidPIOError",
    "InvalidPIOValueError",
    "ModelM",
    "ModelRegistry",
    "ModelRegistryError",
    "ModelS",
    "ModelTP04AB",
    "OpenDAQ",
    "OpenDAQCodec",
    "OpenDAQError",
    "Opcode",
    "ResponseError",
    "TransportError",
    "UnknownModelError",
    "ValidationError",
    "build_registry",
    "open_daq",
]
__version__ = "0.1.0"
