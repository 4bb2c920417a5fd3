"""
Hardware models: per-board features, calibration layout, unit conversion.

Every supported board is one :class:`HwModel` subclass.  A model is a
stateless description shared by every device of that type: its channel
counts, its ADC/DAC descriptors, and the function that maps a channel
request onto a calibration-register index.

Models are collected into an immutable :class:`ModelRegistry` by
:func:`build_registry`, which also checks each model's calibration
layout and rejects duplicate model ids.
"""

from __future__ import annotations

import abc
import logging
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from types import MappingProxyType

from .calibration import IDENTITY, Calib
from .exceptions import (
    CalibStageError,
    InvalidGainIDError,
    InvalidInputError,
    InvalidOutputError,
    ModelRegistryError,
    UnknownModelError,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Converters
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Converter:
    """Linear map between integer codes and volts.

    Signed converters span ``[-2**(bits-1), 2**(bits-1))``, unsigned ones
    ``[0, 2**bits)``.  The lowest code maps to ``vmin`` and each code step
    adds one LSB of ``(vmax - vmin) / 2**bits``.
    """

    bits: int
    signed: bool
    vmin: float
    vmax: float

    @property
    def min_code(self) -> int:
        return -(1 << (self.bits - 1)) if self.signed else 0

    @property
    def max_code(self) -> int:
        return self.min_code + (1 << self.bits) - 1

    @property
    def lsb(self) -> float:
        return (self.vmax - self.vmin) / (1 << self.bits)

    @property
    def centre(self) -> float:
        return (self.vmin + self.vmax) / 2

    def code_to_volts(self, code: float) -> float:
        return self.vmin + (code - self.min_code) * self.lsb

    def volts_to_code(self, volts: float) -> float:
        return self.min_code + (volts - self.vmin) / self.lsb

    def clamp(self, code: float) -> int:
        return max(self.min_code, min(self.max_code, int(round(code))))


@dataclass(frozen=True)
class ADC(Converter):
    """Analog-to-digital converter with a programmable-gain front end."""

    gains: tuple[float, ...] = (1.0,)

    def gain(self, gain_id: int) -> float:
        if not (0 <= gain_id < len(self.gains)):
            raise InvalidGainIDError(f"Gain id must be 0-{len(self.gains) - 1}, got {gain_id}")
        return self.gains[gain_id]

    def to_volts(
        self, raw: int, gain_id: int, cal1: Calib = IDENTITY, cal2: Calib = IDENTITY
    ) -> float:
        """Convert a raw ADC code to volts at the input terminals.

        *cal1* is applied first, *cal2* second.  The amplifier gain scales
        the signal around the centre of the range.
        """
        code = cal2.apply(cal1.apply(raw))
        return self.centre + (self.code_to_volts(code) - self.centre) / self.gain(gain_id)

    def from_volts(
        self, volts: float, gain_id: int, cal1: Calib = IDENTITY, cal2: Calib = IDENTITY
    ) -> int:
        """Inverse of :meth:`to_volts`, rounded to the nearest code."""
        amplified = self.centre + (volts - self.centre) * self.gain(gain_id)
        code = cal1.invert(cal2.invert(self.volts_to_code(amplified)))
        return int(round(code))


@dataclass(frozen=True)
class DAC(Converter):
    """Digital-to-analog converter."""

    def from_volts(self, volts: float, cal: Calib = IDENTITY) -> int:
        """Return the calibrated code for *volts*, clamped to the DAC range."""
        return self.clamp(cal.apply(self.volts_to_code(volts)))

    def to_volts(self, raw: int, cal: Calib = IDENTITY) -> float:
        return self.code_to_volts(cal.invert(raw))


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class HwFeatures:
    """Static description of one board model."""

    name: str
    n_pios: int
    n_leds: int
    n_inputs: int
    n_outputs: int
    n_calib_regs: int
    adc: ADC
    dac: DAC
    n_hidden_outputs: int = 0

    @property
    def n_dac_channels(self) -> int:
        """Outputs addressable by a raw DAC write, hidden ones included."""
        return self.n_outputs + self.n_hidden_outputs


class HwModel(abc.ABC):
    """Base class for a supported board.

    Subclasses set :attr:`model_id`, :attr:`features`,
    :attr:`negative_inputs` and :attr:`has_second_stage`, and implement
    :meth:`_input_index`.
    """

    model_id: int
    features: HwFeatures
    negative_inputs: frozenset[int]
    has_second_stage: bool = False

    def calib_index(
        self,
        is_output: bool,
        diff_mode: bool,
        second_stage: bool,
        n: int,
        gain_id: int = 0,
    ) -> int:
        """Return the calibration register that applies to a channel request.

        Outputs (hidden ones included) always occupy the first registers,
        so output *n* maps to ``n - 1``.  Input layout is model-specific.

        Raises:
            InvalidOutputError: Output number out of range.
            InvalidInputError: Input number out of range.
            CalibStageError: Second stage requested from a single-stage model.
            InvalidGainIDError: Gain id beyond the ADC gain list.
        """
        f = self.features
        if is_output:
            if not (1 <= n <= f.n_dac_channels):
                raise InvalidOutputError(f"Output must be 1-{f.n_dac_channels}, got {n}")
            if second_stage:
                raise CalibStageError(f"{f.name} outputs have no second calibration stage")
            return n - 1
        if not (1 <= n <= f.n_inputs):
            raise InvalidInputError(f"Input must be 1-{f.n_inputs}, got {n}")
        if second_stage and not self.has_second_stage:
            raise CalibStageError(f"{f.name} has no second calibration stage")
        f.adc.gain(gain_id)
        return self._input_index(diff_mode, second_stage, n, gain_id)

    @abc.abstractmethod
    def _input_index(self, diff_mode: bool, second_stage: bool, n: int, gain_id: int) -> int:
        """Register index for an already validated input request."""

    def validate_input_pair(self, pos: int, neg: int) -> None:
        """Raise :class:`InvalidInputError` unless ``(pos, neg)`` can be sampled.

        ``neg == 0`` selects single-ended mode.
        """
        n_inputs = self.features.n_inputs
        if not (1 <= pos <= n_inputs):
            raise InvalidInputError(f"Positive input must be 1-{n_inputs}, got {pos}")
        if neg not in self.negative_inputs:
            raise InvalidInputError(
                f"Negative input must be one of {sorted(self.negative_inputs)}, got {neg}"
            )

    def valid_requests(self) -> Iterator[tuple[bool, bool, bool, int, int]]:
        """Every ``calib_index`` argument tuple this model accepts."""
        f = self.features
        for n in range(1, f.n_dac_channels + 1):
            yield True, False, False, n, 0
        stages = (False, True) if self.has_second_stage else (False,)
        for n in range(1, f.n_inputs + 1):
            for diff in (False, True):
                for stage in stages:
                    for gain_id in range(len(f.adc.gains)):
                        yield False, diff, stage, n, gain_id

    def check_calib_layout(self) -> None:
        """Verify every valid request lands inside the register file and
        every register is reachable.

        Raises:
            ModelRegistryError: If the layout is inconsistent.
        """
        n_regs = self.features.n_calib_regs
        used = set()
        for request in self.valid_requests():
            idx = self.calib_index(*request)
            if not (0 <= idx < n_regs):
                raise ModelRegistryError(
                    f"{self.features.name}: request {request} maps to register {idx}, "
                    f"outside 0-{n_regs - 1}"
                )
            used.add(idx)
        unused = set(range(n_regs)) - used
        if unused:
            raise ModelRegistryError(
                f"{self.features.name}: registers {sorted(unused)} are never addressed"
            )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.model_id})"


_GAINS_S = (1.0, 2.0, 4.0, 5.0, 8.0, 10.0, 16.0, 20.0)


class ModelM(HwModel):
    """openDAQ [M]: one calibration register per PGA gain, then one per input."""

    model_id = 1
    features = HwFeatures(
        name="OpenDAQ M",
        n_pios=6,
        n_leds=1,
        n_inputs=8,
        n_outputs=1,
        n_calib_regs=1 + 5 + 8,
        adc=ADC(
            bits=16, signed=True, vmin=-4.096, vmax=4.096, gains=(1 / 3, 1.0, 2.0, 10.0, 100.0)
        ),
        dac=DAC(bits=16, signed=True, vmin=-4.096, vmax=4.096),
    )
    negative_inputs = frozenset({0, 5, 6, 7, 8, 25})
    has_second_stage = True

    def _input_index(self, diff_mode, second_stage, n, gain_id):
        f = self.features
        if second_stage:
            return f.n_dac_channels + len(f.adc.gains) + n - 1
        return f.n_dac_channels + gain_id


class ModelS(HwModel):
    """openDAQ [S]: separate single-ended and differential registers per input."""

    model_id = 2
    features = HwFeatures(
        name="OpenDAQ S",
        n_pios=6,
        n_leds=1,
        n_inputs=8,
        n_outputs=1,
        n_calib_regs=1 + 2 * 8,
        adc=ADC(bits=16, signed=True, vmin=-12.0, vmax=12.0, gains=_GAINS_S),
        # The DAC has 12 bits, but the firmware takes 16-bit values
        dac=DAC(bits=16, signed=True, vmin=0.0, vmax=4.096),
    )
    negative_inputs = frozenset(range(0, 9))

    def _input_index(self, diff_mode, second_stage, n, gain_id):
        f = self.features
        if diff_mode:
            return f.n_dac_channels + f.n_inputs + n - 1
        return f.n_dac_channels + n - 1


class ModelTP04AB(HwModel):
    """TP04AB: first-stage and second-stage registers per input."""

    model_id = 12
    features = HwFeatures(
        name="TP04AB",
        n_pios=6,
        n_leds=1,
        n_inputs=4,
        n_outputs=2,
        n_calib_regs=2 + 2 * 4,
        adc=ADC(bits=16, signed=True, vmin=-24.0, vmax=24.0, gains=_GAINS_S),
        dac=DAC(bits=16, signed=True, vmin=-24.0, vmax=24.0),
    )
    negative_inputs = frozenset(range(0, 5))
    has_second_stage = True

    def _input_index(self, diff_mode, second_stage, n, gain_id):
        f = self.features
        if second_stage:
            return f.n_dac_channels + f.n_inputs + n - 1
        return f.n_dac_channels + n - 1

    def validate_input_pair(self, pos: int, neg: int) -> None:
        super().validate_input_pair(pos, neg)
        if neg == pos:
            raise InvalidInputError(f"Cannot sample input {pos} against itself")


SUPPORTED_MODELS: tuple[type[HwModel], ...] = (ModelM, ModelS, ModelTP04AB)

# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class ModelRegistry(Mapping):
    """Immutable mapping from model id to :class:`HwModel` instance."""

    def __init__(self, models: Mapping[int, HwModel]) -> None:
        self._models = MappingProxyType(dict(models))

    def __getitem__(self, model_id: int) -> HwModel:
        return self._models[model_id]

    def __iter__(self) -> Iterator[int]:
        return iter(self._models)

    def __len__(self) -> int:
        return len(self._models)

    def lookup(self, model_id: int) -> HwModel:
        """Return the model registered under *model_id*.

        Raises:
            UnknownModelError: If no model has that id.
        """
        try:
            return self._models[model_id]
        except KeyError:
            raise UnknownModelError(
                f"Unknown device model number {model_id}; known: {sorted(self._models)}"
            ) from None


def build_registry(models: Iterable[HwModel] | None = None) -> ModelRegistry:
    """Build a registry from *models* (default: every supported board).

    Raises:
        ModelRegistryError: On a duplicate model id or a bad calibration layout.
    """
    if models is None:
        models = [cls() for cls in SUPPORTED_MODELS]
    table: dict[int, HwModel] = {}
    for model in models:
        if model.model_id in table:
            raise ModelRegistryError(
                f"Model id {model.model_id} registered twice "
                f"({table[model.model_id]!r} and {model!r})"
            )
        model.check_calib_layout()
        table[model.model_id] = model
    logger.debug("Registered hardware models: %s", sorted(table))
    return ModelRegistry(table)
