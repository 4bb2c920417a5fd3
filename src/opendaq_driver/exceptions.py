"""
Exception hierarchy for the openDAQ driver.

All exceptions inherit from :class:`OpenDAQError` so callers can catch
broadly (``except OpenDAQError``) or narrowly (``except InvalidLedError``).

Validation errors are raised before any byte hits the wire and are never
retried.  Transport and frame errors are retried by the dispatcher and
only reach the caller wrapped in a :class:`CommandError`.
"""

from __future__ import annotations


class OpenDAQError(Exception):
    """Base exception for all openDAQ errors."""


class ConnectionError(OpenDAQError):  # noqa: A001 – intentional shadow of builtin
    """Raised when the serial connection is unavailable or fails to open."""


class TransportError(OpenDAQError):
    """Raised when a read or write on an open port fails."""


class FrameError(OpenDAQError):
    """Raised when a response frame is short or fails its integrity check."""


class ResponseError(OpenDAQError):
    """Raised when a well-framed response payload has an unexpected shape."""


class CommandError(OpenDAQError):
    """Raised when a command still fails after every retry.

    The last underlying failure is kept in :attr:`last_error` (and chained
    as ``__cause__``).
    """

    def __init__(self, message: str, last_error: Exception | None = None) -> None:
        super().__init__(message)
        self.last_error = last_error


class ModelRegistryError(OpenDAQError):
    """Raised when the set of hardware models is inconsistent."""


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class ValidationError(OpenDAQError):
    """Raised when an argument fails pre-send validation."""


class InvalidLedError(ValidationError):
    """LED number out of range."""


class InvalidColorError(ValidationError):
    """LED colour code out of range."""


class InvalidInputError(ValidationError):
    """Analog input number out of range for the model."""


class InvalidOutputError(ValidationError):
    """Analog output number out of range for the model."""


class InvalidPIOError(ValidationError):
    """PIO number out of range."""


class InvalidPIOValueError(ValidationError):
    """Port value does not fit in the available PIO bits."""


class InvalidGainIDError(ValidationError):
    """Gain id beyond the model's ADC gain list."""


class InvalidIDError(ValidationError):
    """Device id out of range."""


class UnknownModelError(ValidationError):
    """The device reported a model number with no registered hardware model."""


class CalibStageError(InvalidInputError):
    """A second calibration stage was requested from a model without one."""
