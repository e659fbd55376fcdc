"""Failure classification shared by the orchestrator, queue and API."""

from enum import Enum


class ErrorKind(str, Enum):
    """Why a job did not succeed."""

    INPUT_NOT_FOUND = "input_not_found"
    ENCODER_UNAVAILABLE = "encoder_unavailable"
    ENCODER_NON_ZERO_EXIT = "encoder_non_zero_exit"
    ENCODER_TIMEOUT = "encoder_timeout"
    CANCELLED = "cancelled"
    INTERNAL_EXCEPTION = "internal_exception"


class JobStateError(RuntimeError):
    """Raised when a job is asked to make a transition its state machine forbids."""


class EncoderUnavailableError(RuntimeError):
    """Raised when the encoder binary cannot be started."""
