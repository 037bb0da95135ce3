"""Exception hierarchy for signspell.

All package errors derive from SignSpellError so callers can catch
the whole family at a step boundary.
"""


class SignSpellError(Exception):
    """Base class for all signspell errors."""


class MalformedPoseError(SignSpellError, ValueError):
    """Raised when landmark data is not a valid 21-point hand pose."""


class NotReadyError(SignSpellError):
    """Raised when detection is requested before the runtime signaled ready."""


class CallInFlightError(SignSpellError):
    """Raised when a correlated call is opened while another is pending."""


class DetectorBusyError(CallInFlightError):
    """Raised when a detection request is issued while another is pending."""


class ChannelClosedError(SignSpellError):
    """Raised when sending on, or receiving from, a closed message channel."""


class RuntimeStartError(SignSpellError, RuntimeError):
    """Raised when a detection runtime host fails to start."""


__all__ = [
    "SignSpellError",
    "MalformedPoseError",
    "NotReadyError",
    "CallInFlightError",
    "DetectorBusyError",
    "ChannelClosedError",
    "RuntimeStartError",
]
