"""
Exception types raised by the coaching core.
"""


class CoachError(Exception):
    """Base class for coaching-session errors."""


class VoiceBusyError(CoachError):
    """A critique was handed to the voice channel while another is in flight."""


class OracleResponseError(CoachError):
    """The judgment oracle returned something that is not a verdict."""


class SourceUnavailableError(CoachError):
    """A camera or microphone could not be acquired."""


class SessionStateError(CoachError):
    """Operation not valid for the current session state."""
