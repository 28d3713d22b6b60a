"""
Exception taxonomy for the spell pipeline.

Every error carries a short machine-readable ``reason`` which is also
its message, so callers can switch on it without parsing text.
"""


class CharmsError(Exception):
    """Base class for all spell pipeline errors."""

    def __init__(self, reason: str, detail: str = ''):
        super().__init__(reason)
        self.reason = reason
        self.detail = detail


class TxFormatError(CharmsError):
    """Raw transaction bytes are truncated or malformed."""


class DecodeError(CharmsError):
    """The payload is not a well-formed ``[spell, proof]`` pair."""


class AssemblyError(CharmsError):
    """The decoded spell does not fit its enclosing transaction."""


class UnsupportedVersion(CharmsError):
    """No verification key exists for the spell version."""


class VerificationError(CharmsError):
    """A non-empty proof is malformed."""
