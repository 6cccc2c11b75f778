"""Capsule store exceptions."""


class CapsuleError(Exception):
    """Base exception for capsule store errors."""
    pass


class CapsuleNotFoundError(CapsuleError, LookupError):
    """Raised when a capsule, session or repo cannot be found."""
    pass


class CapsuleParseError(CapsuleError, ValueError):
    """Raised when a consolidated session file cannot be parsed."""
    pass


class CapsuleWriteError(CapsuleError, OSError):
    """Raised when a session directory or file cannot be written."""
    pass
