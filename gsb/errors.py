"""Errors raised by the snapshot engine.

Filesystem failures are not wrapped: they surface as the OSError raised by the
underlying call. Everything else derives from SaveError so the CLI can catch
one type at the command boundary.
"""


class SaveError(Exception):
    """Base class for save/restore failures. str(err) is shown to the operator."""


class ValidationError(SaveError, ValueError):
    """Bad or unsafe input: target name, snapshot name, package entry."""


class NotFoundError(SaveError):
    """Target, snapshot, source path or config record is missing."""


class ConflictError(SaveError):
    """Something already exists where the operation must create it."""


class TimestampExhausted(ConflictError):
    def __init__(self, message="failed to find a timestamp"):
        super().__init__(message)


class RetentionViolation(SaveError):
    """Deleting the only remaining snapshot, or the newest one."""
