"""
Error types for mediatrack.

Managers raise these; the web layer maps each one to an HTTP status.
"""


class MediaTrackError(Exception):
    """Base class for all mediatrack errors."""

    status_code = 500


class NotFoundError(MediaTrackError):
    """Raised when an entity or share token does not exist."""

    status_code = 404


class ValidationError(MediaTrackError):
    """Raised when a required field is missing or empty."""

    status_code = 400


class ForbiddenError(MediaTrackError):
    """Raised when a user touches something they do not own."""

    status_code = 403


class UnknownShareKindError(MediaTrackError):
    """Raised when a share token has a kind that cannot be resolved."""

    status_code = 404


class StorageError(MediaTrackError):
    """Raised when the database fails or returns inconsistent rows."""

    status_code = 500
