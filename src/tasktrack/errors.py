"""Error taxonomy for the token and notification layers.

HTTP mapping lives in ``tasktrack.middleware.error_handler``.
"""

from __future__ import annotations


class TaskTrackError(Exception):
    """Base class for domain errors."""


class InvalidCredential(TaskTrackError):
    """Bad, expired, revoked or reused token.

    The message is for logs only; callers always see the same 401 body.
    """


class AuthorizationDenied(TaskTrackError):
    """Valid identity, insufficient role."""


class StorageTransient(TaskTrackError):
    """Store unavailable; retryable."""


class DeliveryOverflow(TaskTrackError):
    """A subscriber's outgoing buffer is full."""
