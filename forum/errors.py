# forum/errors.py
from __future__ import annotations


class ForumError(Exception):
    """Base class for every error raised by the boards client."""


class ValidationError(ForumError):
    """Input violates a field rule. Raised before any remote call is attempted."""


class NotLoggedInError(ValidationError):
    """An operation needs the caller's DID but no session is active."""

    def __init__(self, message: str = "Not logged in; run `login` first."):
        super().__init__(message)


class DecodeError(ForumError):
    """A route token could not be decoded back into a URI."""


class RemoteError(ForumError):
    """
    A call to the remote repository failed and should not be retried.

    `status` carries the HTTP status code when the SDK exposed one.
    """

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class TransientRemoteError(RemoteError):
    """Rate limit (429), server error (5xx), timeout or dropped connection."""
