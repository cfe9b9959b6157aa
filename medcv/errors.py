"""
Error taxonomy shared by the gateway, the session provider and controllers.
"""

from typing import Optional


class MedcvError(Exception):
    """Base class for every error raised by this package."""


class GatewayError(MedcvError):
    """A backend call failed (HTTP status, transport, or decoding)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class MalformedResponseError(GatewayError):
    """The backend answered with a body outside the response envelope."""


class AuthError(MedcvError):
    """Login failed; nothing was persisted."""


class FetchError(MedcvError):
    """A collection or a single record could not be loaded."""


class MutationError(MedcvError):
    """A create, update or delete was refused or failed."""
