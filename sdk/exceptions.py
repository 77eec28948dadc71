"""Exception hierarchy for the identity-provider SDK."""

from typing import Any, Dict, Optional


class APIException(Exception):
    """Base exception for non-2xx responses from the identity provider.

    Attributes:
        status_code: HTTP status code returned by the API, or ``None`` when no
            response was received (transport failure, timeout).
        response_body: Raw response body as a dict, when available.
    """

    def __init__(
        self,
        status_code: Optional[int],
        response_body: Optional[Dict[str, Any]] = None,
        message: Optional[str] = None,
    ) -> None:
        self.status_code = status_code
        self.response_body = response_body or {}
        description = message or self.response_body.get("message") or self.response_body.get("description") or "Unknown error"
        super().__init__(f"API error {status_code}: {description}")


class AuthFailure(APIException):
    """A bearer token could not be obtained, or the roster call rejected it twice."""


class ProviderUnavailable(APIException):
    """The roster endpoint was unreachable, timed out, failed, or sent a malformed body."""
