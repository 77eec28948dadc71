"""ProviderClient -- service layer for the upstream identity provider.

Two endpoints matter: ``POST /auth/get-token/`` (service credentials in,
bearer token out) and ``GET /admin/users`` (the full principal roster).
HTTP calls use the ``requests`` library per project standards; every call is
offloaded via :func:`asyncio.to_thread` so the event loop is never blocked.

:class:`CredentialCache` owns the single bearer token of the process and
refreshes it when absent or close to expiry.  :class:`ProviderClient` attaches
that token to roster requests and retries exactly once after a 401.
"""

from __future__ import annotations

import asyncio
import dataclasses
import time
from typing import Any, Callable, Dict, Optional

import requests
from pydantic import ValidationError

from core.logger import GroupkeeperLogger
from sdk.exceptions import AuthFailure, ProviderUnavailable
from sdk.models import ProviderUser, RosterResponse, TokenResponse

logger = GroupkeeperLogger.get_logger("provider")

_JSON_HEADERS: Dict[str, str] = {
    "Content-Type": "application/json",
    "Accept": "application/json",
}


async def make_request(method: str, url: str, **kwargs: object) -> requests.Response:
    """Run a :mod:`requests` call inside a thread to keep the event loop free.

    *method* is the HTTP verb (``"get"``, ``"post"``, …).
    """
    func = getattr(requests, method.lower())
    return await asyncio.to_thread(func, url, **kwargs)


def _json_body(response: requests.Response) -> Any:
    """Return the decoded JSON body, or ``None`` if it is not JSON."""
    try:
        return response.json()
    except ValueError:
        return None


def _as_dict(body: Any) -> Optional[Dict[str, Any]]:
    return body if isinstance(body, dict) else None


# ── Credential cache ─────────────────────────────────────────────────────────


@dataclasses.dataclass(frozen=True, slots=True)
class Credential:
    """A bearer token and the clock reading at which it stops being valid."""

    token: str
    expires_at: float

    def is_fresh(self, now: float, margin: float) -> bool:
        return now < self.expires_at - margin


class CredentialCache:
    """Holds one provider token and refreshes it on demand.

    A credential within *expiry_margin* seconds of ``expires_at`` is treated
    as expired.  A failed refresh raises :class:`AuthFailure` and leaves the
    previous credential in place.  Concurrent refreshes are collapsed behind
    an :class:`asyncio.Lock`.
    """

    def __init__(
        self,
        base_url: str,
        username: str,
        password: str,
        timeout: float = 10,
        expiry_margin: float = 30,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._username = username
        self._password = password
        self._timeout = timeout
        self._margin = expiry_margin
        self._clock = clock
        self._credential: Credential | None = None
        self._lock = asyncio.Lock()

    @property
    def credential(self) -> Credential | None:
        return self._credential

    def _usable(self) -> str | None:
        cred = self._credential
        if cred is not None and cred.is_fresh(self._clock(), self._margin):
            return cred.token
        return None

    async def get_token(self) -> str:
        """Return a valid token, requesting a new one if needed.

        Raises:
            AuthFailure: If the token endpoint is unreachable, errors, or
                omits the token.
        """
        token = self._usable()
        if token is not None:
            return token
        async with self._lock:
            # Another caller may have refreshed while we waited.
            token = self._usable()
            if token is not None:
                return token
            return await self._refresh()

    def invalidate(self) -> None:
        """Drop the cached credential; the next :meth:`get_token` requests a new one."""
        self._credential = None

    async def refresh(self, rejected: str | None = None) -> str:
        """Force a new token unless *rejected* was already replaced by another caller."""
        async with self._lock:
            cred = self._credential
            if cred is not None and cred.token != rejected and cred.is_fresh(self._clock(), self._margin):
                return cred.token
            return await self._refresh()

    async def _refresh(self) -> str:
        url = f"{self._base_url}/auth/get-token/"
        issued_at = self._clock()
        logger.info("Requesting provider token", extra={"api_endpoint": "auth/get-token"})
        try:
            response = await make_request(
                "post",
                url,
                json={"username": self._username, "password": self._password},
                headers=_JSON_HEADERS,
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            logger.error("Token request failed", extra={"api_endpoint": "auth/get-token", "error": str(exc)})
            raise AuthFailure(None, message=f"token endpoint unreachable: {exc}") from exc

        body = _json_body(response)
        if not response.ok:
            logger.error("Token endpoint returned an error", extra={"api_endpoint": "auth/get-token", "status_code": response.status_code})
            raise AuthFailure(response.status_code, _as_dict(body))

        try:
            parsed = TokenResponse.model_validate(body)
        except ValidationError as exc:
            raise AuthFailure(response.status_code, _as_dict(body), message="malformed token response") from exc
        if not parsed.data.token:
            raise AuthFailure(response.status_code, _as_dict(body), message="Token not received in the response")

        self._credential = Credential(parsed.data.token, issued_at + parsed.data.expires_in)
        logger.info("Provider token refreshed", extra={"api_endpoint": "auth/get-token", "expires_in": parsed.data.expires_in})
        return parsed.data.token


# ── Provider client ──────────────────────────────────────────────────────────


class ProviderClient:
    """Client-side service layer for the identity provider's roster.

    The provider exposes no single-principal endpoint, so
    :meth:`fetch_principal` pays for the full roster.
    """

    _DEFAULT_TIMEOUT: float = 10

    def __init__(self, base_url: str, credentials: CredentialCache, timeout: float = _DEFAULT_TIMEOUT) -> None:
        self._base_url = base_url.rstrip("/")
        self._credentials = credentials
        self._timeout = timeout

    # ------------------------------------------------------------------
    #  Internal helpers
    # ------------------------------------------------------------------

    async def _send(self, url: str, token: str) -> requests.Response:
        headers = dict(_JSON_HEADERS, Authorization=f"Bearer {token}")
        try:
            return await make_request("get", url, headers=headers, timeout=self._timeout)
        except requests.RequestException as exc:
            logger.error("Provider request failed", extra={"url": url, "error": str(exc)})
            raise ProviderUnavailable(None, message=str(exc)) from exc

    async def _get(self, endpoint: str) -> Any:
        """GET *endpoint* with the bearer token and return the JSON body.

        Raises:
            AuthFailure: If no token can be obtained, or the request is
                rejected with 401 both before and after a forced refresh.
            ProviderUnavailable: On transport errors, timeouts, any other
                non-2xx status, or a non-JSON body.
        """
        url = f"{self._base_url}/{endpoint.lstrip('/')}"
        token = await self._credentials.get_token()
        response = await self._send(url, token)

        if response.status_code == 401:
            logger.warning("Bearer token rejected, retrying once with a fresh token", extra={"url": url})
            token = await self._credentials.refresh(rejected=token)
            response = await self._send(url, token)
            if response.status_code == 401:
                raise AuthFailure(401, _as_dict(_json_body(response)), message="token rejected after refresh")

        body = _json_body(response)
        if not response.ok:
            logger.error("Provider returned an error", extra={"url": url, "status_code": response.status_code})
            raise ProviderUnavailable(response.status_code, _as_dict(body))
        if body is None:
            raise ProviderUnavailable(response.status_code, message="response body is not JSON")
        return body

    # ------------------------------------------------------------------
    #  Endpoints
    # ------------------------------------------------------------------

    async def fetch_roster(self) -> Dict[str, ProviderUser]:
        """Return every principal record keyed by username."""
        body = await self._get("admin/users")
        try:
            roster = RosterResponse.model_validate(body)
        except ValidationError as exc:
            raise ProviderUnavailable(200, message=f"malformed roster: {exc.error_count()} error(s)") from exc
        logger.info("Fetched provider roster", extra={"api_endpoint": "admin/users", "principal_count": len(roster.data)})
        return roster.data

    async def fetch_all_principals(self) -> Dict[str, frozenset[str]]:
        """Return ``{identifier: groups}`` for the whole roster."""
        roster = await self.fetch_roster()
        return {identifier: user.group_set for identifier, user in roster.items()}

    async def fetch_principal(self, identifier: str) -> frozenset[str] | None:
        """Return *identifier*'s groups, or ``None`` if the provider does not know it."""
        return (await self.fetch_all_principals()).get(identifier)


def build_default_client() -> ProviderClient:
    """Create a :class:`ProviderClient` from the values in :mod:`config`.

    Raises:
        EnvironmentError: If the provider URL or service credentials are missing.
    """
    from config import (  # deferred to avoid circular imports
        PROVIDER_BASE_URL,
        PROVIDER_PASSWORD,
        PROVIDER_TIMEOUT,
        PROVIDER_USERNAME,
        TOKEN_EXPIRY_MARGIN,
    )

    if not (PROVIDER_BASE_URL and PROVIDER_USERNAME and PROVIDER_PASSWORD):
        raise EnvironmentError("PROVIDER_BASE_URL, PROVIDER_USERNAME and PROVIDER_PASSWORD must be set.")
    credentials = CredentialCache(
        PROVIDER_BASE_URL,
        PROVIDER_USERNAME,
        PROVIDER_PASSWORD,
        timeout=PROVIDER_TIMEOUT,
        expiry_margin=TOKEN_EXPIRY_MARGIN,
    )
    return ProviderClient(PROVIDER_BASE_URL, credentials, timeout=PROVIDER_TIMEOUT)
