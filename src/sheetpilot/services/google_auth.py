"""Service-account authentication for the Google Sheets client.

A service account key (the JSON file downloaded from the Google Cloud console)
is turned into short-lived OAuth access tokens with the JWT bearer grant: an
RS256-signed assertion is posted to the key's ``token_uri`` and the returned
token is cached until shortly before it expires.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

import httpx
from jose import jwt
from jose.exceptions import JOSEError

from ..ai.tools.errors import NotConfiguredError, ResourceError

LOGGER = logging.getLogger(__name__)

SHEETS_SCOPES: tuple[str, ...] = (
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive.readonly",
)
DEFAULT_TOKEN_URI = "https://oauth2.googleapis.com/token"
JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"
ASSERTION_LIFETIME_SECONDS = 3600
EXPIRY_MARGIN_SECONDS = 60


def _configuration_error(reason: object) -> NotConfiguredError:
    return NotConfiguredError(message=f"Failed to configure Google Sheets: {reason}")


@dataclass(slots=True, frozen=True)
class ServiceAccountCredentials:
    """Identity and signing key of a Google service account."""

    client_email: str
    private_key: str = field(repr=False)
    token_uri: str = DEFAULT_TOKEN_URI
    private_key_id: str | None = None
    scopes: tuple[str, ...] = SHEETS_SCOPES

    @classmethod
    def from_info(cls, info: Mapping[str, Any] | str) -> "ServiceAccountCredentials":
        """Build credentials from a parsed key file or its JSON text.

        Raises:
            NotConfiguredError: the JSON is malformed or lacks the email or key.
        """

        if isinstance(info, str):
            try:
                info = json.loads(info)
            except json.JSONDecodeError as exc:
                raise _configuration_error(exc) from exc
        if not isinstance(info, Mapping):
            raise _configuration_error("service account JSON must be an object")
        missing = [key for key in ("client_email", "private_key") if not info.get(key)]
        if missing:
            raise _configuration_error(f"missing {', '.join(missing)}")
        return cls(
            client_email=str(info["client_email"]),
            private_key=str(info["private_key"]),
            token_uri=str(info.get("token_uri") or DEFAULT_TOKEN_URI),
            private_key_id=info.get("private_key_id") or None,
        )

    def assertion(self, *, now: float | None = None) -> str:
        """Return a signed JWT asking ``token_uri`` for an access token."""

        issued_at = int(time.time() if now is None else now)
        claims = {
            "iss": self.client_email,
            "scope": " ".join(self.scopes),
            "aud": self.token_uri,
            "iat": issued_at,
            "exp": issued_at + ASSERTION_LIFETIME_SECONDS,
        }
        headers = {"kid": self.private_key_id} if self.private_key_id else None
        try:
            return jwt.encode(claims, self.private_key, algorithm="RS256", headers=headers)
        except JOSEError as exc:
            raise _configuration_error(exc) from exc


class ServiceAccountTokenSource:
    """Exchanges service-account assertions for cached access tokens."""

    def __init__(
        self,
        credentials: ServiceAccountCredentials,
        *,
        http_client: httpx.AsyncClient | None = None,
        timeout: float | None = 30.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._credentials = credentials
        self._client = http_client
        self._owns_client = http_client is None
        self._timeout = timeout
        self._clock = clock
        self._lock = asyncio.Lock()
        self._token = ""
        self._expires_at = 0.0

    @property
    def credentials(self) -> ServiceAccountCredentials:
        return self._credentials

    async def token(self) -> str:
        async with self._lock:
            if not self._token or self._clock() >= self._expires_at - EXPIRY_MARGIN_SECONDS:
                await self._refresh()
            return self._token

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _refresh(self) -> None:
        assertion = self._credentials.assertion(now=self._clock())
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
            self._owns_client = True
        try:
            response = await self._client.post(
                self._credentials.token_uri,
                data={"grant_type": JWT_BEARER_GRANT, "assertion": assertion},
            )
        except httpx.HTTPError as exc:
            raise ResourceError(message=f"Failed to authenticate with Google: {exc}") from exc

        payload = _json_object(response)
        if response.is_error:
            detail = payload.get("error_description") or payload.get("error") or f"HTTP {response.status_code}"
            raise ResourceError(
                message=f"Failed to authenticate with Google: {detail}",
                status_code=response.status_code,
            )
        token = payload.get("access_token")
        if not token:
            raise ResourceError(message="Failed to authenticate with Google: no access_token in response")

        lifetime = float(payload.get("expires_in") or ASSERTION_LIFETIME_SECONDS)
        self._token = str(token)
        self._expires_at = self._clock() + lifetime
        LOGGER.info("Obtained Google access token for %s (expires in %ss)", self._credentials.client_email, int(lifetime))


def _json_object(response: httpx.Response) -> dict[str, Any]:
    try:
        payload = response.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}


__all__ = [
    "DEFAULT_TOKEN_URI",
    "JWT_BEARER_GRANT",
    "SHEETS_SCOPES",
    "ServiceAccountCredentials",
    "ServiceAccountTokenSource",
]
