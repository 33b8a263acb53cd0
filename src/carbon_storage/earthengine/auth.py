"""Service-account token exchange for the Earth Engine REST API.

A signed JWT assertion (RS256) is exchanged at the OAuth2 token endpoint
using the ``urn:ietf:params:oauth:grant-type:jwt-bearer`` grant. The
exchanger keeps no state between calls beyond its configuration.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass

import httpx
import jwt
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from carbon_storage.errors import (
    AuthenticationError,
    ConfigurationError,
    TransientError,
)
from carbon_storage.http_client import client_scope, response_detail

LOGGER = logging.getLogger(__name__)

__all__ = [
    "AccessToken",
    "DEFAULT_SCOPE",
    "DEFAULT_TOKEN_URI",
    "JWT_BEARER_GRANT",
    "ServiceAccountCredential",
    "TokenExchanger",
]

DEFAULT_TOKEN_URI = "https://oauth2.googleapis.com/token"
DEFAULT_SCOPE = "https://www.googleapis.com/auth/earthengine.readonly"
JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"
ASSERTION_LIFETIME_SECONDS = 3600


@dataclass(frozen=True, slots=True)
class ServiceAccountCredential:
    """The subset of a service-account key file needed for the exchange."""

    client_email: str
    private_key: str
    private_key_id: str | None = None
    token_uri: str = DEFAULT_TOKEN_URI
    project_id: str | None = None

    def __repr__(self) -> str:
        return (
            f"ServiceAccountCredential(client_email={self.client_email!r}, "
            f"project_id={self.project_id!r})"
        )

    @classmethod
    def from_json(
        cls, raw: str | bytes | Mapping[str, object]
    ) -> ServiceAccountCredential:
        """Parse a service-account key from JSON text or a mapping.

        Args:
            raw: Key file contents, for example the ``GEE_SERVICE_ACCOUNT``
                environment variable.

        Returns:
            The parsed credential.

        Raises:
            ConfigurationError: If the JSON is malformed or ``client_email``
                or ``private_key`` are missing.
        """

        if isinstance(raw, Mapping):
            data: object = dict(raw)
        else:
            try:
                data = json.loads(raw)
            except (json.JSONDecodeError, UnicodeDecodeError) as exc:
                raise ConfigurationError(
                    "Service account credential is not valid JSON"
                ) from exc
        if not isinstance(data, dict):
            raise ConfigurationError("Service account credential must be a JSON object")

        missing = [
            name
            for name in ("client_email", "private_key")
            if not isinstance(data.get(name), str) or not str(data.get(name)).strip()
        ]
        if missing:
            raise ConfigurationError(
                f"Service account credential is missing: {', '.join(missing)}"
            )

        private_key = str(data["private_key"])
        # Keys pasted into environment variables often keep escaped newlines.
        if "\\n" in private_key and "\n" not in private_key:
            private_key = private_key.replace("\\n", "\n")

        token_uri = data.get("token_uri")
        key_id = data.get("private_key_id")
        project_id = data.get("project_id")
        return cls(
            client_email=str(data["client_email"]).strip(),
            private_key=private_key,
            private_key_id=key_id if isinstance(key_id, str) and key_id else None,
            token_uri=(
                token_uri if isinstance(token_uri, str) and token_uri else DEFAULT_TOKEN_URI
            ),
            project_id=project_id if isinstance(project_id, str) and project_id else None,
        )


@dataclass(frozen=True, slots=True)
class AccessToken:
    """A short-lived bearer token."""

    token: str
    expires_at: float
    token_type: str = "Bearer"

    def __repr__(self) -> str:
        return f"AccessToken(token_type={self.token_type!r}, expires_at={self.expires_at!r})"

    def is_expired(self, now: float | None = None) -> bool:
        """Return ``True`` once ``now`` has reached the expiry time."""

        current = time.time() if now is None else now
        return current >= self.expires_at

    @property
    def authorization_header(self) -> dict[str, str]:
        """Header mapping carrying this token."""

        return {"Authorization": f"{self.token_type} {self.token}"}


def _load_rsa_key(pem: str) -> rsa.RSAPrivateKey:
    try:
        key = serialization.load_pem_private_key(pem.encode("utf-8"), password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise ConfigurationError(
            "Service account private key could not be loaded"
        ) from exc
    if not isinstance(key, rsa.RSAPrivateKey):
        raise ConfigurationError("Service account private key must be an RSA key")
    return key


class TokenExchanger:
    """Exchange service-account credentials for OAuth2 bearer tokens."""

    def __init__(
        self,
        scope: str = DEFAULT_SCOPE,
        *,
        timeout_seconds: float = 10.0,
        client: httpx.Client | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._scope = scope
        self._timeout = timeout_seconds
        self._client = client
        self._clock = clock

    def build_assertion(
        self, credential: ServiceAccountCredential, now: float | None = None
    ) -> str:
        """Return the signed JWT assertion for ``credential``.

        Args:
            credential: Service account identity and signing key.
            now: Issued-at time in epoch seconds; defaults to the clock.

        Returns:
            ``header.claims.signature`` in base64url encoding.

        Raises:
            ConfigurationError: If the private key is unusable.
        """

        issued_at = int(self._clock() if now is None else now)
        headers = {"kid": credential.private_key_id} if credential.private_key_id else None
        claims = {
            "iss": credential.client_email,
            "scope": self._scope,
            "aud": credential.token_uri,
            "iat": issued_at,
            "exp": issued_at + ASSERTION_LIFETIME_SECONDS,
        }
        key = _load_rsa_key(credential.private_key)
        return jwt.encode(claims, key, algorithm="RS256", headers=headers)

    def get_access_token(self, credential: ServiceAccountCredential) -> AccessToken:
        """Exchange ``credential`` for a bearer token.

        Raises:
            ConfigurationError: If the private key is unusable.
            AuthenticationError: If the token endpoint rejects the assertion.
            TransientError: If the token endpoint cannot be reached or is
                temporarily failing.
        """

        now = self._clock()
        assertion = self.build_assertion(credential, now=now)
        url = credential.token_uri
        try:
            with client_scope(self._client, self._timeout) as client:
                response = client.post(
                    url,
                    data={"grant_type": JWT_BEARER_GRANT, "assertion": assertion},
                )
        except httpx.TransportError as exc:
            LOGGER.warning(
                "Token endpoint transport error",
                extra={"url": url, "error_type": type(exc).__name__},
            )
            raise TransientError("Token endpoint unreachable") from exc

        status = response.status_code
        if status == 429 or status >= 500:
            LOGGER.warning(
                "Token endpoint temporarily failing",
                extra={"url": url, "status_code": status},
            )
            raise TransientError(f"Token endpoint returned HTTP {status}")
        if status >= 400:
            detail = response_detail(response)
            LOGGER.warning(
                "Token endpoint rejected assertion",
                extra={
                    "url": url,
                    "status_code": status,
                    "client_email": credential.client_email,
                    "detail": detail,
                },
            )
            raise AuthenticationError(
                f"Token exchange rejected (HTTP {status})", detail=detail
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise AuthenticationError("Token endpoint returned a non-JSON body") from exc
        token = payload.get("access_token") if isinstance(payload, dict) else None
        if not isinstance(token, str) or not token:
            raise AuthenticationError("Token endpoint response has no access_token")

        expires_in = payload.get("expires_in", ASSERTION_LIFETIME_SECONDS)
        try:
            lifetime = float(expires_in)
        except (TypeError, ValueError):
            lifetime = float(ASSERTION_LIFETIME_SECONDS)
        token_type = payload.get("token_type")

        LOGGER.info(
            "Access token obtained",
            extra={"client_email": credential.client_email, "expires_in": lifetime},
        )
        return AccessToken(
            token=token,
            expires_at=now + lifetime,
            token_type=token_type if isinstance(token_type, str) and token_type else "Bearer",
        )
