"""Service-account access tokens for the push provider.

A signed RS256 assertion (issuer = the service account, audience = the
token endpoint, scope = messaging, one hour lifetime) is exchanged for a
short-lived bearer token. Tokens are cached per process, keyed by the
service-account email, and refreshed single-flight so concurrent dispatch
runs don't each mint their own.
"""

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx
from jose import jwt

logger = logging.getLogger(__name__)

MESSAGING_SCOPE = "https://www.googleapis.com/auth/firebase.messaging"
JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"
ASSERTION_LIFETIME_SECONDS = 3600
# Refresh this long before the provider-reported expiry.
REFRESH_MARGIN_SECONDS = 60


class AccessTokenError(Exception):
    """The token endpoint did not hand out an access token."""


@dataclass(frozen=True, slots=True)
class AccessToken:
    value: str
    expires_at: float


class AccessTokenCache:
    """Thread-safe token store with one refresh lock per identity."""

    def __init__(self) -> None:
        self._tokens: dict[str, AccessToken] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def get(self, key: str, now: float) -> AccessToken | None:
        token = self._tokens.get(key)
        if token is None or token.expires_at - REFRESH_MARGIN_SECONDS <= now:
            return None
        return token

    def put(self, key: str, token: AccessToken) -> None:
        self._tokens[key] = token

    def invalidate(self, key: str) -> None:
        self._tokens.pop(key, None)

    def refresh_lock(self, key: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(key, threading.Lock())


_default_cache = AccessTokenCache()


class ServiceAccountTokenProvider:
    def __init__(
        self,
        service_account: dict[str, Any],
        token_url: str,
        http_client: httpx.Client,
        *,
        cache: AccessTokenCache | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._client_email: str = service_account["client_email"]
        self._private_key: str = service_account["private_key"]
        self._key_id: str | None = service_account.get("private_key_id")
        self._token_url = token_url
        self._http = http_client
        self._cache = cache if cache is not None else _default_cache
        self._clock = clock

    @property
    def identity(self) -> str:
        return self._client_email

    def get_token(self) -> str:
        """Return a valid bearer token, minting a new one if needed.

        Raises AccessTokenError when the exchange fails.
        """
        cached = self._cache.get(self._client_email, self._clock())
        if cached is not None:
            return cached.value

        with self._cache.refresh_lock(self._client_email):
            # Another thread may have refreshed while we waited.
            cached = self._cache.get(self._client_email, self._clock())
            if cached is not None:
                return cached.value

            token = self._exchange()
            self._cache.put(self._client_email, token)
            return token.value

    def invalidate(self) -> None:
        """Drop the cached token, e.g. after the provider answers 401."""
        self._cache.invalidate(self._client_email)

    def build_assertion(self, issued_at: int) -> str:
        claims = {
            "iss": self._client_email,
            "sub": self._client_email,
            "aud": self._token_url,
            "scope": MESSAGING_SCOPE,
            "iat": issued_at,
            "exp": issued_at + ASSERTION_LIFETIME_SECONDS,
        }
        headers = {"kid": self._key_id} if self._key_id else None
        return jwt.encode(claims, self._private_key, algorithm="RS256", headers=headers)

    def _exchange(self) -> AccessToken:
        now = self._clock()
        assertion = self.build_assertion(int(now))
        try:
            response = self._http.post(
                self._token_url,
                data={"grant_type": JWT_BEARER_GRANT, "assertion": assertion},
            )
        except httpx.HTTPError as exc:
            raise AccessTokenError(f"Token exchange failed: {exc}") from exc

        if not response.is_success:
            raise AccessTokenError(
                f"Token exchange rejected ({response.status_code}): {response.text}"
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise AccessTokenError("Token endpoint returned invalid JSON") from exc

        access_token = data.get("access_token")
        if not access_token:
            raise AccessTokenError("Token endpoint response has no access_token")

        expires_in = int(data.get("expires_in", ASSERTION_LIFETIME_SECONDS))
        logger.info(
            "Push access token minted",
            extra={"service_account": self._client_email, "expires_in": expires_in},
        )
        return AccessToken(value=access_token, expires_at=now + expires_in)
