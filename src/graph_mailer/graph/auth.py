import logging
import threading
import time
from dataclasses import dataclass
from typing import Dict, Optional

import msal
import requests

from ..transport.exceptions import AuthTransportError

logger = logging.getLogger(__name__)

GRAPH_SCOPE = "https://graph.microsoft.com/.default"
TOKEN_URL = "https://login.microsoftonline.com/{tenant_id}/oauth2/v2.0/token"

# Refetch a token this many seconds before Entra ID says it expires.
EXPIRY_SKEW_SECONDS = 60


@dataclass(frozen=True)
class Credential:
    """One Entra ID app registration allowed to call Mail.Send."""

    tenant_id: str
    client_id: str
    client_secret: str

    @property
    def cache_key(self) -> str:
        return f"{self.tenant_id}:{self.client_id}"

    def __repr__(self) -> str:
        return (
            f"Credential(tenant_id={self.tenant_id!r}, "
            f"client_id={self.client_id!r}, client_secret='{{SECRET}}')"
        )


@dataclass
class CachedToken:
    access_token: str
    expires_at: Optional[float] = None  # time.monotonic() deadline, None = never

    def is_expired(self, now: Optional[float] = None) -> bool:
        if self.expires_at is None:
            return False
        if now is None:
            now = time.monotonic()
        return now >= self.expires_at


class TokenCache:
    """Access tokens keyed by "tenant:client".

    Share one instance between transports to share tokens; each transport
    creates its own otherwise.
    """

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._tokens: Dict[str, CachedToken] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            cached = self._tokens.get(key)
            if cached is None:
                return None
            if cached.is_expired(self._clock()):
                del self._tokens[key]
                return None
            return cached.access_token

    def set(self, key: str, access_token: str, expires_in: Optional[float] = None) -> None:
        expires_at = None
        if expires_in is not None:
            expires_at = self._clock() + max(float(expires_in) - EXPIRY_SKEW_SECONDS, 0)
        with self._lock:
            self._tokens[key] = CachedToken(access_token, expires_at)

    def clear(self) -> None:
        with self._lock:
            self._tokens.clear()

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._tokens)


class GraphTokenProvider:
    """Acquires Graph access tokens with a plain client credentials grant.

    Tokens are cached per credential pair. Two threads missing the cache at
    the same time will both hit the token endpoint; the last one to finish
    wins the cache slot.
    """

    def __init__(
        self,
        credential: Credential,
        session: Optional[requests.Session] = None,
        cache: Optional[TokenCache] = None,
        timeout: float = 30,
    ):
        self._credential = credential
        self._session = session if session is not None else requests.Session()
        self._cache = cache if cache is not None else TokenCache()
        self._timeout = timeout

    @property
    def cache(self) -> TokenCache:
        return self._cache

    def get_access_token(self) -> str:
        key = self._credential.cache_key
        token = self._cache.get(key)
        if token is not None:
            logger.debug(f"Using cached Graph token for {key}")
            return token

        token, expires_in = self._request_access_token()
        self._cache.set(key, token, expires_in)
        return token

    def _request_access_token(self):
        cred = self._credential
        url = TOKEN_URL.format(tenant_id=cred.tenant_id)
        try:
            resp = self._session.post(
                url,
                data={
                    "client_id": cred.client_id,
                    "client_secret": cred.client_secret,
                    "scope": GRAPH_SCOPE,
                    "grant_type": "client_credentials",
                },
                timeout=self._timeout,
            )
            resp.raise_for_status()
        except requests.RequestException as e:
            response = getattr(e, "response", None)
            raise AuthTransportError(
                f"Could not obtain an access token for tenant {cred.tenant_id}: {e}",
                response,
            ) from e

        try:
            body = resp.json()
        except ValueError as e:
            raise AuthTransportError(
                "Token endpoint returned a response that is not JSON", resp
            ) from e

        if not isinstance(body, dict) or not body.get("access_token"):
            raise AuthTransportError(
                "Token endpoint response has no access_token", resp
            )
        if not isinstance(body["access_token"], str):
            raise AuthTransportError(
                "Token endpoint returned a non-string access_token", resp
            )

        expires_in = body.get("expires_in")
        if expires_in is not None:
            try:
                expires_in = float(expires_in)
            except (TypeError, ValueError) as e:
                raise AuthTransportError(
                    "Token endpoint returned an invalid expires_in", resp
                ) from e

        logger.info(f"Acquired Graph token for client {cred.client_id}")
        return body["access_token"], expires_in


class MsalTokenProvider:
    """Acquires tokens using MSAL client credentials flow.

    MSAL keeps its own in-memory cache and renews tokens before they expire,
    so no TokenCache is involved. The app registration needs the Mail.Send
    application permission with admin consent.
    """

    SCOPES = [GRAPH_SCOPE]

    def __init__(self, credential: Credential):
        self._app = msal.ConfidentialClientApplication(
            credential.client_id,
            authority=f"https://login.microsoftonline.com/{credential.tenant_id}",
            client_credential=credential.client_secret,
        )

    def get_access_token(self) -> str:
        try:
            result = self._app.acquire_token_for_client(scopes=self.SCOPES)
        except requests.RequestException as e:
            raise AuthTransportError(f"Could not reach the token endpoint: {e}") from e
        if result and "access_token" in result:
            return result["access_token"]
        result = result or {}
        raise AuthTransportError(
            f"Failed to acquire token: "
            f"{result.get('error_description', result.get('error'))}"
        )
