"""Token-guarded clients for external services.

A gateway owns the per-owner OAuth token: it checks expiry before every call,
exchanges the refresh token when needed, and raises `GatewayUnauthenticatedError`
when no usable token remains. Consent itself happens outside this process; the
gateway only hands out the consent URL.

Tokens are persisted in a small JSON file (`FileTokenStore`).
"""

from __future__ import annotations

import json
import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Generic, TypeVar
from urllib.parse import urlencode

import requests
from pydantic import BaseModel

from agent_task_orchestrator.orchestrator.models import utc_now

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"

# Refresh slightly early so a token does not expire mid-request.
_EXPIRY_SKEW = timedelta(seconds=60)


class GatewayError(RuntimeError):
    """The external service failed or returned an unusable response."""


class GatewayUnauthenticatedError(GatewayError):
    """No valid token is available for the owner."""


class OAuthToken(BaseModel):
    owner: str
    access_token: str
    refresh_token: str | None = None
    expires_at: datetime | None = None
    scope: str | None = None

    def is_expired(self, now: datetime) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at <= now + _EXPIRY_SKEW


@dataclass
class FileTokenStore:
    path: Path

    def __post_init__(self) -> None:
        self._lock = threading.Lock()

    def _load_unlocked(self) -> dict[str, OAuthToken]:
        if not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning("Token file is not valid JSON; ignoring", extra={"path": str(self.path)})
            return {}
        if not isinstance(raw, list):
            return {}
        tokens = [OAuthToken.model_validate(item) for item in raw]
        return {t.owner: t for t in tokens}

    def _save_unlocked(self, tokens: dict[str, OAuthToken]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = [t.model_dump(mode="json") for t in tokens.values()]
        self.path.write_text(
            json.dumps(payload, indent=2, ensure_ascii=False) + "\n", encoding="utf-8"
        )

    def get(self, owner: str) -> OAuthToken | None:
        with self._lock:
            return self._load_unlocked().get(owner)

    def put(self, token: OAuthToken) -> None:
        with self._lock:
            tokens = self._load_unlocked()
            tokens[token.owner] = token
            self._save_unlocked(tokens)

    def delete(self, owner: str) -> bool:
        with self._lock:
            tokens = self._load_unlocked()
            if tokens.pop(owner, None) is None:
                return False
            self._save_unlocked(tokens)
            return True


RequestT = TypeVar("RequestT")
ResponseT = TypeVar("ResponseT")


class OAuthGateway(ABC, Generic[RequestT, ResponseT]):
    """Base class for Google-API gateways authenticated per owner."""

    scopes: Sequence[str] = ()

    def __init__(
        self,
        *,
        token_store: FileTokenStore,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        session: requests.Session | None = None,
        timeout_seconds: float = 30.0,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.token_store = token_store
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self._session = session or requests.Session()
        self.timeout_seconds = timeout_seconds
        self._clock = clock

    def is_authenticated(self, owner: str) -> bool:
        """True if a call for `owner` can proceed without user interaction."""

        token = self.token_store.get(owner)
        if token is None:
            return False
        return not token.is_expired(self._clock()) or bool(token.refresh_token)

    def authenticate(self, owner: str) -> str:
        """Return the consent URL the owner must visit to grant access."""

        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(self.scopes),
            "access_type": "offline",
            "prompt": "consent",
            "state": owner,
        }
        return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"

    def call(self, owner: str, request: RequestT) -> ResponseT:
        """Perform `request` on behalf of `owner`.

        Raises:
            GatewayUnauthenticatedError: No token, or the token could not be refreshed.
            GatewayError: The service failed.
        """

        access_token = self._access_token(owner)
        return self._perform(access_token, request)

    @abstractmethod
    def _perform(self, access_token: str, request: RequestT) -> ResponseT:
        pass

    # ---- token handling ----

    def _access_token(self, owner: str) -> str:
        token = self.token_store.get(owner)
        if token is None:
            raise GatewayUnauthenticatedError(f"no token for owner {owner}")
        if not token.is_expired(self._clock()):
            return token.access_token
        if not token.refresh_token:
            raise GatewayUnauthenticatedError(f"token for owner {owner} expired")
        return self._refresh(token).access_token

    def _refresh(self, token: OAuthToken) -> OAuthToken:
        try:
            resp = self._session.post(
                GOOGLE_TOKEN_URL,
                data={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "refresh_token": token.refresh_token,
                    "grant_type": "refresh_token",
                },
                timeout=self.timeout_seconds,
            )
        except requests.RequestException as e:
            raise GatewayError(f"token refresh failed: {e}") from e

        if resp.status_code in (400, 401):
            # invalid_grant: the refresh token was revoked or has expired.
            raise GatewayUnauthenticatedError(f"token refresh rejected for owner {token.owner}")
        if resp.status_code >= 400:
            raise GatewayError(f"token refresh failed: HTTP {resp.status_code}")

        data = self._json(resp)
        access_token = data.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise GatewayError("token refresh response carried no access_token")

        expires_in = data.get("expires_in")
        refreshed = token.model_copy(
            update={
                "access_token": access_token,
                "refresh_token": data.get("refresh_token") or token.refresh_token,
                "expires_at": (
                    self._clock() + timedelta(seconds=int(expires_in))
                    if isinstance(expires_in, int | float)
                    else None
                ),
                "scope": data.get("scope") or token.scope,
            }
        )
        self.token_store.put(refreshed)
        logger.info("Refreshed OAuth token", extra={"owner": token.owner})
        return refreshed

    # ---- HTTP helpers ----

    def _send(self, method: str, url: str, access_token: str, **kwargs: Any) -> requests.Response:
        headers = dict(kwargs.pop("headers", None) or {})
        headers["Authorization"] = f"Bearer {access_token}"
        try:
            resp = self._session.request(
                method, url, headers=headers, timeout=self.timeout_seconds, **kwargs
            )
        except requests.Timeout as e:
            raise GatewayError("request timed out") from e
        except requests.RequestException as e:
            raise GatewayError(str(e)) from e

        if resp.status_code == 401:
            raise GatewayUnauthenticatedError("access token rejected")
        if resp.status_code >= 400:
            raise GatewayError(f"HTTP {resp.status_code}: {resp.text[:200]}")
        return resp

    @staticmethod
    def _json(resp: requests.Response) -> dict[str, Any]:
        try:
            data = resp.json()
        except ValueError as e:
            # requests' JSONDecodeError subclasses ValueError.
            raise GatewayError(f"response is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise GatewayError("response is not a JSON object")
        return data
