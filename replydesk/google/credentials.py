"""Per-tenant Google OAuth credentials with transparent refresh."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import httpx
import structlog

from replydesk.core.exceptions import (
    ConfigurationError,
    NotConnectedError,
    UpstreamUnavailableError,
)
from replydesk.storage.supabase_store import SupabaseStore

logger = structlog.get_logger(__name__)

# Refresh tokens this close to expiry so they don't lapse mid-request
EXPIRY_SKEW = timedelta(seconds=60)
DEFAULT_TOKEN_LIFETIME = 3600


@dataclass(frozen=True)
class GoogleCredential:
    user_id: str
    access_token: str
    expires_at: Optional[datetime]


def _parse_expiry(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class CredentialStore:
    """
    Hands out valid bearer tokens for a tenant's Google account.

    Tokens live in the ``api_keys`` table. An expiring token is refreshed
    against Google's token endpoint and written back before it is returned.
    """

    def __init__(
        self,
        store: SupabaseStore,
        client_id: Optional[str],
        client_secret: Optional[str],
        token_url: str = "https://oauth2.googleapis.com/token",
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 20.0,
    ):
        self._store = store
        self._client_id = client_id
        self._client_secret = client_secret
        self._token_url = token_url
        self._http = http_client
        self._timeout = timeout

    async def get_valid_credential(self, user_id: str) -> GoogleCredential:
        """
        Return a non-expired credential for the tenant.

        Raises:
            NotConnectedError: No stored token, or Google refused the refresh.
            UpstreamUnavailableError: The token endpoint could not be reached.
        """
        row = self._store.get_api_key(user_id)
        if not row or not row.get("access_token"):
            raise NotConnectedError(
                "No Google credential stored for tenant", {"user_id": user_id}
            )

        expires_at = _parse_expiry(row.get("expires_at"))
        now = datetime.now(timezone.utc)
        if expires_at is None or expires_at - EXPIRY_SKEW > now:
            return GoogleCredential(user_id, row["access_token"], expires_at)

        refresh_token = row.get("refresh_token")
        if not refresh_token:
            raise NotConnectedError(
                "Google access token expired and no refresh token is stored",
                {"user_id": user_id},
            )

        return await self._refresh(user_id, refresh_token)

    async def _refresh(self, user_id: str, refresh_token: str) -> GoogleCredential:
        if not self._client_id or not self._client_secret:
            raise ConfigurationError(
                "Google OAuth client credentials are not configured",
                config_key="google_client_id",
            )

        data = {
            "client_id": self._client_id,
            "client_secret": self._client_secret,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        }
        try:
            if self._http is not None:
                response = await self._http.post(self._token_url, data=data)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(self._token_url, data=data)
        except httpx.RequestError as e:
            logger.error("google_token_refresh_unreachable", user_id=user_id, error=str(e))
            raise UpstreamUnavailableError(
                f"Google token endpoint unreachable: {e}", {"user_id": user_id}
            ) from e

        if response.status_code >= 500:
            logger.error(
                "google_token_refresh_unavailable",
                user_id=user_id,
                status_code=response.status_code,
            )
            raise UpstreamUnavailableError(
                "Google token endpoint unavailable",
                {"user_id": user_id, "status_code": response.status_code},
            )

        payload = response.json() if response.content else {}
        if response.status_code != 200 or "access_token" not in payload:
            # invalid_grant: the tenant revoked access or the token was rotated
            logger.warning(
                "google_token_refresh_rejected",
                user_id=user_id,
                status_code=response.status_code,
                error=payload.get("error"),
            )
            raise NotConnectedError(
                "Google refused to refresh the access token",
                {"user_id": user_id, "error": payload.get("error")},
            )

        expires_at = datetime.now(timezone.utc) + timedelta(
            seconds=int(payload.get("expires_in", DEFAULT_TOKEN_LIFETIME))
        )
        self._store.save_api_key(
            user_id,
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token") or refresh_token,
            expires_at=expires_at,
        )
        logger.info("google_token_refreshed", user_id=user_id)
        return GoogleCredential(user_id, payload["access_token"], expires_at)
