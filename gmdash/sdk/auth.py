"""OAuth2 credential lifecycle for the gmdash SDK.

The credential manager builds authorization URLs, trades authorization codes
for tokens and refreshes expired access tokens on demand. Credentials are
immutable values: a refresh returns a new ``Credential`` instead of mutating
shared client state.

Example usage:
    from gmdash.sdk.auth import CredentialManager

    manager = CredentialManager.from_config()
    url = manager.build_authorization_url(state="session-123")
    credential = manager.exchange_code(code_from_callback)
    credential = manager.ensure_valid(credential)
"""

import time
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional, Tuple

import requests
import google.auth.exceptions
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials as GoogleCredentials
from google_auth_oauthlib.flow import Flow
from oauthlib.oauth2 import WebApplicationClient
from oauthlib.oauth2.rfc6749.errors import OAuth2Error

from .config import get_config_value, load_client_config
from .exceptions import (
    AuthExchangeError,
    ClientConfigError,
    ProviderError,
    RefreshError,
)
from .timing import time_api_call

logger = logging.getLogger(__name__)

# Scopes requested at login
DEFAULT_SCOPES = (
    "https://www.googleapis.com/auth/gmail.readonly",
    "https://www.googleapis.com/auth/gmail.send",
    "https://www.googleapis.com/auth/gmail.modify",
    "https://www.googleapis.com/auth/gmail.labels",
    "https://www.googleapis.com/auth/gmail.settings.basic",
)

# Scope aliases for convenience
SCOPE_ALIASES = {
    "mail-read": "https://www.googleapis.com/auth/gmail.readonly",
    "mail-send": "https://www.googleapis.com/auth/gmail.send",
    "mail-modify": "https://www.googleapis.com/auth/gmail.modify",
    "mail-labels": "https://www.googleapis.com/auth/gmail.labels",
    "mail-settings": "https://www.googleapis.com/auth/gmail.settings.basic",
    "mail": "https://www.googleapis.com/auth/gmail.modify",
}

AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
TOKEN_URI = "https://oauth2.googleapis.com/token"


def resolve_scope_alias(alias: str) -> str:
    """Resolve a scope alias to its full URL, or return the input if not an alias."""
    return SCOPE_ALIASES.get(alias, alias)


def resolve_scopes(scopes: Iterable[str]) -> Tuple[str, ...]:
    """Resolve aliases and drop duplicates, keeping a stable sorted order."""
    return tuple(sorted({resolve_scope_alias(scope) for scope in scopes}))


def now_ms() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * 1000)


def _datetime_to_ms(value: Optional[datetime]) -> Optional[int]:
    """Convert google-auth's naive UTC expiry to epoch milliseconds."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


@dataclass(frozen=True)
class Credential:
    """OAuth2 token pair plus expiry, owned by one session."""

    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "Bearer"
    expiry_ms: Optional[int] = None
    scopes: Tuple[str, ...] = field(default_factory=tuple)

    def is_expired(self, at_ms: Optional[int] = None) -> bool:
        """True when the expiry is unknown or not strictly in the future."""
        if self.expiry_ms is None:
            return True
        return self.expiry_ms <= (now_ms() if at_ms is None else at_ms)

    def to_dict(self) -> Dict[str, Any]:
        """Session blob form of the credential."""
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "token_type": self.token_type,
            "expiry_ms": self.expiry_ms,
            "scope": " ".join(self.scopes),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Credential":
        scope = data.get("scope") or ""
        scopes = scope.split() if isinstance(scope, str) else list(scope)
        expiry = data.get("expiry_ms")
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            token_type=data.get("token_type") or "Bearer",
            expiry_ms=int(expiry) if expiry is not None else None,
            scopes=tuple(scopes),
        )

    @classmethod
    def from_token_response(cls, token: Dict[str, Any]) -> "Credential":
        """Build a credential from an OAuth token endpoint response."""
        expires_at = token.get("expires_at")
        if expires_at is None and token.get("expires_in") is not None:
            expires_at = time.time() + float(token["expires_in"])
        scope = token.get("scope") or ""
        scopes = scope.split() if isinstance(scope, str) else list(scope)
        return cls(
            access_token=token["access_token"],
            refresh_token=token.get("refresh_token"),
            token_type=token.get("token_type") or "Bearer",
            expiry_ms=int(float(expires_at) * 1000) if expires_at is not None else None,
            scopes=tuple(scopes),
        )

    def to_google_credentials(self) -> GoogleCredentials:
        """Access-token-only google-auth credentials for API clients.

        Carries no refresh material, so an API client built from it can
        never refresh on its own.
        """
        return GoogleCredentials(token=self.access_token)


class CredentialManager:
    """Builds OAuth flows and keeps credentials valid.

    Args:
        client_config: Google client secrets dict ("web" or "installed" key).
        redirect_uri: Callback URI; defaults to the first configured one.
        scopes: Scope aliases or URLs requested at login.
    """

    def __init__(
        self,
        client_config: Dict[str, Any],
        redirect_uri: Optional[str] = None,
        scopes: Optional[Iterable[str]] = None,
    ):
        client_type = "web" if "web" in client_config else "installed"
        if client_type not in client_config:
            raise ClientConfigError(
                "Invalid client config. Expected 'installed' or 'web' key.",
                operation="build credential manager",
            )
        self.client_config = client_config
        self._app = client_config[client_type]

        if redirect_uri is None:
            redirect_uris = self._app.get("redirect_uris") or []
            if not redirect_uris:
                raise ClientConfigError(
                    "Client config has no redirect_uris and no redirect_uri was given.",
                    operation="build credential manager",
                )
            redirect_uri = redirect_uris[0]
        self.redirect_uri = redirect_uri
        self.scopes = resolve_scopes(scopes or DEFAULT_SCOPES)

    @classmethod
    def from_config(cls) -> "CredentialManager":
        """Build a manager from the gmdash config file and environment."""
        return cls(
            load_client_config(),
            redirect_uri=get_config_value("oauth.redirect_uri"),
            scopes=get_config_value("oauth.scopes"),
        )

    @property
    def client_id(self) -> str:
        return self._app["client_id"]

    @property
    def token_uri(self) -> str:
        return self._app.get("token_uri", TOKEN_URI)

    def _flow(self) -> Flow:
        return Flow.from_client_config(
            self.client_config,
            scopes=list(self.scopes),
            redirect_uri=self.redirect_uri,
            autogenerate_code_verifier=False,
        )

    def build_authorization_url(
        self,
        scopes: Optional[Iterable[str]] = None,
        state: Optional[str] = None,
    ) -> str:
        """
        Build the consent URL for the user to visit.

        Offline access and forced consent make Google issue a refresh token
        on every login, including repeat logins.

        Args:
            scopes: Scope aliases or URLs (defaults to the manager's scopes)
            state: Opaque value echoed back to the callback; omitted from
                the URL when not given

        Returns:
            The authorization URL
        """
        resolved = resolve_scopes(scopes) if scopes else self.scopes
        client = WebApplicationClient(self.client_id)
        return client.prepare_request_uri(
            self._app.get("auth_uri", AUTH_URI),
            redirect_uri=self.redirect_uri,
            scope=list(resolved),
            state=state,
            access_type="offline",
            prompt="consent",
        )

    @time_api_call
    def exchange_code(self, code: str) -> Credential:
        """
        Trade a one-time authorization code for a credential.

        Raises:
            AuthExchangeError: If the code is missing, invalid or expired,
                or the token endpoint cannot be reached.
        """
        if not code:
            raise AuthExchangeError(
                "Authorization code not found",
                operation="exchange code",
            )

        flow = self._flow()
        try:
            token = flow.fetch_token(code=code)
        except (OAuth2Error, requests.RequestException, Warning) as e:
            logger.error(f"Error retrieving access token: {e}")
            raise AuthExchangeError(
                f"Failed to retrieve access token: {e}",
                operation="exchange code",
            ) from e

        credential = Credential.from_token_response(token)
        if not credential.refresh_token:
            logger.warning("Token response carried no refresh token")
        logger.info("Authorization code exchanged successfully")
        return credential

    def ensure_valid(self, credential: Credential, now: Optional[int] = None) -> Credential:
        """
        Return a credential that is valid for immediate use.

        Refreshes synchronously when the expiry is absent or already past;
        otherwise the same credential is returned unchanged.

        Args:
            credential: The session's current credential
            now: Current time in epoch milliseconds (defaults to the clock)

        Raises:
            RefreshError: If the refresh token is missing, revoked or rejected.
        """
        if not credential.is_expired(now):
            return credential
        logger.info("Token expired, refreshing...")
        return self.refresh(credential)

    @time_api_call
    def refresh(self, credential: Credential) -> Credential:
        """
        Exchange the refresh token for a new access token.

        Returns:
            A new Credential; the refresh token is kept unless Google
            issued a replacement.

        Raises:
            RefreshError: If the refresh token is missing, revoked or rejected.
            ProviderError: If the token endpoint cannot be reached.
        """
        if not credential.refresh_token:
            raise RefreshError(
                "Credentials expired and no refresh token available",
                operation="refresh token",
            )

        google_creds = GoogleCredentials(
            token=credential.access_token,
            refresh_token=credential.refresh_token,
            token_uri=self.token_uri,
            client_id=self._app["client_id"],
            client_secret=self._app.get("client_secret"),
        )
        try:
            google_creds.refresh(Request())
        except google.auth.exceptions.RefreshError as e:
            logger.error(f"Error refreshing access token: {e}")
            raise RefreshError(
                f"Failed to refresh token: {e}",
                operation="refresh token",
            ) from e
        except google.auth.exceptions.TransportError as e:
            logger.error(f"Token endpoint unreachable: {e}")
            raise ProviderError(
                f"Failed to reach token endpoint: {e}",
                operation="refresh token",
            ) from e

        refreshed = replace(
            credential,
            access_token=google_creds.token,
            refresh_token=google_creds.refresh_token or credential.refresh_token,
            expiry_ms=_datetime_to_ms(google_creds.expiry),
        )
        logger.info("Token refreshed successfully")
        return refreshed
