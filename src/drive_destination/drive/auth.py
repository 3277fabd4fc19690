"""OAuth2 session for Google Drive: code exchange, refresh-on-expiry, revocation."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials as OAuthCredentials
from google_auth_oauthlib.flow import Flow
from googleapiclient.discovery import build

from drive_destination.drive.models import Credentials, TokenPair
from drive_destination.errors import (
    AuthExchangeError,
    ExpiredCredentialError,
    NotAuthorizedError,
    NotConfiguredError,
)
from drive_destination.storage.token_store import TokenStore, token_store_from_config

if TYPE_CHECKING:
    from drive_destination.config import AppConfig

logger = logging.getLogger(__name__)

DRIVE_SCOPES = ["https://www.googleapis.com/auth/drive.file"]
AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
TOKEN_URI = "https://oauth2.googleapis.com/token"


class AuthSession:
    """Produces an authenticated Drive service handle for every remote call.

    States: unauthenticated (no token), authenticated with a valid token,
    authenticated with an expired token. An expired token is refreshed
    silently when a refresh token is stored; otherwise the caller must
    re-authorize. ``revoke()`` returns to the unauthenticated state.
    """

    def __init__(self, token_store: TokenStore, redirect_uri: str) -> None:
        """Initialise the session.

        Args:
            token_store: Persistence for credentials; the only shared state.
            redirect_uri: Absolute URL of the OAuth callback route.
        """
        self._store = token_store
        self._redirect_uri = redirect_uri
        # Set right after an interactive authorization, before any persisted
        # token is read back by this process.
        self._session_token: str | None = None

    @property
    def is_configured(self) -> bool:
        """Whether the OAuth client id and secret are stored."""
        return self._store.load_credentials().has_client

    @property
    def is_authorized(self) -> bool:
        """Whether a stored or session-scoped access token exists."""
        return bool(self._store.load_credentials().access_token or self._session_token)

    def configure_client(self, client_id: str, client_secret: str) -> None:
        """Persist the OAuth client id and secret."""
        creds = self._store.load_credentials()
        creds.client_id = client_id
        creds.client_secret = client_secret
        self._store.save_credentials(creds)
        logger.info("[configure_client] stored OAuth client credentials")

    def authorization_url(self, state: str | None = None) -> str:
        """Build the Google consent URL for offline Drive file access.

        Args:
            state: Optional opaque value echoed back to the callback.

        Returns:
            Authorization URL to redirect the browser to.

        Raises:
            NotConfiguredError: If the client id or secret is missing.
        """
        flow = self._flow(self._require_client())
        auth_url, _ = flow.authorization_url(
            access_type="offline",
            prompt="consent",
            state=state,
        )
        return str(auth_url)

    def exchange_authorization_code(self, code: str) -> TokenPair:
        """Exchange a one-shot authorization code for an access/refresh token pair.

        The pair is persisted immediately and the access token is kept as the
        session token.

        Args:
            code: Authorization code received on the callback route.

        Returns:
            The new TokenPair.

        Raises:
            NotConfiguredError: If the client id or secret is missing.
            AuthExchangeError: If Google rejects the code (invalid, expired, reused).
        """
        creds = self._require_client()
        flow = self._flow(creds)
        try:
            flow.fetch_token(code=code)
        except Exception as exc:
            description = getattr(exc, "description", None) or str(exc)
            logger.error("[exchange_authorization_code] code exchange failed; error:%s", description)
            raise AuthExchangeError(description) from exc

        oauth = flow.credentials
        pair = TokenPair(
            access_token=oauth.token,
            refresh_token=oauth.refresh_token or "",
            expiry=oauth.expiry,
        )
        creds.access_token = pair.access_token
        creds.refresh_token = pair.refresh_token
        creds.token_expiry = pair.expiry
        self._store.save_credentials(creds)
        self._session_token = pair.access_token
        logger.info(
            "[exchange_authorization_code] authorization complete; has_refresh_token:%s",
            bool(pair.refresh_token),
        )
        return pair

    def ensure_authenticated(self) -> Any:
        """Return a Drive v3 service built on a non-expired access token.

        Returns:
            googleapiclient Resource for the Drive v3 API.

        Raises:
            NotAuthorizedError: If there is neither a stored nor a session token.
            ExpiredCredentialError: If the stored token expired and cannot be refreshed.
        """
        creds = self._store.load_credentials()

        if not creds.access_token:
            if not self._session_token:
                raise NotAuthorizedError(
                    "Google Drive authorization is required. Please authorize the application first."
                )
            logger.info("[ensure_authenticated] using session token from recent authorization")
            return self._build_service(self._oauth_credentials(creds, token=self._session_token))

        oauth = self._oauth_credentials(creds)
        if oauth.expired:
            if not creds.refresh_token:
                raise ExpiredCredentialError(
                    "Google Drive access token expired and no refresh token is available. "
                    "Please re-authorize."
                )
            self._refresh(creds, oauth)

        return self._build_service(oauth)

    def revoke(self) -> None:
        """Forget the access and refresh tokens. Revoking twice is not an error."""
        creds = self._store.load_credentials()
        creds.access_token = ""
        creds.refresh_token = ""
        creds.token_expiry = None
        self._store.save_credentials(creds)
        self._session_token = None
        logger.info("[revoke] cleared stored tokens")

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _require_client(self) -> Credentials:
        creds = self._store.load_credentials()
        if not creds.has_client:
            raise NotConfiguredError(
                "OAuth credentials not configured. Set the Google client id and secret first."
            )
        return creds

    def _flow(self, creds: Credentials) -> Flow:
        return Flow.from_client_config(
            {
                "web": {
                    "client_id": creds.client_id,
                    "client_secret": creds.client_secret,
                    "auth_uri": AUTH_URI,
                    "token_uri": TOKEN_URI,
                }
            },
            scopes=DRIVE_SCOPES,
            redirect_uri=self._redirect_uri,
            autogenerate_code_verifier=False,
        )

    @staticmethod
    def _oauth_credentials(creds: Credentials, token: str | None = None) -> OAuthCredentials:
        if token is not None:
            return OAuthCredentials(token=token, scopes=DRIVE_SCOPES)
        return OAuthCredentials(
            token=creds.access_token,
            refresh_token=creds.refresh_token or None,
            token_uri=TOKEN_URI,
            client_id=creds.client_id or None,
            client_secret=creds.client_secret or None,
            scopes=DRIVE_SCOPES,
            expiry=creds.token_expiry,
        )

    def _refresh(self, creds: Credentials, oauth: OAuthCredentials) -> None:
        """Refresh the access token and persist it before any further call."""
        try:
            oauth.refresh(Request())
        except RefreshError as exc:
            logger.error("[_refresh] token refresh rejected; error:%s", exc)
            raise ExpiredCredentialError(
                f"Google Drive token refresh failed: {exc}. Please re-authorize."
            ) from exc

        creds.access_token = oauth.token
        creds.token_expiry = oauth.expiry
        if oauth.refresh_token:
            creds.refresh_token = oauth.refresh_token
        self._store.save_credentials(creds)
        logger.info("[_refresh] refreshed access token; expiry:%s", creds.token_expiry)

    @staticmethod
    def _build_service(oauth: OAuthCredentials) -> Any:
        return build("drive", "v3", credentials=oauth, cache_discovery=False)


def auth_session_from_config(
    config: AppConfig, token_store: TokenStore | None = None
) -> AuthSession:
    """Construct an AuthSession from application configuration.

    Client credentials present in the configuration are written to the
    token store when they differ from the stored ones.

    Args:
        config: Application configuration instance.
        token_store: Store to use; a BlobTokenStore from the config by default.

    Returns:
        Configured AuthSession instance.
    """
    store = token_store or token_store_from_config(config)
    session = AuthSession(token_store=store, redirect_uri=config.redirect_uri)
    if config.client_id and config.client_secret:
        stored = store.load_credentials()
        if (stored.client_id, stored.client_secret) != (config.client_id, config.client_secret):
            session.configure_client(config.client_id, config.client_secret)
    return session
