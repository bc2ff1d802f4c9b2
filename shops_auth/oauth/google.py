"""Google OAuth bridge.

The orchestrator only depends on the ``OAuthProvider`` protocol; tests plug in
a fake, production uses ``GoogleOAuthClient``.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Protocol

import httpx
from authlib.integrations.httpx_client import OAuth2Client

from shops_auth.core.config import Settings
from shops_auth.core.errors import OAuthProviderError
from shops_auth.core.logging import get_logger
from shops_auth.security.utils import from_epoch

logger = get_logger(__name__)

AUTHORIZE_URL = 'https://accounts.google.com/o/oauth2/v2/auth'
TOKEN_URL = 'https://oauth2.googleapis.com/token'
USERINFO_URL = 'https://openidconnect.googleapis.com/v1/userinfo'
SCOPES = 'openid email profile'


@dataclass(frozen=True)
class ProviderTokens:
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None


@dataclass(frozen=True)
class ProviderProfile:
    subject_id: Optional[str]
    email: Optional[str]
    email_verified: bool
    name: Optional[str]


class OAuthProvider(Protocol):
    def generate_authorization_url(self, state: str) -> str: ...
    def exchange_code_for_tokens(self, code: str) -> ProviderTokens: ...
    def fetch_profile(self, access_token: str) -> ProviderProfile: ...


def parse_profile(data: dict[str, Any]) -> ProviderProfile:
    # OpenID userinfo says ``email_verified``; the legacy v2 endpoint says ``verified_email``.
    verified = data.get('email_verified', data.get('verified_email'))
    if isinstance(verified, str):
        verified = verified.lower() == 'true'
    subject = data.get('sub') or data.get('id')
    return ProviderProfile(
        subject_id=str(subject) if subject else None,
        email=data.get('email') or None,
        email_verified=verified is True,
        name=data.get('name') or None,
    )


class GoogleOAuthClient:
    def __init__(self, settings: Settings, transport: Optional[httpx.BaseTransport] = None):
        self.client_id = settings.GOOGLE_CLIENT_ID
        self.client_secret = settings.GOOGLE_CLIENT_SECRET
        self.redirect_uri = settings.GOOGLE_REDIRECT_URI
        self.timeout = settings.OAUTH_HTTP_TIMEOUT_SECONDS
        self.transport = transport
        if not self.client_id or not self.client_secret:
            logger.warning('google oauth not configured', redirect_uri=self.redirect_uri)

    def _oauth_client(self) -> OAuth2Client:
        kwargs: dict[str, Any] = {'timeout': self.timeout}
        if self.transport is not None:
            kwargs['transport'] = self.transport
        return OAuth2Client(
            client_id=self.client_id,
            client_secret=self.client_secret,
            scope=SCOPES,
            redirect_uri=self.redirect_uri,
            **kwargs,
        )

    def _http_client(self) -> httpx.Client:
        return httpx.Client(timeout=self.timeout, transport=self.transport)

    def generate_authorization_url(self, state: str) -> str:
        with self._oauth_client() as client:
            url, _ = client.create_authorization_url(
                AUTHORIZE_URL, state=state, access_type='offline', prompt='consent'
            )
        return url

    def exchange_code_for_tokens(self, code: str) -> ProviderTokens:
        try:
            with self._oauth_client() as client:
                token = client.fetch_token(TOKEN_URL, code=code)
        except Exception as exc:
            logger.error('google code exchange failed', error=str(exc))
            raise OAuthProviderError('Failed to exchange authorization code') from exc

        access = token.get('access_token')
        if not access:
            raise OAuthProviderError('Failed to get access token from Google')
        expires_at = token.get('expires_at')
        return ProviderTokens(
            access_token=access,
            refresh_token=token.get('refresh_token'),
            expires_at=from_epoch(expires_at) if expires_at else None,
        )

    def fetch_profile(self, access_token: str) -> ProviderProfile:
        try:
            with self._http_client() as client:
                resp = client.get(USERINFO_URL, headers={'Authorization': f'Bearer {access_token}'})
                resp.raise_for_status()
                data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error('google userinfo failed', error=str(exc))
            raise OAuthProviderError('Failed to get user information from Google') from exc
        if not isinstance(data, dict):
            raise OAuthProviderError('Unexpected userinfo response from Google')
        return parse_profile(data)
