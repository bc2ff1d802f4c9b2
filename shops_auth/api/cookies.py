from fastapi import Response

from shops_auth.core.config import Settings
from shops_auth.core.logging import get_logger

logger = get_logger(__name__)

ACCESS_COOKIE = 'accessToken'
REFRESH_COOKIE = 'refreshToken'
OAUTH_STATE_COOKIE = 'oauthState'


def _options(settings: Settings) -> dict:
    return {
        'path': '/',
        'domain': settings.COOKIE_DOMAIN,
        'secure': settings.cookie_secure,
        'httponly': True,
        'samesite': 'strict',
    }


def set_access_token_cookie(response: Response, token: str, settings: Settings) -> None:
    response.set_cookie(ACCESS_COOKIE, token, max_age=settings.ACCESS_TOKEN_TTL_MIN * 60, **_options(settings))


def set_refresh_token_cookie(response: Response, token: str, settings: Settings) -> None:
    response.set_cookie(REFRESH_COOKIE, token, max_age=settings.REFRESH_TOKEN_TTL_DAYS * 86400, **_options(settings))


def set_auth_cookies(response: Response, access_token: str, refresh_token: str, settings: Settings) -> None:
    set_access_token_cookie(response, access_token, settings)
    set_refresh_token_cookie(response, refresh_token, settings)
    logger.debug('auth cookies set')


def clear_auth_cookies(response: Response, settings: Settings) -> None:
    response.delete_cookie(ACCESS_COOKIE, **_options(settings))
    response.delete_cookie(REFRESH_COOKIE, **_options(settings))
    logger.debug('auth cookies cleared')


def set_oauth_state_cookie(response: Response, nonce: str, settings: Settings) -> None:
    # Lax: the browser must send it on the top-level redirect back from the provider.
    opts = {**_options(settings), 'samesite': 'lax'}
    response.set_cookie(OAUTH_STATE_COOKIE, nonce, max_age=settings.OAUTH_STATE_TTL_MIN * 60, **opts)


def clear_oauth_state_cookie(response: Response, settings: Settings) -> None:
    response.delete_cookie(OAUTH_STATE_COOKIE, **{**_options(settings), 'samesite': 'lax'})
