from typing import Optional

from fastapi import APIRouter, Body, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse

from shops_auth.api.cookies import (
    OAUTH_STATE_COOKIE,
    clear_oauth_state_cookie,
    set_auth_cookies,
    set_oauth_state_cookie,
)
from shops_auth.api.deps import get_app_settings, get_auth_service, get_client_info
from shops_auth.api.ratelimit import rate_limit
from shops_auth.api.v1.routes_auth import ok, user_json
from shops_auth.api.v1.schemas import GoogleCallbackPayload
from shops_auth.core.config import Settings
from shops_auth.core.errors import BadRequest, InvalidOAuthState
from shops_auth.core.logging import get_logger
from shops_auth.db.models import UserRole
from shops_auth.services.auth_service import AuthResult, AuthService, ClientInfo

logger = get_logger(__name__)

router = APIRouter(dependencies=[Depends(rate_limit('oauth'))])


def dashboard_url(settings: Settings, role: UserRole) -> str:
    return f"{settings.WEB_ORIGIN.rstrip('/')}/{role.value.lower()}/dashboard"


def parse_role(raw: Optional[str]) -> UserRole:
    if not raw:
        raise BadRequest('MISSING_PARAMETERS', 'Role parameter is required')
    try:
        return UserRole(raw.upper())
    except ValueError:
        raise BadRequest('INVALID_ROLE', 'Role must be one of CUSTOMER, MERCHANT or RIDER') from None


@router.get('/google')
def google_start(role: Optional[str] = None,
                 service: AuthService = Depends(get_auth_service),
                 settings: Settings = Depends(get_app_settings)):
    user_role = parse_role(role)
    start = service.generate_google_auth_url(user_role, dashboard_url(settings, user_role))
    response = RedirectResponse(start.url, status_code=302)
    set_oauth_state_cookie(response, start.nonce, settings)
    logger.info('google oauth started', role=user_role.value)
    return response


def _complete(request: Request, code: Optional[str], state: Optional[str],
              client: ClientInfo, service: AuthService) -> AuthResult:
    if not code or not state:
        raise BadRequest('MISSING_PARAMETERS', 'Authorization code and state are required')
    nonce = request.cookies.get(OAUTH_STATE_COOKIE)
    if not nonce:
        raise InvalidOAuthState('OAuth state cookie is missing')
    return service.google_auth(code, state, expected_nonce=nonce, client=client)


@router.get('/google/callback')
def google_callback(request: Request, code: Optional[str] = None, state: Optional[str] = None,
                    client: ClientInfo = Depends(get_client_info),
                    service: AuthService = Depends(get_auth_service),
                    settings: Settings = Depends(get_app_settings)):
    result = _complete(request, code, state, client, service)
    response = RedirectResponse(dashboard_url(settings, result.user.role), status_code=302)
    set_auth_cookies(response, result.access_token, result.refresh_token, settings)
    clear_oauth_state_cookie(response, settings)
    logger.info('google oauth completed', user_id=result.user.id, role=result.user.role.value)
    return response


@router.post('/google/callback')
def google_callback_json(request: Request,
                         payload: Optional[GoogleCallbackPayload] = Body(default=None),
                         client: ClientInfo = Depends(get_client_info),
                         service: AuthService = Depends(get_auth_service),
                         settings: Settings = Depends(get_app_settings)):
    payload = payload or GoogleCallbackPayload()
    result = _complete(request, payload.code, payload.state, client, service)
    response = JSONResponse(ok('Google authentication successful',
                               user=user_json(result.user), accessToken=result.access_token))
    set_auth_cookies(response, result.access_token, result.refresh_token, settings)
    clear_oauth_state_cookie(response, settings)
    logger.info('google oauth completed', user_id=result.user.id, role=result.user.role.value)
    return response
