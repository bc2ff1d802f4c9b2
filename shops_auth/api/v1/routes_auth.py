from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Request, Response, status

from shops_auth.api.cookies import REFRESH_COOKIE, clear_auth_cookies, set_auth_cookies
from shops_auth.api.deps import (
    get_app_settings,
    get_auth_service,
    get_client_info,
    get_current_user,
    require_role,
)
from shops_auth.api.ratelimit import rate_limit
from shops_auth.api.v1.schemas import LoginPayload, RefreshRequest, RegisterPayload
from shops_auth.core.config import Settings
from shops_auth.core.errors import BadRequest
from shops_auth.core.logging import get_logger
from shops_auth.db.models import UserRole
from shops_auth.schemas import UserProfile
from shops_auth.security.utils import now_utc
from shops_auth.services.auth_service import AuthService, ClientInfo
from shops_auth.version import VERSION

logger = get_logger(__name__)

router = APIRouter()  # main.py mounts at /api/auth


def user_json(user: UserProfile) -> dict:
    return user.model_dump(by_alias=True, mode='json')


def ok(message: str, **data: Any) -> dict:
    body: dict[str, Any] = {'success': True, 'message': message}
    if data:
        body['data'] = data
    return body


@router.get('/health')
def health() -> dict:
    return ok('Authentication service is healthy', timestamp=now_utc().isoformat() + 'Z', service='auth', version=VERSION)


@router.post('/register', status_code=status.HTTP_201_CREATED, dependencies=[Depends(rate_limit('registration'))])
def register(payload: RegisterPayload, response: Response,
             client: ClientInfo = Depends(get_client_info),
             service: AuthService = Depends(get_auth_service),
             settings: Settings = Depends(get_app_settings)) -> dict:
    result = service.register(str(payload.email), payload.password, payload.role, payload.name, client=client)
    set_auth_cookies(response, result.access_token, result.refresh_token, settings)
    logger.info('user registered', user_id=result.user.id, role=result.user.role.value, ip=client.ip_address)
    return ok('User registered successfully', user=user_json(result.user), accessToken=result.access_token)


@router.post('/login', dependencies=[Depends(rate_limit('auth'))])
def login(payload: LoginPayload, response: Response,
          client: ClientInfo = Depends(get_client_info),
          service: AuthService = Depends(get_auth_service),
          settings: Settings = Depends(get_app_settings)) -> dict:
    result = service.login(str(payload.email), payload.password, payload.role, client=client)
    set_auth_cookies(response, result.access_token, result.refresh_token, settings)
    logger.info('user logged in', user_id=result.user.id, role=result.user.role.value, ip=client.ip_address)
    return ok('Login successful', user=user_json(result.user))


@router.post('/refresh', dependencies=[Depends(rate_limit('auth'))])
def refresh_token(request: Request, response: Response,
                  payload: Optional[RefreshRequest] = Body(default=None),
                  client: ClientInfo = Depends(get_client_info),
                  service: AuthService = Depends(get_auth_service),
                  settings: Settings = Depends(get_app_settings)) -> dict:
    raw = request.cookies.get(REFRESH_COOKIE) or (payload.refresh_token if payload else None)
    if not raw:
        raise BadRequest('MISSING_REFRESH_TOKEN', 'Refresh token is required')

    result = service.refresh(raw, client=client)
    set_auth_cookies(response, result.access_token, result.refresh_token, settings)
    logger.info('token refreshed', user_id=result.user.id, ip=client.ip_address)
    return ok('Token refreshed successfully', user=user_json(result.user))


@router.post('/logout')
def logout(request: Request, response: Response,
           payload: Optional[RefreshRequest] = Body(default=None),
           client: ClientInfo = Depends(get_client_info),
           service: AuthService = Depends(get_auth_service),
           settings: Settings = Depends(get_app_settings)) -> dict:
    raw = request.cookies.get(REFRESH_COOKIE) or (payload.refresh_token if payload else None)
    if raw:
        service.logout(raw, client=client)
    clear_auth_cookies(response, settings)
    logger.info('user logged out', ip=client.ip_address)
    return ok('Logged out successfully')


@router.post('/logout-all')
def logout_all(response: Response,
               user: UserProfile = Depends(get_current_user),
               client: ClientInfo = Depends(get_client_info),
               service: AuthService = Depends(get_auth_service),
               settings: Settings = Depends(get_app_settings)) -> dict:
    revoked = service.logout_all(user.id, client=client)
    clear_auth_cookies(response, settings)
    logger.info('user logged out from all sessions', user_id=user.id, revoked=revoked)
    return ok('Logged out from all sessions successfully', revoked=revoked)


@router.get('/me')
def me(user: UserProfile = Depends(get_current_user)) -> dict:
    return ok('Profile retrieved successfully', user=user_json(user))


@router.get('/customer/profile')
def customer_profile(user: UserProfile = Depends(require_role(UserRole.CUSTOMER))) -> dict:
    return ok('Profile retrieved successfully', user=user_json(user))


@router.get('/merchant/profile')
def merchant_profile(user: UserProfile = Depends(require_role(UserRole.MERCHANT))) -> dict:
    return ok('Profile retrieved successfully', user=user_json(user))


@router.get('/rider/profile')
def rider_profile(user: UserProfile = Depends(require_role(UserRole.RIDER))) -> dict:
    return ok('Profile retrieved successfully', user=user_json(user))
