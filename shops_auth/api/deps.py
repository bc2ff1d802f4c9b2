from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from shops_auth.api.cookies import ACCESS_COOKIE
from shops_auth.core.config import Settings
from shops_auth.core.errors import Forbidden, InvalidToken, Unauthorized
from shops_auth.core.logging import set_user_id
from shops_auth.db.models import UserRole
from shops_auth.schemas import UserProfile
from shops_auth.services.auth_service import AuthService, ClientInfo

security = HTTPBearer(auto_error=False)


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def client_ip(request: Request) -> str:
    return request.client.host if request.client else 'unknown'


def get_client_info(request: Request) -> ClientInfo:
    return ClientInfo(user_agent=request.headers.get('user-agent'), ip_address=client_ip(request))


def get_current_user(request: Request,
                     creds: HTTPAuthorizationCredentials = Depends(security),
                     service: AuthService = Depends(get_auth_service)) -> UserProfile:
    token = creds.credentials if creds else request.cookies.get(ACCESS_COOKIE)
    if not token:
        raise Unauthorized()
    try:
        user = service.authenticate(token)
    except InvalidToken as exc:
        raise Unauthorized('Invalid or expired access token') from exc
    request.state.user_id = user.id
    set_user_id(user.id)
    return user


def require_role(required: UserRole):
    def _checker(user: UserProfile = Depends(get_current_user)) -> UserProfile:
        if user.role != required:
            raise Forbidden()
        return user
    return _checker
