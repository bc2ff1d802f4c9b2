from dataclasses import dataclass
from datetime import timedelta
import uuid

import jwt

from shops_auth.core.config import Settings
from shops_auth.core.errors import InvalidOAuthState
from shops_auth.db.models import UserRole
from shops_auth.security.utils import now_utc, to_epoch

STATE_TYPE = 'oauth_state'


@dataclass(frozen=True)
class OAuthState:
    role: UserRole
    nonce: str
    redirect_url: str


class OAuthStateCodec:
    """Signs the ``state`` round-tripped through the identity provider.

    The role embedded in the state decides the role of a newly created
    account, so the callback only trusts a state this service signed.
    """

    def __init__(self, settings: Settings):
        self.secret = settings.OAUTH_STATE_SECRET
        self.ttl = timedelta(minutes=settings.OAUTH_STATE_TTL_MIN)
        self.algorithm = settings.JWT_ALGORITHM

    def issue(self, role: UserRole, redirect_url: str) -> tuple[str, OAuthState]:
        state = OAuthState(role=role, nonce=uuid.uuid4().hex, redirect_url=redirect_url)
        issued = now_utc()
        payload = {
            'role': state.role.value,
            'nonce': state.nonce,
            'redirectUrl': state.redirect_url,
            'type': STATE_TYPE,
            'iat': to_epoch(issued),
            'exp': to_epoch(issued + self.ttl),
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm), state

    def verify(self, raw: str) -> OAuthState:
        try:
            claims = jwt.decode(raw, self.secret, algorithms=[self.algorithm], options={'require': ['exp']})
        except jwt.PyJWTError as exc:
            raise InvalidOAuthState() from exc
        if claims.get('type') != STATE_TYPE:
            raise InvalidOAuthState()
        try:
            return OAuthState(
                role=UserRole(claims['role']),
                nonce=str(claims['nonce']),
                redirect_url=str(claims.get('redirectUrl') or ''),
            )
        except (KeyError, ValueError) as exc:
            raise InvalidOAuthState() from exc
