"""Signed access/refresh tokens.

Access and refresh tokens are HS256 JWTs signed with *different* secrets, so a
leaked access secret cannot mint refresh tokens and vice versa. Refresh tokens
are persisted only as their SHA-256 digest (see ``TokenCodec.hash``).
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Literal

import jwt

from shops_auth.core.config import Settings
from shops_auth.core.errors import InvalidToken
from shops_auth.security.utils import generate_jti, now_utc, to_epoch, token_sha256

TokenType = Literal['access', 'refresh']


@dataclass(frozen=True)
class IssuedToken:
    token: str
    expires_at: datetime
    jti: str | None = None


@dataclass(frozen=True)
class TokenPair:
    access: IssuedToken
    refresh: IssuedToken
    refresh_hash: str


@dataclass(frozen=True)
class TokenPayload:
    user_id: str
    email: str
    role: str
    type: str
    issued_at: int
    expires_at: int
    jti: str | None = None


class TokenCodec:
    def __init__(self, settings: Settings):
        self.settings = settings
        self._secrets = {
            'access': settings.JWT_ACCESS_SECRET,
            'refresh': settings.JWT_REFRESH_SECRET,
        }

    def _encode(self, user, token_type: TokenType, ttl: timedelta, jti: str | None = None) -> IssuedToken:
        issued = now_utc()
        exp = issued + ttl
        payload = {
            'sub': str(user.id),
            'email': user.email,
            'role': getattr(user.role, 'value', user.role),
            'type': token_type,
            'iat': to_epoch(issued),
            'exp': to_epoch(exp),
            'iss': self.settings.JWT_ISSUER,
            'aud': self.settings.JWT_AUDIENCE,
        }
        if jti:
            payload['jti'] = jti
        token = jwt.encode(payload, self._secrets[token_type], algorithm=self.settings.JWT_ALGORITHM)
        return IssuedToken(token=token, expires_at=exp, jti=jti)

    def issue_access_token(self, user) -> IssuedToken:
        return self._encode(user, 'access', timedelta(minutes=self.settings.ACCESS_TOKEN_TTL_MIN))

    def issue_refresh_token(self, user) -> IssuedToken:
        # jti only disambiguates two refresh tokens minted in the same second.
        return self._encode(user, 'refresh', timedelta(days=self.settings.REFRESH_TOKEN_TTL_DAYS), jti=generate_jti())

    def issue_pair(self, user) -> TokenPair:
        refresh = self.issue_refresh_token(user)
        return TokenPair(access=self.issue_access_token(user), refresh=refresh, refresh_hash=self.hash(refresh.token))

    def verify(self, token: str, expected_type: TokenType) -> TokenPayload:
        secret = self._secrets.get(expected_type)
        if secret is None:
            raise InvalidToken(f'Unknown token type: {expected_type}')
        try:
            claims = jwt.decode(
                token,
                secret,
                algorithms=[self.settings.JWT_ALGORITHM],
                issuer=self.settings.JWT_ISSUER,
                audience=self.settings.JWT_AUDIENCE,
                options={'require': ['exp', 'iat', 'sub']},
            )
        except jwt.PyJWTError as exc:
            raise InvalidToken(f'Invalid {expected_type} token') from exc

        if claims.get('type') != expected_type:
            raise InvalidToken('Invalid token type')
        try:
            return TokenPayload(
                user_id=str(claims['sub']),
                email=str(claims['email']),
                role=str(claims['role']),
                type=claims['type'],
                issued_at=int(claims['iat']),
                expires_at=int(claims['exp']),
                jti=claims.get('jti'),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidToken('Malformed token payload') from exc

    @staticmethod
    def hash(raw_token: str) -> str:
        return token_sha256(raw_token)
