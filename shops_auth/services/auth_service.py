"""Auth orchestrator.

``AuthService`` is the only writer of users, provider accounts and refresh
token records. It is framework-agnostic: callers pass plain values plus a
``ClientInfo`` and get back an ``AuthResult`` or an ``AuthError``.

Refresh-token lifecycle: a record is *active* until it is revoked (logout,
logout-all or rotation) or its ``expires_at`` passes. Revoked is terminal;
presenting a rotated token again fails with ``TokenRevoked``.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, TypeVar
import hmac

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from shops_auth.core.config import Settings
from shops_auth.core.errors import (
    DuplicateUser,
    EmailNotVerified,
    IncompleteProfile,
    InvalidCredentials,
    InvalidOAuthState,
    InvalidToken,
    OAuthAccountRequired,
    OAuthProviderError,
    ProviderAccountConflict,
    RoleMismatch,
    TokenExpired,
    TokenRevoked,
    UserNotFound,
)
from shops_auth.core.logging import get_logger
from shops_auth.db.models import AuthProvider, ProviderAccount, User, UserRole
from shops_auth.db.session import Database
from shops_auth.db.token_store import RefreshTokenStore
from shops_auth.oauth.google import OAuthProvider, ProviderProfile, ProviderTokens
from shops_auth.schemas import UserProfile
from shops_auth.security.oauth_state import OAuthStateCodec
from shops_auth.security.passwords import PasswordHasher
from shops_auth.security.tokens import TokenCodec
from shops_auth.security.utils import now_utc
from shops_auth.services import audit
from shops_auth.store.ephemeral import EphemeralStore

logger = get_logger(__name__)

T = TypeVar('T')


@dataclass(frozen=True)
class ClientInfo:
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None


@dataclass(frozen=True)
class AuthResult:
    user: UserProfile
    access_token: str
    refresh_token: str
    access_expires_at: datetime
    refresh_expires_at: datetime


@dataclass(frozen=True)
class OAuthStart:
    url: str
    state: str
    nonce: str


def normalize_email(email: str) -> str:
    return email.strip().lower()


class AuthService:
    def __init__(self, *, database: Database, codec: TokenCodec, hasher: PasswordHasher,
                 state_codec: OAuthStateCodec, store: EphemeralStore, oauth: OAuthProvider,
                 settings: Settings):
        self.database = database
        self.codec = codec
        self.hasher = hasher
        self.state_codec = state_codec
        self.store = store
        self.oauth = oauth
        self.settings = settings

    # -- helpers ---------------------------------------------------------

    def _issue(self, db: Session, user: User, client: ClientInfo) -> AuthResult:
        pair = self.codec.issue_pair(user)
        RefreshTokenStore(db).add(
            user_id=user.id,
            token_hash=pair.refresh_hash,
            expires_at=pair.refresh.expires_at,
            user_agent=client.user_agent,
            ip_address=client.ip_address,
        )
        db.flush()
        return AuthResult(
            user=UserProfile.model_validate(user),
            access_token=pair.access.token,
            refresh_token=pair.refresh.token,
            access_expires_at=pair.access.expires_at,
            refresh_expires_at=pair.refresh.expires_at,
        )

    def _audit(self, db: Session, action: str, user_id: Optional[str], client: ClientInfo, **details) -> None:
        audit.record(db, action, user_id=user_id, details=details or None,
                     ip_address=client.ip_address, user_agent=client.user_agent)

    @staticmethod
    def _find_by_email(db: Session, email: str) -> Optional[User]:
        return db.execute(select(User).where(User.email == email)).scalar_one_or_none()

    @staticmethod
    def _provider_call(fn: Callable[[str], T], arg: str) -> T:
        try:
            return fn(arg)
        except OAuthProviderError:
            raise
        except Exception as exc:
            raise OAuthProviderError() from exc

    # -- operations ------------------------------------------------------

    def register(self, email: str, password: str, role: UserRole | str, name: Optional[str] = None,
                 client: Optional[ClientInfo] = None) -> AuthResult:
        client = client or ClientInfo()
        role = UserRole(role)
        email = normalize_email(email)

        with self.database.session() as db:
            if self._find_by_email(db, email):
                raise DuplicateUser()

        password_hash = self.hasher.hash(password)
        try:
            with self.database.session() as db:
                user = User(email=email, name=name, password_hash=password_hash, role=role, email_verified=False)
                db.add(user)
                db.flush()
                result = self._issue(db, user, client)
                self._audit(db, 'user_registered', user.id, client, role=role.value, method='email')
        except IntegrityError as exc:
            # Lost a race with a concurrent registration for the same email.
            raise DuplicateUser() from exc
        return result

    def login(self, email: str, password: str, role: UserRole | str,
              client: Optional[ClientInfo] = None) -> AuthResult:
        client = client or ClientInfo()
        role = UserRole(role)
        email = normalize_email(email)

        with self.database.session() as db:
            user = self._find_by_email(db, email)
            if user is None:
                logger.warning('login failed', reason='unknown_email')
                raise InvalidCredentials()
            if not user.password_hash:
                raise OAuthAccountRequired()
            if not self.hasher.verify(password, user.password_hash):
                logger.warning('login failed', reason='bad_password', user_id=user.id)
                raise InvalidCredentials()
            if user.role != role:
                logger.warning('login failed', reason='role_mismatch', user_id=user.id, requested=role.value)
                raise RoleMismatch()

            user.last_login_at = now_utc()
            result = self._issue(db, user, client)
            self._audit(db, 'user_logged_in', user.id, client, role=role.value, method='email')
        return result

    def generate_google_auth_url(self, role: UserRole | str, redirect_url: str) -> OAuthStart:
        raw_state, state = self.state_codec.issue(UserRole(role), redirect_url)
        url = self._provider_call(self.oauth.generate_authorization_url, raw_state)
        return OAuthStart(url=url, state=raw_state, nonce=state.nonce)

    def google_auth(self, code: str, state: str, expected_nonce: Optional[str] = None,
                    client: Optional[ClientInfo] = None) -> AuthResult:
        client = client or ClientInfo()
        oauth_state = self.state_codec.verify(state)
        if expected_nonce is not None and not hmac.compare_digest(expected_nonce, oauth_state.nonce):
            raise InvalidOAuthState('OAuth state does not match this browser session')
        ttl = self.settings.OAUTH_STATE_TTL_MIN * 60
        if not self.store.claim(f'oauth:nonce:{oauth_state.nonce}', ttl):
            raise InvalidOAuthState('OAuth state has already been used')

        tokens = self._provider_call(self.oauth.exchange_code_for_tokens, code)
        if not tokens.access_token:
            raise OAuthProviderError('Failed to get access token from Google')
        profile = self._provider_call(self.oauth.fetch_profile, tokens.access_token)
        logger.info('google profile received', subject_id=profile.subject_id,
                    email_verified=profile.email_verified)

        if profile.email_verified is not True:
            raise EmailNotVerified()
        if not profile.email or not profile.name or not profile.subject_id:
            raise IncompleteProfile()

        try:
            return self._google_login(profile, tokens, oauth_state.role, client)
        except IntegrityError:
            # A concurrent first sign-in inserted the same user or link;
            # the second lookup sees its committed rows.
            logger.warning('google account link raced, retrying', subject_id=profile.subject_id)
        try:
            return self._google_login(profile, tokens, oauth_state.role, client)
        except IntegrityError as exc:
            raise ProviderAccountConflict() from exc

    def _google_login(self, profile: ProviderProfile, tokens: ProviderTokens, role: UserRole,
                      client: ClientInfo) -> AuthResult:
        with self.database.session() as db:
            user = self._link_google_account(db, profile, tokens, role)
            user.last_login_at = now_utc()
            result = self._issue(db, user, client)
            self._audit(db, 'user_logged_in', user.id, client, role=role.value, method='google')
        return result

    def _link_google_account(self, db: Session, profile: ProviderProfile, tokens: ProviderTokens,
                             role: UserRole) -> User:
        account = db.execute(
            select(ProviderAccount).where(
                ProviderAccount.provider == AuthProvider.GOOGLE,
                ProviderAccount.provider_account_id == profile.subject_id,
            )
        ).scalar_one_or_none()
        user = db.get(User, account.user_id) if account else self._find_by_email(db, normalize_email(profile.email))

        if user is None:
            user = User(email=normalize_email(profile.email), name=profile.name, role=role, email_verified=True)
            db.add(user)
            db.flush()
        elif user.role != role:
            raise RoleMismatch()

        if account is None:
            linked = db.execute(
                select(ProviderAccount.id).where(
                    ProviderAccount.user_id == user.id,
                    ProviderAccount.provider == AuthProvider.GOOGLE,
                )
            ).first()
            if linked:
                raise ProviderAccountConflict()
            account = ProviderAccount(
                user_id=user.id,
                provider=AuthProvider.GOOGLE,
                provider_account_id=profile.subject_id,
                provider_email=profile.email,
            )
            db.add(account)

        account.provider_name = profile.name
        account.access_token = tokens.access_token
        if tokens.refresh_token:
            account.refresh_token = tokens.refresh_token
        account.expires_at = tokens.expires_at
        # The provider vouched for this address.
        user.email_verified = True
        db.flush()
        return user

    def refresh(self, raw_refresh_token: str, client: Optional[ClientInfo] = None) -> AuthResult:
        client = client or ClientInfo()
        payload = self.codec.verify(raw_refresh_token, 'refresh')
        token_hash = self.codec.hash(raw_refresh_token)

        with self.database.session() as db:
            store = RefreshTokenStore(db)
            record = store.get_by_hash(token_hash)
            if record is None or record.user_id != payload.user_id:
                raise InvalidToken('Invalid refresh token')
            if record.is_revoked:
                raise TokenRevoked()
            if now_utc() >= record.expires_at:
                raise TokenExpired()
            if not store.revoke_if_active(record.id):
                # Another request rotated this token after we read it.
                raise TokenRevoked()

            user = db.get(User, record.user_id)
            if user is None:
                raise UserNotFound()
            result = self._issue(db, user, client)
            self._audit(db, 'token_refreshed', user.id, client)
        return result

    def logout(self, raw_refresh_token: str, client: Optional[ClientInfo] = None) -> int:
        client = client or ClientInfo()
        token_hash = self.codec.hash(raw_refresh_token)
        with self.database.session() as db:
            store = RefreshTokenStore(db)
            revoked = store.revoke_by_hash(token_hash)
            if revoked:
                record = store.get_by_hash(token_hash)
                self._audit(db, 'user_logged_out', record.user_id if record else None, client)
        return revoked

    def logout_all(self, user_id: str, client: Optional[ClientInfo] = None) -> int:
        client = client or ClientInfo()
        with self.database.session() as db:
            revoked = RefreshTokenStore(db).revoke_all_for_user(user_id)
            self._audit(db, 'user_logged_out_all', user_id, client, revoked=revoked)
        return revoked

    def get_profile(self, user_id: str) -> UserProfile:
        with self.database.session() as db:
            user = db.get(User, user_id)
            if user is None:
                raise UserNotFound()
            return UserProfile.model_validate(user)

    def authenticate(self, access_token: str) -> UserProfile:
        payload = self.codec.verify(access_token, 'access')
        try:
            return self.get_profile(payload.user_id)
        except UserNotFound as exc:
            raise InvalidToken('Invalid access token') from exc
