from __future__ import annotations

import pytest
from sqlalchemy import func, select

from shops_auth.core.errors import (
    EmailNotVerified,
    IncompleteProfile,
    InvalidOAuthState,
    OAuthProviderError,
    ProviderAccountConflict,
    RoleMismatch,
)
from shops_auth.db.models import AuthProvider, ProviderAccount, User, UserRole
from shops_auth.oauth.google import ProviderProfile
from shops_auth.services.auth_service import AuthService
from tests._helpers.auth import PASSWORD


def _start(service, role=UserRole.CUSTOMER):
    return service.generate_google_auth_url(role, f'http://shop.test/{role.value.lower()}/dashboard')


def _count(database, model) -> int:
    with database.session() as db:
        return db.execute(select(func.count()).select_from(model)).scalar_one()


def test_auth_url_carries_signed_state(service, oauth) -> None:
    start = _start(service, UserRole.MERCHANT)
    assert start.url.endswith(f'state={start.state}')
    state = service.state_codec.verify(start.state)
    assert state.role is UserRole.MERCHANT
    assert state.nonce == start.nonce
    assert oauth.calls == ['authorize']


def test_first_login_creates_verified_user_and_link(service, database) -> None:
    start = _start(service, UserRole.RIDER)
    result = service.google_auth('code-1', start.state, expected_nonce=start.nonce)

    assert result.user.email == 'gina@example.com'
    assert result.user.role is UserRole.RIDER
    assert result.user.email_verified is True
    with database.session() as db:
        user = db.get(User, result.user.id)
        assert user.password_hash is None
        account = db.execute(select(ProviderAccount)).scalar_one()
    assert account.provider is AuthProvider.GOOGLE
    assert account.provider_account_id == 'google-sub-1'
    assert account.refresh_token == 'google-refresh'


def test_returning_user_is_matched_by_subject(service, database, oauth) -> None:
    first = service.google_auth('c', _start(service).state)
    oauth.profile = ProviderProfile(subject_id='google-sub-1', email='gina.new@example.com',
                                    email_verified=True, name='Gina G')
    second = service.google_auth('c', _start(service).state)
    assert second.user.id == first.user.id
    assert _count(database, User) == 1
    assert _count(database, ProviderAccount) == 1


def test_existing_password_account_is_linked(service, database, oauth) -> None:
    registered = service.register('gina@example.com', PASSWORD, UserRole.CUSTOMER)
    assert registered.user.email_verified is False

    result = service.google_auth('c', _start(service).state)
    assert result.user.id == registered.user.id
    assert result.user.email_verified is True
    assert service.login('gina@example.com', PASSWORD, UserRole.CUSTOMER).user.id == registered.user.id


def test_google_login_with_other_role_is_rejected(service, database) -> None:
    service.register('gina@example.com', PASSWORD, UserRole.CUSTOMER)
    with pytest.raises(RoleMismatch):
        service.google_auth('c', _start(service, UserRole.MERCHANT).state)
    assert _count(database, ProviderAccount) == 0


def test_second_google_identity_for_same_email_conflicts(service, oauth) -> None:
    service.google_auth('c', _start(service).state)
    oauth.profile = ProviderProfile(subject_id='google-sub-2', email='gina@example.com',
                                    email_verified=True, name='Gina')
    with pytest.raises(ProviderAccountConflict):
        service.google_auth('c', _start(service).state)


@pytest.mark.parametrize('verified', [False, None])
def test_unverified_email_creates_nothing(service, database, oauth, verified) -> None:
    oauth.profile = ProviderProfile(subject_id='s', email='eve@example.com',
                                    email_verified=verified, name='Eve')
    with pytest.raises(EmailNotVerified):
        service.google_auth('c', _start(service).state)
    assert _count(database, User) == 0
    assert _count(database, ProviderAccount) == 0


def test_incomplete_profile_creates_nothing(service, database, oauth) -> None:
    oauth.profile = ProviderProfile(subject_id='s', email='eve@example.com', email_verified=True, name=None)
    with pytest.raises(IncompleteProfile):
        service.google_auth('c', _start(service).state)
    assert _count(database, User) == 0


def test_state_is_single_use_and_bound_to_nonce(service, oauth) -> None:
    start = _start(service)
    with pytest.raises(InvalidOAuthState):
        service.google_auth('c', start.state, expected_nonce='some-other-browser')
    service.google_auth('c', start.state, expected_nonce=start.nonce)
    with pytest.raises(InvalidOAuthState):
        service.google_auth('c', start.state, expected_nonce=start.nonce)
    with pytest.raises(InvalidOAuthState):
        service.google_auth('c', 'not-a-state')


def test_provider_failure_surfaces_as_provider_error(service, database, oauth) -> None:
    oauth.fail_exchange = True
    with pytest.raises(OAuthProviderError):
        service.google_auth('c', _start(service).state)
    assert _count(database, User) == 0


def _stale_email_lookup(monkeypatch, misses: int) -> None:
    real = AuthService._find_by_email
    calls = {'n': 0}

    def lookup(db, email):
        calls['n'] += 1
        return None if calls['n'] <= misses else real(db, email)

    monkeypatch.setattr(AuthService, '_find_by_email', staticmethod(lookup))


def _insert_user(database, email='gina@example.com', role=UserRole.CUSTOMER) -> str:
    with database.session() as db:
        user = User(email=email, name='Gina', role=role, email_verified=False)
        db.add(user)
        db.flush()
        return user.id


def test_concurrent_first_sign_in_links_the_winning_user(service, database, monkeypatch) -> None:
    # The row below stands for a concurrent callback that committed after our lookup.
    winner_id = _insert_user(database)
    _stale_email_lookup(monkeypatch, misses=1)

    result = service.google_auth('c', _start(service).state)
    assert result.user.id == winner_id
    assert result.user.email_verified is True
    assert _count(database, User) == 1
    assert _count(database, ProviderAccount) == 1


def test_repeated_unique_violation_is_a_conflict(service, database, monkeypatch) -> None:
    _insert_user(database)
    _stale_email_lookup(monkeypatch, misses=2)

    with pytest.raises(ProviderAccountConflict):
        service.google_auth('c', _start(service).state)
    assert _count(database, User) == 1
    assert _count(database, ProviderAccount) == 0
