from __future__ import annotations

from pathlib import Path
from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from shops_auth.core.config import Settings
from shops_auth.db.session import Database
from shops_auth.main import create_app
from shops_auth.security.oauth_state import OAuthStateCodec
from shops_auth.security.passwords import PasswordHasher
from shops_auth.security.tokens import TokenCodec
from shops_auth.services.auth_service import AuthService
from shops_auth.store.ephemeral import MemoryStore
from tests._helpers.auth import FakeOAuthProvider, make_settings


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return make_settings(tmp_path)


@pytest.fixture
def oauth() -> FakeOAuthProvider:
    return FakeOAuthProvider()


@pytest.fixture
def database(settings: Settings) -> Iterator[Database]:
    db = Database(settings.DATABASE_URL)
    db.create_all()
    yield db
    db.dispose()


@pytest.fixture
def service(settings: Settings, database: Database, oauth: FakeOAuthProvider) -> AuthService:
    return AuthService(
        database=database,
        codec=TokenCodec(settings),
        hasher=PasswordHasher(settings.BCRYPT_ROUNDS),
        state_codec=OAuthStateCodec(settings),
        store=MemoryStore(),
        oauth=oauth,
        settings=settings,
    )


@pytest.fixture
def client(settings: Settings, oauth: FakeOAuthProvider) -> Iterator[TestClient]:
    app = create_app(settings, oauth=oauth, store=MemoryStore())
    with TestClient(app) as c:
        yield c
