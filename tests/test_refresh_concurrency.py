from __future__ import annotations

import threading
from datetime import timedelta
from types import SimpleNamespace

import pytest
from sqlalchemy import select

from shops_auth.core.errors import TokenRevoked
from shops_auth.db.models import RefreshToken, UserRole
from shops_auth.db.token_store import RefreshTokenStore
from shops_auth.security.utils import now_utc
from tests._helpers.auth import PASSWORD


def test_simultaneous_refresh_has_one_winner(service) -> None:
    token = service.register('alice@example.com', PASSWORD, UserRole.CUSTOMER).refresh_token
    barrier = threading.Barrier(2)
    outcomes: list[object] = []
    lock = threading.Lock()

    def worker() -> None:
        barrier.wait()
        try:
            res = service.refresh(token)
        except TokenRevoked as exc:
            res = exc
        with lock:
            outcomes.append(res)

    threads = [threading.Thread(target=worker) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    assert len(outcomes) == 2
    assert sum(isinstance(o, TokenRevoked) for o in outcomes) == 1
    assert sum(not isinstance(o, TokenRevoked) for o in outcomes) == 1


def test_stale_read_loses_the_conditional_revoke(service, database, monkeypatch) -> None:
    token = service.register('alice@example.com', PASSWORD, UserRole.CUSTOMER).refresh_token
    with database.session() as db:
        record = RefreshTokenStore(db).get_by_hash(service.codec.hash(token))
    service.refresh(token)

    # Pretend this request read the record before the rotation above committed.
    stale = SimpleNamespace(id=record.id, user_id=record.user_id, is_revoked=False,
                            expires_at=now_utc() + timedelta(days=1))
    monkeypatch.setattr(RefreshTokenStore, 'get_by_hash', lambda self, token_hash: stale)
    with pytest.raises(TokenRevoked):
        service.refresh(token)


def test_revoke_if_active_flips_once(service, database) -> None:
    service.register('alice@example.com', PASSWORD, UserRole.CUSTOMER)
    with database.session() as db:
        record_id = db.execute(select(RefreshToken.id)).scalar_one()
    with database.session() as db:
        assert RefreshTokenStore(db).revoke_if_active(record_id) is True
    with database.session() as db:
        assert RefreshTokenStore(db).revoke_if_active(record_id) is False
        assert RefreshTokenStore(db).active_count(db.get(RefreshToken, record_id).user_id, now_utc()) == 0
