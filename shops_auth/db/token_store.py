from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from shops_auth.db.models import RefreshToken


class RefreshTokenStore:
    """Refresh-token records keyed by the digest of the raw token.

    Revocation is a conditional ``UPDATE ... WHERE is_revoked = false`` so that
    of two transactions racing on the same record only one observes a change.
    """

    def __init__(self, db: Session):
        self.db = db

    def add(self, *, user_id: str, token_hash: str, expires_at: datetime,
            user_agent: Optional[str] = None, ip_address: Optional[str] = None) -> RefreshToken:
        rt = RefreshToken(
            user_id=user_id,
            token_hash=token_hash,
            expires_at=expires_at,
            user_agent=user_agent[:512] if user_agent else None,
            ip_address=ip_address,
            is_revoked=False,
        )
        self.db.add(rt)
        self.db.flush()
        return rt

    def get_by_hash(self, token_hash: str) -> Optional[RefreshToken]:
        return self.db.execute(select(RefreshToken).where(RefreshToken.token_hash == token_hash)).scalar_one_or_none()

    def revoke_if_active(self, record_id: str) -> bool:
        res = self.db.execute(
            update(RefreshToken)
            .where(RefreshToken.id == record_id, RefreshToken.is_revoked.is_(False))
            .values(is_revoked=True)
            .execution_options(synchronize_session=False)
        )
        return res.rowcount == 1

    def revoke_by_hash(self, token_hash: str) -> int:
        res = self.db.execute(
            update(RefreshToken)
            .where(RefreshToken.token_hash == token_hash, RefreshToken.is_revoked.is_(False))
            .values(is_revoked=True)
            .execution_options(synchronize_session=False)
        )
        return res.rowcount

    def revoke_all_for_user(self, user_id: str) -> int:
        res = self.db.execute(
            update(RefreshToken)
            .where(RefreshToken.user_id == user_id, RefreshToken.is_revoked.is_(False))
            .values(is_revoked=True)
            .execution_options(synchronize_session=False)
        )
        return res.rowcount

    def active_count(self, user_id: str, now: datetime) -> int:
        return len(self.db.execute(
            select(RefreshToken.id).where(
                RefreshToken.user_id == user_id,
                RefreshToken.is_revoked.is_(False),
                RefreshToken.expires_at > now,
            )
        ).all())
