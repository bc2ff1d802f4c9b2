from typing import Any, Optional

from sqlalchemy.orm import Session

from shops_auth.core.logging import get_logger
from shops_auth.db.models import AuditLog

logger = get_logger('shops_auth.audit')


def record(db: Session, action: str, *, user_id: Optional[str] = None, details: Optional[dict[str, Any]] = None,
           ip_address: Optional[str] = None, user_agent: Optional[str] = None, resource: str = 'auth') -> None:
    """Append an audit row in the caller's transaction and emit an ``auth`` log line."""
    db.add(AuditLog(
        user_id=user_id,
        action=action,
        resource=resource,
        details=details,
        ip_address=ip_address,
        user_agent=user_agent[:512] if user_agent else None,
    ))
    logger.info('auth', action=action, user_id=user_id, details=details)
