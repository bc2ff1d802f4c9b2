from datetime import datetime, timezone
import hashlib
import uuid


def now_utc() -> datetime:
    # Naive UTC; the columns are timezone-less.
    return datetime.now(timezone.utc).replace(tzinfo=None)


def generate_jti() -> str: return uuid.uuid4().hex


def token_sha256(t: str) -> str: return hashlib.sha256(t.encode('utf-8')).hexdigest()


def to_epoch(dt: datetime) -> int:
    return int(dt.replace(tzinfo=timezone.utc).timestamp())


def from_epoch(ts: float) -> datetime:
    return datetime.fromtimestamp(ts, timezone.utc).replace(tzinfo=None)
