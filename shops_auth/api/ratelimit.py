"""Fixed-window rate limits per client IP.

``general`` counts every request. The auth-sensitive buckets only count
failed requests: the dependency checks the window before the handler runs and
the exception handlers record the failure afterwards.
"""
from dataclasses import dataclass

from fastapi import Request

from shops_auth.api.deps import client_ip
from shops_auth.core.config import Settings
from shops_auth.core.errors import RateLimited
from shops_auth.core.logging import get_logger
from shops_auth.store.ephemeral import EphemeralStore

logger = get_logger(__name__)


@dataclass(frozen=True)
class Limit:
    code: str
    message: str
    window_seconds: int
    max_requests: int
    failures_only: bool


def limits_from_settings(s: Settings) -> dict[str, Limit]:
    return {
        'general': Limit('RATE_LIMIT_EXCEEDED', 'Too many requests, please try again later.',
                         s.RATE_LIMIT_WINDOW_MS // 1000, s.RATE_LIMIT_MAX_REQUESTS, False),
        'auth': Limit('AUTH_RATE_LIMIT_EXCEEDED', 'Too many authentication attempts, please try again later.',
                      s.AUTH_RATE_LIMIT_WINDOW_MS // 1000, s.AUTH_RATE_LIMIT_MAX_REQUESTS, True),
        'registration': Limit('REGISTRATION_RATE_LIMIT_EXCEEDED', 'Too many registration attempts, please try again later.',
                              s.REGISTRATION_RATE_LIMIT_WINDOW_MS // 1000, s.REGISTRATION_RATE_LIMIT_MAX_REQUESTS, True),
        'oauth': Limit('OAUTH_RATE_LIMIT_EXCEEDED', 'Too many OAuth attempts, please try again later.',
                       s.OAUTH_RATE_LIMIT_WINDOW_MS // 1000, s.OAUTH_RATE_LIMIT_MAX_REQUESTS, True),
    }


class RateLimiter:
    def __init__(self, store: EphemeralStore, limits: dict[str, Limit], enabled: bool = True):
        self.store = store
        self.limits = limits
        self.enabled = enabled

    @staticmethod
    def _key(bucket: str, ident: str) -> str:
        return f'rl:{bucket}:{ident}'

    def check(self, bucket: str, ident: str) -> None:
        if not self.enabled:
            return
        limit = self.limits[bucket]
        key = self._key(bucket, ident)
        if limit.failures_only:
            exceeded = self.store.count(key) >= limit.max_requests
        else:
            exceeded = self.store.hit(key, limit.window_seconds) > limit.max_requests
        if exceeded:
            logger.warning('rate limit exceeded', bucket=bucket, ip=ident)
            raise RateLimited(limit.code, limit.message)

    def record_failure(self, bucket: str, ident: str) -> None:
        if not self.enabled:
            return
        limit = self.limits[bucket]
        if limit.failures_only:
            self.store.hit(self._key(bucket, ident), limit.window_seconds)


def rate_limit(bucket: str):
    def dep(request: Request) -> None:
        limiter: RateLimiter = request.app.state.rate_limiter
        limiter.check(bucket, client_ip(request))
        request.state.rate_limit_buckets = [*getattr(request.state, 'rate_limit_buckets', []), bucket]
    return dep


def record_failure(request: Request) -> None:
    limiter: RateLimiter | None = getattr(request.app.state, 'rate_limiter', None)
    if limiter is None:
        return
    for bucket in getattr(request.state, 'rate_limit_buckets', []):
        limiter.record_failure(bucket, client_ip(request))
