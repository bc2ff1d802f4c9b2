import time
import uuid

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from shops_auth.api.errors import error_body
from shops_auth.api.ratelimit import rate_limit
from shops_auth.core.errors import RateLimited
from shops_auth.core.logging import get_logger, set_request_id, set_user_id

logger = get_logger('shops_auth.request')

_UNLIMITED_PATHS = {'/health', '/api/auth/health', '/api/auth/metrics'}


def install_middleware(app: FastAPI) -> None:
    general_limit = rate_limit('general')

    @app.middleware('http')
    async def request_context(request: Request, call_next):
        rid = request.headers.get('x-request-id') or uuid.uuid4().hex
        set_request_id(rid)
        set_user_id(None)
        start = time.perf_counter()

        if request.url.path not in _UNLIMITED_PATHS:
            # Exceptions raised in middleware bypass the app's exception handlers.
            try:
                general_limit(request)
            except RateLimited as exc:
                return JSONResponse(status_code=429, content=error_body(exc.code, exc.message),
                                    headers={'X-Request-ID': rid})

        response = await call_next(request)
        response.headers['X-Request-ID'] = rid
        logger.info(
            'request',
            method=request.method,
            url=str(request.url.path),
            status=response.status_code,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
            ip=request.client.host if request.client else None,
            user_agent=request.headers.get('user-agent'),
        )
        return response
