import traceback

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from shops_auth.api.ratelimit import record_failure
from shops_auth.core.errors import AuthError
from shops_auth.core.logging import get_logger

logger = get_logger('shops_auth.errors')

_HTTP_CODES = {
    400: 'BAD_REQUEST',
    401: 'UNAUTHORIZED',
    403: 'FORBIDDEN',
    404: 'NOT_FOUND',
    405: 'METHOD_NOT_ALLOWED',
}


def error_body(code: str, message: str, **extra) -> dict:
    return {'success': False, 'error': {'code': code, 'message': message, **extra}}


def _request_context(request: Request) -> dict:
    return {
        'method': request.method,
        'url': str(request.url.path),
        'ip': request.client.host if request.client else None,
        'user_agent': request.headers.get('user-agent'),
        'user_id': getattr(request.state, 'user_id', None),
    }


def install_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AuthError)
    async def auth_error_handler(request: Request, exc: AuthError):
        record_failure(request)
        log = logger.error if exc.status_code >= 500 else logger.warning
        log('request failed', code=exc.code, status=exc.status_code, error=exc.message, **_request_context(request))
        return JSONResponse(status_code=exc.status_code, content=error_body(exc.code, exc.message))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        record_failure(request)
        details = [
            {
                'field': '.'.join(str(p) for p in err.get('loc', ()) if p not in ('body', 'query')),
                'message': err.get('msg'),
                'code': err.get('type'),
            }
            for err in exc.errors()
        ]
        logger.warning('validation error', errors=details, **_request_context(request))
        return JSONResponse(status_code=400, content=error_body('VALIDATION_ERROR', 'Validation failed', details=details))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        code = _HTTP_CODES.get(exc.status_code, 'HTTP_ERROR')
        message = f'Route {request.url.path} not found' if exc.status_code == 404 else str(exc.detail)
        logger.warning('http error', code=code, status=exc.status_code, **_request_context(request))
        return JSONResponse(status_code=exc.status_code, content=error_body(code, message), headers=getattr(exc, 'headers', None))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error('unhandled error', error=repr(exc), exc_info=exc, **_request_context(request))
        extra = {}
        if request.app.state.settings.is_development:
            extra = {'details': str(exc), 'stack': traceback.format_exception(exc)}
        return JSONResponse(status_code=500, content=error_body('INTERNAL_ERROR', 'Internal Server Error', **extra))
