# main.py
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CollectorRegistry
from prometheus_fastapi_instrumentator import Instrumentator

from shops_auth.api.errors import install_exception_handlers
from shops_auth.api.middleware import install_middleware
from shops_auth.api.ratelimit import RateLimiter, limits_from_settings
from shops_auth.api.v1 import routes_auth, routes_google
from shops_auth.core.config import Settings, get_settings
from shops_auth.core.logging import configure_logging, get_logger
from shops_auth.db.session import Database
from shops_auth.oauth.google import GoogleOAuthClient, OAuthProvider
from shops_auth.security.oauth_state import OAuthStateCodec
from shops_auth.security.passwords import PasswordHasher
from shops_auth.security.tokens import TokenCodec
from shops_auth.services.auth_service import AuthService
from shops_auth.store.ephemeral import EphemeralStore, build_store
from shops_auth.version import VERSION

logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None, *,
               oauth: Optional[OAuthProvider] = None,
               store: Optional[EphemeralStore] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.LOG_LEVEL)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        database = Database(settings.DATABASE_URL)
        database.create_all()
        ephemeral = store or build_store(settings.REDIS_URL)
        app.state.database = database
        app.state.rate_limiter = RateLimiter(ephemeral, limits_from_settings(settings), settings.RATE_LIMIT_ENABLED)
        app.state.auth_service = AuthService(
            database=database,
            codec=TokenCodec(settings),
            hasher=PasswordHasher(settings.BCRYPT_ROUNDS),
            state_codec=OAuthStateCodec(settings),
            store=ephemeral,
            oauth=oauth or GoogleOAuthClient(settings),
            settings=settings,
        )
        logger.info('auth service started', env=settings.ENV, version=VERSION,
                    rate_limit_backend=type(ephemeral).__name__)
        try:
            yield
        finally:
            ephemeral.close()
            database.dispose()
            logger.info('auth service stopped')

    app = FastAPI(title='Auth Service', version=VERSION, lifespan=lifespan)
    app.state.settings = settings

    # One registry per app so several apps in one process don't collide.
    instrumentator = Instrumentator(registry=CollectorRegistry())
    instrumentator.instrument(app).expose(
        app,
        include_in_schema=False,
        endpoint='/api/auth/metrics',
        should_gzip=True,
    )

    install_middleware(app)
    install_exception_handlers(app)
    # Outermost, so preflights are answered before rate limiting.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=['GET', 'POST', 'PUT', 'DELETE', 'OPTIONS'],
        allow_headers=['Content-Type', 'Authorization', 'X-Requested-With'],
    )

    @app.get('/health')
    def health(): return {'status': 'ok'}

    @app.get('/v1/_info')
    def info(): return {'service': 'auth', 'version': VERSION}

    app.include_router(routes_auth.router, prefix='/api/auth', tags=['auth'])
    app.include_router(routes_google.router, prefix='/api/auth', tags=['oauth'])
    return app


app = create_app()
