from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded
from starlette.responses import JSONResponse
from starlette.requests import Request

from chatcore.core.settings import Settings, settings as default_settings
from chatcore.core.logging import configure_logging, log
from chatcore.core.middleware import SecurityHeadersMiddleware, MetricsMiddleware
from chatcore.core.ratelimit import limiter
from chatcore.core.redis import get_redis
from chatcore.db.session import Database
from chatcore.errors import ChatError
from chatcore.services.feed import InMemoryBroker, LiveFeed, RedisBroker
from chatcore.api import admin, auth, chat, feed, groups, roster, users

configure_logging()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build an app instance.

    Taken from ``settings`` per app: database, redis broker and metrics, CORS,
    schema creation, the admin token and attachment limits. Rate limits, token
    verification and the conversation key separator are bound at import time
    and always follow the process environment.
    """
    settings = settings or default_settings
    db = Database(settings.database_url)
    broker = RedisBroker(get_redis(settings.redis_url)) if settings.redis_url else InMemoryBroker()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if settings.auto_create_schema:
            await db.create_all()
        log.info("chatcore up (env=%s, broker=%s)", settings.env, type(broker).__name__)
        yield
        await db.dispose()

    app = FastAPI(title="chatcore", version="0.1.0", lifespan=lifespan)
    app.state.limiter = limiter
    app.state.settings = settings
    app.state.db = db
    app.state.broker = broker
    app.state.feed = LiveFeed(broker, db.sessionmaker)

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
        return JSONResponse({"detail": "rate limit exceeded"}, status_code=429)

    @app.exception_handler(ChatError)
    async def chat_error_handler(request: Request, exc: ChatError):
        if exc.status_code >= 409:
            log.warning("%s %s -> %s: %s", request.method, request.url.path, type(exc).__name__, exc.detail)
        return JSONResponse({"detail": exc.detail, "error": type(exc).__name__}, status_code=exc.status_code)

    app.add_middleware(SecurityHeadersMiddleware)
    if settings.metrics_enabled and settings.redis_url:
        app.add_middleware(MetricsMiddleware, redis_url=settings.redis_url)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(auth.router)
    app.include_router(users.router)
    app.include_router(chat.router)
    app.include_router(groups.router)
    app.include_router(roster.router)
    app.include_router(feed.router)
    app.include_router(admin.router)

    @app.get("/health")
    @limiter.limit(settings.rate_limit_health)
    async def health(request: Request):
        return {"ok": True}

    return app


app = create_app()
