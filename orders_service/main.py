import logging
import sys
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from orders_service.broker import EventPublisher
from orders_service.cache import CacheClient, OrderListCache
from orders_service.config import Settings
from orders_service.db import Database, init_db
from orders_service.errors import OrderServiceError, StoreError
from orders_service.routers.orders import router as orders_router
from orders_service.security import TokenVerifier
from orders_service.service import OrderService
from orders_service.store import OrderStore

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO"):
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    # pika logs every frame at INFO
    logging.getLogger("pika").setLevel(logging.WARNING)


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[OrderStore] = None,
    cache: Optional[OrderListCache] = None,
    publisher: Optional[EventPublisher] = None,
) -> FastAPI:
    """
    Build the app. Collaborators passed in are used as they are; anything left
    as None is built from settings during startup. Startup raises
    BrokerStartupError if the broker can't be reached, so the server exits
    before it accepts a single request.
    """
    settings = settings or Settings.from_env()
    if not settings.jwt_secret:
        raise RuntimeError("JWT_SECRET is not set")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(settings.log_level)
        db = None
        order_store, order_cache, event_publisher = store, cache, publisher

        if order_store is None:
            db = Database.from_settings(settings)
            if settings.db_init_schema:
                init_db(db)
            order_store = OrderStore(db)

        if order_cache is None:
            order_cache = OrderListCache(
                CacheClient.from_url(settings.redis_url, settings.redis_timeout),
                ttl=settings.orders_cache_ttl,
            )

        if event_publisher is None:
            event_publisher = EventPublisher.from_settings(settings)
            try:
                event_publisher.connect()
            except Exception:
                order_cache.cache.close()
                if db is not None:
                    db.close()
                raise

        app.state.publisher = event_publisher
        app.state.order_service = OrderService(order_store, order_cache, event_publisher)
        logger.info(f"Orders service started on port {settings.port}")
        yield

        logger.info("Orders service shutting down")
        if publisher is None:
            event_publisher.close()
        if cache is None:
            order_cache.cache.close()
        if db is not None:
            db.close()

    app = FastAPI(title="Bookstore Orders Service", lifespan=lifespan)
    app.state.verifier = TokenVerifier(settings.jwt_secret, settings.jwt_algorithm)
    app.state.limiter = Limiter(
        key_func=get_remote_address,
        default_limits=[settings.rate_limit],
        enabled=settings.rate_limit_enabled,
    )
    app.add_middleware(SlowAPIMiddleware)

    app.include_router(orders_router)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info(f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.1f}ms)")
        return response

    @app.get("/", response_class=PlainTextResponse)
    def home():
        return "Welcome to the Orders API!"

    @app.get("/favicon.ico", include_in_schema=False)
    def favicon():
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.get("/health")
    def health(request: Request):
        event_publisher = getattr(request.app.state, "publisher", None)
        broker = event_publisher.health() if event_publisher is not None else "disconnected"
        return {"status": "ok", "broker": broker}

    @app.exception_handler(OrderServiceError)
    async def order_service_error_handler(request: Request, exc: OrderServiceError):
        if isinstance(exc, StoreError):
            logger.error(f"Store error on {request.url.path}: {exc.detail}")
        return JSONResponse(
            status_code=exc.http_status,
            content={"status": "error", "message": exc.message},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.warning(f"Validation error on {request.url.path}: {exc.errors()}")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "status": "error",
                "message": "Invalid request data",
                "details": [
                    {
                        "field": ".".join(str(loc) for loc in e["loc"]),
                        "message": e["msg"],
                    }
                    for e in exc.errors()
                ],
            },
        )

    @app.exception_handler(RateLimitExceeded)
    def rate_limit_handler(request: Request, exc: RateLimitExceeded):
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={"status": "error", "message": "Too many requests, please try again later."},
        )

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"status": "error", "message": "Something went wrong!"},
        )

    return app
