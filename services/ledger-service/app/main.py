"""FastAPI application wiring for the ledger service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import redis
from fastapi import FastAPI, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from psycopg_pool import ConnectionPool

from .api.routes import router as v1_router
from .config import Settings, get_settings
from .domain.dispatcher import DomainEventDispatcher
from .domain.ports import AccountRepository
from .domain.service import AccountService
from .messaging.event_store import RedisEventStore
from .messaging.integration import IntegrationEventHandler, register_integration_handler
from .messaging.publisher import RedisStreamPublisher
from .messaging.supervisor import CircuitBreaker, RetryPolicy, SupervisedRedis
from .repository import InMemoryAccountRepository, PostgresAccountRepository

logger = logging.getLogger(__name__)

settings = get_settings()


def _supervised_redis(settings: Settings, name: str) -> SupervisedRedis:
    """Build a reconnecting Redis handle with the configured retry budget."""
    return SupervisedRedis(
        lambda: redis.from_url(settings.redis_url, decode_responses=True),
        name=name,
        policy=RetryPolicy(
            max_attempts=settings.transport_max_attempts,
            base_delay=settings.transport_backoff_base_seconds,
            max_delay=settings.transport_backoff_max_seconds,
        ),
        breaker=CircuitBreaker(
            failure_threshold=settings.circuit_failure_threshold,
            reset_timeout=settings.circuit_reset_seconds,
        ),
    )


def build_service(settings: Settings, repository: AccountRepository) -> AccountService:
    """Wire the dispatcher and, when Redis is configured, integration delivery."""
    dispatcher = DomainEventDispatcher()
    if not settings.redis_url:
        logger.warning("REDIS_URL not set; integration events will not be published")
        return AccountService(repository, dispatcher)

    event_store = RedisEventStore(
        _supervised_redis(settings, "event-store"), key_prefix=settings.event_store_prefix
    )
    publisher = RedisStreamPublisher(
        _supervised_redis(settings, "event-publisher"),
        stream_prefix=settings.event_stream_prefix,
        maxlen=settings.event_stream_maxlen,
    )
    register_integration_handler(
        dispatcher,
        IntegrationEventHandler(
            publisher,
            event_store,
            ttl_seconds=settings.idempotency_ttl_seconds,
            key_prefix=settings.event_store_prefix,
        ),
    )
    logger.info("integration events published to redis streams under %s", settings.event_stream_prefix)
    return AccountService(repository, dispatcher, event_store)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialise shared resources (Postgres pool, services) for the app lifecycle."""
    logging.basicConfig(level=settings.log_level)
    pool: ConnectionPool | None = None
    if settings.storage_backend == "memory":
        logger.info("account repository using in-memory backend")
        repository: AccountRepository = InMemoryAccountRepository()
    else:
        pool = ConnectionPool(settings.database_url, open=False)
        pool.open()
        repository = PostgresAccountRepository(pool)
    app.state.pool = pool
    app.state.account_service = build_service(settings, repository)
    try:
        yield
    finally:
        if pool is not None:
            pool.close()


app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)


@app.get("/healthz", tags=["health"])
def healthz() -> dict[str, str]:
    """Return a minimal readiness indicator used by orchestration systems."""
    return {"status": "ok"}


app.include_router(v1_router)


# Prometheus metrics endpoint for Prometheus scrapes
@app.get("/metrics")
def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
