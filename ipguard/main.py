"""Entry point. Wires stores, services and routes into the FastAPI app.

Persistence:
  - DATABASE_URL -> PostgreSQL, durable registry (permanent blocks, users).
  - REDIS_URL    -> Redis, ephemeral registry (temporary blocks, attempts).
Both are required; there is no in-process fallback for either store.
"""
import logging
import os
from datetime import timedelta

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ipguard.api.middleware import ClientIPMiddleware, IPBlockMiddleware
from ipguard.api.routes.admin_routes import router as admin_router, init_admin_routes
from ipguard.api.routes.auth_routes import router as auth_router, init_auth_routes
from ipguard.infrastructure import settings
from ipguard.infrastructure.auth.dependencies import init_dependencies

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
PROJECT_DIR = os.path.dirname(BASE_DIR)

logger = logging.getLogger("ipguard.startup")


def configure_logging() -> None:
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def create_app(auth_service, ip_block_service, health_checks: dict | None = None) -> FastAPI:
    """Build the app around already-constructed services.

    ``health_checks`` maps a component name to a zero-argument callable
    returning True when the component is reachable.
    """
    app = FastAPI(
        title="ipguard",
        description="Login brute-force defense and IP blocking.",
        version="1.0.0",
    )

    trust_headers = settings.trust_forwarded_headers()
    trusted_proxies = settings.trusted_proxies()
    settings.warn_if_forwarding_unrestricted(trust_headers, trusted_proxies)

    # Added first = innermost: the block check runs after the IP is resolved.
    app.add_middleware(IPBlockMiddleware, ip_block_service=ip_block_service)
    app.add_middleware(
        ClientIPMiddleware,
        trust_headers=trust_headers,
        trusted_proxies=trusted_proxies,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    init_dependencies(auth_service)
    init_auth_routes(auth_service)
    init_admin_routes(ip_block_service)

    app.include_router(auth_router)
    app.include_router(admin_router)

    checks = health_checks or {}

    @app.get("/health")
    def health():
        result = {"status": "online", "system": "ipguard v1.0.0"}
        for name, probe in checks.items():
            try:
                result[name] = "connected" if probe() else "disconnected"
            except Exception as exc:
                result[name] = f"ERROR: {type(exc).__name__}"
        if any(v != "connected" for k, v in result.items() if k in checks):
            result["status"] = "degraded"
        return result

    return app


def build_app_from_env() -> FastAPI:
    """Construct every collaborator from environment variables."""
    load_dotenv(os.path.join(PROJECT_DIR, ".env"))
    configure_logging()

    from ipguard.application.ip_block_service import IPBlockService
    from ipguard.infrastructure.audit import log_block_event
    from ipguard.infrastructure.auth.jwt_service import JWTAuthService
    from ipguard.infrastructure.auth.secured_auth_service import SecuredAuthService
    from ipguard.infrastructure.cache import redis_client
    from ipguard.infrastructure.database import connection
    from ipguard.infrastructure.repositories.pg_ip_block_repository import PgIPBlockRepository
    from ipguard.infrastructure.repositories.pg_user_repository import PgUserRepository
    from ipguard.infrastructure.repositories.redis_ip_block_repository import RedisIPBlockRepository

    connection.init_engine()
    connection.create_tables()
    sf = connection.get_session_factory()
    redis = redis_client.get_redis_client()

    config = settings.load_bruteforce_config()
    ip_block_service = IPBlockService(
        durable=PgIPBlockRepository(sf),
        ephemeral=RedisIPBlockRepository(
            redis,
            count_block_history=settings.escalation_counts_history(),
            history_seconds=config.escalation_window_seconds,
        ),
        config=config,
    )
    base_auth = JWTAuthService(
        PgUserRepository(sf),
        settings.jwt_secret_key(),
        timedelta(hours=settings.jwt_expiration_hours()),
    )
    auth_service = SecuredAuthService(
        base_auth,
        ip_block_service,
        on_escalation=lambda block: log_block_event("ip_block_escalated", block),
    )
    logger.info(
        "Brute-force defense: %d attempts / %ds window, %ds temporary blocks",
        config.max_attempts, config.window_seconds, config.block_duration_seconds,
    )

    return create_app(
        auth_service,
        ip_block_service,
        health_checks={
            "database": connection.check_health,
            "redis": lambda: redis_client.check_health(redis),
        },
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "ipguard.main:build_app_from_env",
        factory=True,
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", "8000")),
    )
