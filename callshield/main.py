"""
FastAPI Application Entry Point
"""
import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from callshield.api.v1.routes import api_router
from callshield.api.v1.endpoints import health
from callshield.core.config import ConfigManager, Settings
from callshield.core.validation import validate_providers_on_startup
from callshield.domain.models.decision import ScreeningPreferences
from callshield.domain.services.decision_engine import DecisionEngine
from callshield.domain.services.phone_normalizer import PhoneNormalizer
from callshield.domain.services.risk_aggregator import RiskAggregator
from callshield.domain.services.risk_cache import TieredRiskCache
from callshield.domain.services.session_tracker import SessionTracker
from callshield.domain.services.usage_counters import UsageCounters
from callshield.infrastructure.providers.factory import register_providers_from_config
from callshield.infrastructure.storage.sql_store import SQLRiskStore
from callshield.infrastructure.telephony.call_controller import LoggingCallController

load_dotenv()

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def build_components(app: FastAPI, settings: Settings, config: ConfigManager) -> None:
    """
    Construct every screening component and attach it to ``app.state``.

    Nothing here is a singleton; tests build their own app with their own
    settings and config directory.
    """
    cache_cfg = config.get_section("cache")
    aggregator_cfg = config.get_section("aggregator")
    session_cfg = config.get_section("sessions")
    screening_cfg = config.get_section("screening")

    normalizer = PhoneNormalizer(settings.default_country_code)
    store = SQLRiskStore(settings.database_url)

    cache = TieredRiskCache(
        store,
        normalizer=normalizer,
        max_size=int(cache_cfg.get("max_size", TieredRiskCache.DEFAULT_MAX_SIZE)),
        scam_ttl=timedelta(days=cache_cfg.get("scam_ttl_days", 30)),
        spam_ttl=timedelta(days=cache_cfg.get("spam_ttl_days", 7)),
        eviction_fraction=float(cache_cfg.get("eviction_fraction", 0.1)),
    )

    aggregator = RiskAggregator(
        strategy=aggregator_cfg.get("strategy", "highest_risk"),
        default_timeout_ms=int(aggregator_cfg.get("default_timeout_ms", 5000)),
        overall_timeout_ms=int(aggregator_cfg.get("overall_timeout_ms", 15000)),
        coalesce_requests=bool(aggregator_cfg.get("coalesce_requests", True)),
        normalizer=normalizer,
    )
    registered = register_providers_from_config(aggregator, config.get_risk_provider_configs())
    logger.info(f"Risk providers registered: {', '.join(registered) or 'none'}")

    sessions = SessionTracker(
        retention_seconds=float(session_cfg.get("retention_seconds", 3600))
    )
    counters = UsageCounters(store)
    controller = LoggingCallController()

    engine = DecisionEngine(
        cache=cache,
        aggregator=aggregator,
        controller=controller,
        sessions=sessions,
        counters=counters,
        preferences=ScreeningPreferences(
            protection_enabled=screening_cfg.get("protection_enabled", True),
            silence_unknown_numbers=screening_cfg.get("silence_unknown_numbers", False),
        ),
    )

    app.state.normalizer = normalizer
    app.state.cache = cache
    app.state.aggregator = aggregator
    app.state.sessions = sessions
    app.state.counters = counters
    app.state.controller = controller
    app.state.engine = engine


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan - startup and shutdown events.

    Startup:
    - Validates risk provider configuration
    - Builds cache, aggregator, session tracker and decision engine
    - Starts the cache expiry sweep and session cleanup tasks

    Shutdown:
    - Cancels background tasks
    - Releases provider clients and the database engine
    """
    # ========================
    # STARTUP
    # ========================
    settings: Settings = app.state.settings
    config: ConfigManager = app.state.config
    logger.info(f"Starting CallShield ({settings.environment})...")

    strict_validation = settings.environment == "production"
    try:
        validate_providers_on_startup(
            config.get_section("aggregator"),
            config.get_risk_provider_configs(),
            strict=strict_validation
        )
    except RuntimeError as e:
        if strict_validation:
            logger.error(f"Startup failed: {e}")
            raise
        logger.warning(f"Configuration warnings (non-fatal in {settings.environment}): {e}")

    build_components(app, settings, config)

    app.state.cache.start_sweeper(float(config.get("cache.sweep_interval_seconds", 600)))
    app.state.sessions.start_cleanup(float(config.get("sessions.cleanup_interval_seconds", 300)))

    logger.info("CallShield started successfully")

    yield  # Application is running

    # ========================
    # SHUTDOWN
    # ========================
    logger.info("Shutting down CallShield...")

    for component in ("sessions", "aggregator", "cache"):
        try:
            await getattr(app.state, component).shutdown()
        except Exception as e:
            logger.error(f"Error shutting down {component}: {e}")

    logger.info("CallShield shutdown complete")


def create_app(
    settings: Optional[Settings] = None,
    config: Optional[ConfigManager] = None
) -> FastAPI:
    settings = settings or Settings()
    config = config or ConfigManager(env=settings.environment)
    configure_logging(settings.log_level)

    app = FastAPI(
        title="CallShield",
        description="Call risk resolution engine: cache, providers and screening decisions",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.settings = settings
    app.state.config = config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router)
    app.include_router(api_router, prefix=settings.api_prefix)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
