"""
Dimension Store Connection Management

SQLAlchemy 2.0 engine construction and health checks for the dimension store.
Connections are checked out per partition by the enrichment workers.
"""

import time
from typing import Any, Dict

import structlog
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from sku_enrichment.config.settings import DimensionStoreSettings

logger = structlog.get_logger(__name__)


def create_store_engine(config: DimensionStoreSettings) -> Engine:
    """
    Create the store engine.

    SQLite is supported for local runs and tests; partition workers run in
    threads, so SQLite connections must be shareable across threads.

    Returns:
        Engine: The configured engine
    """
    engine_config: Dict[str, Any] = {
        "echo": config.echo,
        "pool_pre_ping": True,  # Verify connections before use
    }

    if config.url.startswith("sqlite"):
        engine_config["connect_args"] = {"check_same_thread": False}
        if ":memory:" in config.url or config.url.rstrip("/") == "sqlite:":
            engine_config["poolclass"] = StaticPool
    else:
        engine_config.update({
            "pool_size": config.pool_size,
            "pool_timeout": config.pool_timeout,
        })
        if config.url.startswith("postgresql"):
            # Expired statements raise OperationalError, which callers retry
            engine_config["connect_args"] = {
                "options": f"-c statement_timeout={config.statement_timeout_ms}",
            }

    engine = create_engine(config.url, **engine_config)
    logger.info("Dimension store engine created", dialect=engine.dialect.name)
    return engine


def check_store_health(engine: Engine) -> dict:
    """
    Check dimension store health status.

    Returns:
        dict: Health status with latency information
    """
    try:
        start = time.perf_counter()
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        latency_ms = (time.perf_counter() - start) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(latency_ms, 2),
        }
    except Exception as e:
        return {
            "status": "unhealthy",
            "error": str(e),
        }
