from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from app.core.config import Settings, get_settings


def _sqlalchemy_dsn(dsn: str) -> str:
    if dsn.startswith("postgresql://"):
        return dsn.replace("postgresql://", "postgresql+psycopg://", 1)
    return dsn


def create_db_engine(settings: Settings) -> Engine:
    dsn = _sqlalchemy_dsn(settings.vector_pg_dsn)
    engine_kwargs: dict[str, object] = {
        "future": True,
        "pool_pre_ping": True,
    }
    if dsn.startswith("postgresql+psycopg://"):
        engine_kwargs.update(
            {
                "pool_size": settings.db_pool_size,
                "max_overflow": settings.db_max_overflow,
                "pool_timeout": settings.db_pool_timeout_seconds,
                "pool_recycle": settings.db_pool_recycle_seconds,
            }
        )
    elif dsn.startswith("sqlite"):
        # Recall fans queries out to worker threads.
        engine_kwargs["connect_args"] = {"check_same_thread": False}
    return create_engine(dsn, **engine_kwargs)


settings = get_settings()
engine = create_db_engine(settings)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
