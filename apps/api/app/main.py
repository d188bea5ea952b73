from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from app.api.v1.routes import admin, analytics, health, knowledge, learning, search
from app.core.config import get_settings
from app.core.logging import configure_logging
from app.db.pg.base import Base
from app.db.pg import models as _models  # noqa: F401
from app.db.pg.session import SessionLocal, engine
from app.services.knowledge.engine import build_knowledge_engine
from app.workers import jobs

configure_logging()
settings = get_settings()
app = FastAPI(title=settings.app_name)
allowed_origins = [origin.strip() for origin in settings.cors_allow_origins.split(",") if origin.strip()]
if allowed_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )


def _ensure_pgvector_extension() -> None:
    if engine.url.get_backend_name() != "postgresql":
        return
    with engine.begin() as conn:
        conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))


@app.on_event("startup")
def on_startup() -> None:
    _ensure_pgvector_extension()
    Base.metadata.create_all(bind=engine)
    knowledge_engine = build_knowledge_engine(settings, session_factory=SessionLocal)
    app.state.knowledge_engine = knowledge_engine
    jobs.bind_engine(knowledge_engine)


@app.on_event("shutdown")
def on_shutdown() -> None:
    knowledge_engine = getattr(app.state, "knowledge_engine", None)
    if knowledge_engine is not None:
        knowledge_engine.close()
    jobs.bind_engine(None)


app.include_router(health.router, prefix=settings.api_prefix)
app.include_router(learning.router, prefix=settings.api_prefix)
app.include_router(knowledge.router, prefix=settings.api_prefix)
app.include_router(analytics.router, prefix=settings.api_prefix)
app.include_router(search.router, prefix=settings.api_prefix)
app.include_router(admin.router, prefix=settings.api_prefix)
