from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from neo4j import Driver, GraphDatabase, Session

from app.core.config import Settings, get_settings


def get_driver(settings: Settings | None = None) -> Driver | None:
    """Build the process-wide driver, or None when no bolt URI is configured."""
    settings = settings or get_settings()
    if not settings.neo4j_uri:
        return None
    return GraphDatabase.driver(
        settings.neo4j_uri,
        auth=(settings.neo4j_user, settings.neo4j_password),
        max_connection_pool_size=settings.neo4j_max_connection_pool_size,
        connection_acquisition_timeout=settings.neo4j_connection_timeout_seconds,
    )


@contextmanager
def neo4j_session(driver: Driver | None, database: str | None = None) -> Iterator[Session | None]:
    if driver is None:
        yield None
        return
    with driver.session(database=database or None) as session:
        yield session
