from __future__ import annotations

from app.core.config import get_settings
from app.db.neo4j.driver import get_driver
from app.db.neo4j.graph_store import Neo4jGraphStore


def main() -> None:
    settings = get_settings()
    driver = get_driver(settings)
    if driver is None:
        print("Neo4j URI not configured; skipping")
        return
    store = Neo4jGraphStore(driver, settings.neo4j_database)
    try:
        for statement in store.apply_schema():
            print(f"Applied: {statement}")
    finally:
        store.close()


if __name__ == "__main__":
    main()
