from __future__ import annotations

import argparse
import json
from pathlib import Path

from app.core.logging import configure_logging
from app.db.pg.base import Base
from app.db.pg import models as _models  # noqa: F401
from app.db.pg.session import engine
from app.services.knowledge.engine import build_knowledge_engine
from app.services.knowledge.errors import KnowledgeEngineError


def main() -> None:
    parser = argparse.ArgumentParser(description="Learn from a JSON file holding a list of call outcomes.")
    parser.add_argument("path", type=Path)
    args = parser.parse_args()

    configure_logging()
    Base.metadata.create_all(bind=engine)
    payloads = json.loads(args.path.read_text(encoding="utf-8"))
    if isinstance(payloads, dict):
        payloads = [payloads]

    knowledge_engine = build_knowledge_engine()
    learned = 0
    failed = 0
    try:
        for payload in payloads:
            try:
                knowledge_engine.learner.learn_from_call(payload)
                learned += 1
            except KnowledgeEngineError as exc:
                failed += 1
                print(f"Failed: {exc}")
    finally:
        knowledge_engine.close()
    print(f"Learned {learned} calls ({failed} failed)")


if __name__ == "__main__":
    main()
