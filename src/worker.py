"""rq worker entry point: ``python -m src.worker``.

Listens on every stage queue unless ``WORKER_QUEUES`` (comma-separated)
narrows it down, so heavy stages can be scaled separately.
"""

from __future__ import annotations

import logging
import os

from redis import Redis
from rq import Queue, Worker

from src.config import get_settings
from src.pipeline.consumers import build_stage_context
from src.pipeline.state import PipelineStage

logger = logging.getLogger(__name__)


def resolve_queues(raw: str | None = None) -> list[str]:
    """Queue names to listen on; unknown names are rejected."""
    raw = os.environ.get("WORKER_QUEUES", "") if raw is None else raw
    names = [name.strip() for name in raw.split(",") if name.strip()]
    if not names:
        return [stage.value for stage in PipelineStage]
    for name in names:
        PipelineStage(name)
    return names


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    settings = get_settings()
    listen = resolve_queues()

    connection = Redis.from_url(settings.redis_url)
    connection.ping()
    logger.info("Connected to Redis at %s", settings.redis_url)

    # Fail fast on missing keys or backends before taking any job
    build_stage_context()

    queues = [Queue(name, connection=connection) for name in listen]
    worker = Worker(queues, connection=connection)
    logger.info("Worker %s listening on %s", worker.name, ", ".join(listen))
    worker.work(with_scheduler=True)


if __name__ == "__main__":
    main()
