"""Crew score arq worker: recalculates a group's crew scores on demand.

Activity-changing events (check-ins, chat, spirit points) enqueue
``recalculate_group_job`` instead of recalculating inline.
"""

from __future__ import annotations

import logging
import uuid

import redis.asyncio as aioredis
from arq import ArqRedis
from arq.connections import RedisSettings
from arq.jobs import Job

from crew.config import get_settings
from crew.crew_score.promotion_notifier import drain_promotion_notifications
from crew.crew_score.push import RedisPushSender
from crew.crew_score.recalc_service import recalculate_group_crew_scores
from crew.crew_score.store import SqlCrewScoreStore
from crew.database import close_db, get_session_factory, init_db
from crew.middleware.logging import setup_logging

logger = logging.getLogger(__name__)

JOB_NAME = "recalculate_group_job"


async def crew_score_startup(ctx: dict) -> None:  # type: ignore[type-arg]
    """Initialize DB + Redis connections on worker startup."""
    settings = get_settings()
    setup_logging(settings)
    await init_db(settings.database_url)

    redis_client = aioredis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=20,
    )
    ctx["redis"] = redis_client
    ctx["store"] = SqlCrewScoreStore(get_session_factory())
    ctx["push_sender"] = RedisPushSender(redis_client)
    logger.info("Crew score worker started")


async def crew_score_shutdown(ctx: dict) -> None:  # type: ignore[type-arg]
    """Let in-flight promotions finish, then clean up."""
    await drain_promotion_notifications()
    redis_client: aioredis.Redis | None = ctx.get("redis")
    if redis_client:
        await redis_client.aclose()
    await close_db()
    logger.info("Crew score worker shut down")


async def recalculate_group_job(ctx: dict, group_id: str) -> dict:  # type: ignore[type-arg]
    """Recalculate one group's crew scores. Returns a small summary."""
    result = await recalculate_group_crew_scores(
        ctx["store"],
        uuid.UUID(group_id),
        push_sender=ctx.get("push_sender"),
        redis=ctx.get("redis"),
    )
    if result.failures:
        logger.warning(
            "Group %s recalculated with %d failed upsert(s)", group_id, len(result.failures),
        )
    return {
        "group_id": group_id,
        "skipped": result.skipped,
        "persisted": result.persisted,
        "failed": len(result.failures),
        "promotions": len(result.promotions),
    }


async def enqueue_group_recalculation(arq_redis: ArqRedis, group_id: uuid.UUID) -> Job | None:
    """Queue a recalculation of ``group_id`` for the worker."""
    return await arq_redis.enqueue_job(JOB_NAME, str(group_id))


class CrewScoreWorkerSettings:
    """arq worker settings for crew score recalculation."""

    functions = [recalculate_group_job]
    on_startup = crew_score_startup
    on_shutdown = crew_score_shutdown
    redis_settings = RedisSettings.from_dsn(get_settings().arq_redis_url)
    max_jobs = 4
    job_timeout = get_settings().worker_job_timeout_seconds
    keep_result = 3600
