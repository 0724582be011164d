"""Fire-and-forget delivery of tier promotions.

For every promotion: a push notification to the member, and, when the
group has tier announcements enabled and an announcements channel, a
system message in that channel. Every step is best-effort: failures are
logged and swallowed, never retried, and never reach the caller of the
recalculation.
"""

from __future__ import annotations

import asyncio
import logging
import uuid

from crew.config import get_settings
from crew.crew_score.push import PushSender
from crew.crew_score.store import CrewScoreStore, GroupTierConfig
from crew.crew_score.tiers import PromotionEvent

logger = logging.getLogger(__name__)

PUSH_CATEGORY = "tier_promotion"
PUSH_TITLE = "Tier up!"

# Strong references to detached notification tasks until they finish
_background_tasks: set[asyncio.Task[None]] = set()


def first_name(display_name: str | None) -> str:
    if display_name and display_name.strip():
        return display_name.strip().split()[0]
    return "A member"


def promotion_link(group: GroupTierConfig | None) -> str:
    base = get_settings().app_base_url.rstrip("/")
    return f"{base}/g/{group.slug}" if group else base


async def _notify_one(
    store: CrewScoreStore,
    push_sender: PushSender | None,
    group_id: uuid.UUID,
    group: GroupTierConfig | None,
    event: PromotionEvent,
) -> None:
    try:
        display_name = await store.fetch_display_name(event.user_id)
    except Exception:
        logger.warning("Display name lookup failed for user %s", event.user_id, exc_info=True)
        display_name = None

    # 1. Push notification
    if push_sender is not None:
        group_name = group.name if group else "your crew"
        try:
            await push_sender.send(
                event.user_id,
                PUSH_TITLE,
                f"You're now a {event.tier} in {group_name}!",
                promotion_link(group),
                PUSH_CATEGORY,
            )
        except Exception:
            logger.warning("Tier promotion push failed for user %s", event.user_id, exc_info=True)

    # 2. System message in the announcements channel (if enabled)
    if group is None or not group.tier_announcements_enabled:
        return
    try:
        channel_id = await store.fetch_announcement_channel_id(group_id)
        if channel_id is None:
            return
        await store.insert_system_message(
            channel_id,
            event.user_id,
            f"\U0001f389 {first_name(display_name)} just reached {event.tier}!",
        )
    except Exception:
        logger.warning(
            "Tier promotion announcement failed for user %s in group %s",
            event.user_id, group_id, exc_info=True,
        )


async def notify_promotions(
    store: CrewScoreStore,
    push_sender: PushSender | None,
    group_id: uuid.UUID,
    group: GroupTierConfig | None,
    promotions: list[PromotionEvent],
) -> None:
    """Deliver every promotion independently; one failure never affects another."""
    if not promotions:
        return
    await asyncio.gather(
        *(_notify_one(store, push_sender, group_id, group, event) for event in promotions)
    )
    logger.info("Delivered %d tier promotion(s) for group %s", len(promotions), group_id)


def _log_task_failure(task: asyncio.Task[None]) -> None:
    _background_tasks.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Tier promotion notifier crashed", exc_info=exc)


async def drain_promotion_notifications(timeout: float = 10.0) -> None:
    """Wait for in-flight promotion deliveries (used on worker shutdown)."""
    pending = list(_background_tasks)
    if not pending:
        return
    _, not_done = await asyncio.wait(pending, timeout=timeout)
    if not_done:
        logger.warning("Abandoning %d undelivered promotion batch(es) on shutdown", len(not_done))


def spawn_promotion_notifications(
    store: CrewScoreStore,
    push_sender: PushSender | None,
    group_id: uuid.UUID,
    group: GroupTierConfig | None,
    promotions: list[PromotionEvent],
) -> asyncio.Task[None] | None:
    """Start promotion delivery without waiting for it."""
    if not promotions:
        return None
    task = asyncio.create_task(
        notify_promotions(store, push_sender, group_id, group, list(promotions)),
        name=f"crew-promotions:{group_id}",
    )
    _background_tasks.add(task)
    task.add_done_callback(_log_task_failure)
    return task
