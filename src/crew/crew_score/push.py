"""Push notification sender.

The engine hands a push payload to the delivery gateway over Redis
pub/sub (``push:user:{user_id}``); the gateway owns device subscriptions
and web-push delivery.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Protocol

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)


class PushSender(Protocol):
    async def send(
        self,
        user_id: uuid.UUID,
        title: str,
        body: str,
        url: str,
        category: str,
    ) -> None: ...


class RedisPushSender:
    """Publish push payloads for the delivery gateway."""

    def __init__(self, redis: aioredis.Redis) -> None:
        self._redis = redis

    async def send(
        self,
        user_id: uuid.UUID,
        title: str,
        body: str,
        url: str,
        category: str,
    ) -> None:
        payload = {
            "event": "push",
            "data": {
                "title": title,
                "body": body,
                "url": url,
                "category": category,
            },
        }
        await self._redis.publish(f"push:user:{user_id}", json.dumps(payload))
        logger.debug("Queued %s push for user %s", category, user_id)
