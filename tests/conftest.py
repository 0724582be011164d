"""Shared test fixtures."""

from __future__ import annotations

import asyncio
import dataclasses
import uuid
from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from crew.crew_score.promotion_notifier import drain_promotion_notifications
from crew.crew_score.router import get_crew_store, get_push_sender
from crew.crew_score.store import CrewScoreUpdate, GroupTierConfig, MemberStatsRow, Membership
from crew.main import create_app

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


class FakeCrewScoreStore:
    """In-memory crew score store that records every write."""

    def __init__(self) -> None:
        self.groups: dict[uuid.UUID, GroupTierConfig] = {}
        self.members: dict[uuid.UUID, list[Membership]] = {}
        self.stats: dict[tuple[uuid.UUID, uuid.UUID], MemberStatsRow] = {}
        self.display_names: dict[uuid.UUID, str] = {}
        self.channels: dict[uuid.UUID, uuid.UUID] = {}
        self.messages: list[tuple[uuid.UUID, uuid.UUID, str]] = []
        self.upserts: list[tuple[uuid.UUID, CrewScoreUpdate]] = []
        self.fail_upsert_for: set[uuid.UUID] = set()
        self.fail_reads = False
        self.fail_messages = False
        self.in_flight = 0
        self.max_in_flight = 0

    # --- setup helpers ---

    def add_group(
        self,
        created_at: datetime | None = None,
        tier_theme: str = "generic",
        custom_tier_names: list[str] | None = None,
        tier_announcements_enabled: bool = True,
        with_channel: bool = True,
        name: str = "Sunday Runners",
    ) -> GroupTierConfig:
        group_id = uuid.uuid4()
        group = GroupTierConfig(
            id=group_id,
            name=name,
            slug=f"crew-{group_id.hex[:8]}",
            created_at=created_at or NOW - timedelta(days=365),
            tier_theme=tier_theme,
            custom_tier_names=custom_tier_names,
            tier_announcements_enabled=tier_announcements_enabled,
        )
        self.groups[group_id] = group
        self.members[group_id] = []
        if with_channel:
            self.channels[group_id] = uuid.uuid4()
        return group

    def add_member(
        self,
        group_id: uuid.UUID,
        user_id: uuid.UUID | None = None,
        joined_at: datetime | None = None,
        display_name: str | None = None,
        **stats: object,
    ) -> uuid.UUID:
        """Add an approved member. Passing any stats creates a stats row."""
        user_id = user_id or uuid.uuid4()
        self.members.setdefault(group_id, []).append(
            Membership(user_id=user_id, joined_at=joined_at or NOW - timedelta(days=100))
        )
        if stats:
            self.stats[(group_id, user_id)] = MemberStatsRow(user_id=user_id, **stats)
        if display_name is not None:
            self.display_names[user_id] = display_name
        return user_id

    def record(self, group_id: uuid.UUID, user_id: uuid.UUID) -> MemberStatsRow | None:
        return self.stats.get((group_id, user_id))

    # --- CrewScoreStore ---

    async def fetch_member_stats(self, group_id: uuid.UUID) -> list[MemberStatsRow]:
        if self.fail_reads:
            raise ConnectionError("stats read failed")
        return [row for (gid, _), row in self.stats.items() if gid == group_id]

    async def fetch_approved_members(self, group_id: uuid.UUID) -> list[Membership]:
        return list(self.members.get(group_id, []))

    async def fetch_group(self, group_id: uuid.UUID) -> GroupTierConfig | None:
        return self.groups.get(group_id)

    async def upsert_crew_score(self, group_id: uuid.UUID, update: CrewScoreUpdate) -> None:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            if update.user_id in self.fail_upsert_for:
                raise RuntimeError("write failed")
            key = (group_id, update.user_id)
            row = self.stats.get(key) or MemberStatsRow(user_id=update.user_id)
            self.stats[key] = dataclasses.replace(
                row,
                crew_score=update.crew_score,
                tier=update.tier,
                tier_level=update.tier_level,
            )
            self.upserts.append((group_id, update))
        finally:
            self.in_flight -= 1

    async def fetch_display_name(self, user_id: uuid.UUID) -> str | None:
        return self.display_names.get(user_id)

    async def fetch_announcement_channel_id(self, group_id: uuid.UUID) -> uuid.UUID | None:
        return self.channels.get(group_id)

    async def insert_system_message(
        self, channel_id: uuid.UUID, author_id: uuid.UUID, content: str
    ) -> None:
        if self.fail_messages:
            raise ConnectionError("message insert failed")
        self.messages.append((channel_id, author_id, content))


class RecordingPushSender:
    """Push sender that keeps every payload it was asked to send."""

    def __init__(self, fail: bool = False) -> None:
        self.sent: list[dict[str, object]] = []
        self.fail = fail

    async def send(
        self,
        user_id: uuid.UUID,
        title: str,
        body: str,
        url: str,
        category: str,
    ) -> None:
        if self.fail:
            raise ConnectionError("push gateway down")
        self.sent.append(
            {"user_id": user_id, "title": title, "body": body, "url": url, "category": category}
        )


@pytest.fixture
def store() -> FakeCrewScoreStore:
    return FakeCrewScoreStore()


@pytest.fixture
def push_sender() -> RecordingPushSender:
    return RecordingPushSender()


@pytest_asyncio.fixture
async def drain() -> AsyncGenerator[None, None]:
    """Make sure no promotion task outlives the test."""
    yield
    await drain_promotion_notifications(timeout=1.0)


@pytest_asyncio.fixture
async def client(
    store: FakeCrewScoreStore, push_sender: RecordingPushSender
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP test client wired to the in-memory store (no DB, no Redis)."""
    app = create_app()
    app.dependency_overrides[get_crew_store] = lambda: store
    app.dependency_overrides[get_push_sender] = lambda: push_sender

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await drain_promotion_notifications(timeout=1.0)


@pytest.fixture
def now() -> datetime:
    """Fixed clock shared by the in-memory store's default join dates."""
    return NOW
