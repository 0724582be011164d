"""Pydantic response models for crew score endpoints."""

from __future__ import annotations

import uuid

from pydantic import BaseModel


# --- Crew Score ---


class PillarsResponse(BaseModel):
    loyalty: int
    spirit: int
    adventure: int
    legacy: int


class CrewScoreResponse(BaseModel):
    user_id: uuid.UUID
    group_id: uuid.UUID
    crew_score: int
    pillars: PillarsResponse
    tier: str
    tier_level: int
    persisted_tier: str | None = None
    rank: int
    total_members: int


# --- Recalculation ---


class PromotionEntry(BaseModel):
    user_id: uuid.UUID
    tier: str
    level: int


class RecalculationResponse(BaseModel):
    group_id: uuid.UUID
    skipped: bool
    total_members: int
    persisted: int
    failed: list[uuid.UUID] = []
    promotions: list[PromotionEntry] = []


# --- Tier themes ---


class TierThresholdEntry(BaseModel):
    level: int
    min: int
    max: int


class TierThemesResponse(BaseModel):
    thresholds: list[TierThresholdEntry]
    themes: dict[str, list[str]]
