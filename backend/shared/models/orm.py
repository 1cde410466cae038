"""
SQLAlchemy 2.0 ORM models for the SaveState core.
Only the tables the core reads or writes are mapped here.
"""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import (
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class ReleaseORM(Base):
    __tablename__ = "releases"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    display_title: Mapped[str] = mapped_column(Text, nullable=False)
    platform_key: Mapped[Optional[str]] = mapped_column(String(50))
    platform_name: Mapped[Optional[str]] = mapped_column(String(100))
    platform_label: Mapped[Optional[str]] = mapped_column(String(100))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class ReleaseExternalIdORM(Base):
    __tablename__ = "release_external_ids"
    __table_args__ = (
        UniqueConstraint("release_id", "source", name="uq_release_external_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    release_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("releases.id", ondelete="CASCADE"), nullable=False
    )
    source: Mapped[str] = mapped_column(String(20), nullable=False)
    external_id: Mapped[str] = mapped_column(String(100), nullable=False)
    external_title: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class ProgressORM(Base):
    __tablename__ = "provider_progress"
    __table_args__ = (
        UniqueConstraint("user_id", "source", "key", name="uq_provider_progress"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    source: Mapped[str] = mapped_column(String(20), nullable=False)
    key: Mapped[str] = mapped_column(Text, nullable=False)
    release_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("releases.id", ondelete="SET NULL")
    )
    title: Mapped[Optional[str]] = mapped_column(Text)
    platform_label: Mapped[Optional[str]] = mapped_column(String(100))
    status: Mapped[Optional[str]] = mapped_column(String(20))
    playtime_minutes: Mapped[Optional[int]] = mapped_column(Integer)
    earned: Mapped[Optional[int]] = mapped_column(Integer)
    total: Mapped[Optional[int]] = mapped_column(Integer)
    earned_hardcore: Mapped[Optional[int]] = mapped_column(Integer)
    points_earned: Mapped[Optional[int]] = mapped_column(Integer)
    points_total: Mapped[Optional[int]] = mapped_column(Integer)
    points_earned_hardcore: Mapped[Optional[int]] = mapped_column(Integer)
    completion_pct: Mapped[Optional[float]] = mapped_column(Float)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class DetailCacheORM(Base):
    __tablename__ = "detail_cache"
    __table_args__ = (
        UniqueConstraint("user_id", "release_id", "source", name="uq_detail_cache"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    release_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("releases.id", ondelete="CASCADE"), nullable=False
    )
    source: Mapped[str] = mapped_column(String(20), nullable=False)
    payload: Mapped[list[dict[str, Any]]] = mapped_column(JSONB, nullable=False, default=list)
    fetched_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class ProviderCredentialORM(Base):
    __tablename__ = "provider_credentials"
    __table_args__ = (
        UniqueConstraint("user_id", "source", name="uq_provider_credential"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    source: Mapped[str] = mapped_column(String(20), nullable=False)
    credential: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False, default=dict)
    last_synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    last_sync_count: Mapped[Optional[int]] = mapped_column(Integer)


class EraHistoryORM(Base):
    __tablename__ = "user_era_history"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    bonus_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    confidence_bonus: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    eras: Mapped[list[str]] = mapped_column(JSONB, nullable=False, default=list)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
