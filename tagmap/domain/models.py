from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# JSONB on Postgres, plain JSON elsewhere (SQLite in tests).
JsonType = JSON().with_variant(JSONB(), "postgresql")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; every stored timestamp is UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    pass


class Tag(Base):
    __tablename__ = "tags"
    __table_args__ = (
        # Keyset pagination walks (created_at, id) in descending order.
        Index("ix_tags_created_at_id", "created_at", "id"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True)
    location_name: Mapped[str] = mapped_column(String)
    accessibility: Mapped[float | None] = mapped_column(Float, nullable=True)
    mission_name: Mapped[str] = mapped_column(String)
    sub_type_name: Mapped[str | None] = mapped_column(String, nullable=True)
    target_name: Mapped[str | None] = mapped_column(String, nullable=True)
    # Coordinates arrive as decimal strings and are normalized to floats on write.
    latitude: Mapped[float] = mapped_column(Float)
    longitude: Mapped[float] = mapped_column(Float)
    floor: Mapped[int | None] = mapped_column(Integer, nullable=True)
    description: Mapped[str] = mapped_column(Text, default="")
    street_view_json: Mapped[dict[str, Any] | None] = mapped_column(JsonType, nullable=True)
    image_urls_json: Mapped[list[str]] = mapped_column(JsonType, default=list)
    view_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_by: Mapped[str] = mapped_column(String, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    # Set by the lifecycle engine on content edits only; view counts do not touch it.
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)


class TagStatusRecord(Base):
    __tablename__ = "tag_status_records"
    __table_args__ = (
        Index("ix_tag_status_records_tag_created", "tag_id", "created_at", "id"),
    )

    # Autoincrement id doubles as the ledger sequence for tie-breaking.
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tag_id: Mapped[str] = mapped_column(String, ForeignKey("tags.id"), index=True)
    status_name: Mapped[str] = mapped_column(String)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    created_by: Mapped[str] = mapped_column(String, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    number_of_up_vote: Mapped[int | None] = mapped_column(Integer, nullable=True)
    # Only records with this flag take part in vote-driven promotion/demotion.
    has_up_vote: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)


class TagUpVote(Base):
    __tablename__ = "tag_up_votes"
    __table_args__ = (
        UniqueConstraint("tag_id", "user_id", name="uq_tag_up_votes_tag_user"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tag_id: Mapped[str] = mapped_column(String, ForeignKey("tags.id"), index=True)
    user_id: Mapped[str] = mapped_column(String)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)


class UserProfile(Base):
    __tablename__ = "user_profiles"

    # uid issued by the authentication provider.
    uid: Mapped[str] = mapped_column(String, primary_key=True)
    display_name: Mapped[str | None] = mapped_column(String, nullable=True)
    email: Mapped[str | None] = mapped_column(String, nullable=True)
    has_read_guide: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )


@event.listens_for(TagStatusRecord, "before_update")
def _reject_status_record_update(_mapper, _connection, target: TagStatusRecord) -> None:
    raise RuntimeError(f"status record {target.id} is immutable")


@event.listens_for(TagStatusRecord, "before_delete")
def _reject_status_record_delete(_mapper, _connection, target: TagStatusRecord) -> None:
    raise RuntimeError(f"status record {target.id} is immutable")
