"""SQLAlchemy ORM models for persisting in-progress schedule drafts."""

from __future__ import annotations

from sqlalchemy import Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Declarative base for ORM models."""


class DraftModel(Base):
    """The single pending create/edit draft, keyed by a slot name."""

    __tablename__ = "scheduler_drafts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    slot: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    mode: Mapped[str] = mapped_column(String(16), nullable=False)
    schedule_index: Mapped[int | None] = mapped_column(Integer, nullable=True)
    schedule_json: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[str] = mapped_column(String(64), nullable=False)
