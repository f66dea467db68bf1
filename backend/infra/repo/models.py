"""SQLAlchemy models for persistence layer (ContentEntity, ContentVersion)."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    Integer,
    MetaData,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Classe de base pour tous les modèles SQLAlchemy."""

    metadata = MetaData()


class ContentEntityORM(Base):
    """Brouillon courant d'une entité de contenu."""

    __tablename__ = "content_entities"

    id = Column(String(64), primary_key=True)
    title = Column(String(512), nullable=False)
    status = Column(String(32), nullable=False, default="draft")
    full_text = Column(Text, nullable=False, default="")
    high_yield = Column(Text, nullable=False, default="")
    deep_dive = Column(Text, nullable=False, default="")
    learning_objectives = Column(JSON, nullable=False, default=list)
    source_pack = Column(JSON, nullable=False, default=dict)
    sources = Column(JSON, nullable=False, default=list)
    warnings = Column(JSON, nullable=False, default=list)
    last_model_used = Column(String(128), nullable=True)
    last_cost = Column(Float, nullable=True)
    specialty = Column(String(255), nullable=True)
    parent_section = Column(String(255), nullable=True)
    review_status = Column(String(32), nullable=False, default="pending")
    updated_at = Column(String(64), nullable=True)


class ContentVersionORM(Base):
    """Snapshot immuable d'une entité (numérotation dense par entité)."""

    __tablename__ = "content_versions"

    id = Column(String(64), primary_key=True)
    entity_id = Column(String(64), nullable=False, index=True)
    version_number = Column(Integer, nullable=False)
    fields = Column(JSON, nullable=False, default=dict)
    ai_model = Column(String(128), nullable=True)
    ai_confidence = Column(String(16), nullable=True)
    ai_cost = Column(Float, nullable=True)
    change_reason = Column(String(255), nullable=False, default="")
    created_at = Column(DateTime, nullable=False, default=_utcnow)
    is_current = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint("entity_id", "version_number", name="uq_entity_version_number"),
    )
