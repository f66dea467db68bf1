"""Accès SQL aux brouillons d'entités de contenu."""

from __future__ import annotations

from sqlalchemy.engine import Engine

from ...domain.entities import ContentEntity
from .db import session_scope
from .models import ContentEntityORM

_COLUMNS = tuple(c.name for c in ContentEntityORM.__table__.columns)


def _to_entity(row: ContentEntityORM) -> ContentEntity:
    return ContentEntity.model_validate({name: getattr(row, name) for name in _COLUMNS})


class SqlContentEntityRepo:
    """Dépôt d'entités adossé à SQLAlchemy (une transaction par opération)."""

    def __init__(self, engine: Engine) -> None:
        """Construit le repo sur un moteur SQLAlchemy."""
        self._engine = engine

    def save_entity(self, entity: ContentEntity) -> ContentEntity:
        """Insère ou remplace la ligne de l'entité."""
        data = entity.model_dump()
        with session_scope(self._engine) as session:
            row = session.get(ContentEntityORM, entity.id)
            if row is None:
                row = ContentEntityORM(id=entity.id)
                session.add(row)
            for name in _COLUMNS:
                if name != "id":
                    setattr(row, name, data[name])
        return entity

    def get_entity(self, entity_id: str) -> ContentEntity | None:
        """Retourne l'entité, ou None si absente."""
        with session_scope(self._engine) as session:
            row = session.get(ContentEntityORM, entity_id)
            return _to_entity(row) if row is not None else None
