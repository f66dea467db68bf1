# ============================================================
# Module : backend/infra/repo/content_version_repo.py
# Objet  : Accès SQL aux snapshots de contenu (VersionSnapshot).
# Invariants :
#  - (entity_id, version_number) unique: un doublon lève VersionConflict.
#  - rétrogradation de l'ancienne version courante + insertion dans
#    une seule transaction.
# ============================================================

from __future__ import annotations

from sqlalchemy import func, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from ...domain.content_version import VersionSnapshot
from ...domain.errors import VersionConflict
from .db import session_scope
from .models import ContentVersionORM


def _to_snapshot(row: ContentVersionORM) -> VersionSnapshot:
    return VersionSnapshot(
        id=row.id,
        entity_id=row.entity_id,
        version_number=row.version_number,
        fields=dict(row.fields or {}),
        ai_model=row.ai_model,
        ai_confidence=row.ai_confidence,
        ai_cost=row.ai_cost,
        change_reason=row.change_reason or "",
        created_at=(row.created_at.isoformat() if row.created_at else ""),
        is_current=bool(row.is_current),
    )


class SqlContentVersionRepo:
    """CRUD des versions de contenu (une transaction par opération)."""

    def __init__(self, engine: Engine) -> None:
        """Construit le repo sur un moteur SQLAlchemy."""
        self._engine = engine

    def max_version_number(self, entity_id: str) -> int:
        """Plus grand numéro de version de l'entité (0 si aucune)."""
        with session_scope(self._engine) as session:
            stmt = select(func.max(ContentVersionORM.version_number)).where(
                ContentVersionORM.entity_id == entity_id
            )
            return int(session.execute(stmt).scalar() or 0)

    def insert_version(self, snapshot: VersionSnapshot) -> VersionSnapshot:
        """Rétrograde la version courante puis insère le snapshot (atomique).

        Raises:
            VersionConflict: le numéro existe déjà pour cette entité.
        """
        try:
            with session_scope(self._engine) as session:
                session.execute(
                    update(ContentVersionORM)
                    .where(ContentVersionORM.entity_id == snapshot.entity_id)
                    .where(ContentVersionORM.is_current.is_(True))
                    .values(is_current=False)
                )
                session.add(
                    ContentVersionORM(
                        id=snapshot.id,
                        entity_id=snapshot.entity_id,
                        version_number=snapshot.version_number,
                        fields=snapshot.fields,
                        ai_model=snapshot.ai_model,
                        ai_confidence=snapshot.ai_confidence,
                        ai_cost=snapshot.ai_cost,
                        change_reason=snapshot.change_reason,
                        is_current=True,
                    )
                )
                session.flush()
        except IntegrityError as exc:
            raise VersionConflict(
                f"version {snapshot.version_number} already exists",
                details={
                    "entity_id": snapshot.entity_id,
                    "version_number": snapshot.version_number,
                },
            ) from exc
        return self.get_version(snapshot.id) or snapshot.with_current(True)

    def get_version(self, version_id: str) -> VersionSnapshot | None:
        """Retourne une version par id, ou None."""
        with session_scope(self._engine) as session:
            row = session.get(ContentVersionORM, version_id)
            return _to_snapshot(row) if row is not None else None

    def list_versions(self, entity_id: str) -> list[VersionSnapshot]:
        """Versions de l'entité, de la plus récente à la plus ancienne."""
        with session_scope(self._engine) as session:
            stmt = (
                select(ContentVersionORM)
                .where(ContentVersionORM.entity_id == entity_id)
                .order_by(ContentVersionORM.version_number.desc())
            )
            return [_to_snapshot(r) for r in session.execute(stmt).scalars().all()]

    def set_current(self, entity_id: str, version_id: str) -> None:
        """Positionne `is_current` sur la seule version cible (atomique)."""
        with session_scope(self._engine) as session:
            session.execute(
                update(ContentVersionORM)
                .where(ContentVersionORM.entity_id == entity_id)
                .values(is_current=False)
            )
            session.execute(
                update(ContentVersionORM)
                .where(ContentVersionORM.entity_id == entity_id)
                .where(ContentVersionORM.id == version_id)
                .values(is_current=True)
            )
