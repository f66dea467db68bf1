"""
Repositories en mémoire pour les entités de contenu et leurs versions.

Ce module fournit des implémentations locales (dev/tests) des ports de persistance, avec la
même sémantique que les dépôts SQLAlchemy de `backend.infra.repo`.
"""

import threading

from backend.domain.content_version import VersionSnapshot
from backend.domain.entities import ContentEntity
from backend.domain.errors import VersionConflict


class InMemoryContentEntityRepo:
    """
    Dépôt d'entités en mémoire (utilisé pour dev/tests).

    Stocke des copies des entités dans un dict local, non persistant.
    """

    def __init__(self):
        """Initialise une base mémoire vide."""
        self._db: dict[str, ContentEntity] = {}

    def save_entity(self, entity: ContentEntity) -> ContentEntity:
        """Enregistre/écrase une entité et la renvoie."""
        self._db[entity.id] = entity.model_copy(deep=True)
        return entity

    def get_entity(self, entity_id: str) -> ContentEntity | None:
        """Retourne une entité par id, ou None si elle est absente."""
        entity = self._db.get(entity_id)
        return entity.model_copy(deep=True) if entity is not None else None


class InMemoryContentVersionRepo:
    """Dépôt de versions en mémoire; unicité (entity_id, version_number) contrôlée."""

    def __init__(self):
        """Initialise une base mémoire vide."""
        self._rows: dict[str, VersionSnapshot] = {}
        self._lock = threading.Lock()

    def max_version_number(self, entity_id: str) -> int:
        """Plus grand numéro de version de l'entité (0 si aucune)."""
        with self._lock:
            numbers = [r.version_number for r in self._rows.values() if r.entity_id == entity_id]
        return max(numbers, default=0)

    def insert_version(self, snapshot: VersionSnapshot) -> VersionSnapshot:
        """Rétrograde la version courante puis insère le snapshot (atomique).

        Raises:
            VersionConflict: le numéro existe déjà pour cette entité.
        """
        with self._lock:
            for row in self._rows.values():
                if (
                    row.entity_id == snapshot.entity_id
                    and row.version_number == snapshot.version_number
                ):
                    raise VersionConflict(
                        f"version {snapshot.version_number} already exists",
                        details={
                            "entity_id": snapshot.entity_id,
                            "version_number": snapshot.version_number,
                        },
                    )
            for key, row in list(self._rows.items()):
                if row.entity_id == snapshot.entity_id and row.is_current:
                    self._rows[key] = row.with_current(False)
            stored = snapshot.with_current(True)
            self._rows[stored.id] = stored
            return stored

    def get_version(self, version_id: str) -> VersionSnapshot | None:
        """Retourne une version par id, ou None."""
        with self._lock:
            return self._rows.get(version_id)

    def list_versions(self, entity_id: str) -> list[VersionSnapshot]:
        """Versions de l'entité, de la plus récente à la plus ancienne."""
        with self._lock:
            rows = [r for r in self._rows.values() if r.entity_id == entity_id]
        return sorted(rows, key=lambda r: r.version_number, reverse=True)

    def set_current(self, entity_id: str, version_id: str) -> None:
        """Positionne `is_current` sur la seule version cible."""
        with self._lock:
            for key, row in list(self._rows.items()):
                if row.entity_id == entity_id:
                    self._rows[key] = row.with_current(row.id == version_id)
