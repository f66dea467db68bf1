# ============================================================
# Module : backend/domain/version_log.py
# Objet  : Historique append-only des snapshots et restauration.
# Invariants :
#  - Numérotation dense et strictement croissante par entité.
#  - Au plus une version is_current par entité.
#  - Une restauration ne crée pas de nouvelle version.
# ============================================================
"""Journal des versions de contenu.

Un seul écrivain par entité (verrou), numéro = max + 1, insertion atomique (rétrogradation
de la version courante comprise). Sur `VersionConflict` (course entre processus), une
seule relance avec un maximum relu, puis l'erreur remonte.
"""

from __future__ import annotations

import threading
import uuid
from datetime import UTC, datetime
from typing import Any, Protocol

import structlog

from backend.core.constants import VERSION_INSERT_ATTEMPTS
from backend.domain.content_version import CAPTURED_FIELDS, VersionSnapshot, capture_fields
from backend.domain.entities import ContentEntity, GenerationResult
from backend.domain.errors import NotFound, VersionConflict

log = structlog.get_logger(__name__)


class VersionRepository(Protocol):
    """Port de persistance des versions."""

    def max_version_number(self, entity_id: str) -> int: ...

    def insert_version(self, snapshot: VersionSnapshot) -> VersionSnapshot: ...

    def get_version(self, version_id: str) -> VersionSnapshot | None: ...

    def list_versions(self, entity_id: str) -> list[VersionSnapshot]: ...

    def set_current(self, entity_id: str, version_id: str) -> None: ...


class VersionLog:
    """Création, listing et restauration des versions d'entités."""

    def __init__(self, repo: VersionRepository, lock_for=None):
        """Initialise le journal.

        Paramètres:
        - repo: dépôt de versions (mémoire ou SQL).
        - lock_for: fabrique de verrous par entité (partagée avec le DraftStore);
          à défaut, un registre local est utilisé.
        """
        self.repo = repo
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()
        self._lock_for = lock_for or self._local_lock

    def _local_lock(self, entity_id: str) -> threading.Lock:
        with self._registry_lock:
            return self._locks.setdefault(entity_id, threading.Lock())

    def create_version(
        self,
        entity: ContentEntity,
        change_reason: str,
        generation: GenerationResult | None = None,
        *,
        locked: bool = False,
    ) -> VersionSnapshot:
        """Ajoute un snapshot de l'entité et le marque courant.

        `locked=True` indique que l'appelant détient déjà le verrou de l'entité.

        Raises:
            VersionConflict: conflit persistant après une relance.
        """
        if locked:
            return self._insert_with_retry(entity, change_reason, generation)
        with self._lock_for(entity.id):
            return self._insert_with_retry(entity, change_reason, generation)

    def _insert_with_retry(
        self,
        entity: ContentEntity,
        change_reason: str,
        generation: GenerationResult | None,
    ) -> VersionSnapshot:
        fields = capture_fields(entity)
        for attempt in range(1, VERSION_INSERT_ATTEMPTS + 1):
            number = self.repo.max_version_number(entity.id) + 1
            snapshot = VersionSnapshot(
                id=uuid.uuid4().hex,
                entity_id=entity.id,
                version_number=number,
                fields=fields,
                ai_model=generation.metadata.model if generation else entity.last_model_used,
                ai_confidence=generation.confidence.level if generation else None,
                ai_cost=generation.metadata.cost.total if generation else entity.last_cost,
                change_reason=change_reason,
                created_at=datetime.now(UTC).isoformat(),
                is_current=True,
            )
            try:
                stored = self.repo.insert_version(snapshot)
            except VersionConflict:
                log.warning(
                    "version_conflict",
                    entity_id=entity.id,
                    version_number=number,
                    attempt=attempt,
                )
                if attempt >= VERSION_INSERT_ATTEMPTS:
                    raise
                continue
            log.info(
                "version_created",
                entity_id=entity.id,
                version_number=stored.version_number,
                change_reason=change_reason,
            )
            return stored
        raise VersionConflict("version insert attempts exhausted", details={"entity_id": entity.id})

    def get_version(self, entity_id: str, version_id: str) -> VersionSnapshot:
        """Retourne une version appartenant à l'entité.

        Raises:
            NotFound: version inconnue ou appartenant à une autre entité.
        """
        snapshot = self.repo.get_version(version_id)
        if snapshot is None or snapshot.entity_id != entity_id:
            raise NotFound(
                f"version {version_id} not found for content {entity_id}",
                details={"entity_id": entity_id, "version_id": version_id},
            )
        return snapshot

    def restore_version(
        self, entity_id: str, version_id: str, *, locked: bool = False
    ) -> VersionSnapshot:
        """Repositionne `is_current` sur la version cible et la renvoie.

        Aucun nouveau numéro n'est attribué.
        """
        if locked:
            return self._restore(entity_id, version_id)
        with self._lock_for(entity_id):
            return self._restore(entity_id, version_id)

    def _restore(self, entity_id: str, version_id: str) -> VersionSnapshot:
        snapshot = self.get_version(entity_id, version_id)
        self.repo.set_current(entity_id, version_id)
        log.info(
            "version_restored",
            entity_id=entity_id,
            version_number=snapshot.version_number,
        )
        return snapshot.with_current(True)

    def list_versions(self, entity_id: str) -> list[VersionSnapshot]:
        """Versions de l'entité, par numéro décroissant."""
        return self.repo.list_versions(entity_id)

    def get_current(self, entity_id: str) -> VersionSnapshot | None:
        """Version courante de l'entité, ou None si aucune."""
        return next((v for v in self.repo.list_versions(entity_id) if v.is_current), None)


def diff_versions(a: VersionSnapshot, b: VersionSnapshot) -> list[dict[str, Any]]:
    """Liste les champs capturés qui diffèrent entre deux versions."""
    changes: list[dict[str, Any]] = []
    for key in CAPTURED_FIELDS:
        before = a.fields.get(key)
        after = b.fields.get(key)
        if before != after:
            changes.append({"field": key, "before": before, "after": after})
    return changes
