# ============================================================
# Module : backend/domain/draft_store.py
# Objet  : Brouillons vivants des entités et fusions à portée de champ.
# Invariants :
#  - Une fusion ne touche qu'un champ; les autres restent identiques.
#  - Les opérations mutantes sur une même entité sont sérialisées (verrou).
#  - Fusions sur champs distincts: l'ordre d'application est indifférent.
# ============================================================
"""Magasin de brouillons de contenu.

Les fonctions `merge_field` / `merge_list_append` sont pures: elles renvoient une nouvelle
entité. `DraftStore` garde le brouillon courant de chaque entité derrière un verrou
par entité et délègue la persistance au dépôt d'entités.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any, Protocol

import structlog

from backend.domain.entities import ContentEntity, GenerationResult
from backend.domain.errors import NotFound, PreconditionFailed
from backend.domain.modes import ModeSpec

log = structlog.get_logger(__name__)

IMMUTABLE_FIELDS = frozenset({"id"})
LIST_FIELDS = frozenset({"learning_objectives", "sources", "warnings"})

# Transitions de statut autorisées
STATUS_TRANSITIONS: dict[str, frozenset[str]] = {
    "draft": frozenset({"in_review"}),
    "in_review": frozenset({"published", "draft"}),
    "published": frozenset({"draft"}),
}


class EntityRepository(Protocol):
    """Port de persistance des entités (mémoire ou SQLAlchemy)."""

    def save_entity(self, entity: ContentEntity) -> ContentEntity: ...

    def get_entity(self, entity_id: str) -> ContentEntity | None: ...


def _check_key(field_key: str) -> None:
    if field_key in IMMUTABLE_FIELDS:
        raise ValueError(f"immutable_field: {field_key}")
    if field_key not in ContentEntity.model_fields:
        raise ValueError(f"unknown_field: {field_key}")


def merge_field(entity: ContentEntity, field_key: str, value: Any) -> ContentEntity:
    """Retourne une nouvelle entité avec exactement un champ remplacé.

    Raises:
        ValueError: champ inconnu ou immuable (`id`).
    """
    _check_key(field_key)
    data = entity.model_dump()
    data[field_key] = value
    return ContentEntity.model_validate(data)


def merge_list_append(entity: ContentEntity, list_key: str, items: Iterable[Any]) -> ContentEntity:
    """Ajoute `items` en fin de liste, dans l'ordre, sans dédoublonnage."""
    _check_key(list_key)
    if list_key not in LIST_FIELDS:
        raise ValueError(f"not_a_list_field: {list_key}")
    current = list(getattr(entity, list_key))
    return merge_field(entity, list_key, current + list(items))


def transition_status(entity: ContentEntity, target: str) -> ContentEntity:
    """Applique une transition de statut (draft -> in_review -> published, retour à draft).

    Raises:
        PreconditionFailed: transition non autorisée.
    """
    if target == entity.status:
        return entity
    allowed = STATUS_TRANSITIONS.get(entity.status, frozenset())
    if target not in allowed:
        raise PreconditionFailed(
            f"cannot move from {entity.status} to {target}",
            details={"from": entity.status, "to": target},
        )
    return merge_field(entity, "status", target)


def _touch(entity: ContentEntity) -> ContentEntity:
    return entity.model_copy(update={"updated_at": datetime.now(UTC).isoformat()})


class DraftStore:
    """Brouillons vivants, un verrou par entité."""

    def __init__(self, repo: EntityRepository):
        """Initialise le magasin sur un dépôt d'entités."""
        self.repo = repo
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def lock_for(self, entity_id: str) -> threading.Lock:
        """Retourne (en le créant au besoin) le verrou de l'entité."""
        with self._registry_lock:
            lock = self._locks.get(entity_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[entity_id] = lock
            return lock

    @contextmanager
    def locked(self, entity_id: str) -> Iterator[None]:
        """Section critique sur une entité."""
        lock = self.lock_for(entity_id)
        with lock:
            yield

    def get(self, entity_id: str) -> ContentEntity:
        """Retourne le brouillon courant.

        Raises:
            NotFound: entité inconnue.
        """
        entity = self.repo.get_entity(entity_id)
        if entity is None:
            raise NotFound(f"content {entity_id} not found", details={"entity_id": entity_id})
        return entity

    def put(self, entity: ContentEntity) -> ContentEntity:
        """Persiste le brouillon (horodaté). L'appelant détient le verrou."""
        return self.repo.save_entity(_touch(entity))

    def update_fields(self, entity_id: str, changes: dict[str, Any]) -> ContentEntity:
        """Applique des éditions d'auteur, champ par champ, sous verrou."""
        with self.locked(entity_id):
            entity = self.get(entity_id)
            for key, value in changes.items():
                entity = merge_field(entity, key, value)
            return self.put(entity)

    def append(self, entity_id: str, list_key: str, items: Iterable[Any]) -> ContentEntity:
        """Ajoute des éléments à une liste de l'entité, sous verrou."""
        with self.locked(entity_id):
            entity = merge_list_append(self.get(entity_id), list_key, items)
            return self.put(entity)

    def set_status(self, entity_id: str, target: str) -> ContentEntity:
        """Transition de statut sous verrou."""
        with self.locked(entity_id):
            entity = transition_status(self.get(entity_id), target)
            return self.put(entity)


def apply_result(entity: ContentEntity, spec: ModeSpec, result: GenerationResult) -> ContentEntity:
    """Replie un résultat de génération dans l'entité, selon le mode.

    Seuls les champs cibles du mode, les références externes (si le mode fusionne ses
    sources), les avertissements et les métadonnées de modèle/coût sont modifiés.
    """
    updated = entity
    for field_key in spec.target_fields:
        updated = merge_field(updated, field_key, result.text)
    if spec.merge_sources:
        refs = [*result.sources, *result.citations.external]
        if refs:
            pack = updated.source_pack.model_copy(
                update={"external_refs": [*updated.source_pack.external_refs, *refs]}
            )
            updated = merge_field(updated, "source_pack", pack.model_dump())
    updated = merge_field(updated, "sources", list(result.sources))
    updated = merge_field(updated, "warnings", list(result.warnings))
    updated = merge_field(updated, "last_model_used", result.metadata.model)
    updated = merge_field(updated, "last_cost", result.metadata.cost.total)
    log.debug(
        "draft_result_applied",
        entity_id=entity.id,
        mode=spec.mode.value,
        fields=list(spec.target_fields),
    )
    return updated
