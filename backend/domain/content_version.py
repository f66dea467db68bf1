"""
Snapshot immuable d'une entité de contenu (POPO).

Ce module définit le modèle de domaine VersionSnapshot: l'état capturé des champs d'une
entité au moment d'une sauvegarde, avec les métadonnées IA associées.
"""

# ============================================================
# Module : backend/domain/content_version.py
# Objet  : Snapshot immuable d'une entité de contenu (POPO).
# Invariants :
#  - version_number dense par entité, à partir de 1.
#  - au plus un snapshot is_current=True par entité.
# ============================================================

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any

from backend.domain.entities import ContentEntity

# Champs de l'entité capturés dans chaque snapshot
CAPTURED_FIELDS: tuple[str, ...] = (
    "title",
    "status",
    "full_text",
    "high_yield",
    "deep_dive",
    "learning_objectives",
    "source_pack",
)


@dataclass(frozen=True)
class VersionSnapshot:
    """
    Version capturée d'une entité (objet domaine, jamais modifié après création).

    Attributs
    - id: identifiant unique de la version.
    - entity_id: entité propriétaire.
    - version_number: numéro dense, strictement croissant par entité.
    - fields: champs capturés (voir CAPTURED_FIELDS).
    - ai_model / ai_confidence / ai_cost: métadonnées de la dernière génération.
    - change_reason: motif lisible par machine (ex: "AI generation: fulltext").
    - created_at: ISO datetime de création.
    - is_current: vrai pour la version courante uniquement.
    """

    id: str
    entity_id: str
    version_number: int
    fields: dict[str, Any] = field(default_factory=dict)
    ai_model: str | None = None
    ai_confidence: str | None = None
    ai_cost: float | None = None
    change_reason: str = ""
    created_at: str = ""
    is_current: bool = False

    def with_current(self, is_current: bool) -> VersionSnapshot:
        """Retourne une copie avec le drapeau `is_current` repositionné."""
        return replace(self, is_current=is_current)


def capture_fields(entity: ContentEntity) -> dict[str, Any]:
    """Capture (copie profonde) les champs versionnés d'une entité."""
    data = entity.model_dump()
    return {key: data[key] for key in CAPTURED_FIELDS}


def apply_snapshot(entity: ContentEntity, snapshot: VersionSnapshot) -> ContentEntity:
    """Recopie les champs d'un snapshot dans le brouillon, champ par champ."""
    data = entity.model_dump()
    for key in CAPTURED_FIELDS:
        if key in snapshot.fields:
            data[key] = snapshot.fields[key]
    return ContentEntity.model_validate(data)
