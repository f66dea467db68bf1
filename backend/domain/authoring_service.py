"""Service d'édition de contenu: opérations exposées aux routes HTTP.

Orchestre le répartiteur de modes, le résolveur de réponses, le magasin de brouillons, le
journal des versions et la relecture critique.

Déroulé d'une génération:
- lecture du brouillon et vérification des préconditions (avant tout appel externe);
- appel du générateur hors verrou, sur une copie du brouillon;
- normalisation de la réponse (MissingPayload -> rien n'est persisté);
- fusion à portée de champ sous le verrou de l'entité, contrôle d'intégrité,
  puis snapshot "AI generation: <mode>".
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Protocol

import structlog

from backend.domain.content_version import CAPTURED_FIELDS, VersionSnapshot, apply_snapshot
from backend.domain.draft_store import DraftStore, apply_result
from backend.domain.entities import ContentEntity, GenerationResult, ReviewReport
from backend.domain.integrity import IntegrityReport, check_integrity
from backend.domain.modes import (
    GenerationMode,
    ModeSpec,
    build_context,
    change_reason_for,
    ensure_preconditions,
    get_spec,
)
from backend.domain.response_resolver import resolve_response
from backend.domain.review import ReviewCritic
from backend.domain.version_log import VersionLog

log = structlog.get_logger(__name__)

MANUAL_SAVE_REASON = "Manual save"


class Generator(Protocol):
    """Port du service de génération externe."""

    def generate(self, mode: str, context: dict[str, Any]) -> Any: ...


@dataclass
class GenerationOutcome:
    """Résultat d'une génération appliquée (version None pour les modes non persistants)."""

    entity: ContentEntity
    result: GenerationResult
    version: VersionSnapshot | None = None
    integrity: list[IntegrityReport] = field(default_factory=list)


@dataclass
class RestoreOutcome:
    """Brouillon restauré, version devenue courante et contrôles d'intégrité."""

    entity: ContentEntity
    version: VersionSnapshot
    integrity: list[IntegrityReport] = field(default_factory=list)


class AuthoringService:
    """Opérations d'édition, de génération et d'historique des contenus."""

    def __init__(
        self,
        drafts: DraftStore,
        versions: VersionLog,
        generator: Generator,
        critic: ReviewCritic,
        *,
        primary_provider: str = "anthropic",
        shrink_ratio: float = 0.5,
    ):
        """Initialise le service avec ses dépendances.

        Paramètres:
        - drafts: magasin de brouillons (verrous par entité).
        - versions: journal des versions (partage les verrous du magasin).
        - generator: service de génération (passerelle LLM).
        - critic: relecture critique.
        - primary_provider: fournisseur supposé quand la réponse ne permet pas de l'inférer.
        - shrink_ratio: seuil du contrôle d'intégrité.
        """
        self.drafts = drafts
        self.versions = versions
        self.generator = generator
        self.critic = critic
        self.primary_provider = primary_provider
        self.shrink_ratio = shrink_ratio

    # ---------------------------- brouillons ----------------------------

    def create_entity(self, title: str, **fields: Any) -> ContentEntity:
        """Crée une entité en brouillon."""
        entity = ContentEntity(id=uuid.uuid4().hex, title=title, **fields)
        with self.drafts.locked(entity.id):
            saved = self.drafts.put(entity)
        log.info("content_created", entity_id=saved.id)
        return saved

    def get_entity(self, entity_id: str) -> ContentEntity:
        """Retourne le brouillon courant (NotFound si absent)."""
        return self.drafts.get(entity_id)

    def update_entity(self, entity_id: str, changes: dict[str, Any]) -> ContentEntity:
        """Éditions d'auteur, champ par champ."""
        return self.drafts.update_fields(entity_id, changes)

    def append_objectives(self, entity_id: str, items: Iterable[str]) -> ContentEntity:
        """Ajoute des objectifs pédagogiques en fin de liste."""
        return self.drafts.append(entity_id, "learning_objectives", items)

    def set_status(self, entity_id: str, status: str) -> ContentEntity:
        """Transition de statut (PreconditionFailed si interdite)."""
        return self.drafts.set_status(entity_id, status)

    # ---------------------------- génération ----------------------------

    def generate(self, entity_id: str, mode: str | GenerationMode) -> GenerationOutcome:
        """Génère pour le mode demandé puis applique le résultat.

        Raises:
            PreconditionFailed: précondition du mode non satisfaite (aucun appel externe).
            GenerationFailed: échec du service de génération (brouillon intact).
            MissingPayload: réponse sans texte exploitable (brouillon intact).
        """
        spec = get_spec(mode)
        entity = self.drafts.get(entity_id)
        ensure_preconditions(spec, entity)
        context = build_context(spec, entity)
        log.info("generation_started", entity_id=entity_id, mode=spec.mode.value)
        raw = self.generator.generate(spec.mode.value, context)
        return self._apply(entity_id, spec, raw)

    def apply_generation(
        self, entity_id: str, mode: str | GenerationMode, raw: Any
    ) -> GenerationOutcome:
        """Applique une réponse brute déjà obtenue (ex: appel fait côté client)."""
        spec = get_spec(mode)
        ensure_preconditions(spec, self.drafts.get(entity_id))
        return self._apply(entity_id, spec, raw)

    def _apply(self, entity_id: str, spec: ModeSpec, raw: Any) -> GenerationOutcome:
        result = resolve_response(raw, spec.mode, primary_provider=self.primary_provider)
        if not spec.persists:
            return GenerationOutcome(entity=self.drafts.get(entity_id), result=result)

        with self.drafts.locked(entity_id):
            current = self.drafts.get(entity_id)
            updated = apply_result(current, spec, result)
            integrity = [
                check_integrity(
                    getattr(current, name),
                    getattr(updated, name),
                    name,
                    shrink_ratio=self.shrink_ratio,
                )
                for name in spec.target_fields
            ]
            saved = self.drafts.put(updated)
            version = self.versions.create_version(
                saved, change_reason_for(spec), result, locked=True
            )
        log.info(
            "generation_applied",
            entity_id=entity_id,
            mode=spec.mode.value,
            version_number=version.version_number,
            cache_hit=result.cache.hit,
        )
        return GenerationOutcome(entity=saved, result=result, version=version, integrity=integrity)

    # ---------------------------- historique ----------------------------

    def save(self, entity_id: str, change_reason: str | None = None) -> VersionSnapshot:
        """Snapshot du brouillon courant.

        `review_status` passe à "approved" si le contenu est publié, "pending" sinon.
        """
        with self.drafts.locked(entity_id):
            entity = self.drafts.get(entity_id)
            review_status = "approved" if entity.status == "published" else "pending"
            entity = self.drafts.put(entity.model_copy(update={"review_status": review_status}))
            return self.versions.create_version(
                entity, change_reason or MANUAL_SAVE_REASON, locked=True
            )

    def restore(self, entity_id: str, version_id: str) -> RestoreOutcome:
        """Recopie une version dans le brouillon et la marque courante (sans nouvelle version).

        Le brouillon est écrit avant le déplacement de `is_current`: un échec d'écriture laisse
        le pointeur de version intact, et un échec du déplacement remet le brouillon précédent.
        Le champ `status` capturé est recopié tel quel, sans passer par les transitions de
        statut (un contenu publié restauré depuis un brouillon redevient `draft`).

        Raises:
            NotFound: version inconnue ou d'une autre entité.
        """
        with self.drafts.locked(entity_id):
            current = self.drafts.get(entity_id)
            snapshot = self.versions.get_version(entity_id, version_id)
            restored = apply_snapshot(current, snapshot)
            integrity = [
                check_integrity(
                    getattr(current, name),
                    getattr(restored, name),
                    name,
                    shrink_ratio=self.shrink_ratio,
                )
                for name in CAPTURED_FIELDS
                if isinstance(getattr(current, name), str) and name != "status"
            ]
            saved = self.drafts.put(restored)
            try:
                snapshot = self.versions.restore_version(entity_id, version_id, locked=True)
            except Exception:
                self.drafts.put(current)
                raise
        return RestoreOutcome(entity=saved, version=snapshot, integrity=integrity)

    def list_versions(self, entity_id: str) -> list[VersionSnapshot]:
        """Versions de l'entité, plus récente en premier."""
        self.drafts.get(entity_id)
        return self.versions.list_versions(entity_id)

    # ---------------------------- relecture ----------------------------

    def review(
        self, entity_id: str, field_name: str = "full_text", mode: str = "fulltext"
    ) -> ReviewReport:
        """Relit un champ texte de l'entité; l'entité n'est pas modifiée."""
        entity = self.drafts.get(entity_id)
        content = getattr(entity, field_name, None)
        if not isinstance(content, str):
            raise ValueError(f"not_a_text_field: {field_name}")
        return self.critic.run_review(content, entity.specialty, mode)
