# Schémas Pydantic exposés par l'API (requêtes et réponses).

from __future__ import annotations

from dataclasses import asdict
from typing import Any, Literal

from pydantic import BaseModel, Field

from backend.domain.content_version import VersionSnapshot
from backend.domain.entities import ContentEntity, ContentStatus, GenerationResult
from backend.domain.integrity import IntegrityReport


class ContentCreateRequest(BaseModel):
    """Création d'une entité de contenu (brouillon)."""

    title: str = Field(min_length=1)
    full_text: str = ""
    high_yield: str = ""
    deep_dive: str = ""
    learning_objectives: list[str] = Field(default_factory=list)
    specialty: str | None = None
    parent_section: str | None = None


class ContentUpdateRequest(BaseModel):
    """Éditions d'auteur; seuls les champs fournis sont modifiés."""

    title: str | None = None
    full_text: str | None = None
    high_yield: str | None = None
    deep_dive: str | None = None
    specialty: str | None = None
    parent_section: str | None = None


class ObjectivesRequest(BaseModel):
    """Objectifs à ajouter, dans l'ordre."""

    items: list[str]


class StatusRequest(BaseModel):
    """Statut cible."""

    status: ContentStatus


class ApplyRequest(BaseModel):
    """Réponse brute d'un fournisseur (objet, chaîne JSON ou texte)."""

    raw: Any


class SaveRequest(BaseModel):
    """Motif de sauvegarde (facultatif)."""

    change_reason: str | None = None


class ReviewRequest(BaseModel):
    """Champ relu et mode de relecture."""

    field: Literal["full_text", "high_yield", "deep_dive"] = "full_text"
    mode: str = "fulltext"


class VersionResponse(BaseModel):
    """Version sérialisée."""

    id: str
    entity_id: str
    version_number: int
    fields: dict[str, Any]
    ai_model: str | None = None
    ai_confidence: str | None = None
    ai_cost: float | None = None
    change_reason: str
    created_at: str
    is_current: bool

    @classmethod
    def from_snapshot(cls, snapshot: VersionSnapshot) -> VersionResponse:
        return cls(**asdict(snapshot))


class IntegrityResponse(BaseModel):
    """Contrôle d'intégrité d'un champ fusionné."""

    field: str
    before_length: int
    after_length: int
    ratio: float
    shrunk: bool
    ok: bool

    @classmethod
    def from_report(cls, report: IntegrityReport) -> IntegrityResponse:
        return cls(**report.to_dict())


class GenerationResponse(BaseModel):
    """Brouillon après génération, résultat normalisé et version créée (si persistée)."""

    entity: ContentEntity
    result: GenerationResult
    version: VersionResponse | None = None
    integrity: list[IntegrityResponse] = Field(default_factory=list)


class RestoreResponse(BaseModel):
    """Brouillon restauré et version courante."""

    entity: ContentEntity
    version: VersionResponse
    integrity: list[IntegrityResponse] = Field(default_factory=list)
