"""
Entités du domaine métier.

Ce module définit les modèles de données principaux: l'entité de contenu éditable,
le résultat normalisé d'une génération IA et le rapport de relecture critique.
"""

from typing import Any, Literal

from pydantic import BaseModel, Field

ContentStatus = Literal["draft", "in_review", "published"]
ConfidenceLevel = Literal["high", "medium", "low"]
Severity = Literal["low", "medium", "high"]


class SourcePack(BaseModel):
    """Références internes (curriculum) et externes (guidelines, articles)."""

    internal_refs: list[Any] = Field(default_factory=list)
    external_refs: list[Any] = Field(default_factory=list)


class ContentEntity(BaseModel):
    """Représentation éditable multi-champs d'un contenu (brouillon vivant)."""

    id: str
    title: str
    status: ContentStatus = "draft"
    full_text: str = ""
    high_yield: str = ""
    deep_dive: str = ""
    learning_objectives: list[str] = Field(default_factory=list)
    source_pack: SourcePack = Field(default_factory=SourcePack)
    sources: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    last_model_used: str | None = None
    last_cost: float | None = None
    specialty: str | None = None
    parent_section: str | None = None
    review_status: Literal["pending", "approved"] = "pending"
    updated_at: str | None = None


class Confidence(BaseModel):
    """Niveau de confiance déclaré par le modèle (jamais 'high' par défaut)."""

    level: ConfidenceLevel = "low"
    reason: str = "unknown"


class Citations(BaseModel):
    """Citations internes/externes renvoyées par le fournisseur."""

    internal: list[Any] = Field(default_factory=list)
    external: list[Any] = Field(default_factory=list)


class CacheInfo(BaseModel):
    """Informations de cache: un hit n'est pas une génération fraîche."""

    hit: bool = False
    age_seconds: int | None = None
    total_hits: int | None = None


class GenerationCost(BaseModel):
    """Coût en USD (total obligatoire, détail optionnel)."""

    total: float = 0.0
    input: float | None = None
    output: float | None = None


class GenerationMetadata(BaseModel):
    """Métadonnées du modèle ayant produit le résultat."""

    model: str | None = None
    provider: str = "anthropic"
    cost: GenerationCost = Field(default_factory=GenerationCost)
    generated_at: str | None = None
    fallback: bool = False
    usage: dict[str, int] = Field(default_factory=dict)


class GenerationResult(BaseModel):
    """Valeur éphémère produite par appel, repliée dans l'entité puis dans un snapshot."""

    body_variant_key: str
    text: str
    confidence: Confidence = Field(default_factory=Confidence)
    citations: Citations = Field(default_factory=Citations)
    warnings: list[str] = Field(default_factory=list)
    sources: list[str] = Field(default_factory=list)
    cache: CacheInfo = Field(default_factory=CacheInfo)
    metadata: GenerationMetadata = Field(default_factory=GenerationMetadata)
    structured_data: dict[str, Any] | None = None
    missing_topics: list[str] = Field(default_factory=list)
    degraded: list[str] = Field(default_factory=list)


class ReviewIssue(BaseModel):
    """Problème relevé par la relecture critique."""

    severity: Severity = "medium"
    category: str = "general"
    description: str
    line: int | None = None
    suggestion: str | None = None


class ReviewMetadata(BaseModel):
    """Modèle et coût de la relecture."""

    model: str | None = None
    cost: float = 0.0


class ReviewReport(BaseModel):
    """Rapport de qualité structuré; n'altère jamais l'entité relue."""

    approved: bool = False
    confidence: float = 0.0
    safety_score: int = 0
    completeness_score: int = 0
    accuracy_score: int | None = None
    educational_score: int | None = None
    overall_score: int | None = None
    issues: list[ReviewIssue] = Field(default_factory=list)
    strengths: list[str] = Field(default_factory=list)
    missing_sections: list[str] = Field(default_factory=list)
    summary: str | None = None
    metadata: ReviewMetadata = Field(default_factory=ReviewMetadata)
