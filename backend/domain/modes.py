# ============================================================
# Module : backend/domain/modes.py
# Objet  : Table des modes de génération (clé attendue, champs cibles,
#          préconditions, modèle par défaut).
# Invariants :
#  - Énumération fermée; les alias historiques sont normalisés.
#  - Les préconditions sont vérifiées avant tout appel externe.
# ============================================================
"""Répartiteur des modes de génération.

Chaque mode est décrit par un `ModeSpec` : clé de sortie attendue, droit à la recherche web,
champs de l'entité mis à jour en cas de succès, préconditions, modèle et budget de tokens.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from backend.core.constants import BODY_KEYS, CHANGE_REASON_AI_PREFIX
from backend.domain.entities import ContentEntity
from backend.domain.errors import PreconditionFailed


class GenerationMode(str, Enum):
    """Modes de génération supportés."""

    FULLTEXT = "fulltext"
    HIGH_YIELD = "high_yield"
    DEEP_DIVE = "deep_dive"
    SUMMARIZE = "summarize"
    REFORMAT = "reformat"
    QUIZ = "quiz"
    FLASHCARDS = "flashcards"
    SIMPLIFY = "simplify"
    EXAM_ANSWER = "exam_answer"
    REVIEW_CRITIC = "review_critic"


# Noms hérités des anciennes fonctions de génération
LEGACY_ALIASES: dict[str, GenerationMode] = {
    "topic_generate_fulltext": GenerationMode.FULLTEXT,
    "topic_generate_fulltext_v2": GenerationMode.FULLTEXT,
    "topic_generate_high_yield": GenerationMode.HIGH_YIELD,
    "topic_generate_deep_dive": GenerationMode.DEEP_DIVE,
    "topic_deep_dive": GenerationMode.DEEP_DIVE,
    "topic_summarize": GenerationMode.SUMMARIZE,
    "topic_reformat": GenerationMode.REFORMAT,
    "question_quiz": GenerationMode.QUIZ,
    "mcq": GenerationMode.QUIZ,
    "question_simplify": GenerationMode.SIMPLIFY,
    "question_exam_answer": GenerationMode.EXAM_ANSWER,
    "question_high_yield": GenerationMode.HIGH_YIELD,
    "content_review_critic": GenerationMode.REVIEW_CRITIC,
    "review": GenerationMode.REVIEW_CRITIC,
    "high-yield": GenerationMode.HIGH_YIELD,
    "deep-dive": GenerationMode.DEEP_DIVE,
    "exam-answer": GenerationMode.EXAM_ANSWER,
    "review-critic": GenerationMode.REVIEW_CRITIC,
}


@dataclass(frozen=True)
class ModeSpec:
    """
    Description d'un mode de génération.

    Attributs
    - mode: identifiant du mode.
    - expected_key: clé de sortie attendue dans la réponse du fournisseur.
    - fallback_keys: clés de repli pour le texte (ex: `text`).
    - allow_web: recherche web autorisée pour ce mode.
    - target_fields: champs de l'entité remplacés en cas de succès (vide = pas de fusion).
    - requires: champs de l'entité devant être non vides avant l'appel.
    - model_key: modèle par défaut (voir `backend.infra.generation_gateway.MODELS`).
    - max_tokens: budget de sortie.
    - merge_sources: les sources renvoyées complètent `source_pack.external_refs`.
    - structured: la charge utile est structurée (liste/objet) et non du texte.
    """

    mode: GenerationMode
    expected_key: str
    fallback_keys: tuple[str, ...] = ("text",)
    allow_web: bool = False
    target_fields: tuple[str, ...] = ()
    requires: tuple[str, ...] = ()
    model_key: str = "sonnet"
    max_tokens: int = 4096
    merge_sources: bool = False
    structured: bool = False

    @property
    def text_keys(self) -> tuple[str, ...]:
        """Clés candidates pour le texte, par priorité."""
        return (self.expected_key, *self.fallback_keys)

    @property
    def unwrap_keys(self) -> tuple[str, ...]:
        """Clés transmises au désenveloppeur (clé attendue d'abord, sans doublon)."""
        ordered = (self.expected_key, *BODY_KEYS, *self.fallback_keys)
        return tuple(dict.fromkeys(ordered))

    @property
    def persists(self) -> bool:
        """Vrai si un succès met à jour l'entité (et crée un snapshot)."""
        return bool(self.target_fields)


MODE_TABLE: dict[GenerationMode, ModeSpec] = {
    GenerationMode.FULLTEXT: ModeSpec(
        mode=GenerationMode.FULLTEXT,
        expected_key="full_text",
        target_fields=("full_text",),
        model_key="opus",
        max_tokens=8192,
        merge_sources=True,
    ),
    GenerationMode.HIGH_YIELD: ModeSpec(
        mode=GenerationMode.HIGH_YIELD,
        expected_key="high_yield",
        target_fields=("high_yield",),
        requires=("full_text",),
        max_tokens=2048,
    ),
    GenerationMode.DEEP_DIVE: ModeSpec(
        mode=GenerationMode.DEEP_DIVE,
        expected_key="deep_dive",
        allow_web=True,
        target_fields=("deep_dive",),
        requires=("full_text",),
        model_key="opus",
        max_tokens=8192,
        merge_sources=True,
    ),
    GenerationMode.SUMMARIZE: ModeSpec(
        mode=GenerationMode.SUMMARIZE,
        expected_key="high_yield",
        target_fields=("high_yield",),
        requires=("full_text",),
        max_tokens=2048,
    ),
    GenerationMode.REFORMAT: ModeSpec(
        mode=GenerationMode.REFORMAT,
        expected_key="full_text",
        target_fields=("full_text",),
        requires=("full_text",),
        max_tokens=8192,
    ),
    GenerationMode.QUIZ: ModeSpec(
        mode=GenerationMode.QUIZ,
        expected_key="mcq",
        fallback_keys=("questions", "text"),
        max_tokens=2048,
        structured=True,
    ),
    GenerationMode.FLASHCARDS: ModeSpec(
        mode=GenerationMode.FLASHCARDS,
        expected_key="flashcards",
        requires=("full_text",),
        model_key="haiku",
        max_tokens=2048,
        structured=True,
    ),
    GenerationMode.SIMPLIFY: ModeSpec(
        mode=GenerationMode.SIMPLIFY,
        expected_key="text",
        fallback_keys=("answer_md",),
        model_key="haiku",
        max_tokens=2048,
    ),
    GenerationMode.EXAM_ANSWER: ModeSpec(
        mode=GenerationMode.EXAM_ANSWER,
        expected_key="answer_md",
        fallback_keys=("text",),
    ),
    GenerationMode.REVIEW_CRITIC: ModeSpec(
        mode=GenerationMode.REVIEW_CRITIC,
        expected_key="issues",
        fallback_keys=("summary", "text"),
        model_key="gpt4o",
        structured=True,
    ),
}


def normalize_mode(name: str | GenerationMode) -> GenerationMode:
    """Normalise un nom de mode (alias hérités inclus).

    Raises:
        ValueError: si le mode est inconnu.
    """
    if isinstance(name, GenerationMode):
        return name
    raw = str(name or "").strip().lower()
    if raw in LEGACY_ALIASES:
        return LEGACY_ALIASES[raw]
    try:
        return GenerationMode(raw.replace("-", "_"))
    except ValueError as exc:
        raise ValueError(f"unknown_mode: {name}") from exc


def get_spec(name: str | GenerationMode) -> ModeSpec:
    """Retourne la description du mode demandé."""
    return MODE_TABLE[normalize_mode(name)]


def ensure_preconditions(spec: ModeSpec, entity: ContentEntity) -> None:
    """Vérifie les préconditions du mode sur l'entité.

    Raises:
        PreconditionFailed: si un champ requis est vide.
    """
    for field_name in spec.requires:
        value = getattr(entity, field_name, "")
        if not isinstance(value, str) or not value.strip():
            raise PreconditionFailed(
                f"{spec.mode.value} requires a non-empty {field_name}",
                details={"mode": spec.mode.value, "missing_field": field_name},
            )


def build_context(spec: ModeSpec, entity: ContentEntity) -> dict[str, Any]:
    """Construit le contexte transmis au service de génération."""
    return {
        "specialty": entity.specialty or "",
        "parent_section": entity.parent_section or "",
        "title": entity.title,
        "existing_text": entity.full_text,
        "allow_web": spec.allow_web,
    }


def change_reason_for(spec: ModeSpec) -> str:
    """Motif de snapshot lisible par machine pour une génération."""
    return f"{CHANGE_REASON_AI_PREFIX}{spec.mode.value}"
