# ============================================================
# Module : backend/domain/review.py
# Objet  : Relecture critique d'un contenu (rapport de qualité structuré).
# Invariants :
#  - N'altère jamais l'entité relue.
#  - approved == (safety_score >= seuil) et aucun problème "high".
#  - Réponse illisible -> rapport refusé (confidence 0), pas d'exception.
# ============================================================
"""Relecture critique des contenus générés ou édités."""

from __future__ import annotations

import math
from typing import Any, Protocol

import structlog

from backend.domain.entities import ReviewIssue, ReviewMetadata, ReviewReport
from backend.domain.errors import PreconditionFailed
from backend.domain.text_unwrapper import try_parse_json_object

log = structlog.get_logger(__name__)

# Vocabulaire historique -> sévérités normalisées
SEVERITY_MAP: dict[str, str] = {
    "critical": "high",
    "high": "high",
    "major": "medium",
    "medium": "medium",
    "minor": "low",
    "low": "low",
}

PARSE_FAILURE_DESCRIPTION = "Review reply could not be parsed as a structured report"


class Reviewer(Protocol):
    """Port du service de relecture externe."""

    def review(self, content: str, specialty: str | None, mode: str) -> Any: ...


def _score(value: Any) -> int | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return max(0, min(100, round(number)))


def _confidence(value: Any) -> float:
    if isinstance(value, bool) or value is None:
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(number):
        return 0.0
    if number > 1:
        number = number / 100
    return max(0.0, min(1.0, number))


def _strings(value: Any) -> list[str]:
    if isinstance(value, str):
        return [value] if value.strip() else []
    if not isinstance(value, list):
        return []
    return [str(v) for v in value if v is not None and str(v).strip()]


def normalize_issue(raw: Any) -> ReviewIssue | None:
    """Normalise un problème (sévérité historique, champs optionnels)."""
    if isinstance(raw, str):
        return ReviewIssue(description=raw) if raw.strip() else None
    if not isinstance(raw, dict):
        return None
    description = raw.get("description") or raw.get("message") or raw.get("issue")
    if not description:
        return None
    severity = SEVERITY_MAP.get(str(raw.get("severity", "")).strip().lower(), "medium")
    line = raw.get("line")
    return ReviewIssue(
        severity=severity,
        category=str(raw.get("category") or "general"),
        description=str(description),
        line=line if isinstance(line, int) and not isinstance(line, bool) else None,
        suggestion=str(raw["suggestion"]) if raw.get("suggestion") else None,
    )


def parse_failure_report(metadata: ReviewMetadata) -> ReviewReport:
    """Rapport refusé pour une réponse de relecture illisible."""
    return ReviewReport(
        approved=False,
        confidence=0.0,
        issues=[
            ReviewIssue(
                severity="high", category="parse_error", description=PARSE_FAILURE_DESCRIPTION
            )
        ],
        metadata=metadata,
    )


def parse_review(raw: Any, *, approval_threshold: int = 80) -> ReviewReport:
    """Construit un ReviewReport à partir de la réponse brute du relecteur."""
    envelope = raw if isinstance(raw, dict) else {}
    cost = envelope.get("cost")
    metadata = ReviewMetadata(
        model=envelope.get("model"),
        cost=float(cost) if isinstance(cost, int | float) and not isinstance(cost, bool) else 0.0,
    )
    body = envelope.get("content", raw) if isinstance(raw, dict) else raw
    if isinstance(body, dict):
        data: dict[str, Any] | None = body
    elif isinstance(body, str):
        data = try_parse_json_object(body)
    else:
        data = None
    if data is None or not any(
        key in data for key in ("safety_score", "issues", "approved", "completeness_score")
    ):
        log.warning("review_parse_failed", model=metadata.model)
        return parse_failure_report(metadata)

    issues = [
        issue for issue in (normalize_issue(i) for i in data.get("issues") or []) if issue
    ]
    safety = _score(data.get("safety_score")) or 0
    approved = safety >= approval_threshold and not any(i.severity == "high" for i in issues)
    summary = data.get("summary")
    return ReviewReport(
        approved=approved,
        confidence=_confidence(data.get("confidence")),
        safety_score=safety,
        completeness_score=_score(data.get("completeness_score")) or 0,
        accuracy_score=_score(data.get("accuracy_score")),
        educational_score=_score(data.get("educational_score")),
        overall_score=_score(data.get("overall_score")),
        issues=issues,
        strengths=_strings(data.get("strengths")),
        missing_sections=_strings(data.get("missing_sections")),
        summary=str(summary) if summary else None,
        metadata=metadata,
    )


class ReviewCritic:
    """Relecture critique: troncature, appel du relecteur, normalisation du rapport."""

    def __init__(self, reviewer: Reviewer, *, max_chars: int = 12000, approval_threshold: int = 80):
        """Initialise la relecture (longueur max envoyée, seuil de sécurité)."""
        self.reviewer = reviewer
        self.max_chars = max_chars
        self.approval_threshold = approval_threshold

    def run_review(
        self, content: str, specialty: str | None = None, mode: str = "fulltext"
    ) -> ReviewReport:
        """Relit `content` et renvoie un rapport; l'entité source n'est pas modifiée.

        Raises:
            PreconditionFailed: contenu vide.
            GenerationFailed: échec de l'appel au relecteur.
        """
        if not isinstance(content, str) or not content.strip():
            raise PreconditionFailed("review requires non-empty content", details={"mode": mode})
        truncated = content[: self.max_chars]
        if len(truncated) < len(content):
            log.info("review_content_truncated", original=len(content), sent=len(truncated))
        raw = self.reviewer.review(truncated, specialty, mode)
        report = parse_review(raw, approval_threshold=self.approval_threshold)
        log.info(
            "review_completed",
            approved=report.approved,
            safety_score=report.safety_score,
            issues=len(report.issues),
        )
        return report
