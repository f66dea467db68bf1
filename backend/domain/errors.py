"""Taxonomie des erreurs du domaine de contenu.

Chaque erreur porte un `code` stable, réutilisé par l'enveloppe d'erreur HTTP
(`backend.apigw.errors`) et par les métriques.
"""

from __future__ import annotations

from typing import Any


class ContentError(RuntimeError):
    """Erreur de base du domaine (code stable + détails sérialisables)."""

    code = "CONTENT_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialise l'erreur avec un message et des détails optionnels."""
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ParseDegraded(ContentError):
    """Extraction réussie via une stratégie de repli tardive (non fatal).

    Jamais levée dans le flux normal: son `code` préfixe l'avertissement ajouté au résultat
    et accompagne l'événement de log `parse_degraded`.
    """

    code = "PARSE_DEGRADED"


class MissingPayload(ContentError):
    """Aucun texte exploitable pour le mode demandé; bloque la persistance."""

    code = "MISSING_PAYLOAD"


class PreconditionFailed(ContentError):
    """Précondition du mode (ou transition de statut) non satisfaite."""

    code = "PRECONDITION_FAILED"


class VersionConflict(ContentError):
    """Course sur la numérotation des versions d'une même entité."""

    code = "VERSION_CONFLICT"


class NotFound(ContentError):
    """Entité ou version introuvable (ou n'appartenant pas à l'entité)."""

    code = "NOT_FOUND"


class GenerationFailed(ContentError):
    """Échec de l'appel au service de génération externe."""

    code = "GENERATION_FAILED"
