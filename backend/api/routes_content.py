"""
Routes d'édition de contenu: brouillons, génération IA, historique et relecture.

Ce module regroupe les endpoints `/content`. Les erreurs du domaine (MissingPayload,
PreconditionFailed, VersionConflict, NotFound, GenerationFailed) sont converties en
enveloppes d'erreur par les handlers de `backend.apigw.errors`.
"""

import time

from fastapi import APIRouter, Depends

from backend.api.schemas import (
    ApplyRequest,
    ContentCreateRequest,
    ContentUpdateRequest,
    GenerationResponse,
    IntegrityResponse,
    ObjectivesRequest,
    RestoreResponse,
    ReviewRequest,
    SaveRequest,
    StatusRequest,
    VersionResponse,
)
from backend.apigw.errors import bad_request
from backend.app.metrics import (
    GENERATION_LATENCY,
    GENERATIONS_TOTAL,
    INTEGRITY_FLAGS,
    PARSE_DEGRADED_TOTAL,
    REVIEWS_TOTAL,
    VERSION_RESTORES,
    VERSIONS_CREATED,
    reason_label,
)
from backend.core.container import container
from backend.domain.authoring_service import AuthoringService, GenerationOutcome
from backend.domain.entities import ContentEntity, ReviewReport
from backend.domain.errors import ContentError
from backend.domain.modes import GenerationMode, normalize_mode

router = APIRouter(prefix="/content", tags=["content"])


def get_service() -> AuthoringService:
    """Service d'édition du conteneur (surchargeable dans les tests)."""
    return container.service


service_dep = Depends(get_service)


def _mode_or_400(mode: str) -> GenerationMode:
    try:
        return normalize_mode(mode)
    except ValueError as err:
        raise bad_request(str(err), details={"mode": mode}) from err


def _generation_response(outcome: GenerationOutcome, mode: str) -> GenerationResponse:
    for strategy in outcome.result.degraded:
        PARSE_DEGRADED_TOTAL.labels(mode, strategy).inc()
    for report in outcome.integrity:
        if not report.ok:
            INTEGRITY_FLAGS.labels(report.field).inc()
    if outcome.version is not None:
        VERSIONS_CREATED.labels(reason_label(outcome.version.change_reason)).inc()
    return GenerationResponse(
        entity=outcome.entity,
        result=outcome.result,
        version=VersionResponse.from_snapshot(outcome.version) if outcome.version else None,
        integrity=[IntegrityResponse.from_report(r) for r in outcome.integrity],
    )


@router.post("", response_model=ContentEntity, status_code=201)
def create_content(payload: ContentCreateRequest, service: AuthoringService = service_dep):
    """Crée une entité de contenu en brouillon."""
    data = payload.model_dump()
    title = data.pop("title")
    return service.create_entity(title, **data)


@router.get("/{entity_id}", response_model=ContentEntity)
def get_content(entity_id: str, service: AuthoringService = service_dep):
    """Retourne le brouillon courant."""
    return service.get_entity(entity_id)


@router.patch("/{entity_id}", response_model=ContentEntity)
def update_content(
    entity_id: str, payload: ContentUpdateRequest, service: AuthoringService = service_dep
):
    """Applique des éditions d'auteur (champs fournis uniquement)."""
    return service.update_entity(entity_id, payload.model_dump(exclude_unset=True))


@router.post("/{entity_id}/objectives", response_model=ContentEntity)
def append_objectives(
    entity_id: str, payload: ObjectivesRequest, service: AuthoringService = service_dep
):
    """Ajoute des objectifs pédagogiques en fin de liste."""
    return service.append_objectives(entity_id, payload.items)


@router.post("/{entity_id}/status", response_model=ContentEntity)
def set_status(entity_id: str, payload: StatusRequest, service: AuthoringService = service_dep):
    """Transition de statut (409 si interdite)."""
    return service.set_status(entity_id, payload.status)


@router.post("/{entity_id}/generate/{mode}", response_model=GenerationResponse)
def generate(entity_id: str, mode: str, service: AuthoringService = service_dep):
    """
    Génère pour un mode puis fusionne le résultat dans le brouillon.

    Retour: brouillon, résultat normalisé, version créée et contrôles d'intégrité.
    """
    gen_mode = _mode_or_400(mode)
    start = time.perf_counter()
    try:
        outcome = service.generate(entity_id, gen_mode)
    except ContentError as err:
        GENERATIONS_TOTAL.labels(gen_mode.value, err.code.lower()).inc()
        raise
    finally:
        GENERATION_LATENCY.labels(gen_mode.value).observe(time.perf_counter() - start)
    outcome_label = "cache_hit" if outcome.result.cache.hit else "ok"
    GENERATIONS_TOTAL.labels(gen_mode.value, outcome_label).inc()
    return _generation_response(outcome, gen_mode.value)


@router.post("/{entity_id}/apply/{mode}", response_model=GenerationResponse)
def apply_generation(
    entity_id: str, mode: str, payload: ApplyRequest, service: AuthoringService = service_dep
):
    """Normalise et applique une réponse brute fournie par le client."""
    gen_mode = _mode_or_400(mode)
    outcome = service.apply_generation(entity_id, gen_mode, payload.raw)
    return _generation_response(outcome, gen_mode.value)


@router.post("/{entity_id}/save", response_model=VersionResponse, status_code=201)
def save(
    entity_id: str, payload: SaveRequest | None = None, service: AuthoringService = service_dep
):
    """Crée un snapshot du brouillon courant."""
    version = service.save(entity_id, payload.change_reason if payload else None)
    VERSIONS_CREATED.labels(reason_label(version.change_reason)).inc()
    return VersionResponse.from_snapshot(version)


@router.get("/{entity_id}/versions", response_model=list[VersionResponse])
def list_versions(entity_id: str, service: AuthoringService = service_dep):
    """Historique, de la version la plus récente à la plus ancienne."""
    return [VersionResponse.from_snapshot(v) for v in service.list_versions(entity_id)]


@router.post("/{entity_id}/versions/{version_id}/restore", response_model=RestoreResponse)
def restore(entity_id: str, version_id: str, service: AuthoringService = service_dep):
    """Restaure une version dans le brouillon (aucune nouvelle version créée)."""
    outcome = service.restore(entity_id, version_id)
    VERSION_RESTORES.inc()
    return RestoreResponse(
        entity=outcome.entity,
        version=VersionResponse.from_snapshot(outcome.version),
        integrity=[IntegrityResponse.from_report(r) for r in outcome.integrity],
    )


@router.post("/{entity_id}/review", response_model=ReviewReport)
def review(
    entity_id: str, payload: ReviewRequest | None = None, service: AuthoringService = service_dep
):
    """Relecture critique d'un champ texte; le brouillon n'est pas modifié."""
    req = payload or ReviewRequest()
    report = service.review(entity_id, req.field, req.mode)
    REVIEWS_TOTAL.labels("approved" if report.approved else "rejected").inc()
    return report
