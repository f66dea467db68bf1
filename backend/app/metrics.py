"""
Métriques Prometheus pour l'application.

Ce module définit les métriques Prometheus du service d'édition de contenu: HTTP,
générations, cache, dégradations de parsing, versions et relectures.
"""

import time

from fastapi import APIRouter, Request
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Histogram,
    generate_latest,
)
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

metrics_router = APIRouter()

REQUEST_COUNT = Counter(
    "http_requests_total", "Total HTTP requests", ["method", "route", "status"]
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds", "Latency of HTTP requests", ["route"]
)

# Génération de contenu
GENERATIONS_TOTAL = Counter(
    "content_generations_total",
    "Total generation calls by mode and outcome",
    ["mode", "outcome"],
)
GENERATION_LATENCY = Histogram(
    "content_generation_latency_seconds",
    "Latency of generation calls (external call included)",
    ["mode"],
)
GENERATION_CACHE_HITS = Counter(
    "content_generation_cache_hits_total",
    "Generation responses served from cache",
    ["mode"],
)
PARSE_DEGRADED_TOTAL = Counter(
    "content_parse_degraded_total",
    "Responses recovered through a late fallback parsing strategy",
    ["mode", "strategy"],
)
LLM_COST_USD = Counter(
    "llm_cost_usd_total",
    "Accumulated LLM cost in USD",
    ["model"],
)
LLM_TOKENS_TOTAL = Counter(
    "llm_tokens_total",
    "Accumulated LLM tokens",
    ["model"],
)

# Historique
VERSIONS_CREATED = Counter(
    "content_versions_created_total",
    "Snapshots appended to the version log",
    ["reason"],
)
VERSION_RESTORES = Counter(
    "content_version_restores_total",
    "Point-in-time restores",
)
INTEGRITY_FLAGS = Counter(
    "content_integrity_flags_total",
    "Merges flagged by the integrity check",
    ["field"],
)

# Relecture
REVIEWS_TOTAL = Counter(
    "content_reviews_total",
    "Critic reviews by outcome",
    ["outcome"],
)


def reason_label(change_reason: str | None) -> str:
    """Réduit un motif de snapshot à une étiquette de faible cardinalité."""
    reason = (change_reason or "").strip()
    if reason.startswith("AI generation:"):
        return "ai_generation"
    return "manual" if reason else "unspecified"


@metrics_router.get("/metrics")
def metrics():
    """
    Expose les métriques Prometheus au format texte.

    Returns:
        Response: Réponse HTTP contenant les métriques au format Prometheus.
    """
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


class PrometheusMiddleware(BaseHTTPMiddleware):
    """
    Middleware Prometheus pour mesurer les métriques HTTP.

    Collecte les métriques de comptage des requêtes et de latence par route.
    """

    async def dispatch(self, request: Request, call_next):
        """Traite une requête HTTP et collecte les métriques."""
        start = time.perf_counter()
        response: Response = await call_next(request)
        route_obj = request.scope.get("route")
        route = getattr(route_obj, "path", None) or request.scope.get("path", "unknown")
        REQUEST_COUNT.labels(request.method, route, str(response.status_code)).inc()
        REQUEST_LATENCY.labels(route).observe(time.perf_counter() - start)
        return response
