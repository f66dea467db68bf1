"""
Endpoint de santé pour vérifier la disponibilité de l'API et de ses backends.

Expose `/health` pour signaler l'état général de l'application, du stockage et du cache.
"""


from fastapi import APIRouter

from backend.core.container import container

router = APIRouter(tags=["health"])


@router.get("/health")
def health():
    """Vérifie la disponibilité de l'API, du stockage et du cache de génération."""
    return {
        "status": "ok",
        "storage": getattr(container, "storage_backend", "unknown"),
        "cache": getattr(container, "cache_backend", "unknown"),
        "redis_url": bool(getattr(container.settings, "REDIS_URL", None)),
    }
