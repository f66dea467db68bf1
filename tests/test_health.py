"""Tests pour l'endpoint de santé de l'application."""

from fastapi.testclient import TestClient

from backend.app.main import app
from backend.core.constants import TEST_HTTP_STATUS_OK


def test_health():
    """Teste que l'endpoint de santé retourne un statut OK et les backends actifs."""
    client = TestClient(app)
    r = client.get("/health")
    assert r.status_code == TEST_HTTP_STATUS_OK
    body = r.json()
    assert body["status"] == "ok"
    assert body["storage"] in {"memory", "sql"}
    assert body["cache"] in {"memory", "memory-fallback", "redis"}


def test_request_id_is_echoed():
    """L'identifiant de requête fourni est renvoyé dans la réponse."""
    client = TestClient(app)
    r = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert r.headers["X-Request-ID"] == "req-123"
