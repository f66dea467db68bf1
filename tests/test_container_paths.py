"""Tests pour les chemins de configuration du container.

Vérifie le choix du stockage (mémoire/SQL) et du cache (mémoire/Redis) selon les paramètres.
"""

from __future__ import annotations

from unittest.mock import Mock, patch

import pytest
import redis

from backend.core.container import Container
from backend.core.settings import Settings


def _settings(**overrides) -> Settings:
    base = {"DATABASE_URL": None, "REDIS_URL": None, "REQUIRE_REDIS": False}
    base.update(overrides)
    return Settings(**base)


def test_container_memory_path() -> None:
    """Sans DATABASE_URL ni REDIS_URL: tout en mémoire."""
    c = Container(_settings())
    assert c.storage_backend == "memory"
    assert c.cache_backend == "memory"
    assert c.service is not None


def test_container_sql_path() -> None:
    """DATABASE_URL: dépôts SQLAlchemy et schéma créé."""
    c = Container(_settings(DATABASE_URL="sqlite+pysqlite:///:memory:"))
    assert c.storage_backend == "sql"
    entity = c.service.create_entity("Asthma")
    assert c.service.get_entity(entity.id).title == "Asthma"
    c.engine.dispose()


def test_container_redis_path() -> None:
    """REDIS_URL: cache Redis."""
    with patch(
        "backend.infra.generation_cache.redis.Redis.from_url", return_value=Mock(spec=redis.Redis)
    ):
        c = Container(_settings(REDIS_URL="redis://localhost:6379/0"))
    assert c.cache_backend == "redis"


def test_container_redis_fallback_and_require() -> None:
    """Client Redis impossible à créer: repli mémoire, sauf si Redis est exigé."""
    with patch(
        "backend.infra.generation_cache.redis.Redis.from_url",
        side_effect=redis.ConnectionError("down"),
    ):
        c = Container(_settings(REDIS_URL="redis://localhost:6379/0"))
        assert c.cache_backend == "memory-fallback"
        with pytest.raises(RuntimeError):
            Container(_settings(REDIS_URL="redis://localhost:6379/0", REQUIRE_REDIS=True))


def test_container_require_redis_without_url_raises() -> None:
    """REQUIRE_REDIS sans URL: erreur explicite."""
    with pytest.raises(RuntimeError):
        Container(_settings(REQUIRE_REDIS=True))
