"""Cache des réponses de génération (Redis ou mémoire).

Clé de cache: `gencache:{sha256(mode|model|contexte trié)}`. Chaque entrée garde la réponse
brute, sa date de création et un compteur de hits; la durée de vie par défaut est de 7 jours.
"""

from __future__ import annotations

import hashlib
import json
import threading
import time
from dataclasses import dataclass
from typing import Any

import redis
import structlog

log = structlog.get_logger(__name__)

KEY_PREFIX = "gencache:"


def make_cache_key(mode: str, model: str, context: dict[str, Any]) -> str:
    """Compose une clé stable à partir du mode, du modèle et du contexte trié."""
    payload = json.dumps(context, sort_keys=True, ensure_ascii=False, default=str)
    digest = hashlib.sha256(f"{mode}|{model}|{payload}".encode()).hexdigest()
    return f"{KEY_PREFIX}{digest}"


@dataclass(frozen=True)
class CachedResponse:
    """Entrée de cache relue: réponse, âge en secondes et nombre total de hits."""

    response: dict[str, Any]
    age_seconds: int
    total_hits: int


class InMemoryGenerationCache:
    """Cache local avec expiration (dev/tests)."""

    backend = "memory"

    def __init__(self, ttl_seconds: int = 7 * 24 * 3600, max_entries: int = 1024):
        """Initialise un cache vide (au plus `max_entries` entrées)."""
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._entries: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> CachedResponse | None:
        """Retourne l'entrée si elle existe et n'a pas expiré (incrémente les hits)."""
        now = time.time()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry["created_at"] + self.ttl_seconds <= now:
                self._entries.pop(key, None)
                return None
            entry["hits"] += 1
            return CachedResponse(
                response=json.loads(entry["response"]),
                age_seconds=int(now - entry["created_at"]),
                total_hits=entry["hits"],
            )

    def _sweep(self, now: float) -> None:
        expired = [
            k for k, e in self._entries.items() if e["created_at"] + self.ttl_seconds <= now
        ]
        for k in expired:
            del self._entries[k]
        overflow = len(self._entries) - self.max_entries + 1
        if overflow > 0:
            oldest = sorted(self._entries, key=lambda k: self._entries[k]["created_at"])
            for k in oldest[:overflow]:
                del self._entries[k]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def set(self, key: str, response: dict[str, Any]) -> None:
        """Enregistre une réponse (copie sérialisée); purge les entrées expirées au passage."""
        now = time.time()
        with self._lock:
            self._entries.pop(key, None)
            self._sweep(now)
            self._entries[key] = {
                "response": json.dumps(response, default=str),
                "created_at": now,
                "hits": 0,
            }


class RedisGenerationCache:
    """Cache adossé à Redis (hash `gencache:{digest}` avec TTL)."""

    backend = "redis"

    def __init__(self, url: str, ttl_seconds: int = 7 * 24 * 3600):
        """Crée un client Redis à partir de l'URL fournie."""
        self.client = redis.Redis.from_url(url, decode_responses=True)
        self.ttl_seconds = ttl_seconds

    def get(self, key: str) -> CachedResponse | None:
        """Charge l'entrée `key` et incrémente son compteur de hits."""
        entry = self.client.hgetall(key)
        if not entry or "response" not in entry:
            return None
        hits = int(self.client.hincrby(key, "hits", 1))
        created_at = float(entry.get("created_at") or time.time())
        return CachedResponse(
            response=json.loads(entry["response"]),
            age_seconds=max(0, int(time.time() - created_at)),
            total_hits=hits,
        )

    def set(self, key: str, response: dict[str, Any]) -> None:
        """Stocke la réponse sérialisée et pose le TTL."""
        pipe = self.client.pipeline()
        pipe.hset(
            key,
            mapping={
                "response": json.dumps(response, default=str),
                "created_at": str(time.time()),
                "hits": "0",
            },
        )
        pipe.expire(key, self.ttl_seconds)
        pipe.execute()
