"""Définition et chargement des paramètres de configuration applicative.

Objectif du module
------------------
- Centraliser les paramètres (env/.env) via Pydantic Settings
- Résoudre le fichier `.env` à utiliser selon la stratégie: ENV_FILE > .env.{APP_ENV} > .env
"""

import os
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Détermination du fichier .env à utiliser avec priorité:
# 1) ENV_FILE (chemin explicite)
# 2) .env.{APP_ENV} si présent
# 3) .env (défaut)
_cwd = Path.cwd()
_env_file_from_env = os.getenv("ENV_FILE")
if _env_file_from_env:
    _ENV_FILE_PATH = _env_file_from_env
else:
    _app_env = os.getenv("APP_ENV", "dev")
    _candidate_specific = _cwd / f".env.{_app_env}"
    _candidate_default = _cwd / ".env"
    if _candidate_specific.exists():
        _ENV_FILE_PATH = _candidate_specific
    else:
        _ENV_FILE_PATH = _candidate_default


class Settings(BaseSettings):
    """Modèle de configuration chargé depuis l'environnement et .env."""

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE_PATH,
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        case_sensitive=False,
    )
    APP_NAME: str = "content-authoring-backend"
    APP_ENV: str = "dev"
    APP_DEBUG: bool = True

    # Persistance (None -> sqlite mémoire) et cache de génération
    DATABASE_URL: str | None = None
    REDIS_URL: str | None = None
    REQUIRE_REDIS: bool = False

    # Fournisseurs LLM
    OPENAI_API_KEY: str | None = None
    PRIMARY_PROVIDER: str = "anthropic"
    GENERATION_CACHE_ENABLED: bool = True
    GENERATION_CACHE_TTL_SECONDS: int = 7 * 24 * 60 * 60

    # Relecture critique
    REVIEW_MODEL: str = "gpt-4o"
    REVIEW_MAX_CHARS: int = 12000
    SAFETY_APPROVAL_THRESHOLD: int = 80

    # Contrôle d'intégrité: seuil de rétrécissement signalé (ratio après/avant)
    INTEGRITY_SHRINK_RATIO: float = 0.5


def get_settings() -> Settings:
    """Construit et retourne la configuration de l'application."""
    return Settings()
