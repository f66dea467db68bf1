"""
Tests pour la résolution des variables d'environnement.

Ce module teste le chargement des paramètres à partir d'un fichier .env désigné par ENV_FILE.
"""

from __future__ import annotations

import importlib
from pathlib import Path

REVIEW_MAX_CHARS = 500
SAFETY_THRESHOLD = 90


def test_settings_reads_env_file(tmp_path: Path, monkeypatch) -> None:
    """
    Teste que les settings lisent correctement les fichiers d'environnement.

    Vérifie que les paramètres de relecture et de cache définis dans un fichier .env
    personnalisé sont chargés.
    """
    env = tmp_path / ".env.custom"
    env.write_text(
        "REVIEW_MAX_CHARS=500\nSAFETY_APPROVAL_THRESHOLD=90\nGENERATION_CACHE_ENABLED=false\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("ENV_FILE", str(env))
    for key in ("REVIEW_MAX_CHARS", "SAFETY_APPROVAL_THRESHOLD", "GENERATION_CACHE_ENABLED"):
        monkeypatch.delenv(key, raising=False)

    settings_mod = importlib.import_module("backend.core.settings")
    importlib.reload(settings_mod)
    try:
        s = settings_mod.get_settings()
        assert s.REVIEW_MAX_CHARS == REVIEW_MAX_CHARS
        assert s.SAFETY_APPROVAL_THRESHOLD == SAFETY_THRESHOLD
        assert s.GENERATION_CACHE_ENABLED is False
    finally:
        monkeypatch.delenv("ENV_FILE", raising=False)
        importlib.reload(settings_mod)
