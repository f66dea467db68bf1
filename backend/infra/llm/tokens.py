"""Estimation du nombre de tokens quand le fournisseur ne renvoie pas d'usage."""

from __future__ import annotations

import structlog
import tiktoken

log = structlog.get_logger(__name__)

DEFAULT_MODEL_ENCODING = "cl100k_base"


def estimate_tokens(text: str, model: str | None = None, usage: dict | None = None) -> int:
    """Estime les tokens: usage API, sinon tiktoken, sinon nombre de mots.

    Ne journalise jamais le texte; seulement des comptes.
    """

    def _from_api() -> int | None:
        if usage and isinstance(usage, dict):
            val = usage.get("total_tokens")
            if isinstance(val, int | float):
                return int(val)
        return None

    def _from_tiktoken() -> int | None:
        try:
            try:
                enc = tiktoken.encoding_for_model(model) if model else None
            except KeyError:
                enc = None
            enc = enc or tiktoken.get_encoding(DEFAULT_MODEL_ENCODING)
            return len(enc.encode(text or ""))
        except Exception as exc:  # encodage indisponible (hors ligne)
            log.debug("token_estimate_tiktoken_unavailable", error=type(exc).__name__)
            return None

    def _from_words() -> int:
        return max(0, len((text or "").split()))

    return _from_api() or _from_tiktoken() or _from_words()
