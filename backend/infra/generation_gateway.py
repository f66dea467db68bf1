# ============================================================
# Module : backend/infra/generation_gateway.py
# Objet  : Appel du service de génération (LLM) pour un mode donné,
#          avec cache, routage fournisseur et calcul du coût.
# Contexte : La réponse renvoyée est *brute*; sa normalisation relève
#            de backend.domain.response_resolver.
# ============================================================
"""Passerelle vers les fournisseurs LLM pour la génération et la relecture."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import structlog

from backend.app.metrics import GENERATION_CACHE_HITS, LLM_COST_USD, LLM_TOKENS_TOTAL
from backend.domain.errors import GenerationFailed
from backend.domain.modes import GenerationMode, ModeSpec, get_spec
from backend.infra.generation_cache import InMemoryGenerationCache, make_cache_key
from backend.infra.llm.base import LLM
from backend.infra.llm.tokens import estimate_tokens

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ModelInfo:
    """Modèle disponible et son tarif (USD par million de tokens)."""

    id: str
    provider: str
    input_price: float
    output_price: float


MODELS: dict[str, ModelInfo] = {
    "opus": ModelInfo("claude-opus-4-20250514", "anthropic", 5.0, 25.0),
    "sonnet": ModelInfo("claude-sonnet-4-20250514", "anthropic", 3.0, 15.0),
    "haiku": ModelInfo("claude-haiku-4-5-20251001", "anthropic", 1.0, 5.0),
    "gpt4o": ModelInfo("gpt-4o", "openai", 2.5, 10.0),
}

FALLBACK_MODEL_KEY = "gpt4o"


def model_by_id(model_id: str | None) -> ModelInfo:
    """Retrouve un modèle par identifiant (tarif GPT-4o à défaut)."""
    for info in MODELS.values():
        if info.id == model_id:
            return info
    return MODELS[FALLBACK_MODEL_KEY]


def compute_cost(info: ModelInfo, input_tokens: int, output_tokens: int) -> dict[str, float]:
    """Coût d'un appel, en USD, arrondi à 4 décimales."""
    cost_in = input_tokens / 1_000_000 * info.input_price
    cost_out = output_tokens / 1_000_000 * info.output_price
    return {
        "input": round(cost_in, 4),
        "output": round(cost_out, 4),
        "total": round(cost_in + cost_out, 4),
    }


def _usage_or_estimate(
    usage: dict[str, int], prompt: str, completion: str, model: str
) -> dict[str, int]:
    if usage.get("prompt_tokens") or usage.get("completion_tokens"):
        return usage
    prompt_tokens = estimate_tokens(prompt, model)
    completion_tokens = estimate_tokens(completion, model)
    return {
        "prompt_tokens": prompt_tokens,
        "completion_tokens": completion_tokens,
        "total_tokens": prompt_tokens + completion_tokens,
    }


def build_messages(spec: ModeSpec, context: dict[str, Any]) -> list[dict[str, str]]:
    """Messages minimaux: consigne de format JSON + contexte sérialisé."""
    system = (
        "You write study material for medical students. "
        f"Task: {spec.mode.value}. Reply with one JSON object whose "
        f'"{spec.expected_key}" field holds the result. Optional fields: '
        '"confidence" {"level", "reason"}, "citations" {"internal", "external"}, '
        '"warnings" and "sources".'
    )
    if not spec.allow_web:
        system += " Do not rely on web sources."
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": json.dumps(context, ensure_ascii=False, sort_keys=True)},
    ]


class GenerationGateway:
    """Implémente `Generator.generate(mode, context) -> réponse brute`.

    Routage: le modèle par défaut du mode est servi par le LLM de son fournisseur; si ce
    fournisseur n'est pas configuré, l'appel bascule sur GPT-4o (`metadata.fallback`).
    """

    def __init__(
        self,
        llms: dict[str, LLM],
        cache: Any | None = None,
        *,
        cache_enabled: bool = True,
    ):
        """Initialise la passerelle.

        Paramètres:
        - llms: LLM par fournisseur (`openai`, `anthropic`, ...).
        - cache: cache de réponses (mémoire par défaut).
        - cache_enabled: désactive lecture/écriture du cache si faux.
        """
        self.llms = llms
        self.cache = cache if cache is not None else InMemoryGenerationCache()
        self.cache_enabled = cache_enabled

    def _route(self, spec: ModeSpec) -> tuple[ModelInfo, LLM, bool]:
        info = MODELS[spec.model_key]
        llm = self.llms.get(info.provider)
        if llm is not None:
            return info, llm, False
        fallback = MODELS[FALLBACK_MODEL_KEY]
        llm = self.llms.get(fallback.provider)
        if llm is None:
            raise GenerationFailed(
                "no LLM provider configured",
                details={"mode": spec.mode.value, "provider": info.provider},
            )
        return fallback, llm, True

    def generate(self, mode: str | GenerationMode, context: dict[str, Any]) -> dict[str, Any]:
        """Appelle le fournisseur (ou le cache) et renvoie la réponse brute.

        Raises:
            GenerationFailed: si l'appel au fournisseur échoue.
        """
        spec = get_spec(mode)
        info, llm, fallback = self._route(spec)
        key = make_cache_key(spec.mode.value, info.id, context)

        if self.cache_enabled:
            cached = self.cache.get(key)
            if cached is not None:
                GENERATION_CACHE_HITS.labels(spec.mode.value).inc()
                log.info(
                    "generation_cache_hit",
                    mode=spec.mode.value,
                    model=info.id,
                    age_seconds=cached.age_seconds,
                    total_hits=cached.total_hits,
                )
                return {
                    **cached.response,
                    "_cache": {
                        "cached": True,
                        "cacheHit": True,
                        "cacheAge": cached.age_seconds,
                        "totalHits": cached.total_hits,
                    },
                }

        messages = build_messages(spec, context)
        try:
            text, usage = llm.generate(
                messages,
                with_usage=True,
                model=info.id,
                max_tokens=spec.max_tokens,
                json_mode=True,
            )
        except Exception as exc:
            log.error(
                "generation_call_failed",
                mode=spec.mode.value,
                model=info.id,
                error=type(exc).__name__,
            )
            raise GenerationFailed(
                f"{spec.mode.value} generation failed",
                details={"mode": spec.mode.value, "model": info.id},
            ) from exc

        prompt = "\n".join(m["content"] for m in messages)
        usage = _usage_or_estimate(dict(usage or {}), prompt, text, info.id)
        cost = compute_cost(info, usage["prompt_tokens"], usage["completion_tokens"])
        LLM_COST_USD.labels(info.id).inc(cost["total"])
        LLM_TOKENS_TOTAL.labels(info.id).inc(usage.get("total_tokens", 0))

        raw = {
            "content": text,
            "model": info.id,
            "provider": info.provider,
            "metadata": {
                "usedModel": info.id,
                "provider": info.provider,
                "fallback": fallback,
                # sérialisation historique: chaînes à 4 décimales
                "cost": {k: f"{v:.4f}" for k, v in cost.items()},
                "generated_at": datetime.now(UTC).isoformat(),
                "tokensUsed": usage,
            },
        }
        if self.cache_enabled:
            self.cache.set(key, raw)
        log.info(
            "generation_completed",
            mode=spec.mode.value,
            model=info.id,
            fallback=fallback,
            cost=cost["total"],
        )
        return raw


REVIEW_SYSTEM_PROMPT = (
    "You are a strict medical content reviewer. Reply with one JSON object with fields: "
    '"approved" (bool), "confidence" (0..1), "safety_score", "completeness_score", '
    '"accuracy_score", "educational_score", "overall_score" (0..100), '
    '"issues" [{"severity": critical|major|minor, "category", "description", '
    '"line", "suggestion"}], "strengths", "missing_sections", "summary".'
)


class LLMReviewer:
    """Implémente `Reviewer.review(content, specialty, mode)` sur l'interface LLM."""

    def __init__(self, llm: LLM, model: str = "gpt-4o"):
        """Initialise le relecteur sur un LLM et un modèle."""
        self.llm = llm
        self.model = model

    def review(self, content: str, specialty: str | None, mode: str) -> dict[str, Any]:
        """Demande une critique structurée et renvoie la réponse brute + coût.

        Raises:
            GenerationFailed: si l'appel au fournisseur échoue.
        """
        user = json.dumps(
            {"specialty": specialty or "", "mode": mode, "content": content},
            ensure_ascii=False,
        )
        messages = [
            {"role": "system", "content": REVIEW_SYSTEM_PROMPT},
            {"role": "user", "content": user},
        ]
        try:
            text, usage = self.llm.generate(
                messages, with_usage=True, model=self.model, json_mode=True
            )
        except Exception as exc:
            log.error("review_call_failed", model=self.model, error=type(exc).__name__)
            raise GenerationFailed("review call failed", details={"model": self.model}) from exc
        usage = _usage_or_estimate(dict(usage or {}), REVIEW_SYSTEM_PROMPT + user, text, self.model)
        cost = compute_cost(
            model_by_id(self.model), usage["prompt_tokens"], usage["completion_tokens"]
        )
        LLM_COST_USD.labels(self.model).inc(cost["total"])
        return {"content": text, "model": self.model, "cost": cost["total"]}
