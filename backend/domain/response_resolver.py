# ============================================================
# Module : backend/domain/response_resolver.py
# Objet  : Normalisation d'une réponse fournisseur en GenerationResult.
# Contexte : Réponses enveloppées (data, choices, content[]), JSON dans une
#            chaîne, double encodage, texte brut, blocs de cache.
# Invariants :
#  - Confiance par défaut {low, unknown}, jamais "high" implicitement.
#  - Aucun texte exploitable -> MissingPayload (rien n'est persisté).
#  - Un hit de cache est signalé distinctement d'une génération fraîche.
# ============================================================
"""Résolution de la forme des réponses de génération."""

from __future__ import annotations

import json
import math
from datetime import UTC, datetime
from typing import Any

import structlog

from backend.core.constants import (
    CONFIDENCE_HIGH_MIN,
    CONFIDENCE_LEVELS,
    CONFIDENCE_MEDIUM_MIN,
)
from backend.domain.entities import (
    CacheInfo,
    Citations,
    Confidence,
    GenerationCost,
    GenerationMetadata,
    GenerationResult,
)
from backend.domain.errors import MissingPayload, ParseDegraded
from backend.domain.modes import GenerationMode, ModeSpec, get_spec
from backend.domain.text_unwrapper import (
    DEGRADED_STRATEGIES,
    looks_like_json,
    parse_json_object,
    unwrap_with_trace,
)

log = structlog.get_logger(__name__)

# Sous-chaîne du nom de modèle -> fournisseur
PROVIDER_HINTS: tuple[tuple[str, str], ...] = (
    ("claude", "anthropic"),
    ("anthropic", "anthropic"),
    ("gemini", "google"),
    ("gpt", "openai"),
    ("o1-", "openai"),
    ("o3-", "openai"),
)

# Sections d'un fulltext structuré (structuredData) et leurs titres
STRUCTURED_SECTIONS: tuple[tuple[str, str], ...] = (
    ("overview_md", "Overview"),
    ("principles_md", "Core principles"),
    ("relations_md", "Relations"),
    ("clinical_thinking_md", "Clinical reasoning"),
    ("common_pitfalls_md", "Common pitfalls"),
    ("mental_model_md", "Mental model"),
    ("scenarios_md", "Scenarios"),
    ("key_takeaways_md", "Key takeaways"),
)

_MAX_FLATTEN_PASSES = 3


def infer_provider(model: str | None, primary: str = "anthropic") -> str:
    """Déduit le fournisseur depuis le nom du modèle (fournisseur principal par défaut)."""
    name = (model or "").lower()
    for hint, provider in PROVIDER_HINTS:
        if hint in name:
            return provider
    return primary


def _to_float(value: Any) -> float | None:
    """Nombre fini, ou None (inf et NaN sont ignorés)."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


def _fill_missing(target: dict[str, Any], extra: dict[str, Any]) -> None:
    for key, value in extra.items():
        if key not in target or _is_empty(target[key]):
            target[key] = value


# ------------------------------------------------------------------
# Aplatissement des enveloppes
# ------------------------------------------------------------------


def _coerce_object(raw: Any, spec: ModeSpec, degraded: list[str]) -> dict[str, Any]:
    if raw is None:
        return {}
    if isinstance(raw, dict):
        return dict(raw)
    if isinstance(raw, list):
        return {spec.expected_key: raw}
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    if isinstance(raw, str):
        obj, strategy = parse_json_object(raw)
        if obj is not None:
            if strategy in DEGRADED_STRATEGIES:
                degraded.append(strategy)
            return dict(obj)
        return {"text": raw}
    return {"text": str(raw)}


def _content_blocks_text(blocks: list[Any]) -> str:
    parts: list[str] = []
    for block in blocks:
        if isinstance(block, dict) and block.get("type", "text") == "text":
            text = block.get("text")
            if isinstance(text, str):
                parts.append(text)
        elif isinstance(block, str):
            parts.append(block)
    return "".join(parts)


def _flatten_provider_envelopes(obj: dict[str, Any]) -> dict[str, Any]:
    """Ramène les enveloppes connues (data, choices, content[]) au niveau racine."""
    out = dict(obj)
    data = out.get("data")
    if isinstance(data, dict):
        out.pop("data")
        for key, value in data.items():
            out[key] = value
    choices = out.get("choices")
    if isinstance(choices, list) and choices and "content" not in out:
        first = choices[0] if isinstance(choices[0], dict) else {}
        message = first.get("message") if isinstance(first.get("message"), dict) else {}
        content = message.get("content")
        if isinstance(content, str):
            out["content"] = content
            out.pop("choices")
    content = out.get("content")
    if isinstance(content, list):
        out["content"] = _content_blocks_text(content)
    return out


def _merge_nested_content(
    obj: dict[str, Any], spec: ModeSpec, degraded: list[str]
) -> dict[str, Any]:
    """Fusionne le champ `content` (JSON balisé ou objet) dans l'objet racine."""
    if "content" not in obj:
        return obj
    content = obj["content"]
    nested: dict[str, Any] | None = None
    if isinstance(content, dict):
        nested = content
    elif isinstance(content, str) and content.strip():
        nested, strategy = parse_json_object(content)
        if nested is not None and strategy in DEGRADED_STRATEGIES:
            degraded.append(strategy)
    if nested is not None:
        merged = {k: v for k, v in obj.items() if k != "content"}
        for key, value in nested.items():
            if key not in merged or _is_empty(merged[key]) or key in spec.text_keys:
                merged[key] = value
        return merged
    if isinstance(content, str) and not any(
        isinstance(obj.get(k), str) and obj.get(k) for k in spec.text_keys
    ):
        # Texte brut dans l'enveloppe: c'est la charge utile
        merged = {k: v for k, v in obj.items() if k != "content"}
        merged["text"] = content
        return merged
    return obj


def _merge_double_encoded(
    obj: dict[str, Any], spec: ModeSpec, degraded: list[str]
) -> dict[str, Any]:
    """Parse et fusionne un champ attendu qui contient lui-même du JSON."""
    out = dict(obj)
    for key in spec.text_keys:
        value = out.get(key)
        if not isinstance(value, str) or not looks_like_json(value):
            continue
        nested, strategy = parse_json_object(value)
        if nested is None:
            continue
        if strategy in DEGRADED_STRATEGIES:
            degraded.append(strategy)
        if key in nested:
            out[key] = nested[key]
        _fill_missing(out, {k: v for k, v in nested.items() if k != key})
    return out


def _normalize_shape(raw: Any, spec: ModeSpec, degraded: list[str]) -> dict[str, Any]:
    obj = _coerce_object(raw, spec, degraded)
    for _ in range(_MAX_FLATTEN_PASSES):
        before = obj
        obj = _flatten_provider_envelopes(obj)
        obj = _merge_nested_content(obj, spec, degraded)
        obj = _merge_double_encoded(obj, spec, degraded)
        if obj == before:
            break
    return obj


# ------------------------------------------------------------------
# Extraction des champs canoniques
# ------------------------------------------------------------------


def compile_structured_fulltext(structured: dict[str, Any] | None, title: str | None) -> str:
    """Compile un fulltext markdown à partir des sections de `structuredData`."""
    if not isinstance(structured, dict):
        return ""
    present = [
        (key, heading)
        for key, heading in STRUCTURED_SECTIONS
        if isinstance(structured.get(key), str) and structured[key].strip()
    ]
    if not present:
        return ""
    toc = "\n".join(f"{idx}. {heading}" for idx, (_, heading) in enumerate(present, start=1))
    body = "\n\n---\n\n".join(structured[key].strip() for key, _ in present)
    return "\n".join([f"# {title or 'Study text'}", "", "## Contents", toc, "", body])


def _extract_payload(
    obj: dict[str, Any], spec: ModeSpec, degraded: list[str]
) -> tuple[str, dict[str, Any] | None]:
    for key in spec.text_keys:
        value = obj.get(key)
        if spec.structured and isinstance(value, list | dict) and value:
            return json.dumps(value, ensure_ascii=False, indent=2), obj
        if isinstance(value, str) and value.strip():
            outcome = unwrap_with_trace(value, spec.unwrap_keys)
            if outcome.degraded:
                degraded.append(outcome.strategy)
            if outcome.text.strip():
                return outcome.text, (obj if spec.structured else None)
    if spec.mode == GenerationMode.FULLTEXT:
        structured = obj.get("structuredData") or obj.get("structured_data")
        compiled = compile_structured_fulltext(structured, obj.get("title"))
        if compiled:
            return compiled, structured
    return "", None


def resolve_confidence(obj: dict[str, Any]) -> Confidence:
    """Normalise la confiance (objet, niveau texte ou score 0..1)."""
    value = obj.get("confidence")
    reason = obj.get("confidence_reason")
    if isinstance(value, dict):
        level = str(value.get("level", "")).lower()
        return Confidence(
            level=level if level in CONFIDENCE_LEVELS else "low",
            reason=str(value.get("reason") or reason or "unknown"),
        )
    if isinstance(value, str) and value.strip().lower() in CONFIDENCE_LEVELS:
        return Confidence(level=value.strip().lower(), reason=str(reason or "unknown"))
    score = _to_float(value)
    if score is None:
        return Confidence()
    if score >= CONFIDENCE_HIGH_MIN:
        level = "high"
    elif score >= CONFIDENCE_MEDIUM_MIN:
        level = "medium"
    else:
        level = "low"
    return Confidence(level=level, reason=str(reason or f"score={score:.2f}"))


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return list(value)
    return [value]


def _resolve_citations(obj: dict[str, Any]) -> Citations:
    value = obj.get("citations")
    if isinstance(value, dict):
        return Citations(
            internal=_as_list(value.get("internal", value.get("internal_refs"))),
            external=_as_list(value.get("external", value.get("external_refs"))),
        )
    if isinstance(value, list):
        return Citations(external=value)
    return Citations()


def _resolve_strings(value: Any) -> list[str]:
    out: list[str] = []
    for item in _as_list(value):
        if isinstance(item, str) and item.strip():
            out.append(item.strip())
        elif isinstance(item, dict):
            title = item.get("title") or item.get("name") or item.get("url")
            if title:
                out.append(str(title))
    return out


def _resolve_cache(obj: dict[str, Any]) -> CacheInfo:
    block = obj.get("_cache") or obj.get("cache")
    if not isinstance(block, dict):
        return CacheInfo(hit=bool(obj.get("cached") is True))
    hit = block.get("hit", block.get("cacheHit", block.get("cached", False)))
    age = _to_float(block.get("age_seconds", block.get("cacheAge")))
    total = _to_float(block.get("total_hits", block.get("totalHits")))
    return CacheInfo(
        hit=bool(hit),
        age_seconds=int(age) if age is not None else None,
        total_hits=int(total) if total is not None else None,
    )


def _resolve_usage(value: Any) -> dict[str, int]:
    if not isinstance(value, dict):
        return {}
    usage: dict[str, int] = {}
    for key, raw in value.items():
        number = _to_float(raw)
        if number is not None:
            usage[str(key)] = int(number)
    return usage


def _resolve_metadata(obj: dict[str, Any], primary_provider: str) -> GenerationMetadata:
    meta = obj.get("metadata") if isinstance(obj.get("metadata"), dict) else {}
    model = meta.get("usedModel") or meta.get("model") or obj.get("model")
    provider = meta.get("provider") or obj.get("provider")
    if not provider:
        provider = infer_provider(model, primary_provider)
    raw_cost = meta.get("cost", obj.get("cost", obj.get("cost_usd")))
    if isinstance(raw_cost, dict):
        cost = GenerationCost(
            total=_to_float(raw_cost.get("total")) or 0.0,
            input=_to_float(raw_cost.get("input")),
            output=_to_float(raw_cost.get("output")),
        )
    else:
        cost = GenerationCost(total=_to_float(raw_cost) or 0.0)
    generated_at = (
        meta.get("generated_at")
        or meta.get("generatedAt")
        or datetime.now(UTC).isoformat()
    )
    return GenerationMetadata(
        model=str(model) if model else None,
        provider=str(provider),
        cost=cost,
        generated_at=str(generated_at),
        fallback=bool(meta.get("fallback", obj.get("fallback", False))),
        usage=_resolve_usage(meta.get("tokensUsed") or meta.get("usage") or obj.get("usage")),
    )


def resolve_response(
    raw: Any,
    mode: str | GenerationMode,
    *,
    primary_provider: str = "anthropic",
) -> GenerationResult:
    """Normalise une réponse brute (déjà décodée ou non) en GenerationResult.

    Raises:
        MissingPayload: si aucun texte n'est récupérable pour le mode.
    """
    spec = get_spec(mode)
    degraded: list[str] = []
    obj = _normalize_shape(raw, spec, degraded)
    text, structured = _extract_payload(obj, spec, degraded)
    if not text.strip():
        log.warning("generation_missing_payload", mode=spec.mode.value, keys=sorted(obj))
        raise MissingPayload(
            f"no {spec.expected_key} payload in {spec.mode.value} response",
            details={"mode": spec.mode.value, "keys": sorted(obj)},
        )

    warnings = _resolve_strings(obj.get("warnings"))
    if degraded:
        log.warning(
            "parse_degraded", code=ParseDegraded.code, mode=spec.mode.value, strategies=degraded
        )
        warnings.append(
            f"{ParseDegraded.code}: response recovered with fallback parsing "
            f"({', '.join(degraded)})"
        )

    return GenerationResult(
        body_variant_key=spec.expected_key,
        text=text,
        confidence=resolve_confidence(obj),
        citations=_resolve_citations(obj),
        warnings=warnings,
        sources=_resolve_strings(obj.get("sources")),
        cache=_resolve_cache(obj),
        metadata=_resolve_metadata(obj, primary_provider),
        structured_data=structured,
        missing_topics=_resolve_strings(obj.get("missing_topics") or obj.get("missingTopics")),
        degraded=degraded,
    )
