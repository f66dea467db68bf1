"""Tests de la résolution des formes de réponses fournisseurs."""

import pytest

from backend.domain.errors import MissingPayload
from backend.domain.response_resolver import (
    compile_structured_fulltext,
    infer_provider,
    resolve_response,
)


def test_doubly_wrapped_content_is_merged():
    """`content` contenant du JSON balisé: fusionné au niveau racine."""
    raw = {"content": '```json\n{"high_yield": "- A\\n- B"}\n```'}
    result = resolve_response(raw, "high_yield")
    assert result.text == "- A\n- B"
    assert result.body_variant_key == "high_yield"


def test_doubly_wrapped_content_as_json_string():
    """Même forme, reçue sous forme de chaîne JSON."""
    raw = r'{"content": "```json\n{\"high_yield\": \"- A\\n- B\"}\n```"}'
    assert resolve_response(raw, "high_yield").text == "- A\n- B"


def test_content_with_literal_newlines_and_escaped_quotes():
    """`content` avec \\n littéraux et guillemets échappés."""
    raw = {"content": '```json\\n{\\"high_yield\\": \\"- A\\\\n- B\\"}\\n```'}
    assert resolve_response(raw, "high_yield").text == "- A\n- B"


def test_missing_payload_raises():
    """Réponse fulltext sans full_text ni text: MissingPayload."""
    with pytest.raises(MissingPayload) as exc_info:
        resolve_response({"foo": "bar"}, "fulltext")
    assert exc_info.value.details["mode"] == "fulltext"


def test_plain_text_response():
    """Texte brut: utilisé comme charge utile."""
    result = resolve_response("Just text", "fulltext")
    assert result.text == "Just text"
    assert result.confidence.level == "low"
    assert result.confidence.reason == "unknown"


def test_double_encoded_expected_key():
    """Champ attendu contenant du JSON: parsé et fusionné."""
    raw = {"full_text": '{"full_text": "inner", "confidence": {"level": "high", "reason": "r"}}'}
    result = resolve_response(raw, "fulltext")
    assert result.text == "inner"
    assert result.confidence.level == "high"


@pytest.mark.parametrize(
    ("model", "expected"),
    [
        ("claude-opus-4-20250514", "anthropic"),
        ("gpt-4o", "openai"),
        ("o1-preview", "openai"),
        ("gemini-1.5-pro", "google"),
        (None, "anthropic"),
    ],
)
def test_provider_inference(model, expected):
    """Fournisseur déduit du nom de modèle, sinon fournisseur principal."""
    raw = {"full_text": "x"}
    if model:
        raw["model"] = model
    assert resolve_response(raw, "fulltext").metadata.provider == expected


def test_explicit_provider_and_primary_override():
    """Champ explicite prioritaire; fournisseur principal configurable."""
    assert resolve_response({"full_text": "x", "provider": "mistral"}, "fulltext").metadata.provider == "mistral"
    assert infer_provider(None, "openai") == "openai"


@pytest.mark.parametrize(
    ("score", "level"),
    [(0.9, "high"), (0.8, "high"), (0.6, "medium"), (0.2, "low"), ("0.85", "high")],
)
def test_numeric_confidence_mapping(score, level):
    """Confiance numérique 0..1 convertie en niveau."""
    result = resolve_response({"full_text": "x", "confidence": score}, "fulltext")
    assert result.confidence.level == level


def test_confidence_object_is_normalized():
    """Objet de confiance: niveau en minuscules, niveau inconnu -> low."""
    ok = resolve_response({"full_text": "x", "confidence": {"level": "HIGH", "reason": "r"}}, "fulltext")
    assert (ok.confidence.level, ok.confidence.reason) == ("high", "r")
    bad = resolve_response({"full_text": "x", "confidence": {"level": "sure"}}, "fulltext")
    assert bad.confidence.level == "low"


def test_cache_block_is_surfaced():
    """Bloc `_cache`: hit signalé distinctement."""
    raw = {"full_text": "x", "_cache": {"cached": True, "cacheAge": 12, "totalHits": 3}}
    result = resolve_response(raw, "fulltext")
    assert result.cache.hit is True
    assert result.cache.age_seconds == 12
    assert result.cache.total_hits == 3
    assert resolve_response({"full_text": "x"}, "fulltext").cache.hit is False


def test_cost_accepts_numeric_strings():
    """Coût sérialisé en chaîne (toFixed(4))."""
    raw = {"full_text": "x", "metadata": {"cost": {"total": "0.0123", "input": "0.0023"}}}
    cost = resolve_response(raw, "fulltext").metadata.cost
    assert cost.total == pytest.approx(0.0123)
    assert cost.input == pytest.approx(0.0023)
    assert resolve_response({"full_text": "x", "cost": 0.5}, "fulltext").metadata.cost.total == 0.5


def test_sources_warnings_and_citations():
    """Sources texte ou {title}; citations et avertissements par défaut vides."""
    raw = {
        "deep_dive": "D",
        "sources": ["NICE 2023", {"title": "GINA"}],
        "warnings": "check dosage",
        "citations": {"internal": ["c1"], "external": ["e1"]},
    }
    result = resolve_response(raw, "deep_dive")
    assert result.sources == ["NICE 2023", "GINA"]
    assert result.warnings == ["check dosage"]
    assert result.citations.internal == ["c1"]
    empty = resolve_response({"deep_dive": "D"}, "deep_dive")
    assert empty.sources == [] and empty.warnings == [] and empty.citations.external == []


def test_structured_quiz_payload():
    """Mode quiz: charge utile structurée sérialisée, objet complet conservé."""
    raw = {"mcq": [{"question": "Q1", "answer": "A"}]}
    result = resolve_response(raw, "quiz")
    assert '"question": "Q1"' in result.text
    assert result.structured_data["mcq"][0]["answer"] == "A"


def test_fulltext_compiled_from_structured_data():
    """Fulltext sans texte: document compilé depuis structuredData."""
    raw = {"title": "Asthma", "structuredData": {"overview_md": "O", "key_takeaways_md": "K"}}
    result = resolve_response(raw, "fulltext")
    assert result.text.startswith("# Asthma")
    assert "## Contents\n1. Overview\n2. Key takeaways" in result.text
    assert "O\n\n---\n\nK" in result.text
    assert compile_structured_fulltext({}, "x") == ""


def test_truncated_json_string_is_recovered_with_warning():
    """JSON tronqué: texte récupéré, dégradation signalée en avertissement."""
    result = resolve_response('{"full_text": "Truncated text', "fulltext")
    assert result.text == "Truncated text"
    assert result.degraded == ["key_scan"]
    assert any("fallback parsing" in w for w in result.warnings)
    assert any(w.startswith("PARSE_DEGRADED:") for w in result.warnings)


def test_openai_chat_envelope():
    """Enveloppe chat.completions (choices[0].message.content)."""
    raw = {
        "choices": [{"message": {"content": '{"high_yield": "- X"}'}}],
        "model": "gpt-4o",
        "usage": {"prompt_tokens": 10, "completion_tokens": 5},
    }
    result = resolve_response(raw, "high_yield")
    assert result.text == "- X"
    assert result.metadata.provider == "openai"
    assert result.metadata.usage == {"prompt_tokens": 10, "completion_tokens": 5}


def test_anthropic_content_blocks():
    """Enveloppe Messages API (content = liste de blocs texte)."""
    raw = {
        "content": [{"type": "text", "text": '{"deep_dive": "D"}'}],
        "model": "claude-opus-4-20250514",
    }
    result = resolve_response(raw, "deep_dive")
    assert result.text == "D"
    assert result.metadata.provider == "anthropic"
    assert result.metadata.model == "claude-opus-4-20250514"


def test_legacy_mode_alias_and_unknown_mode():
    """Alias historique accepté; mode inconnu refusé."""
    assert resolve_response({"full_text": "x"}, "topic_generate_fulltext_v2").text == "x"
    with pytest.raises(ValueError):
        resolve_response({"full_text": "x"}, "poetry")


def test_deeply_nested_response_is_degraded_not_raised():
    """Imbrication au-delà de la limite de récursion: texte brut conservé, dégradé."""
    raw = "[" * 10_000 + "]" * 10_000
    result = resolve_response(raw, "fulltext")
    assert result.text == raw
    assert "plain_json_like" in result.degraded


def test_non_finite_numbers_are_ignored():
    """inf/NaN dans le cache, l'usage, le coût ou la confiance: valeurs ignorées."""
    raw = {
        "full_text": "x",
        "confidence": "inf",
        "_cache": {"cached": True, "cacheAge": "inf", "totalHits": "NaN"},
        "metadata": {
            "usage": {"prompt_tokens": "NaN", "completion_tokens": 5},
            "cost": {"total": "Infinity", "input": float("nan")},
        },
    }
    result = resolve_response(raw, "fulltext")
    assert result.cache.hit is True
    assert result.cache.age_seconds is None
    assert result.cache.total_hits is None
    assert result.metadata.usage == {"completion_tokens": 5}
    assert result.metadata.cost.total == 0.0
    assert result.metadata.cost.input is None
    assert result.confidence.level == "low"
    infinite = resolve_response({"full_text": "x", "cost": float("inf")}, "fulltext")
    assert infinite.metadata.cost.total == 0.0
