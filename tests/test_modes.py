"""Tests du répartiteur de modes."""

import pytest

from backend.domain.entities import ContentEntity
from backend.domain.errors import PreconditionFailed
from backend.domain.modes import (
    MODE_TABLE,
    GenerationMode,
    build_context,
    change_reason_for,
    ensure_preconditions,
    get_spec,
    normalize_mode,
)


@pytest.mark.parametrize(
    ("alias", "mode"),
    [
        ("topic_generate_fulltext_v2", GenerationMode.FULLTEXT),
        ("topic_generate_high_yield", GenerationMode.HIGH_YIELD),
        ("topic_generate_deep_dive", GenerationMode.DEEP_DIVE),
        ("question_quiz", GenerationMode.QUIZ),
        ("question_simplify", GenerationMode.SIMPLIFY),
        ("question_exam_answer", GenerationMode.EXAM_ANSWER),
        ("content_review_critic", GenerationMode.REVIEW_CRITIC),
        ("topic_summarize", GenerationMode.SUMMARIZE),
        ("topic_reformat", GenerationMode.REFORMAT),
        ("Deep-Dive", GenerationMode.DEEP_DIVE),
    ],
)
def test_legacy_aliases(alias, mode):
    """Les noms historiques sont normalisés."""
    assert normalize_mode(alias) is mode


def test_unknown_mode():
    """Mode inconnu: ValueError."""
    with pytest.raises(ValueError):
        normalize_mode("poetry")


def test_every_mode_has_a_spec():
    """Chaque mode de l'énumération a une description."""
    assert set(MODE_TABLE) == set(GenerationMode)


def test_persisting_and_non_persisting_modes():
    """Quiz ne met pas à jour l'entité; deep_dive cible son propre champ."""
    assert get_spec("quiz").persists is False
    deep = get_spec("deep_dive")
    assert deep.target_fields == ("deep_dive",)
    assert deep.allow_web is True
    assert get_spec("fulltext").allow_web is False


@pytest.mark.parametrize("mode", ["high_yield", "deep_dive", "summarize", "reformat", "flashcards"])
def test_modes_requiring_full_text(mode):
    """Ces modes exigent un full_text non vide."""
    entity = ContentEntity(id="e1", title="T", full_text="   ")
    with pytest.raises(PreconditionFailed) as exc_info:
        ensure_preconditions(get_spec(mode), entity)
    assert exc_info.value.details["missing_field"] == "full_text"


def test_fulltext_has_no_precondition():
    """Fulltext peut partir d'une entité vide."""
    ensure_preconditions(get_spec("fulltext"), ContentEntity(id="e1", title="T"))


def test_unwrap_keys_start_with_expected_key():
    """La clé attendue est essayée en premier, sans doublon."""
    keys = get_spec("deep_dive").unwrap_keys
    assert keys[0] == "deep_dive"
    assert len(keys) == len(set(keys))


def test_context_and_change_reason():
    """Contexte transmis au générateur et motif de snapshot."""
    spec = get_spec("deep_dive")
    entity = ContentEntity(id="e1", title="Asthma", full_text="Body", specialty="pneumology")
    context = build_context(spec, entity)
    assert context["title"] == "Asthma"
    assert context["existing_text"] == "Body"
    assert context["specialty"] == "pneumology"
    assert context["parent_section"] == ""
    assert change_reason_for(spec) == "AI generation: deep_dive"
