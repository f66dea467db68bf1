"""Tests du magasin de brouillons et des fusions à portée de champ."""

import threading

import pytest

from backend.domain.draft_store import (
    DraftStore,
    apply_result,
    merge_field,
    merge_list_append,
    transition_status,
)
from backend.domain.entities import ContentEntity, GenerationResult
from backend.domain.errors import NotFound, PreconditionFailed
from backend.domain.modes import get_spec
from backend.infra.repositories import InMemoryContentEntityRepo

THREADS = 20


def _entity(**kw) -> ContentEntity:
    base = {"id": "e1", "title": "Asthma", "full_text": "F", "high_yield": "H", "deep_dive": "D"}
    base.update(kw)
    return ContentEntity(**base)


def test_merge_field_replaces_exactly_one_field():
    """Seul le champ ciblé change."""
    before = _entity()
    after = merge_field(before, "high_yield", "new")
    assert after.high_yield == "new"
    expected = before.model_dump()
    expected["high_yield"] = "new"
    assert after.model_dump() == expected
    assert before.high_yield == "H"


@pytest.mark.parametrize("key", ["id", "unknown"])
def test_merge_field_rejects_immutable_or_unknown_keys(key):
    """`id` et les clés inconnues sont refusés."""
    with pytest.raises(ValueError):
        merge_field(_entity(), key, "x")


def test_merge_list_append_keeps_order_and_duplicates():
    """Ajout en fin de liste, sans dédoublonnage."""
    entity = _entity(learning_objectives=["a"])
    after = merge_list_append(entity, "learning_objectives", ["a", "b"])
    assert after.learning_objectives == ["a", "a", "b"]
    with pytest.raises(ValueError):
        merge_list_append(entity, "title", ["x"])


def test_merges_on_distinct_fields_commute():
    """L'ordre des fusions sur des champs distincts est indifférent."""
    entity = _entity()
    ab = merge_field(merge_field(entity, "full_text", "A"), "deep_dive", "B")
    ba = merge_field(merge_field(entity, "deep_dive", "B"), "full_text", "A")
    assert ab == ba


def test_status_transitions():
    """draft -> in_review -> published, retour à draft; saut interdit."""
    entity = _entity()
    reviewed = transition_status(entity, "in_review")
    published = transition_status(reviewed, "published")
    assert published.status == "published"
    assert transition_status(published, "draft").status == "draft"
    with pytest.raises(PreconditionFailed):
        transition_status(entity, "published")


def test_apply_result_touches_only_target_fields():
    """deep_dive: champ cible, références externes, avertissements, modèle/coût."""
    entity = _entity()
    result = GenerationResult(
        body_variant_key="deep_dive",
        text="Deep",
        sources=["NICE"],
        warnings=["w"],
        metadata={"model": "claude-opus-4-20250514", "cost": {"total": 0.12}},
    )
    after = apply_result(entity, get_spec("deep_dive"), result)
    assert after.deep_dive == "Deep"
    assert after.full_text == "F"
    assert after.high_yield == "H"
    assert after.source_pack.external_refs == ["NICE"]
    assert after.warnings == ["w"]
    assert after.last_model_used == "claude-opus-4-20250514"
    assert after.last_cost == pytest.approx(0.12)


def test_store_get_unknown_raises_not_found():
    """Entité inconnue: NotFound."""
    store = DraftStore(InMemoryContentEntityRepo())
    with pytest.raises(NotFound):
        store.get("missing")


def test_concurrent_appends_are_serialized():
    """Ajouts concurrents sur une même entité: aucun ajout perdu."""
    store = DraftStore(InMemoryContentEntityRepo())
    store.put(_entity())

    def worker(i: int) -> None:
        store.append("e1", "learning_objectives", [f"o{i}"])

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(THREADS)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    objectives = store.get("e1").learning_objectives
    assert len(objectives) == THREADS
    assert sorted(objectives) == sorted(f"o{i}" for i in range(THREADS))


def test_update_fields_sets_updated_at():
    """Les éditions d'auteur horodatent le brouillon."""
    store = DraftStore(InMemoryContentEntityRepo())
    store.put(_entity())
    updated = store.update_fields("e1", {"full_text": "edited"})
    assert updated.full_text == "edited"
    assert updated.updated_at is not None
