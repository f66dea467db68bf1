"""Tests du service d'édition (génération, sauvegarde, restauration, relecture)."""

from unittest.mock import patch

import pytest

from backend.core.constants import TEST_TWO_ITEMS
from backend.domain.errors import (
    GenerationFailed,
    MissingPayload,
    NotFound,
    PreconditionFailed,
)


def _create(service, **fields):
    return service.create_entity("Asthma", specialty="pneumology", **fields)


def test_deep_dive_requires_full_text(service, generator):
    """Précondition non satisfaite: aucun appel au générateur, rien n'est persisté."""
    entity = _create(service)
    with pytest.raises(PreconditionFailed):
        service.generate(entity.id, "deep_dive")
    assert generator.calls == []
    assert service.list_versions(entity.id) == []


def test_generation_failure_leaves_entity_unchanged(service, generator):
    """Échec du générateur: brouillon intact, aucune version."""
    entity = _create(service, full_text="Body")
    generator.error = GenerationFailed("upstream down")
    with pytest.raises(GenerationFailed):
        service.generate(entity.id, "high_yield")
    assert service.get_entity(entity.id).model_dump() == entity.model_dump()
    assert service.list_versions(entity.id) == []


def test_missing_payload_leaves_entity_unchanged(service, generator):
    """Réponse sans charge utile: brouillon intact, aucune version."""
    entity = _create(service)
    generator.responses["fulltext"] = {"foo": "bar"}
    with pytest.raises(MissingPayload):
        service.generate(entity.id, "fulltext")
    assert service.get_entity(entity.id).full_text == ""
    assert service.list_versions(entity.id) == []


def test_fulltext_generation_creates_version(service, generator):
    """Succès: champ cible mis à jour, références externes fusionnées, snapshot IA."""
    entity = _create(service, high_yield="HY")
    generator.responses["fulltext"] = {
        "full_text": "Generated body",
        "confidence": {"level": "high", "reason": "guidelines"},
        "citations": {"internal": [], "external": ["GINA 2024"]},
        "model": "claude-opus-4-20250514",
    }

    outcome = service.generate(entity.id, "fulltext")

    assert outcome.entity.full_text == "Generated body"
    assert outcome.entity.high_yield == "HY"
    assert outcome.entity.source_pack.external_refs == ["GINA 2024"]
    assert outcome.entity.last_model_used == "claude-opus-4-20250514"
    assert outcome.version.change_reason == "AI generation: fulltext"
    assert outcome.version.version_number == 1
    assert outcome.version.ai_confidence == "high"
    assert outcome.version.fields["full_text"] == "Generated body"
    assert [r.field for r in outcome.integrity] == ["full_text"]
    mode, context = generator.calls[0]
    assert mode == "fulltext"
    assert context["title"] == "Asthma"
    assert context["specialty"] == "pneumology"
    assert context["allow_web"] is False


def test_quiz_does_not_touch_entity(service, generator):
    """Mode non persistant: résultat renvoyé, entité et historique inchangés."""
    entity = _create(service)
    generator.responses["quiz"] = {"mcq": [{"question": "Q1"}]}
    outcome = service.generate(entity.id, "quiz")
    assert outcome.version is None
    assert outcome.result.structured_data == {"mcq": [{"question": "Q1"}]}
    assert service.get_entity(entity.id).model_dump() == entity.model_dump()
    assert service.list_versions(entity.id) == []


def test_reformat_shrink_is_flagged(service, generator):
    """Rétrécissement suspect: signalé dans le rapport d'intégrité, pas bloqué."""
    entity = _create(service, full_text="x" * 100)
    generator.responses["reformat"] = {"full_text": "short"}
    outcome = service.generate(entity.id, "reformat")
    report = outcome.integrity[0]
    assert report.ok is False
    assert report.shrunk is True
    assert outcome.entity.full_text == "short"
    assert outcome.version is not None


def test_apply_generation_with_client_payload(service):
    """Réponse brute fournie par le client, même chemin de normalisation."""
    entity = _create(service, full_text="Body")
    outcome = service.apply_generation(entity.id, "summarize", '{"high_yield": "- key"}')
    assert outcome.entity.high_yield == "- key"
    assert outcome.entity.full_text == "Body"
    assert outcome.version.change_reason == "AI generation: summarize"


def test_save_and_restore(service):
    """Restauration: brouillon recopié depuis v1, pas de nouvelle version."""
    entity = _create(service, full_text="First")
    first = service.save(entity.id)
    service.update_entity(entity.id, {"full_text": "Second"})
    service.save(entity.id, "Edit")

    outcome = service.restore(entity.id, first.id)

    assert outcome.entity.full_text == "First"
    assert outcome.version.id == first.id
    assert outcome.version.is_current is True
    history = service.list_versions(entity.id)
    assert len(history) == TEST_TWO_ITEMS
    assert [v.change_reason for v in history] == ["Edit", "Manual save"]


def _two_versions(service):
    entity = _create(service, full_text="First")
    first = service.save(entity.id)
    service.update_entity(entity.id, {"full_text": "Second"})
    latest = service.save(entity.id, "Edit")
    return entity, first, latest


def test_restore_puts_draft_back_when_pointer_move_fails(service, versions):
    """Échec du déplacement de is_current: brouillon précédent remis, erreur propagée."""
    entity, first, latest = _two_versions(service)
    with patch.object(versions.repo, "set_current", side_effect=RuntimeError("db down")):
        with pytest.raises(RuntimeError):
            service.restore(entity.id, first.id)
    assert service.get_entity(entity.id).full_text == "Second"
    assert versions.get_current(entity.id).id == latest.id


def test_restore_keeps_pointer_when_draft_write_fails(service, drafts, versions):
    """Échec d'écriture du brouillon: la version courante ne bouge pas."""
    entity, first, latest = _two_versions(service)
    with patch.object(drafts.repo, "save_entity", side_effect=RuntimeError("db down")):
        with pytest.raises(RuntimeError):
            service.restore(entity.id, first.id)
    assert versions.get_current(entity.id).id == latest.id
    assert service.get_entity(entity.id).full_text == "Second"


def test_restore_copies_captured_status(service):
    """Le statut capturé est recopié tel quel: publié puis restauré depuis v1 -> draft."""
    entity = _create(service, full_text="First")
    first = service.save(entity.id)
    service.set_status(entity.id, "in_review")
    service.set_status(entity.id, "published")
    outcome = service.restore(entity.id, first.id)
    assert outcome.entity.status == "draft"
    assert service.get_entity(entity.id).status == "draft"


def test_save_marks_published_content_approved(service):
    """Sauvegarde d'un contenu publié: review_status approuvé."""
    entity = _create(service)
    service.set_status(entity.id, "in_review")
    service.set_status(entity.id, "published")
    version = service.save(entity.id)
    assert version.fields["status"] == "published"
    assert service.get_entity(entity.id).review_status == "approved"


def test_objectives_are_appended(service):
    """Objectifs ajoutés en fin de liste, autres champs intacts."""
    entity = _create(service, full_text="Body", learning_objectives=["a"])
    updated = service.append_objectives(entity.id, ["b", "c"])
    assert updated.learning_objectives == ["a", "b", "c"]
    assert updated.full_text == "Body"


def test_unknown_entity(service):
    """Entité inconnue: NotFound sur lecture, génération et historique."""
    with pytest.raises(NotFound):
        service.get_entity("missing")
    with pytest.raises(NotFound):
        service.generate("missing", "fulltext")
    with pytest.raises(NotFound):
        service.list_versions("missing")


def test_review_does_not_alter_entity(service, reviewer):
    """La relecture renvoie un rapport sans modifier l'entité."""
    entity = _create(service, full_text="Body text")
    reviewer.raw = {"content": '{"safety_score": 90, "issues": []}', "model": "gpt-4o"}
    report = service.review(entity.id)
    assert report.approved is True
    assert reviewer.calls == [("Body text", "pneumology", "fulltext")]
    assert service.get_entity(entity.id).model_dump() == entity.model_dump()


def test_review_of_empty_field_is_rejected(service, reviewer):
    """Champ vide: PreconditionFailed sans appel au relecteur."""
    entity = _create(service)
    with pytest.raises(PreconditionFailed):
        service.review(entity.id, "deep_dive", "deep_dive")
    assert reviewer.calls == []
