"""Configuration de test pour pytest avec gestion des chemins.

Ce module configure pytest pour résoudre les imports backend en ajoutant la racine du projet au
sys.path, et fournit les fixtures de construction du service d'édition (mémoire ou SQL).
"""

import os
import sys

import pytest

# Ensure project root is on sys.path so that
# imports like `from backend...` resolve.
CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from backend.domain.authoring_service import AuthoringService  # noqa: E402
from backend.domain.draft_store import DraftStore  # noqa: E402
from backend.domain.review import ReviewCritic  # noqa: E402
from backend.domain.version_log import VersionLog  # noqa: E402
from backend.infra.repo.db import MEMORY_URL, create_schema, get_engine  # noqa: E402
from backend.infra.repositories import (  # noqa: E402
    InMemoryContentEntityRepo,
    InMemoryContentVersionRepo,
)
from tests.fakes import FakeGenerator, FakeReviewer  # noqa: E402


@pytest.fixture
def generator():
    """Générateur factice, réponses à configurer par test."""
    return FakeGenerator()


@pytest.fixture
def reviewer():
    """Relecteur factice."""
    return FakeReviewer()


@pytest.fixture
def drafts():
    """Magasin de brouillons sur dépôt mémoire."""
    return DraftStore(InMemoryContentEntityRepo())


@pytest.fixture
def versions(drafts):
    """Journal des versions partageant les verrous du magasin."""
    return VersionLog(InMemoryContentVersionRepo(), lock_for=drafts.lock_for)


@pytest.fixture
def service(drafts, versions, generator, reviewer):
    """Service d'édition entièrement en mémoire."""
    return AuthoringService(drafts, versions, generator, ReviewCritic(reviewer))


@pytest.fixture
def sql_engine():
    """Moteur SQLite mémoire avec schéma créé."""
    engine = get_engine(MEMORY_URL)
    create_schema(engine)
    yield engine
    engine.dispose()
