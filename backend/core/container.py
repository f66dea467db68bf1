"""
Conteneur d'injection de dépendances et configuration application.

Instancie les composants centraux (settings, dépôts, cache, LLM, services)
et expose un singleton `container` utilisé par le reste de l'application.
"""

from backend.core.settings import Settings, get_settings
from backend.domain.authoring_service import AuthoringService
from backend.domain.draft_store import DraftStore
from backend.domain.review import ReviewCritic
from backend.domain.version_log import VersionLog
from backend.infra.generation_cache import InMemoryGenerationCache, RedisGenerationCache
from backend.infra.generation_gateway import GenerationGateway, LLMReviewer
from backend.infra.llm.openai_client import OpenAILLM
from backend.infra.repo.content_entity_repo import SqlContentEntityRepo
from backend.infra.repo.content_version_repo import SqlContentVersionRepo
from backend.infra.repo.db import create_schema, get_engine
from backend.infra.repositories import InMemoryContentEntityRepo, InMemoryContentVersionRepo


class Container:
    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

        # Persistance: SQL si DATABASE_URL, sinon mémoire
        if self.settings.DATABASE_URL:
            self.engine = get_engine(self.settings.DATABASE_URL)
            create_schema(self.engine)
            self.entity_repo = SqlContentEntityRepo(self.engine)
            self.version_repo = SqlContentVersionRepo(self.engine)
            self.storage_backend = "sql"
        else:
            self.engine = None
            self.entity_repo = InMemoryContentEntityRepo()
            self.version_repo = InMemoryContentVersionRepo()
            self.storage_backend = "memory"

        # Cache de génération
        ttl = self.settings.GENERATION_CACHE_TTL_SECONDS
        if self.settings.REDIS_URL:
            try:
                self.generation_cache = RedisGenerationCache(self.settings.REDIS_URL, ttl)
                self.cache_backend = "redis"
            except Exception as err:
                if self.settings.REQUIRE_REDIS:
                    raise RuntimeError("Redis required but unavailable") from err
                self.generation_cache = InMemoryGenerationCache(ttl)
                self.cache_backend = "memory-fallback"
        else:
            if self.settings.REQUIRE_REDIS:
                raise RuntimeError("Redis required but REDIS_URL not set")
            self.generation_cache = InMemoryGenerationCache(ttl)
            self.cache_backend = "memory"

        # LLM: seul le fournisseur OpenAI est branché; les modes Anthropic basculent dessus
        self.llm = OpenAILLM(api_key=self.settings.OPENAI_API_KEY, model=self.settings.REVIEW_MODEL)
        self.gateway = GenerationGateway(
            {"openai": self.llm},
            self.generation_cache,
            cache_enabled=self.settings.GENERATION_CACHE_ENABLED,
        )
        self.critic = ReviewCritic(
            LLMReviewer(self.llm, model=self.settings.REVIEW_MODEL),
            max_chars=self.settings.REVIEW_MAX_CHARS,
            approval_threshold=self.settings.SAFETY_APPROVAL_THRESHOLD,
        )

        self.drafts = DraftStore(self.entity_repo)
        self.versions = VersionLog(self.version_repo, lock_for=self.drafts.lock_for)
        self.service = AuthoringService(
            self.drafts,
            self.versions,
            self.gateway,
            self.critic,
            primary_provider=self.settings.PRIMARY_PROVIDER,
            shrink_ratio=self.settings.INTEGRITY_SHRINK_RATIO,
        )


container = Container()
