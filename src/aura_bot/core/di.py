
"""Bootstrap do container de DI (kink): colaboradores, caches e pipeline."""
from __future__ import annotations
import asyncio
from kink import di
from .settings import Settings
from .logging import configure_logging
from .db import create_session_factory
from .llm_client import LLMClient
from .prompting import PromptBuilder
from ..connectors.aimotive.api_adapter import AimotiveAdapter
from ..connectors.aimotive.normalizer import PayloadNormalizer
from ..domain.pipeline import InboundPipeline
from ..domain.services.catalog_service import CatalogCache, CatalogMatcher
from ..domain.services.decision_service import DecisionAssembler
from ..domain.services.media_service import MediaContentBuilder
from ..domain.services.vehicle_service import VehicleResolver
from ..repo.cache import InMemoryCache, RedisCache
from ..repo.catalog_repo import load_catalog_entries
from ..repo.session_store import SessionStore

def make_catalog_loader(session_factory, timeout_s: float):
    """Loader assíncrono: consulta síncrona em thread, com timeout explícito."""
    async def load():
        return await asyncio.wait_for(asyncio.to_thread(load_catalog_entries, session_factory), timeout=timeout_s)
    return load

def bootstrap_di(settings: Settings | None = None) -> None:
    settings = settings or Settings()
    configure_logging(settings.log_level)
    di[Settings] = settings
    di["session_factory"] = create_session_factory(settings.database_url)
    di[PromptBuilder] = PromptBuilder()
    di[LLMClient] = LLMClient(settings, di[PromptBuilder])
    di[AimotiveAdapter] = AimotiveAdapter(settings)
    di[PayloadNormalizer] = PayloadNormalizer(media_base_url=settings.media_base_url)

    cache = RedisCache(settings.redis_url, settings.cache_timeout_s) if settings.redis_url else InMemoryCache()
    di["cache"] = cache
    di[SessionStore] = SessionStore(cache, settings.session_ttl_seconds, settings.session_max_messages)
    di[CatalogCache] = CatalogCache(
        make_catalog_loader(di["session_factory"], settings.catalog_load_timeout_s),
        max_age_s=settings.catalog_refresh_s,
    )
    di[CatalogMatcher] = CatalogMatcher(di[CatalogCache], di[LLMClient])
    di[InboundPipeline] = InboundPipeline(
        store=di[SessionStore],
        media=MediaContentBuilder(di[LLMClient], di[LLMClient]),
        vehicles=VehicleResolver(di[AimotiveAdapter]),
        matcher=di[CatalogMatcher],
        directory=di[AimotiveAdapter],
        assembler=DecisionAssembler(settings.catalog_match_threshold),
        generator=di[LLMClient],
        sender=di[AimotiveAdapter],
        top_k=settings.catalog_match_topk,
        context_window=settings.session_context_window,
    )
