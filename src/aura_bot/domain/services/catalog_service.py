
"""Match de família de peça por similaridade de embeddings.

O catálogo vive num ``CatalogSnapshot`` imutável com timestamp, atrás de um
``CatalogCache`` (refresh-if-stale). Refreshes concorrentes não são deduplicados:
sobrescrever com um snapshot equivalente é idempotente.
"""
from __future__ import annotations
import asyncio
import math
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple
from ...core.logging import get_logger
from ...domain.models import CatalogEntry, PartMatch
from ...ports.interfaces import EmbeddingProvider

log = get_logger()

DEFAULT_MAX_AGE_S = 600.0

CatalogLoader = Callable[[], Awaitable[List[CatalogEntry]]]

def dot(a: Sequence[float], b: Sequence[float]) -> float:
    return sum(x * y for x, y in zip(a, b))

def norm(a: Sequence[float]) -> float:
    return math.sqrt(dot(a, a))

def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """dot(a,b)/(|a|·|b|); 0 se alguma norma for zero ou as dimensões diferirem."""
    if len(a) != len(b):
        return 0.0
    denom = norm(a) * norm(b)
    return dot(a, b) / denom if denom else 0.0

@dataclass(frozen=True)
class CatalogSnapshot:
    entries: Tuple[CatalogEntry, ...]
    loaded_at: float

    def age(self, now: float) -> float:
        return now - self.loaded_at

class CatalogCache:
    """Dono do snapshot do catálogo em memória (nunca persistido)."""
    def __init__(self, loader: CatalogLoader, max_age_s: float = DEFAULT_MAX_AGE_S,
                 clock: Callable[[], float] = time.monotonic):
        self._loader = loader
        self.max_age_s = max_age_s
        self._clock = clock
        self._snapshot: Optional[CatalogSnapshot] = None

    @property
    def snapshot(self) -> Optional[CatalogSnapshot]:
        return self._snapshot

    def is_stale(self) -> bool:
        snap = self._snapshot
        return snap is None or snap.age(self._clock()) >= self.max_age_s

    async def get(self, force: bool = False) -> Tuple[CatalogEntry, ...]:
        """Retorna as entradas, recarregando se o snapshot estiver velho ou ``force``."""
        if not force and not self.is_stale():
            return self._snapshot.entries
        entries = await self._loader()
        self._snapshot = CatalogSnapshot(entries=tuple(entries), loaded_at=self._clock())
        log.info("catalog_refreshed", count=len(entries), forced=force)
        return self._snapshot.entries

def rank(query: Sequence[float], entries: Sequence[CatalogEntry], top_k: int) -> List[PartMatch]:
    """Top-K por score decrescente; empates mantêm a ordem original do catálogo."""
    scored = [
        PartMatch(id=e.id, canonical_name=e.canonical_name, score=cosine_similarity(query, e.embedding))
        for e in entries
    ]
    scored.sort(key=lambda m: m.score, reverse=True)
    return scored[:max(top_k, 0)]

class CatalogMatcher:
    def __init__(self, cache: CatalogCache, embedder: EmbeddingProvider):
        self.cache = cache
        self.embedder = embedder

    async def match(self, text: str, top_k: int = 5) -> List[PartMatch]:
        # Os dois lados sempre terminam antes de propagar a falha de qualquer um.
        entries, query = await asyncio.gather(self.cache.get(), self.embedder.embed(text), return_exceptions=True)
        for result in (entries, query):
            if isinstance(result, BaseException):
                raise result
        return rank(query, entries, top_k)
