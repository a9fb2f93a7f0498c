
"""Cache chave/valor com expiração: Redis (produção) ou memória do processo (dev/testes)."""
from __future__ import annotations
import time
from dataclasses import dataclass
from typing import Callable, Dict
import redis.asyncio as redis

@dataclass
class _CacheEntry:
    blob: str
    expires_at: float

class InMemoryCache:
    """Cache local com TTL. Expiração avaliada na leitura; cada escrita varre as chaves vencidas."""
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: Dict[str, _CacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def _sweep(self, now: float) -> None:
        expired = [k for k, e in self._entries.items() if e.expires_at <= now]
        for k in expired:
            del self._entries[k]

    async def get(self, key: str) -> str | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            del self._entries[key]
            return None
        return entry.blob

    async def set(self, key: str, blob: str, ttl_seconds: int) -> None:
        now = self._clock()
        self._sweep(now)
        self._entries[key] = _CacheEntry(blob=blob, expires_at=now + ttl_seconds)

class RedisCache:
    """Cache em Redis. Abre uma conexão por chamada (o loop do Flask async é por request)."""
    def __init__(self, url: str, timeout_s: float = 2.0):
        self.url = url
        self.timeout_s = timeout_s

    def _client(self) -> redis.Redis:
        return redis.from_url(
            self.url,
            decode_responses=True,
            socket_timeout=self.timeout_s,
            socket_connect_timeout=self.timeout_s,
        )

    async def get(self, key: str) -> str | None:
        async with self._client() as cli:
            return await cli.get(key)

    async def set(self, key: str, blob: str, ttl_seconds: int) -> None:
        async with self._client() as cli:
            await cli.set(key, blob, ex=ttl_seconds)
