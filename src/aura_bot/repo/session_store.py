
"""Sessão de conversa em cache com TTL deslizante.

- Chave: ``sess:{tenant}:{conversation sem sufixo de dispositivo}``.
- ``load`` nunca falha: miss, blob ilegível ou erro de cache => sessão vazia.
- ``save`` é best-effort: erro de cache é logado e engolido (perde continuidade, não o turno).
- Sem controle de concorrência: dois turnos simultâneos da mesma conversa fazem
  read-modify-write e o último save vence.
"""
from __future__ import annotations
import json
from pydantic import ValidationError
from ..connectors.aimotive.api_adapter import normalize_conversation_id
from ..core.logging import get_logger
from ..domain.models import Session
from ..ports.interfaces import KeyedCache

log = get_logger()

def session_key(tenant_id: str, conversation_id: str) -> str:
    return f"sess:{tenant_id}:{normalize_conversation_id(conversation_id)}"

def parse_session(raw: str) -> Session:
    """Desserializa o blob, descartando mensagens com role inválido."""
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("blob de sessão não é objeto")
    messages = data.get("messages")
    if not isinstance(messages, list):
        messages = []
    data["messages"] = [
        m for m in messages
        if isinstance(m, dict) and m.get("role") in ("user", "assistant")
    ]
    for m in data["messages"]:
        m["content"] = str(m.get("content") or "")
    return Session.model_validate(data)

class SessionStore:
    def __init__(self, cache: KeyedCache, ttl_seconds: int = 180, max_messages: int = 12):
        self.cache = cache
        self.ttl_seconds = ttl_seconds
        self.max_messages = max_messages

    async def load(self, key: str) -> Session:
        try:
            raw = await self.cache.get(key)
        except Exception as exc:
            log.error("session_get_failed", key=key, error=str(exc))
            return Session()
        if not raw:
            return Session()
        try:
            return parse_session(raw)
        except (ValueError, ValidationError) as exc:
            log.warning("session_parse_failed", key=key, error=str(exc))
            return Session()

    def append(self, session: Session, role: str, content: str) -> None:
        session.append(role, content, self.max_messages)

    async def save(self, key: str, session: Session) -> bool:
        blob = session.model_dump_json(by_alias=True, exclude_none=True)
        try:
            await self.cache.set(key, blob, self.ttl_seconds)
        except Exception as exc:
            log.error("session_set_failed", key=key, error=str(exc))
            return False
        log.info(
            "session_saved",
            key=key,
            ttl=self.ttl_seconds,
            size=len(session.messages),
            has_vehicle=session.vehicle is not None,
            has_matches=bool(session.part_matches and session.part_matches.matches),
            has_selected=session.selected_product is not None,
        )
        return True
