
"""Portas hexagonais (interfaces) e DTOs."""
from __future__ import annotations
from typing import Annotated, Any, List, Literal, Optional, Protocol, Sequence, Union
from uuid import UUID
from pydantic import BaseModel, Field, TypeAdapter, field_validator

from ..domain.models import Decision, Message

class _InboundBase(BaseModel):
    """Campos comuns do evento de entrada normalizado."""
    tenant_id: UUID
    conversation_id: str = Field(min_length=8)

    @field_validator("conversation_id")
    @classmethod
    def _domain_marker(cls, v: str) -> str:
        if "@" not in v:
            raise ValueError("conversation_id sem marcador @")
        return v

class TextEvent(_InboundBase):
    type: Literal["text"] = "text"
    text: Optional[str] = None

class AudioEvent(_InboundBase):
    type: Literal["audio"] = "audio"
    media_url: Optional[str] = None
    duration: Optional[int] = None

class ImageEvent(_InboundBase):
    type: Literal["image"] = "image"
    media_url: Optional[str] = None
    caption: Optional[str] = None

InboundEvent = Annotated[Union[TextEvent, AudioEvent, ImageEvent], Field(discriminator="type")]
inbound_event_adapter: TypeAdapter[InboundEvent] = TypeAdapter(InboundEvent)

class EntregaDTO(BaseModel):
    """Resultado padronizado de envio pelo provedor."""
    ok: bool
    provider_message_id: str | None = None
    error_code: str | None = None
    error_detail: str | None = None

class EmbeddingProvider(Protocol):
    async def embed(self, text: str) -> List[float]: ...

class Transcriber(Protocol):
    async def transcribe(self, media_url: str) -> str: ...

class ImageDescriber(Protocol):
    async def describe(self, media_url: str) -> str: ...

class ReplyGenerator(Protocol):
    async def generate(self, history: Sequence[Message], decision: Decision) -> str: ...

class VehicleDirectory(Protocol):
    async def search_by_plate(self, plate: str) -> dict[str, Any]: ...
    async def products_by_vehicle(self, vehicle_id: int, family_id: int) -> List[dict[str, Any]]: ...

class KeyedCache(Protocol):
    async def get(self, key: str) -> str | None: ...
    async def set(self, key: str, blob: str, ttl_seconds: int) -> None: ...

class OutboundSender(Protocol):
    async def send(self, tenant_id: str, conversation_id: str, text: str) -> EntregaDTO: ...
