
"""Modelos de domínio (Pydantic): sessão, veículo, matches de catálogo, produtos e decisão.

A sessão é persistida como um único JSON por chave, com chaves camelCase:
``{messages, vehicle?, partMatches?, selectedProduct?, productAlternatives?}``.
"""
from __future__ import annotations
import time
from typing import Any, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

Role = Literal["user", "assistant"]

def now_ms() -> int:
    return int(time.time() * 1000)

class CamelModel(BaseModel):
    """Base com aliases camelCase (formato do blob de sessão e da API Aimotive)."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

class Message(BaseModel):
    role: Role
    content: str
    ts: int = Field(default_factory=now_ms)

class VehicleRecord(CamelModel):
    """Veículo resolvido pela matrícula e cacheado na sessão."""
    plate: str
    vin: Optional[str] = None
    brand: Optional[str] = None
    model: Optional[str] = None
    fuel: Optional[str] = None
    registration_date: Optional[str] = None
    vehicle_id: Optional[int | str] = None
    vehicles: List[dict[str, Any]] = Field(default_factory=list)
    cached_at: int = Field(default_factory=now_ms)

class VehicleSummary(BaseModel):
    plate: Optional[str] = None
    brand: Optional[str] = None
    model: Optional[str] = None
    fuel: Optional[str] = None
    vin: Optional[str] = None

class CatalogEntry(BaseModel):
    """Família do catálogo com embedding de dimensão fixa."""
    id: int
    canonical_name: str
    embedding: List[float]

class PartMatch(BaseModel):
    id: int
    canonical_name: str
    score: float

class PartMatchCache(CamelModel):
    matches: List[PartMatch] = Field(default_factory=list)
    cached_at: int = Field(default_factory=now_ms)
    source: Literal["embedding"] = "embedding"
    text_sample: str = ""

class Warehouse(CamelModel):
    code: str = ""
    name: str = ""
    stock: float = 0
    is_external: Optional[bool] = None

class Product(CamelModel):
    """Produto do diretório. ``is_available`` é tri-state: True/False/desconhecido (None)."""
    ref: str = Field(min_length=1)
    commercial_ref: Optional[str] = None
    name: str = Field(min_length=1)
    brand_code: Optional[str] = None
    brand_name: Optional[str] = None
    is_available: Optional[bool] = None
    price: Optional[float] = None
    taxes: Optional[float] = None
    discount: Optional[float] = None
    vat: Optional[float] = None
    turnover: Optional[float] = None
    warehouses: Optional[List[Warehouse]] = None

    def same_identity(self, other: "Product") -> bool:
        return self.ref == other.ref and self.brand_code == other.brand_code

class Session(CamelModel):
    """Estado da conversa: mensagens limitadas + caches de veículo, matches e produto."""
    messages: List[Message] = Field(default_factory=list)
    vehicle: Optional[VehicleRecord] = None
    part_matches: Optional[PartMatchCache] = None
    selected_product: Optional[Product] = None
    product_alternatives: List[Product] = Field(default_factory=list)

    def append(self, role: Role, content: str, max_messages: int) -> None:
        """Adiciona mensagem e descarta as mais antigas acima de ``max_messages``."""
        self.messages.append(Message(role=role, content=content))
        if len(self.messages) > max_messages:
            self.messages = self.messages[-max_messages:] if max_messages > 0 else []

    def recent(self, window: int) -> List[Message]:
        return self.messages[-window:] if window > 0 else []

    def best_match(self) -> Optional[PartMatch]:
        if self.part_matches and self.part_matches.matches:
            return self.part_matches.matches[0]
        return None

class Decision(BaseModel):
    """Único artefato entregue ao gerador de resposta."""
    vehicle: Optional[VehicleSummary] = None
    part: Optional[PartMatch] = None
    selected_product: Optional[Product] = None
    alternatives: Optional[List[Product]] = Field(default=None, max_length=4)
    ask_one_clarifying_question: bool = False
