"""Fixtures compartilhadas: settings, colaboradores fake e payloads de exemplo."""
from __future__ import annotations
import json
from typing import Any, Dict, List

import pytest

from aura_bot.core.settings import Settings
from aura_bot.domain.models import CatalogEntry, Decision
from aura_bot.ports.interfaces import EntregaDTO

TENANT = "3f2b8c1e-9a47-4d2b-8e61-0c5a7d9e1f20"
CONVERSATION = "34600111222:12@s.whatsapp.net"
SENDER = "34600111222@s.whatsapp.net"
SIGNATURE = "9f" * 32


class Clock:
    def __init__(self, t: float = 1000.0):
        self.t = t

    def __call__(self) -> float:
        return self.t


class FakeEmbedder:
    def __init__(self, vectors: Dict[str, List[float]] | None = None, default: List[float] | None = None):
        self.vectors = vectors or {}
        self.default = default or [1.0, 0.0, 0.0]
        self.calls: List[str] = []

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        for needle, vec in self.vectors.items():
            if needle in text:
                return vec
        return self.default


class FakeDirectory:
    def __init__(self, vehicle: Dict[str, Any] | None = None, products: Any = None, fail: bool = False):
        self.vehicle = vehicle if vehicle is not None else {
            "plate": "1234BCD", "vin": "VF1RFB00X12345678", "brand": "RENAULT", "model": "MEGANE",
            "fuel": "Diesel", "vehicles": [{"id": 4411, "name": "MEGANE IV 1.5 dCi"}],
        }
        self.products = products if products is not None else []
        self.fail = fail
        self.plate_calls: List[str] = []
        self.product_calls: List[tuple] = []

    async def search_by_plate(self, plate: str) -> Dict[str, Any]:
        self.plate_calls.append(plate)
        if self.fail:
            raise RuntimeError("directory down")
        return self.vehicle

    async def products_by_vehicle(self, vehicle_id: int, family_id: int) -> Any:
        self.product_calls.append((vehicle_id, family_id))
        if self.fail:
            raise RuntimeError("directory down")
        return self.products


class FakeGenerator:
    def __init__(self, reply: str = "Te recomiendo estas pastillas.", fail: bool = False):
        self.reply = reply
        self.fail = fail
        self.decisions: List[Decision] = []
        self.histories: List[list] = []

    async def generate(self, history, decision: Decision) -> str:
        self.histories.append(list(history))
        self.decisions.append(decision)
        if self.fail:
            raise RuntimeError("llm down")
        return self.reply


class FakeSender:
    def __init__(self, ok: bool = True, fail: bool = False):
        self.ok = ok
        self.fail = fail
        self.sent: List[tuple] = []

    async def send(self, tenant_id: str, conversation_id: str, text: str) -> EntregaDTO:
        self.sent.append((tenant_id, conversation_id, text))
        if self.fail:
            raise RuntimeError("timeout")
        if not self.ok:
            return EntregaDTO(ok=False, error_code="500", error_detail="boom")
        return EntregaDTO(ok=True, provider_message_id="out-1")


class FakeMedia:
    def __init__(self, transcript: str = "", description: str = "", fail: bool = False):
        self.transcript = transcript
        self.description = description
        self.fail = fail

    async def transcribe(self, media_url: str) -> str:
        if self.fail:
            raise RuntimeError("stt down")
        return self.transcript

    async def describe(self, media_url: str) -> str:
        if self.fail:
            raise RuntimeError("vision down")
        return self.description


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url="sqlite://",
        aimotive_api_url="https://api.aimotive.test",
        aimotive_api_key="test-key",
        litellm_base_url="https://llm.test/v1",
    )


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def catalog_entries() -> List[CatalogEntry]:
    return [
        CatalogEntry(id=100121, canonical_name="Pastillas de freno", embedding=[1.0, 0.0, 0.0]),
        CatalogEntry(id=100199, canonical_name="Discos de freno", embedding=[0.8, 0.6, 0.0]),
        CatalogEntry(id=100391, canonical_name="Filtro de aceite", embedding=[0.0, 1.0, 0.0]),
        CatalogEntry(id=100415, canonical_name="Escobillas", embedding=[0.0, 0.0, 1.0]),
    ]


@pytest.fixture
def text_payload() -> Dict[str, Any]:
    return {
        "event": "message.received",
        "instance": TENANT,
        "conversation": CONVERSATION,
        "from": {"id": SENDER},
        "message": {"id": "3EB0TEXT01", "type": "text", "data": {"body": "pastillas de freno para 1234 BCD"}},
    }


@pytest.fixture
def raw_products() -> List[Dict[str, Any]]:
    return [
        {"ref": "P-100", "name": "Pastillas delanteras", "brandCode": "BRM", "brandName": "Brembo",
         "isAvailable": False, "price": 100, "turnover": 9},
        {"ref": "P-010", "name": "Pastillas delanteras eco", "brandCode": "FER", "brandName": "Ferodo",
         "isAvailable": False, "price": 10, "turnover": 5},
        {"ref": "P-008", "name": "Pastillas delanteras TRW", "brandCode": "TRW", "brandName": "TRW",
         "isAvailable": True, "price": 8, "turnover": 5,
         "warehouses": [{"code": "MAD", "name": "Madrid", "stock": 4, "isExternal": False}]},
    ]


def json_key_payload(payload: Dict[str, Any]) -> Dict[str, str]:
    """JSON inteiro como chave de form-encoding, valor vazio."""
    return {json.dumps(payload): ""}
