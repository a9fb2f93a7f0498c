
"""Adapter da API Aimotive: envio de mensagens e diretório de veículos/produtos."""
from __future__ import annotations
import re
from typing import Any, Dict, List
from urllib.parse import quote
import httpx
from kink import di
from ...core.errors import CollaboratorError
from ...core.settings import Settings
from ...ports.interfaces import EntregaDTO

DEVICE_SUFFIX = re.compile(r":\d+(?=@)")

def normalize_conversation_id(conversation_id: str) -> str:
    """Remove o sufixo numérico de dispositivo (``:12``) antes do ``@``."""
    return DEVICE_SUFFIX.sub("", conversation_id)

class AimotiveAdapter:
    """Adapter para a API Aimotive (mensageria + diretório)."""
    def __init__(self, settings: Settings | None = None, transport: httpx.AsyncBaseTransport | None = None):
        self.s = settings or di[Settings]
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.s.aimotive_api_url,
            timeout=self.s.aimotive_timeout_s,
            headers={"Content-Type": "application/json", "Authorization": f"Bearer {self.s.aimotive_api_key}"},
            transport=self.transport,
        )

    async def _get_json(self, path: str, params: Dict[str, Any] | None = None) -> Any:
        async with self._client() as cli:
            r = await cli.get(path, params=params)
        if r.status_code // 100 != 2:
            raise CollaboratorError("aimotive", f"GET {path} -> {r.status_code}", status_code=r.status_code)
        return r.json()

    # --- Diretório ---
    async def search_by_plate(self, plate: str) -> Dict[str, Any]:
        data = await self._get_json(f"/v1/vehicles/plate/{quote(plate, safe='')}")
        if not isinstance(data, dict):
            raise CollaboratorError("aimotive", "searchByPlate: resposta inesperada (não objeto)")
        return data

    async def products_by_vehicle(self, vehicle_id: int, family_id: int) -> List[Dict[str, Any]]:
        data = await self._get_json("/v1/products/by-vehicle", params={"vehicleId": vehicle_id, "familyId": family_id})
        if isinstance(data, dict) and isinstance(data.get("products"), list):
            data = data["products"]
        if not isinstance(data, list):
            raise CollaboratorError("aimotive", "productsByVehicle: resposta inesperada (não array)")
        return data

    # --- Egress ---
    async def send(self, tenant_id: str, conversation_id: str, text: str) -> EntregaDTO:
        """Envia mensagem de texto para a conversa (id já sem sufixo de dispositivo)."""
        path = f"/v1/messaging/{tenant_id}/conversation/{conversation_id}"
        async with self._client() as cli:
            r = await cli.put(path, json={"body": text})
        if r.status_code // 100 == 2:
            j = r.json() if "application/json" in r.headers.get("content-type", "") else {}
            provider_id = j.get("id") if isinstance(j, dict) else None
            return EntregaDTO(ok=True, provider_message_id=provider_id)
        j = {}
        if "application/json" in r.headers.get("content-type", ""):
            j = r.json()
        err = j.get("error", {}) if isinstance(j, dict) else {}
        if not isinstance(err, dict):
            err = {"message": str(err)}
        return EntregaDTO(ok=False, error_code=str(err.get("code", r.status_code)), error_detail=err.get("message") or r.text[:200])
