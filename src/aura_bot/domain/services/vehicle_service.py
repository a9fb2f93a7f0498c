
"""Resolução de veículo por matrícula (ES) com cache na sessão."""
from __future__ import annotations
import re
import unicodedata
from typing import Any, Optional
from ...core.logging import get_logger
from ...domain.models import Session, VehicleRecord
from ...ports.interfaces import VehicleDirectory

log = get_logger()

# Matrícula atual (1234 BCD) e provincial antiga (M 1234 AB / GR 1234 B)
PLATE_PATTERNS = (
    re.compile(r"\b\d{4}\s*[a-z]{3}\b"),
    re.compile(r"\b[a-z]{1,2}\s*\d{4}\s*[a-z]{0,2}\b"),
)

def normalize_text(s: str) -> str:
    """Remove diacríticos (NFD) e passa para minúsculas."""
    decomposed = unicodedata.normalize("NFD", str(s or ""))
    return "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn").lower()

def extract_plate(raw: str) -> Optional[str]:
    """Extrai a primeira matrícula reconhecida, em maiúsculas e sem espaços."""
    t = normalize_text(raw)
    for pattern in PLATE_PATTERNS:
        m = pattern.search(t)
        if m:
            return re.sub(r"\s+", "", m.group(0)).upper()
    return None

def _vehicle_id(data: dict[str, Any]) -> int | str | None:
    vehicles = data.get("vehicles")
    if isinstance(vehicles, list) and vehicles and isinstance(vehicles[0], dict):
        first = vehicles[0]
        return first.get("id") if first.get("id") is not None else first.get("vehicleId")
    return None

class VehicleResolver:
    def __init__(self, directory: VehicleDirectory):
        self.directory = directory

    async def maybe_resolve(self, text: str, session: Session) -> None:
        """Se houver matrícula nova no texto, consulta o diretório e cacheia na sessão."""
        plate = extract_plate(text)
        if not plate:
            return
        if session.vehicle is not None and session.vehicle.plate == plate:
            return
        try:
            data = await self.directory.search_by_plate(plate)
            vehicles = data.get("vehicles") if isinstance(data.get("vehicles"), list) else []
            vehicle_id = _vehicle_id(data)
            session.vehicle = VehicleRecord(
                plate=str(data.get("plate") or plate).upper().replace(" ", ""),
                vin=data.get("vin"),
                brand=data.get("brand"),
                model=data.get("model"),
                fuel=data.get("fuel"),
                registration_date=data.get("registrationDate"),
                vehicle_id=vehicle_id,
                vehicles=[v for v in vehicles if isinstance(v, dict)],
            )
            log.info("vehicle_cached", plate=plate, vehicle_id=vehicle_id)
        except Exception as exc:
            log.error("vehicle_lookup_failed", plate=plate, error=str(exc))
