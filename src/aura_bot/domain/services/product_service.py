
"""Produtos por veículo/família: coerção do payload, normalização por família e vencedor."""
from __future__ import annotations
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence
from pydantic import ValidationError
from ...core.errors import CollaboratorError
from ...core.logging import get_logger
from ...domain.models import Product, Warehouse
from ...ports.interfaces import VehicleDirectory

log = get_logger()

MAX_ALTERNATIVES = 4

@dataclass
class FamilySplit:
    primary: List[Product]
    related: List[Product] = field(default_factory=list)

@dataclass
class WinnerSelection:
    winner: Optional[Product]
    alternatives: List[Product] = field(default_factory=list)

FamilyRule = Callable[[List[Product], str], FamilySplit]

# Registro id de família -> regra. Sem regra: passthrough.
FAMILY_RULES: Dict[int, FamilyRule] = {}

def register_family_rule(*family_ids: int) -> Callable[[FamilyRule], FamilyRule]:
    """Decorator para registrar uma regra de pós-processamento para uma ou mais famílias."""
    def deco(rule: FamilyRule) -> FamilyRule:
        for fid in family_ids:
            FAMILY_RULES[fid] = rule
        return rule
    return deco

def normalize_by_family(family_id: Optional[int], products: Sequence[Product], user_text: str = "",
                        rules: Dict[int, FamilyRule] | None = None) -> FamilySplit:
    registry = FAMILY_RULES if rules is None else rules
    rule = registry.get(family_id) if family_id is not None else None
    if rule is None:
        return FamilySplit(primary=list(products), related=[])
    return rule(list(products), user_text)

def _as_number(v: Any) -> Optional[float]:
    if isinstance(v, bool):
        return None
    try:
        n = float(v)
    except (TypeError, ValueError):
        return None
    return n if math.isfinite(n) else None

def _as_bool(v: Any) -> Optional[bool]:
    return v if isinstance(v, bool) else None

def _opt_str(v: Any) -> Optional[str]:
    return str(v) if v is not None else None

def parse_products(raw: Any) -> List[Product]:
    """Converte a resposta bruta em ``Product``; descarta itens sem ref ou nome.

    Desconhecido continua ``None`` (não vira ``False``/``0``).
    """
    if not isinstance(raw, list):
        raise CollaboratorError("aimotive", "productsByVehicle: resposta inesperada (não array)")
    products: List[Product] = []
    for p in raw:
        if not isinstance(p, dict):
            continue
        ref = str(p.get("ref") or "").strip()
        name = str(p.get("name") or "").strip()
        if not ref or not name:
            continue
        warehouses = None
        if isinstance(p.get("warehouses"), list):
            warehouses = [
                Warehouse(
                    code=str(w.get("code") or ""),
                    name=str(w.get("name") or ""),
                    stock=_as_number(w.get("stock")) or 0,
                    is_external=_as_bool(w.get("isExternal")),
                )
                for w in p["warehouses"] if isinstance(w, dict)
            ]
        try:
            products.append(Product(
                ref=ref,
                commercial_ref=_opt_str(p.get("commercialRef")),
                name=name,
                brand_code=_opt_str(p.get("brandCode")),
                brand_name=_opt_str(p.get("brandName")),
                is_available=_as_bool(p.get("isAvailable")),
                price=_as_number(p.get("price")),
                taxes=_as_number(p.get("taxes")),
                discount=_as_number(p.get("discount")),
                vat=_as_number(p.get("vat")),
                turnover=_as_number(p.get("turnover")),
                warehouses=warehouses,
            ))
        except ValidationError as exc:
            log.warning("product_discarded", ref=ref, error=str(exc))
    return products

def _sort_key(p: Product) -> tuple[float, float]:
    turnover = p.turnover if p.turnover is not None else 0.0
    price = p.price if p.price is not None else math.inf
    return (-turnover, price)

def sort_candidates(products: Sequence[Product]) -> List[Product]:
    """Giro (turnover) decrescente; empate por preço crescente (sem preço vai para o fim)."""
    return sorted(products, key=_sort_key)

def select_winner(products: Sequence[Product]) -> WinnerSelection:
    """Vencedor = primeiro disponível na ordem; senão o primeiro da ordem. Até 4 alternativas."""
    parts = sort_candidates(products)
    if not parts:
        return WinnerSelection(winner=None, alternatives=[])
    winner = next((p for p in parts if p.is_available is True), parts[0])
    alternatives = [p for p in parts if not p.same_identity(winner)][:MAX_ALTERNATIVES]
    return WinnerSelection(winner=winner, alternatives=alternatives)

def top_stock(product: Product, limit: int = 3) -> Optional[str]:
    """Resumo de estoque dos maiores armazéns (para log)."""
    if not product.warehouses:
        return None
    ranked = sorted(product.warehouses, key=lambda w: w.stock, reverse=True)[:limit]
    return " | ".join(f"{w.name or w.code}:{w.stock:g}" for w in ranked)

async def fetch_products(directory: VehicleDirectory, vehicle_id: int, family_id: int) -> List[Product]:
    return parse_products(await directory.products_by_vehicle(vehicle_id, family_id))
