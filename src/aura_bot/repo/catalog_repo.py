
"""Repositório do catálogo: leitura de famílias com embedding e upsert de vetores."""
from __future__ import annotations
import json
from typing import Any, Iterable, List, Tuple
from sqlalchemy import select
from kink import di
from ..domain.models import CatalogEntry
from ..repo.models import FamilyNode, FamilyEmbedding
from ..core.logging import get_logger

log = get_logger()

def parse_embedding(value: Any) -> List[float]:
    """Converte o valor bruto da coluna (lista, bytes, str JSON) em lista de floats."""
    if value is None:
        raise ValueError("embedding_json is null")
    if isinstance(value, (bytes, bytearray, memoryview)):
        value = bytes(value).decode("utf-8")
    if isinstance(value, str):
        value = json.loads(value.strip())
    if not isinstance(value, (list, tuple)):
        raise ValueError(f"embedding_json não é array: {type(value).__name__}")
    try:
        return [float(x) for x in value]
    except TypeError as exc:
        raise ValueError(f"embedding_json com elemento não numérico: {exc}") from exc

def load_catalog_entries(session_factory=None) -> List[CatalogEntry]:
    """Lê todas as famílias com embedding (JOIN flattenTree x flattenTree_embeddings)."""
    Session = session_factory or di["session_factory"]
    with Session() as s:
        rows = s.execute(
            select(FamilyNode.id, FamilyNode.canonical_name, FamilyEmbedding.embedding_json)
            .join(FamilyEmbedding, FamilyEmbedding.id == FamilyNode.id)
            .order_by(FamilyNode.id)
        ).all()
    entries: List[CatalogEntry] = []
    skipped = 0
    for fid, name, emb in rows:
        try:
            entries.append(CatalogEntry(id=int(fid), canonical_name=str(name or ""), embedding=parse_embedding(emb)))
        except ValueError:
            skipped += 1
    log.info("catalog_rows_loaded", count=len(entries), skipped=skipped)
    return entries

def list_canonical_names(session_factory=None) -> List[Tuple[int, str]]:
    """Famílias com canonical_name não vazio (entrada do job de embeddings)."""
    Session = session_factory or di["session_factory"]
    with Session() as s:
        rows = s.execute(
            select(FamilyNode.id, FamilyNode.canonical_name)
            .where(FamilyNode.canonical_name.is_not(None), FamilyNode.canonical_name != "")
            .order_by(FamilyNode.id)
        ).all()
    return [(int(fid), str(name)) for fid, name in rows]

def upsert_embeddings(items: Iterable[Tuple[int, List[float]]], model: str, session_factory=None) -> int:
    """Insere ou atualiza vetores por id de família. Retorna quantos foram gravados."""
    Session = session_factory or di["session_factory"]
    count = 0
    with Session() as s, s.begin():
        for fid, vector in items:
            row = s.get(FamilyEmbedding, fid)
            if row is None:
                row = FamilyEmbedding(id=fid)
                s.add(row)
            row.model = model
            row.dims = len(vector)
            row.embedding_json = json.dumps(vector)
            count += 1
    log.info("catalog_embeddings_upserted", count=count, model=model)
    return count
