
"""Job: gera embeddings dos canonical_name do catálogo e grava em flattenTree_embeddings."""
from __future__ import annotations
import argparse
import asyncio
from typing import List, Sequence, Tuple
from ..core.db import create_session_factory
from ..core.llm_client import LLMClient
from ..core.logging import configure_logging, get_logger
from ..core.settings import Settings
from ..repo.catalog_repo import list_canonical_names, upsert_embeddings

log = get_logger()

def batched(rows: Sequence[Tuple[int, str]], size: int) -> List[Sequence[Tuple[int, str]]]:
    size = max(size, 1)
    return [rows[i:i + size] for i in range(0, len(rows), size)]

async def build_embeddings(llm: LLMClient, session_factory, model: str, batch_size: int = 64) -> int:
    """Embeda todas as famílias em lotes; retorna o total gravado."""
    rows = await asyncio.to_thread(list_canonical_names, session_factory)
    log.info("embeddings_build_start", rows=len(rows), batch=batch_size, model=model)
    done = 0
    for chunk in batched(rows, batch_size):
        vectors = await llm.embed_many([name for _, name in chunk])
        items = [(fid, vec) for (fid, _), vec in zip(chunk, vectors)]
        done += await asyncio.to_thread(upsert_embeddings, items, model, session_factory)
        log.info("embeddings_build_progress", done=done, total=len(rows))
    return done

def main(argv: Sequence[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Gera embeddings das famílias do catálogo (flattenTree)")
    parser.add_argument("--batch", type=int, default=64, help="Tamanho do lote enviado ao gateway")
    args = parser.parse_args(argv)

    settings = Settings()
    configure_logging(settings.log_level)
    session_factory = create_session_factory(settings.database_url)
    total = asyncio.run(build_embeddings(LLMClient(settings), session_factory, settings.embeddings_model, args.batch))
    log.info("embeddings_build_done", total=total)

if __name__ == "__main__":
    main()
