
"""Job de avaliação: acurácia top-1 e hit top-K do match de famílias a partir da planilha de testes.

Entrada: workbook XLSX (aba padrão ``Full 2``) com colunas ``Test ID``, ``Input`` e
``Lo que debe responder Aura`` (id da família esperada).
Saída: relatório ``eval-family-match.report.top{K}.csv`` + métricas no log.
"""
from __future__ import annotations
import argparse
import asyncio
import csv
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional, Sequence
from openpyxl import load_workbook
from ..core.db import create_session_factory
from ..core.di import make_catalog_loader
from ..core.llm_client import LLMClient
from ..core.logging import configure_logging, get_logger
from ..core.settings import Settings
from ..domain.services.catalog_service import CatalogCache, CatalogMatcher

log = get_logger()

DEFAULT_WORKBOOK = "Test Evals Aura Originales.xlsx"
DEFAULT_SHEET = "Full 2"
COL_TEST_ID = "Test ID"
COL_INPUT = "Input"
COL_EXPECTED = "Lo que debe responder Aura"

@dataclass
class EvalCase:
    test_id: str
    input: str
    expected: int

@dataclass
class EvalRow:
    case: EvalCase
    predicted: Optional[int]
    score: Optional[float]
    topk_hit: bool

    @property
    def ok(self) -> bool:
        return self.predicted == self.case.expected

@dataclass
class EvalSummary:
    total: int
    top1_acc: float
    topk_hit: float

def _cell_str(v: Any) -> str:
    return "" if v is None else str(v).strip()

def _family_id(v: Any) -> Optional[int]:
    """Id numérico da célula (int, float inteiro ou texto); senão ``None``."""
    if isinstance(v, bool):
        return None
    try:
        n = float(_cell_str(v))
    except ValueError:
        return None
    return int(n) if math.isfinite(n) and n.is_integer() else None

def load_cases(path: Path, sheet: str = DEFAULT_SHEET) -> List[EvalCase]:
    """Lê casos válidos da aba (id, texto e família esperada numérica)."""
    wb = load_workbook(filename=str(path), read_only=True, data_only=True)
    try:
        if sheet not in wb.sheetnames:
            raise ValueError(f'No existe la hoja "{sheet}" en {path}')
        rows = wb[sheet].iter_rows(values_only=True)
        header = [_cell_str(c) for c in next(rows, ())]
        cols = {name: header.index(name) for name in (COL_TEST_ID, COL_INPUT, COL_EXPECTED) if name in header}

        def cell(row: Sequence[Any], name: str) -> Any:
            i = cols.get(name)
            return row[i] if i is not None and i < len(row) else None

        cases: List[EvalCase] = []
        for row in rows:
            test_id = _cell_str(cell(row, COL_TEST_ID))
            text = _cell_str(cell(row, COL_INPUT))
            expected = _family_id(cell(row, COL_EXPECTED))
            if test_id and text and expected is not None:
                cases.append(EvalCase(test_id=test_id, input=text, expected=expected))
    finally:
        wb.close()
    return cases

async def evaluate(matcher: CatalogMatcher, cases: Sequence[EvalCase], top_k: int) -> List[EvalRow]:
    rows: List[EvalRow] = []
    for case in cases:
        matches = await matcher.match(case.input, top_k)
        best = matches[0] if matches else None
        row = EvalRow(
            case=case,
            predicted=best.id if best else None,
            score=best.score if best else None,
            topk_hit=any(m.id == case.expected for m in matches),
        )
        log.info("eval_case", test_id=case.test_id, expected=case.expected, predicted=row.predicted,
                 score=round(row.score, 3) if row.score is not None else None, ok=row.ok)
        rows.append(row)
    return rows

def summarize(rows: Sequence[EvalRow]) -> EvalSummary:
    total = len(rows)
    if not total:
        return EvalSummary(total=0, top1_acc=0.0, topk_hit=0.0)
    return EvalSummary(
        total=total,
        top1_acc=sum(r.ok for r in rows) / total,
        topk_hit=sum(r.topk_hit for r in rows) / total,
    )

def write_report(rows: Sequence[EvalRow], out: Path) -> None:
    with out.open("w", newline="", encoding="utf-8") as f:
        w = csv.writer(f)
        w.writerow(["testId", "expected", "predicted", "score", "topkHit", "ok", "input"])
        for r in rows:
            w.writerow([
                r.case.test_id, r.case.expected,
                "" if r.predicted is None else r.predicted,
                "" if r.score is None else r.score,
                int(r.topk_hit), int(r.ok), r.case.input,
            ])

def main(argv: Sequence[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Avalia o match de famílias por embedding")
    parser.add_argument("xlsx_path", type=Path, nargs="?", default=Path.cwd() / DEFAULT_WORKBOOK,
                        help="Planilha com Test ID / Input / Lo que debe responder Aura")
    parser.add_argument("--sheet", default=DEFAULT_SHEET)
    parser.add_argument("--topk", type=int, default=5)
    parser.add_argument("--out-dir", type=Path, default=Path.cwd())
    args = parser.parse_args(argv)
    if not args.xlsx_path.exists():
        parser.error(f"arquivo não existe: {args.xlsx_path}")
    try:
        cases = load_cases(args.xlsx_path, args.sheet)
    except ValueError as exc:
        parser.error(str(exc))

    settings = Settings()
    configure_logging(settings.log_level)
    llm = LLMClient(settings)
    cache = CatalogCache(make_catalog_loader(create_session_factory(settings.database_url), settings.catalog_load_timeout_s))
    matcher = CatalogMatcher(cache, llm)

    log.info("eval_loaded", rows=len(cases), sheet=args.sheet, topk=args.topk)
    rows = asyncio.run(evaluate(matcher, cases, args.topk))
    summary = summarize(rows)
    out = args.out_dir / f"eval-family-match.report.top{args.topk}.csv"
    write_report(rows, out)
    log.info("eval_done", total=summary.total, top1_acc=round(summary.top1_acc, 3),
             topk_hit=round(summary.topk_hit, 3), report=str(out))

if __name__ == "__main__":
    main()
