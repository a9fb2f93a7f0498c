import csv

import pytest
from openpyxl import Workbook

from aura_bot.domain.services.catalog_service import CatalogCache, CatalogMatcher
from aura_bot.tasks.eval_family_match import EvalCase, evaluate, load_cases, summarize, write_report

from conftest import FakeEmbedder


def _workbook(path, sheet="Full 2"):
    wb = Workbook()
    ws = wb.active
    ws.title = sheet
    ws.append(["Test ID", "Notas", "Input", "Lo que debe responder Aura"])
    ws.append(["t1", "", "pastillas de freno", 100121])
    ws.append(["t2", "sin input", None, 100121])
    ws.append(["t3", "", "filtro", "abc"])
    ws.append(["t4", "", " filtro de aceite ", "100391"])
    ws.append(["t5", "", "discos", 100199.0])
    ws.append([None, "", "sin id", 100121])
    other = wb.create_sheet("Otra")
    other.append(["Test ID", "Input", "Lo que debe responder Aura"])
    other.append(["x1", "escobillas", 100415])
    wb.save(path)
    return path


def test_load_cases_reads_sheet_and_skips_invalid_rows(tmp_path):
    path = _workbook(tmp_path / "evals.xlsx")
    cases = load_cases(path)
    assert [(c.test_id, c.input, c.expected) for c in cases] == [
        ("t1", "pastillas de freno", 100121),
        ("t4", "filtro de aceite", 100391),
        ("t5", "discos", 100199),
    ]
    assert [c.test_id for c in load_cases(path, sheet="Otra")] == ["x1"]


def test_load_cases_missing_sheet(tmp_path):
    path = _workbook(tmp_path / "evals.xlsx", sheet="Full 1")
    with pytest.raises(ValueError, match="Full 2"):
        load_cases(path)


@pytest.mark.asyncio
async def test_evaluate_and_report(tmp_path, catalog_entries, clock):
    async def loader():
        return catalog_entries

    embedder = FakeEmbedder({"freno": [1.0, 0.0, 0.0], "aceite": [0.0, 1.0, 0.0]})
    matcher = CatalogMatcher(CatalogCache(loader, clock=clock), embedder)
    cases = [
        EvalCase("t1", "pastillas de freno", 100121),
        EvalCase("t2", "discos de freno", 100199),
        EvalCase("t3", "filtro de aceite", 100391),
    ]

    rows = await evaluate(matcher, cases, top_k=2)
    summary = summarize(rows)

    assert [r.ok for r in rows] == [True, False, True]
    assert all(r.topk_hit for r in rows)
    assert summary.total == 3
    assert summary.top1_acc == pytest.approx(2 / 3)
    assert summary.topk_hit == 1.0

    out = tmp_path / "report.csv"
    write_report(rows, out)
    with out.open(encoding="utf-8") as f:
        lines = list(csv.reader(f))
    assert lines[0] == ["testId", "expected", "predicted", "score", "topkHit", "ok", "input"]
    assert lines[2][:3] == ["t2", "100199", "100121"]


def test_summarize_empty():
    summary = summarize([])
    assert (summary.total, summary.top1_acc, summary.topk_hit) == (0, 0.0, 0.0)
