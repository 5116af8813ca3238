import csv
from types import MappingProxyType

import pytest

from fanout_bench import report
from fanout_bench.config import HarnessConfig
from fanout_bench.stats import CounterKind, StatusReport


@pytest.fixture()
def status():
    samples = {kind: (10 * (i + 1), 0, 5) for i, kind in enumerate(CounterKind)}
    return StatusReport(
        totals=MappingProxyType({kind: sum(v) for kind, v in samples.items()}),
        connections=3,
        samples=MappingProxyType(samples),
        memory=MappingProxyType({"memory_used": 1024, "memory_high_water": 2048}),
    )


def test_summarize_per_kind(status):
    summaries = report.summarize(status)
    assert [s.kind for s in summaries] == list(CounterKind)
    first = summaries[0]
    assert first.total == 15
    assert first.mean == pytest.approx(5.0)
    assert first.max == 10
    assert 5 <= first.p99 <= 10


def test_summarize_without_connections():
    empty = StatusReport(totals={kind: 0 for kind in CounterKind}, connections=0)
    assert all(s.mean == 0.0 and s.max == 0 for s in report.summarize(empty))


def test_format_report_lists_each_kind_once(status):
    lines = report.format_report(status)
    for kind in CounterKind:
        assert sum(kind.name in line for line in lines) == 1
    assert "3 connections" in lines[0]
    assert any("memory_used" in line for line in lines)


def test_write_artifacts_with_chart(tmp_path, status):
    config = HarnessConfig(instances=1, write_rows=10, readers=2, artifacts_dir=str(tmp_path))
    paths = report.write_artifacts(status, config, 1.25)
    assert paths.summary.exists()
    assert paths.chart is not None and paths.chart.stat().st_size > 0
    text = paths.summary.read_text(encoding="utf-8")
    assert "Provisioning seconds: 1.25" in text
    assert "CACHE_SPILL" in text
    with paths.samples.open(encoding="utf-8") as fh:
        rows = list(csv.reader(fh))
    assert rows[0] == ["connection", "kind", "current"]
    assert len(rows) == 1 + 3 * len(CounterKind)


def test_write_artifacts_without_chart(tmp_path, status):
    config = HarnessConfig(plot=False, artifacts_dir=str(tmp_path / "nested"))
    paths = report.write_artifacts(status, config, 0.0)
    assert paths.chart is None
    assert sorted(p.suffix for p in (tmp_path / "nested").iterdir()) == [".csv", ".log"]
