"""Render a StatusReport: log lines, text summary, CSV samples and a bar chart."""

from __future__ import annotations

import csv
import logging
import os
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
import seaborn as sns
from matplotlib.ticker import FuncFormatter

from .config import HarnessConfig
from .lifecycle import CloseBundle
from .stats import CounterKind, StatusReport

sns.set_theme(style="whitegrid")
plt.rcParams.update({
    "axes.titlesize": 14,
    "axes.labelsize": 12,
    "xtick.labelsize": 10,
    "ytick.labelsize": 10,
})

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KindSummary:
    kind: CounterKind
    total: int
    mean: float
    p99: float
    max: int


@dataclass(frozen=True)
class ArtifactPaths:
    summary: Path
    samples: Path
    chart: Optional[Path] = None


def summarize(report: StatusReport) -> List[KindSummary]:
    out: List[KindSummary] = []
    for kind in CounterKind:
        values = np.asarray(report.samples.get(kind, ()), dtype=np.int64)
        if values.size:
            mean = float(np.mean(values))
            p99 = float(np.percentile(values, 99))
            peak = int(values.max())
        else:
            mean = p99 = 0.0
            peak = 0
        out.append(KindSummary(kind=kind, total=report.totals[kind], mean=mean, p99=p99, max=peak))
    return out


def format_report(report: StatusReport) -> List[str]:
    lines = [f"sqlite: all connections aggregated statuses ({report.connections} connections):"]
    for kind, total in report.items():
        lines.append(f"  {kind.name:>15}: {total:>14,}")
    for key, value in report.memory.items():
        lines.append(f"  {key:>15}: {value:>14,}")
    return lines


def log_report(report: StatusReport) -> None:
    for line in format_report(report):
        logger.info("%s", line)


def log_instance_summaries(bundles: Sequence[CloseBundle]) -> None:
    if not bundles:
        return
    logger.info("Instance summaries:")
    for idx, bundle in enumerate(bundles, start=1):
        c = bundle.counters
        logger.info(
            "  instance %02d %s: written=%s (%.1f rows/s) readers=%d scanned=%s write=%.2fs read=%.2fs",
            idx,
            bundle.location,
            f"{c.rows_written:,}",
            c.rows_per_sec,
            c.readers,
            f"{c.rows_scanned:,}",
            c.write_seconds,
            c.read_seconds,
        )


def write_samples_csv(report: StatusReport, csv_path: Path) -> None:
    csv_path.parent.mkdir(parents=True, exist_ok=True)
    with csv_path.open("w", newline="", encoding="utf-8") as f:
        w = csv.writer(f)
        w.writerow(["connection", "kind", "current"])
        for kind in CounterKind:
            for idx, value in enumerate(report.samples.get(kind, ())):
                w.writerow([idx, kind.name, value])


def plot_status_report(report: StatusReport, out_path: Path) -> None:
    summaries = summarize(report)
    names = [s.kind.name for s in summaries]
    totals = [s.total for s in summaries]
    means = [s.mean for s in summaries]

    fig, axes = plt.subplots(1, 2, figsize=(11, 4.5))
    palette = sns.color_palette("tab10", len(names))
    axes[0].bar(names, totals, color=palette)
    axes[0].set_title(f"Total over {report.connections} connections")
    axes[0].set_ylabel("Bytes / pages")
    axes[1].bar(names, means, color=palette)
    axes[1].set_title("Mean per connection")
    for ax in axes:
        ax.yaxis.set_major_formatter(FuncFormatter(lambda v, _pos: f"{v:,.0f}"))
        ax.tick_params(axis="x", rotation=30)
        ax.grid(True, linestyle="--", alpha=0.3)
    fig.suptitle("SQLite per-connection status counters")
    fig.tight_layout(rect=[0, 0.03, 1, 0.95])
    os.makedirs(os.path.dirname(out_path) or ".", exist_ok=True)
    fig.savefig(out_path, dpi=150)
    plt.close(fig)


def write_artifacts(
    report: StatusReport,
    config: HarnessConfig,
    runtime_seconds: float,
    out_dir: Optional[Path] = None,
) -> ArtifactPaths:
    out_dir = Path(out_dir or config.artifacts_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")

    summary_path = out_dir / f"run_{timestamp}.log"
    with summary_path.open("w", encoding="utf-8") as fh:
        fh.write(f"Instances: {config.instances}\n")
        fh.write(f"Rows per instance: {config.write_rows}\n")
        fh.write(f"Readers per instance: {config.readers}\n")
        fh.write(f"Batch size: {config.batch_size}\n")
        fh.write(f"String length: [{config.min_len}, {config.max_len})\n")
        if config.page_cache_bytes:
            fh.write(f"Page cache budget: {config.page_cache_bytes}\n")
        fh.write(f"Provisioning seconds: {runtime_seconds:.2f}\n")
        fh.write("Status summary (total / mean / p99 / max):\n")
        for s in summarize(report):
            fh.write(f"  {s.kind.name}: {s.total} / {s.mean:.1f} / {s.p99:.1f} / {s.max}\n")
        for key, value in report.memory.items():
            fh.write(f"  {key}: {value}\n")

    samples_path = out_dir / f"status_{timestamp}.csv"
    write_samples_csv(report, samples_path)

    chart_path: Optional[Path] = None
    if config.plot:
        chart_path = out_dir / f"status_{timestamp}.png"
        plot_status_report(report, chart_path)

    logger.info("Summary written to %s", summary_path)
    return ArtifactPaths(summary=summary_path, samples=samples_path, chart=chart_path)
