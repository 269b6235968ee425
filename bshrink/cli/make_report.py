"""Render Markdown reports from the summary.json of finished pipeline runs."""
from __future__ import annotations

import argparse
from pathlib import Path
from typing import Dict, List

from bshrink.experiments.pipeline import summaries_table
from bshrink.metrics.evaluation import PerformanceSummary
from bshrink.utils.io import ensure_dir, load_json
from bshrink.viz.tables import summary_rows, to_latex_table


def parse_args(argv: List[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="bshrink-report", description="Summarize shrinkage-prior pipeline runs")
    parser.add_argument("--runs-dir", type=Path, default=Path("outputs/runs"),
                        help="Folder scanned for runs when --run is not given")
    parser.add_argument("--run", type=Path, action="append",
                        help="Run folder to report on (repeatable)")
    parser.add_argument("--all", action="store_true",
                        help="Report on every finished run under --runs-dir, not only the newest")
    parser.add_argument("--dest", type=Path, default=Path("outputs/reports"),
                        help="Folder receiving <run>_report.md files")
    return parser.parse_args(argv)


def _select_runs(explicit: List[Path] | None, runs_dir: Path, every: bool = False) -> List[Path]:
    if explicit:
        return [(run if run.is_absolute() else Path.cwd() / run).resolve() for run in explicit]
    if not runs_dir.is_dir():
        return []
    finished = [p for p in runs_dir.iterdir() if (p / "summary.json").is_file()]
    finished.sort(key=lambda p: p.stat().st_mtime, reverse=True)
    return finished if every else finished[:1]


def load_summaries(run_dir: Path) -> Dict[str, PerformanceSummary]:
    payload = load_json(run_dir / "summary.json")
    if not payload:
        raise FileNotFoundError(f"No summary.json in {run_dir}")
    return {name: PerformanceSummary.from_dict(entry) for name, entry in payload.items()}


def render_report(run_dir: Path, summaries: Dict[str, PerformanceSummary]) -> str:
    lines = [f"# Shrinkage prior comparison: {run_dir.name}", "", summaries_table(summaries), ""]
    for name, summary in summaries.items():
        lines.append(f"## {name}")
        lines.append("")
        lines.append("```latex")
        lines.append(to_latex_table(summary_rows(summary)))
        lines.append("```")
        notes = [f"- {row.label}: {row.message}" for row in summary.rows if row.message]
        if notes:
            lines.append("")
            lines.extend(notes)
        lines.append("")
    return "\n".join(lines)


def main(argv: List[str] | None = None) -> int:
    args = parse_args(argv)
    ensure_dir(args.dest)

    runs = _select_runs(args.run, args.runs_dir, every=args.all)
    if not runs:
        raise SystemExit("No runs found to summarize. Provide --run or populate outputs/runs.")

    for run_dir in runs:
        summaries = load_summaries(run_dir)
        out_file = args.dest / f"{run_dir.name}_report.md"
        out_file.write_text(render_report(run_dir, summaries), encoding="utf-8")
        print(summaries_table(summaries))
        print(f"[OK] Report written to {out_file}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
