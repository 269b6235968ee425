"""Table rendering utilities."""
from __future__ import annotations

from typing import Iterable, List, Optional, Sequence

import math

from bshrink.metrics.evaluation import PerformanceSummary


def _fmt(value: Optional[float], digits: int) -> str:
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return "NA"
    return f"{value:.{digits}f}"


def summary_rows(summary: PerformanceSummary, digits: int = 4) -> List[List[str]]:
    rows = [["Prior", summary.metric, "Status"]]
    for row in summary.rows:
        rows.append([row.label, _fmt(row.value, digits), row.status])
    return rows


def to_latex_table(rows: Iterable[Sequence[str]]) -> str:
    """Render rows (first row is the header) into a LaTeX tabular environment."""
    rows = [list(r) for r in rows]
    if not rows:
        return ""
    ncol = len(rows[0])
    lines = ["\\begin{tabular}{l" + "r" * (ncol - 1) + "}", "\\hline"]
    for i, row in enumerate(rows):
        cells = [c.replace("_", "\\_").replace("%", "\\%") for c in row]
        lines.append(" & ".join(cells) + " \\\\")
        if i == 0:
            lines.append("\\hline")
    lines.append("\\hline")
    lines.append("\\end{tabular}")
    return "\n".join(lines)


def to_markdown_table(rows: Iterable[Sequence[str]]) -> str:
    rows = [list(r) for r in rows]
    if not rows:
        return ""
    widths = [max(len(r[i]) for r in rows) for i in range(len(rows[0]))]
    def _line(row: Sequence[str]) -> str:
        return "| " + " | ".join(cell.ljust(w) for cell, w in zip(row, widths)) + " |"
    out = [_line(rows[0]), "|" + "|".join("-" * (w + 2) for w in widths) + "|"]
    out.extend(_line(r) for r in rows[1:])
    return "\n".join(out)
