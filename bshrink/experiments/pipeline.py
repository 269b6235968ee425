"""
Experiment orchestration for shrinkage-prior comparisons.

For every configured outcome the pipeline runs, strictly in sequence:

* table loading and sample alignment (``data.loaders``),
* response selection, outcome transform and standardisation (``data.preprocess``),
* one fit per prior with identical sampler settings and seed,
* outcome-specific scoring into a :class:`PerformanceSummary`,
* top-coefficient diagnostics and plots for the priors that fitted.

Loading and preprocessing failures abort the run. A diverged fit only blanks that
prior's row; an undefined metric is reported as NA.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from data.loaders import load_tables
from data.preprocess import StandardizedDataset, prepare_dataset
from bshrink.diagnostics.report import DiagnosticsReport, build_report
from bshrink.errors import FitDivergence
from bshrink.experiments.fitter import ShrinkagePriorFitter
from bshrink.metrics.evaluation import PerformanceSummary, evaluate_priors
from bshrink.models.oracle import FittingOracle
from bshrink.models.priors import resolve_prior
from bshrink.models.results import PriorFitResult, save_fit
from bshrink.utils.config import OutcomeConfig, PipelineConfig
from bshrink.utils.io import ensure_dir, save_json
from bshrink.utils.logging_utils import get_logger, log_duration, progress
from bshrink.viz.tables import summary_rows, to_latex_table, to_markdown_table

logger = get_logger(__name__)


@dataclass
class OutcomeRun:
    """Everything produced for one outcome type."""

    name: str
    dataset: StandardizedDataset
    fits: Dict[str, PriorFitResult]
    failures: Dict[str, str]
    summary: PerformanceSummary
    report: Optional[DiagnosticsReport] = None
    artifacts: Dict[str, str] = field(default_factory=dict)


@dataclass
class PipelineResult:
    runs: Dict[str, OutcomeRun] = field(default_factory=dict)

    def summaries(self) -> Dict[str, PerformanceSummary]:
        return {name: run.summary for name, run in self.runs.items()}

    def to_dict(self) -> Dict[str, object]:
        return {
            name: {
                **run.summary.to_dict(),
                "n_samples": run.dataset.n_samples,
                "n_features": run.dataset.n_features,
                "response_column": run.dataset.response_column,
                "artifacts": run.artifacts,
            }
            for name, run in self.runs.items()
        }


def resolve_priors(priors: Sequence[str]) -> List[str]:
    keys: List[str] = []
    for prior in priors:
        key = resolve_prior(prior)
        if key in keys:
            raise ValueError(f"Prior '{prior}' listed more than once.")
        keys.append(key)
    if not keys:
        raise ValueError("At least one prior must be configured.")
    return keys


def fit_priors(
    dataset: StandardizedDataset,
    priors: Sequence[str],
    fitter: ShrinkagePriorFitter,
    *,
    show_progress: bool = False,
) -> Tuple[Dict[str, PriorFitResult], Dict[str, str]]:
    """Fit each prior independently; divergences are collected, not raised."""
    fits: Dict[str, PriorFitResult] = {}
    failures: Dict[str, str] = {}
    for prior in progress(priors, total=len(priors), desc=dataset.outcome, enabled=show_progress):
        try:
            fits[prior] = fitter.fit(dataset, prior)
        except FitDivergence as exc:
            logger.warning("Fit diverged for %s/%s: %s", dataset.outcome, prior, exc)
            failures[prior] = str(exc)
    return fits, failures


def prepare_outcome(outcome: OutcomeConfig, config: PipelineConfig, *, base_dir: Optional[Path] = None) -> StandardizedDataset:
    tables = load_tables(outcome.data, base_dir=base_dir)
    return prepare_dataset(
        tables.X,
        tables.Y,
        outcome.outcome,
        response_columns=outcome.response_columns,
        time_column=outcome.time_column,
        event_column=outcome.event_column,
        standardization=config.standardization,
    )


def _write_outcome_artifacts(run: OutcomeRun, config: PipelineConfig, out_dir: Path) -> Dict[str, str]:
    out = ensure_dir(out_dir)
    artifacts: Dict[str, str] = {}

    frame = run.summary.to_frame()
    frame.to_csv(out / "performance.csv")
    rows = summary_rows(run.summary)
    (out / "performance.md").write_text(to_markdown_table(rows) + "\n", encoding="utf-8")
    (out / "performance.tex").write_text(to_latex_table(rows) + "\n", encoding="utf-8")
    artifacts["performance"] = str(out / "performance.csv")

    if config.diagnostics.save_fits:
        for prior, fit in run.fits.items():
            artifacts[f"fit_{prior}"] = str(save_fit(fit, out / "fits" / prior))

    if run.report is not None:
        for name, path in run.report.save(out / "diagnostics").items():
            artifacts[name] = str(path)
        if config.diagnostics.plots:
            from bshrink.viz.diagnostics import save_report_figures

            figures = save_report_figures(run.report, run.fits, out / "plots", max_lag=config.diagnostics.max_lag)
            artifacts.update({f"plot_{k}": str(v) for k, v in figures.items()})

    save_json(
        {
            "outcome": run.dataset.outcome,
            "family": run.dataset.family,
            "response_column": run.dataset.response_column,
            "n_samples": run.dataset.n_samples,
            "n_features": run.dataset.n_features,
            "y_mean": run.dataset.y_mean,
            "failures": run.failures,
            "reference_prior": None if run.report is None else run.report.reference_prior,
            "top_features": [] if run.report is None else run.report.features,
        },
        out / "dataset_meta.json",
    )
    return artifacts


def run_outcome(
    outcome: OutcomeConfig,
    config: PipelineConfig,
    *,
    oracle: Optional[FittingOracle] = None,
    out_dir: Optional[Path] = None,
    base_dir: Optional[Path] = None,
) -> OutcomeRun:
    """Load, preprocess, fit every prior, evaluate and report for one outcome."""
    priors = resolve_priors(config.priors)
    with log_duration(logger, f"prepare {outcome.name}"):
        dataset = prepare_outcome(outcome, config, base_dir=base_dir)
    logger.info(
        "%s: %d samples x %d features, response '%s' (%s family).",
        outcome.name, dataset.n_samples, dataset.n_features, dataset.response_column, dataset.family,
    )

    fitter = ShrinkagePriorFitter(sampler=config.sampler, seed=config.seed, oracle=oracle)
    fits, failures = fit_priors(dataset, priors, fitter, show_progress=config.sampler.progress_bar)
    summary = evaluate_priors(dataset, fits, priors, config.evaluation, failures=failures)

    report = None
    if fits:
        diag = config.diagnostics
        report = build_report(
            fits,
            k=diag.top_k,
            max_lag=diag.max_lag,
            level=diag.credible_level,
            feature_names=dataset.feature_names,
        )
    else:
        logger.warning("%s: no prior fitted; skipping diagnostics.", outcome.name)

    run = OutcomeRun(
        name=outcome.name,
        dataset=dataset,
        fits=fits,
        failures=failures,
        summary=summary,
        report=report,
    )
    if out_dir is not None:
        run.artifacts = _write_outcome_artifacts(run, config, Path(out_dir))
    for row in summary.rows:
        logger.info("%s | %-14s %s = %s (%s)", outcome.name, row.label, summary.metric,
                    "NA" if row.value is None else f"{row.value:.4f}", row.status)
    return run


def run_pipeline(
    config: PipelineConfig,
    out_dir: Optional[Path] = None,
    *,
    oracle: Optional[FittingOracle] = None,
    outcomes: Optional[Sequence[str]] = None,
) -> PipelineResult:
    """Run every configured outcome independently and in order."""
    if not config.outcomes:
        raise ValueError("No outcomes configured.")
    selected = list(config.outcomes)
    if outcomes:
        wanted = set(outcomes)
        unknown = wanted - {o.name for o in selected}
        if unknown:
            raise KeyError(f"Unknown outcomes requested: {sorted(unknown)}")
        selected = [o for o in selected if o.name in wanted]

    base_dir = Path(config.base_dir).expanduser() if config.base_dir else None
    result = PipelineResult()
    for outcome in selected:
        target = None if out_dir is None else Path(out_dir) / outcome.name
        with log_duration(logger, f"outcome {outcome.name}"):
            result.runs[outcome.name] = run_outcome(
                outcome, config, oracle=oracle, out_dir=target, base_dir=base_dir
            )

    if out_dir is not None:
        save_json(result.to_dict(), Path(out_dir) / "summary.json")
    return result


def summaries_table(summaries: Mapping[str, PerformanceSummary], digits: int = 4) -> str:
    """Markdown table with one column per outcome and one row per prior."""
    if not summaries:
        return ""
    first = next(iter(summaries.values()))
    header = ["Prior"] + [f"{name} ({s.metric})" for name, s in summaries.items()]
    rows = [header]
    for i, row in enumerate(first.rows):
        line = [row.label]
        for s in summaries.values():
            value = s.rows[i].value if i < len(s.rows) else None
            line.append("NA" if value is None else f"{value:.{digits}f}")
        rows.append(line)
    return to_markdown_table(rows)
