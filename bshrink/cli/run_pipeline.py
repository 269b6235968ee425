# bshrink/cli/run_pipeline.py
"""Run the shrinkage-prior comparison for every configured outcome."""
from __future__ import annotations

import argparse
import datetime as _dt
import logging
import sys
import traceback
from pathlib import Path
from typing import Any, Dict, List

from bshrink.utils.config import PipelineConfig, deep_update, load_config, parse_overrides
from bshrink.utils.io import save_yaml
from bshrink.utils.logging_utils import log_config, setup_logging

_LEVELS = {0: logging.WARNING, 1: logging.INFO}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bshrink-run",
        description="Fit Horseshoe, Horseshoe+, Ridge and LASSO priors to each configured outcome.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--config", "-c", nargs="+", required=True,
                        help="YAML config file(s); later files override earlier ones.")
    parser.add_argument("--override", "-o", nargs="*", default=[], metavar="KEY=VALUE",
                        help="Dotted config overrides, e.g. seed=7 sampler.burn_in=500.")
    parser.add_argument("--outcome", action="append", default=None,
                        help="Restrict the run to this outcome name (repeatable).")
    parser.add_argument("--outdir", default="outputs/runs", help="Parent directory for run folders.")
    parser.add_argument("--name", default=None, help="Prefix of the run folder name.")
    parser.add_argument("--verbosity", "-v", action="count", default=0, help="-v for INFO, -vv for DEBUG.")
    return parser


def _resolve_config(config_files: List[str], overrides: List[str]) -> Dict[str, Any]:
    paths = [Path(p).expanduser().resolve() for p in config_files]
    raw = deep_update(load_config(paths), parse_overrides(overrides))
    # relative dataset paths are read against the first config file
    raw.setdefault("base_dir", str(paths[0].parent))
    return raw


def _run_dir(outdir: str, name: str | None) -> Path:
    stamp = _dt.datetime.now().strftime("%Y%m%d-%H%M%S")
    return Path(outdir).expanduser().resolve() / f"{name or 'run'}-{stamp}"


def main(argv: List[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        raw = _resolve_config(args.config, args.override or [])
        run_dir = _run_dir(args.outdir, args.name)
        logger = setup_logging(_LEVELS.get(args.verbosity, logging.DEBUG), log_file=str(run_dir / "run.log"))

        config = PipelineConfig.from_dict(raw)
        resolved = config.to_dict()
        save_yaml(resolved, run_dir / "resolved_config.yaml")
        log_config(logger, resolved)

        from bshrink.experiments.pipeline import run_pipeline, summaries_table

        result = run_pipeline(config, run_dir, outcomes=args.outcome)
    except Exception:
        print("[FATAL] Pipeline failed:\n", file=sys.stderr)
        traceback.print_exc()
        return 1

    print(summaries_table(result.summaries()))
    print(f"[OK] Run finished. Artifacts in: {run_dir}")
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
