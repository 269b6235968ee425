"""YAML configuration loading, CLI overrides and typed pipeline settings."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from functools import reduce
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import yaml

from data.preprocess import StandardizationConfig
from bshrink.utils.seed import DEFAULT_SEED, resolve_seed

DEFAULT_PRIORS: Tuple[str, ...] = ("horseshoe", "horseshoe_plus", "ridge", "lasso")
OUTCOMES: Tuple[str, ...] = ("continuous", "binary", "count", "survival")


# ------------------------------
# YAML + overrides
# ------------------------------


def _merge_into(dst: Dict[str, Any], src: Mapping[str, Any]) -> Dict[str, Any]:
    for k, v in src.items():
        if isinstance(v, Mapping) and isinstance(dst.get(k), dict):
            _merge_into(dst[k], v)
        elif isinstance(v, Mapping):
            dst[k] = _merge_into({}, v)
        else:
            dst[k] = v
    return dst


def deep_update(dst: Dict[str, Any], src: Mapping[str, Any]) -> Dict[str, Any]:
    """Recursively merge ``src`` into ``dst`` (in place) and return ``dst``."""
    return _merge_into(dst, src)


def _load_with_defaults(path: Path, seen: frozenset) -> Dict[str, Any]:
    norm_path = path.resolve()
    if norm_path in seen:
        cycle = " -> ".join(str(p) for p in (*seen, norm_path))
        raise ValueError(f"Config defaults cycle detected: {cycle}")
    seen = seen | {norm_path}

    if not norm_path.exists():
        raise FileNotFoundError(f"Config not found: {norm_path}")
    data = yaml.safe_load(norm_path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config {norm_path} must be a YAML mapping at top-level.")

    defaults = data.pop("defaults", None)
    base: Dict[str, Any] = {}
    if defaults:
        if isinstance(defaults, (str, Path)):
            defaults = [defaults]
        if not isinstance(defaults, list):
            raise ValueError(f"'defaults' in {norm_path} must be string or list.")
        for item in defaults:
            ref = Path(item)
            if not ref.is_absolute():
                ref = norm_path.parent / ref
            base = _merge_into(base, _load_with_defaults(ref, seen))
    return _merge_into(base, data)


def load_config(paths: Sequence[Path]) -> Dict[str, Any]:
    """
    Load and recursively merge YAML configs from left to right. A top-level
    ``defaults`` key pulls in parent configs relative to the current file.
    """
    cfg: Dict[str, Any] = {}
    for p in paths:
        _merge_into(cfg, _load_with_defaults(Path(p), frozenset()))
    return cfg


def _cast_value(v: str) -> Any:
    low = v.lower()
    if low in {"true", "false"}:
        return low == "true"
    if low in {"null", "none"}:
        return None
    try:
        if any(ch in v for ch in ".eE"):
            return float(v)
        return int(v)
    except ValueError:
        return v


def parse_overrides(pairs: Sequence[str]) -> Dict[str, Any]:
    """
    Parse CLI overrides like ``['seed=7', 'sampler.burn_in=500']`` into a nested dict.
    """
    root: Dict[str, Any] = {}
    for item in pairs:
        if "=" not in item:
            raise ValueError(f"Override must be key=value, got: '{item}'")
        k, v = item.split("=", 1)
        keys = k.strip().split(".")
        d = reduce(lambda acc, kk: acc.setdefault(kk, {}), keys[:-1], root)
        if not isinstance(d, dict):
            raise ValueError(f"Key path conflict at '{k}'")
        d[keys[-1]] = _cast_value(v.strip())
    return root


# ------------------------------
# Typed settings
# ------------------------------


@dataclass(frozen=True)
class SamplerConfig:
    """Fixed fitting configuration shared by every prior."""

    burn_in: int = 10_000
    num_samples: int = 1_000
    num_chains: int = 1
    thinning: int = 1
    target_accept_prob: float = 0.8
    progress_bar: bool = False

    def __post_init__(self) -> None:
        if self.burn_in <= 0 or self.num_samples <= 0:
            raise ValueError("burn_in and num_samples must be positive integers.")
        if self.num_chains <= 0 or self.thinning <= 0:
            raise ValueError("num_chains and thinning must be positive integers.")
        if not 0.0 < self.target_accept_prob < 1.0:
            raise ValueError("target_accept_prob must lie in (0, 1).")


@dataclass(frozen=True)
class EvaluationConfig:
    cindex_tau: float = 2000.0
    auc_score: str = "label"
    classification_threshold: float = 0.5

    def __post_init__(self) -> None:
        if self.auc_score not in {"label", "probability"}:
            raise ValueError("evaluation.auc_score must be 'label' or 'probability'.")
        if self.cindex_tau <= 0:
            raise ValueError("evaluation.cindex_tau must be positive.")


@dataclass(frozen=True)
class DiagnosticsConfig:
    top_k: int = 10
    max_lag: int = 40
    credible_level: float = 0.95
    plots: bool = True
    save_fits: bool = True

    def __post_init__(self) -> None:
        if self.top_k <= 0:
            raise ValueError("diagnostics.top_k must be positive.")
        if self.max_lag <= 0:
            raise ValueError("diagnostics.max_lag must be positive.")
        if not 0.0 < self.credible_level < 1.0:
            raise ValueError("diagnostics.credible_level must lie in (0, 1).")


@dataclass(frozen=True)
class OutcomeConfig:
    """Dataset location and response selection for one outcome type."""

    name: str
    outcome: str
    data: Mapping[str, Any] = field(default_factory=dict)
    response_columns: Optional[Tuple[str, ...]] = None
    time_column: Optional[str] = None
    event_column: Optional[str] = None

    def __post_init__(self) -> None:
        if self.outcome not in OUTCOMES:
            raise ValueError(f"Unknown outcome '{self.outcome}'. Expected one of {OUTCOMES}.")
        if self.outcome == "survival" and (not self.time_column or not self.event_column):
            raise ValueError(f"Outcome '{self.name}' is survival; time_column and event_column are required.")


@dataclass(frozen=True)
class PipelineConfig:
    seed: int = DEFAULT_SEED
    priors: Tuple[str, ...] = DEFAULT_PRIORS
    outcomes: Tuple[OutcomeConfig, ...] = ()
    sampler: SamplerConfig = field(default_factory=SamplerConfig)
    evaluation: EvaluationConfig = field(default_factory=EvaluationConfig)
    diagnostics: DiagnosticsConfig = field(default_factory=DiagnosticsConfig)
    standardization: StandardizationConfig = field(default_factory=StandardizationConfig)
    base_dir: Optional[str] = None

    @classmethod
    def from_dict(cls, cfg: Mapping[str, Any]) -> "PipelineConfig":
        outcomes_raw = cfg.get("outcomes") or {}
        if not isinstance(outcomes_raw, Mapping):
            raise ValueError("'outcomes' must be a mapping of name -> outcome settings.")
        outcomes: List[OutcomeConfig] = []
        for name, entry in outcomes_raw.items():
            entry = dict(entry or {})
            responses = entry.get("response_columns")
            if isinstance(responses, str):
                responses = [responses]
            outcomes.append(
                OutcomeConfig(
                    name=str(name),
                    outcome=str(entry.get("outcome", name)).lower(),
                    data=dict(entry.get("data") or {}),
                    response_columns=None if responses is None else tuple(str(c) for c in responses),
                    time_column=entry.get("time_column"),
                    event_column=entry.get("event_column"),
                )
            )

        priors = cfg.get("priors") or DEFAULT_PRIORS
        if isinstance(priors, str):
            priors = [priors]
        std = dict(cfg.get("standardization") or {})
        return cls(
            seed=resolve_seed(cfg.get("seed")),
            priors=tuple(str(p) for p in priors),
            outcomes=tuple(outcomes),
            sampler=SamplerConfig(**dict(cfg.get("sampler") or {})),
            evaluation=EvaluationConfig(**dict(cfg.get("evaluation") or {})),
            diagnostics=DiagnosticsConfig(**dict(cfg.get("diagnostics") or {})),
            standardization=StandardizationConfig(**std),
            base_dir=cfg.get("base_dir"),
        )

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["outcomes"] = {o["name"]: {k: v for k, v in o.items() if k != "name"} for o in payload["outcomes"]}
        return payload
