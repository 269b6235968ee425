"""Tabular dataset loading: fetch feature/response tables and align them by sample id."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import pandas as pd

from bshrink.errors import AlignmentError, DataUnavailable
from bshrink.utils.logging_utils import get_logger

from .generators import synthetic_config_from_dict, generate_synthetic

logger = get_logger(__name__)

_REMOTE_PREFIXES = ("http://", "https://", "ftp://", "s3://", "gs://")


@dataclass
class LoadedTables:
    """Feature matrix and response table sharing the same sample index."""

    X: pd.DataFrame
    Y: pd.DataFrame
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def sample_ids(self) -> List[str]:
        return [str(idx) for idx in self.X.index]


def _is_remote(locator: str) -> bool:
    return str(locator).lower().startswith(_REMOTE_PREFIXES)


def _resolve_locator(locator: str | Path, base_dir: Optional[Path]) -> str:
    if _is_remote(str(locator)):
        return str(locator)
    path = Path(locator).expanduser()
    if not path.is_absolute() and base_dir is not None:
        path = (base_dir / path).resolve()
    return str(path)


def _suffix(locator: str) -> str:
    name = locator.split("?", 1)[0].lower()
    for compressed in (".gz", ".bz2", ".zip", ".xz"):
        if name.endswith(compressed):
            name = name[: -len(compressed)]
    return Path(name).suffix


def read_table(locator: str, *, index_col: Any = 0, sheet_name: Any = 0) -> pd.DataFrame:
    """Read a persisted table from a local path or URL.

    Raises:
        DataUnavailable: when the resource is missing, unreachable or unparseable.
    """
    if not _is_remote(locator) and not Path(locator).exists():
        raise DataUnavailable(f"Dataset file not found: {locator}")

    suffix = _suffix(locator)
    try:
        if suffix in {".csv", ".txt"}:
            frame = pd.read_csv(locator, index_col=index_col)
        elif suffix == ".tsv":
            frame = pd.read_csv(locator, sep="\t", index_col=index_col)
        elif suffix in {".parquet", ".pq"}:
            frame = pd.read_parquet(locator)
            if index_col is not None and not isinstance(index_col, int):
                frame = frame.set_index(index_col)
        elif suffix in {".pkl", ".pickle"}:
            frame = pd.read_pickle(locator)
        elif suffix in {".xlsx", ".xls"}:
            frame = pd.read_excel(locator, index_col=index_col, sheet_name=sheet_name)
        else:
            raise DataUnavailable(f"Unsupported table format '{suffix or '?'}' for {locator}")
    except DataUnavailable:
        raise
    except (OSError, ValueError, ImportError) as exc:
        # urllib errors subclass OSError; pandas parse errors subclass ValueError
        raise DataUnavailable(f"Could not read dataset {locator}: {exc}") from exc

    if isinstance(frame, pd.Series):
        frame = frame.to_frame()
    if not isinstance(frame, pd.DataFrame):
        raise DataUnavailable(f"Resource {locator} did not decode into a table.")
    return frame


def _clean_index(frame: pd.DataFrame, label: str) -> pd.DataFrame:
    ids = pd.Series(frame.index, index=range(len(frame.index)))
    missing = ids.isna()
    cleaned = frame.loc[~missing.to_numpy()].copy()
    cleaned.index = [str(idx).strip() for idx in cleaned.index]
    if missing.any():
        logger.warning("%s: dropped %d rows without a sample identifier.", label, int(missing.sum()))
    duplicated = pd.Index(cleaned.index).duplicated()
    if duplicated.any():
        dupes = sorted(set(pd.Index(cleaned.index)[duplicated]))[:5]
        raise AlignmentError(f"{label} contains duplicated sample identifiers: {dupes}")
    return cleaned


def align_tables(X: pd.DataFrame, Y: pd.DataFrame) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Clean sample identifiers, check they agree, and drop samples with missing features.

    Y is reordered to follow X. Feature columns that are entirely missing are dropped
    before the per-sample filter so that a single empty column does not wipe out every row.
    """
    X = _clean_index(X, "feature table")
    Y = _clean_index(Y, "response table")

    x_ids = pd.Index(X.index)
    y_ids = pd.Index(Y.index)
    if not x_ids.equals(y_ids):
        only_x = x_ids.difference(y_ids)
        only_y = y_ids.difference(x_ids)
        if len(only_x) or len(only_y):
            raise AlignmentError(
                "Sample identifiers differ between feature and response tables "
                f"({len(only_x)} only in X, e.g. {list(only_x[:3])}; "
                f"{len(only_y)} only in Y, e.g. {list(only_y[:3])})."
            )
        Y = Y.loc[x_ids]

    non_numeric = [c for c in X.columns if not pd.api.types.is_numeric_dtype(X[c])]
    if non_numeric:
        raise DataUnavailable(f"Feature table has non-numeric columns: {non_numeric[:5]}")

    empty_cols = [c for c in X.columns if X[c].isna().all()]
    if empty_cols:
        logger.info("Dropping %d all-missing feature columns.", len(empty_cols))
        X = X.drop(columns=empty_cols)

    complete = X.notna().all(axis=1).to_numpy()
    if not complete.all():
        logger.info("Dropping %d samples with missing feature values.", int((~complete).sum()))
        X = X.loc[complete]
        Y = Y.loc[complete]

    X.columns = [str(c) for c in X.columns]
    Y.columns = [str(c) for c in Y.columns]
    return X, Y


def _split_single_table(
    frame: pd.DataFrame,
    response_columns: Sequence[str],
    feature_columns: Optional[Sequence[str]],
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    missing = [c for c in response_columns if c not in frame.columns]
    if missing:
        raise DataUnavailable(f"Response columns not found in table: {missing}")
    if feature_columns is None:
        feature_columns = [c for c in frame.columns if c not in set(response_columns)]
    return frame.loc[:, list(feature_columns)], frame.loc[:, list(response_columns)]


def load_tables(data_cfg: Mapping[str, Any], *, base_dir: Optional[Path] = None) -> LoadedTables:
    """Load feature and response tables according to a data configuration.

    Supported fields in ``data_cfg``:
        type (str): ``loader`` (default) or ``synthetic``.
        path_X / path_y (str): feature and response tables (path or URL).
        path (str): a single table holding both; split with ``response_columns``
            (required) and ``feature_columns`` (optional; defaults to the rest).
        index_col (str|int): sample-identifier column (default: first column).
        sheet_name: worksheet for Excel sources.
        Remaining keys are copied into the returned metadata.
    """
    cfg = dict(data_cfg or {})
    kind = str(cfg.get("type", "loader")).lower()
    root = base_dir.resolve() if base_dir is not None else None

    if kind == "synthetic":
        dataset = generate_synthetic(synthetic_config_from_dict(cfg))
        X, Y = align_tables(dataset.X, dataset.Y)
        return LoadedTables(X=X, Y=Y, metadata={"type": "synthetic", **dataset.info})
    if kind != "loader":
        raise ValueError(f"Unknown data.type '{kind}'. Use 'loader' or 'synthetic'.")

    index_col = cfg.get("index_col", 0)
    sheet_name = cfg.get("sheet_name", 0)
    metadata: Dict[str, Any] = {"type": "loader"}

    if cfg.get("path"):
        locator = _resolve_locator(cfg["path"], root)
        responses = cfg.get("response_columns")
        if not responses:
            raise ValueError("data.response_columns is required when a single data.path is given.")
        if isinstance(responses, str):
            responses = [responses]
        frame = read_table(locator, index_col=index_col, sheet_name=sheet_name)
        X, Y = _split_single_table(frame, [str(c) for c in responses], cfg.get("feature_columns"))
        metadata["source_path"] = locator
    else:
        if not cfg.get("path_X") or not cfg.get("path_y"):
            raise ValueError("data.path_X and data.path_y are required for data.type=loader")
        x_loc = _resolve_locator(cfg["path_X"], root)
        y_loc = _resolve_locator(cfg["path_y"], root)
        X = read_table(x_loc, index_col=index_col, sheet_name=sheet_name)
        Y = read_table(y_loc, index_col=index_col, sheet_name=sheet_name)
        if cfg.get("feature_columns"):
            X = X.loc[:, list(cfg["feature_columns"])]
        metadata["source_path"] = x_loc
        metadata["target_path"] = y_loc

    n_raw = len(X.index)
    X, Y = align_tables(X, Y)
    metadata.update(
        {
            k: v
            for k, v in cfg.items()
            if k not in {"type", "path", "path_X", "path_y", "index_col", "sheet_name", "feature_columns"}
        }
    )
    metadata["n_raw"] = n_raw
    metadata["n_samples"] = int(X.shape[0])
    metadata["n_features"] = int(X.shape[1])
    logger.info("Loaded %d samples x %d features.", X.shape[0], X.shape[1])
    return LoadedTables(X=X, Y=Y, metadata=metadata)
