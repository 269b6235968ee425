# bshrink/utils/logging_utils.py
from __future__ import annotations

import contextlib
import logging
import time
from pathlib import Path
from typing import Any, Iterable, Iterator, Mapping, Optional, Tuple

from rich.console import Console
from rich.logging import RichHandler
from tqdm import tqdm

LOGGER_NAME = "bshrink"
FILE_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Package logger, or a child of it for ``name``."""
    if not name or name == LOGGER_NAME:
        return logging.getLogger(LOGGER_NAME)
    if not name.startswith(LOGGER_NAME + "."):
        name = f"{LOGGER_NAME}.{name}"
    return logging.getLogger(name)


def setup_logging(level: int = logging.INFO, log_file: Optional[str] = None) -> logging.Logger:
    """Attach a rich console handler (stderr) and an optional run-log file to the package logger.

    Calling it again replaces the previous handlers, so repeated CLI invocations in one
    process do not duplicate output.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console = RichHandler(console=Console(stderr=True), show_time=True, show_path=False, markup=False)
    console.setLevel(level)
    logger.addHandler(console)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        logger.addHandler(file_handler)

    logger.debug("Logging to console%s.", f" and {log_file}" if log_file else "")
    return logger


@contextlib.contextmanager
def log_duration(logger: logging.Logger, stage: str) -> Iterator[None]:
    """Log how long the ``with`` block took; failures are logged as warnings and re-raised."""
    start = time.perf_counter()
    logger.debug("[%s] started.", stage)
    try:
        yield
    except Exception:
        logger.warning("[%s] failed after %.3fs.", stage, time.perf_counter() - start)
        raise
    logger.info("[%s] done in %.3fs.", stage, time.perf_counter() - start)


def progress(iterable: Iterable, total: Optional[int] = None, desc: Optional[str] = None,
             enabled: bool = True) -> Iterable:
    """tqdm progress bar over ``iterable``; a no-op wrapper when ``enabled`` is false."""
    return tqdm(iterable, total=total, desc=desc, leave=False, disable=not enabled)


def _flatten(cfg: Mapping[str, Any], prefix: str = "") -> Iterator[Tuple[str, Any]]:
    for key in sorted(cfg):
        value = cfg[key]
        path = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, Mapping) and value:
            yield from _flatten(value, path)
        else:
            yield path, value


def log_config(logger: logging.Logger, cfg: Mapping[str, Any]) -> None:
    """Log the effective configuration as dotted ``key = value`` lines."""
    logger.info("Effective configuration:")
    for path, value in _flatten(cfg):
        logger.info("  %s = %r", path, value)
