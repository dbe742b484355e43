"""Logging utilities for stagewise.

Provides console/file logger setup and structured
run records (JSON lines, YAML documents).
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Optional, Union

import yaml

PathLike = Union[str, Path]

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def setup_logging(
    verbose: bool = False,
    log_dir: Optional[PathLike] = None,
    log_filename: str = "stagewise.log",
    name: str = "stagewise",
    level: Optional[int] = None,
) -> logging.Logger:
    """Configure the package logger with a console and optional file handler.

    Parameters
    ----------
    verbose : bool
        Enable DEBUG level output.
    log_dir : PathLike, optional
        Directory for the log file. Console only when None.
    log_filename : str
        Log file name inside ``log_dir``.
    name : str
        Logger name.
    level : int, optional
        Explicit logging level; overrides ``verbose``.

    Returns
    -------
    logging.Logger
        Configured logger.
    """
    if level is None:
        level = logging.DEBUG if verbose else logging.INFO
    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.handlers.clear()

    formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(message)s",
        datefmt=LOG_DATEFMT,
    )

    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(formatter)
    logger.addHandler(console)

    if log_dir:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_dir / log_filename, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT))
        logger.addHandler(file_handler)
        logger.info("Log file: %s", log_dir / log_filename)

    return logger


def _prepare_log_destination(log_path: PathLike) -> Path:
    path = Path(log_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def log_json(log_path: PathLike, record: dict[str, Any]) -> None:
    """Append one JSON line to ``log_path``.

    Values that JSON cannot encode (paths, numpy scalars) are written
    through ``str``.
    """
    path = _prepare_log_destination(log_path)
    with path.open("a", encoding="utf-8") as handle:
        handle.write(json.dumps(record, default=str))
        handle.write("\n")


def log_yaml(
    log_path: PathLike,
    record: dict[str, Any],
    *,
    logger: logging.Logger | None = None,
) -> None:
    """Append a YAML document to ``log_path``, or emit it through ``logger``.

    Parameters
    ----------
    log_path : PathLike
        Path to the log file. Ignored when ``logger`` is given.
    record : dict
        Mapping to serialise.
    logger : logging.Logger, optional
        Logger receiving the document at INFO level.
    """
    yaml_text = yaml.safe_dump(record, sort_keys=False).rstrip("\n")
    message = f"{yaml_text}\n---"
    if logger is not None:
        logger.info("%s", message)
        return

    path = _prepare_log_destination(log_path)
    with path.open("a", encoding="utf-8") as handle:
        handle.write(message)
        handle.write("\n")
