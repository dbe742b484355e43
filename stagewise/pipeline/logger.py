"""Structured logging for workflow execution."""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional


class ColoredFormatter(logging.Formatter):
    """Custom formatter with color support for console output."""

    def __init__(self, fmt: str, datefmt: str, colors: dict):
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.colors = colors

    def format(self, record):
        original = record.levelname
        color = self.colors.get(original, self.colors["RESET"])
        record.levelname = f"{color}{original}{self.colors['RESET']}"
        try:
            return super().format(record)
        finally:
            record.levelname = original


class PipelineLogger:
    """Structured logging for workflow execution.

    Console logging is coloured; a detailed log file is written when
    ``log_dir`` is given. Step start/complete/error events share one format.

    Parameters
    ----------
    log_dir : str, optional
        Directory for log files. Console only when None.
    log_level : str
        Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    log_name : str
        Logger name. Default: "stagewise"

    Example
    -------
    >>> logger = PipelineLogger("out/logs", log_level="INFO")
    >>> logger.setup()
    >>> logger.log_step_start("cluster", "Clustering")
    >>> logger.log_step_complete("cluster", 45.2)
    """

    COLORS = {
        "DEBUG": "\033[0;36m",  # Cyan
        "INFO": "\033[0;34m",  # Blue
        "WARNING": "\033[1;33m",  # Yellow
        "ERROR": "\033[0;31m",  # Red
        "CRITICAL": "\033[1;31m",  # Bold Red
        "RESET": "\033[0m",
    }

    def __init__(
        self,
        log_dir: Optional[str] = None,
        log_level: str = "INFO",
        log_name: str = "stagewise",
    ):
        self.log_dir = Path(log_dir) if log_dir else None
        self.log_file: Optional[Path] = None
        if self.log_dir is not None:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            self.log_file = self.log_dir / f"workflow_{timestamp}.log"

        self.log_level = getattr(logging, log_level.upper())
        self.logger = logging.getLogger(log_name)
        self.logger.setLevel(self.log_level)
        self.logger.handlers = []
        self.logger.propagate = False

    def setup(self) -> "PipelineLogger":
        """Configure file (when log_dir is set) and console handlers."""
        if self.log_file is not None:
            file_handler = logging.FileHandler(self.log_file, mode="w", encoding="utf-8")
            file_handler.setLevel(self.log_level)
            file_handler.setFormatter(logging.Formatter(
                fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            ))
            self.logger.addHandler(file_handler)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(self.log_level)
        console_handler.setFormatter(ColoredFormatter(
            fmt="%(asctime)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
            colors=self.COLORS,
        ))
        self.logger.addHandler(console_handler)
        return self

    def log_step_start(self, step_id: str, step_name: str) -> None:
        """Log the start of a workflow step."""
        separator = "=" * 80
        self.logger.info(separator)
        self.logger.info("Starting step %s: %s", step_id, step_name)
        self.logger.info(separator)

    def log_step_complete(self, step_id: str, duration: float) -> None:
        """Log successful completion of a step."""
        self.logger.info(
            "Step %s completed successfully in %s", step_id, self.format_duration(duration)
        )

    def log_step_skipped(self, step_id: str, reason: str) -> None:
        """Log a step that did not run."""
        self.logger.info("Step %s skipped: %s", step_id, reason)

    def log_step_error(self, step_id: str, error: str) -> None:
        """Log a step error."""
        self.logger.error("Step %s failed: %s", step_id, error)

    @staticmethod
    def format_duration(seconds: float) -> str:
        """Format duration in seconds to human-readable string.

        Returns
        -------
        str
            Formatted string (e.g., "45.2s", "1m 23s", "2h 15m")
        """
        if seconds < 60:
            return f"{seconds:.1f}s"
        elif seconds < 3600:
            mins = int(seconds // 60)
            secs = int(seconds % 60)
            return f"{mins}m {secs}s"
        else:
            hours = int(seconds // 3600)
            mins = int((seconds % 3600) // 60)
            return f"{hours}h {mins}m"
