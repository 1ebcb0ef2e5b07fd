"""Logging configuration."""

import logging
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from ..config.models import LoggingConfig


class PlanledgerFormatter(logging.Formatter):
    """Console/file formatter with optional level colors."""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
        "RESET": "\033[0m",
    }

    def __init__(self, use_colors: bool = True):
        """Initialize formatter.

        Args:
            use_colors: Whether to color level names on a TTY
        """
        super().__init__()
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        levelname = record.levelname
        if self.use_colors and sys.stderr.isatty():
            levelname = f"{self.COLORS.get(levelname, '')}{levelname}{self.COLORS['RESET']}"

        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        # planledger.planning.reconciler -> planning.reconciler
        name = record.name.split(".", 1)[-1] if record.name.startswith("planledger.") else record.name

        message = record.getMessage()
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        return f"[{timestamp}] {levelname:8} {name:22} {message}"


def _cleanup_old_logs(log_dir: Path, retention_days: int) -> int:
    """Remove log files older than retention_days.

    Returns:
        Number of files removed
    """
    if retention_days <= 0:
        return 0
    cutoff = datetime.now().timestamp() - (retention_days * 86400)
    removed = 0
    for path in log_dir.glob("planledger_*.log*"):
        try:
            if path.stat().st_mtime < cutoff:
                path.unlink()
                removed += 1
        except FileNotFoundError:
            continue
    return removed


def setup_logging(
    level: str = "INFO",
    log_file: Optional[Path] = None,
    log_dir: Optional[Path] = None,
    rotation_mb: int = 10,
    retention_days: int = 7,
    use_colors: bool = True,
    console: bool = True,
) -> None:
    """Configure the root logger.

    Args:
        level: Log level name
        log_file: Explicit log file path
        log_dir: Directory for a timestamped log file (used if log_file not given)
        rotation_mb: Max log size before rotation (MB)
        retention_days: Days to retain log files (<=0 disables cleanup)
        use_colors: Color console output
        console: Log to stderr
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    root_logger.handlers.clear()

    if console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(PlanledgerFormatter(use_colors=use_colors))
        root_logger.addHandler(console_handler)

    if log_file is None and log_dir is not None:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = Path(log_dir) / f"planledger_{timestamp}.log"

    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        _cleanup_old_logs(log_file.parent, retention_days)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max(1, rotation_mb) * 1024 * 1024,
            backupCount=max(1, retention_days),
        )
        file_handler.setFormatter(PlanledgerFormatter(use_colors=False))
        root_logger.addHandler(file_handler)


def setup_logging_from_config(config: LoggingConfig, verbose: bool = False) -> None:
    """Configure logging from the config file section.

    Args:
        config: Logging configuration
        verbose: Force DEBUG level
    """
    setup_logging(
        level="DEBUG" if verbose else config.level,
        log_dir=config.log_dir if config.file_logging else None,
        rotation_mb=config.rotation_mb,
        retention_days=config.retention_days,
    )


def get_logger(name: str) -> logging.Logger:
    """Get logger instance."""
    return logging.getLogger(name)
