"""
LoggingHandler module for managing logging operations.
This module handles log file creation, per-run rotation, cleanup and the
severity routing used for operator-facing messages.
"""

import logging
import logging.handlers
import sys
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List, Optional

PACKAGE_LOGGER = "azeroth_winebar"
MAIN_LOG_NAME = "azeroth-winebar.log"

logger = logging.getLogger(__name__)


class Severity(Enum):
    FATAL = "fatal"
    DEBUG = "debug"
    INFO = "info"
    LOG = "log"


class ConsoleHandler(logging.StreamHandler):
    """The console handler this package installs; other stream handlers are left alone."""


class ConsoleFilter(logging.Filter):
    """Drops records logged with extra={"console": False}."""

    def filter(self, record: logging.LogRecord) -> bool:
        return getattr(record, "console", True)


class LoggingHandler:
    """
    Central logging handler for Azeroth Winebar.
    - Uses <data-root>/azeroth-winebar/logs/ as the log directory.
    - Rotates the main log once per run, keeping five previous runs.
    Usage:
        LoggingHandler().setup_package_logger(debug=False)
    """
    def __init__(self, log_dir: Optional[Path] = None):
        if log_dir is None:
            from azeroth_winebar.shared.paths import get_logs_dir
            log_dir = get_logs_dir()
        self.log_dir = Path(log_dir)
        self.ensure_log_directory()

    def ensure_log_directory(self) -> None:
        """Ensure the log directory exists."""
        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            print(f"Failed to create log directory: {e}", file=sys.stderr)

    @property
    def main_log_path(self) -> Path:
        return self.log_dir / MAIN_LOG_NAME

    def rotate_log_file_per_run(self, log_file_path: Path, backup_count: int = 5):
        """Rotate the log file on every run, keeping up to backup_count backups."""
        if not log_file_path.exists():
            return
        oldest = log_file_path.with_suffix(log_file_path.suffix + f'.{backup_count}')
        if oldest.exists():
            oldest.unlink()
        for i in range(backup_count - 1, 0, -1):
            src = log_file_path.with_suffix(log_file_path.suffix + f'.{i}')
            dst = log_file_path.with_suffix(log_file_path.suffix + f'.{i+1}')
            if src.exists():
                src.rename(dst)
        log_file_path.rename(log_file_path.with_suffix(log_file_path.suffix + '.1'))

    def setup_package_logger(self, debug: bool = False, rotate: bool = True) -> logging.Logger:
        """
        Attach the file and console handlers to the package logger.
        Call once at start-up; repeated calls do not duplicate handlers.
        """
        if rotate:
            try:
                self.rotate_log_file_per_run(self.main_log_path)
            except OSError as e:
                print(f"Failed to rotate log file: {e}", file=sys.stderr)

        pkg_logger = logging.getLogger(PACKAGE_LOGGER)
        pkg_logger.setLevel(logging.DEBUG)
        pkg_logger.propagate = False

        file_formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        console_formatter = logging.Formatter('%(levelname)s: %(message)s')

        console_handler = _console_handler(pkg_logger)
        if console_handler is None:
            console_handler = ConsoleHandler()
            console_handler.setFormatter(console_formatter)
            console_handler.addFilter(ConsoleFilter())
            pkg_logger.addHandler(console_handler)
        console_handler.setLevel(logging.DEBUG if debug else logging.ERROR)

        file_path = str(self.main_log_path)
        if not any(isinstance(h, logging.handlers.RotatingFileHandler) and getattr(h, 'baseFilename', None) == file_path
                   for h in pkg_logger.handlers):
            try:
                file_handler = logging.handlers.RotatingFileHandler(
                    file_path, mode='a', encoding='utf-8', maxBytes=1024*1024, backupCount=5
                )
                file_handler.setLevel(logging.DEBUG)
                file_handler.setFormatter(file_formatter)
                pkg_logger.addHandler(file_handler)
            except OSError as e:
                print(f"Failed to open log file {file_path}: {e}", file=sys.stderr)

        return pkg_logger

    def cleanup_old_logs(self, days: int = 30) -> int:
        """Clean up log files older than specified days."""
        cutoff = datetime.now().timestamp() - (days * 24 * 60 * 60)
        removed = 0
        for log_file in self.get_log_files():
            try:
                if log_file.stat().st_mtime < cutoff:
                    log_file.unlink()
                    removed += 1
            except OSError as e:
                print(f"Failed to clean up log file {log_file}: {e}", file=sys.stderr)
        return removed

    def get_log_files(self) -> List[Path]:
        """Get a list of all log files, rotated ones included."""
        return [p for p in self.log_dir.glob("*.log*") if p.is_file()]

    def get_log_content(self, log_file: Optional[Path] = None, lines: int = 100) -> List[str]:
        """Get the last N lines of a log file."""
        log_file = log_file or self.main_log_path
        try:
            with open(log_file, 'r', encoding='utf-8', errors='replace') as f:
                return f.readlines()[-lines:]
        except OSError as e:
            logger.warning(f"Failed to read log file {log_file}: {e}")
            return []


def _console_handler(pkg_logger: logging.Logger) -> Optional[ConsoleHandler]:
    return next((h for h in pkg_logger.handlers if isinstance(h, ConsoleHandler)), None)


def is_debug_enabled() -> bool:
    """True when our own console handler shows DEBUG records."""
    pkg_logger = logging.getLogger(PACKAGE_LOGGER)
    console = _console_handler(pkg_logger)
    return console is not None and pkg_logger.isEnabledFor(logging.DEBUG) and console.level <= logging.DEBUG


def report(severity: Severity, message: str, log: Optional[logging.Logger] = None) -> None:
    """
    Route an operator-facing message by severity.

    fatal -> stderr as [ERROR] and the log at ERROR
    debug -> the log only (stderr too when the console handler is at DEBUG)
    info  -> stdout as [INFO] and the log at INFO
    log   -> stdout as [LOG] and the log at INFO
    """
    log = log or logging.getLogger(PACKAGE_LOGGER)
    if severity is Severity.FATAL:
        if is_debug_enabled():
            log.error(message)
        else:
            log.error(message, extra={"console": False})
            print(f"[ERROR] {message}", file=sys.stderr)
    elif severity is Severity.DEBUG:
        log.debug(message)
    elif severity is Severity.INFO:
        log.info(message)
        print(f"[INFO] {message}")
    else:
        log.info(message)
        print(f"[LOG] {message}")
