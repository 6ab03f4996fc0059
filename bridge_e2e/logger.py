"""
bridge-e2e Logging
==================

Thread-safe logging setup on top of the standard `logging` module with a
`rich` console handler. Stage tags, transaction hashes, addresses and URLs
are highlighted so a long e2e run stays readable.

Usage:
    >>> from bridge_e2e.logger import get_logger
    >>> logger = get_logger(__name__)
    >>> logger.info("[fund_l1] Funded 0x...")
"""

import logging
import logging.handlers
import re
import sys
import threading
import time
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.highlighter import RegexHighlighter
from rich.logging import RichHandler
from rich.theme import Theme

from .constants import (
    LOG_LEVEL,
    LOG_FORMAT,
    LOG_DATE_FORMAT,
    LOG_FILE,
    LOG_MAX_FILE_SIZE,
    LOG_BACKUP_COUNT,
    LOG_CONSOLE_HIGHLIGHTING,
)


class LogManager:
    """
    Singleton owning the logging configuration.

    The root logger is configured once; later `configure()` calls are
    ignored unless `force=True` (the CLI uses this to apply `--log-level`).
    """

    _instance: Optional["LogManager"] = None
    _lock: threading.Lock = threading.Lock()

    def __new__(cls) -> "LogManager":
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self) -> None:
        if self._initialized:
            return
        self._configured = False
        self._initialized = True

    @staticmethod
    def validate_log_format(log_format: str) -> str:
        """
        Return `log_format` if a dummy record formats cleanly with it,
        otherwise the default format.
        """
        if not log_format:
            return str(LOG_FORMAT.default())
        try:
            formatter = logging.Formatter(fmt=str(log_format))
            record = logging.LogRecord(
                name="test", level=logging.INFO, pathname="", lineno=0,
                msg="test", args=(), exc_info=None,
            )
            formatter.format(record)
            return str(log_format)
        except (ValueError, KeyError, TypeError) as e:
            print(
                f"{time.strftime('%Y-%m-%d %H:%M:%S')} - bridge_e2e.logger - "
                f"Invalid LOG_FORMAT ({e}). Using default.",
                file=sys.stderr,
            )
            return str(LOG_FORMAT.default())

    @staticmethod
    def validate_date_format(date_format: str) -> str:
        """Return `date_format` if it contains at least one strftime directive."""
        if not date_format or not re.search(r"%[A-Za-z]", str(date_format)):
            return str(LOG_DATE_FORMAT.default())
        return str(date_format)

    def configure(
        self,
        log_level: Optional[str] = None,
        log_file: Optional[Path] = None,
        console_output: bool = True,
        force: bool = False,
    ) -> None:
        """
        Configure the root logger.

        Args:
            log_level: DEBUG, INFO, ... Defaults to LOG_LEVEL.
            log_file: Rotating log file. Defaults to LOG_FILE; empty disables it.
            console_output: Attach the rich console handler.
            force: Reconfigure even if already configured.
        """
        with self._lock:
            if self._configured and not force:
                return

            level_str = log_level or str(LOG_LEVEL)
            numeric_level = getattr(logging, level_str.upper(), logging.INFO)

            root_logger = logging.getLogger()
            root_logger.setLevel(numeric_level)

            for lib in ("httpx", "httpcore", "urllib3", "web3", "web3.providers", "asyncio"):
                logging.getLogger(lib).setLevel(logging.WARNING)

            root_logger.handlers.clear()

            log_format = self.validate_log_format(LOG_FORMAT)
            date_format = self.validate_date_format(LOG_DATE_FORMAT)

            formatter = TerminalSafeFormatter(fmt=log_format, datefmt=date_format + " UTC")
            formatter.converter = time.gmtime

            if console_output:
                if LOG_CONSOLE_HIGHLIGHTING:
                    theme = Theme(
                        {
                            "e2e.address":        "cyan",
                            "e2e.tx_hash":        "bold cyan",
                            "e2e.amount":         "bold yellow",
                            "e2e.level_critical": "bold red reverse",
                            "e2e.level_debug":    "bold dim",
                            "e2e.level_error":    "bold red",
                            "e2e.level_info":     "bold green",
                            "e2e.level_warning":  "bold yellow",
                            "e2e.logger_name":    "magenta",
                            "e2e.stage":          "bold magenta",
                            "e2e.success":        "bold green",
                            "e2e.timestamp":      "dim cyan",
                            "e2e.url":            "underline cyan",
                        }
                    )
                    handler = RichHandler(
                        console=Console(theme=theme, highlight=False),
                        highlighter=E2ELogHighlighter(),
                        rich_tracebacks=True,
                        show_path=False,
                        show_time=False,
                        show_level=False,
                        markup=False,
                    )
                else:
                    handler = logging.StreamHandler(sys.stdout)
                handler.setLevel(numeric_level)
                handler.setFormatter(formatter)
                root_logger.addHandler(handler)

            file_path = log_file or (Path(str(LOG_FILE)) if str(LOG_FILE) else None)
            if file_path:
                file_path.parent.mkdir(parents=True, exist_ok=True)
                file_handler = logging.handlers.RotatingFileHandler(
                    filename=str(file_path),
                    maxBytes=LOG_MAX_FILE_SIZE,
                    backupCount=LOG_BACKUP_COUNT,
                    encoding="utf-8",
                )
                file_handler.setLevel(numeric_level)
                file_handler.setFormatter(formatter)
                root_logger.addHandler(file_handler)

            self._configured = True

    def get_logger(self, name: str) -> logging.Logger:
        if not self._configured:
            self.configure()
        return logging.getLogger(name)

    @property
    def is_configured(self) -> bool:
        return self._configured


class TerminalSafeFormatter(logging.Formatter):
    """
    Formatter that strips ANSI escape sequences and control characters.

    Log lines embed strings returned by RPC nodes and the indexer API, which
    must not be able to drive the operator's terminal.
    """

    _ansi_escape_re = re.compile(r"\x1b\[[0-?]*[ -/]*[@-~]|\x1b[@-Z\\-_]")
    _control_chars_re = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")

    @classmethod
    def sanitize(cls, text: str) -> str:
        if not text:
            return text
        text = cls._ansi_escape_re.sub("", text)
        text = text.replace("\r", "")
        return cls._control_chars_re.sub("", text)

    def format(self, record: logging.LogRecord) -> str:
        return self.sanitize(super().format(record))


class E2ELogHighlighter(RegexHighlighter):
    """Highlights stage tags, hashes, addresses, amounts and URLs."""

    base_style = "e2e."
    highlights = [
        r"(?P<timestamp>^(.*?)UTC)",
        r"(?P<level_critical>\bCRITICAL\b)",
        r"(?P<level_debug>\bDEBUG\b)",
        r"(?P<level_error>\bERROR\b)",
        r"(?P<level_info>\bINFO\b)",
        r"(?P<level_warning>\bWARNING\b)",
        r"\-\s+\w+\s+-\s+(?P<logger_name>[\w.]+)(?=\s-\s)",
        r"(?P<stage>\[[a-z0-9_]+\])",
        r"(?P<tx_hash>\b0x[0-9a-fA-F]{64}\b)",
        r"(?P<address>\b0x[0-9a-fA-F]{40}\b)",
        r"(?P<amount>\b\d+(?:\.\d+)?\s(?:ETH|wei)\b)",
        r"(?P<success>\b(?:completed|claimed|funded|deployed)\b)",
        r"(?P<url>https?://\S+)",
    ]


_manager = LogManager()


def configure_logging(log_level: Optional[str] = None, log_file: Optional[Path] = None) -> None:
    """Apply an explicit level/file, replacing any earlier configuration."""
    _manager.configure(log_level=log_level, log_file=log_file, force=True)


def get_logger(name: str) -> logging.Logger:
    """
    Public accessor of the logging system; configures it on first use.

    Args:
        name: Usually `__name__`.
    """
    return _manager.get_logger(name)
