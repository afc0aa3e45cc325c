"""
Logging setup for wallet processes.

Console output is either ``human`` (one coloured line per record) or ``json``
(one object per line); a log file, when configured, is always JSON.

Records emitted by the wallet may carry fragment context through
``extra={"fragment_id": ..., "counter": ...}``; both formatters render it.

Usage:
    from voteflow_core.logging_config import setup_logging
    setup_logging(level="DEBUG", fmt="json", log_file="wallet.log")
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

# attributes a record may carry via ``extra=``
CONTEXT_FIELDS = ("fragment_id", "counter", "account")


def _context(record: logging.LogRecord) -> dict[str, Any]:
    return {
        name: getattr(record, name)
        for name in CONTEXT_FIELDS
        if getattr(record, name, None) is not None
    }


class _JSONFormatter(logging.Formatter):
    """One JSON object per record, fragment context as top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        entry.update(_context(record))
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class _HumanFormatter(logging.Formatter):
    """Coloured, concise single-line format."""

    COLOURS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[1;31m",
    }
    RESET = "\033[0m"

    def __init__(self, colour: bool = True):
        super().__init__()
        self.colour = colour

    def format(self, record: logging.LogRecord) -> str:
        level = f"[{record.levelname:<7}]"
        if self.colour:
            level = f"{self.COLOURS.get(record.levelname, '')}{level}{self.RESET}"
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = f"{ts} {level} {record.name}: {record.getMessage()}"
        ctx = _context(record)
        if "fragment_id" in ctx:
            # ids are 64 hex chars; the prefix is enough to grep for
            ctx["fragment_id"] = str(ctx["fragment_id"])[:12]
        if ctx:
            line += " (" + ", ".join(f"{k}={v}" for k, v in ctx.items()) + ")"
        if record.exc_info and record.exc_info[1]:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _console_handler(fmt: str) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    if fmt == "json":
        handler.setFormatter(_JSONFormatter())
    else:
        handler.setFormatter(_HumanFormatter(colour=sys.stderr.isatty()))
    return handler


def setup_logging(
    level: str = "INFO",
    fmt: str = "human",
    log_file: Optional[str] = None,
    http_debug: bool = False,
) -> None:
    """
    Configure the root logger for a wallet process.

    Parameters
    ----------
    level : str
        One of DEBUG, INFO, WARNING, ERROR, CRITICAL.
    fmt : str
        ``"human"`` or ``"json"`` for the console.
    log_file : str, optional
        Also append JSON records to this file.
    http_debug : bool
        Surface ``urllib3`` connection logging and the REST client's
        request/response bodies.
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()
    root.addHandler(_console_handler(fmt))

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(str(path))
        fh.setFormatter(_JSONFormatter())
        root.addHandler(fh)

    logging.getLogger("urllib3").setLevel(logging.DEBUG if http_debug else logging.WARNING)
    logging.getLogger("voteflow.backend").setLevel(
        logging.DEBUG if http_debug else logging.NOTSET
    )


def setup_from_config(cfg) -> None:
    """Apply the ``[logging]`` section of a VoteFlowConfig."""
    setup_logging(
        level=cfg.logging.level,
        fmt=cfg.logging.format,
        log_file=cfg.logging.file,
        http_debug=cfg.backend.enable_debug,
    )
