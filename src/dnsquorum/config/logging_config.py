from __future__ import annotations

import logging
import logging.handlers
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "crit": logging.CRITICAL,
    "critical": logging.CRITICAL,
}

_TAGS = {
    logging.DEBUG: "[debug]",
    logging.INFO: "[info]",
    logging.WARNING: "[warn]",
    logging.ERROR: "[error]",
    logging.CRITICAL: "[crit]",
}


def level_from_name(name: Optional[str], default: int = logging.INFO) -> int:
    """Map a level name such as 'warn' to a logging constant."""

    return _LEVELS.get(str(name or "").lower(), default)


class SyslogFormatter(logging.Formatter):
    """Formatter for syslog output without timestamps (syslog adds its own)."""

    def format(self, record):
        record.level_tag = _TAGS.get(record.levelno, f"[lvl{record.levelno}]")
        return f"dnsquorum: {record.level_tag} {record.name}: {record.getMessage()}"


class BracketLevelFormatter(logging.Formatter):
    """Formatter that adds bracketed lowercase level tags and UTC timestamps."""

    def formatTime(self, record, datefmt=None):
        """Format time as UTC ISO-8601 with Z suffix."""
        return datetime.fromtimestamp(record.created, timezone.utc).strftime(
            "%Y-%m-%dT%H:%M:%SZ"
        )

    def format(self, record):
        record.level_tag = _TAGS.get(record.levelno, f"[lvl{record.levelno}]")
        return super().format(record)


def init_logging(cfg: Optional[Dict[str, Any]]) -> None:
    """
    Initialize logging from the 'logging' section of the configuration.

    Args:
        cfg: Dictionary with optional keys:
            - level: debug, info, warn, error, crit (default: info)
            - stderr: log to stderr (default: True)
            - file: path of a log file to append to (optional)
            - syslog: True, or a dict with 'address' and 'facility'

    Example config:
        {
            "level": "debug",
            "stderr": True,
            "file": "./dnsquorum.log"
        }
    """
    cfg = cfg or {}

    root = logging.getLogger()
    root.setLevel(level_from_name(cfg.get("level", "info")))

    for h in list(root.handlers):
        root.removeHandler(h)

    formatter = BracketLevelFormatter(fmt="%(asctime)s %(level_tag)s %(name)s: %(message)s")

    if cfg.get("stderr", True):
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(formatter)
        root.addHandler(stderr_handler)

    file_path = cfg.get("file")
    if isinstance(file_path, str) and file_path.strip():
        path = os.path.abspath(os.path.expanduser(file_path.strip()))
        os.makedirs(os.path.dirname(path), exist_ok=True)
        file_handler = logging.FileHandler(path, mode="a", encoding="utf-8")
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    syslog_cfg = cfg.get("syslog")
    if syslog_cfg:
        if isinstance(syslog_cfg, dict):
            address = syslog_cfg.get("address", "/dev/log")
            if isinstance(address, list):
                address = tuple(address)
            facility = getattr(
                logging.handlers.SysLogHandler,
                f"LOG_{str(syslog_cfg.get('facility', 'USER')).upper()}",
                logging.handlers.SysLogHandler.LOG_USER,
            )
        else:
            address = "/dev/log"
            facility = logging.handlers.SysLogHandler.LOG_USER
        try:
            syslog_handler = logging.handlers.SysLogHandler(
                address=address, facility=facility
            )
        except (OSError, ValueError) as e:  # pragma: no cover - host specific
            root.warning("Failed to configure syslog: %s", e)
        else:
            syslog_handler.setFormatter(SyslogFormatter())
            root.addHandler(syslog_handler)

    logging.captureWarnings(True)
