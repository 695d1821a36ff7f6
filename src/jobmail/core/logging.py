from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

LOGGER_NAME = "jobmail"


def setup_logging(run_id: str, log_dir: str = "logs", level: str = "INFO") -> Path:
    """Log to stdout + a jsonl file next to the run's other artifacts."""
    Path(log_dir).mkdir(parents=True, exist_ok=True)
    log_path = Path(log_dir) / f"run_{run_id}.jsonl"

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()

    ch = logging.StreamHandler()
    ch.setLevel(root.level)
    ch.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(ch)

    fh = logging.FileHandler(log_path, encoding="utf-8")
    fh.setLevel(root.level)
    fh.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(fh)

    log_event("logging_initialized", run_id=run_id, log_path=str(log_path))
    return log_path


def _ts() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def _emit(level: int, label: str, event: str, fields: Dict[str, Any]) -> None:
    payload: Dict[str, Any] = {"ts": _ts(), "event": event, **fields}
    if label:
        payload = {"ts": payload["ts"], "level": label, **payload}
    logging.getLogger(LOGGER_NAME).log(level, json.dumps(payload, ensure_ascii=False, default=str))


def log_event(event: str, **fields: Any) -> None:
    _emit(logging.INFO, "", event, fields)


def log_debug(event: str, **fields: Any) -> None:
    _emit(logging.DEBUG, "DEBUG", event, fields)


def log_warning(event: str, **fields: Any) -> None:
    _emit(logging.WARNING, "WARNING", event, fields)


def log_error(event: str, **fields: Any) -> None:
    _emit(logging.ERROR, "ERROR", event, fields)
