from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import List

LOGGER_NAME = "emergency_cache"
LOG_PREFIX = "[Emergency Cache]"

logger = logging.getLogger(LOGGER_NAME)

_append_lock = threading.Lock()


def configure_logging(debug: bool = False) -> logging.Logger:
    level = logging.DEBUG if debug else logging.INFO
    if not any(getattr(handler, "_emergency_cache", False) for handler in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s | %(levelname)-8s | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        handler._emergency_cache = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
    logger.setLevel(level)
    return logger


def ensure_dir(file_path: str | Path) -> Path:
    path = Path(file_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def append_jsonl(file_path: str | Path, payload: dict) -> bool:
    try:
        path = ensure_dir(file_path)
        line = json.dumps(payload) + "\n"
        with _append_lock:
            with path.open("a", encoding="utf-8") as handle:
                handle.write(line)
        return True
    except (OSError, ValueError, TypeError):
        logger.warning("%s could not append to %s", LOG_PREFIX, file_path)
        return False


def read_jsonl(file_path: str | Path) -> List[dict]:
    path = Path(file_path)
    if not path.exists():
        return []
    content = path.read_text(encoding="utf-8").strip()
    if not content:
        return []
    records: List[dict] = []
    for line in content.splitlines():
        try:
            records.append(json.loads(line))
        except json.JSONDecodeError:
            continue
    return records
