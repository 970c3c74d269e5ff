
from __future__ import annotations

import json
import logging
import os
import sys
from typing import Optional

ROOT = "topicbus"
_FMT = "[%(asctime)s] %(levelname)s %(name)s | %(message)s"

_configured = False


def _maybe_load_dotenv() -> None:
    try:
        # Optional: pick up LOG_LEVEL / LOG_JSON from .env if python-dotenv is installed
        from dotenv import load_dotenv  # type: ignore
    except ImportError:
        return
    load_dotenv()


def _resolve_level(name: str) -> int:
    lvl = logging.getLevelName(name.upper())
    return lvl if isinstance(lvl, int) else logging.INFO


class JsonHandler(logging.StreamHandler):
    """One JSON object per line on stdout."""
    def __init__(self, stream=None):
        super().__init__(stream=stream or sys.stdout)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            obj = {
                "ts": record.created,
                "lvl": record.levelname,
                "name": record.name,
                "msg": record.getMessage(),
                "lineno": record.lineno,
                "funcName": record.funcName,
            }
            if record.exc_info:
                obj["exc"] = logging.Formatter().formatException(record.exc_info)
            self.stream.write(json.dumps(obj, ensure_ascii=False, default=str) + "\n")
            self.flush()
        except Exception:  # pragma: no cover
            self.handleError(record)


def setup(level: Optional[str] = None, json_mode: Optional[bool] = None, *, force: bool = False) -> None:
    """Configure the root logger.
    - Reads LOG_LEVEL, LOG_JSON from env (and .env) when args are None
    - Idempotent unless force=True
    """
    global _configured
    if _configured and not force:
        return

    _maybe_load_dotenv()

    py_level = _resolve_level(level or os.getenv("LOG_LEVEL", "INFO"))
    json_flag = json_mode if json_mode is not None else (os.getenv("LOG_JSON", "0") == "1")

    root = logging.getLogger()
    # pytest re-runs setup; avoid stacking handlers
    root.handlers.clear()
    root.setLevel(py_level)

    if json_flag:
        root.addHandler(JsonHandler())
    else:
        handler = logging.StreamHandler(stream=sys.stdout)
        handler.setFormatter(logging.Formatter(fmt=_FMT))
        root.addHandler(handler)

    _configured = True


def get(name: str) -> logging.Logger:
    """Logger under the topicbus namespace ("router" -> "topicbus.router")."""
    if name == ROOT or name.startswith(ROOT + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT}.{name}")


def set_level(level: str) -> None:
    """Adjust the root level at runtime (e.g. during tests)."""
    logging.getLogger().setLevel(_resolve_level(level))
