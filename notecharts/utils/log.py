from __future__ import annotations
import json, logging, sys
from typing import Any, Dict, Optional

# attributes every LogRecord carries; anything else came in through extra=
_RESERVED = frozenset((
    "name", "msg", "args", "levelname", "levelno", "pathname", "filename",
    "module", "exc_info", "exc_text", "stack_info", "lineno", "funcName",
    "created", "msecs", "relativeCreated", "thread", "threadName",
    "processName", "process", "taskName", "message", "asctime",
))


def _jsonable(v: Any) -> Any:
    try:
        json.dumps(v)
        return v
    except (TypeError, ValueError):
        return repr(v)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
            "time": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        for k, v in record.__dict__.items():
            if k not in _RESERVED and not k.startswith("_"):
                payload[k] = _jsonable(v)
        # field names and labels are frequently CJK
        return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


def get_logger(name: str = "notecharts", level: str = "INFO", structured_json: bool = True) -> logging.Logger:
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    handler = logging.StreamHandler(sys.stderr)
    if structured_json:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    logger.addHandler(handler)
    logger.propagate = False
    return logger


def configure_from_cfg(cfg: Optional[Any]) -> logging.Logger:
    """Install the package root logger using the [logging] config section."""
    lc = getattr(cfg, "logging", None)
    level = getattr(lc, "level", "INFO")
    structured = bool(getattr(lc, "structured_json", True))
    return get_logger("notecharts", level=level, structured_json=structured)
