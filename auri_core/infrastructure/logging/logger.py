import json
import logging
from pathlib import Path
from datetime import datetime, timezone
from auri_core.config.settings import settings

# 脱敏模式下不写入日志的字段（用户原话、助手回复等）
REDACTED_KEYS = frozenset({"content", "user_text", "reply", "line"})


class JsonLinesFormatter(logging.Formatter):
    """每条记录一行 JSON，结构化字段通过 ``extra={"extra": {...}}`` 传入。"""

    def __init__(self, redact: bool = False):
        super().__init__()
        self._redact = redact

    def format(self, record: logging.LogRecord) -> str:
        msg = record.getMessage()
        if self._redact:
            msg = (msg or "")[:64]
        payload = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "name": record.name,
            "msg": msg,
        }
        extra = getattr(record, "extra", None)
        if isinstance(extra, dict):
            for key, value in extra.items():
                if self._redact and key in REDACTED_KEYS:
                    continue
                payload[key] = value
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logger() -> logging.Logger:
    logger = logging.getLogger("auri_core")
    logger.setLevel(settings.log_level.upper())
    if logger.handlers:
        return logger
    log_dir = Path(settings.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    fh = logging.FileHandler(log_dir / "auri.log", encoding="utf-8")
    fh.setFormatter(JsonLinesFormatter(redact=settings.log_redact_content))
    logger.addHandler(fh)
    return logger


logger = setup_logger()
