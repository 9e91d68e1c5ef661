"""结构化 JSON 日志。

每条记录一行 JSON，业务字段通过 extra={"extra": {...}} 合并进顶层。
开启 log_redact_content 后，用户消息类字段只保留前 64 个字符。
"""

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

from yojana_core.config.settings import settings


# 可能携带用户原文的字段
CONTENT_FIELDS = ("msg", "message", "query", "text", "raw_response")
REDACT_LIMIT = 64


class JsonFormatter(logging.Formatter):
    def __init__(self, redact: bool = False):
        super().__init__()
        self._redact = redact

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        extra = getattr(record, "extra", None)
        if isinstance(extra, dict):
            payload.update(extra)
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        if self._redact:
            for key in CONTENT_FIELDS:
                value = payload.get(key)
                if isinstance(value, str) and len(value) > REDACT_LIMIT:
                    payload[key] = value[:REDACT_LIMIT] + "..."
        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logger(cfg=settings) -> logging.Logger:
    logger = logging.getLogger("yojana_core")
    logger.setLevel(getattr(logging, str(cfg.log_level).upper(), logging.INFO))
    if logger.handlers:
        return logger
    formatter = JsonFormatter(redact=cfg.log_redact_content)

    log_dir = Path(cfg.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    fh = logging.FileHandler(log_dir / "yojana.log", encoding="utf-8")
    fh.setFormatter(formatter)
    logger.addHandler(fh)

    if cfg.log_to_console:
        sh = logging.StreamHandler(sys.stderr)
        sh.setFormatter(formatter)
        logger.addHandler(sh)
    return logger


logger = setup_logger()
