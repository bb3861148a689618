from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone

from erp.core.config import LOG_LEVEL
from erp.core.request_context import get_company_id, get_request_id, get_user_id

# (patrón, reemplazo) aplicados al mensaje y a los extras de texto
_SENSITIVE_PATTERNS = (
    (re.compile(r"(authorization\s*[:=]\s*bearer\s+)([^\s\"]+)", re.IGNORECASE), r"\1***"),
    (re.compile(r"((?:x-api-key|api_key|token|password)\s*[:=]\s*)([^\s\",}]+)", re.IGNORECASE), r"\1***"),
    (re.compile(r"\bfc_[0-9a-f]{16,}\b"), "fc_***"),
    # el token del kiosco de fichaje viaja en la ruta
    (re.compile(r"(/attendance/)[0-9a-f]{32,}"), r"\1***"),
)
_CONTEXT_GETTERS = (
    ("request_id", get_request_id),
    ("company_id", get_company_id),
    ("user_id", get_user_id),
)
_EXTRA_FIELDS = ("endpoint", "method", "status_code", "duration_ms")


def mask_secrets(value: str) -> str:
    for pattern, replacement in _SENSITIVE_PATTERNS:
        value = pattern.sub(replacement, value)
    return value


class JsonFormatter(logging.Formatter):
    """Una línea JSON por registro con el contexto de la petición en curso."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "module": record.name,
            "message": mask_secrets(self.formatMessage(record)),
        }
        for key, getter in _CONTEXT_GETTERS:
            payload[key] = getattr(record, key, None) or getter()
        for key in _EXTRA_FIELDS:
            value = getattr(record, key, None)
            if value is None:
                continue
            payload[key] = mask_secrets(value) if isinstance(value, str) else value
        if record.exc_info:
            payload["exc_info"] = mask_secrets(self.formatException(record.exc_info))
        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging(level: str | None = None) -> None:
    resolved_level = (level or LOG_LEVEL).upper()
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter("%(message)s"))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(resolved_level)
    root_logger.addHandler(handler)

    for logger_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(logger_name).setLevel(resolved_level)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
