"""Logging setup: plain or JSON lines, with the call's tenant attached."""

from __future__ import annotations

import json
import logging
import sys

from crm_service.tenant import current_tenant

_PLAIN_FORMAT = "%(asctime)s %(name)s %(levelname)s [tenant=%(tenant_id)s] %(message)s"
_CONTEXT_KEYS = ("tenant_id", "method", "duration_ms", "code")


class TenantLogFilter(logging.Filter):
    """Stamps the tenant bound to the current call onto every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "tenant_id", None):
            ctx = current_tenant()
            record.tenant_id = ctx.tenant_id if ctx else "-"
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in _CONTEXT_KEYS:
            value = getattr(record, key, None)
            if value not in (None, "", "-"):
                entry[key] = value
        if record.exc_info and record.exc_info[0]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO", json_format: bool = False) -> logging.Handler:
    """Install a single stdout handler on the root logger."""
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(TenantLogFilter())
    handler.setFormatter(JsonFormatter() if json_format else logging.Formatter(_PLAIN_FORMAT))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level.upper())

    # grpc and sqlalchemy are chatty at INFO
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("grpc").setLevel(logging.WARNING)
    return handler
