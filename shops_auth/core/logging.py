import logging
import re
import sys
from contextvars import ContextVar
from typing import Any

import structlog

request_id_var: ContextVar[str | None] = ContextVar('request_id', default=None)
user_id_var: ContextVar[str | None] = ContextVar('user_id', default=None)

_JWT_RE = re.compile(r'\beyJ[a-zA-Z0-9_\-]+\.[a-zA-Z0-9_\-]+\.[a-zA-Z0-9_\-]+\b')
_BEARER_RE = re.compile(r'(?i)\bBearer\s+([A-Za-z0-9_\-\.=]+)')
_KV_RE = re.compile(r'(?i)\b(password|secret|token|refresh_token|access_token)\b\s*=\s*([^\s,;&]+)')


def set_request_id(rid: str | None) -> None:
    request_id_var.set(rid)


def set_user_id(uid: str | None) -> None:
    user_id_var.set(uid)


def _redact_str(s: str) -> str:
    s = _JWT_RE.sub('***REDACTED***', s)
    s = _BEARER_RE.sub('Bearer ***REDACTED***', s)
    s = _KV_RE.sub(lambda m: f'{m.group(1)}=***REDACTED***', s)
    return s


def redact_event(_, __, event_dict: dict[str, Any]) -> dict[str, Any]:
    for k, v in list(event_dict.items()):
        if isinstance(v, str):
            event_dict[k] = _redact_str(v)
    return event_dict


def add_contextvars(_, __, event_dict: dict[str, Any]) -> dict[str, Any]:
    rid = request_id_var.get()
    uid = user_id_var.get()
    if rid:
        event_dict.setdefault('request_id', rid)
    if uid:
        event_dict.setdefault('user_id', uid)
    return event_dict


def configure_logging(level: str = 'INFO') -> None:
    """Route stdlib and structlog output through one JSON formatter on stdout."""
    root = logging.getLogger()
    root.setLevel(level.upper())

    shared = [
        structlog.processors.TimeStamper(fmt='iso', utc=True, key='ts'),
        structlog.stdlib.add_log_level,
        add_contextvars,
        redact_event,
        structlog.processors.format_exc_info,
    ]

    if not getattr(root, '_shops_auth_configured', False):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(
            structlog.stdlib.ProcessorFormatter(
                processor=structlog.processors.JSONRenderer(),
                foreign_pre_chain=shared,
            )
        )
        root.handlers.clear()
        root.addHandler(handler)
        root._shops_auth_configured = True

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.PositionalArgumentsFormatter(),
            *shared,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = 'shops_auth') -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
