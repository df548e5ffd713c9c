"""
Structured logging: JSON records carrying request context, with secrets masked

pdptool output is logged verbatim in ``extra`` fields and may echo keys or
connection strings, so masking covers those fields as well as the message.
"""
import json
import logging
import re
import sys
from contextvars import ContextVar
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Any, Dict, List, Optional

from pdpgate.core.config import get_settings
from pdpgate.core.metrics import log_messages_total

# Per-request fields merged into every JSON record
request_context: ContextVar[Dict[str, Any]] = ContextVar('request_context', default={})

_STANDARD_ATTRS = frozenset(vars(logging.LogRecord('', 0, '', 0, '', (), None))) | {'message', 'asctime'}

_BACKEND_DIR = Path(__file__).resolve().parents[2]

_ROTATIONS = ('midnight', 'W0', 'W1', 'W2', 'W3', 'W4', 'W5', 'W6')


class SensitiveDataFilter(logging.Filter):
    """Mask credentials in messages and string ``extra`` fields"""

    PATTERNS = [
        (re.compile(r'(password|passwd|secret|token|private[_-]?key)(["\']?\s*[:=]\s*["\']?)[^"\'\s&,]+', re.I),
         r'\1\2***'),
        (re.compile(r'((?:postgres(?:ql)?(?:\+\w+)?|mysql)://[^:/\s]+):[^@\s]+@', re.I), r'\1:***@'),
        (re.compile(r'Bearer\s+[^\s"]+'), 'Bearer ***'),
        (re.compile(r'-----BEGIN [A-Z ]*PRIVATE KEY-----.*?-----END [A-Z ]*PRIVATE KEY-----', re.S),
         '[private key redacted]'),
    ]

    def __init__(self, enabled: bool = True):
        super().__init__()
        self.enabled = enabled

    def mask(self, value: str) -> str:
        for pattern, replacement in self.PATTERNS:
            value = pattern.sub(replacement, value)
        return value

    def filter(self, record: logging.LogRecord) -> bool:
        if not self.enabled:
            return True

        if isinstance(record.msg, str):
            record.msg = self.mask(record.msg)
        if isinstance(record.args, tuple):
            record.args = tuple(self.mask(a) if isinstance(a, str) else a for a in record.args)
        for key, value in list(record.__dict__.items()):
            if key not in _STANDARD_ATTRS and isinstance(value, str):
                setattr(record, key, self.mask(value))
        return True


class ContextualFormatter(logging.Formatter):
    """One JSON object per record: core fields, request context, then extras"""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            'timestamp': self.formatTime(record, self.datefmt),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'location': f"{record.module}:{record.funcName}:{record.lineno}",
        }
        payload.update(request_context.get({}))

        for key, value in record.__dict__.items():
            if key in _STANDARD_ATTRS or key.startswith('_'):
                continue
            payload[key] = value

        if record.exc_info:
            payload['exception'] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


class _LevelCounter(logging.Handler):
    """Feeds log_messages_total"""

    def emit(self, record: logging.LogRecord):
        log_messages_total.labels(level=record.levelname).inc()


class LoggingConfig:
    """Process-wide logging setup and request context helpers"""

    _configured = False

    @staticmethod
    def _levels(settings, overrides: Optional[Dict[str, str]]) -> Dict[str, str]:
        levels = {
            "root": settings.log_level,
            "pdpgate": settings.log_level,
            "sqlalchemy.engine": "INFO" if settings.log_sqlalchemy else "WARNING",
            "sqlalchemy.pool": "WARNING",
            "uvicorn.access": "INFO" if settings.log_uvicorn_access else "WARNING",
            "uvicorn.error": "INFO",
        }
        if settings.log_module_levels:
            try:
                levels.update(json.loads(settings.log_module_levels))
            except ValueError:
                sys.stderr.write("LOG_MODULE_LEVELS is not valid JSON; ignoring it\n")
        levels.update(overrides or {})
        return levels

    @staticmethod
    def _handlers(settings, formatter: logging.Formatter) -> List[logging.Handler]:
        handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]

        if settings.log_file_enabled:
            log_path = Path(settings.log_file_path)
            if not log_path.is_absolute():
                log_path = _BACKEND_DIR / log_path
            log_path.parent.mkdir(parents=True, exist_ok=True)
            when = settings.log_file_rotation if settings.log_file_rotation in _ROTATIONS else 'midnight'
            handlers.append(TimedRotatingFileHandler(
                filename=str(log_path),
                when=when,
                backupCount=settings.log_file_retention,
                encoding='utf-8',
            ))

        masking = SensitiveDataFilter(enabled=not settings.log_sensitive_data)
        for handler in handlers:
            handler.setFormatter(formatter)
            handler.addFilter(masking)
        return handlers

    @classmethod
    def configure(cls, module_levels: Optional[Dict[str, str]] = None):
        """Install handlers once; later calls are no-ops"""
        if cls._configured:
            return

        settings = get_settings()
        if settings.log_format.lower() == "json":
            formatter = ContextualFormatter(datefmt='%Y-%m-%dT%H:%M:%S')
        else:
            formatter = logging.Formatter(
                '%(asctime)s %(levelname)s [%(name)s] %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )

        levels = cls._levels(settings, module_levels)
        logging.basicConfig(
            level=levels.pop("root").upper(),
            handlers=cls._handlers(settings, formatter),
            force=True,
        )
        for module, level in levels.items():
            logger = logging.getLogger(module)
            logger.setLevel(level.upper())
            # these libraries attach their own handlers when echo/access logs are on
            if module.startswith(("sqlalchemy", "uvicorn")):
                logger.propagate = False

        logging.getLogger().addHandler(_LevelCounter())
        cls._configured = True

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        if not cls._configured:
            cls.configure()
        return logging.getLogger(name)

    @classmethod
    def set_context(cls, **kwargs):
        """Add fields to the current request's log context"""
        ctx = dict(request_context.get({}))
        ctx.update(kwargs)
        request_context.set(ctx)

    @classmethod
    def clear_context(cls):
        request_context.set({})


LoggingConfig.configure()
