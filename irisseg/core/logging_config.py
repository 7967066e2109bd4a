"""Logging configuration with correlation IDs and payload-safe formatting.

Every analysis request runs inside a ``CorrelationContext`` so the log lines
emitted by the bridge, the dispatch adapter and the engine diagnostics of one
request can be grepped together.
"""
import json
import logging
import logging.handlers
import re
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from ..config.settings import Config

NO_CORRELATION_ID = 'no-correlation-id'
LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5

# Request scoped; asyncio tasks inherit a copy on creation
correlation_id: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)

# Payloads are whole images; one leaked line can be megabytes
_REDACTIONS = [
    (re.compile(r'data:image/[a-zA-Z0-9.+-]+;base64,[A-Za-z0-9+/=]+'), '[IMAGE_DATA_REDACTED]'),
    (re.compile(r'[A-Za-z0-9+/]{200,}={0,2}'), '[BASE64_REDACTED]'),
]


def redact(text: str) -> str:
    """Replace encoded image data in ``text`` with placeholders."""
    for pattern, replacement in _REDACTIONS:
        text = pattern.sub(replacement, text)
    return text


def get_correlation_id() -> Optional[str]:
    return correlation_id.get()


class CorrelationIDFilter(logging.Filter):
    """Stamp each record with the active request's correlation ID."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id.get() or NO_CORRELATION_ID
        return True


class HumanReadableFormatter(logging.Formatter):
    """Single-line console format."""

    def __init__(self, include_correlation_id: bool = True):
        fields = ['%(asctime)s', '%(levelname)-8s', '%(name)s']
        if include_correlation_id:
            fields.append('[%(correlation_id)s]')
        super().__init__(' '.join(fields) + ' %(message)s')

    def format(self, record: logging.LogRecord) -> str:
        return redact(super().format(record))


class StructuredFormatter(logging.Formatter):
    """One JSON object per line, for log shippers."""

    _STANDARD_ATTRS = set(vars(logging.LogRecord('', 0, '', 0, '', None, None))) | {
        'message', 'asctime', 'correlation_id', 'taskName'
    }

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            'timestamp': datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'correlation_id': getattr(record, 'correlation_id', NO_CORRELATION_ID),
            'location': f'{record.module}:{record.funcName}:{record.lineno}',
        }
        if record.exc_info and record.exc_info[0] is not None:
            entry['exception'] = {
                'type': record.exc_info[0].__name__,
                'traceback': self.formatException(record.exc_info),
            }

        extra = {k: v for k, v in vars(record).items() if k not in self._STANDARD_ATTRS}
        if extra:
            entry['extra'] = extra
        return redact(json.dumps(entry, default=str))


class LoggingManager:
    """Owns the root handlers installed for one CLI or GUI run."""

    def __init__(self):
        self._handlers: List[logging.Handler] = []

    @property
    def configured(self) -> bool:
        return bool(self._handlers)

    def configure(self, config: 'Config', application_name: str = 'irisseg') -> None:
        """Install console and optional rotating file handlers from ``config``.

        Console output goes to stderr so ``irisseg analyze --json`` keeps
        stdout machine readable. File logging writes ``<name>.log`` plus an
        errors-only ``<name>-errors.log`` under ``config.log_dir``.
        """
        if self.configured:
            return

        level = getattr(logging, config.log_level.upper(), logging.INFO)
        formatter: logging.Formatter = (
            StructuredFormatter() if config.structured_logging else HumanReadableFormatter()
        )

        root_logger = logging.getLogger()
        root_logger.setLevel(level)
        root_logger.handlers.clear()

        self._attach(logging.StreamHandler(sys.stderr), level, formatter)

        if config.enable_file_logging:
            log_dir = Path(config.log_dir)
            log_dir.mkdir(parents=True, exist_ok=True)
            for filename, handler_level in ((f'{application_name}.log', level),
                                            (f'{application_name}-errors.log', logging.ERROR)):
                handler = logging.handlers.RotatingFileHandler(
                    log_dir / filename,
                    maxBytes=LOG_FILE_MAX_BYTES,
                    backupCount=LOG_FILE_BACKUPS,
                    encoding='utf-8',
                )
                self._attach(handler, handler_level, formatter)

        # Quiet third-party chatter unless we are debugging
        for name in ('httpx', 'httpcore', 'asyncio', 'PIL'):
            logging.getLogger(name).setLevel(max(level, logging.WARNING))

        logging.getLogger(__name__).debug(
            f"Logging configured: level={config.log_level}, files={config.enable_file_logging}"
        )

    def _attach(self, handler: logging.Handler, level: int, formatter: logging.Formatter) -> None:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        handler.addFilter(CorrelationIDFilter())
        logging.getLogger().addHandler(handler)
        self._handlers.append(handler)

    def shutdown(self) -> None:
        """Detach and close every handler this manager installed."""
        root_logger = logging.getLogger()
        for handler in self._handlers:
            root_logger.removeHandler(handler)
            handler.close()
        self._handlers.clear()


logging_manager = LoggingManager()


def configure_logging_from_config(config: 'Config') -> None:
    logging_manager.configure(config)


class CorrelationContext:
    """Scope a correlation ID to a ``with`` block.

    Resets through the ContextVar token, so nested and concurrent asyncio
    tasks restore exactly the value they saw on entry.
    """

    def __init__(self, corr_id: Optional[str] = None):
        self.corr_id = corr_id or uuid.uuid4().hex[:12]
        self._token = None

    def __enter__(self) -> str:
        self._token = correlation_id.set(self.corr_id)
        return self.corr_id

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        correlation_id.reset(self._token)
