import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set
from contextvars import ContextVar

# Context variables for correlation
request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
endpoint_var: ContextVar[Optional[str]] = ContextVar('endpoint', default=None)


class SecretMasker:
    """Masks credentials before they reach a log sink.

    Covers ``name: value`` pairs whose name ends in token, secret, key, password or
    auth, ``Bearer``/``Basic`` authorization values, and any literal registered
    with :meth:`add_literal`.
    """

    KEY_VALUE = re.compile(
        r'(?i)\b([a-z_]*(?:token|secret|key|password|auth))\s*[:=]\s*["\']?([\w\-.]{10,})["\']?'
    )
    AUTH_SCHEME = re.compile(r'(?i)\b(bearer|basic)\s+([\w\-.=+/]{10,})')

    def __init__(self):
        self.literals: Set[str] = set()

    def add_literal(self, secret: Optional[str]) -> None:
        """Always mask this exact value (e.g. the configured client secret)."""
        if secret and len(secret) >= 4:
            self.literals.add(secret)

    @staticmethod
    def _mask_value(secret: str) -> str:
        if len(secret) > 8:
            return secret[:4] + '*' * (len(secret) - 8) + secret[-4:]
        return '*' * len(secret)

    def mask_secrets(self, text: str) -> str:
        """Mask sensitive information in text."""
        if not text:
            return text

        for literal in self.literals:
            text = text.replace(literal, '*' * len(literal))
        text = self.KEY_VALUE.sub(lambda m: f"{m.group(1)}: {self._mask_value(m.group(2))}", text)
        return self.AUTH_SCHEME.sub(lambda m: f"{m.group(1)} {self._mask_value(m.group(2))}", text)

    def _mask_any(self, value: Any) -> Any:
        if isinstance(value, str):
            return self.mask_secrets(value)
        if isinstance(value, dict):
            return self.mask_dict(value)
        if isinstance(value, (list, tuple)):
            return [self._mask_any(item) for item in value]
        return value

    def mask_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Mask every string nested anywhere in ``data``."""
        return {key: self._mask_any(value) for key, value in data.items()}


# Shared so the configured client secret registered at startup is masked everywhere
secret_masker = SecretMasker()


class StructuredFormatter(logging.Formatter):
    """Renders each record as one JSON line carrying request correlation data."""

    def __init__(self, masker: Optional[SecretMasker] = None):
        super().__init__()
        self.masker = masker or secret_masker

    def format(self, record: logging.LogRecord) -> str:
        mask = self.masker.mask_secrets
        entry = {
            'ts': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'message': mask(record.getMessage()),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        request_id = request_id_var.get()
        if request_id:
            entry['requestId'] = request_id
        endpoint = endpoint_var.get()
        if endpoint:
            entry['endpoint'] = endpoint

        if record.exc_info:
            entry['exception'] = mask(self.formatException(record.exc_info))

        fields = getattr(record, 'fields', None)
        if fields:
            entry['fields'] = self.masker.mask_dict(fields)

        return json.dumps(entry, ensure_ascii=False, default=str)


class RequestContext:
    """Context manager binding correlation data to the current request."""

    def __init__(self, request_id: Optional[str] = None, endpoint: Optional[str] = None):
        self.request_id = request_id
        self.endpoint = endpoint
        self._tokens = []

    def __enter__(self):
        """Set correlation context."""
        if self.request_id is not None:
            self._tokens.append((request_id_var, request_id_var.set(self.request_id)))
        if self.endpoint is not None:
            self._tokens.append((endpoint_var, endpoint_var.set(self.endpoint)))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Restore correlation context."""
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens = []


def setup_logging(level: str = 'INFO', log_file: Optional[str] = None) -> logging.Logger:
    """Setup structured logging for the ``songscout`` logger tree."""
    logger = logging.getLogger('songscout')
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.propagate = False

    logger.handlers.clear()

    formatter = StructuredFormatter()

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str = 'songscout') -> logging.Logger:
    """Get logger with structured formatting."""
    return logging.getLogger(name)


def log_with_fields(logger: logging.Logger, level: str, message: str,
                    fields: Optional[Dict[str, Any]] = None, exc_info: bool = False, **kwargs):
    """Log message with additional fields."""
    extra_fields = dict(fields or {})
    extra_fields.update(kwargs)
    logger.log(
        getattr(logging, level.upper()), message,
        exc_info=exc_info,
        extra={'fields': extra_fields} if extra_fields else None,
        stacklevel=2,
    )


def log_error(logger: logging.Logger, message: str, error: Exception, **kwargs):
    """Log error with exception details."""
    log_with_fields(logger, 'ERROR', message, {
        'error_type': type(error).__name__,
        'error_message': str(error),
        **kwargs
    }, exc_info=True)


def log_upstream_failure(logger: logging.Logger, endpoint: str, error: Exception, **kwargs):
    """Log a catalog failure with enough context to diagnose it."""
    log_with_fields(logger, 'WARNING', f"Catalog failure on {endpoint}", {
        'endpoint': endpoint,
        'status': getattr(error, 'status_code', None),
        'error_type': type(error).__name__,
        'error_message': str(error),
        **kwargs
    })
