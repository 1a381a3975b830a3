# Telemost Bot
# Copyright (C) 2026 StrateCode
# Licensed under the GNU Affero General Public License v3 (AGPLv3)

"""
Structured logging configuration for the Telemost bot.

Provides JSON-formatted logging with context fields and redaction of
OAuth tokens and other credentials.
"""

import logging
import json
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional
import re


class SensitiveDataFilter(logging.Filter):
    """
    Filter to redact sensitive data from log records.

    Yandex OAuth tokens, Slack tokens and credential fields must never
    appear in logs, whether they sit in the message, its args or an
    extra field.
    """

    PATTERNS = [
        # Yandex OAuth tokens
        (re.compile(r'\by0_[A-Za-z0-9_-]+'), 'REDACTED_OAUTH_TOKEN'),
        (re.compile(r'(OAuth\s+)[A-Za-z0-9._-]+'), r'\1REDACTED_TOKEN'),

        # Slack tokens
        (re.compile(r'(xoxb-[a-zA-Z0-9-]+)'), 'REDACTED_BOT_TOKEN'),
        (re.compile(r'(xoxp-[a-zA-Z0-9-]+)'), 'REDACTED_USER_TOKEN'),

        # Bearer tokens
        (re.compile(r'(Bearer\s+[a-zA-Z0-9._-]+)'), 'Bearer REDACTED_TOKEN'),

        # JSON field patterns
        (re.compile(r'("access_token"\s*:\s*")[^"]*(")', re.IGNORECASE), r'\1REDACTED\2'),
        (re.compile(r'("oauth_token"\s*:\s*")[^"]*(")', re.IGNORECASE), r'\1REDACTED\2'),
        (re.compile(r'("signing_secret"\s*:\s*")[^"]*(")', re.IGNORECASE), r'\1REDACTED\2'),
        (re.compile(r'("encryption_key"\s*:\s*")[^"]*(")', re.IGNORECASE), r'\1REDACTED\2'),
        (re.compile(r'("secret"\s*:\s*")[^"]*(")', re.IGNORECASE), r'\1REDACTED\2'),

        # Fragment / query string tokens
        (re.compile(r'(access_token=)[^&\s#]+'), r'\1REDACTED'),
    ]

    SENSITIVE_KEYS = {
        'token', 'secret', 'access_token', 'oauth_token', 'authorization',
        'signing_secret', 'slack_bot_token', 'bearer', 'credentials', 'encryption_key',
    }

    def filter(self, record: logging.LogRecord) -> bool:
        """Redact sensitive data from log message, args and extra fields."""
        if record.args:
            # Redact the rendered message; a token may be split between
            # the format string ("OAuth %s") and its args.
            try:
                record.msg = record.getMessage()
                record.args = None
            except (TypeError, ValueError):
                if isinstance(record.args, dict):
                    record.args = self._redact_dict(record.args)
                elif isinstance(record.args, (list, tuple)):
                    record.args = tuple(
                        self._redact_value(arg) for arg in record.args
                    )

        if isinstance(record.msg, str):
            record.msg = self._redact_value(record.msg)

        for key, value in list(record.__dict__.items()):
            if key in JSONFormatter.RESERVED_ATTRS or key.startswith('_'):
                continue
            if key.lower() in self.SENSITIVE_KEYS:
                setattr(record, key, 'REDACTED')
            elif isinstance(value, dict):
                setattr(record, key, self._redact_dict(value))
            elif isinstance(value, str):
                setattr(record, key, self._redact_value(value))

        return True

    def _redact_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively redact sensitive keys in dictionary."""
        result = {}
        for key, value in data.items():
            if str(key).lower() in self.SENSITIVE_KEYS:
                result[key] = 'REDACTED'
            elif isinstance(value, dict):
                result[key] = self._redact_dict(value)
            elif isinstance(value, list):
                result[key] = [
                    self._redact_dict(item) if isinstance(item, dict) else self._redact_value(item)
                    for item in value
                ]
            else:
                result[key] = self._redact_value(value)

        return result

    def _redact_value(self, value: Any) -> Any:
        """Redact sensitive patterns from string values."""
        if not isinstance(value, str):
            return value

        for pattern, replacement in self.PATTERNS:
            value = pattern.sub(replacement, value)

        return value


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    # LogRecord attributes that are not extra fields
    RESERVED_ATTRS = {
        'name', 'msg', 'args', 'created', 'filename', 'funcName', 'levelname',
        'levelno', 'lineno', 'module', 'msecs', 'pathname', 'process',
        'processName', 'relativeCreated', 'thread', 'threadName', 'exc_info',
        'exc_text', 'stack_info', 'getMessage', 'message', 'asctime', 'taskName'
    }

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)
            log_data['exception_type'] = record.exc_info[0].__name__ if record.exc_info[0] else None

        for key, value in record.__dict__.items():
            if key not in self.RESERVED_ATTRS and not key.startswith('_'):
                if key not in log_data:
                    log_data[key] = value

        return json.dumps(log_data, default=str)


def setup_logging(log_level: str = "INFO", log_format: str = "json") -> None:
    """
    Configure logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Format type ('json' or 'text')
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, log_level.upper()))

    if log_format.lower() == "json":
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    console_handler.setFormatter(formatter)
    console_handler.addFilter(SensitiveDataFilter())
    root_logger.addHandler(console_handler)

    # Third-party loggers are noisy at INFO
    logging.getLogger('slack_sdk').setLevel(logging.WARNING)
    logging.getLogger('httpx').setLevel(logging.WARNING)
    logging.getLogger('httpcore').setLevel(logging.WARNING)
    logging.getLogger('aiohttp.access').setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the given name.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)


def log_error_with_context(
    logger: logging.Logger,
    message: str,
    error: Exception,
    **context
) -> None:
    """
    Log an error with full context and stack trace.

    Args:
        logger: Logger instance
        message: Error message
        error: Exception that occurred
        **context: Additional context fields (operation, key, user_id, ...)
    """
    extra = {
        'error_type': type(error).__name__,
        'error_message': str(error),
        **context
    }

    if getattr(error, 'status_code', None) is not None:
        extra['status_code'] = error.status_code
    if getattr(error, 'response_body', None) is not None:
        extra['response_body'] = str(error.response_body)[:500]
    if hasattr(error, 'attempts'):
        extra['retry_attempts'] = error.attempts

    logger.error(
        message,
        extra=extra,
        exc_info=True
    )


def log_api_call(
    logger: logging.Logger,
    api_name: str,
    method: str,
    endpoint: str,
    duration_ms: float,
    status_code: Optional[int] = None,
    success: bool = True,
    **context
) -> None:
    """
    Log an API call with timing and status information.

    Args:
        logger: Logger instance
        api_name: Name of the API (e.g., "Telemost", "Slack")
        method: HTTP method
        endpoint: API endpoint
        duration_ms: Request duration in milliseconds
        status_code: HTTP status code
        success: Whether the call succeeded
        **context: Additional context fields
    """
    extra = {
        'api_name': api_name,
        'method': method,
        'endpoint': endpoint,
        'duration_ms': duration_ms,
        'success': success,
        **context
    }

    if status_code is not None:
        extra['status_code'] = status_code

    level = logging.INFO if success else logging.ERROR
    message = f"{api_name} API call: {method} {endpoint} - {'success' if success else 'failed'}"

    logger.log(level, message, extra=extra)
