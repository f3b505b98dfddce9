"""Logging configuration for the backend."""
import logging
import logging.handlers
import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from pythonjsonlogger import jsonlogger

class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter for structured logging."""

    def add_fields(self, log_record, record, message_dict):
        super(CustomJsonFormatter, self).add_fields(log_record, record, message_dict)
        log_record['timestamp'] = datetime.now(timezone.utc).isoformat()
        log_record['level'] = record.levelname
        log_record['logger'] = record.name
        log_record['module'] = record.module
        log_record['function'] = record.funcName
        log_record['line'] = record.lineno

class StructuredLogRecorder:
    """Adapter exposing ``record(level, message, fields)`` over a stdlib logger.

    Fields are attached to the log record as ``context`` so the JSON handler
    writes them as structured data; the plain text handlers get them appended
    as ``key=value`` pairs.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger('product_creation')

    def record(self, level: Union[str, int], message: str, fields: Optional[Dict[str, Any]] = None) -> None:
        if isinstance(level, str):
            level = logging.getLevelName(level.upper())
            if not isinstance(level, int):
                level = logging.INFO

        fields = fields or {}
        text = message
        if fields:
            text = f"{message} | " + " ".join(f"{key}={value}" for key, value in fields.items())

        self.logger.log(level, text, extra={'context': fields})

def setup_app_logging(app, log_path, level='INFO'):
    """Setup application-wide logging."""
    os.makedirs(log_path, exist_ok=True)

    # Remove default handlers
    app.logger.handlers = []

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    console_handler.setFormatter(console_formatter)

    # File handler with rotation
    file_handler = logging.handlers.RotatingFileHandler(
        os.path.join(log_path, 'app.log'),
        maxBytes=10485760,  # 10MB
        backupCount=10
    )
    file_handler.setLevel(level)
    file_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    file_handler.setFormatter(file_formatter)

    # JSON file handler for structured logs
    json_handler = logging.handlers.RotatingFileHandler(
        os.path.join(log_path, 'app.json.log'),
        maxBytes=10485760,  # 10MB
        backupCount=10
    )
    json_handler.setLevel(level)
    json_handler.setFormatter(CustomJsonFormatter())

    error_handler = logging.handlers.RotatingFileHandler(
        os.path.join(log_path, 'errors.log'),
        maxBytes=10485760,  # 10MB
        backupCount=10
    )
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(file_formatter)

    handlers = [console_handler, file_handler, json_handler, error_handler]
    for handler in handlers:
        app.logger.addHandler(handler)
    app.logger.setLevel(level)

    # Service modules log through their own named loggers
    for name in ('services', 'repositories', 'database', 'product_creation'):
        named_logger = logging.getLogger(name)
        named_logger.handlers = []
        for handler in handlers:
            named_logger.addHandler(handler)
        named_logger.setLevel(level)
        named_logger.propagate = False

    app.logger.info('Application logging configured')
