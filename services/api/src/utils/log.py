"""
Service logging.

- development: human-readable, coloured lines
- staging/production: one JSON object per line for log aggregation

The format is picked from ``ENVIRONMENT``; library modules keep using plain
``logging.getLogger(__name__)`` and inherit the root handler set up here.
"""

import json
import logging
import os
import sys
from datetime import datetime

_initialized = False


class ColoredFormatter(logging.Formatter):
    COLORS = {
        'DEBUG': '\033[36m',      # Cyan
        'INFO': '\033[32m',       # Green
        'WARNING': '\033[33m',    # Yellow
        'ERROR': '\033[31m',      # Red
        'CRITICAL': '\033[35m',   # Magenta
        'ENDC': '\033[0m',
    }

    def format(self, record):
        level_color = self.COLORS.get(record.levelname, '')
        end_color = self.COLORS['ENDC']
        timestamp = datetime.fromtimestamp(record.created).strftime('%H:%M:%S')
        colored_level = f"{level_color}{record.levelname:8s}{end_color}"
        module_name = record.name if record.name != '__main__' else 'main'

        line = f"[{timestamp}] {colored_level} [{module_name}] {record.getMessage()}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class JsonFormatter(logging.Formatter):
    def format(self, record):
        log_entry = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'module': record.name,
            'message': record.getMessage(),
            'environment': os.getenv('ENVIRONMENT', 'unknown'),
        }
        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)
        return json.dumps(log_entry)


def get_environment() -> str:
    return os.getenv('ENVIRONMENT', 'development').lower()


def build_formatter(environment: str = None) -> logging.Formatter:
    environment = environment or get_environment()
    if environment in ['production', 'prod', 'staging']:
        return JsonFormatter()
    return ColoredFormatter()


def init(level: str = "INFO") -> None:
    """Configure the root logger once; later calls only adjust the level."""
    global _initialized
    root = logging.getLogger()
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))
    if _initialized:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(build_formatter())
    root.handlers.clear()
    root.addHandler(handler)

    # APScheduler logs every job run at INFO
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    _initialized = True


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
