"""
Runtime configuration, read from the environment at import time.
"""

import logging
import os
from dataclasses import dataclass, replace
from pathlib import Path


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, default))
    except (TypeError, ValueError):
        return default


HOST = os.environ.get('HOST', '127.0.0.1')
PORT = _env_int('PORT', 3000)
OUTPUT_DIR = Path(os.environ.get('OUTPUT_DIR', Path.cwd() / 'output'))

# Jobs are dropped this long after creation, whatever their status
JOB_RETENTION_SECONDS = _env_int('JOB_RETENTION_SECONDS', 3600)

HEADLESS = _env_bool('HEADLESS', True)
BROWSER_EXECUTABLE_PATH = os.environ.get('BROWSER_EXECUTABLE_PATH') or None
LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').upper()

DEFAULT_MAX_RECORDS = 20
MAX_RECORDS_LIMIT = 100
PREVIEW_SIZE = 20


@dataclass(frozen=True)
class Timings:
    """Timeouts (ms for navigation, seconds elsewhere) and settle delays."""

    nav_timeout_ms: int = 90000
    detail_timeout_ms: int = 30000
    eval_timeout: float = 20.0
    after_search_delay: float = 5.0
    after_consent_delay: float = 2.0
    scroll_delay: float = 2.0
    after_detail_delay: float = 2.0
    pause_every: int = 25
    pause_range: tuple = (15.0, 30.0)

    @classmethod
    def instant(cls) -> 'Timings':
        """Same timeouts, no sleeping. Used by tests."""
        return replace(cls(), after_search_delay=0, after_consent_delay=0, scroll_delay=0,
                       after_detail_delay=0, pause_range=(0.0, 0.0))


def configure_logging(level: str = LOG_LEVEL):
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )
