"""
Data shapes shared by the scraper, the validator and the job manager.

Records stay plain dicts (they go straight to JSON and to pandas); the query,
progress events and jobs are dataclasses.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Mapping

from .config import DEFAULT_MAX_RECORDS, MAX_RECORDS_LIMIT, PREVIEW_SIZE
from .errors import InvalidQueryError

RAW_FIELDS = ('category', 'name', 'url', 'address', 'phone', 'website', 'rating', 'reviews')
VALIDATED_FIELDS = ('category', 'name', 'address', 'phone', 'email', 'website',
                    'rating', 'reviews', 'url', 'iceBreaker')

LOG_BUFFER_SIZE = 500


def blank_record(category: str = '') -> dict:
    record = {k: '' for k in RAW_FIELDS}
    record['category'] = category
    return record


def clamp_max_records(value: Any) -> int:
    try:
        n = int(value)
    except (TypeError, ValueError):
        n = DEFAULT_MAX_RECORDS
    return min(max(n, 1), MAX_RECORDS_LIMIT)


# =============================================================================
#  QUERY
# =============================================================================

@dataclass(frozen=True)
class ExtractionQuery:
    category: str
    region: str
    country: str
    max_records: int = DEFAULT_MAX_RECORDS

    def __post_init__(self):
        # Strip and check the text fields, clamp max_records into [1, 100]
        for name in ('category', 'region', 'country'):
            object.__setattr__(self, name, str(getattr(self, name) or '').strip())
        missing = [name for name in ('category', 'region', 'country') if not getattr(self, name)]
        if missing:
            raise InvalidQueryError(f"Missing required fields: {', '.join(missing)}")
        object.__setattr__(self, 'max_records', clamp_max_records(self.max_records))

    @classmethod
    def create(cls, category: str, region: str, country: str, max_records: Any = None) -> 'ExtractionQuery':
        return cls(category, region, country, max_records)

    @classmethod
    def from_mapping(cls, data: Mapping) -> 'ExtractionQuery':
        """Build from a request body. Accepts 'state' for region and 'leads' for max_records."""
        if not isinstance(data, Mapping):
            raise InvalidQueryError('Request body must be a JSON object')
        region = data.get('region') or data.get('state') or ''
        max_records = data.get('leads', data.get('max_records'))
        return cls.create(str(data.get('category') or ''), str(region), str(data.get('country') or ''),
                          max_records)

    @property
    def search_text(self) -> str:
        return f"{self.category} in {self.region}, {self.country}"


# =============================================================================
#  PROGRESS EVENTS
# =============================================================================

class ProgressStatus(str, Enum):
    LAUNCHING = 'launching'
    NAVIGATING = 'navigating'
    SCROLLING = 'scrolling'
    FALLBACK = 'fallback'
    EXTRACTING = 'extracting'
    COMPLETE = 'complete'


@dataclass(frozen=True)
class ProgressEvent:
    status: ProgressStatus
    message: str
    current: int | None = None
    total: int | None = None
    count: int | None = None

    def __post_init__(self):
        # Raises ValueError for anything outside the enum
        object.__setattr__(self, 'status', ProgressStatus(self.status))


_CLOSED = object()


class ProgressChannel:
    """One-way stream of ProgressEvents from the scraper to a single consumer."""

    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue()
        self.closed = False

    def emit(self, event: ProgressEvent):
        if not isinstance(event, ProgressEvent):
            raise TypeError(f"expected ProgressEvent, got {type(event).__name__}")
        if self.closed:
            return
        self._queue.put_nowait(event)

    def close(self):
        if not self.closed:
            self.closed = True
            self._queue.put_nowait(_CLOSED)

    async def __aiter__(self):
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item


# =============================================================================
#  JOBS
# =============================================================================

class JobStatus(str, Enum):
    STARTING = 'starting'
    SCRAPING = 'scraping'
    VALIDATING = 'validating'
    GENERATING = 'generating'
    COMPLETE = 'complete'
    ERROR = 'error'

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETE, JobStatus.ERROR)


@dataclass
class Job:
    id: str
    query: ExtractionQuery
    created_at: float
    status: JobStatus = JobStatus.STARTING
    progress: int = 0
    message: str = 'Initializing scraper...'
    result_count: int = 0
    results: list = field(default_factory=list)
    artifact_path: Path | None = None
    error: str | None = None
    log_lines: list = field(default_factory=list)

    def log(self, msg: str):
        self.log_lines.append(msg)
        if len(self.log_lines) > LOG_BUFFER_SIZE:
            self.log_lines = self.log_lines[-LOG_BUFFER_SIZE:]

    def snapshot(self) -> dict:
        """JSON-ready copy of the job for status polling."""
        complete = self.status == JobStatus.COMPLETE
        return {
            'id': self.id,
            'category': self.query.category,
            'region': self.query.region,
            'country': self.query.country,
            'status': self.status.value,
            'progress': self.progress,
            'message': self.message,
            'resultCount': self.result_count,
            'results': [dict(r) for r in self.results[:PREVIEW_SIZE]] if complete else [],
            'error': self.error,
            'log': list(self.log_lines[-50:]),
            'createdAt': datetime.fromtimestamp(self.created_at, timezone.utc).isoformat(),
        }
