"""
Client for a running lead scraper server (see app.py).
"""

import re
import time
from pathlib import Path
from typing import Callable
from urllib.parse import unquote

import requests

from .errors import LeadScraperError

TERMINAL_STATUSES = ('complete', 'error')


class ApiError(LeadScraperError):
    """Non-2xx response from the server; message is the server's 'error' field."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code


class LeadScraperClient:
    """Thin wrapper around the /scrape, /status and /download endpoints."""

    def __init__(self, base_url: str, timeout: float = 15, session: requests.Session | None = None):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        r = self.session.request(method, f'{self.base_url}{path}', timeout=self.timeout, **kwargs)
        if r.status_code >= 400:
            try:
                message = (r.json() or {}).get('error', '')
            except ValueError:
                message = r.text[:200]
            raise ApiError(r.status_code, message or f'HTTP {r.status_code}')
        return r

    def start(self, category: str, region: str, country: str, leads: int = 20) -> str:
        r = self._request('POST', '/scrape', json={
            'category': category, 'region': region, 'country': country, 'leads': leads,
        })
        return r.json()['jobId']

    def status(self, job_id: str) -> dict:
        return self._request('GET', f'/status/{job_id}').json()

    def wait(self, job_id: str, poll_interval: float = 2.0, on_update: Callable[[dict], None] | None = None,
             timeout: float | None = None) -> dict:
        """Poll until the job completes or fails; returns the last status."""
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            state = self.status(job_id)
            if on_update:
                on_update(state)
            if state.get('status') in TERMINAL_STATUSES:
                return state
            if deadline is not None and time.monotonic() > deadline:
                raise TimeoutError(f'Job {job_id} still {state.get("status")} after {timeout}s')
            time.sleep(poll_interval)

    def download(self, job_id: str, dest_dir: str | Path = '.') -> Path:
        r = self._request('GET', f'/download/{job_id}', stream=True)
        disposition = r.headers.get('Content-Disposition', '')
        m = re.search(r"filename\*?=(?:UTF-8'')?\"?([^\";]+)", disposition)
        name = Path(unquote(m.group(1))).name if m else f'{job_id}.xlsx'
        dest = Path(dest_dir)
        dest.mkdir(parents=True, exist_ok=True)
        path = dest / name
        with open(path, 'wb') as f:
            for chunk in r.iter_content(chunk_size=65536):
                f.write(chunk)
        return path
