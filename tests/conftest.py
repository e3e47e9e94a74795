import pytest

from lead_scraper.config import Timings


@pytest.fixture
def timings() -> Timings:
    return Timings.instant()
