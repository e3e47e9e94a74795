import asyncio

import pytest

from lead_scraper.errors import InvalidQueryError
from lead_scraper.models import (
    ExtractionQuery,
    Job,
    JobStatus,
    ProgressChannel,
    ProgressEvent,
    ProgressStatus,
)


@pytest.mark.parametrize('requested, expected', [
    (5, 5), (0, 1), (-3, 1), (100, 100), (250, 100), ('7', 7), ('lots', 20), (None, 20),
])
def test_query_clamps_max_records(requested, expected):
    q = ExtractionQuery.create('Bakeries', 'Kerala', 'India', requested)
    assert q.max_records == expected


@pytest.mark.parametrize('category, region, country', [
    ('', 'Kerala', 'India'), ('Bakeries', '  ', 'India'), ('Bakeries', 'Kerala', None),
])
def test_query_requires_text_fields(category, region, country):
    with pytest.raises(InvalidQueryError):
        ExtractionQuery.create(category, region, country, 5)


def test_query_from_mapping_accepts_state_and_leads():
    q = ExtractionQuery.from_mapping({'category': ' Dentists ', 'state': 'California',
                                      'country': 'USA', 'leads': '12'})
    assert q == ExtractionQuery('Dentists', 'California', 'USA', 12)
    assert q.search_text == 'Dentists in California, USA'


def test_query_from_mapping_rejects_non_mapping():
    with pytest.raises(InvalidQueryError):
        ExtractionQuery.from_mapping(['Dentists'])


def test_progress_event_status_is_enforced():
    event = ProgressEvent('scrolling', 'Found 3 businesses...', count=3)
    assert event.status is ProgressStatus.SCROLLING
    with pytest.raises(ValueError):
        ProgressEvent('dancing', 'nope')


def test_progress_channel_delivers_in_order_until_closed():
    async def scenario():
        channel = ProgressChannel()
        channel.emit(ProgressEvent(ProgressStatus.LAUNCHING, 'a'))
        channel.emit(ProgressEvent(ProgressStatus.EXTRACTING, 'b', current=1, total=2))
        channel.close()
        channel.emit(ProgressEvent(ProgressStatus.COMPLETE, 'after close'))
        return [e.message async for e in channel]

    assert asyncio.run(scenario()) == ['a', 'b']


def test_progress_channel_rejects_untyped_events():
    async def scenario():
        ProgressChannel().emit({'status': 'scrolling', 'message': 'x'})

    with pytest.raises(TypeError):
        asyncio.run(scenario())


def test_job_snapshot_hides_results_until_complete():
    job = Job(id='j1', query=ExtractionQuery('Bakeries', 'Kerala', 'India', 5), created_at=0.0)
    job.results = [{'name': f'Shop {i}'} for i in range(30)]
    assert job.snapshot()['results'] == []
    job.status = JobStatus.COMPLETE
    snap = job.snapshot()
    assert len(snap['results']) == 20
    assert snap['status'] == 'complete'
    assert snap['createdAt'].startswith('1970-01-01')


def test_job_log_is_bounded():
    job = Job(id='j1', query=ExtractionQuery('Bakeries', 'Kerala', 'India', 5), created_at=0.0)
    for i in range(600):
        job.log(f'line {i}')
    assert len(job.log_lines) == 500
    assert job.log_lines[-1] == 'line 599'
    assert len(job.snapshot()['log']) == 50


def test_direct_construction_is_validated_and_clamped():
    q = ExtractionQuery(' Bakeries ', 'Kerala', 'India', 500)
    assert q.category == 'Bakeries'
    assert q.max_records == 100
    assert ExtractionQuery('Bakeries', 'Kerala', 'India', 0).max_records == 1
    with pytest.raises(InvalidQueryError, match='category, region, country'):
        ExtractionQuery('', '  ', None, 5)
