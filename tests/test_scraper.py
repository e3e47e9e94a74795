import asyncio

import pytest

from fakes import FakeDriver, listing, place_url
from lead_scraper import scraper, ui_selectors as ui
from lead_scraper.errors import CollectionError, DriverLaunchError, NoResultsError
from lead_scraper.models import ExtractionQuery, ProgressChannel, ProgressStatus
from lead_scraper.scraper import CandidateSet, MapsScraper, extract, merge_details, parse_details


def _query(n=5):
    return ExtractionQuery.create('Bakeries', 'Kerala', 'India', n)


def _run(coro):
    return asyncio.run(coro)


async def _extract_with_events(query, driver, timings):
    channel = ProgressChannel()
    task = asyncio.ensure_future(extract(query, driver.factory(), channel=channel, timings=timings))
    events = [e async for e in channel]
    return await task, events


# =============================================================================
#  Field parsing
# =============================================================================

def test_parse_details_strips_labels_and_unwraps_links():
    info = {
        'address': 'Address: 12 MG Road, Kochi ',
        'phone': 'tel:+914842345678',
        'website': '/url?q=https%3A%2F%2Fcrumbs.in%2F&sa=U',
        'rating': '4.6 stars',
        'reviews': '1,234 reviews',
    }
    assert parse_details(info) == {
        'address': '12 MG Road, Kochi',
        'phone': '+914842345678',
        'website': 'https://crumbs.in/',
        'rating': '4.6',
        'reviews': '1234',
    }


def test_parse_details_handles_phone_label_and_blanks():
    out = parse_details({'phone': 'Phone: 0484 234 5678'})
    assert out['phone'] == '0484 234 5678'
    assert out['address'] == '' and out['website'] == ''


def test_merge_details_never_erases_list_data():
    lead = listing(1, rating='4.1')
    merged = merge_details(lead, {'address': '', 'phone': '123', 'rating': '4.5', 'website': ''})
    assert merged['address'] == lead['address']
    assert merged['phone'] == '123'
    assert merged['rating'] == '4.5'
    assert lead['phone'] == ''


# =============================================================================
#  Candidate set
# =============================================================================

def test_candidate_set_first_seen_wins_and_fills_blanks():
    cs = CandidateSet()
    assert cs.add(listing(1, address=''))
    assert not cs.add(listing(1, name='Shop One Renamed', address='1 Beach Rd'))
    assert not cs.add(listing(1))
    records = cs.records()
    assert len(records) == 1
    assert records[0]['name'] == 'Shop 1'
    assert records[0]['address'] == '1 Beach Rd'


def test_candidate_set_remembers_every_url_a_business_was_seen_under():
    cs = CandidateSet()
    other = place_url(99)
    assert cs.add(listing(1))
    assert not cs.add(listing(1, url=other))
    assert not cs.add(listing(1, url=other, address=''))
    assert len(cs) == 1


def test_candidate_set_skips_nameless_and_keys_urlless_by_name_address():
    cs = CandidateSet()
    assert not cs.add(listing(1, name='   '))
    assert cs.add(listing(2, url=''))
    assert not cs.add(listing(2, url='', name='SHOP 2'))
    assert cs.add(listing(3, url='', address='elsewhere'))
    assert len(cs) == 2


# =============================================================================
#  Collection
# =============================================================================

def test_collection_stops_at_cap(timings):
    driver = FakeDriver(listings={'maps_list': [[listing(i) for i in range(1, 8)]]})
    leads = _run(MapsScraper(_query(5), driver, timings=timings).collect())
    assert [l['name'] for l in leads] == [f'Shop {i}' for i in range(1, 6)]
    assert driver.scrolls == 0


def test_collection_scrolls_until_stagnant(timings):
    batches = [[listing(1), listing(2)], [listing(1), listing(2), listing(3)]]
    driver = FakeDriver(listings={'maps_list': batches})
    leads = _run(MapsScraper(_query(50), driver, timings=timings).collect())
    assert len(leads) == 3
    # one growing read, one more growing read, then 4 stagnant reads
    assert driver.reads['maps_list'] == 6
    assert driver.scrolls == 5


def test_stagnation_streak_resets_when_the_list_grows_again(timings):
    one, two = [listing(1)], [listing(1), listing(2)]
    # grow, two stagnant reads, grow again, then stagnant until the limit
    driver = FakeDriver(listings={'maps_list': [one, one, one, two]})
    leads = _run(MapsScraper(_query(50), driver, timings=timings).collect())
    assert [l['name'] for l in leads] == ['Shop 1', 'Shop 2']
    assert driver.reads['maps_list'] == 4 + scraper.MAPS_LIST.stagnation_limit
    assert driver.scrolls == 3 + scraper.MAPS_LIST.stagnation_limit


def test_extract_caps_results_for_directly_built_query(timings):
    driver = FakeDriver(listings={'maps_list': [[listing(i) for i in range(1, 151)]]})
    results = _run(extract(ExtractionQuery('Bakeries', 'Kerala', 'India', 500), driver.factory(), timings=timings))
    assert len(results) == 100


def test_collection_is_bounded_by_max_scrolls(timings):
    batches = [[listing(i) for i in range(1, n + 1)] for n in range(1, 40)]
    driver = FakeDriver(listings={'maps_list': batches})
    leads = _run(MapsScraper(_query(100), driver, timings=timings).collect())
    assert driver.reads['maps_list'] == scraper.MAPS_LIST.max_scrolls
    assert len(leads) == scraper.MAPS_LIST.max_scrolls


def test_collection_drops_non_place_links_on_maps_views(timings):
    items = [listing(1), listing(2, url='https://www.google.com/maps/dir/x'), listing(3, name='')]
    driver = FakeDriver(listings={'maps_list': [items]})
    leads = _run(MapsScraper(_query(10), driver, timings=timings).collect())
    assert [l['name'] for l in leads] == ['Shop 1']


def test_consent_wall_is_dismissed(timings):
    driver = FakeDriver(listings={'maps_list': [[listing(1)]]}, consent_selector=ui.CONSENT_BUTTONS[2])
    _run(MapsScraper(_query(1), driver, timings=timings).collect())
    assert driver.clicked == ['consent-button']


def test_fallback_strategies_run_in_order_before_giving_up(timings):
    driver = FakeDriver()
    s = MapsScraper(_query(5), driver, timings=timings)
    with pytest.raises(NoResultsError) as exc:
        _run(s.collect())
    assert s.strategies_tried == ['maps_list', 'local_search', 'maps_place_view']
    assert 'Try a broader' in str(exc.value)


def test_local_search_fallback_keeps_urlless_candidates(timings):
    local = [listing(1, url='/search?q=x'), listing(2, url='')]
    driver = FakeDriver(listings={'local_search': [local]})
    s = MapsScraper(_query(5), driver, timings=timings)
    leads = _run(s.collect())
    assert s.strategies_tried == ['maps_list', 'local_search']
    assert [l['url'] for l in leads] == ['', '']
    assert [l['address'] for l in leads] == ['1 MG Road, Kochi', '2 MG Road, Kochi']


def test_full_map_view_reads_single_place_panel(timings):
    driver = FakeDriver(place={'name': 'Only Bakery', 'url': place_url(9)})
    s = MapsScraper(_query(5), driver, timings=timings)
    leads = _run(s.collect())
    assert s.strategies_tried == ['maps_list', 'local_search', 'maps_place_view']
    assert [l['name'] for l in leads] == ['Only Bakery']


def test_collection_navigation_failure_is_fatal(timings):
    class BrokenSearch(FakeDriver):
        async def navigate(self, url, wait_until='domcontentloaded', timeout=30000):
            raise TimeoutError('Timeout 90000ms exceeded')

    with pytest.raises(CollectionError):
        _run(MapsScraper(_query(5), BrokenSearch(), timings=timings).collect())


# =============================================================================
#  Enrichment and extract()
# =============================================================================

def test_extract_enriches_and_reports_progress(timings):
    driver = FakeDriver(
        listings={'maps_list': [[listing(1), listing(2)]]},
        details={place_url(1): {'phone': 'Phone: +91 484 111', 'website': 'https://one.in/',
                                'rating': '4.8', 'reviews': '(52)'}},
    )
    results, events = _run(_extract_with_events(_query(2), driver, timings))

    assert results[0]['phone'] == '+91 484 111'
    assert results[0]['reviews'] == '52'
    assert results[0]['address'] == '1 MG Road, Kochi'
    assert results[1] == {**listing(2), 'rating': '', 'reviews': ''}
    assert driver.closed
    assert driver.viewport == (1920, 1080)

    extracting = [(e.current, e.total) for e in events if e.status is ProgressStatus.EXTRACTING and e.current]
    assert extracting == [(1, 2), (2, 2)]
    assert events[0].status is ProgressStatus.LAUNCHING
    assert events[-1].status is ProgressStatus.COMPLETE and events[-1].count == 2


def test_extract_keeps_list_data_when_detail_pages_fail(timings):
    items = [listing(i) for i in range(1, 11)]
    driver = FakeDriver(listings={'maps_list': [items]}, failing={place_url(3), place_url(7)},
                        details={place_url(i): {'phone': f'555-{i}'} for i in range(1, 11)})
    results = _run(extract(_query(10), driver.factory(), timings=timings))

    assert len(results) == 10
    assert results[2]['phone'] == '' and results[6]['phone'] == ''
    assert results[0]['phone'] == '555-1'
    assert len(driver.detail_visits()) == 10


def test_extract_skips_navigation_for_urlless_candidates(timings):
    driver = FakeDriver(listings={'local_search': [[listing(1, url='')]]})
    results = _run(extract(_query(3), driver.factory(), timings=timings))
    assert len(results) == 1
    assert driver.detail_visits() == []


def test_extract_wraps_driver_launch_failure():
    async def broken_factory():
        raise RuntimeError('chromium missing')

    async def scenario():
        channel = ProgressChannel()
        with pytest.raises(DriverLaunchError, match='chromium missing'):
            await extract(_query(), broken_factory, channel=channel)
        return channel.closed

    assert _run(scenario())


def test_extract_closes_driver_when_nothing_found(timings):
    driver = FakeDriver()
    with pytest.raises(NoResultsError):
        _run(extract(_query(), driver.factory(), timings=timings))
    assert driver.closed
    assert any('tbm=lcl' in u for u in driver.navigated)


def test_enrichment_pauses_between_batches(monkeypatch, timings):
    pauses = []
    real_sleep = asyncio.sleep

    async def fake_sleep(delay):
        if delay:
            pauses.append(delay)
        await real_sleep(0)

    monkeypatch.setattr(scraper.asyncio, 'sleep', fake_sleep)
    monkeypatch.setattr(scraper.random, 'uniform', lambda a, b: 12.5)
    driver = FakeDriver(listings={'maps_list': [[listing(i) for i in range(1, 31)]]})
    _run(extract(_query(30), driver.factory(), timings=timings))
    assert pauses == [12.5]
