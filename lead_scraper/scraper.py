"""
Google Maps scraping engine.

Two phases. Collection scrolls a results view and gathers cheap list-view
candidates (name, place URL, sometimes address and rating) until the lead cap
is reached or the list stops growing; when a view yields nothing the next
search strategy is tried. Enrichment then visits each candidate's place page
for address, phone, website, rating and review count. A failed place page only
costs that candidate its details, never the batch.

Progress is reported as ProgressEvents on an optional ProgressChannel.
"""

import asyncio
import logging
import random
import re
from dataclasses import dataclass
from typing import Awaitable, Callable
from urllib.parse import quote, unquote

from .config import Timings
from .driver import BrowserDriver, VIEWPORT, launch_playwright_driver
from .errors import CollectionError, DriverLaunchError, EnrichmentError, NoResultsError
from .models import RAW_FIELDS, ExtractionQuery, ProgressChannel, ProgressEvent, ProgressStatus, blank_record
from . import ui_selectors as ui

logger = logging.getLogger(__name__)

DriverFactory = Callable[[], Awaitable[BrowserDriver]]

PLACE_URL_MARKER = '/maps/place/'
SCROLL_STEP = 800

_NUMBER_RE = re.compile(r'\d+(?:[.,]\d+)?')


# =============================================================================
#  SEARCH STRATEGIES
# =============================================================================

@dataclass(frozen=True)
class SearchStrategy:
    name: str
    label: str
    url_template: str
    items: tuple
    fields: dict
    max_scrolls: int
    stagnation_limit: int
    place_urls_only: bool = False
    # Read the open place panel when the view lands on a single business
    single_place: bool = False

    def url_for(self, query: ExtractionQuery) -> str:
        return self.url_template.format(q=quote(query.search_text))


MAPS_LIST = SearchStrategy(
    name='maps_list', label='Google Maps results',
    url_template='https://www.google.com/maps/search/{q}?hl=en',
    items=ui.MAPS_LIST_ITEMS, fields=ui.MAPS_LIST_FIELDS,
    max_scrolls=20, stagnation_limit=4, place_urls_only=True,
)
LOCAL_SEARCH = SearchStrategy(
    name='local_search', label='local search results',
    url_template='https://www.google.com/search?tbm=lcl&q={q}&hl=en',
    items=ui.LOCAL_SEARCH_ITEMS, fields=ui.LOCAL_SEARCH_FIELDS,
    max_scrolls=8, stagnation_limit=3,
)
MAPS_PLACE_VIEW = SearchStrategy(
    name='maps_place_view', label='full map view',
    url_template='https://www.google.com/maps?q={q}&hl=en',
    items=ui.MAPS_LIST_ITEMS, fields=ui.MAPS_LIST_FIELDS,
    max_scrolls=8, stagnation_limit=3, place_urls_only=True, single_place=True,
)

# Tried in order until one yields candidates
STRATEGIES = (MAPS_LIST, LOCAL_SEARCH, MAPS_PLACE_VIEW)


# =============================================================================
#  FIELD PARSING
# =============================================================================

def parse_rating(text: str) -> str:
    m = _NUMBER_RE.search(text or '')
    return m.group(0).replace(',', '.') if m else ''


def parse_review_count(text: str) -> str:
    return re.sub(r'\D', '', text or '')


def _after_label(text: str, label: str) -> str:
    m = re.search(rf'{label}:\s*(.+)', text or '')
    return m.group(1).strip() if m else (text or '').strip()


def unwrap_redirect(href: str) -> str:
    if href and '/url?q=' in href:
        m = re.search(r'/url\?q=([^&]+)', href)
        if m:
            return unquote(m.group(1))
    return href or ''


def parse_details(info: dict) -> dict:
    """Turn raw detail-panel strings into record fields."""
    phone = info.get('phone') or ''
    if phone.startswith('tel:'):
        phone = phone[len('tel:'):]
    return {
        'address': _after_label(info.get('address'), 'Address'),
        'phone': _after_label(phone, 'Phone'),
        'website': unwrap_redirect(info.get('website')),
        'rating': parse_rating(info.get('rating')),
        'reviews': parse_review_count(info.get('reviews')),
    }


def merge_details(lead: dict, details: dict) -> dict:
    """Detail values fill in or replace list-view values; blanks never erase them."""
    merged = dict(lead)
    for key, value in details.items():
        if key in RAW_FIELDS and value:
            merged[key] = value
    return merged


# =============================================================================
#  CANDIDATE SET
# =============================================================================

def candidate_keys(item: dict) -> list:
    keys = []
    if item.get('url'):
        keys.append(item['url'])
    name = (item.get('name') or '').strip().lower()
    address = (item.get('address') or '').strip().lower()
    if not item.get('url') or address:
        keys.append(f'{name}|{address}')
    return keys


class CandidateSet:
    """Unique candidates in discovery order. The first sighting of a business wins."""

    def __init__(self):
        self._records = []
        self._index = {}

    def __len__(self):
        return len(self._records)

    def add(self, item: dict) -> bool:
        """Add a listing; returns True if it was a new business."""
        if not (item.get('name') or '').strip():
            return False
        keys = candidate_keys(item)
        existing = next((self._index[k] for k in keys if k in self._index), None)
        if existing is not None:
            for key in RAW_FIELDS:
                if not existing.get(key) and item.get(key):
                    existing[key] = item[key]
            # Every key this business has been seen under points at the same record
            for k in keys + candidate_keys(existing):
                self._index.setdefault(k, existing)
            return False
        record = blank_record(item.get('category', ''))
        record.update({k: (item.get(k) or '').strip() for k in RAW_FIELDS if k != 'category'})
        self._records.append(record)
        for k in keys:
            self._index[k] = record
        return True

    def records(self, limit: int | None = None) -> list:
        chosen = self._records if limit is None else self._records[:limit]
        return [dict(r) for r in chosen]


# =============================================================================
#  SCRAPER
# =============================================================================

class MapsScraper:
    """Drives one browser through collection and enrichment for one query."""

    def __init__(self, query: ExtractionQuery, driver: BrowserDriver, channel: ProgressChannel | None = None,
                 timings: Timings | None = None, strategies: tuple = STRATEGIES):
        self.query = query
        self.driver = driver
        self.channel = channel
        self.timings = timings or Timings()
        self.strategies = strategies
        self.strategies_tried = []
        self.enrich_failures = 0

    def _emit(self, status: ProgressStatus, message: str, **counts):
        logger.debug('[%s] %s', status.value, message)
        if self.channel is not None:
            self.channel.emit(ProgressEvent(status, message, **counts))

    async def _evaluate(self, script: str, arg=None):
        return await asyncio.wait_for(self.driver.evaluate(script, arg), timeout=self.timings.eval_timeout)

    # -- Collection --
    async def _dismiss_consent(self) -> bool:
        sel, button = await ui.first_match(self.driver, ui.CONSENT_BUTTONS)
        if button is None:
            return False
        try:
            await self.driver.click(button)
        except Exception as e:
            logger.info('Consent button %r did not respond: %s', sel, e)
            return False
        logger.info('Dismissed consent wall via %r', sel)
        await asyncio.sleep(self.timings.after_consent_delay)
        return True

    def _clean_listing(self, strategy: SearchStrategy, item: dict) -> dict | None:
        url = (item.get('url') or '').strip()
        if PLACE_URL_MARKER not in url:
            if strategy.place_urls_only:
                return None
            url = ''
        listing = blank_record(self.query.category)
        listing.update({
            'name': (item.get('name') or '').strip(),
            'url': url,
            'address': (item.get('address') or '').strip(),
            'rating': parse_rating(item.get('rating')),
            'reviews': parse_review_count(item.get('reviews')),
        })
        return listing

    async def _read_listings(self, strategy: SearchStrategy) -> list:
        try:
            items = await self._evaluate(ui.LIST_SCRIPT, {
                'category': self.query.category,
                'items': list(strategy.items),
                'fields': ui.as_script_arg(strategy.fields),
            })
        except Exception as e:
            raise CollectionError(f"Could not read {strategy.label}: {e}") from e
        listings = []
        for item in items or []:
            listing = self._clean_listing(strategy, item)
            if listing is not None:
                listings.append(listing)
        return listings

    async def _read_single_place(self) -> dict | None:
        try:
            place = await self._evaluate(ui.PLACE_PAGE_SCRIPT, {'titles': [list(p) for p in ui.PLACE_TITLES]})
        except Exception as e:
            raise CollectionError(f"Could not read place panel: {e}") from e
        if not place or not (place.get('name') or '').strip():
            return None
        listing = blank_record(self.query.category)
        listing.update({'name': place['name'].strip(), 'url': place.get('url') or ''})
        return listing

    async def _scroll(self):
        try:
            return await self._evaluate(ui.SCROLL_SCRIPT, {'containers': list(ui.FEED_CONTAINERS),
                                                           'step': SCROLL_STEP})
        except Exception as e:
            raise CollectionError(f"Could not scroll results: {e}") from e

    async def _run_strategy(self, strategy: SearchStrategy, candidates: CandidateSet):
        self.strategies_tried.append(strategy.name)
        cap = self.query.max_records
        self._emit(ProgressStatus.NAVIGATING, f'Searching {strategy.label} for "{self.query.category}"...')
        try:
            await self.driver.navigate(strategy.url_for(self.query), wait_until='domcontentloaded',
                                       timeout=self.timings.nav_timeout_ms)
        except Exception as e:
            raise CollectionError(f"Could not load {strategy.label}: {e}") from e
        await asyncio.sleep(self.timings.after_search_delay)
        await self._dismiss_consent()

        self._emit(ProgressStatus.SCROLLING, f'Scanning {strategy.label}...')
        previous = len(candidates)
        stagnant = 0
        for i in range(strategy.max_scrolls):
            for listing in await self._read_listings(strategy):
                candidates.add(listing)
            if len(candidates) >= cap:
                break
            if len(candidates) == previous:
                stagnant += 1
                if stagnant >= strategy.stagnation_limit:
                    logger.info('%s: no new results for %d scrolls, stopping at %d',
                                strategy.name, stagnant, len(candidates))
                    break
            else:
                stagnant = 0
            previous = len(candidates)
            self._emit(ProgressStatus.SCROLLING, f'Found {len(candidates)} businesses...',
                       count=len(candidates))
            await self._scroll()
            await asyncio.sleep(self.timings.scroll_delay)

        if not len(candidates) and strategy.single_place:
            place = await self._read_single_place()
            if place:
                candidates.add(place)

    async def collect(self) -> list:
        """Phase 1: unique list-view candidates, at most max_records, in discovery order."""
        candidates = CandidateSet()
        for n, strategy in enumerate(self.strategies):
            if n:
                self._emit(ProgressStatus.FALLBACK, f'No results yet, trying {strategy.label}...')
            await self._run_strategy(strategy, candidates)
            if len(candidates):
                break
            logger.warning('%s returned no businesses for %r', strategy.name, self.query.search_text)
        if not len(candidates):
            raise NoResultsError()
        leads = candidates.records(self.query.max_records)
        logger.info('Collected %d candidates for %r', len(leads), self.query.search_text)
        return leads

    # -- Enrichment --
    async def _scrape_place(self, lead: dict) -> dict:
        if not lead.get('url'):
            return dict(lead)
        try:
            await self.driver.navigate(lead['url'], wait_until='domcontentloaded',
                                       timeout=self.timings.detail_timeout_ms)
            await asyncio.sleep(self.timings.after_detail_delay)
            info = await self._evaluate(ui.DETAIL_SCRIPT, {'fields': ui.as_script_arg(ui.DETAIL_FIELDS)})
        except EnrichmentError:
            raise
        except Exception as e:
            raise EnrichmentError(lead.get('name', ''), str(e)[:200]) from e
        return merge_details(lead, parse_details(info or {}))

    async def enrich(self, leads: list) -> list:
        """Phase 2: visit each place page. Failures keep the list-view record."""
        total = len(leads)
        detailed = []
        for i, lead in enumerate(leads, 1):
            self._emit(ProgressStatus.EXTRACTING, f"Extracting {i}/{total}: {lead['name']}",
                       current=i, total=total)
            try:
                detailed.append(await self._scrape_place(lead))
            except EnrichmentError as e:
                self.enrich_failures += 1
                logger.warning('%s; keeping list data', e)
                detailed.append(dict(lead))

            if self.timings.pause_every and i % self.timings.pause_every == 0 and i < total:
                pause = random.uniform(*self.timings.pause_range)
                logger.info('Pausing %.0fs after %d places...', pause, i)
                await asyncio.sleep(pause)
        return detailed


async def extract(query: ExtractionQuery, driver_factory: DriverFactory = launch_playwright_driver,
                  channel: ProgressChannel | None = None, timings: Timings | None = None,
                  strategies: tuple = STRATEGIES) -> list:
    """Collect and enrich up to query.max_records businesses with a fresh browser.

    Raises DriverLaunchError, CollectionError or NoResultsError; the channel
    is closed however this returns.
    """
    try:
        if channel is not None:
            channel.emit(ProgressEvent(ProgressStatus.LAUNCHING, 'Initializing scraper engine...'))
        try:
            driver = await driver_factory()
        except DriverLaunchError:
            raise
        except Exception as e:
            raise DriverLaunchError(f"Could not launch browser: {e}") from e

        try:
            await driver.set_viewport(VIEWPORT['width'], VIEWPORT['height'])
            scraper = MapsScraper(query, driver, channel, timings, strategies)
            leads = await scraper.collect()
            if channel is not None:
                channel.emit(ProgressEvent(ProgressStatus.EXTRACTING, f'Detailing {len(leads)} leads...',
                                           total=len(leads)))
            results = await scraper.enrich(leads)
        finally:
            try:
                await driver.close()
            except Exception as e:
                logger.warning('Browser did not close cleanly: %s', e)

        if scraper.enrich_failures:
            logger.info('%d of %d place pages failed; kept their list data', scraper.enrich_failures, len(results))
        if channel is not None:
            channel.emit(ProgressEvent(ProgressStatus.COMPLETE, f'Success! Generated {len(results)} leads.',
                                       count=len(results)))
        return results
    finally:
        if channel is not None:
            channel.close()
