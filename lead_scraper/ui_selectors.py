"""
Every Google Maps selector the scraper relies on, in one place.

The Maps UI is unversioned and class names drift, so each lookup is an ordered
list of alternatives and the first one that produces something wins. Field
lookups are (selector, source) pairs where source is 'text', 'href' or an
attribute name; ':scope' means the list item itself. The DOM scripts below take
these lists as arguments, so fixing a broken selector only touches this file.
"""

import logging

logger = logging.getLogger(__name__)

# =============================================================================
#  CONSENT WALL
# =============================================================================

CONSENT_BUTTONS = (
    'button[aria-label="Accept all"]',
    'button[aria-label="Accept everything"]',
    'form[action^="https://consent.google.com"] button',
    'button.VfPpkd-LgIVId-L9o7Wf',
)

# =============================================================================
#  RESULT LISTS
# =============================================================================

FEED_CONTAINERS = (
    'div[role="feed"]',
    '.m67qEc',
    '.section-scrollbox',
    'div[role="main"]',
)

MAPS_LIST_ITEMS = (
    'div[role="article"]',
    'a[href*="/maps/place/"]',
    '.Nv2Ybe',
)

MAPS_LIST_FIELDS = {
    'name': (
        ('.qBF1Pd', 'text'),
        ('.fontHeadlineSmall', 'text'),
        ('a[href*="/maps/place/"]', 'aria-label'),
        (':scope', 'aria-label'),
    ),
    'url': (
        (':scope', 'href'),
        ('a[href*="/maps/place/"]', 'href'),
    ),
    'address': (
        ('.W4Efsd > .W4Efsd:nth-of-type(1) > span:last-child', 'text'),
        ('[data-item-id="address"]', 'text'),
    ),
    'rating': (
        ('span.MW4etd', 'text'),
        ('span[role="img"][aria-label*="star"]', 'aria-label'),
    ),
    'reviews': (
        ('span.UY7F9', 'text'),
        ('span[role="img"][aria-label*="review"]', 'aria-label'),
    ),
}

LOCAL_SEARCH_ITEMS = (
    'div.VkpGBb',
    'div[data-cid]',
    'div.rllt__details',
)

LOCAL_SEARCH_FIELDS = {
    'name': (
        ('div[role="heading"]', 'text'),
        ('.dbg0pd', 'text'),
        ('.OSrXXb', 'text'),
    ),
    'url': (
        ('a[href*="/maps/place/"]', 'href'),
    ),
    'address': (
        ('.rllt__details > div:nth-child(3)', 'text'),
        ('.rllt__details > div:nth-child(2)', 'text'),
    ),
    'rating': (
        ('span.yi40Hd', 'text'),
        ('span[aria-label*="Rated"]', 'aria-label'),
    ),
    'reviews': (
        ('span.RDApEe', 'text'),
    ),
}

# The full map view jumps straight to a place panel when the query is specific
PLACE_TITLES = (
    ('h1.DUwDvf', 'text'),
    ('h1', 'text'),
)

# =============================================================================
#  DETAIL PANEL
# =============================================================================

DETAIL_FIELDS = {
    'address': (
        ('button[data-item-id="address"]', 'aria-label'),
        ('button[aria-label^="Address"]', 'aria-label'),
        ('[data-item-id="address"]', 'text'),
    ),
    'phone': (
        ('button[data-item-id^="phone"]', 'aria-label'),
        ('button[aria-label^="Phone"]', 'aria-label'),
        ('a[href^="tel:"]', 'href'),
    ),
    'website': (
        ('a[data-item-id="authority"]', 'href'),
        ('button[data-item-id="authority"] a', 'href'),
        ('a[aria-label^="Website"]', 'href'),
    ),
    'rating': (
        ('div.F7nice span[aria-hidden="true"]', 'text'),
        ('span[role="img"][aria-label*="stars"]', 'aria-label'),
    ),
    'reviews': (
        ('button[aria-label*="reviews"]', 'aria-label'),
        ('span[aria-label*="reviews"]', 'aria-label'),
        ('div.F7nice span[aria-label]', 'aria-label'),
    ),
}

# =============================================================================
#  DOM SCRIPTS (evaluated in the page, selector lists passed as arguments)
# =============================================================================

_READ_HELPERS = """
  const read = (el, source) => {
    if (!el) return '';
    if (source === 'text') return (el.textContent || '').trim();
    if (source === 'href') return (el.href || el.getAttribute('href') || '').trim();
    return (el.getAttribute(source) || '').trim();
  };
  const pick = (root, candidates) => {
    for (const [sel, source] of candidates) {
      const el = sel === ':scope' ? root : root.querySelector(sel);
      const value = read(el, source);
      if (value) return value;
    }
    return '';
  };
"""

LIST_SCRIPT = """({category, items, fields}) => {""" + _READ_HELPERS + """
  const seen = new Set();
  const out = [];
  for (const item of document.querySelectorAll(items.join(', '))) {
    if (seen.has(item)) continue;
    seen.add(item);
    out.push({
      category: category,
      name: pick(item, fields.name),
      url: pick(item, fields.url),
      address: pick(item, fields.address),
      rating: pick(item, fields.rating),
      reviews: pick(item, fields.reviews),
      phone: '',
      website: '',
    });
  }
  return out;
}"""

SCROLL_SCRIPT = """({containers, step}) => {
  for (const sel of containers) {
    const el = document.querySelector(sel);
    if (el && el.scrollHeight > el.clientHeight) {
      el.scrollTop = el.scrollHeight;
      return sel;
    }
  }
  window.scrollBy(0, step);
  return 'window';
}"""

DETAIL_SCRIPT = """({fields}) => {""" + _READ_HELPERS + """
  const out = {};
  for (const [key, candidates] of Object.entries(fields)) {
    out[key] = pick(document, candidates);
  }
  return out;
}"""


PLACE_PAGE_SCRIPT = """({titles}) => {""" + _READ_HELPERS + """
  if (!location.href.includes('/maps/place/')) return null;
  return {name: pick(document, titles), url: location.href};
}"""


def as_script_arg(fields: dict) -> dict:
    """Selector tuples as JSON-friendly lists for driver.evaluate."""
    return {key: [list(pair) for pair in pairs] for key, pairs in fields.items()}


async def first_match(driver, selectors):
    """Return (selector, element) for the first selector that matches, else (None, None).

    A selector that errors (e.g. rejected by the browser) counts as a miss.
    """
    for sel in selectors:
        try:
            element = await driver.query(sel)
        except Exception as e:
            logger.debug('Selector %r failed: %s', sel, e)
            continue
        if element is not None:
            return sel, element
    return None, None
