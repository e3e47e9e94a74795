"""
Validation pipeline for scraped businesses.

Order matters: incomplete rows are dropped first, the rest are normalized,
the ice breaker is written from the normalized fields, and duplicates are
removed last so keys that only collide after cleanup are still caught.
"""

import logging
import re

from .normalize import normalize_email, normalize_phone, normalize_url

logger = logging.getLogger(__name__)

_NUMBER_RE = re.compile(r'\d+(?:\.\d+)?')


def _dedupe_key(biz: dict) -> str:
    return f"{(biz.get('name') or '').strip().lower()}|{(biz.get('address') or '').strip().lower()}"


def remove_duplicates(businesses: list) -> list:
    """Keep the first business for each name+address pair."""
    seen = set()
    unique = []
    for biz in businesses:
        key = _dedupe_key(biz)
        if key in seen:
            continue
        seen.add(key)
        unique.append(biz)
    return unique


def remove_incomplete(businesses: list) -> list:
    return [biz for biz in businesses
            if (biz.get('name') or '').strip() and (biz.get('address') or '').strip()]


def _parse_rating(value) -> float | None:
    m = _NUMBER_RE.search(str(value or '').replace(',', '.'))
    return float(m.group(0)) if m else None


def _parse_reviews(value) -> int | None:
    digits = re.sub(r'\D', '', str(value or ''))
    return int(digits) if digits else None


def generate_ice_breaker(biz: dict) -> str:
    """Outreach opener built from the profile's rating, reviews and website."""
    name = biz.get('name') or 'there'
    category = biz.get('category') or 'businesses'
    rating = _parse_rating(biz.get('rating'))
    reviews = _parse_reviews(biz.get('reviews'))

    message = (f"Hey {name}, I just went through your Google Business Profile while researching "
               f"{category} in your area. ")

    if rating and rating >= 4.5 and reviews and reviews > 20:
        message += (f"You have a fantastic reputation with a {rating:g}-star rating and {reviews} reviews! "
                    "That's impressive and shows you provide great service. ")
    elif rating and rating < 4.0:
        message += (f"I noticed your current rating is {rating:g} stars. Often, this can be improved just by "
                    "better managing your profile and responding to customers, which directly boosts "
                    "your ranking. ")
    elif reviews and reviews < 10:
        message += (f"I noticed you only have {reviews} reviews so far. Getting a few more positive reviews "
                    "could really help you jump ahead of the local competition. ")
    else:
        message += "Your profile looks solid, and you've clearly put work into your local presence. "

    if biz.get('website'):
        message += ("You've got a good foundation with your current website, but I noticed some specific "
                    "opportunities to optimize it further so you can outrank competitors and capture more "
                    "of that local traffic. ")
    else:
        message += ("However, I noticed you don't have a website linked to your profile yet. Since Google "
                    "uses website quality and relevance as a top ranking factor, adding a fast, "
                    "mobile-optimized site would be a game-changer for your visibility. ")

    message += (f"I specialize in helping {category} like yours dominate local search by building "
                "high-performance websites and fully optimizing Google Business Profiles. Would you be open "
                "to a quick chat (or even just an email) about how we can get you to the top of the map pack?")
    return message


def normalize_record(biz: dict) -> dict:
    """Cleaned copy of a raw record, ice breaker included. The input is not modified."""
    cleaned = {
        'category': (biz.get('category') or '').strip(),
        'name': (biz.get('name') or '').strip(),
        'address': (biz.get('address') or '').strip(),
        'phone': normalize_phone(biz.get('phone')),
        # No email source yet; the rule still runs so the column stays consistent
        'email': normalize_email(biz.get('email')),
        'website': normalize_url(biz.get('website')),
        'rating': str(biz.get('rating') or '').strip(),
        'reviews': str(biz.get('reviews') or '').strip(),
        'url': (biz.get('url') or '').strip(),
    }
    cleaned['iceBreaker'] = generate_ice_breaker(cleaned)
    return cleaned


def validate_and_clean(businesses: list) -> list:
    data = remove_incomplete(list(businesses))
    dropped = len(businesses) - len(data)
    data = [normalize_record(biz) for biz in data]
    before = len(data)
    data = remove_duplicates(data)
    logger.info('Validated %d businesses (%d incomplete, %d duplicates removed)',
                len(data), dropped, before - len(data))
    return data
