"""
Field cleanup for scraped contact details. Every function is idempotent.
"""

import re

_PHONE_JUNK_RE = re.compile(r'[^\d+\-() ]')
_SPACES_RE = re.compile(r'\s+')
_TRAILING_SLASHES_RE = re.compile(r'/+$')
_SCHEME_RE = re.compile(r'^https?://', re.I)


def normalize_phone(phone: str | None) -> str:
    if not phone:
        return ''
    # Whitespace first so tabs/newlines become spaces instead of being dropped
    cleaned = _SPACES_RE.sub(' ', phone.strip())
    cleaned = _PHONE_JUNK_RE.sub('', cleaned)
    return _SPACES_RE.sub(' ', cleaned).strip()


def normalize_url(url: str | None) -> str:
    """Add https:// when there is no scheme, drop trailing slashes."""
    if not url:
        return ''
    cleaned = url.strip()
    m = _SCHEME_RE.match(cleaned)
    scheme, rest = (m.group(0), cleaned[m.end():]) if m else ('https://', cleaned)
    rest = _TRAILING_SLASHES_RE.sub('', rest)
    if not rest:
        return ''
    return scheme + rest


def normalize_email(email: str | None) -> str:
    if not email:
        return ''
    return email.strip().lower()
