"""
Exceptions raised by the lead scraper.

Lookup and input errors map onto HTTP status codes in app.py; scraper errors
end the job in the 'error' state with the exception message as the job error.
"""


class LeadScraperError(Exception):
    """Base class for every error this package raises on purpose."""

    status_code = 500


class InvalidQueryError(LeadScraperError):
    """Caller supplied an incomplete or malformed search query."""

    status_code = 400


class NotFoundError(LeadScraperError):
    """Unknown job id (never created, or already reaped)."""

    status_code = 404


class NotReadyError(LeadScraperError):
    """Artifact requested before the job reached 'complete'."""

    status_code = 400


# =============================================================================
#  SCRAPER ERRORS
# =============================================================================

class ScraperError(LeadScraperError):
    pass


class DriverLaunchError(ScraperError):
    """The browser could not be started. Fatal for the job, never retried."""


class CollectionError(ScraperError):
    """A search view failed to load while collecting candidates."""


class NoResultsError(ScraperError):
    """Every search strategy came back empty."""

    DEFAULT_MESSAGE = ('No businesses found. Try a broader category or a larger '
                       'region and search again.')

    def __init__(self, message: str = ''):
        super().__init__(message or self.DEFAULT_MESSAGE)


class EnrichmentError(ScraperError):
    """A single detail page failed. Caught per candidate, never propagated."""

    def __init__(self, name: str, reason: str = ''):
        self.name = name
        self.reason = reason
        super().__init__(f"Could not enrich '{name}': {reason}" if reason else f"Could not enrich '{name}'")
