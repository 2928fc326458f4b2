"""
Exceptions raised by the crawler and its collaborators.
"""


class CrawlerError(Exception):
    """Base class for every error raised by the crawler."""


class MalformedUrlError(CrawlerError):
    """The URL cannot be turned into a site address. Retrying will not help."""


class LinkDiscoveryError(CrawlerError):
    """Fetching or parsing a robots.txt or sitemap file failed."""


class ContentExtractionError(CrawlerError):
    """A batch of pages could not be fetched or parsed."""


class StoreError(CrawlerError):
    """The page store rejected a read or write."""


class InvalidScanTransition(CrawlerError):
    """A scan state was asked to move along an edge it does not have."""


class FatalCrawlError(CrawlerError):
    """A phase gave up. Committed state is kept, the run must stop."""


class SitemapPhaseError(FatalCrawlError):
    """Sitemap fetching failed midway and the phase was aborted."""

    def __init__(self, url, cause):
        super().__init__(f"Sitemap phase aborted at {url}: {cause}")
        self.url = url
        self.cause = cause
