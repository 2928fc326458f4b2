"""
Crawl orchestrator for the person rank crawler.
Sequences link discovery, content extraction, indexing and rank aggregation,
using the scan mark of every page to avoid redundant or concurrent rescans.
"""
import logging
import traceback
from dataclasses import dataclass
from datetime import datetime, timezone

from redis.exceptions import RedisError

from personrank.common.config import ROBOTS_TXT_APPENDIX, CrawlerConfig
from personrank.common.errors import (
    CrawlerError, FatalCrawlError, LinkDiscoveryError, MalformedUrlError, SitemapPhaseError,
)
from personrank.common.models import ScanState, ScanStatus
from personrank.crawler.html_parser import HtmlParser
from personrank.crawler.link_loader import LinksLoader
from personrank.ranking.rank_aggregator import RankAggregator, keyword_count, keyword_count_grew

logger = logging.getLogger(__name__)

# Failures that only cost the current link or batch. Anything else is a bug
# and propagates.
RECOVERABLE_ERRORS = (CrawlerError, OSError, RedisError)


def utc_now():
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass
class PhaseResult:
    phase: str
    processed: int = 0
    failed: int = 0
    skipped: int = 0


class CrawlOrchestrator:
    """
    Runs the crawl phases against a page store and an inverted index.

    Every unit of work is claimed by writing its scan mark before any
    external call is made and released (reset to null) when the work fails,
    so that a later run picks it up again. Two orchestrators racing on the
    same page between "read null" and "write timestamp" is tolerated.
    """
    def __init__(self, page_store, index, links_loader=None, html_parser=None,
                 rank_aggregator=None, config=None, clock=None, reindex_trigger=None):
        self.config = config or CrawlerConfig()
        self.page_store = page_store
        self.index = index
        self.links_loader = links_loader or LinksLoader(
            user_agent=self.config.user_agent, timeout=self.config.request_timeout
        )
        self.html_parser = html_parser or HtmlParser(
            user_agent=self.config.user_agent, timeout=self.config.request_timeout
        )
        self.rank_aggregator = rank_aggregator or RankAggregator(index)
        self.clock = clock or utc_now
        # (previous keywords, current keywords) -> bool
        self.reindex_trigger = reindex_trigger or keyword_count_grew

    # Scan marks

    def _begin_scan(self, key):
        state = ScanState.unscanned().begin(self.clock())
        self.page_store.update_last_scan_date(key, state.timestamp)
        return state

    def _reset_scan(self, key, state):
        state = state.fail()
        self.page_store.update_last_scan_date(key, state.timestamp)
        return state

    def _is_claimed(self, url):
        return self.page_store.get_last_scan_date(url) is not None

    # Phases

    def discover_robots_links(self):
        """
        Add a robots.txt link for every site that is known by a single,
        never scanned page.

        On success the root page is released again so that the crawl phase
        fetches its content. An unreachable site or a store failure resets
        the page for a later retry. A malformed address never becomes valid,
        so such a page keeps its scan mark and is not retried.
        """
        result = PhaseResult('discover-robots')
        pages = [page for page in self.page_store.get_single_pages()
                 if page.scan_state.status is ScanStatus.UNSCANNED]
        logger.info(f"[discover-robots] {len(pages)} unscanned single pages")
        for page in pages:
            if self._is_claimed(page.url):
                result.skipped += 1
                continue
            state = self._begin_scan(page.id)
            try:
                address = self.links_loader.get_site_address(page.url)
                if not self.links_loader.is_site_available(address):
                    raise LinkDiscoveryError(f"Site {address} is not available")
                robots_address = address + ROBOTS_TXT_APPENDIX
                logger.info(f"[discover-robots] Adding robots.txt link for {address}")
                self.page_store.insert_row_in_pages_table(robots_address, page.site_id, page.id)
                self.page_store.update_last_scan_date(page.id, None)
                state = state.release()
                result.processed += 1
            except MalformedUrlError as e:
                state = state.succeed()
                logger.error(f"[discover-robots] Malformed address of page {page.url}, "
                             f"it will not be retried: {e}")
                result.failed += 1
            except RECOVERABLE_ERRORS as e:
                logger.error(f"[discover-robots] Failed for page {page.url}: {e}")
                state = self._reset_scan(page.id, state)
                result.failed += 1
        return result

    def fetch_robots_links(self):
        """Store the links of every unscanned robots.txt file. A failure only costs that file."""
        result = PhaseResult('fetch-robots')
        for url in sorted(self.page_store.get_unscanned_robots_txt_links()):
            if self._is_claimed(url):
                result.skipped += 1
                continue
            state = self._begin_scan(url)
            try:
                links = self.links_loader.get_links_from_robots_txt(url)
                self._save_links(url, links)
                state = state.succeed()
                result.processed += 1
            except RECOVERABLE_ERRORS as e:
                logger.error(f"[fetch-robots] Failed to process {url}: {e}")
                state = self._reset_scan(url, state)
                result.failed += 1
        return result

    def fetch_sitemap_links(self):
        """
        Store the links of every unscanned sitemap, including sitemaps found
        in sitemaps, until none is left.

        The first failure resets that sitemap and aborts the whole phase with
        SitemapPhaseError.
        """
        result = PhaseResult('fetch-sitemaps')
        while True:
            links = self.page_store.get_unscanned_sitemap_links()
            if not links:
                break
            progressed = False
            for link in sorted(links):
                if self._is_claimed(link):
                    result.skipped += 1
                    continue
                progressed = True
                state = self._begin_scan(link)
                try:
                    self._save_links(link, self.links_loader.get_links_from_sitemap(link))
                    state = state.succeed()
                    result.processed += 1
                except RECOVERABLE_ERRORS as e:
                    logger.error(f"[fetch-sitemaps] Failed to process {link}, aborting phase: {e}")
                    self._reset_scan(link, state)
                    raise SitemapPhaseError(link, e) from e
            if not progressed:
                break
        logger.info(f"[fetch-sitemaps] Processed {result.processed} sitemaps")
        return result

    def crawl_unscanned_pages(self, batch_size=None):
        """
        Crawl every unscanned content page, site by site, in batches.

        A failed batch is reset and retried; more than
        `max_consecutive_batch_failures` failures in a row for one site raise
        FatalCrawlError. Every `cycles_before_reindex` batches the keyword
        universe is re-read and a reindex runs if the trigger says so.
        """
        batch_size = batch_size or self.config.batch_size
        cycles_before_reindex = self.config.with_overrides(batch_size=batch_size).cycles_before_reindex
        max_failures = self.config.max_consecutive_batch_failures
        logger.info(f"[crawl] Maximum pages to scan per cycle: {batch_size}")
        logger.info(f"[crawl] Redis timeout: {self.config.redis_timeout}")

        result = PhaseResult('crawl')
        keywords = self.page_store.get_persons_with_keywords()
        cycles_passed = 0
        for site_id in self.page_store.get_site_ids():
            err_counter = 0
            while True:
                if cycles_passed >= cycles_before_reindex:
                    cycles_passed = 0
                    keywords = self._refresh_keywords(keywords)

                logger.info(f"[crawl] Getting links for site with id={site_id}")
                links = self.page_store.get_bunch_of_unscanned_links(site_id, batch_size)
                if not links:
                    break
                state = ScanState.unscanned().begin(self.clock())
                self.page_store.update_last_scan_dates_by_url(links, state.timestamp)
                try:
                    vocabularies = self.html_parser.parse_pages(links)
                    for vocabulary in vocabularies:
                        self.index.put_terms(vocabulary)
                    self.rank_aggregator.update_person_page_ranks(keywords, vocabularies, self.page_store)
                    state = state.succeed()
                    err_counter = 0
                    result.processed += len(links)
                except RECOVERABLE_ERRORS as e:
                    err_counter += 1
                    state = state.fail()
                    self.page_store.update_last_scan_dates_by_url(links, state.timestamp)
                    result.failed += len(links)
                    logger.error(f"[crawl] Batch of {len(links)} links for site id={site_id} failed "
                                 f"({err_counter} in a row): {e}")
                    logger.debug(traceback.format_exc())
                    if err_counter > max_failures:
                        raise FatalCrawlError(
                            f"Crawl aborted after {err_counter} consecutive failed batches "
                            f"for site id={site_id}"
                        ) from e
                cycles_passed += 1
        logger.info(f"[crawl] Crawled {result.processed} pages")
        return result

    def reindex(self):
        return self.rank_aggregator.reindex(self.page_store)

    def refresh_ranks(self):
        return self.rank_aggregator.update_all_person_page_ranks(self.page_store)

    def run_full_cycle(self):
        """Reindex, then run every discovery phase and the crawl, in order."""
        results = {'reindex': self.reindex()}
        for phase in (self.discover_robots_links, self.fetch_robots_links,
                      self.fetch_sitemap_links, self.crawl_unscanned_pages):
            phase_result = phase()
            results[phase_result.phase] = phase_result
        return results

    def _refresh_keywords(self, previous):
        current = self.page_store.get_persons_with_keywords()
        logger.info(f"[crawl] Keyword universe: {keyword_count(previous)} -> {keyword_count(current)}")
        if self.reindex_trigger(previous, current):
            self.reindex()
        return current

    def _save_links(self, url, links):
        site_id = self.page_store.get_site_id(url)
        if site_id is None:
            logger.warning(f"No site known for {url}, dropping {len(links)} links")
            return 0
        inserted = self.page_store.insert_rows_in_pages_table(links, site_id, None)
        logger.info(f"Added {inserted} new links to DB from {url}")
        return inserted
