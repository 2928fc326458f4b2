"""
Inverted index for the person rank crawler.
Keeps term -> URL posting sets and URL -> term counter records in Redis.
"""
import logging
from abc import ABC, abstractmethod

import redis

from personrank.common.config import INDEX_KEY_PREFIX

logger = logging.getLogger(__name__)

URLSET_PREFIX = 'URLSet:'
TERM_COUNTER_PREFIX = 'TermCounter:'


class Index(ABC):
    """Term <-> document store used by the crawler and the rank aggregator."""

    @abstractmethod
    def is_indexed(self, url):
        """True iff a counter record exists for `url`."""

    @abstractmethod
    def add(self, term, url):
        """Add `url` to the posting set of `term` without touching its counter record."""

    @abstractmethod
    def get_urls(self, term):
        """Set of URLs posted under `term`."""

    @abstractmethod
    def get_count(self, url, term):
        """Count of `term` on `url`, or None."""

    @abstractmethod
    def get_counts(self, term):
        """URL -> count for every URL posted under `term` that has a count."""

    @abstractmethod
    def put_terms(self, vocabulary):
        """Replace the counter record of `vocabulary.label`; return the terms written."""

    def close(self):
        pass


class RedisIndex(Index):
    """
    Redis-backed inverted index.

    Every URL has one hash `TermCounter:<url>` (term -> count) and every term
    has one set `URLSet:<term>` (urls). `put_terms` rewrites both sides in a
    single MULTI/EXEC transaction so that a reader never sees a posting
    without its count.
    """
    def __init__(self, client, key_prefix=INDEX_KEY_PREFIX):
        self.client = client
        self.key_prefix = key_prefix

    def url_set_key(self, term):
        return f"{self.key_prefix}{URLSET_PREFIX}{term}"

    def term_counter_key(self, url):
        return f"{self.key_prefix}{TERM_COUNTER_PREFIX}{url}"

    def is_indexed(self, url):
        return bool(self.client.exists(self.term_counter_key(url)))

    def add(self, term, url):
        self.client.sadd(self.url_set_key(term), url)

    def get_urls(self, term):
        return set(self.client.smembers(self.url_set_key(term)))

    def get_count(self, url, term):
        count = self.client.hget(self.term_counter_key(url), term)
        return int(count) if count is not None else None

    def get_counts(self, term):
        urls = sorted(self.get_urls(term))
        if not urls:
            return {}
        pipe = self.client.pipeline(transaction=False)
        for url in urls:
            pipe.hget(self.term_counter_key(url), term)
        counts = {}
        for url, count in zip(urls, pipe.execute()):
            if count is not None:
                counts[url] = int(count)
        logger.debug(f"Counts for term '{term}': {counts}")
        return counts

    def put_terms(self, vocabulary):
        """
        Store the vocabulary of one page, replacing whatever was indexed for
        it before.

        The old counter record is read under WATCH so that terms dropped from
        the page also leave their posting sets; a concurrent writer to the
        same record makes the transaction retry.
        """
        url = vocabulary.label
        hash_name = self.term_counter_key(url)
        counts = {term: int(count) for term, count in vocabulary.counts.items()}
        logger.debug(f"Putting {len(counts)} terms in index for {url}")

        def rewrite(pipe):
            stale = set(pipe.hkeys(hash_name)) - set(counts)
            pipe.multi()
            # if this page has already been indexed; delete the old hash
            pipe.delete(hash_name)
            if counts:
                pipe.hset(hash_name, mapping=counts)
            for term in counts:
                pipe.sadd(self.url_set_key(term), url)
            for term in stale:
                pipe.srem(self.url_set_key(term), url)

        self.client.transaction(rewrite, hash_name)
        return set(counts)

    def term_set(self):
        """
        Terms that have a posting set.

        Should be used for development and testing, not production.
        """
        offset = len(self.url_set_key(''))
        return {key[offset:] for key in self.url_set_keys()}

    def url_set_keys(self):
        return set(self.client.scan_iter(match=self.url_set_key('*')))

    def term_counter_keys(self):
        return set(self.client.scan_iter(match=self.term_counter_key('*')))

    def delete_url_sets(self):
        self._delete_keys(self.url_set_keys())

    def delete_term_counters(self):
        self._delete_keys(self.term_counter_keys())

    def dump(self):
        """Term -> URL -> count snapshot of the whole index."""
        return {term: self.get_counts(term) for term in sorted(self.term_set())}

    def close(self):
        self.client.close()

    def _delete_keys(self, keys):
        if not keys:
            return
        pipe = self.client.pipeline(transaction=True)
        for key in keys:
            pipe.delete(key)
        pipe.execute()
        logger.info(f"Deleted {len(keys)} index keys")


def connect_redis_index(redis_url, timeout, key_prefix=INDEX_KEY_PREFIX):
    """Open a Redis connection for the index."""
    client = redis.Redis.from_url(
        redis_url,
        socket_timeout=timeout,
        socket_connect_timeout=timeout,
        decode_responses=True,
    )
    logger.info(f"Redis index at {redis_url} (timeout {timeout}s)")
    return RedisIndex(client, key_prefix=key_prefix)
