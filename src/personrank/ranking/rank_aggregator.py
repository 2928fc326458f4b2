"""
Person page rank aggregation.

A person's rank for a page is the sum, over the person's keywords, of the
number of times the lowercased keyword occurs on the page.
"""
import logging

from personrank.common.utils import merge_counts

logger = logging.getLogger(__name__)


def normalize_keywords(keywords):
    """Lowercased keywords, each once, in a stable order."""
    return sorted({word.lower() for word in keywords if word})


def keyword_count(keywords_by_person):
    """Size of the tracked keyword universe."""
    return sum(len(words) for words in keywords_by_person.values())


def keyword_count_grew(previous, current):
    """Default reindex trigger: more keywords are tracked than before."""
    return keyword_count(current) > keyword_count(previous)


def keywords_changed(previous, current):
    """Exact reindex trigger: any person or keyword was added, removed or replaced."""
    return previous != current


class RankAggregator:
    def __init__(self, index):
        self.index = index

    def compute_all_person_page_ranks(self, keywords_by_person):
        """Person -> URL -> rank computed from scratch out of the index."""
        page_ranks = {}
        for person_id, keywords in keywords_by_person.items():
            person_ranks = {}
            for word in normalize_keywords(keywords):
                counts = self.index.get_counts(word)
                merge_counts({url: count for url, count in counts.items() if count > 0}, person_ranks)
            logger.debug(f"Computed {len(person_ranks)} page ranks for person id={person_id}")
            page_ranks[person_id] = person_ranks
        return page_ranks

    def reindex(self, page_store):
        """
        Persist ranks that the index knows about and the store does not.

        Pairs already in the store are left alone even when their score has
        drifted; `update_all_person_page_ranks` rewrites those.
        """
        logger.info("*** STARTING REINDEXING ***")
        persisted = page_store.get_persons_page_ranks()
        computed = self.compute_all_person_page_ranks(page_store.get_persons_with_keywords())
        written = {}
        for person_id, ranks in computed.items():
            known = persisted.get(person_id, {})
            new_ranks = {url: rank for url, rank in ranks.items() if url not in known}
            if new_ranks:
                written[person_id] = new_ranks
        if written:
            page_store.insert_persons_page_ranks(written)
        logger.info(f"Reindex wrote {sum(len(r) for r in written.values())} new page ranks "
                    f"for {len(written)} persons")
        return written

    def update_person_page_ranks(self, keywords_by_person, vocabularies, page_store):
        """Add the ranks of freshly crawled pages to the persisted ones."""
        person_page_ranks = {}
        normalized = {person_id: normalize_keywords(keywords)
                      for person_id, keywords in keywords_by_person.items()}
        for vocabulary in vocabularies:
            for person_id, keywords in normalized.items():
                rank = sum(vocabulary.get(word) for word in keywords)
                if rank > 0:
                    logger.debug(f"URL: {vocabulary.label}, person id={person_id}, rank: {rank}")
                    ranks = person_page_ranks.setdefault(person_id, {})
                    ranks[vocabulary.label] = ranks.get(vocabulary.label, 0) + rank
        if person_page_ranks:
            page_store.insert_persons_page_ranks(person_page_ranks)
            logger.info(f"Saved page ranks for {len(person_page_ranks)} persons")
        return person_page_ranks

    def update_all_person_page_ranks(self, page_store):
        """Recompute every rank from the index and overwrite the persisted table."""
        computed = self.compute_all_person_page_ranks(page_store.get_persons_with_keywords())
        for person_id, ranks in computed.items():
            page_store.replace_person_page_ranks(person_id, ranks)
        logger.info(f"Refreshed page ranks for {len(computed)} persons")
        return computed
