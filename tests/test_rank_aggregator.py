"""
Tests for person page rank aggregation and reindexing.
"""
import unittest

import fakeredis

from personrank.common.models import TermVocabulary
from personrank.indexer.inverted_index import RedisIndex
from personrank.ranking.rank_aggregator import (
    RankAggregator, keyword_count_grew, keywords_changed, normalize_keywords,
)
from personrank.store.db import build_engine
from personrank.store.page_store import PageStore

SITE = 'https://example.com'
U1 = f"{SITE}/u1"
U2 = f"{SITE}/u2"
U3 = f"{SITE}/u3"


class RankTestCase(unittest.TestCase):
    def setUp(self):
        self.client = fakeredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)
        self.index = RedisIndex(self.client)
        self.store = PageStore(build_engine('sqlite://'))
        self.store.create_schema()
        site_id = self.store.add_site(SITE)
        self.store.insert_rows_in_pages_table([U1, U2, U3], site_id)
        self.aggregator = RankAggregator(self.index)

    def tearDown(self):
        self.client.flushall()
        self.store.engine.dispose()


class TestComputeRanks(RankTestCase):
    def test_counts_of_several_keywords_are_added(self):
        self.index.put_terms(TermVocabulary(U1, {'alpha': 3, 'beta': 1}))
        self.index.put_terms(TermVocabulary(U2, {'beta': 2}))

        ranks = self.aggregator.compute_all_person_page_ranks({1: {'alpha', 'beta'}, 2: {'beta'}})

        self.assertEqual(ranks, {1: {U1: 4, U2: 2}, 2: {U1: 1, U2: 2}})

    def test_keywords_are_matched_lowercase_once(self):
        self.index.put_terms(TermVocabulary(U1, {'alpha': 3}))

        ranks = self.aggregator.compute_all_person_page_ranks({1: {'Alpha', 'alpha', 'ALPHA'}})

        self.assertEqual(ranks, {1: {U1: 3}})
        self.assertEqual(normalize_keywords({'B', 'a', 'b', ''}), ['a', 'b'])

    def test_persons_without_matches_get_empty_ranks(self):
        ranks = self.aggregator.compute_all_person_page_ranks({1: {'zeta'}, 2: set()})

        self.assertEqual(ranks, {1: {}, 2: {}})


class TestReindex(RankTestCase):
    def test_reindex_only_writes_new_pairs(self):
        person = self.store.add_person('Alice', ['alpha'])
        self.index.put_terms(TermVocabulary(U1, {'alpha': 4}))
        self.index.put_terms(TermVocabulary(U2, {'alpha': 2}))
        # persisted score for U1 has drifted from the index
        self.store.insert_person_page_ranks(person, {U1: 10})

        written = self.aggregator.reindex(self.store)

        self.assertEqual(written, {person: {U2: 2}})
        self.assertEqual(self.store.get_persons_page_ranks(), {person: {U1: 10, U2: 2}})

    def test_reindex_converges_to_superset(self):
        alice = self.store.add_person('Alice', ['alpha'])
        bob = self.store.add_person('Bob', ['beta', 'gamma'])
        self.index.put_terms(TermVocabulary(U1, {'alpha': 1, 'beta': 2}))
        self.index.put_terms(TermVocabulary(U2, {'gamma': 5}))
        self.index.put_terms(TermVocabulary(U3, {'delta': 7}))
        self.store.insert_person_page_ranks(alice, {U1: 1})
        before = self.store.get_persons_page_ranks()

        self.aggregator.reindex(self.store)
        after = self.store.get_persons_page_ranks()

        for person_id, ranks in before.items():
            self.assertLessEqual(ranks.items(), after[person_id].items())
        computed = self.aggregator.compute_all_person_page_ranks(self.store.get_persons_with_keywords())
        for person_id, ranks in computed.items():
            for url, rank in ranks.items():
                if url not in before.get(person_id, {}):
                    self.assertEqual(after[person_id][url], rank)
        self.assertEqual(after[bob], {U1: 2, U2: 5})

    def test_reindex_twice_writes_nothing_new(self):
        self.store.add_person('Alice', ['alpha'])
        self.index.put_terms(TermVocabulary(U1, {'alpha': 4}))

        self.aggregator.reindex(self.store)
        snapshot = self.store.get_persons_page_ranks()

        self.assertEqual(self.aggregator.reindex(self.store), {})
        self.assertEqual(self.store.get_persons_page_ranks(), snapshot)

    def test_zero_score_pairs_are_not_stored(self):
        self.store.add_person('Alice', ['zeta'])
        self.index.put_terms(TermVocabulary(U1, {'alpha': 4}))

        self.aggregator.reindex(self.store)

        self.assertEqual(self.store.get_persons_page_ranks(), {})

    def test_full_refresh_corrects_drift(self):
        person = self.store.add_person('Alice', ['alpha'])
        self.index.put_terms(TermVocabulary(U1, {'alpha': 4}))
        self.store.insert_person_page_ranks(person, {U1: 10, U3: 1})

        self.aggregator.update_all_person_page_ranks(self.store)

        self.assertEqual(self.store.get_persons_page_ranks(), {person: {U1: 4}})


class TestIncrementalUpdate(RankTestCase):
    def test_crawled_pages_are_added_to_persisted_ranks(self):
        alice = self.store.add_person('Alice', ['alpha', 'beta'])
        bob = self.store.add_person('Bob', ['gamma'])
        self.store.insert_person_page_ranks(alice, {U1: 1})
        vocabularies = [
            TermVocabulary(U1, {'alpha': 3, 'beta': 1}),
            TermVocabulary(U2, {'beta': 2, 'delta': 9}),
        ]

        updated = self.aggregator.update_person_page_ranks(
            self.store.get_persons_with_keywords(), vocabularies, self.store
        )

        self.assertEqual(updated, {alice: {U1: 4, U2: 2}})
        self.assertEqual(self.store.get_persons_page_ranks(), {alice: {U1: 5, U2: 2}})
        self.assertNotIn(bob, self.store.get_persons_page_ranks())


class TestReindexTriggers(unittest.TestCase):
    def test_count_growth_trigger(self):
        self.assertTrue(keyword_count_grew({1: {'a'}}, {1: {'a'}, 2: {'b'}}))
        self.assertTrue(keyword_count_grew({1: {'a'}}, {1: {'a', 'b'}}))
        self.assertFalse(keyword_count_grew({1: {'a'}}, {1: {'a'}}))

    def test_replacement_of_equal_size_is_only_seen_by_exact_trigger(self):
        previous, current = {1: {'a'}}, {1: {'b'}}

        self.assertFalse(keyword_count_grew(previous, current))
        self.assertTrue(keywords_changed(previous, current))


if __name__ == '__main__':
    unittest.main()
