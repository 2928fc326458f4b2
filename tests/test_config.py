"""
Tests for crawler configuration loading.
"""
import os
import tempfile
import unittest

from personrank.common.config import CrawlerConfig, load_properties


class TestCrawlerConfig(unittest.TestCase):
    def setUp(self):
        handle, self.path = tempfile.mkstemp(suffix='.properties')
        with os.fdopen(handle, 'w', encoding='utf-8') as f:
            f.write("# crawler settings\n"
                    "DATABASE_URL = 'sqlite:///crawl.db'\n"
                    "batch_size=25\n"
                    "redis_timeout=2.5\n"
                    "\n"
                    "unknown_key=ignored\n")

    def tearDown(self):
        os.remove(self.path)

    def test_defaults(self):
        config = CrawlerConfig.from_env(environ={})

        self.assertEqual(config, CrawlerConfig())
        self.assertEqual(config.batch_size, 10)
        self.assertEqual(config.cycles_before_reindex, 100)

    def test_properties_file(self):
        self.assertEqual(load_properties(self.path)['database_url'], 'sqlite:///crawl.db')

        config = CrawlerConfig.from_env(self.path, environ={})

        self.assertEqual(config.database_url, 'sqlite:///crawl.db')
        self.assertEqual(config.batch_size, 25)
        self.assertEqual(config.redis_timeout, 2.5)

    def test_environment_overrides_file(self):
        environ = {'PERSONRANK_BATCH_SIZE': '50', 'PERSONRANK_REDIS_URL': 'redis://cache:6379/1'}

        config = CrawlerConfig.from_env(self.path, environ=environ)

        self.assertEqual(config.batch_size, 50)
        self.assertEqual(config.redis_url, 'redis://cache:6379/1')
        self.assertEqual(config.database_url, 'sqlite:///crawl.db')

    def test_wrong_number_format(self):
        with self.assertRaises(ValueError):
            CrawlerConfig.from_env(environ={'PERSONRANK_BATCH_SIZE': 'ten'})

    def test_invalid_values(self):
        with self.assertRaises(ValueError):
            CrawlerConfig(batch_size=0)
        with self.assertRaises(ValueError):
            CrawlerConfig(redis_timeout=0)

    def test_with_overrides_ignores_none(self):
        config = CrawlerConfig().with_overrides(batch_size=5, redis_url=None)

        self.assertEqual(config.batch_size, 5)
        self.assertEqual(config.redis_url, CrawlerConfig().redis_url)
        self.assertEqual(config.cycles_before_reindex, 200)

    def test_cycles_before_reindex_is_at_least_one(self):
        self.assertEqual(CrawlerConfig(batch_size=50, pages_before_reindex=10).cycles_before_reindex, 1)


if __name__ == '__main__':
    unittest.main()
