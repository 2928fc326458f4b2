"""
Tests for robots.txt and sitemap link discovery.
"""
import gzip
import unittest
from datetime import datetime
from unittest.mock import Mock

import requests

from personrank.common.errors import LinkDiscoveryError, MalformedUrlError
from personrank.crawler.link_loader import LinksLoader, parse_lastmod

SITE = 'https://example.com'

URLSET = b"""<?xml version="1.0" encoding="UTF-8"?>
<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
  <url><loc>https://example.com/news/</loc><lastmod>2024-05-01T10:00:00+02:00</lastmod></url>
  <url><loc>https://example.com/about#team</loc></url>
  <url><loc>  </loc></url>
</urlset>
"""

SITEMAP_INDEX = b"""<?xml version="1.0" encoding="UTF-8"?>
<sitemapindex xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
  <sitemap><loc>https://example.com/post-sitemap.xml</loc><lastmod>2024-05-01</lastmod></sitemap>
  <sitemap><loc>https://example.com/page-sitemap.xml.gz</loc></sitemap>
</sitemapindex>
"""


def make_response(text='', content=None, status_code=200):
    response = Mock()
    response.text = text
    response.content = content if content is not None else text.encode('utf-8')
    response.status_code = status_code
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status_code} Error")
    return response


class LoaderTestCase(unittest.TestCase):
    def setUp(self):
        self.session = Mock()
        self.session.headers = {}
        self.loader = LinksLoader(session=self.session, user_agent='TestAgent/1.0', timeout=5)


class TestRobotsTxt(LoaderTestCase):
    def test_sitemap_lines_are_returned(self):
        self.session.get.return_value = make_response(
            "User-agent: *\n"
            "Disallow: /admin\n"
            "Sitemap: https://example.com/post-sitemap.xml\n"
            "Sitemap: https://example.com/page-sitemap.xml\n"
        )

        links = self.loader.get_links_from_robots_txt(f"{SITE}/robots.txt")

        self.assertEqual(links, {f"{SITE}/post-sitemap.xml", f"{SITE}/page-sitemap.xml"})
        self.session.get.assert_called_once_with(f"{SITE}/robots.txt", timeout=5)
        self.assertEqual(self.session.headers['User-Agent'], 'TestAgent/1.0')

    def test_conventional_sitemap_when_none_is_declared(self):
        self.session.get.return_value = make_response("User-agent: *\nDisallow:\n")

        links = self.loader.get_links_from_robots_txt(f"{SITE}/robots.txt")

        self.assertEqual(links, {f"{SITE}/sitemap.xml"})

    def test_http_error_becomes_link_discovery_error(self):
        self.session.get.return_value = make_response(status_code=404)

        with self.assertRaises(LinkDiscoveryError):
            self.loader.get_links_from_robots_txt(f"{SITE}/robots.txt")

    def test_connection_error_becomes_link_discovery_error(self):
        self.session.get.side_effect = requests.ConnectionError('refused')

        with self.assertRaises(LinkDiscoveryError):
            self.loader.get_links_from_robots_txt(f"{SITE}/robots.txt")


class TestSitemap(LoaderTestCase):
    def test_urlset_entries_with_lastmod(self):
        self.session.get.return_value = make_response(content=URLSET)

        links = self.loader.get_links_from_sitemap(f"{SITE}/sitemap.xml")

        self.assertEqual(links, {
            f"{SITE}/news": datetime(2024, 5, 1, 8, 0),
            f"{SITE}/about": None,
        })

    def test_sitemap_index_lists_nested_sitemaps(self):
        self.session.get.return_value = make_response(content=SITEMAP_INDEX)

        links = self.loader.get_links_from_sitemap(f"{SITE}/sitemap_index.xml")

        self.assertEqual(links, {
            f"{SITE}/post-sitemap.xml": datetime(2024, 5, 1),
            f"{SITE}/page-sitemap.xml.gz": None,
        })

    def test_gzipped_sitemap(self):
        self.session.get.return_value = make_response(content=gzip.compress(URLSET))

        links = self.loader.get_links_from_sitemap(f"{SITE}/sitemap.xml.gz")

        self.assertEqual(set(links), {f"{SITE}/news", f"{SITE}/about"})

    def test_invalid_xml(self):
        self.session.get.return_value = make_response(content=b"<urlset><url>")

        with self.assertRaises(LinkDiscoveryError):
            self.loader.get_links_from_sitemap(f"{SITE}/sitemap.xml")

    def test_fetch_failure(self):
        self.session.get.side_effect = requests.Timeout('slow')

        with self.assertRaises(LinkDiscoveryError):
            self.loader.get_links_from_sitemap(f"{SITE}/sitemap.xml")


class TestLastmod(unittest.TestCase):
    def test_formats(self):
        self.assertEqual(parse_lastmod('2024-05-01'), datetime(2024, 5, 1))
        self.assertEqual(parse_lastmod('2024-05-01T10:00:00Z'), datetime(2024, 5, 1, 10, 0))
        self.assertEqual(parse_lastmod(' 2024-05-01T10:00:00+02:00 '), datetime(2024, 5, 1, 8, 0))

    def test_unusable_values(self):
        self.assertIsNone(parse_lastmod(None))
        self.assertIsNone(parse_lastmod(''))
        self.assertIsNone(parse_lastmod('yesterday'))


class TestSiteAvailability(LoaderTestCase):
    def test_available(self):
        self.session.get.return_value = make_response(status_code=200)

        self.assertTrue(self.loader.is_site_available(SITE))

    def test_error_status(self):
        self.session.get.return_value = make_response(status_code=503)

        self.assertFalse(self.loader.is_site_available(SITE))

    def test_connection_error(self):
        self.session.get.side_effect = requests.ConnectionError('refused')

        self.assertFalse(self.loader.is_site_available(SITE))

    def test_site_address(self):
        self.assertEqual(self.loader.get_site_address('https://example.com:8080/a/b?q=1'), 'https://example.com:8080')
        for url in ('', 'example.com/page', 'ftp://example.com/file', 'https:///nohost'):
            with self.assertRaises(MalformedUrlError):
                self.loader.get_site_address(url)


if __name__ == '__main__':
    unittest.main()
