"""
Link discovery for the person rank crawler.
Finds new pages through robots.txt files and sitemaps.
"""
import gzip
import logging
import xml.etree.ElementTree as ET
from datetime import datetime
from urllib.robotparser import RobotFileParser

import requests

from personrank.common.config import REQUEST_TIMEOUT, SITEMAP_APPENDIX, USER_AGENT
from personrank.common.errors import LinkDiscoveryError
from personrank.common.utils import get_site_address, normalize_url

logger = logging.getLogger(__name__)

SITEMAP_NS = '{http://www.sitemaps.org/schemas/sitemap/0.9}'


def parse_lastmod(value):
    """Parse a W3C datetime from a sitemap, returning None when it is unusable."""
    if not value:
        return None
    value = value.strip()
    try:
        parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        logger.debug(f"Ignoring unparsable lastmod: {value}")
        return None
    # stored as naive UTC
    if parsed.tzinfo is not None:
        parsed = parsed.replace(tzinfo=None) - parsed.utcoffset()
    return parsed


class LinksLoader:
    def __init__(self, session=None, user_agent=USER_AGENT, timeout=REQUEST_TIMEOUT):
        self.session = session or requests.Session()
        self.session.headers.update({'User-Agent': user_agent})
        self.user_agent = user_agent
        self.timeout = timeout

    def get_site_address(self, url):
        return get_site_address(url)

    def is_site_available(self, address):
        """Probe the site root; any connection error counts as unavailable."""
        try:
            response = self.session.get(address, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning(f"Site {address} is not available: {e}")
            return False
        if response.status_code >= 400:
            logger.warning(f"Site {address} answered with HTTP {response.status_code}")
            return False
        return True

    def get_links_from_robots_txt(self, url):
        """
        Sitemap links declared in a robots.txt file.

        A robots.txt without any Sitemap line yields the conventional
        `<site>/sitemap.xml` so the site still gets a sitemap to try.
        """
        text = self._fetch(url).text
        parser = RobotFileParser()
        parser.set_url(url)
        parser.parse(text.splitlines())
        links = {normalize_url(link) for link in (parser.site_maps() or [])}
        if not links:
            links = {get_site_address(url) + SITEMAP_APPENDIX}
        logger.info(f"Found {len(links)} sitemap links in {url}")
        return links

    def get_links_from_sitemap(self, url):
        """
        URL -> lastmod for every entry of a sitemap.

        Entries of a sitemap index are nested sitemaps; they are returned like
        any other link and get fetched once they are stored as pages.
        """
        response = self._fetch(url)
        content = response.content
        if content[:2] == b'\x1f\x8b':
            try:
                content = gzip.decompress(content)
            except OSError as e:
                raise LinkDiscoveryError(f"Cannot decompress sitemap {url}: {e}") from e
        try:
            root = ET.fromstring(content)
        except ET.ParseError as e:
            raise LinkDiscoveryError(f"Cannot parse sitemap {url}: {e}") from e

        entry_tag = 'sitemap' if root.tag.endswith('sitemapindex') else 'url'
        links = {}
        for entry in root.iter(f"{SITEMAP_NS}{entry_tag}"):
            loc = entry.find(f"{SITEMAP_NS}loc")
            if loc is None or not (loc.text or '').strip():
                continue
            lastmod = entry.find(f"{SITEMAP_NS}lastmod")
            links[normalize_url(loc.text.strip())] = parse_lastmod(lastmod.text if lastmod is not None else None)
        logger.info(f"Found {len(links)} links in sitemap {url}")
        return links

    def _fetch(self, url):
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise LinkDiscoveryError(f"Failed to fetch {url}: {e}") from e
        return response
