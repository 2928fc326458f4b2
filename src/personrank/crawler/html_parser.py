"""
Content extraction for the person rank crawler.
Fetches pages and turns their text into term vocabularies.
"""
import logging

import requests
from bs4 import BeautifulSoup
from nltk.probability import FreqDist
from nltk.tokenize import RegexpTokenizer

from personrank.common.config import REQUEST_TIMEOUT, USER_AGENT
from personrank.common.errors import ContentExtractionError
from personrank.common.models import TermVocabulary

logger = logging.getLogger(__name__)


class TextProcessor:
    """Turns page text into lowercase term counts with NLTK."""
    def __init__(self):
        self.tokenizer = RegexpTokenizer(r'\w+')

    def count_terms(self, text):
        if not text:
            return {}
        tokens = [token for token in self.tokenizer.tokenize(text.lower()) if token.isalnum()]
        return dict(FreqDist(tokens))


def extract_text_from_html(html_content):
    """Extract and clean text from HTML content."""
    if not html_content:
        return ''
    soup = BeautifulSoup(html_content, 'html.parser')

    # Remove script and style elements
    for script in soup(["script", "style", "noscript"]):
        script.decompose()

    # Break into lines and drop blank ones
    lines = (line.strip() for line in soup.get_text().splitlines())
    return '\n'.join(line for line in lines if line)


class HtmlParser:
    def __init__(self, session=None, user_agent=USER_AGENT, timeout=REQUEST_TIMEOUT):
        self.session = session or requests.Session()
        self.session.headers.update({'User-Agent': user_agent})
        self.timeout = timeout
        self.text_processor = TextProcessor()

    def parse_page(self, url):
        """Fetch one page and count its terms."""
        response = self.session.get(url, timeout=self.timeout)
        response.raise_for_status()
        text = extract_text_from_html(response.text)
        vocabulary = TermVocabulary(label=url, counts=self.text_processor.count_terms(text))
        logger.debug(f"Parsed {url}: {len(vocabulary)} distinct terms")
        return vocabulary

    def parse_pages(self, urls):
        """
        Vocabularies of a batch of pages.

        The batch succeeds or fails as a whole: the first page that cannot be
        fetched raises ContentExtractionError and no vocabulary is returned.
        """
        vocabularies = []
        for url in urls:
            try:
                vocabularies.append(self.parse_page(url))
            except requests.RequestException as e:
                raise ContentExtractionError(f"Failed to fetch {url}: {e}") from e
        logger.info(f"Parsed {len(vocabularies)} pages")
        return vocabularies
