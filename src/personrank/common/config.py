"""
Configuration settings for the person rank crawler.
"""
import os
from dataclasses import dataclass, fields, replace

# Storage settings
DATABASE_URL = 'sqlite:///personrank.db'
REDIS_URL = 'redis://localhost:6379/0'
REDIS_TIMEOUT = 10.0  # seconds
INDEX_KEY_PREFIX = 'Crawler_'

# Crawler settings
USER_AGENT = 'PersonRankCrawler/1.0'
REQUEST_TIMEOUT = 30  # seconds
PAGES_PER_SCAN_CYCLE = 10  # links sent to the parser in one batch
PAGES_BEFORE_REINDEX = 1000  # crawled pages between keyword universe checks
MAX_CONSECUTIVE_BATCH_FAILURES = 7  # per site, exceeding it aborts the crawl

# Link classification
ROBOTS_TXT_APPENDIX = '/robots.txt'
SITEMAP_APPENDIX = '/sitemap.xml'
ROBOTS_TXT_PATTERN = '%/robots.txt'
SITEMAP_PATTERNS = ('%sitemap%.xml', '%sitemap%.xml.gz')

ENV_PREFIX = 'PERSONRANK_'


@dataclass(frozen=True)
class CrawlerConfig:
    """Settings passed explicitly into the orchestrator and the DB factory."""
    database_url: str = DATABASE_URL
    redis_url: str = REDIS_URL
    redis_timeout: float = REDIS_TIMEOUT
    index_key_prefix: str = INDEX_KEY_PREFIX
    user_agent: str = USER_AGENT
    request_timeout: float = REQUEST_TIMEOUT
    batch_size: int = PAGES_PER_SCAN_CYCLE
    pages_before_reindex: int = PAGES_BEFORE_REINDEX
    max_consecutive_batch_failures: int = MAX_CONSECUTIVE_BATCH_FAILURES

    def __post_init__(self):
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {self.batch_size}")
        if self.redis_timeout <= 0:
            raise ValueError(f"redis_timeout must be positive, got {self.redis_timeout}")

    @property
    def cycles_before_reindex(self):
        """Number of crawl cycles between two checks of the keyword universe."""
        return max(1, self.pages_before_reindex // self.batch_size)

    def with_overrides(self, **overrides):
        """Return a copy with every non-None override applied."""
        changes = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **changes) if changes else self

    @classmethod
    def from_env(cls, properties_file=None, environ=None):
        """
        Build a config from an optional properties file overlaid by
        PERSONRANK_* environment variables.
        """
        environ = os.environ if environ is None else environ
        values = {}
        if properties_file:
            values.update(load_properties(properties_file))
        for field in fields(cls):
            env_name = ENV_PREFIX + field.name.upper()
            if env_name in environ:
                values[field.name] = environ[env_name]
        return cls(**_coerce(values))


def load_properties(path):
    """Read `key=value` lines, skipping blanks and `#` comments."""
    properties = {}
    with open(path, encoding='utf-8') as handle:
        for raw in handle:
            line = raw.strip()
            if not line or line.startswith('#') or '=' not in line:
                continue
            key, value = line.split('=', 1)
            value = value.strip()
            if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
                value = value[1:-1]
            properties[key.strip().lower()] = value
    return properties


def _coerce(values):
    known = {field.name: field.type for field in fields(CrawlerConfig)}
    coerced = {}
    for key, value in values.items():
        if key not in known:
            continue
        target = known[key]
        if target in (int, 'int'):
            try:
                coerced[key] = int(value)
            except (TypeError, ValueError):
                raise ValueError(f"Wrong number format for {key}: {value!r}")
        elif target in (float, 'float'):
            try:
                coerced[key] = float(value)
            except (TypeError, ValueError):
                raise ValueError(f"Wrong number format for {key}: {value!r}")
        else:
            coerced[key] = value
    return coerced
