import logging
from pathlib import Path
from urllib.parse import unquote

from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from personrank.common.config import CrawlerConfig
from personrank.indexer.inverted_index import connect_redis_index
from personrank.store.page_store import PageStore

logger = logging.getLogger(__name__)


def build_engine(database_url):
    if database_url.startswith("sqlite:///"):
        raw = unquote(database_url[len("sqlite:///"):])
        if raw and raw != ":memory:":
            Path(raw).parent.mkdir(parents=True, exist_ok=True)
    connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
    kwargs = {"connect_args": connect_args, "future": True}
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        kwargs["poolclass"] = StaticPool
    return create_engine(database_url, **kwargs)


class DBFactory:
    """Builds the page store and the inverted index from one config and closes them."""

    def __init__(self, config=None):
        self.config = config or CrawlerConfig()
        self._page_store = None
        self._index = None

    def get_page_store(self):
        if self._page_store is None:
            engine = build_engine(self.config.database_url)
            self._page_store = PageStore(engine)
            self._page_store.create_schema()
            logger.info(f"Page store opened: {engine.url.render_as_string(hide_password=True)}")
        return self._page_store

    def get_index(self):
        if self._index is None:
            self._index = connect_redis_index(
                self.config.redis_url,
                self.config.redis_timeout,
                key_prefix=self.config.index_key_prefix,
            )
        return self._index

    def close(self):
        if self._index is not None:
            self._index.close()
            self._index = None
        if self._page_store is not None:
            self._page_store.engine.dispose()
            self._page_store = None
