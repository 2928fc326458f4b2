"""
Relational page store for the person rank crawler.
Holds sites, pages with their scan marks, persons with keywords and the
persisted person page ranks.
"""
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional, Set, Union

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from personrank.common.config import ROBOTS_TXT_PATTERN, SITEMAP_PATTERNS
from personrank.common.errors import StoreError
from personrank.common.models import PageRecord
from personrank.store.models import Base, Keyword, Page, Person, PersonPageRank, Site

logger = logging.getLogger(__name__)

# Keeps IN (...) lists below the SQLite bound-parameter limit.
CHUNK_SIZE = 500


def _chunks(items, size=CHUNK_SIZE):
    items = list(items)
    for start in range(0, len(items), size):
        yield items[start:start + size]


class PageStore:
    def __init__(self, engine):
        self.engine = engine
        self.session_factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)

    def create_schema(self) -> None:
        Base.metadata.create_all(self.engine)

    @contextmanager
    def _session(self):
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            if isinstance(e, SQLAlchemyError):
                raise StoreError(f"Page store operation failed: {e}") from e
            raise
        finally:
            session.close()

    # Sites and persons

    def add_site(self, url: str, name: str = "") -> int:
        """Register a site together with its root page."""
        with self._session() as session:
            site = Site(url=url, name=name or url)
            session.add(site)
            session.flush()
            session.add(Page(url=url, site_id=site.id))
            logger.info(f"Added site {url} with id={site.id}")
            return site.id

    def add_person(self, name: str, keywords: Iterable[str] = ()) -> int:
        with self._session() as session:
            person = Person(name=name)
            person.keywords = [Keyword(name=word) for word in sorted(set(keywords))]
            session.add(person)
            session.flush()
            return person.id

    def add_keywords(self, person_id: int, keywords: Iterable[str]) -> None:
        with self._session() as session:
            known = set(session.scalars(select(Keyword.name).where(Keyword.person_id == person_id)))
            for word in sorted(set(keywords) - known):
                session.add(Keyword(name=word, person_id=person_id))

    def get_persons_with_keywords(self) -> Dict[int, Set[str]]:
        with self._session() as session:
            keywords = {person_id: set() for person_id in session.scalars(select(Person.id))}
            for person_id, word in session.execute(select(Keyword.person_id, Keyword.name)):
                keywords[person_id].add(word)
            return keywords

    # Pages

    def get_single_pages(self) -> List[PageRecord]:
        """Pages of sites that have exactly one known page."""
        single_sites = (
            select(Page.site_id)
            .group_by(Page.site_id)
            .having(func.count(Page.id) == 1)
        )
        with self._session() as session:
            pages = session.scalars(select(Page).where(Page.site_id.in_(single_sites)).order_by(Page.id))
            return [self._to_record(page) for page in pages]

    def get_site_ids(self) -> List[int]:
        with self._session() as session:
            return list(session.scalars(select(Site.id).order_by(Site.id)))

    def get_site_id(self, url: str) -> Optional[int]:
        with self._session() as session:
            return session.scalar(select(Page.site_id).where(Page.url == url))

    def get_unscanned_robots_txt_links(self) -> Set[str]:
        query = select(Page.url).where(
            Page.url.like(ROBOTS_TXT_PATTERN),
            Page.last_scan_date.is_(None),
        )
        with self._session() as session:
            return set(session.scalars(query))

    def get_unscanned_sitemap_links(self) -> Set[str]:
        query = select(Page.url).where(
            or_(*(Page.url.like(pattern) for pattern in SITEMAP_PATTERNS)),
            Page.last_scan_date.is_(None),
        )
        with self._session() as session:
            return set(session.scalars(query))

    def get_bunch_of_unscanned_links(self, site_id: int, limit: int) -> List[str]:
        """Up to `limit` unscanned content pages of a site, robots.txt and sitemaps excluded."""
        query = (
            select(Page.url)
            .where(
                Page.site_id == site_id,
                Page.last_scan_date.is_(None),
                Page.url.not_like(ROBOTS_TXT_PATTERN),
                *(Page.url.not_like(pattern) for pattern in SITEMAP_PATTERNS),
            )
            .order_by(Page.id)
            .limit(limit)
        )
        with self._session() as session:
            return list(session.scalars(query))

    def get_last_scan_date(self, url: str) -> Optional[datetime]:
        with self._session() as session:
            return session.scalar(select(Page.last_scan_date).where(Page.url == url))

    def update_last_scan_date(self, page: Union[int, str], timestamp: Optional[datetime]) -> None:
        """Set the scan mark of one page, addressed by id or by URL."""
        column = Page.id if isinstance(page, int) else Page.url
        with self._session() as session:
            session.execute(update(Page).where(column == page).values(last_scan_date=timestamp))

    def update_last_scan_dates_by_url(self, urls: Iterable[str], timestamp: Optional[datetime]) -> None:
        urls = list(urls)
        if not urls:
            return
        with self._session() as session:
            for chunk in _chunks(urls):
                session.execute(update(Page).where(Page.url.in_(chunk)).values(last_scan_date=timestamp))

    def insert_row_in_pages_table(self, url: str, site_id: int, parent_id: Optional[int] = None) -> bool:
        return self.insert_rows_in_pages_table([url], site_id, parent_id) == 1

    def insert_rows_in_pages_table(
        self,
        links: Union[Iterable[str], Mapping[str, Optional[datetime]]],
        site_id: int,
        parent_id: Optional[int] = None,
    ) -> int:
        """
        Insert discovered links as unscanned pages of a site.

        `links` is either a collection of URLs or a URL -> timestamp mapping
        (sitemap lastmod). URLs that are already known are skipped, so the
        same link discovered twice never produces two pages. All rows are
        written in one transaction. Returns the number of pages inserted.
        """
        if isinstance(links, Mapping):
            found = dict(links)
        else:
            found = dict.fromkeys(links)
        if not found:
            return 0
        with self._session() as session:
            known = set()
            for chunk in _chunks(found):
                known.update(session.scalars(select(Page.url).where(Page.url.in_(chunk))))
            new_urls = [url for url in found if url not in known]
            for url in new_urls:
                page = Page(url=url, site_id=site_id, parent_page_id=parent_id)
                if found[url] is not None:
                    page.found_date_time = found[url]
                session.add(page)
            logger.debug(f"Inserted {len(new_urls)} of {len(found)} links for site id={site_id}")
            return len(new_urls)

    # Person page ranks

    def get_persons_page_ranks(self) -> Dict[int, Dict[str, int]]:
        query = select(PersonPageRank.person_id, Page.url, PersonPageRank.rank).join(
            Page, Page.id == PersonPageRank.page_id
        )
        ranks = {}
        with self._session() as session:
            for person_id, url, rank in session.execute(query):
                ranks.setdefault(person_id, {})[url] = rank
        return ranks

    def insert_person_page_ranks(self, person_id: int, ranks: Mapping[str, int]) -> int:
        """
        Merge ranks into the persisted table, adding to existing scores.
        Non-positive ranks and unknown URLs are skipped.
        """
        return self.insert_persons_page_ranks({person_id: ranks})

    def insert_persons_page_ranks(self, ranks_by_person: Mapping[int, Mapping[str, int]]) -> int:
        """Additive merge for several persons, written in a single transaction."""
        with self._session() as session:
            return sum(self._add_ranks(session, person_id, ranks)
                       for person_id, ranks in ranks_by_person.items())

    def replace_person_page_ranks(self, person_id: int, ranks: Mapping[str, int]) -> int:
        """Overwrite every persisted rank of a person."""
        ranks = {url: rank for url, rank in ranks.items() if rank > 0}
        with self._session() as session:
            session.execute(delete(PersonPageRank).where(PersonPageRank.person_id == person_id))
            page_ids = self._page_ids(session, ranks)
            for url, page_id in page_ids.items():
                session.add(PersonPageRank(person_id=person_id, page_id=page_id, rank=ranks[url]))
            return len(page_ids)

    def get_top_pages(self, person_id: int, limit: int = 10) -> List[tuple]:
        """(url, rank) pairs of a person, best first."""
        query = (
            select(Page.url, PersonPageRank.rank)
            .join(Page, Page.id == PersonPageRank.page_id)
            .where(PersonPageRank.person_id == person_id)
            .order_by(PersonPageRank.rank.desc(), Page.url)
            .limit(limit)
        )
        with self._session() as session:
            return [(url, rank) for url, rank in session.execute(query)]

    def get_person_name(self, person_id: int) -> Optional[str]:
        with self._session() as session:
            return session.scalar(select(Person.name).where(Person.id == person_id))

    def _add_ranks(self, session, person_id, ranks):
        ranks = {url: rank for url, rank in ranks.items() if rank > 0}
        if not ranks:
            return 0
        page_ids = self._page_ids(session, ranks)
        existing = {}
        for chunk in _chunks(page_ids.values()):
            rows = session.scalars(
                select(PersonPageRank).where(
                    PersonPageRank.person_id == person_id,
                    PersonPageRank.page_id.in_(chunk),
                )
            )
            existing.update({row.page_id: row for row in rows})
        for url, page_id in page_ids.items():
            row = existing.get(page_id)
            if row is None:
                session.add(PersonPageRank(person_id=person_id, page_id=page_id, rank=ranks[url]))
            else:
                row.rank += ranks[url]
        return len(page_ids)

    def _page_ids(self, session, urls):
        page_ids = {}
        for chunk in _chunks(urls):
            rows = session.execute(select(Page.url, Page.id).where(Page.url.in_(chunk)))
            page_ids.update({url: page_id for url, page_id in rows})
        missing = set(urls) - set(page_ids)
        if missing:
            logger.warning(f"Skipping ranks for {len(missing)} unknown URLs, e.g. {sorted(missing)[0]}")
        return page_ids

    @staticmethod
    def _to_record(page):
        return PageRecord(id=page.id, url=page.url, site_id=page.site_id, last_scan_date=page.last_scan_date)
