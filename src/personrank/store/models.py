from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class Site(Base):
    __tablename__ = "sites"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), default="", nullable=False)
    url = Column(String(512), nullable=False, unique=True)

    pages = relationship("Page", back_populates="site", cascade="all, delete-orphan")


class Page(Base):
    __tablename__ = "pages"

    id = Column(Integer, primary_key=True, index=True)
    url = Column(String(2048), nullable=False, unique=True, index=True)
    site_id = Column(Integer, ForeignKey("sites.id"), nullable=False, index=True)
    parent_page_id = Column(Integer, ForeignKey("pages.id"), nullable=True)
    found_date_time = Column(DateTime, default=lambda: datetime.now(timezone.utc).replace(tzinfo=None), nullable=True)
    last_scan_date = Column(DateTime, nullable=True, index=True)

    site = relationship("Site", back_populates="pages")
    ranks = relationship("PersonPageRank", back_populates="page", cascade="all, delete-orphan")


class Person(Base):
    __tablename__ = "persons"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)

    keywords = relationship("Keyword", back_populates="person", cascade="all, delete-orphan")
    ranks = relationship("PersonPageRank", back_populates="person", cascade="all, delete-orphan")


class Keyword(Base):
    __tablename__ = "keywords"
    __table_args__ = (UniqueConstraint("person_id", "name", name="ux_keywords_person_name"),)

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    person_id = Column(Integer, ForeignKey("persons.id"), nullable=False, index=True)

    person = relationship("Person", back_populates="keywords")


class PersonPageRank(Base):
    __tablename__ = "person_page_ranks"

    person_id = Column(Integer, ForeignKey("persons.id"), primary_key=True)
    page_id = Column(Integer, ForeignKey("pages.id"), primary_key=True)
    rank = Column(Integer, default=0, nullable=False)

    person = relationship("Person", back_populates="ranks")
    page = relationship("Page", back_populates="ranks")
