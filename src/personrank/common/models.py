"""
Plain data types shared between the orchestrator, the index and the stores.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Optional

from personrank.common.errors import InvalidScanTransition


class ScanStatus(Enum):
    UNSCANNED = "unscanned"
    SCANNING = "scanning"
    SCANNED = "scanned"


@dataclass(frozen=True)
class ScanState:
    """
    Scan mark of a page or link.

    Only the timestamp is persisted: null means UNSCANNED, anything else is
    either an attempt in flight (SCANNING) or a finished one (SCANNED). The
    orchestrator holds the tagged value while it works on a page so that the
    recovery edge SCANNING -> UNSCANNED is explicit.
    """
    status: ScanStatus
    at: Optional[datetime] = None

    @classmethod
    def unscanned(cls):
        return cls(ScanStatus.UNSCANNED)

    @classmethod
    def from_timestamp(cls, timestamp):
        if timestamp is None:
            return cls.unscanned()
        return cls(ScanStatus.SCANNED, timestamp)

    @property
    def timestamp(self):
        """Value to persist for this state."""
        return self.at if self.status is not ScanStatus.UNSCANNED else None

    def begin(self, at):
        if self.status is not ScanStatus.UNSCANNED:
            raise InvalidScanTransition(f"Cannot begin a scan from {self.status.value}")
        return ScanState(ScanStatus.SCANNING, at)

    def succeed(self):
        self._require_scanning("succeed")
        return ScanState(ScanStatus.SCANNED, self.at)

    def fail(self):
        self._require_scanning("fail")
        return ScanState.unscanned()

    def release(self):
        """Work on the page is done but a later phase still has to scan it."""
        self._require_scanning("release")
        return ScanState.unscanned()

    def _require_scanning(self, edge):
        if self.status is not ScanStatus.SCANNING:
            raise InvalidScanTransition(f"Cannot {edge} a scan from {self.status.value}")


@dataclass(frozen=True)
class PageRecord:
    id: int
    url: str
    site_id: int
    last_scan_date: Optional[datetime] = None

    @property
    def scan_state(self):
        return ScanState.from_timestamp(self.last_scan_date)


@dataclass
class TermVocabulary:
    """Lowercase term -> occurrence count, labeled by the page URL."""
    label: str
    counts: Dict[str, int] = field(default_factory=dict)

    def get(self, term):
        return self.counts.get(term, 0)

    def terms(self):
        return set(self.counts)

    def __len__(self):
        return len(self.counts)

    def __contains__(self, term):
        return term in self.counts
