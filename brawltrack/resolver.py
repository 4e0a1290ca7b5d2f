# brawltrack/resolver.py
"""
Ranked score resolution across secondary sources.

The official API does not expose the ranked score, so it is recovered from a
scraped profile page first and then from community mirror APIs. Sources are
tried one after another and the first acceptable snapshot wins; a failing
source is recorded as an `AttemptOutcome` and never raised.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from http.client import HTTPException
from typing import Any, List, Optional, Sequence, Tuple

from .api_client import HttpFetcher
from .config import MirrorSource, Settings
from .html_extract import RegexStatExtractor, StatExtractor, is_bot_challenge
from .normalization import rank_label_from_score
from .scanner import best_rank_label, find_tagged_record, read_current_ranked_elo, read_highest_ranked_elo
from .utils import bare_tag, encode_tag, normalize_tag

logger = logging.getLogger(__name__)

SOURCE_SCRAPE = "scrape"
SOURCE_MIRROR = "mirror"

CURRENT_LABEL = "Ranked Elo"
PEAK_LABEL = "Highest Ranked Elo"


@dataclass(frozen=True)
class RankedSnapshot:
    score: int
    rank_label: Optional[str]
    peak_score: Optional[int]

    def to_dict(self) -> dict:
        return {"score": self.score, "rank_label": self.rank_label, "peak_score": self.peak_score}


@dataclass(frozen=True)
class AttemptOutcome:
    source: str
    url: str
    ok: bool
    detail: str

    def describe(self) -> str:
        status = "ok" if self.ok else "miss"
        return f"[{self.source}] {status} {self.url} ({self.detail})"


@dataclass
class ResolutionReport:
    tag: str
    snapshot: Optional[RankedSnapshot] = None
    attempts: List[AttemptOutcome] = field(default_factory=list)


_API_KEY_RE = re.compile(r"(apiKey=)[^&]+")


def redact_url(url: str) -> str:
    return _API_KEY_RE.sub(r"\1***", url)


def snapshot_from_record(record: Any) -> Optional[RankedSnapshot]:
    """Build a snapshot from one player's mirror record, or None if it carries nothing ranked."""
    current = int(read_current_ranked_elo(record))
    peak = int(read_highest_ranked_elo(record))
    label = best_rank_label(record)
    if current <= 0 and not label:
        return None
    best = max(current, peak)
    return RankedSnapshot(score=current, rank_label=label, peak_score=best if best > 0 else None)


class RankedSnapshotResolver:
    """Sequential scrape -> mirrors resolution of a player's ranked score."""

    MIRROR_PATHS = (
        "/players/{encoded}",
        "/players/{bare}",
        "/player/{bare}",
        "/player?tag={bare}",
    )

    def __init__(
        self,
        http: Optional[HttpFetcher] = None,
        scrape_base_url: str = "https://brawltime.ninja",
        mirrors: Sequence[MirrorSource] = (),
        extractor: Optional[StatExtractor] = None,
    ):
        self.http = http or HttpFetcher()
        self.scrape_base_url = scrape_base_url.rstrip("/")
        self.mirrors = tuple(mirrors)
        self.extractor = extractor or RegexStatExtractor()

    @classmethod
    def from_settings(cls, settings: Settings, http: Optional[HttpFetcher] = None) -> "RankedSnapshotResolver":
        return cls(
            http=http or HttpFetcher(settings.request_timeout_seconds),
            scrape_base_url=settings.scrape_base_url,
            mirrors=settings.mirrors,
        )

    def get_external_ranked_snapshot(self, tag: str, force_refresh: bool = False) -> Optional[RankedSnapshot]:
        return self.resolve(tag, force_refresh=force_refresh).snapshot

    def resolve(self, tag: str, force_refresh: bool = False) -> ResolutionReport:
        report = ResolutionReport(tag=normalize_tag(tag))

        snapshot, outcome = self._try_scrape(report.tag, force_refresh)
        self._record(report, outcome)
        if snapshot is not None:
            report.snapshot = snapshot
            return report

        for url in self.mirror_urls(report.tag):
            snapshot, outcome = self._try_mirror(url, report.tag, force_refresh)
            self._record(report, outcome)
            if snapshot is not None:
                report.snapshot = snapshot
                return report

        logger.info("No ranked snapshot for %s after %d attempts", report.tag, len(report.attempts))
        return report

    @staticmethod
    def _record(report: ResolutionReport, outcome: AttemptOutcome) -> None:
        report.attempts.append(outcome)
        logger.debug("ranked %s %s", report.tag, outcome.describe())

    # --- scraped profile ---

    def profile_url(self, tag: str) -> str:
        return f"{self.scrape_base_url}/profile/{bare_tag(tag)}"

    def _try_scrape(self, tag: str, force_refresh: bool) -> Tuple[Optional[RankedSnapshot], AttemptOutcome]:
        url = self.profile_url(tag)
        try:
            page = self.http.get_text(url, force_refresh=force_refresh)
        except (OSError, ValueError, HTTPException) as exc:
            return None, AttemptOutcome(SOURCE_SCRAPE, url, False, f"request failed: {exc}")

        if is_bot_challenge(page):
            return None, AttemptOutcome(SOURCE_SCRAPE, url, False, "bot challenge page")

        current = self.extractor.extract(page, CURRENT_LABEL) or 0
        peak = self.extractor.extract(page, PEAK_LABEL) or 0
        if current <= 0 and peak <= 0:
            return None, AttemptOutcome(SOURCE_SCRAPE, url, False, "no ranked stats on page")

        snapshot = RankedSnapshot(
            score=current,
            rank_label=rank_label_from_score(current) if current > 0 else None,
            peak_score=max(current, peak),
        )
        return snapshot, AttemptOutcome(SOURCE_SCRAPE, url, True, f"current={current} peak={peak}")

    # --- mirrors ---

    def mirror_urls(self, tag: str) -> List[str]:
        """Every candidate mirror URL for a tag, in the order they are tried."""
        encoded = encode_tag(tag)
        bare = bare_tag(tag)
        urls: List[str] = []
        for mirror in self.mirrors:
            for root in self._mirror_roots(mirror.base_url):
                for shape in self.MIRROR_PATHS:
                    url = root + shape.format(encoded=encoded, bare=bare)
                    if mirror.api_key:
                        joiner = "&" if "?" in url else "?"
                        url = f"{url}{joiner}apiKey={mirror.api_key}"
                    if url not in urls:
                        urls.append(url)
        return urls

    @staticmethod
    def _mirror_roots(base_url: str) -> List[str]:
        base = base_url.rstrip("/")
        if base.lower().endswith("/v1"):
            return [base, base[:-3]]
        return [base, f"{base}/v1"]

    def _try_mirror(self, url: str, tag: str, force_refresh: bool) -> Tuple[Optional[RankedSnapshot], AttemptOutcome]:
        shown = redact_url(url)
        try:
            payload = self.http.get_json(url, force_refresh=force_refresh)
        except (OSError, ValueError, HTTPException) as exc:
            return None, AttemptOutcome(SOURCE_MIRROR, shown, False, f"request failed: {exc}")

        record = find_tagged_record(payload, tag)
        if record is None:
            return None, AttemptOutcome(SOURCE_MIRROR, shown, False, "no record for tag")

        snapshot = snapshot_from_record(record)
        if snapshot is None:
            return None, AttemptOutcome(SOURCE_MIRROR, shown, False, "record has no ranked fields")
        return snapshot, AttemptOutcome(
            SOURCE_MIRROR, shown, True, f"score={snapshot.score} label={snapshot.rank_label}"
        )
