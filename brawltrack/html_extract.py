# brawltrack/html_extract.py
"""
Stat extraction from scraped profile and leaderboard pages.

The profile site renders its stats as loosely structured markup that changes
without notice, so extraction is layered: structured markup first, then
looser markup, then the flattened page text, then JSON fragments embedded in
inline scripts. Every candidate goes through `sanitize_ranked_score` and the
best one wins.
"""

from __future__ import annotations

import html
import re
from typing import Any, Dict, Iterator, List, Optional, Tuple

from bs4 import BeautifulSoup

from .normalization import parse_numeric_score, sanitize_ranked_score
from .scanner import KEY_CURRENT, KEY_PEAK, classify_ranked_key
from .utils import TAG_ALPHABET, is_plausible_tag, normalize_tag

BOT_CHALLENGE_MARKERS = (
    "just a moment",
    "checking your browser",
    "cf-challenge",
    "enable javascript and cookies",
    "__cf_chl",
    "attention required",
    "ddos protection by",
)

# Labels rendered on profile pages; longer labels that contain shorter ones
# must be listed so the shorter one is never read out of the longer.
KNOWN_STAT_LABELS = (
    "Highest Ranked Elo",
    "Ranked Elo",
    "Highest Trophies",
    "Trophies",
)

LABEL_CONTEXT_WINDOW = 24

# Thousands separators inside a number are commas or non-breaking/thin spaces,
# never a plain space (two adjacent stats would merge).
_NUMBER = r"(?<![\d.])(\d{1,3}(?:[,\u00a0\u202f]\d{3})+|\d+)(?!\d)"
_SEPARATOR = r"[\s:|=\-]*"
_WHITESPACE_RE = re.compile(r"[ \t\r\n\f\v]+")
_EMBEDDED_KEY_RE = re.compile(r'"([A-Za-z_][\w]*)"\s*:\s*"?(' + r"\d[\d,\u00a0\u202f]*" + r')"?')

_LEADERBOARD_ROW_RE = re.compile(
    r"(?<![\w#])(\d{1,4})[.)]?\s+"
    r"([^#\s](?:(?!\s\d{1,4}[.)]?\s)[^#]){0,39}?)\s+"
    rf"(#[{TAG_ALPHABET}]{{3,12}})(?![{TAG_ALPHABET}])\s*"
    r"(\d{1,3}(?:,\d{3})+|\d+)(?!\d)",
    re.IGNORECASE,
)

LAYOUT_LABEL_FIRST = "label_first"
LAYOUT_VALUE_FIRST = "value_first"


def is_bot_challenge(raw_html: Any) -> bool:
    """True when the payload is a CDN/JavaScript challenge page rather than content."""
    if not isinstance(raw_html, str) or not raw_html:
        return False
    lowered = raw_html.lower()
    return any(marker in lowered for marker in BOT_CHALLENGE_MARKERS)


def strip_html(raw_html: str) -> str:
    """Flatten markup to single-spaced text, dropping <script>/<style> blocks."""
    if not raw_html:
        return ""
    soup = BeautifulSoup(raw_html, "html.parser")
    for node in soup(["script", "style", "noscript"]):
        node.decompose()
    text = html.unescape(soup.get_text(" "))
    return _WHITESPACE_RE.sub(" ", text).strip()


def _label_pattern(label: str) -> str:
    return r"\s+".join(re.escape(part) for part in label.split())


class StatExtractor:
    """Capability: read one labelled number out of a document."""

    def extract(self, document: str, label: str) -> Optional[int]:
        raise NotImplementedError


class RegexStatExtractor(StatExtractor):
    """
    Regex-based extractor used for the scraped profile page.

    Strategies, all tried, best value kept:
        1. `<div class="...stat...">VALUE<label>LABEL</label>`
        2. VALUE directly before an element whose text is exactly LABEL
        3. flattened text, value next to the label phrase
        4. `"someRankedKey": VALUE` inside inline JSON
    """

    def __init__(self, known_labels: Tuple[str, ...] = KNOWN_STAT_LABELS, context_window: int = LABEL_CONTEXT_WINDOW):
        self.known_labels = known_labels
        self.context_window = context_window

    def extract(self, document: str, label: str) -> Optional[int]:
        if not document or not label:
            return None

        candidates: List[int] = []
        for strategy in (self._strict_markup, self._loose_markup, self._flattened_text, self._embedded_json):
            value = strategy(document, label)
            if value is not None:
                candidates.append(value)
        return max(candidates) if candidates else None

    # --- strategies ---

    def _strict_markup(self, document: str, label: str) -> Optional[int]:
        pattern = re.compile(
            r"<div[^>]*class=\"[^\"]*stat[^\"]*\"[^>]*>\s*"
            + _NUMBER
            + r"\s*<label[^>]*>\s*"
            + _label_pattern(label)
            + r"\s*</label>",
            re.IGNORECASE,
        )
        return self._best(match.group(1) for match in pattern.finditer(document))

    def _loose_markup(self, document: str, label: str) -> Optional[int]:
        pattern = re.compile(
            r">\s*" + _NUMBER + r"\s*(?:<[^>]+>\s*){1,4}" + _label_pattern(label) + r"\s*<",
            re.IGNORECASE,
        )
        return self._best(match.group(1) for match in pattern.finditer(document))

    def _flattened_text(self, document: str, label: str) -> Optional[int]:
        text = strip_html(document)
        if not text:
            return None
        layout = self.detect_layout(text)
        return self._best(self._text_values(text, label, layout))

    def _embedded_json(self, document: str, label: str) -> Optional[int]:
        wanted = self._label_concept(label)
        if wanted is None:
            return None
        values = (
            match.group(2)
            for match in _EMBEDDED_KEY_RE.finditer(document)
            if classify_ranked_key(match.group(1)) == wanted
        )
        return self._best(values)

    # --- flattened text helpers ---

    def detect_layout(self, text: str) -> str:
        """
        Decide whether this page prints `Label value` or `value Label`.

        Votes across every known label found in the text; ties read as
        label-first.
        """
        label_first = 0
        value_first = 0
        for known in self.known_labels:
            for start, end in self._label_occurrences(text, known):
                if self._value_after(text, end) is not None:
                    label_first += 1
                if self._value_before(text, start) is not None:
                    value_first += 1
        return LAYOUT_VALUE_FIRST if value_first > label_first else LAYOUT_LABEL_FIRST

    def _text_values(self, text: str, label: str, layout: str) -> Iterator[str]:
        for start, end in self._label_occurrences(text, label):
            if layout == LAYOUT_LABEL_FIRST:
                raw = self._value_after(text, end)
            else:
                raw = self._value_before(text, start)
            if raw is not None:
                yield raw

    def _label_occurrences(self, text: str, label: str) -> Iterator[Tuple[int, int]]:
        pattern = re.compile(r"(?<![A-Za-z])" + _label_pattern(label) + r"(?![A-Za-z])", re.IGNORECASE)
        for match in pattern.finditer(text):
            if not self._inside_longer_label(text, match.start(), match.end(), label):
                yield match.start(), match.end()

    def _inside_longer_label(self, text: str, start: int, end: int, label: str) -> bool:
        lo = max(0, start - self.context_window)
        hi = min(len(text), end + self.context_window)
        window = text[lo:hi].lower()
        offset = start - lo
        short = label.lower()
        for known in self.known_labels:
            longer = known.lower()
            if longer == short or short not in longer:
                continue
            inner = longer.index(short)
            begin = offset - inner
            if begin >= 0 and window[begin:begin + len(longer)] == longer:
                return True
        return False

    @staticmethod
    def _value_after(text: str, end: int) -> Optional[str]:
        match = re.match(_SEPARATOR + _NUMBER, text[end:])
        return match.group(1) if match else None

    @staticmethod
    def _value_before(text: str, start: int) -> Optional[str]:
        match = re.search(_NUMBER + _SEPARATOR + r"$", text[:start])
        return match.group(1) if match else None

    # --- misc ---

    @staticmethod
    def _label_concept(label: str) -> Optional[str]:
        lowered = label.lower()
        if "elo" not in lowered and "ranked" not in lowered:
            return None
        if any(word in lowered for word in ("highest", "best", "peak", "max")):
            return KEY_PEAK
        return KEY_CURRENT

    @staticmethod
    def _best(raw_values: Iterator[str]) -> Optional[int]:
        best: Optional[int] = None
        for raw in raw_values:
            value = sanitize_ranked_score(parse_numeric_score(raw, strict=True))
            if value is None:
                continue
            value = int(value)
            if best is None or value > best:
                best = value
        return best


def parse_ranked_leaderboard(html_or_text: str, limit: int = 50) -> List[Dict[str, Any]]:
    """
    Extract `(rank, name, tag, score)` rows from a ranked leaderboard page.

    Rows are deduplicated by tag (first row wins), rows with an implausible tag
    or score are dropped, and the result is ordered by rank then score.
    """
    if not html_or_text:
        return []
    text = strip_html(html_or_text) if "<" in html_or_text else _WHITESPACE_RE.sub(" ", html_or_text)

    rows: List[Dict[str, Any]] = []
    seen = set()
    for match in _LEADERBOARD_ROW_RE.finditer(text):
        tag = normalize_tag(match.group(3))
        score = sanitize_ranked_score(parse_numeric_score(match.group(4), strict=True))
        if score is None or tag in seen or not is_plausible_tag(tag):
            continue
        seen.add(tag)
        rows.append({
            "rank": int(match.group(1)),
            "name": match.group(2).strip(),
            "tag": tag,
            "score": int(score),
        })

    rows.sort(key=lambda row: (row["rank"], -row["score"]))
    return rows[:max(0, limit)]
