# brawltrack/metrics.py
"""
Derived player metrics: battlelog winrates, map and brawler breakdowns,
ranked bans, playtime and account value estimates, ranked Elo extraction.

The official battlelog only holds the last 25 battles, so every "recent" figure
here is a sample over that window rather than a season total.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from .normalization import parse_numeric_score, sanitize_ranked_score
from .scanner import read_current_ranked_elo, read_highest_ranked_elo
from .utils import normalize_tag, readable_name

MATCH_RANKED = "ranked"
MATCH_LADDER = "ladder"

OUTCOME_WIN = "win"
OUTCOME_LOSS = "loss"
OUTCOME_DRAW = "draw"

SAMPLE_SIZE = 25
DEFAULT_SCAN_LIMIT = 60
BREAKDOWN_LIMIT = 8
UNKNOWN_MAP = "Unknown map"
UNKNOWN_BRAWLER = "Unknown brawler"

MINUTES_PER_VICTORY = 3.5

_RANKED_MARKERS = (
    "ranked",
    "powermatch",
    "power match",
    "powerleague",
    "power league",
    "soloranked",
    "solo ranked",
    "teamranked",
    "team ranked",
)

# Keys some stored payloads carry with the last ranked score this instance saw.
_EMBEDDED_LAST_ELO_KEYS = ("lastRankedElo", "last_ranked_elo", "previousRankedElo", "previous_ranked_elo")


@dataclass
class WinrateSummary:
    wins: int = 0
    losses: int = 0
    draws: int = 0

    @property
    def matches(self) -> int:
        return self.wins + self.losses + self.draws

    @property
    def winrate(self) -> float:
        return _percent(self.wins, self.matches, digits=2)

    def add(self, outcome: Optional[str]) -> None:
        if outcome == OUTCOME_WIN:
            self.wins += 1
        elif outcome == OUTCOME_LOSS:
            self.losses += 1
        elif outcome == OUTCOME_DRAW:
            self.draws += 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "wins": self.wins,
            "losses": self.losses,
            "draws": self.draws,
            "matches": self.matches,
            "winrate": self.winrate,
        }


def _percent(part: int, total: int, digits: int = 1) -> float:
    return round(part / total * 100, digits) if total > 0 else 0.0


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


# --- single battle classification ---

def classify_match_type(item: Dict[str, Any]) -> str:
    """'ranked' for ranked/power league battles, 'ladder' for everything else."""
    battle = _as_dict(item.get("battle"))
    event = _as_dict(item.get("event"))
    mode = str(battle.get("mode") or event.get("mode") or "").lower()
    battle_type = str(battle.get("type") or "").lower()
    key = f"{mode} {battle_type}"
    if any(marker in key for marker in _RANKED_MARKERS):
        return MATCH_RANKED
    return MATCH_LADDER


def parse_outcome(item: Dict[str, Any]) -> Optional[str]:
    """win / loss / draw, from the result string or, in showdown, the final rank."""
    battle = _as_dict(item.get("battle"))
    result = str(battle.get("result") or "").lower()
    if "victory" in result or "win" in result:
        return OUTCOME_WIN
    if "defeat" in result or "loss" in result or "lose" in result:
        return OUTCOME_LOSS
    if "draw" in result:
        return OUTCOME_DRAW

    rank = battle.get("rank")
    if isinstance(rank, (int, float)) and not isinstance(rank, bool):
        return OUTCOME_WIN if rank == 1 else OUTCOME_LOSS
    return None


def _summaries(entries: List[Tuple[str, str]]) -> Dict[str, Any]:
    overall, ranked, ladder = WinrateSummary(), WinrateSummary(), WinrateSummary()
    for match_type, outcome in entries:
        overall.add(outcome)
        if match_type == MATCH_RANKED:
            ranked.add(outcome)
        else:
            ladder.add(outcome)

    return {
        "overall": overall.to_dict(),
        "ranked": ranked.to_dict(),
        "ladder": ladder.to_dict(),
        "ranked_winrate": ranked.winrate if ranked.matches else None,
        "ladder_winrate": ladder.winrate if ladder.matches else None,
    }


def calculate_winrate25(battlelog: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Winrates over the first 25 battles with a readable outcome."""
    entries: List[Tuple[str, str]] = []
    for item in battlelog[:DEFAULT_SCAN_LIMIT]:
        outcome = parse_outcome(item)
        if outcome is None:
            continue
        entries.append((classify_match_type(item), outcome))
        if len(entries) >= SAMPLE_SIZE:
            break
    return _summaries(entries)


def persisted_winrate(breakdown: Dict[str, Any]) -> float:
    """The single winrate stored on player/history rows: ranked, then ladder, then overall."""
    for key in ("ranked_winrate", "ladder_winrate"):
        if breakdown.get(key) is not None:
            return breakdown[key]
    return breakdown["overall"]["winrate"]


# --- identities ---

def parse_identity(value: Any, fallback_name: str = UNKNOWN_BRAWLER) -> Optional[Dict[str, Any]]:
    """{id, name} for a brawler given as an object, a bare id, or None when unusable."""
    if not isinstance(value, dict):
        numeric = parse_numeric_score(value, strict=True)
        if numeric is not None and numeric > 0:
            return {"id": int(numeric), "name": f"Brawler #{int(numeric)}"}
        return None

    parsed_id = parse_numeric_score(value.get("id"), strict=True)
    parsed_id = int(parsed_id) if parsed_id is not None else None
    default_name = f"Brawler #{parsed_id}" if parsed_id is not None else fallback_name
    name = readable_name(value.get("name"), default_name)
    if parsed_id is None and name == fallback_name:
        return None
    return {"id": parsed_id, "name": name}


def _identity_key(identity: Dict[str, Any]) -> str:
    if identity["id"] is not None:
        return f"id:{identity['id']}"
    return f"name:{identity['name'].lower()}"


def _brawler_from_player_entry(player: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    identity = parse_identity(player.get("brawler"))
    if identity:
        return identity
    brawler_id = parse_numeric_score(player.get("brawlerId"), strict=True)
    if brawler_id is not None:
        return {"id": int(brawler_id), "name": f"Brawler #{int(brawler_id)}"}
    name = readable_name(player.get("brawlerName"), "")
    if name:
        return {"id": None, "name": name}
    return None


def extract_player_brawler(item: Dict[str, Any], player_tag: str) -> Optional[Dict[str, Any]]:
    """The brawler the tracked player used in one battle."""
    battle = item.get("battle")
    if not isinstance(battle, dict):
        return None

    direct = parse_identity(battle.get("brawler"))
    if direct:
        return direct

    for entry in _as_list(battle.get("brawlers")):
        identity = parse_identity(entry)
        if identity:
            return identity

    wanted = normalize_tag(player_tag)
    teams = _as_list(battle.get("teams")) + [_as_list(battle.get("players"))]
    for team in teams:
        for entry in _as_list(team):
            if not isinstance(entry, dict) or normalize_tag(entry.get("tag")) != wanted:
                continue
            found = _brawler_from_player_entry(entry)
            if found:
                return found
    return None


def read_map_name(item: Dict[str, Any]) -> str:
    name = str(_as_dict(item.get("event")).get("map") or "").strip()
    return name or UNKNOWN_MAP


# --- aggregation ---

class _Tally:
    """Per-key battle counters keeping the first label seen for the key."""

    def __init__(self):
        self._rows: Dict[str, Dict[str, Any]] = {}

    def add(self, key: str, label: Any, outcome: Optional[str]) -> None:
        row = self._rows.setdefault(key, {"label": label, "matches": 0, OUTCOME_WIN: 0, OUTCOME_LOSS: 0, OUTCOME_DRAW: 0})
        # Battles without a readable outcome still count as played.
        row["matches"] += 1
        if outcome is not None:
            row[outcome] += 1

    def rows(self) -> List[Tuple[Any, Dict[str, Any]]]:
        ordered = [
            (row["label"], {
                "matches": row["matches"],
                "wins": row[OUTCOME_WIN],
                "losses": row[OUTCOME_LOSS],
                "draws": row[OUTCOME_DRAW],
                "winrate": _percent(row[OUTCOME_WIN], row["matches"]),
            })
            for row in self._rows.values()
        ]
        ordered.sort(key=lambda item: (-item[1]["matches"], -item[1]["winrate"]))
        return ordered[:BREAKDOWN_LIMIT]


def _map_rows(tally: _Tally) -> List[Dict[str, Any]]:
    return [{"map": label, **stats} for label, stats in tally.rows()]


def _brawler_rows(tally: _Tally) -> List[Dict[str, Any]]:
    return [{"id": label["id"], "name": label["name"], **stats} for label, stats in tally.rows()]


def _collect_bans(item: Dict[str, Any], bans: Dict[str, Dict[str, Any]]) -> None:
    battle = _as_dict(item.get("battle"))
    for field in ("bans", "bannedBrawlers", "leftBans", "rightBans"):
        for raw in _as_list(battle.get(field)):
            identity = parse_identity(raw)
            if not identity:
                continue
            key = _identity_key(identity)
            if key not in bans:
                bans[key] = {"id": identity["id"], "name": identity["name"], "bans": 0}
            bans[key]["bans"] += 1


def compute_battlelog_analytics(
    battlelog: List[Dict[str, Any]],
    player_tag: str,
    scan_limit: int = DEFAULT_SCAN_LIMIT,
) -> Dict[str, Any]:
    """
    Aggregate the recent battlelog of one player.

    Args:
        battlelog: Battles newest first, as returned by the API.
        player_tag: Tag of the player the battlelog belongs to; used to find
            the brawler they played in team battles.
        scan_limit: Upper bound on battles read; the breakdowns only use the
            first 25 of them.

    Returns:
        Dict with sample counts, ranked/trophy winrates over the sample
        (None when the sample has no battle of that type), map and brawler
        breakdowns (top 8, most played first) and ranked bans.
    """
    sample = battlelog[:max(SAMPLE_SIZE, scan_limit)][:SAMPLE_SIZE]
    entries: List[Tuple[str, str]] = []

    maps_overall, maps_ranked, maps_trophies = _Tally(), _Tally(), _Tally()
    brawlers_ranked, brawlers_trophies = _Tally(), _Tally()
    bans: Dict[str, Dict[str, Any]] = {}

    for item in sample:
        if not isinstance(item, dict):
            continue
        match_type = classify_match_type(item)
        outcome = parse_outcome(item)
        if outcome is not None:
            entries.append((match_type, outcome))

        map_name = read_map_name(item)
        map_key = map_name.lower()
        maps_overall.add(map_key, map_name, outcome)
        if match_type == MATCH_RANKED:
            maps_ranked.add(map_key, map_name, outcome)
            _collect_bans(item, bans)
        else:
            maps_trophies.add(map_key, map_name, outcome)

        brawler = extract_player_brawler(item, player_tag)
        if brawler is None:
            continue
        target = brawlers_ranked if match_type == MATCH_RANKED else brawlers_trophies
        target.add(_identity_key(brawler), brawler, outcome)

    breakdown = _summaries(entries)
    return {
        "sampled_matches": len(sample),
        "ranked_sample_matches": breakdown["ranked"]["matches"],
        "trophy_sample_matches": breakdown["ladder"]["matches"],
        "ranked_winrate_25": breakdown["ranked_winrate"],
        "trophy_winrate_25": breakdown["ladder_winrate"],
        # Only a recent battlelog is public; the season figure is the sample.
        "ranked_season_winrate": breakdown["ranked_winrate"],
        "season_is_estimated": True,
        "maps_overall": _map_rows(maps_overall),
        "maps_ranked": _map_rows(maps_ranked),
        "maps_trophies": _map_rows(maps_trophies),
        "top_brawlers_ranked": _brawler_rows(brawlers_ranked),
        "top_brawlers_trophies": _brawler_rows(brawlers_trophies),
        "ranked_bans": sorted(bans.values(), key=lambda ban: ban["bans"], reverse=True)[:BREAKDOWN_LIMIT],
    }


# --- profile estimates ---

def _count(profile: Dict[str, Any], key: str) -> float:
    return parse_numeric_score(profile.get(key))


def estimate_playtime_minutes(victories: float) -> float:
    return round(max(victories, 0) * MINUTES_PER_VICTORY, 2)


def estimate_player_playtime(profile: Dict[str, Any]) -> float:
    """Rough hours played, from victory counters only."""
    victories = _count(profile, "3vs3Victories") + _count(profile, "soloVictories") + _count(profile, "duoVictories")
    return round(estimate_playtime_minutes(victories) / 60, 2)


def estimate_account_value(profile: Dict[str, Any]) -> int:
    """Gem value estimate: unlock + upgrade cost per brawler, bonus per power 11."""
    brawlers = [b for b in _as_list(profile.get("brawlers")) if isinstance(b, dict)]
    power11 = sum(1 for b in brawlers if parse_numeric_score(b.get("power")) >= 11)
    return len(brawlers) * 170 + power11 * 50 + len(brawlers) * 80


def extract_ranked_elo(profile: Dict[str, Any], fallback_from_db: Any = None) -> int:
    """
    Best available ranked score for a profile.

    Order: current ranked keys, then peak keys and tier label floors, then the
    score stored for this player, then last-seen values embedded in the
    payload. 0 when nothing is known.
    """
    current = read_current_ranked_elo(profile)
    if current > 0:
        return int(current)

    peak = read_highest_ranked_elo(profile)
    if peak > 0:
        return int(peak)

    stored = sanitize_ranked_score(parse_numeric_score(fallback_from_db, strict=True))
    if stored is not None and stored > 0:
        return int(stored)

    if isinstance(profile, dict):
        for key in _EMBEDDED_LAST_ELO_KEYS:
            value = sanitize_ranked_score(parse_numeric_score(profile.get(key), strict=True))
            if value is not None and value > 0:
                return int(value)
    return 0


def top_played_brawlers(brawlers: List[Dict[str, Any]], limit: int = 10) -> List[Dict[str, Any]]:
    """Highest-trophy brawlers with a prestige gap and a games estimate."""
    rows = [b for b in brawlers or [] if isinstance(b, dict)]
    rows.sort(key=lambda b: parse_numeric_score(b.get("trophies")), reverse=True)

    top = []
    for brawler in rows[:limit]:
        brawler_id = int(parse_numeric_score(brawler.get("id")))
        trophies = int(parse_numeric_score(brawler.get("trophies")))
        highest = int(parse_numeric_score(brawler.get("highestTrophies")))
        top.append({
            "id": brawler_id,
            "name": readable_name(brawler.get("name"), f"Brawler #{brawler_id}"),
            "trophies": trophies,
            "highest_trophies": highest,
            "rank": int(parse_numeric_score(brawler.get("rank"))),
            "power": int(parse_numeric_score(brawler.get("power"))),
            "prestige": max(0, highest - trophies),
            "games_estimate": round(trophies / 8),
        })
    return top
