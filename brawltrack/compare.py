# brawltrack/compare.py

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional, Tuple

from .api_client import BrawlApiClient
from .database import Database
from .metrics import compute_battlelog_analytics, extract_ranked_elo, parse_outcome
from .normalization import parse_numeric_score, rank_label_from_score
from .utils import normalize_tag

logger = logging.getLogger(__name__)

SIDE_LEFT = "left"
SIDE_RIGHT = "right"
SIDE_EVEN = "even"

SIMILAR_ELO_GAP = 200
SIMILAR_WINRATE_GAP = 2.5


def _battle_key(item: Dict[str, Any]) -> Optional[str]:
    event = item.get("event") if isinstance(item.get("event"), dict) else {}
    key = f"{item.get('battleTime') or ''}|{event.get('mode') or ''}|{event.get('map') or ''}"
    if key.startswith("||"):
        return None
    return key


def face_to_face(left_battles: List[Dict[str, Any]], right_battles: List[Dict[str, Any]]) -> Dict[str, int]:
    """Battles present in both battlelogs (same time, mode and map) and who won them."""
    left_results: Dict[str, Optional[str]] = {}
    for item in left_battles:
        key = _battle_key(item)
        if key is not None:
            left_results[key] = parse_outcome(item)

    tally = {"matches": 0, "left_wins": 0, "right_wins": 0, "draws": 0}
    for item in right_battles:
        key = _battle_key(item)
        if key is None or key not in left_results:
            continue
        tally["matches"] += 1
        left_result = left_results[key]
        right_result = parse_outcome(item)
        if left_result == "win" or right_result == "loss":
            tally["left_wins"] += 1
        elif right_result == "win" or left_result == "loss":
            tally["right_wins"] += 1
        else:
            tally["draws"] += 1
    return tally


def _club_name(club: Any) -> str:
    if not isinstance(club, dict):
        return ""
    return str(club.get("name") or "").strip() or str(club.get("tag") or "").strip()


def shared_clubs(history: List[Dict[str, Any]], left: Dict[str, Any], right: Dict[str, Any]) -> List[str]:
    """Clubs both players belonged to, from stored history plus their current club."""
    left_tag = normalize_tag(left.get("tag"))
    right_tag = normalize_tag(right.get("tag"))
    left_clubs: List[str] = []
    right_clubs: List[str] = []
    for row in history:
        club = str(row.get("club_name") or "").strip() or str(row.get("club_tag") or "").strip()
        if not club:
            continue
        if row.get("player_tag") == left_tag and club not in left_clubs:
            left_clubs.append(club)
        if row.get("player_tag") == right_tag and club not in right_clubs:
            right_clubs.append(club)

    shared = [club for club in left_clubs if club in right_clubs]
    left_current = _club_name(left.get("club"))
    if left_current and left_current == _club_name(right.get("club")) and left_current not in shared:
        shared.append(left_current)
    return shared


class PlayerComparator:
    """Compare two players and pick a favorite."""

    # (field, margin, points, reason template or None)
    SCORING_RULES: Tuple[Tuple[str, float, int, Optional[str]], ...] = (
        ("ranked_elo", 250, 3, "{name} has a clear ranked advantage."),
        ("ranked_winrate_25", 3, 2, "{name} has the better recent ranked winrate."),
        ("trophies", 250, 1, None),
        ("highest_trophies", 500, 1, None),
    )

    def __init__(self, api: Optional[BrawlApiClient] = None, db: Optional[Database] = None):
        self.api = api
        self.db = db

    def favorite_decision(
        self,
        left: Dict[str, Any],
        right: Dict[str, Any],
        clubs: List[str],
    ) -> Dict[str, Any]:
        """
        Score both sides rule by rule.

        Args:
            left / right: Side summaries with name, tag, ranked_elo,
                ranked_winrate_25, trophies and highest_trophies.
            clubs: Shared club names.

        Returns:
            {side, tag, name, reasons, similar_stats}; side is "even" on a tie.
        """
        scores = {SIDE_LEFT: 0, SIDE_RIGHT: 0}
        reasons: List[str] = []

        for field, margin, points, reason in self.SCORING_RULES:
            left_value = self._to_float(left.get(field))
            right_value = self._to_float(right.get(field))
            if left_value > right_value + margin:
                winner, summary = SIDE_LEFT, left
            elif right_value > left_value + margin:
                winner, summary = SIDE_RIGHT, right
            else:
                continue
            scores[winner] += points
            if reason:
                reasons.append(reason.format(name=summary.get("name")))

        if clubs:
            reasons.append(f"Shared club history: {', '.join(clubs)}.")

        similar = (
            abs(self._to_float(left.get("ranked_elo")) - self._to_float(right.get("ranked_elo"))) <= SIMILAR_ELO_GAP
            and abs(self._to_float(left.get("ranked_winrate_25")) - self._to_float(right.get("ranked_winrate_25")))
            <= SIMILAR_WINRATE_GAP
        )
        if similar:
            reasons.append("Very similar level over the recent sample.")

        if scores[SIDE_LEFT] == scores[SIDE_RIGHT]:
            side, chosen = SIDE_EVEN, None
        elif scores[SIDE_LEFT] > scores[SIDE_RIGHT]:
            side, chosen = SIDE_LEFT, left
        else:
            side, chosen = SIDE_RIGHT, right

        return {
            "side": side,
            "tag": chosen.get("tag") if chosen else None,
            "name": chosen.get("name") if chosen else None,
            "reasons": reasons,
            "similar_stats": similar,
        }

    @staticmethod
    def side_summary(profile: Dict[str, Any], battlelog: List[Dict[str, Any]]) -> Dict[str, Any]:
        tag = normalize_tag(profile.get("tag"))
        analytics = compute_battlelog_analytics(battlelog, tag)
        ranked_elo = extract_ranked_elo(profile)
        ranked_wr = analytics["ranked_winrate_25"] or 0
        trophy_wr = analytics["trophy_winrate_25"] or 0
        return {
            "tag": tag,
            "name": str(profile.get("name") or tag),
            "trophies": int(parse_numeric_score(profile.get("trophies"))),
            "highest_trophies": int(parse_numeric_score(profile.get("highestTrophies"))),
            "ranked_elo": ranked_elo,
            "ranked_label": rank_label_from_score(ranked_elo),
            "ranked_winrate_25": ranked_wr,
            "trophy_winrate_25": trophy_wr,
            "top_ranked_map": analytics["maps_ranked"][0]["map"] if analytics["maps_ranked"] else None,
            "top_trophy_map": analytics["maps_trophies"][0]["map"] if analytics["maps_trophies"] else None,
            "winrate_25": ranked_wr if ranked_wr > 0 else trophy_wr,
        }

    def compare(
        self,
        left_profile: Dict[str, Any],
        right_profile: Dict[str, Any],
        left_battles: List[Dict[str, Any]],
        right_battles: List[Dict[str, Any]],
        history: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        left = self.side_summary(left_profile, left_battles)
        right = self.side_summary(right_profile, right_battles)
        clubs = shared_clubs(history or [], left_profile, right_profile)
        favorite = self.favorite_decision(left, right, clubs)

        return {
            "left": left,
            "right": right,
            "comparison": {
                "favorite": favorite,
                "shared_clubs": clubs,
                "similar_stats": favorite["similar_stats"],
                "ranked_elo_diff": abs(left["ranked_elo"] - right["ranked_elo"]),
                "ranked_winrate_diff": round(abs(left["ranked_winrate_25"] - right["ranked_winrate_25"]), 2),
                "trophy_diff": abs(left["trophies"] - right["trophies"]),
                "face_to_face": face_to_face(left_battles, right_battles),
            },
        }

    def compare_tags(self, left_tag: str, right_tag: str) -> Dict[str, Any]:
        """
        Fetch both players and their battlelogs concurrently, then compare.

        Raises:
            BrawlApiError: any of the four primary fetches failed.
        """
        if self.api is None:
            raise RuntimeError("PlayerComparator needs an API client to fetch players")
        left_tag, right_tag = normalize_tag(left_tag), normalize_tag(right_tag)

        with ThreadPoolExecutor(max_workers=5) as pool:
            futures = [
                pool.submit(self.api.get_player, left_tag),
                pool.submit(self.api.get_player, right_tag),
                pool.submit(self.api.get_player_battlelog, left_tag, 60),
                pool.submit(self.api.get_player_battlelog, right_tag, 60),
            ]
            history_future = pool.submit(self._history_for, left_tag, right_tag)
            left_profile, right_profile, left_battles, right_battles = [f.result() for f in futures]
            history = history_future.result()

        return self.compare(left_profile, right_profile, left_battles, right_battles, history)

    def _history_for(self, left_tag: str, right_tag: str) -> List[Dict[str, Any]]:
        if self.db is None:
            return []
        try:
            return self.db.get_history_for_tags([left_tag, right_tag])
        except RuntimeError as e:
            logger.warning("Compare history read skipped: %s", e)
            return []

    @staticmethod
    def _to_float(value: Any) -> float:
        try:
            if value is None:
                return 0.0
            return float(value)
        except (TypeError, ValueError):
            return 0.0
