# brawltrack/coach.py
"""Rule-based coaching tips from a profile and an optional recent battlelog."""

from typing import Any, Dict, List, Optional, Tuple

from .metrics import OUTCOME_LOSS, OUTCOME_WIN, parse_outcome
from .normalization import parse_numeric_score
from .utils import mode_of_battle, readable_name

COACH_MODEL = "rules-coach-v1"
MAX_TIPS = 3
MIN_MODE_MATCHES = 3
TARGET_AVERAGE_POWER = 9
TROPHY_GAP_ALERT = 100


def _brawlers(profile: Dict[str, Any]) -> List[Dict[str, Any]]:
    return [b for b in profile.get("brawlers") or [] if isinstance(b, dict)]


def average_power(brawlers: List[Dict[str, Any]]) -> float:
    if not brawlers:
        return 0.0
    return sum(parse_numeric_score(b.get("power")) for b in brawlers) / len(brawlers)


def _trophy_gap(brawler: Dict[str, Any]) -> float:
    return parse_numeric_score(brawler.get("highestTrophies")) - parse_numeric_score(brawler.get("trophies"))


def weakest_mode(battles: List[Dict[str, Any]]) -> Optional[Tuple[str, float]]:
    """(mode, winrate) of the worst mode with at least 3 decided battles in the last 25."""
    stats: Dict[str, List[int]] = {}
    for item in battles[:25]:
        if not isinstance(item, dict):
            continue
        wins_losses = stats.setdefault(mode_of_battle(item), [0, 0])
        outcome = parse_outcome(item)
        if outcome == OUTCOME_WIN:
            wins_losses[0] += 1
        elif outcome == OUTCOME_LOSS:
            wins_losses[1] += 1

    weakest = None
    for mode, (wins, losses) in stats.items():
        if wins + losses < MIN_MODE_MATCHES:
            continue
        rate = wins / (wins + losses) * 100
        if weakest is None or rate < weakest[1]:
            weakest = (mode, rate)
    return weakest


def build_coach_tips(profile: Dict[str, Any], battles: Optional[List[Dict[str, Any]]] = None) -> List[str]:
    """
    Three tips: one on modes, one on power levels, one on trophy drops.

    `battles` defaults to a `battles` or `battlelog` list embedded in the
    profile itself.
    """
    if battles is None:
        battles = profile.get("battles") or profile.get("battlelog") or []
    brawlers = _brawlers(profile)
    tips: List[str] = []

    weakest = weakest_mode(battles)
    team_wins = parse_numeric_score(profile.get("3vs3Victories"))
    solo_duo_wins = parse_numeric_score(profile.get("soloVictories")) + parse_numeric_score(profile.get("duoVictories"))
    if weakest:
        tips.append(
            f"Your least profitable mode is {weakest[0]} ({weakest[1]:.0f}% WR): "
            "review your drafts and positioning there first."
        )
    elif team_wins < solo_duo_wins:
        tips.append(
            "You win more in solo/duo than in 3v3: add team sessions to work on macro play and objectives."
        )
    else:
        tips.append("Your 3v3 volume is solid: specialise in 2 main modes to raise your overall winrate faster.")

    avg_power = average_power(brawlers)
    if avg_power < TARGET_AVERAGE_POWER:
        tips.append(
            f"Your average power is {avg_power:.1f}: get 8 brawlers to power 10+ first to stabilise your results."
        )
    else:
        tips.append(
            f"Your average power is {avg_power:.1f}: focus on positioning and gadget timing to convert more games."
        )

    biggest_drop = max(brawlers, key=_trophy_gap, default=None)
    if biggest_drop is not None and _trophy_gap(biggest_drop) >= TROPHY_GAP_ALERT:
        name = readable_name(biggest_drop.get("name"), f"Brawler #{biggest_drop.get('id')}")
        tips.append(f"You lost ground on {name}: play 15-20 games with it to win back that trophy peak.")
    else:
        tips.append(
            "Your brawlers are stable: to break through, target meta comps and stop switching brawler every 2 games."
        )

    return tips[:MAX_TIPS]
