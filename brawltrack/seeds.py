# brawltrack/seeds.py
"""Static esport board used when the pro_players table is empty or short."""

from typing import Any, Dict, List

DEFAULT_ICON_ID = 28000000

ESPORT_SEEDS: List[Dict[str, Any]] = [
    {"tag": "#P0LY8J2Q", "display_name": "Nova", "team": "Orion Esports", "earnings_usd": 48500},
    {"tag": "#Q2GCUV9L", "display_name": "Raven", "team": "Aether Club", "earnings_usd": 45100},
    {"tag": "#8YJ0Q2PC", "display_name": "Kyro", "team": "North Peak", "earnings_usd": 42300},
    {"tag": "#2L8Q9JVC", "display_name": "Pulse", "team": "Vertex", "earnings_usd": 39100},
    {"tag": "#9Q2PUV8C", "display_name": "Styx", "team": "Crimson Tide", "earnings_usd": 35800},
    {"tag": "#Y8Q2LCVP", "display_name": "Mako", "team": "Blue Forge", "earnings_usd": 32900},
    {"tag": "#CUV2Q8PJ", "display_name": "Astra", "team": "Solar Unit", "earnings_usd": 30100},
    {"tag": "#VQ2Y8LPC", "display_name": "Shade", "team": "Night Shift", "earnings_usd": 27900},
    {"tag": "#P2Q8LCVY", "display_name": "Keen", "team": "Frontline", "earnings_usd": 25100},
    {"tag": "#J8Q2PCVY", "display_name": "Echo", "team": "Summit", "earnings_usd": 22900},
]


def esport_seed_entries(limit: int) -> List[Dict[str, Any]]:
    return [
        {
            **seed,
            "matcherino_url": "https://matcherino.com",
            "icon_id": DEFAULT_ICON_ID,
        }
        for seed in ESPORT_SEEDS[:max(0, limit)]
    ]
