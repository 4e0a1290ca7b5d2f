from fastapi import Depends, FastAPI, HTTPException, Request
import asyncio
import hmac
import logging
import os
import sys
from typing import Any, Callable, Dict, List, Optional, Tuple

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from brawltrack.api_client import BrawlApiError, CODE_MAINTENANCE, CODE_PLAYER_NOT_FOUND
from brawltrack.coach import COACH_MODEL, build_coach_tips
from brawltrack.context import ServiceContext, get_context
from brawltrack.leaderboard import LeaderboardUnavailableError
from brawltrack.trends import compare_and_persist_leaderboard
from brawltrack.utils import normalize_tag
from brawltrack.validation import is_valid_session_id

logger = logging.getLogger(__name__)

app = FastAPI(title="brawltrack")

MAX_LEADERBOARD_LIMIT = 50


def _clamp_limit(limit: int) -> int:
    return max(1, min(limit, MAX_LEADERBOARD_LIMIT))


def _raise_for_api_error(e: BrawlApiError, not_found_detail: str) -> None:
    if e.code == CODE_PLAYER_NOT_FOUND:
        raise HTTPException(status_code=404, detail=not_found_detail)
    if e.code == CODE_MAINTENANCE:
        raise HTTPException(status_code=503, detail="Brawl Stars API is under maintenance.")
    raise HTTPException(status_code=502, detail=str(e))


async def _json_body(request: Request) -> Dict[str, Any]:
    try:
        payload = await request.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}


@app.on_event("startup")
async def startup() -> None:
    ctx = get_context()
    print(f"[CONFIG] {ctx.settings.describe()}")
    if not ctx.settings.brawl_api_token:
        print("[CONFIG] Warning: BRAWL_API_TOKEN is not set; player endpoints will fail")


# --- players ---

@app.get("/api/player/{tag}")
async def player(tag: str, force_refresh: bool = False, ctx: ServiceContext = Depends(get_context)) -> dict:
    normalized = normalize_tag(tag)
    try:
        return await asyncio.to_thread(
            ctx.snapshots().fetch_and_store_player_snapshot, normalized, force_refresh
        )
    except BrawlApiError as e:
        _raise_for_api_error(e, "Player not found.")
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to load player: {str(e)}")


@app.get("/api/ranked/{tag}")
async def ranked_snapshot(tag: str, force_refresh: bool = False, ctx: ServiceContext = Depends(get_context)) -> dict:
    report = await asyncio.to_thread(ctx.resolver.resolve, tag, force_refresh)
    return {
        "tag": report.tag,
        "snapshot": report.snapshot.to_dict() if report.snapshot else None,
        "attempts": [attempt.describe() for attempt in report.attempts],
    }


@app.get("/api/compare")
async def compare(
    left: Optional[str] = None,
    right: Optional[str] = None,
    ctx: ServiceContext = Depends(get_context),
) -> dict:
    if not left or not right or not left.strip() or not right.strip():
        raise HTTPException(status_code=400, detail="Both left and right tags are required.")
    try:
        return await asyncio.to_thread(ctx.comparator().compare_tags, left, right)
    except BrawlApiError as e:
        _raise_for_api_error(e, "One of the players was not found.")
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to compare players: {str(e)}")


# --- leaderboards ---

async def _board(fetch: Callable[[], List[Any]]) -> Tuple[List[Any], Optional[str]]:
    try:
        return await asyncio.to_thread(fetch), None
    except (BrawlApiError, LeaderboardUnavailableError) as e:
        logger.warning("Leaderboard source failed: %s", e)
        return [], str(e)


async def _with_trends(ctx: ServiceContext, board_type: str, rows: List[Dict[str, Any]], value_key: str) -> List[Dict[str, Any]]:
    trends = await asyncio.to_thread(
        compare_and_persist_leaderboard,
        ctx.db,
        board_type,
        [{"tag": row["tag"], "value": row.get(value_key)} for row in rows],
    )
    annotated = []
    for row in rows:
        trend = trends.get(normalize_tag(row["tag"]))
        annotated.append({**row, "trend": trend.to_dict() if trend else None})
    return annotated


@app.get("/api/leaderboards")
async def leaderboards(limit: int = 10, ctx: ServiceContext = Depends(get_context)) -> dict:
    safe_limit = _clamp_limit(limit)
    builder = ctx.leaderboards()
    (world, world_error), (ranked, ranked_error), (esport, esport_error) = await asyncio.gather(
        _board(lambda: [entry.to_dict() for entry in builder.get_top_players(safe_limit)]),
        _board(lambda: [entry.to_dict() for entry in builder.get_top_ranked_players(safe_limit)]),
        _board(lambda: builder.get_top_esport_leaders(safe_limit)),
    )
    return {
        "world": {"entries": await _with_trends(ctx, "world", world, "score"), "error": world_error},
        "ranked": {"entries": await _with_trends(ctx, "ranked", ranked, "score"), "error": ranked_error},
        "esport": {"entries": await _with_trends(ctx, "esport", esport, "earnings_usd"), "error": esport_error},
    }


@app.get("/api/leaderboards/ranked")
async def ranked_leaderboard(limit: int = 10, ctx: ServiceContext = Depends(get_context)) -> dict:
    safe_limit = _clamp_limit(limit)
    try:
        entries = await asyncio.to_thread(ctx.leaderboards().get_top_ranked_players, safe_limit)
    except LeaderboardUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))
    rows = [entry.to_dict() for entry in entries]
    return {"entries": await _with_trends(ctx, "ranked", rows, "score"), "count": len(rows)}


# --- meta ---

@app.get("/api/meta")
async def meta(mode: Optional[str] = None, ctx: ServiceContext = Depends(get_context)) -> dict:
    return await asyncio.to_thread(ctx.meta().get_tier_list, mode)


@app.post("/api/admin/meta-tier")
async def admin_meta_tier(request: Request, ctx: ServiceContext = Depends(get_context)) -> dict:
    expected = ctx.settings.admin_password
    provided = request.headers.get("X-Admin-Password", "")
    if not expected or not hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8")):
        raise HTTPException(status_code=403, detail="Admin password required")

    payload = await _json_body(request)
    try:
        entry = ctx.meta().set_tier(
            str(payload.get("brawler_name") or ""),
            str(payload.get("tier") or ""),
            str(payload.get("mode") or ""),
        )
        return {"ok": True, "entry": entry}
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RuntimeError as e:
        raise HTTPException(status_code=500, detail=f"Failed to update meta tier: {str(e)}")


# --- coach ---

@app.post("/api/coach")
async def coach(request: Request) -> dict:
    payload = await _json_body(request)
    profile = payload.get("player")
    if not isinstance(profile, dict):
        raise HTTPException(status_code=400, detail="player JSON is required")
    battles = payload.get("battles")
    return {
        "model": COACH_MODEL,
        "tips": build_coach_tips(profile, battles if isinstance(battles, list) else None),
    }


# --- search history ---

def _history_items(rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [
        {"tag": row.get("player_tag"), "name": row.get("player_name"), "searched_at": row.get("updated_at")}
        for row in rows
    ]


@app.get("/api/search-history")
async def search_history(session_id: Optional[str] = None, ctx: ServiceContext = Depends(get_context)) -> dict:
    if not is_valid_session_id(session_id) or ctx.db is None:
        return {"items": []}
    try:
        rows = await asyncio.to_thread(ctx.db.get_search_history, session_id.strip())
    except RuntimeError as e:
        return {"items": [], "warning": str(e)}
    return {"items": _history_items(rows)}


@app.post("/api/search-history")
async def record_search_history(request: Request, ctx: ServiceContext = Depends(get_context)) -> dict:
    payload = await _json_body(request)
    session_id = payload.get("session_id")
    if not is_valid_session_id(session_id):
        raise HTTPException(status_code=400, detail="Invalid session_id")
    raw_tag = str(payload.get("tag") or "").strip()
    if not raw_tag:
        raise HTTPException(status_code=400, detail="tag is required")

    session_id = session_id.strip()
    tag = normalize_tag(raw_tag)
    name = payload.get("player_name")
    name = name.strip() if isinstance(name, str) and name.strip() else None
    fallback = {"items": [{"tag": tag, "name": name, "searched_at": None}]}

    if ctx.db is None:
        return fallback
    try:
        await asyncio.to_thread(ctx.db.record_search, session_id, tag, name)
        rows = await asyncio.to_thread(ctx.db.get_search_history, session_id)
    except RuntimeError as e:
        return {**fallback, "warning": str(e)}
    return {"items": _history_items(rows)}
