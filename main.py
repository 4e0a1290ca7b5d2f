# main.py

import argparse
import json
import logging
import os
import sys
from dataclasses import replace

import uvicorn

from brawltrack.api_client import BrawlApiError
from brawltrack.config import Settings
from brawltrack.context import ServiceContext
from brawltrack.leaderboard import LeaderboardUnavailableError
from brawltrack.trends import compare_and_persist_leaderboard


def _print_json(payload) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False, default=str))


def cmd_player(ctx: ServiceContext, args: argparse.Namespace) -> int:
    try:
        bundle = ctx.snapshots().fetch_and_store_player_snapshot(
            args.tag, force_refresh=args.refresh, enrich_ranked=not args.no_ranked
        )
    except BrawlApiError as e:
        print(f"ERROR: {e} (status={e.status}, code={e.code})")
        return 1

    profile = bundle["player"]
    print(f"{profile.get('name')} {bundle['tag']}")
    print(f"  Trophies:        {profile.get('trophies')} (best {profile.get('highestTrophies')})")
    print(f"  Ranked:          {bundle['ranked_elo']} {bundle['ranked_label'] or ''}".rstrip())
    print(f"  Winrate (25):    {bundle['winrates25']['overall']['winrate']}%")
    print(f"  Playtime (est.): {bundle['estimated_playtime_hours']} h")
    print(f"  Account value:   {bundle['account_value_gems']} gems")
    print(f"  Changed:         {bundle['changed']}")
    if args.json:
        _print_json(bundle)
    return 0


def cmd_ranked(ctx: ServiceContext, args: argparse.Namespace) -> int:
    report = ctx.resolver.resolve(args.tag, force_refresh=args.refresh)
    for attempt in report.attempts:
        print(attempt.describe())
    if report.snapshot is None:
        print(f"No ranked snapshot for {report.tag}")
        return 1
    _print_json(report.snapshot.to_dict())
    return 0


def cmd_leaderboard(ctx: ServiceContext, args: argparse.Namespace) -> int:
    builder = ctx.leaderboards()
    try:
        if args.type == "ranked":
            rows = [entry.to_dict() for entry in builder.get_top_ranked_players(args.limit)]
            value_key = "score"
        elif args.type == "world":
            rows = [entry.to_dict() for entry in builder.get_top_players(args.limit)]
            value_key = "score"
        else:
            rows = builder.get_top_esport_leaders(args.limit)
            value_key = "earnings_usd"
    except (BrawlApiError, LeaderboardUnavailableError) as e:
        print(f"ERROR: {e}")
        return 1

    trends = compare_and_persist_leaderboard(
        ctx.db, args.type, [{"tag": row["tag"], "value": row.get(value_key)} for row in rows]
    )
    for index, row in enumerate(rows, start=1):
        trend = trends.get(row["tag"])
        marker = f"{trend.direction} {trend.places}" if trend else "-"
        name = row.get("name") or row.get("display_name")
        print(f"{index:>3}. {name:<20} {row['tag']:<12} {row.get(value_key)!s:>10}  [{marker}]")
    return 0


def cmd_serve(ctx: ServiceContext, args: argparse.Namespace) -> int:
    # The server process builds its own context from the environment.
    os.environ["BRAWLTRACK_DB_PATH"] = ctx.settings.db_path
    os.environ["BRAWLTRACK_NO_DB"] = "0" if ctx.settings.use_db else "1"
    uvicorn.run("web.app:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="brawltrack player and leaderboard tracker")
    parser.add_argument("--db", default="", help="SQLite DB path (defaults to BRAWLTRACK_DB_PATH or data/brawltrack.db)")
    parser.add_argument("--no-db", action="store_true", help="Run without the local store")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging (shows every ranked source attempt)")
    sub = parser.add_subparsers(dest="command", required=True)

    player = sub.add_parser("player", help="Fetch, analyse and store one player")
    player.add_argument("tag")
    player.add_argument("--refresh", action="store_true", help="Bypass upstream caches")
    player.add_argument("--no-ranked", action="store_true", help="Skip the scraped/mirror ranked lookup")
    player.add_argument("--json", action="store_true", help="Dump the full bundle as JSON")
    player.set_defaults(func=cmd_player)

    ranked = sub.add_parser("ranked", help="Resolve a player's ranked score from secondary sources")
    ranked.add_argument("tag")
    ranked.add_argument("--refresh", action="store_true")
    ranked.set_defaults(func=cmd_ranked)

    board = sub.add_parser("leaderboard", help="Print a leaderboard with position trends")
    board.add_argument("type", choices=("ranked", "world", "esport"))
    board.add_argument("--limit", type=int, default=10)
    board.set_defaults(func=cmd_leaderboard)

    serve = sub.add_parser("serve", help="Run the web API with uvicorn")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--reload", action="store_true")
    serve.set_defaults(func=cmd_serve)
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    settings = Settings.from_env()
    if args.db.strip():
        settings = replace(settings, db_path=args.db.strip())
    if args.no_db:
        settings = replace(settings, use_db=False)
    ctx = ServiceContext(settings=settings)
    return args.func(ctx, args)


if __name__ == '__main__':
    sys.exit(main())
