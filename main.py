"""
main.py — single entry point (command line).

Drives the scan core the way the mobile screens do:

  scan IMAGE        analyse → score → store locally → push in background
  history / stats   local history and impact metrics
  sync              one explicit push attempt for every pending scan
  login / register / logout / remote-scans
  set-key KEY       store the Gemini API key in the secure slot
  settings [K V]    show or change runtime settings

Every run: init DB → apply DB settings → command → drain background sync.
"""
import argparse
import asyncio
import logging
import os
import sys
from datetime import datetime
from pathlib import Path

import config

# Log file lives in the same data/ directory as the database so that a single
# volume mount (./data:/app/data) captures both.
_data_dir = Path(os.getenv("DATA_DIR", "data"))
_data_dir.mkdir(parents=True, exist_ok=True)

logger = logging.getLogger(__name__)


def _setup_logging() -> None:
    logging.basicConfig(
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        level=config.LOG_LEVEL,
        handlers=[
            logging.StreamHandler(sys.stderr),
            logging.FileHandler(str(_data_dir / "ecospectre.log"), encoding="utf-8"),
        ],
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("google_genai").setLevel(logging.WARNING)


def _print_record(record) -> None:
    s = record.score
    state = "synced" if record.is_synced else "pending"
    when = datetime.fromtimestamp(record.timestamp / 1000).strftime("%Y-%m-%d %H:%M")
    print(f"{when}  {s.score:>3}/100  {record.action:<8}  [{state}]  {record.context.detected_labels}")


def _print_score(context, score) -> None:
    b = score.breakdown
    print(f"Product:    {context.detected_labels}  ({context.packaging_type}, {context.material_hints})")
    if context.brand_text and context.brand_text != "unknown":
        print(f"Brand:      {context.brand_text}")
    print(f"Score:      {score.score}/100")
    print(
        f"Breakdown:  materials {b.materials} · packaging {b.packaging} · "
        f"certifications {b.certifications} · category {b.category_baseline}"
    )
    for f in score.top_factors:
        sign = "+" if f.impact == "positive" else "-"
        print(f"  {sign} {f.factor}: {f.explanation}")
    print(f"Suggestion: {score.suggestion}")
    print(f"Disposal:   {score.disposal}")


async def _cmd_scan(args, pipeline) -> int:
    context, score = await pipeline.analyse(args.image, user_note=args.note)
    _print_score(context, score)
    record = await pipeline.record(context, score, args.action, user_id=args.user_id)
    print(f"Saved scan {record.id} as {record.action} (sync in background)")
    return 0


async def _cmd_history(args, pipeline) -> int:
    records = await pipeline.store.list()
    if not records:
        print("No scans yet.")
    for r in records[: args.limit]:
        _print_record(r)
    return 0


async def _cmd_stats(args, pipeline) -> int:
    from history import daily_activity, impact_metrics

    records = await pipeline.store.list()
    m = impact_metrics(records)
    counts = await pipeline.store.counts()
    print(f"Total scans:          {m.total_scans}")
    print(f"Average score:        {m.average_score:.1f}")
    print(f"Sustainable choices:  {m.sustainable_choices}")
    print(f"Improvement:          {m.improvement_rate:+d}%")
    print(f"Sync:                 {counts['synced']} synced, {counts['pending']} pending")
    active = [d for d in daily_activity(records, weeks=args.weeks) if d.count]
    for d in active:
        print(f"  {d.date}  {d.count} scan(s), avg {d.average_score:.0f}")
    return 0


async def _cmd_sync(args, pipeline) -> int:
    synced, pending = await pipeline.reconciler.reconcile_pending()
    print(f"Synced {synced}, still pending {pending}")
    return 0 if pending == 0 else 1


async def _cmd_login(args, gateway) -> int:
    if args.command == "register":
        user = await gateway.register(args.email, args.password)
    else:
        user = await gateway.login(args.email, args.password)
    print(f"Logged in as {user.email} ({user.id})")
    return 0


async def _cmd_logout(args, gateway) -> int:
    await gateway.logout()
    print("Logged out.")
    return 0


async def _cmd_remote_scans(args, gateway) -> int:
    start = datetime.fromisoformat(args.start) if args.start else None
    end = datetime.fromisoformat(args.end) if args.end else None
    for r in await gateway.get_scans(start, end):
        _print_record(r)
    return 0


async def _cmd_set_key(args) -> int:
    import key_store
    await key_store.set_gemini_api_key(args.key)
    print(f"Gemini API key saved: {key_store.mask(args.key)}")
    return 0


async def _cmd_settings(args) -> int:
    import settings_store
    if args.key:
        if args.value is None:
            print(await settings_store.get_raw(args.key))
            return 0
        await settings_store.set(args.key, args.value)
    for key, raw, source, desc in await settings_store.describe():
        print(f"{key:<22} {raw:<28} [{source}]  {desc}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ecospectre", description="Product sustainability scanner")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("scan", help="Analyse a product photo and record the decision")
    p.add_argument("image", help="Path or file:// URI of the photo")
    p.add_argument("--action", choices=["consumed", "rejected"], default="consumed")
    p.add_argument("--note", default=None, help="Free-text note passed to the scorer")
    p.add_argument("--user-id", default="")

    p = sub.add_parser("history", help="List local scans, newest first")
    p.add_argument("--limit", type=int, default=20)

    p = sub.add_parser("stats", help="Impact metrics and daily activity")
    p.add_argument("--weeks", type=int, default=12)

    sub.add_parser("sync", help="Push all pending scans once")

    for name in ("login", "register"):
        p = sub.add_parser(name)
        p.add_argument("email")
        p.add_argument("password")

    sub.add_parser("logout")

    p = sub.add_parser("remote-scans", help="List scans stored remotely")
    p.add_argument("--start", help="ISO date/time")
    p.add_argument("--end", help="ISO date/time")

    p = sub.add_parser("set-key", help="Store the Gemini API key")
    p.add_argument("key")

    p = sub.add_parser("settings", help="Show or change runtime settings")
    p.add_argument("key", nargs="?")
    p.add_argument("value", nargs="?")

    return parser


async def run(args: argparse.Namespace) -> int:
    import database as _db
    from errors import EcoSpectreError
    from api_gateway import ApiGateway
    from pipeline import ScanPipeline
    from scan_store import LocalScanStore
    from sync import SyncReconciler

    # ── Database bootstrap (must happen before anything else) ─────────────────
    try:
        await _db.init_db()
        await config.apply_db_settings()
    except Exception as exc:
        logger.critical("FATAL: database init failed: %s", exc, exc_info=True)
        raise

    gateway = ApiGateway()
    store = LocalScanStore()
    reconciler = SyncReconciler(gateway, store)
    pipeline = ScanPipeline(store=store, reconciler=reconciler)

    handlers = {
        "scan": lambda: _cmd_scan(args, pipeline),
        "history": lambda: _cmd_history(args, pipeline),
        "stats": lambda: _cmd_stats(args, pipeline),
        "sync": lambda: _cmd_sync(args, pipeline),
        "login": lambda: _cmd_login(args, gateway),
        "register": lambda: _cmd_login(args, gateway),
        "logout": lambda: _cmd_logout(args, gateway),
        "remote-scans": lambda: _cmd_remote_scans(args, gateway),
        "set-key": lambda: _cmd_set_key(args),
        "settings": lambda: _cmd_settings(args),
    }

    try:
        return await handlers[args.command]()
    except EcoSpectreError as exc:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except (KeyError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2
    finally:
        # Graceful shutdown: let background pushes finish (or cancel them)
        await reconciler.drain()


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    _setup_logging()
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
