"""Groupkeeper entry point.

    python main.py run                 # Telegram bot + background reconciliation
    python main.py reconcile           # one reconciliation run (for cron)
    python main.py lookup <username>   # resolve one user and print the result
"""

import argparse
import asyncio
import sys

import config
from bot.context import BotContext
from core.logger import GroupkeeperLogger
from core.reconcile import ReconciliationError, ReconciliationScheduler
from core.resolver import GroupResolver, GroupsFound
from core.store import MembershipStore, StoreUnavailable
from sdk.client import build_default_client
from sdk.exceptions import AuthFailure, ProviderUnavailable

logger = GroupkeeperLogger.get_logger("main")


def build_context() -> BotContext:
    """Wire the store, provider client, resolver and scheduler from :mod:`config`."""
    store = MembershipStore(config.MEMBERSHIP_DB_PATH)
    provider = build_default_client()
    scheduler = ReconciliationScheduler(
        store,
        provider,
        interval=config.RECONCILE_INTERVAL,
        run_at=config.RECONCILE_AT,
        run_on_start=config.RECONCILE_ON_START,
        batch_size=config.RECONCILE_BATCH_SIZE,
    )
    return BotContext(
        store=store,
        resolver=GroupResolver(store, provider),
        scheduler=scheduler,
        admins=frozenset(config.ADMINS),
    )


async def _reconcile(ctx: BotContext) -> int:
    try:
        report = await ctx.scheduler.reconcile_once()
    except ReconciliationError as exc:
        logger.error("Reconciliation completed with failures", extra={"failed": sorted(exc.report.failed)})
        print(exc, file=sys.stderr)
        return 1
    except (AuthFailure, ProviderUnavailable) as exc:
        logger.error("Reconciliation abandoned", extra={"error": str(exc), "error_type": type(exc).__name__})
        print(f"Reconciliation abandoned: {exc}", file=sys.stderr)
        return 1
    print(f"Updated {len(report.upserted)} user(s).")
    return 0


async def _lookup(ctx: BotContext, username: str) -> int:
    try:
        resolution = await ctx.resolver.resolve(username)
    except ValueError as exc:
        print(f"Invalid username: {exc}", file=sys.stderr)
        return 2
    except (AuthFailure, ProviderUnavailable, StoreUnavailable) as exc:
        print(f"Lookup failed: {exc}", file=sys.stderr)
        return 2
    if not isinstance(resolution, GroupsFound):
        print(f"User {resolution.identifier} not found.")
        return 1
    print(f"{resolution.identifier} ({resolution.source}):")
    for group in sorted(resolution.groups):
        print(f"  {group}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="groupkeeper", description="Group membership lookup service")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("run", help="run the Telegram bot and the reconciliation scheduler")
    sub.add_parser("reconcile", help="pull the full roster once and update the cache")
    lookup = sub.add_parser("lookup", help="resolve a single user's groups")
    lookup.add_argument("username")
    args = parser.parse_args(argv)

    try:
        ctx = build_context()
    except (EnvironmentError, StoreUnavailable) as exc:
        logger.critical("Startup failed", extra={"error": str(exc), "error_type": type(exc).__name__})
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2

    if args.command == "run":
        from bot.dispatcher import run

        try:
            asyncio.run(run(ctx))
        except KeyboardInterrupt:
            logger.info("Interrupted, shutting down")
        except EnvironmentError as exc:
            print(f"Configuration error: {exc}", file=sys.stderr)
            return 2
        return 0
    if args.command == "reconcile":
        return asyncio.run(_reconcile(ctx))
    return asyncio.run(_lookup(ctx, args.username))


if __name__ == "__main__":
    sys.exit(main())
