"""CLI entry point for the recommendation and scheduling engine."""

import argparse
import asyncio
import logging
import sqlite3
import sys
from datetime import datetime, timedelta

from src.core.config import Settings
from src.core.db import init_db
from src.core.errors import EngineError, UpstreamUnavailable
from src.core.schemas import daypart_for
from src.pipeline.candidate_store import CandidateStore
from src.pipeline.explainer import explain
from src.pipeline.orchestrator import RecommendationService, export_recommendations_json
from src.pipeline.refresh_gate import describe_cooldown
from src.platforms.fixtures import DemoData
from src.platforms.memory import (
    InMemoryCalendarStore,
    InMemoryProfileStore,
    StaticTierService,
    StaticVenueProvider,
)
from src.platforms.sqlite_feedback import SqliteFeedbackStore
from src.scheduling.hours import hours_or_estimate, next_opening


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        default="config/settings.yaml",
        help="Path to settings YAML file (default: config/settings.yaml)",
    )
    parser.add_argument(
        "--data",
        default="config/demo_data.yaml",
        help="Path to demo data YAML file (default: config/demo_data.yaml)",
    )
    parser.add_argument("--user", required=True, help="User id")
    parser.add_argument(
        "--now",
        type=datetime.fromisoformat,
        help="Reference time in ISO format (default: current time)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Activity recommendations and conflict-free scheduling",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # --- recommend ---
    recommend_parser = subparsers.add_parser("recommend", help="Rank nearby venues")
    _add_common(recommend_parser)
    recommend_parser.add_argument("--lat", type=float, required=True, help="Latitude")
    recommend_parser.add_argument("--lon", type=float, required=True, help="Longitude")
    recommend_parser.add_argument("-k", type=int, default=10, help="Feed size (default: 10)")
    recommend_parser.add_argument(
        "--max-price",
        type=int,
        choices=range(4),
        help="Highest price tier to show, 0-3 (default: from the profile)",
    )
    recommend_parser.add_argument("--min-rating", type=float, help="Minimum venue rating")
    recommend_parser.add_argument(
        "--open-now",
        action="store_true",
        help="Only show venues open at the reference time",
    )
    recommend_parser.add_argument(
        "--export",
        choices=["json"],
        help="Export results to format (json)",
    )

    # --- check-refresh ---
    refresh_parser = subparsers.add_parser("check-refresh", help="Show refresh eligibility")
    _add_common(refresh_parser)

    # --- schedule ---
    schedule_parser = subparsers.add_parser(
        "schedule",
        help="Propose a time slot for a venue from the user's feed",
    )
    _add_common(schedule_parser)
    schedule_parser.add_argument("--venue", required=True, help="Venue id")
    schedule_parser.add_argument(
        "--minutes",
        type=int,
        help="Visit length override in minutes",
    )
    schedule_parser.add_argument(
        "--confirm",
        action="store_true",
        help="Write the proposal to the calendar",
    )

    # --- validate ---
    validate_parser = subparsers.add_parser(
        "validate",
        help="Check a manually chosen time against the calendar",
    )
    _add_common(validate_parser)
    validate_parser.add_argument("--start", type=datetime.fromisoformat, required=True)
    validate_parser.add_argument("--end", type=datetime.fromisoformat, required=True)

    # --- decline ---
    decline_parser = subparsers.add_parser("decline", help="Hide a venue from the feed for good")
    _add_common(decline_parser)
    decline_parser.add_argument("--venue", required=True, help="Venue id")

    return parser.parse_args(argv)


def setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def build_service(settings: Settings, data: DemoData, conn: sqlite3.Connection) -> RecommendationService:
    """Wire the engine to the local collaborators described by ``data``."""
    candidates = CandidateStore(
        [StaticVenueProvider(data.venues, source_id="database")],
        timeout_seconds=settings.providers.timeout_seconds,
    )
    return RecommendationService(
        settings=settings,
        conn=conn,
        candidates=candidates,
        calendar=InMemoryCalendarStore(data.events),
        tiers=StaticTierService(data.tiers),
        feedback=SqliteFeedbackStore(conn),
        profiles=InMemoryProfileStore(data.profiles),
    )


async def run(args: argparse.Namespace, settings: Settings, data: DemoData) -> None:
    """Dispatch one subcommand."""
    conn = init_db(settings.database.path)
    try:
        service = build_service(settings, data, conn)
        now = args.now or datetime.now()

        if args.command == "recommend":
            await cmd_recommend(service, data, args, now)
        elif args.command == "check-refresh":
            result = await service.check_refresh(args.user, now)
            if result.eligible:
                print(f"'{args.user}' ({result.tier.value}) can refresh now.")
            else:
                print(f"'{args.user}' ({result.tier.value}): fresh picks in "
                      f"{describe_cooldown(result.retry_after)}.")
        elif args.command == "schedule":
            await cmd_schedule(service, args, now)
        elif args.command == "validate":
            validation = await service.validate_time(args.user, args.start, args.end)
            if validation.conflict:
                print(f"Conflicts with: {', '.join(validation.conflicting_event_ids)}")
            else:
                print("No conflict.")
        elif args.command == "decline":
            await service.decline(args.user, args.venue)
            print(f"'{args.venue}' will no longer be recommended to '{args.user}'.")
    finally:
        conn.close()


async def cmd_recommend(
    service: RecommendationService,
    data: DemoData,
    args: argparse.Namespace,
    now: datetime,
) -> None:
    """Handle the recommend subcommand."""
    try:
        result = await service.get_recommendations(
            args.user, (args.lat, args.lon), args.k, now,
            max_price_tier=args.max_price,
            min_rating=args.min_rating,
            open_now=args.open_now,
        )
    except UpstreamUnavailable as e:
        print(f"Venue data unavailable ({e}); showing {len(e.last_known)} saved picks.")
        for s in e.last_known[: args.k]:
            print(f"  {s.venue.name} [{s.venue.category.value}]")
        return

    profile = next(p for p in data.profiles if p.user_id == args.user)
    if args.export == "json":
        print(export_recommendations_json(result, profile, now))
        return

    if result.served_from_cache:
        print(f"Showing saved picks; fresh picks in {describe_cooldown(result.retry_after)}.")
    daypart = daypart_for(now).value
    for i, s in enumerate(result.items, start=1):
        sponsored = " (sponsored)" if s.venue.sponsored else ""
        print(f"{i:2d}. {s.venue.name}{sponsored} [{s.venue.category.value}] "
              f"score {s.score:.1f}, {s.distance_km:.1f} km")
        print(f"    {explain(s, profile, daypart)}")
        hours, _ = hours_or_estimate(s.venue.opening_hours, s.venue.category)
        opens = next_opening(hours, now)
        if opens is not None:
            print(f"    Closed now, opens {opens:%a %H:%M}")


async def cmd_schedule(service: RecommendationService, args: argparse.Namespace, now: datetime) -> None:
    """Handle the schedule subcommand."""
    window = timedelta(minutes=args.minutes) if args.minutes else None
    proposal = await service.propose_schedule(args.user, args.venue, now, window)
    if proposal.conflict or proposal.start is None or proposal.end is None:
        print("No free slot in the next week - pick a time manually.")
        return

    print(f"Proposed: {proposal.start:%a %Y-%m-%d %H:%M} - {proposal.end:%H:%M}")
    if proposal.tight_schedule:
        print("  Tight schedule: no travel buffer around this slot.")
    if proposal.estimated_hours:
        print("  Opening hours are estimated for this venue.")
    if args.confirm:
        event_id = await service.confirm_schedule(args.user, args.venue, proposal)
        print(f"Added to calendar as {event_id}.")


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        settings = Settings.from_yaml(args.config)
        data = DemoData.from_yaml(args.data)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        asyncio.run(run(args, settings, data))
    except EngineError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
