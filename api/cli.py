#!/usr/bin/env python3
"""
Wind server CLI tool.

Command-line interface for operating the snapshot store without the HTTP
server:
- Run a harvest cycle (optionally from an explicit start time)
- Run a retention sweep
- Resolve latest / nearest snapshots
- List stored snapshots
- Check a running server's health

Usage:
    python -m api.cli harvest
    python -m api.cli harvest --at 2024-01-05T12:00:00Z
    python -m api.cli sweep
    python -m api.cli latest
    python -m api.cli nearest --time 2024-01-05T09:00:00Z --limit 2
    python -m api.cli list
    python -m api.cli check-health
    python -m api.cli serve
"""
import argparse
import logging
import sys
from typing import Optional


def _components():
    from api.state import get_app_state
    return get_app_state().components


def run_harvest(at: Optional[str] = None) -> None:
    """Run one harvest invocation and print its report."""
    from windserver.errors import RejectedQuery
    from windserver.lookup import parse_time_iso
    from windserver.harvest import HarvestOutcome

    try:
        start = parse_time_iso(at) if at else None
    except RejectedQuery as e:
        print(f"\nError: {e}")
        sys.exit(2)
    report = _components().engine.harvest(start)

    print(f"\nHarvest outcome: {report.outcome.value}")
    print(f"Started from:    {report.start}")
    print(f"Fetch attempts:  {report.fetch_attempts}")
    if report.harvested:
        print(f"Harvested:       {', '.join(str(s) for s in report.harvested)}")
    if report.error:
        print(f"Error:           {report.error}")

    if report.outcome in (HarvestOutcome.CONVERSION_FAILED, HarvestOutcome.STORE_FAILED):
        sys.exit(1)


def run_sweep() -> None:
    """Run one retention sweep."""
    report = _components().sweeper.sweep()
    print(f"\nDeleted {report.deleted} snapshots ({report.raw_deleted} raw), {report.remaining} remaining")


def show_latest() -> None:
    result = _components().resolver.resolve_latest()
    if not result.found:
        print(f"\n{result.message}")
        sys.exit(1)
    print(f"\nLatest snapshot: {result.stamp}")


def show_nearest(time_iso: str, limit: Optional[str]) -> None:
    from windserver.errors import RejectedQuery
    from windserver.lookup import parse_search_limit, parse_time_iso

    try:
        target = parse_time_iso(time_iso)
        result = _components().resolver.resolve_nearest(target, parse_search_limit(limit))
    except RejectedQuery as e:
        print(f"\nError: {e}")
        sys.exit(2)

    if not result.found:
        print(f"\n{result.message}")
        sys.exit(1)
    print(f"\nNearest snapshot: {result.stamp}")


def list_snapshots() -> None:
    """List stored snapshots, newest first."""
    components = _components()
    stamps = sorted(components.store.list_servable(), reverse=True)
    raw = sorted(components.store.list_raw(), reverse=True)

    if not stamps and not raw:
        print("\nNo snapshots found.")
        return

    print("\n" + "=" * 40)
    print("SNAPSHOTS")
    print("=" * 40)
    for s in stamps:
        print(f"{str(s):<12} servable")
    for s in raw:
        print(f"{str(s):<12} raw (not converted)")
    print("-" * 40)
    print(f"Total servable: {len(stamps)}")


def check_health(url: str) -> None:
    """Check a running server's health."""
    import requests

    try:
        response = requests.get(f"{url.rstrip('/')}/api/health", timeout=5)
        data = response.json()
        print(f"\nServer status: {data.get('status', 'unknown')}")
        for name, comp in data.get("components", {}).items():
            print(f"  {name}: {comp.get('status')} - {comp.get('message')}")
        if data.get("status") == "unhealthy":
            sys.exit(1)
    except requests.exceptions.ConnectionError:
        print("\nError: Could not connect to server. Is it running?")
        sys.exit(1)


def serve() -> None:
    import uvicorn
    from api.config import settings

    uvicorn.run("api.main:app", host=settings.host, port=settings.port,
                log_level=settings.log_level.lower())


def main():
    parser = argparse.ArgumentParser(
        description="Wind server CLI tool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  Harvest from now, backfilling gaps:
    python -m api.cli harvest

  Harvest starting at an explicit time:
    python -m api.cli harvest --at 2024-01-05T12:00:00Z

  Find the snapshot nearest a time, searching 2 days either side:
    python -m api.cli nearest --time 2024-01-05T09:00:00Z --limit 2
        """
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    harvest_parser = subparsers.add_parser("harvest", help="Run one harvest cycle")
    harvest_parser.add_argument("--at", help="ISO 8601 start time (default: now)")

    subparsers.add_parser("sweep", help="Delete snapshots past the retention window")
    subparsers.add_parser("latest", help="Show the latest available snapshot")

    nearest_parser = subparsers.add_parser("nearest", help="Show the snapshot nearest a time")
    nearest_parser.add_argument("--time", required=True, help="ISO 8601 target time")
    nearest_parser.add_argument("--limit", help="Search limit in days")

    subparsers.add_parser("list", help="List stored snapshots")

    health_parser = subparsers.add_parser("check-health", help="Check a running server")
    health_parser.add_argument("--url", default="http://localhost:7000", help="Server base URL")

    subparsers.add_parser("serve", help="Run the HTTP server")

    args = parser.parse_args()

    from api.config import settings
    level = logging.DEBUG if args.verbose else getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    if args.command == "harvest":
        run_harvest(args.at)
    elif args.command == "sweep":
        run_sweep()
    elif args.command == "latest":
        show_latest()
    elif args.command == "nearest":
        show_nearest(args.time, args.limit)
    elif args.command == "list":
        list_snapshots()
    elif args.command == "check-health":
        check_health(args.url)
    elif args.command == "serve":
        serve()
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
