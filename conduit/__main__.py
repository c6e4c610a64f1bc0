"""Command line access to a document store.

Usage:
    # Read a field
    python -m conduit --server https://db.example.com get users.alice.profile.name

    # Write a field (value is JSON)
    python -m conduit --server https://db.example.com set users.alice.age 42

    # Delete a document or field
    python -m conduit delete users.alice.age

    # Insert a document into a collection and print its id
    python -m conduit push users '{"name": "Bob"}'

    # Print every change of a field until interrupted
    python -m conduit --connector WS watch users.alice

Settings default to the CONDUIT_SERVER_URL, CONDUIT_API_KEY and
CONDUIT_CONNECTOR environment variables.
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from typing import Any, Optional

from .app import App
from .config import CONNECTORS, AppConfig
from .exceptions import ConduitError
from .location import Location, Ref


def _ref(app: App, dotted: str) -> Ref:
    location = Location.parse(dotted)
    return app.db.collection(location.collection).ref(location.id).child(*location.path)


def _print(value: Any) -> None:
    print(json.dumps(value, indent=2, default=str))


async def run_command(args: argparse.Namespace) -> int:
    overrides = {"connector": args.connector}
    if args.server:
        overrides["server_url"] = args.server
    if args.api_key:
        overrides["api_key"] = args.api_key
    config = AppConfig.from_env(**overrides)

    async with App(config) as app:
        if args.command == "get":
            _print(await _ref(app, args.path).resolve())
        elif args.command == "set":
            ok = await _ref(app, args.path).set(json.loads(args.value))
            print("ok" if ok else "rejected")
            return 0 if ok else 1
        elif args.command == "delete":
            print("deleted" if await _ref(app, args.path).delete() else "not found")
        elif args.command == "push":
            print(await app.db.collection(args.collection).push(json.loads(args.value)))
        elif args.command == "watch":
            await _watch(_ref(app, args.path), args.duration)
    return 0


async def _watch(ref: Ref, duration: Optional[float]) -> None:
    unsubscribe = ref.subscribe(_print)
    try:
        if duration is None:
            await asyncio.Event().wait()
        else:
            await asyncio.sleep(duration)
    finally:
        unsubscribe()


def main(argv: Optional[list] = None) -> int:
    """Entry point for the ``conduit`` command."""
    parser = argparse.ArgumentParser(
        prog="conduit",
        description="Read, write and watch documents in a remote store",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--server", help="Server URL (default: $CONDUIT_SERVER_URL)")
    parser.add_argument("--api-key", help="API key (default: $CONDUIT_API_KEY)")
    parser.add_argument(
        "--connector",
        default=os.environ.get("CONDUIT_CONNECTOR", "HTTP").upper(),
        type=str.upper,
        choices=[c for c in CONNECTORS if c != "LOCAL"],
        help="Transport",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )

    commands = parser.add_subparsers(dest="command", required=True)
    get = commands.add_parser("get", help="Print the value at a path")
    get.add_argument("path", help="collection.id.field...")
    set_ = commands.add_parser("set", help="Write a JSON value at a path")
    set_.add_argument("path", help="collection.id.field...")
    set_.add_argument("value", help="JSON value")
    delete = commands.add_parser("delete", help="Delete the value at a path")
    delete.add_argument("path", help="collection.id.field...")
    push = commands.add_parser("push", help="Insert a JSON document and print its id")
    push.add_argument("collection")
    push.add_argument("value", help="JSON document")
    watch = commands.add_parser("watch", help="Print every change of a path")
    watch.add_argument("path", help="collection.id.field...")
    watch.add_argument("--duration", type=float, default=None, help="Stop after N seconds")

    args = parser.parse_args(argv)
    if getattr(args, "path", None) is not None:
        try:
            location = Location.parse(args.path)
        except ValueError as e:
            parser.error(str(e))
        if location.id is None:
            parser.error(f"{args.path!r} must name at least a collection and a document id")

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        return asyncio.run(run_command(args))
    except KeyboardInterrupt:
        logging.info("Stopped")
        return 0
    except (ConduitError, json.JSONDecodeError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
