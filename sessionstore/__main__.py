#!/usr/bin/env python3
"""
Session Store CLI

Commands:
    sessionstore migrate            Provision the sessions table
    sessionstore inspect [ID]       Show one session, or list stored ids
    sessionstore purge --yes        Delete every session
    sessionstore demo               Walk through create/get/update/delete

Configuration comes from SESSIONSTORE_* environment variables; the
--backend and --db-path flags override them.

Usage:
    python -m sessionstore migrate
    SESSIONSTORE_BACKEND=redis python -m sessionstore inspect
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import sys
from pathlib import Path
from typing import Optional, Sequence

from sessionstore.core.config import BackendType, SessionStoreConfig
from sessionstore.core.errors import SessionStoreError
from sessionstore.core.types import Result, Ok
from sessionstore.observability.logging import LogLevel, setup_logging
from sessionstore.observability.metrics import MetricsCollector
from sessionstore.session.identity import DictTokenStore
from sessionstore.session.plugin import SessionPlugin
from sessionstore.session.store import SessionStore
from sessionstore.storage import create_backend


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main CLI entrypoint. Returns the process exit code."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    config_result = _load_config(args)
    if config_result.is_err():
        print(f"Configuration error: {config_result.error}", file=sys.stderr)
        return 2
    config = config_result.unwrap()

    setup_logging(
        LogLevel.from_name(config.observability.log_level),
        json_output=config.observability.log_json,
    )

    store = SessionStore(create_backend(config), config=config)
    try:
        return _COMMANDS[args.command](store, args)
    except SessionStoreError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        store.close()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sessionstore",
        description="Server-side session store administration",
    )
    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"%(prog)s {_get_version()}",
    )
    parser.add_argument(
        "--backend",
        choices=[b.value for b in BackendType],
        help="Override SESSIONSTORE_BACKEND",
    )
    parser.add_argument(
        "--db-path",
        type=Path,
        help="Override SESSIONSTORE_SQLITE_PATH",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("migrate", help="Provision session storage")

    inspect_parser = subparsers.add_parser("inspect", help="Show a session or list ids")
    inspect_parser.add_argument("session_id", nargs="?", help="Session id to show")
    inspect_parser.add_argument(
        "--limit",
        type=int,
        default=20,
        help="Maximum ids to list when no id is given (default: 20)",
    )

    purge_parser = subparsers.add_parser("purge", help="Delete every session")
    purge_parser.add_argument("--yes", action="store_true", help="Confirm deletion")

    demo_parser = subparsers.add_parser("demo", help="Run a create/get/update/delete walkthrough")
    demo_parser.add_argument(
        "--metrics",
        action="store_true",
        help="Print Prometheus metrics after the walkthrough",
    )

    return parser


def _load_config(args: argparse.Namespace) -> Result[SessionStoreConfig, str]:
    result = SessionStoreConfig.from_env()
    if result.is_err():
        return result
    config = result.unwrap()

    if args.backend:
        config = dataclasses.replace(config, backend=BackendType(args.backend))
    if args.db_path:
        config = dataclasses.replace(
            config,
            sqlite=dataclasses.replace(config.sqlite, db_path=args.db_path),
        )

    validation = config.validate()
    if validation.is_err():
        return validation
    return Ok(config)


def _get_version() -> str:
    from sessionstore import __version__
    return __version__


# =============================================================================
# COMMANDS
# =============================================================================

def _cmd_migrate(store: SessionStore, args: argparse.Namespace) -> int:
    result = store.migrate()
    if result.is_err():
        print(f"Migration failed: {result.error}", file=sys.stderr)
        return 1
    print(f"✓ Session storage ready ({store.config.backend.value})")
    return 0


def _cmd_inspect(store: SessionStore, args: argparse.Namespace) -> int:
    if args.session_id is None:
        ids = store.list_ids(args.limit)
        print(f"{store.count()} session(s)")
        for session_id in ids:
            print(f"  {session_id}")
        return 0

    attributes = store.get(args.session_id)
    if attributes is None:
        print(f"No session {args.session_id}", file=sys.stderr)
        return 1
    print(json.dumps(attributes, indent=2, sort_keys=True, default=str))
    return 0


def _cmd_purge(store: SessionStore, args: argparse.Namespace) -> int:
    if not args.yes:
        print("Refusing to purge without --yes", file=sys.stderr)
        return 1
    removed = store.purge()
    print(f"✓ Removed {removed} session(s)")
    return 0


def _cmd_demo(store: SessionStore, args: argparse.Namespace) -> int:
    print("\n" + "=" * 60)
    print("Session Store - Demo")
    print("=" * 60 + "\n")

    migrated = store.migrate()
    if migrated.is_err():
        print(f"Migration failed: {migrated.error}", file=sys.stderr)
        return 1
    print(f"✓ Backend ready: {store.config.backend.value}")

    tokens = DictTokenStore()
    plugin = SessionPlugin(store, tokens)
    name = store.config.token_name

    created = plugin.create(name, {"user": "demo", "visits": 1})
    if created.is_err():
        print(f"Create failed: {created.error}", file=sys.stderr)
        return 1
    session_id = created.unwrap()
    print(f"1. Created session {session_id}")
    print(f"   Token {name!r} = {tokens.get(name)}")

    print(f"2. Read back: {plugin.get(name)}")

    updated = plugin.update(name, {"visits": 2, "theme": "dark"})
    if updated.is_err():
        print(f"Update failed: {updated.error}", file=sys.stderr)
        return 1
    print(f"3. After merge: {plugin.get(name)}")

    print(f"4. Deleted: {plugin.delete(name)}")
    print(f"   Token present: {name in tokens}")
    print(f"   Read after delete: {store.get(session_id)}")

    if args.metrics:
        print("\n--- Metrics ---\n")
        print(MetricsCollector.get_instance().export_prometheus())

    print("\n✓ Demo complete")
    return 0


_COMMANDS = {
    "migrate": _cmd_migrate,
    "inspect": _cmd_inspect,
    "purge": _cmd_purge,
    "demo": _cmd_demo,
}


if __name__ == "__main__":
    sys.exit(main())
