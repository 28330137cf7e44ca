"""
Command-line interface for Be Better.

Server commands:
- init-db: Initialize the database schema
- run: Start the Remote Ledger API server

Client commands (work offline; sync with the server when logged in):
- register / login / logout: Manage the server account and session token
- status: Show xp, level, coins and owned items
- tasks: List the task catalog and the ledger's tasks
- add-task: Put a task on the pending list
- complete: Toggle a task between pending and completed
- buy: Buy one unit of an item
- pull: Replace local totals with the server's

Usage:
    be-better init-db
    be-better run [--port PORT] [--host HOST]
    be-better login USERNAME [--password PASSWORD]
    be-better complete task-exercise

Environment Variables:
    BEBETTER_PASSWORD: Password for register/login when --password is omitted
    BEBETTER_SERVER_URL: Remote Ledger URL (default: http://localhost:3000)
    BEBETTER_STATE_PATH: Local ledger file (default: ~/.be_better/state.json)
"""

import argparse
import asyncio
import getpass
import logging
import os
import sys
from collections.abc import Awaitable, Callable

from be_better.client.api_client import APIError
from be_better.client.app import LedgerApp, open_app

LOG_FORMATS = {
    "simple": "%(levelname)s: %(message)s",
    "detailed": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
}


def configure_logging(level: str | None = None) -> None:
    """Apply ``config.logging`` (or an explicit level) to the root logger."""
    from be_better.config import config

    logging.basicConfig(
        level=(level or config.logging.level).upper(),
        format=LOG_FORMATS.get(config.logging.format, LOG_FORMATS["detailed"]),
        force=True,
    )


def _resolve_password(args: argparse.Namespace) -> str | None:
    """Password from --password, then BEBETTER_PASSWORD, then an interactive prompt."""
    password = getattr(args, "password", None) or os.environ.get("BEBETTER_PASSWORD")
    if password:
        return password
    if not sys.stdin.isatty():
        print(
            "Error: No password provided.\n"
            "Pass --password, set BEBETTER_PASSWORD, or run interactively.",
            file=sys.stderr,
        )
        return None
    return getpass.getpass("Password: ")


def _run_client(action: Callable[[LedgerApp], Awaitable[int]]) -> int:
    """Open a client session, run ``action`` in it, and wait for pending syncs."""

    async def runner() -> int:
        async with open_app() as app:
            return await action(app)

    return asyncio.run(runner())


def _print_status(app: LedgerApp) -> None:
    snapshot = app.ledger.snapshot()
    account = "logged in" if app.tokens.is_authenticated else "offline"
    print(f"Level {snapshot['level']}  XP {snapshot['xp']}  Coins {snapshot['coins']}  ({account})")
    if snapshot["itemsOwned"]:
        owned = ", ".join(f"{item} x{count}" for item, count in sorted(snapshot["itemsOwned"].items()))
        print(f"Items: {owned}")


# ============================================================================
# SERVER COMMANDS
# ============================================================================


def cmd_init_db(args: argparse.Namespace) -> int:
    """
    Initialize the database schema.

    Returns:
        0 on success, 1 on error
    """
    import sqlite3

    from be_better.db.errors import DatabaseError
    from be_better.db.schema import init_database

    try:
        init_database()
        print("Database initialized successfully.")
        return 0
    except (DatabaseError, sqlite3.Error, OSError) as e:
        print(f"Error initializing database: {e}", file=sys.stderr)
        return 1


def cmd_run(args: argparse.Namespace) -> int:
    """
    Run the Remote Ledger API server.

    Configuration priority: CLI arguments, then BEBETTER_HOST/BEBETTER_PORT,
    then config/server.ini.

    Returns:
        0 on clean shutdown (Ctrl+C), 1 on startup error
    """
    from be_better.api.server import start_server

    try:
        start_server(host=args.host, port=args.port)
        return 0
    except KeyboardInterrupt:
        print("\nServer stopped.")
        return 0
    except OSError as e:
        print(f"Error starting server: {e}", file=sys.stderr)
        return 1


# ============================================================================
# CLIENT COMMANDS
# ============================================================================


def cmd_register(args: argparse.Namespace) -> int:
    """Create a server account."""
    password = _resolve_password(args)
    if password is None:
        return 1

    async def action(app: LedgerApp) -> int:
        try:
            result = await app.client.register(args.username, password, email=args.email)
        except APIError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
        print(f"Registered '{args.username}' (id {result.get('id')}). Run 'be-better login' next.")
        return 0

    return _run_client(action)


def cmd_login(args: argparse.Namespace) -> int:
    """Log in, store the token, and load the server's totals."""
    password = _resolve_password(args)
    if password is None:
        return 1

    async def action(app: LedgerApp) -> int:
        try:
            await app.client.login(args.username, password)
        except APIError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
        print(f"Logged in as '{args.username}'.")
        await app.bridge.pull()
        _print_status(app)
        return 0

    return _run_client(action)


def cmd_logout(args: argparse.Namespace) -> int:
    """Drop the stored session token."""

    async def action(app: LedgerApp) -> int:
        if await app.client.logout():
            print("Logged out.")
        else:
            print("Not logged in.")
        return 0

    return _run_client(action)


def cmd_status(args: argparse.Namespace) -> int:
    """Show the local ledger."""

    async def action(app: LedgerApp) -> int:
        _print_status(app)
        return 0

    return _run_client(action)


def cmd_tasks(args: argparse.Namespace) -> int:
    """List catalog tasks and any extra tasks held by the ledger."""
    from be_better.core.rewards import TASK_CATALOG, reward_for

    async def action(app: LedgerApp) -> int:
        tasks = app.ledger.snapshot()["tasks"]
        labels = {True: "done", False: "pending", None: "-"}
        for task_id, definition in TASK_CATALOG.items():
            status = labels[tasks.get(task_id)]
            reward = definition.reward
            print(f"{task_id:<16} {status:<8} +{reward.xp}xp +{reward.coins}c  {definition.title}")
        for task_id in sorted(set(tasks) - set(TASK_CATALOG)):
            reward = reward_for(task_id)
            print(f"{task_id:<16} {labels[tasks[task_id]]:<8} +{reward.xp}xp +{reward.coins}c")
        return 0

    return _run_client(action)


def cmd_add_task(args: argparse.Namespace) -> int:
    """Put a task on the pending list."""
    from be_better.client.ledger import MAX_ACTIVE_TASKS

    async def action(app: LedgerApp) -> int:
        if not app.ledger.add_task(args.task_id):
            if app.ledger.task_status(args.task_id) is not None:
                print(f"Task '{args.task_id}' is already in the ledger.", file=sys.stderr)
            else:
                print(f"Task limit reached ({MAX_ACTIVE_TASKS}).", file=sys.stderr)
            return 1
        print(f"Added '{args.task_id}'.")
        return 0

    return _run_client(action)


def cmd_complete(args: argparse.Namespace) -> int:
    """Toggle a task; completing it pays its reward once."""

    async def action(app: LedgerApp) -> int:
        completed = app.ledger.toggle_task(args.task_id)
        print(f"'{args.task_id}' is now {'completed' if completed else 'pending'}.")
        await app.bridge.drain()
        _print_status(app)
        return 0

    return _run_client(action)


def cmd_buy(args: argparse.Namespace) -> int:
    """Buy one unit of an item."""

    async def action(app: LedgerApp) -> int:
        if not app.ledger.buy_item(args.item_id, args.price):
            print(
                f"Not enough coins: '{args.item_id}' costs {args.price}, "
                f"balance is {app.ledger.coins}.",
                file=sys.stderr,
            )
            return 1
        print(f"Bought '{args.item_id}'.")
        await app.bridge.drain()
        _print_status(app)
        return 0

    return _run_client(action)


def cmd_pull(args: argparse.Namespace) -> int:
    """Replace local totals with the server's."""

    async def action(app: LedgerApp) -> int:
        if not app.tokens.is_authenticated:
            print("Not logged in.", file=sys.stderr)
            return 1
        if await app.bridge.pull() is None:
            print("Could not fetch totals from the server.", file=sys.stderr)
            return 1
        _print_status(app)
        return 0

    return _run_client(action)


def _non_negative_int(value: str) -> int:
    number = int(value)
    if number < 0:
        raise argparse.ArgumentTypeError("must be non-negative")
    return number


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with every subcommand."""
    parser = argparse.ArgumentParser(
        prog="be-better",
        description="Be Better - a gamified habit tracker",
    )
    parser.add_argument("--log-level", help="Override the configured log level")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    init_parser = subparsers.add_parser("init-db", help="Initialize the database schema")
    init_parser.set_defaults(func=cmd_init_db)

    run_parser = subparsers.add_parser(
        "run",
        help="Run the Remote Ledger API server",
        description="Start the API server with uvicorn. Creates the schema if missing.",
    )
    run_parser.add_argument(
        "--port", "-p", type=int, help="API server port (default: 3000, or BEBETTER_PORT)"
    )
    run_parser.add_argument(
        "--host", type=str, help="Host to bind to (default: 0.0.0.0, or BEBETTER_HOST)"
    )
    run_parser.set_defaults(func=cmd_run)

    register_parser = subparsers.add_parser("register", help="Create a server account")
    register_parser.add_argument("username")
    register_parser.add_argument("--email")
    register_parser.add_argument("--password", help="Password (default: BEBETTER_PASSWORD or prompt)")
    register_parser.set_defaults(func=cmd_register)

    login_parser = subparsers.add_parser("login", help="Log in and load server totals")
    login_parser.add_argument("username")
    login_parser.add_argument("--password", help="Password (default: BEBETTER_PASSWORD or prompt)")
    login_parser.set_defaults(func=cmd_login)

    logout_parser = subparsers.add_parser("logout", help="Forget the stored session")
    logout_parser.set_defaults(func=cmd_logout)

    status_parser = subparsers.add_parser("status", help="Show xp, level and coins")
    status_parser.set_defaults(func=cmd_status)

    tasks_parser = subparsers.add_parser("tasks", help="List tasks and rewards")
    tasks_parser.set_defaults(func=cmd_tasks)

    add_task_parser = subparsers.add_parser("add-task", help="Add a pending task")
    add_task_parser.add_argument("task_id")
    add_task_parser.set_defaults(func=cmd_add_task)

    complete_parser = subparsers.add_parser("complete", help="Toggle a task")
    complete_parser.add_argument("task_id")
    complete_parser.set_defaults(func=cmd_complete)

    buy_parser = subparsers.add_parser("buy", help="Buy an item")
    buy_parser.add_argument("item_id")
    buy_parser.add_argument("price", type=_non_negative_int)
    buy_parser.set_defaults(func=cmd_buy)

    pull_parser = subparsers.add_parser("pull", help="Load totals from the server")
    pull_parser.set_defaults(func=cmd_pull)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    configure_logging(args.log_level)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
