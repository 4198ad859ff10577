"""todosync CLI entry point."""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

import structlog
from dotenv import load_dotenv

from todosync import __version__
from todosync.config import Settings, load_settings
from todosync.db import Database
from todosync.errors import TodoSyncError
from todosync.markdown import MarkdownGenerator, MarkdownParser
from todosync.security import PathValidator
from todosync.sync import (
    FileWatcher,
    LocalFileSystem,
    SyncCompleteEvent,
    SyncErrorEvent,
    SyncOrchestrator,
)

# ANSI color codes
RESET = "\033[0m"
BOLD = "\033[1m"
DIM = "\033[2m"
GREEN = "\033[32m"
YELLOW = "\033[33m"
RED = "\033[31m"

CHECKBOX_MARKS = {True: "x", False: " "}


def configure_logging(level: str) -> None:
    """Configure structlog for the application."""
    # Configure stdlib logging
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level.upper(), logging.INFO),
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.dev.ConsoleRenderer(colors=True),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def prepare(root: Path) -> Settings:
    """Load .env, settings and logging for a command.

    Args:
        root: Base directory for the TODO file and the database.

    Returns:
        Loaded settings.
    """
    root = root.expanduser().resolve()
    env_file = root / ".env"
    if not env_file.exists():
        env_file = root / ".todosync" / ".env"
    load_dotenv(env_file if env_file.exists() else None)

    settings = load_settings(root)
    configure_logging(settings.log_level)
    return settings


def build_orchestrator(settings: Settings, db: Database) -> SyncOrchestrator:
    """Wire the sync components from settings."""
    file_system = LocalFileSystem()
    path_validator = PathValidator(settings.todosync_root)
    config = settings.sync_config()

    watcher = FileWatcher(
        config.todo_path,
        path_validator=path_validator,
        file_system=file_system,
        debounce_ms=config.debounce_ms,
        throttle_ms=config.throttle_ms,
    )
    return SyncOrchestrator(
        MarkdownParser.from_settings(settings),
        MarkdownGenerator(file_system, path_validator),
        watcher,
        db,
        config,
        file_system=file_system,
        path_validator=path_validator,
    )


async def read_todo_file(settings: Settings, file: str | None) -> str:
    """Read a TODO file from inside the root."""
    validator = PathValidator(settings.todosync_root)
    path = await validator.validate_async(file or settings.todo_path)
    await validator.validate_file_size(path, settings.todo_max_file_size_mb)
    return await LocalFileSystem().read_file(path)


async def parse_command(root: Path, file: str | None) -> int:
    """Print the tasks found in a TODO file.

    Args:
        root: Root directory.
        file: TODO file relative to root (default: TODO_PATH).

    Returns:
        Process exit code.
    """
    settings = prepare(root)
    content = await read_todo_file(settings, file)

    parser = MarkdownParser.from_settings(settings)
    result = parser.parse(content)

    if result.front_matter:
        print(f"{BOLD}Front matter{RESET}")
        for key, value in result.front_matter.items():
            print(f"  {key}: {value!r}")
        print()

    current_section = None
    for task in parser.extract_tasks(result):
        if task.section != current_section:
            current_section = task.section
            print(f"\n{BOLD}{current_section or '(no section)'}{RESET}")

        mark = "~" if task.in_progress else CHECKBOX_MARKS[task.checked]
        details = []
        if task.metadata.priority:
            details.append(f"priority={task.metadata.priority}")
        if task.metadata.due_date:
            details.append(f"due={task.metadata.due_date}")
        if task.metadata.tags:
            details.append("tags=" + ",".join(task.metadata.tags))
        suffix = f"  {DIM}{' '.join(details)}{RESET}" if details else ""
        print(f"  {'  ' * task.indent_level}[{mark}] {task.title}{suffix}")

    print(f"{len(result.checkboxes)} tasks, {len(result.sections)} top-level sections")
    return 0


async def validate_command(root: Path, file: str | None) -> int:
    """Validate a TODO file and report errors and warnings.

    Returns:
        0 when valid, 1 otherwise.
    """
    settings = prepare(root)
    validator = PathValidator(settings.todosync_root)
    path = await validator.validate_async(file or settings.todo_path)
    content = await LocalFileSystem().read_file(path)

    result = MarkdownParser.from_settings(settings).validate(content)
    for error in result.errors:
        print(f"  {RED}error{RESET}   {error}")
    for warning in result.warnings:
        print(f"  {YELLOW}warning{RESET} {warning}")

    if result.valid:
        print(f"{GREEN}✓{RESET} {path} is valid")
        return 0
    print(f"{RED}✗{RESET} {path} is invalid")
    return 1


async def sync_command(root: Path) -> int:
    """Run one file -> database pass.

    Returns:
        0 on success, 1 if the pass failed or the configured direction does not
        read the file.
    """
    settings = prepare(root)
    log = structlog.get_logger()
    if not settings.sync_direction.reads_file:
        log.warning("sync_skipped_direction", direction=settings.sync_direction.value)
        return 1
    settings.ensure_dirs()

    db = Database(settings.db_path)
    await db.connect()
    try:
        orchestrator = build_orchestrator(settings, db)
        history = await orchestrator.sync_file_to_db()
    finally:
        await db.close()

    if history is None:
        return 1
    log.info(
        "sync_summary",
        created=history.tasks_created,
        updated=history.tasks_updated,
        deleted=history.tasks_deleted,
        dry_run=settings.dry_run,
    )
    return 0


async def generate_command(root: Path) -> int:
    """Write the board's tasks to the TODO file.

    Returns:
        0 on success, 1 if the pass failed or the configured direction does not
        write the file.
    """
    settings = prepare(root)
    if not settings.sync_direction.writes_file:
        structlog.get_logger().warning(
            "generate_skipped_direction", direction=settings.sync_direction.value
        )
        return 1
    settings.ensure_dirs()

    db = Database(settings.db_path)
    await db.connect()
    try:
        orchestrator = build_orchestrator(settings, db)
        tasks = await db.get_tasks_by_board(settings.board_id)
        history = await orchestrator.sync_db_to_file(tasks)
    finally:
        await db.close()

    return 0 if history else 1


async def watch_command(root: Path) -> int:
    """Keep the TODO file and the database in sync until interrupted."""
    settings = prepare(root)
    settings.ensure_dirs()
    log = structlog.get_logger()

    log.info(
        "config_loaded",
        root=str(settings.todosync_root),
        todo_path=settings.todo_path,
        db_path=str(settings.db_path),
        direction=settings.sync_direction.value,
        strategy=settings.sync_strategy.value,
    )

    db = Database(settings.db_path)
    await db.connect()
    log.info("database_ready", path=str(settings.db_path))

    orchestrator = build_orchestrator(settings, db)
    orchestrator.on(
        SyncCompleteEvent,
        lambda e: log.info("sync_complete", tasks_changed=e.history.tasks_changed),
    )
    orchestrator.on(
        SyncErrorEvent,
        lambda e: log.error("sync_error", context=e.context, error=str(e.error)),
    )

    # Set up graceful shutdown
    shutdown_event = asyncio.Event()

    def signal_handler():
        log.info("shutdown_signal_received", message="Ctrl+C pressed, shutting down...")
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        await orchestrator.start()
        print(f"  {GREEN}✓{RESET} Watching {BOLD}{settings.todo_path}{RESET}")
        print(f"  Press {BOLD}Ctrl+C{RESET} to stop")
        await shutdown_event.wait()
    finally:
        log.info("shutting_down")
        if orchestrator.is_active():
            await orchestrator.dispose()
        await db.close()
        log.info("todosync_stopped")
    return 0


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="todosync",
        description="Keep a Markdown TODO file and a task database in sync",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    root_help = "Root directory (default: current directory)"
    for name, help_text in (
        ("parse", "Print the tasks in a TODO file"),
        ("validate", "Check a TODO file against the parser limits"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("file", nargs="?", help="TODO file (default: TODO_PATH)")
        sub.add_argument("--root", type=Path, default=Path.cwd(), help=root_help)

    for name, help_text in (
        ("sync", "Import the TODO file into the database once"),
        ("generate", "Write the database tasks to the TODO file once"),
        ("watch", "Sync continuously while the TODO file changes"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--root", type=Path, default=Path.cwd(), help=root_help)

    args = parser.parse_args()

    commands = {
        "parse": lambda: parse_command(args.root, args.file),
        "validate": lambda: validate_command(args.root, args.file),
        "sync": lambda: sync_command(args.root),
        "generate": lambda: generate_command(args.root),
        "watch": lambda: watch_command(args.root),
    }
    if args.command not in commands:
        parser.print_help()
        sys.exit(1)

    try:
        sys.exit(asyncio.run(commands[args.command]()))
    except TodoSyncError as e:
        print(f"{RED}Error:{RESET} {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
