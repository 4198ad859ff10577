"""Configuration management for todosync."""

import sys
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from todosync.sync.models import ConflictPolicy, SyncConfig, SyncDirection, SyncStrategy


class Settings(BaseSettings):
    """todosync configuration settings."""

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Paths
    todosync_root: Path = Field(
        default_factory=Path.cwd,
        description="Base directory every synced file must live under",
    )
    todo_path: str = Field(
        default="TODO.md",
        description="TODO file, relative to the root",
    )

    # Parser limits
    todo_max_file_size_mb: int = Field(
        default=5,
        gt=0,
        description="Largest TODO file accepted, in megabytes",
    )
    todo_max_tasks: int = Field(
        default=10000,
        gt=0,
        description="Largest number of checkboxes accepted",
    )

    # Sync behavior
    sync_direction: SyncDirection = Field(
        default=SyncDirection.BIDIRECTIONAL,
        description="Which way changes flow",
    )
    sync_strategy: SyncStrategy = Field(
        default=SyncStrategy.LAST_WRITE_WINS,
        description="How matched tasks are reconciled",
    )
    conflict_resolution: ConflictPolicy = Field(
        default=ConflictPolicy.PREFER_FILE,
        description="Policy handed to the conflict resolver",
    )
    debounce_ms: int = Field(default=500, ge=0)
    throttle_ms: int = Field(default=2000, ge=0)
    board_id: str = Field(default="default", description="Board the file maps to")
    dry_run: bool = Field(
        default=False,
        description="Parse and log without writing the database or file",
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )

    @field_validator("todosync_root", mode="before")
    @classmethod
    def resolve_root(cls, v: str | Path) -> Path:
        """Resolve and validate root path."""
        return Path(v).expanduser().resolve()

    @field_validator("log_level", mode="before")
    @classmethod
    def upper_log_level(cls, v: str) -> str:
        """Accept lower-case level names."""
        return v.upper() if isinstance(v, str) else v

    @property
    def todosync_dir(self) -> Path:
        """Path to .todosync directory."""
        return self.todosync_root / ".todosync"

    @property
    def db_path(self) -> Path:
        """Path to SQLite database."""
        return self.todosync_dir / "tasks.db"

    def ensure_dirs(self) -> None:
        """Create required directories if they don't exist."""
        self.todosync_dir.mkdir(parents=True, exist_ok=True)

    def sync_config(self) -> SyncConfig:
        """Build the orchestrator configuration from these settings."""
        return SyncConfig(
            todo_path=self.todo_path,
            direction=self.sync_direction,
            strategy=self.sync_strategy,
            conflict_resolution=self.conflict_resolution,
            debounce_ms=self.debounce_ms,
            throttle_ms=self.throttle_ms,
            max_file_size_mb=self.todo_max_file_size_mb,
            max_tasks=self.todo_max_tasks,
            dry_run=self.dry_run,
            board_id=self.board_id,
        )


def load_settings(root: Path | None = None) -> Settings:
    """Load settings from environment and .env file.

    Args:
        root: Optional root directory override.

    Returns:
        Validated Settings instance.

    Raises:
        SystemExit: If a setting fails validation.
    """
    env_file = None
    if root:
        env_file = root / ".env"
        if not env_file.exists():
            env_file = root / ".todosync" / ".env"
            if not env_file.exists():
                env_file = None

    try:
        if env_file:
            # _env_file is a valid pydantic-settings parameter
            return Settings(_env_file=env_file, todosync_root=root)  # type: ignore[call-arg]
        if root:
            return Settings(todosync_root=root)
        return Settings()

    except Exception as e:
        _print_config_help(e)
        sys.exit(1)


def _print_config_help(error: Exception) -> None:
    """Print helpful message for invalid configuration."""
    print("\n" + "=" * 60)
    print("todosync Configuration Error")
    print("=" * 60 + "\n")

    print("Example .env file:")
    print("-" * 40)
    print("TODO_PATH=TODO.md")
    print("SYNC_DIRECTION=bidirectional   # file_to_app | app_to_file")
    print("SYNC_STRATEGY=last_write_wins  # three_way_merge | manual_resolution")
    print("TODO_MAX_FILE_SIZE_MB=5")
    print("TODO_MAX_TASKS=10000")
    print("LOG_LEVEL=INFO")
    print("-" * 40)
    print()

    print(f"Validation error: {error}")
    print()
