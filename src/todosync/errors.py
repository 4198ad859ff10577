"""Exception types raised by todosync."""


class TodoSyncError(Exception):
    """Base class for todosync errors."""


class ConfigurationError(TodoSyncError):
    """Sync configuration is missing a required field."""


class SecurityError(TodoSyncError):
    """A path failed validation against the allowed base directory."""


class FileTooLargeError(TodoSyncError):
    """A file exceeds the configured size limit."""


class ContentValidationError(TodoSyncError):
    """Parsed content exceeds a configured limit (e.g. task count)."""


class OrchestratorNotRunningError(TodoSyncError):
    """An imperative sync trigger was called while the orchestrator is stopped."""


class SyncCancelledError(TodoSyncError):
    """A sync pass was cancelled before it finished."""
