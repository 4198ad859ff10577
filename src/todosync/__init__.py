"""todosync - keep a Markdown TODO file and a task database in sync."""

__version__ = "0.1.0"
