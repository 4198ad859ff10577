"""Filesystem security boundary."""

from todosync.security.path_validator import PathValidator

__all__ = ["PathValidator"]
