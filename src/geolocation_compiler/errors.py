"""
Exceptions raised by the gazetteer compiler.

Every fatal condition derives from CompilerError so callers can abort a run
with a single handler. Recoverable conditions (missing optional tables) are
logged instead of raised.
"""


class CompilerError(Exception):
    """Base class for fatal compiler errors."""


class ConfigError(CompilerError, ValueError):
    """The run configuration is invalid."""


class MissingTableError(CompilerError):
    """A mandatory reference table is missing or unreadable."""

    def __init__(self, kind: str, path):
        self.kind = kind
        self.path = path
        super().__init__(f"Cannot read {kind} table: {path}")


class CapacityError(CompilerError):
    """An index table grew past the ceiling its binary field can hold."""

    def __init__(self, kind: str, limit: int):
        self.kind = kind
        self.limit = limit
        super().__init__(f"Too many {kind}: at most {limit} can be encoded")


class InternalIndexError(CompilerError):
    """A record references an entity that was never allocated an index."""
