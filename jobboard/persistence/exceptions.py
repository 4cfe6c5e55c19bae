"""Persistence layer exceptions.

All persistence exceptions inherit from PersistenceError so callers can catch
every database failure with a single except clause. SQLAlchemy errors never
escape a repository unwrapped.
"""


class PersistenceError(Exception):
    """Base exception for all persistence layer errors."""

    pass


class DatabaseConnectionError(PersistenceError):
    """Raised when database connection or initialization fails.

    Examples:
    - Empty or malformed database URL
    - Database file not accessible
    - get_session() called before init_database()
    """

    pass


class RecordNotFoundError(PersistenceError):
    """Raised when an update targets a row that does not exist.

    Lookups that may legitimately miss return None instead.
    """

    pass


class DataIntegrityError(PersistenceError):
    """Raised when a database constraint is violated (duplicate id, unique email)."""

    pass
