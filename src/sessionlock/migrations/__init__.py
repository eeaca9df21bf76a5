"""
Database schema templates for the sessionlock stores.

Tables:
    - distributed_locks: Lock records shared by every process
    - users: Versioned user records
    - sessions: One row per (user, device) pairing

Supported backends:
    - postgresql (default)
    - sqlite

Usage:
    from sessionlock.migrations import get_schema, split_statements

    # One table (PostgreSQL by default)
    locks_sql = get_schema("locks")

    # Everything, for SQLite
    all_sql = get_schema("all", backend="sqlite")

    # PostgreSQL drivers execute one statement at a time
    async with engine.begin() as conn:
        for statement in split_statements(get_schema("all")):
            await conn.execute(text(statement))
"""

from pathlib import Path
from typing import Literal

SchemaName = Literal["locks", "users", "sessions", "all"]

BackendName = Literal["postgresql", "sqlite"]

# Creation order for "all"
_ALL_SCHEMAS: tuple[str, ...] = ("locks", "users", "sessions")

_TEMPLATES_DIR = Path(__file__).parent / "templates"


def _get_backend_templates_dir(backend: BackendName) -> Path:
    if backend == "postgresql":
        return _TEMPLATES_DIR
    return _TEMPLATES_DIR / backend


def get_schema(name: SchemaName, backend: BackendName = "postgresql") -> str:
    """
    Load a SQL schema template by name and backend.

    Args:
        name: "locks", "users", "sessions", or "all" for every table
        backend: "postgresql" (default) or "sqlite"

    Returns:
        SQL schema definition as a string

    Raises:
        ValueError: If the schema is not available for the specified backend
    """
    if name == "all":
        return "\n".join(get_schema(part, backend) for part in _ALL_SCHEMAS)  # type: ignore[arg-type]

    path = _get_backend_templates_dir(backend) / f"{name}.sql"
    if not path.exists():
        raise ValueError(
            f"Schema '{name}' is not available for backend '{backend}'. "
            f"Available schemas: {list_schemas(backend)}"
        )
    return path.read_text()


def list_schemas(backend: BackendName = "postgresql") -> list[str]:
    """
    List all available schema templates for a backend.

    Example:
        >>> list_schemas()
        ['locks', 'sessions', 'users']
    """
    templates_dir = _get_backend_templates_dir(backend)
    if not templates_dir.exists():
        return []
    return sorted(p.stem for p in templates_dir.glob("*.sql"))


def split_statements(sql: str) -> list[str]:
    """
    Split a schema script into individual statements.

    Comment lines are dropped. The templates contain no semicolons inside
    string literals, which keeps a plain split safe.
    """
    lines = [line for line in sql.splitlines() if not line.lstrip().startswith("--")]
    return [stmt.strip() for stmt in "\n".join(lines).split(";") if stmt.strip()]


__all__ = [
    "SchemaName",
    "BackendName",
    "get_schema",
    "list_schemas",
    "split_statements",
]
