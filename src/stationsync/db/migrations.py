"""
Additive schema migrations.

Uses SQLite ALTER TABLE ADD COLUMN for incremental schema evolution.
Each migration is idempotent: columns are only added if absent.

Called automatically from get_engine() after create_all() so databases
created before the orbit relations existed pick them up without manual steps.
"""
from sqlalchemy import text


def run_migrations(engine) -> None:
    """Apply all pending schema migrations.

    Safe to call multiple times. Only SQLite is handled (PRAGMA table_info);
    other backends are expected to be created fresh by create_all().

    Args:
        engine: SQLAlchemy engine (SQLModel create_engine result).
    """
    if engine.dialect.name != "sqlite":
        return

    with engine.connect() as conn:
        # Orbit references on stations and points of interest
        _add_column_if_missing(conn, "spacestation", "orbit_id", "INTEGER")
        _add_column_if_missing(conn, "pointofinterest", "orbit_id", "INTEGER")

        # Traceback of the last failed run
        _add_column_if_missing(conn, "syncstate", "error_detail", "TEXT")

        conn.commit()


def _add_column_if_missing(conn, table: str, column: str, col_type: str) -> None:
    """Add a column to a table if it doesn't already exist."""
    result = conn.execute(text(f"PRAGMA table_info({table})"))
    existing_columns = {row[1] for row in result}
    if existing_columns and column not in existing_columns:
        conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {column} {col_type}"))
