"""
Query helper utilities for database operations.

This module provides shared utilities for common database query patterns,
particularly single-statement upserts (INSERT ... ON CONFLICT DO UPDATE) that
work on both PostgreSQL and SQLite.
"""

from typing import Any, Dict, Iterable, Type

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from core.database import Base


def build_upsert(
    db: Session,
    model: Type[Base],
    values: Dict[str, Any],
    conflict_columns: Iterable[str],
    update_columns: Iterable[str],
):
    """
    Build an atomic upsert statement for the session's dialect.

    The whole read-modify-write happens inside the database in one statement,
    so two concurrent writers for the same key cannot both insert; the last
    one to execute wins.

    Args:
        db: Database session (its bind decides the dialect)
        model: Mapped model class
        values: Column values for the insert
        conflict_columns: Columns of the unique constraint to conflict on
        update_columns: Columns overwritten from the attempted insert on conflict

    Returns:
        Executable insert statement

    Raises:
        NotImplementedError: For dialects without ON CONFLICT support

    Example:
        ```python
        stmt = build_upsert(db, WhatsAppContactWindow,
                            {"phone_number": phone, "last_inbound_at": now},
                            ["phone_number"], ["last_inbound_at"])
        db.execute(stmt)
        db.commit()
        ```
    """
    dialect_name = db.get_bind().dialect.name
    if dialect_name == "postgresql":
        insert = postgresql.insert
    elif dialect_name == "sqlite":
        insert = sqlite.insert
    else:
        raise NotImplementedError(f"Upsert is not supported for dialect: {dialect_name}")

    stmt = insert(model).values(**values)
    return stmt.on_conflict_do_update(
        index_elements=list(conflict_columns),
        set_={column: stmt.excluded[column] for column in update_columns},
    )
