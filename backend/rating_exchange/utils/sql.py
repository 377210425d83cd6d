"""
SQL utilities for idempotent writes.

insert_ignoring_duplicates() relies on the table's unique constraint as the
conflict signal: rows that already exist are skipped, not errors.
"""
from typing import Any, Dict, List, Sequence

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlmodel import Session

# Rows per statement; keeps multi-row VALUES under SQLite's 999 bound-parameter limit
INSERT_CHUNK_SIZE = 100


def insert_ignoring_duplicates(
    session: Session,
    model: Any,
    rows: List[Dict[str, Any]],
    conflict_columns: Sequence[str],
) -> int:
    """
    INSERT ... ON CONFLICT DO NOTHING for SQLite and PostgreSQL.

    Runs inside the caller's transaction (no commit).

    Returns:
        Number of rows actually inserted
    """
    if not rows:
        return 0

    dialect = session.get_bind().dialect.name
    if dialect == "sqlite":
        insert = sqlite_insert
    elif dialect == "postgresql":
        insert = pg_insert
    else:
        raise NotImplementedError(f"insert_ignoring_duplicates does not support dialect '{dialect}'")

    inserted = 0
    for start in range(0, len(rows), INSERT_CHUNK_SIZE):
        stmt = insert(model).values(rows[start : start + INSERT_CHUNK_SIZE])
        stmt = stmt.on_conflict_do_nothing(index_elements=list(conflict_columns))
        result = session.execute(stmt)
        if result.rowcount and result.rowcount > 0:
            inserted += result.rowcount
    return inserted
