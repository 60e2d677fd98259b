"""
Schema upgrade script for Coinfolio.
Adds columns the current models expect to an existing SQLite file when its
tables lack them. Every step checks before it alters, so running it twice is harmless.
"""

import sqlite3
import os
from typing import Optional

from config import get_settings


def sqlite_path(database_url: Optional[str] = None) -> Optional[str]:
    """File path of a sqlite:/// URL, or None for other databases / in-memory."""
    url = database_url or get_settings().database_url
    prefix = "sqlite:///"
    if not url.startswith(prefix):
        return None
    path = url[len(prefix):]
    if not path or path == ":memory:":
        return None
    return path


def _columns(cursor: sqlite3.Cursor, table: str) -> list:
    cursor.execute(f"PRAGMA table_info({table})")
    return [col[1] for col in cursor.fetchall()]


def _add_column_if_missing(db_file: str, table: str, column: str, ddl: str, backfill: Optional[str] = None) -> bool:
    """
    Add a column to a table if it doesn't exist.

    Returns:
        True if the column was added
    """
    if not os.path.exists(db_file):
        print(f"Database {db_file} does not exist. Nothing to migrate.")
        return False

    conn = sqlite3.connect(db_file)
    cursor = conn.cursor()

    try:
        columns = _columns(cursor, table)
        if not columns:
            print(f"✓ Table '{table}' does not exist yet; it will be created with '{column}'.")
            return False

        if column not in columns:
            print(f"Adding '{column}' column to {table} table...")
            cursor.execute(f"ALTER TABLE {table} ADD COLUMN {column} {ddl}")
            if backfill:
                cursor.execute(f"UPDATE {table} SET {column} = {backfill} WHERE {column} IS NULL")
            conn.commit()
            print(f"✓ Added '{column}' column successfully.")
            return True

        print(f"✓ Column '{column}' already exists in {table} table.")
        return False

    except sqlite3.OperationalError as e:
        print(f"Error during migration: {e}")
        conn.rollback()
        raise
    finally:
        conn.close()


def migrate_holding_add_version(db_file: str) -> bool:
    """Add the optimistic-concurrency version counter to holding."""
    return _add_column_if_missing(db_file, "holding", "version", "INTEGER NOT NULL DEFAULT 0")


def migrate_holding_add_updated_at(db_file: str) -> bool:
    """Add holding.updated_at, stamped with the migration time for existing rows."""
    return _add_column_if_missing(db_file, "holding", "updated_at", "TIMESTAMP", backfill="CURRENT_TIMESTAMP")


def migrate_transaction_add_created_at(db_file: str) -> bool:
    """Add transaction.created_at, backfilled from the effective date for existing rows."""
    return _add_column_if_missing(
        db_file, '"transaction"', "created_at", "TIMESTAMP", backfill="transaction_date"
    )


def run_all_migrations(database_url: Optional[str] = None) -> list:
    """
    Run every schema upgrade step against the configured SQLite file.

    Returns:
        Names of the migrations that changed the schema
    """
    print("=" * 60)
    print("Coinfolio Schema Upgrade")
    print("=" * 60)

    db_file = sqlite_path(database_url)
    applied = []
    if db_file is None:
        print("Not a SQLite file database; schema is managed by init_db().")
    else:
        for migration in (
            migrate_holding_add_version,
            migrate_holding_add_updated_at,
            migrate_transaction_add_created_at,
        ):
            if migration(db_file):
                applied.append(migration.__name__)

    print("=" * 60)
    print("Schema upgrade complete!")
    print("=" * 60)
    return applied


if __name__ == "__main__":
    run_all_migrations()
