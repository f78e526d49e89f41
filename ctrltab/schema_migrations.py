from __future__ import annotations

import logging

from sqlalchemy import inspect, text

from ctrltab.extensions import db

log = logging.getLogger(__name__)

LEGACY_COLUMNS = (
    (
        "collections",
        "user_id",
        "ALTER TABLE collections ADD COLUMN user_id INTEGER "
        "REFERENCES users(id) ON DELETE CASCADE",
    ),
    (
        "users",
        "preferences",
        "ALTER TABLE users ADD COLUMN preferences JSON NOT NULL DEFAULT '{}'",
    ),
)


def add_multi_user_columns() -> list[str]:
    """Bring a single-user SQLite database up to the multi-user schema.

    Collections created before accounts existed have no owner; seeding the
    admin adopts them afterwards.
    """
    engine = db.engine
    if engine.dialect.name != "sqlite":
        return []

    inspector = inspect(engine)
    added = []
    for table, column, statement in LEGACY_COLUMNS:
        if not inspector.has_table(table):
            continue
        columns = {item["name"] for item in inspector.get_columns(table)}
        if column in columns:
            continue
        db.session.execute(text(statement))
        added.append(f"{table}.{column}")

    if added:
        db.session.commit()
        log.info("added legacy schema columns: %s", ", ".join(added))
    return added
