"""SQLAlchemy table definitions for tabpilot's local persistence.

All tables share ``METADATA`` so ``create_all`` sets up a fresh SQLite
file on first use.
"""

from __future__ import annotations

from pathlib import Path

import sqlalchemy as sa
from sqlalchemy.orm import Session, sessionmaker

TIMESTAMP = sa.DateTime(timezone=True)

METADATA = sa.MetaData()

# ---------------------------------------------------------------------------
# kv_entries: durable key/value storage (runtime state, sessions)
# ---------------------------------------------------------------------------

kv_entries = sa.Table(
    "kv_entries",
    METADATA,
    sa.Column("key", sa.String(length=200), primary_key=True),
    sa.Column("value", sa.JSON(), nullable=False),
    sa.Column("updated_at", TIMESTAMP, nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
)


def build_engine(db_path: Path | str) -> sa.Engine:
    """Create an engine for a SQLite file, creating parent dirs and tables."""
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    engine = sa.create_engine(f"sqlite:///{path}", future=True)
    METADATA.create_all(engine)
    return engine


def build_session_factory(engine: sa.Engine) -> sessionmaker[Session]:
    """Return a session factory bound to ``engine``."""
    return sessionmaker(bind=engine, expire_on_commit=False, future=True)
