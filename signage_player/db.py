import os

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy import text

DATABASE_URL = os.getenv("SIGNAGE_STATE_DB_URL", "sqlite:///./player_state.db")

engine = create_engine(DATABASE_URL, connect_args={"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {})
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)

Base = declarative_base()


def ensure_sqlite_schema(bind=None):
    """
    Lightweight runtime schema patching for SQLite.

    `Base.metadata.create_all()` won't add new columns to existing tables.
    This keeps state files written by older players readable without
    requiring a migration tool.
    """
    bind = bind if bind is not None else engine
    if bind.dialect.name != "sqlite":
        return

    with bind.begin() as conn:
        cols = conn.execute(text("PRAGMA table_info(playback_state)")).fetchall()
        col_names = {row[1] for row in cols}  # (cid, name, type, notnull, dflt_value, pk)
        if not col_names:
            return
        if "loop" not in col_names:
            conn.execute(text("ALTER TABLE playback_state ADD COLUMN loop BOOLEAN DEFAULT 1"))
        if "updated_at" not in col_names:
            conn.execute(text("ALTER TABLE playback_state ADD COLUMN updated_at DATETIME"))
        conn.execute(text("UPDATE playback_state SET loop=1 WHERE loop IS NULL"))
        conn.execute(text("UPDATE playback_state SET item_index=0 WHERE item_index IS NULL OR item_index < 0"))
