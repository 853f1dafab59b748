"""SQLite schema for the session pointer index.

Rows are pointers: they carry metadata only. Message content for native
sessions lives on the backend; imported sessions keep theirs in a local
markdown artifact named by ``artifact_id``.
"""

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS sessions (
    session_id     TEXT PRIMARY KEY,
    title          TEXT,
    source         TEXT NOT NULL DEFAULT 'native',
    content_owner  TEXT NOT NULL DEFAULT 'remote',
    source_id      TEXT,
    artifact_id    TEXT,
    summary        TEXT,
    continued_from TEXT,
    archived       INTEGER NOT NULL DEFAULT 0,
    created_at     TEXT NOT NULL,
    last_accessed  TEXT NOT NULL,
    imported_at    TEXT
);

CREATE INDEX IF NOT EXISTS idx_sessions_last_accessed ON sessions(last_accessed);
CREATE INDEX IF NOT EXISTS idx_sessions_source ON sessions(source, source_id);
"""
