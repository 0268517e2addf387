import sqlite3

import pytest

import app as triad


def test_migrate_adds_missing_columns(tmp_path, monkeypatch):
    """Databases created before profiles existed gain the name columns."""
    db_path = tmp_path / "legacy.db"
    conn = sqlite3.connect(db_path)
    conn.executescript(
        """
        CREATE TABLE users (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            email TEXT NOT NULL UNIQUE,
            password_hash TEXT NOT NULL,
            created_at TEXT NOT NULL
        );
        CREATE TABLE streaks (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            category TEXT NOT NULL,
            current_streak INTEGER NOT NULL DEFAULT 0,
            longest_streak INTEGER NOT NULL DEFAULT 0,
            last_logged_date TEXT,
            UNIQUE (user_id, category)
        );
        INSERT INTO users (email, password_hash, created_at)
        VALUES ('old@example.com', 'x', '2023-01-01T00:00:00');
        """
    )
    conn.commit()
    conn.close()

    monkeypatch.setattr(triad, "DB_PATH", db_path)
    monkeypatch.setattr(triad, "DB_BACKEND", "sqlite")
    monkeypatch.setattr(triad, "_db_ready", False)
    triad.ensure_db()

    with triad.get_conn() as db:
        assert triad.column_exists(db, "users", "first_name")
        assert triad.column_exists(db, "users", "last_name")
        assert triad.column_exists(db, "streaks", "updated_at")
        assert triad.table_exists(db, "check_ins")
        user = db.execute("SELECT * FROM users").fetchone()
    assert user["first_name"] == ""


def test_connection_rolls_back_on_error(db):
    with pytest.raises(RuntimeError):
        with triad.get_conn() as conn:
            conn.execute(
                """
                INSERT INTO users (email, password_hash, created_at)
                VALUES ('temp@example.com', 'x', '2024-01-01T00:00:00')
                """
            )
            raise RuntimeError("abort")

    with triad.get_conn() as conn:
        row = conn.execute(
            "SELECT 1 FROM users WHERE email = 'temp@example.com'"
        ).fetchone()
    assert row is None
