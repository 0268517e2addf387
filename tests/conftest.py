import pytest
from werkzeug.security import generate_password_hash

import app as triad

PASSWORD = "morning-light-42"


@pytest.fixture
def db(tmp_path, monkeypatch):
    db_path = tmp_path / "triad.db"
    monkeypatch.setattr(triad, "DB_PATH", db_path)
    monkeypatch.setattr(triad, "DB_BACKEND", "sqlite")
    monkeypatch.setattr(triad, "_db_ready", False)
    triad.ensure_db()
    return db_path


def create_user(email="river@example.com", password=PASSWORD):
    with triad.get_conn() as conn:
        conn.execute(
            """
            INSERT INTO users (email, password_hash, first_name, last_name, created_at)
            VALUES (?, ?, '', '', ?)
            """,
            (email, generate_password_hash(password), triad.now_str()),
        )
        return conn.execute(
            "SELECT id FROM users WHERE email = ?", (email,)
        ).fetchone()["id"]


def activity_ids(user_id, *names):
    lookup = {row["name"]: row["id"] for row in triad.get_activities(user_id)}
    return [lookup[name] for name in names]


def complete_onboarding(user_id):
    triad.save_activity_selection(
        user_id,
        {
            "spiritual": ["Deep Breathing"],
            "mental": ["Read (20 min)"],
            "physical": ["Walk (15 min)", "Hydrate"],
        },
    )
    triad.save_reminder_windows(
        user_id,
        [
            {"name": "Morning", "start_time": "07:00", "end_time": "09:00"},
            {"name": "Evening", "start_time": "20:00", "end_time": "22:00"},
        ],
    )


@pytest.fixture
def user_id(db):
    return create_user()


@pytest.fixture
def client(db):
    triad.app.config.update(TESTING=True)
    return triad.app.test_client()


@pytest.fixture
def auth_client(client, user_id):
    with client.session_transaction() as sess:
        sess["user_id"] = user_id
    return client
