from __future__ import annotations

from datetime import datetime, date, timedelta
from functools import wraps
import logging
import os
import secrets
import sqlite3
from pathlib import Path

from flask import (
    Flask,
    g,
    jsonify,
    redirect,
    render_template,
    request,
    send_from_directory,
    session,
    url_for,
)
import requests
import psycopg2
from psycopg2.extras import RealDictCursor
from werkzeug.security import check_password_hash, generate_password_hash

from streaks import Streak, advance_streak, category_completion, parse_logged_date
from wellbeing import (
    CATEGORY_ORDER,
    DEFAULT_MICRO_ACTIVITIES,
    DEFAULT_REMINDERS,
    PILLAR_KEYS,
    PILLARS,
    category_label,
    find_default_activity,
    pillar_progress,
    synergy_wheel,
    validate_check_in_text,
    validate_reminder_window,
)

BASE_DIR = Path(__file__).resolve().parent
DB_PATH = Path(os.environ.get("TRIAD_DB_PATH", "").strip() or BASE_DIR / "triad.db")
DATABASE_URL = os.environ.get("DATABASE_URL", "").strip()
DB_BACKEND = "postgres" if DATABASE_URL else "sqlite"
RESET_TOKEN_HOURS = 2
API_CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
}

logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO").upper())
logger = logging.getLogger(__name__)

app = Flask(__name__)
app.secret_key = os.environ.get("APP_SECRET_KEY", "dev-secret-change-me")
_db_ready = False


def login_required(view):
    @wraps(view)
    def wrapped(*args, **kwargs):
        if g.user is None:
            return redirect(url_for("login"))
        return view(*args, **kwargs)

    return wrapped


@app.before_request
def load_user() -> None:
    user_id = session.get("user_id")
    if user_id is None:
        g.user = None
        return

    ensure_db()
    with get_conn() as conn:
        g.user = conn.execute(
            "SELECT id, email, first_name, last_name FROM users WHERE id = ?",
            (user_id,),
        ).fetchone()


@app.after_request
def add_api_headers(response):
    if request.path.startswith("/api/"):
        response.headers.update(API_CORS_HEADERS)
    return response


@app.context_processor
def inject_user():
    return {"current_user": g.get("user")}


class DBConn:
    def __init__(self, conn, backend: str):
        self.conn = conn
        self.backend = backend

    def execute(self, query: str, params: tuple | list = ()):
        if self.backend == "postgres":
            sql = query.replace("?", "%s")
            cur = self.conn.cursor(cursor_factory=RealDictCursor)
            cur.execute(sql, params)
            return cur
        return self.conn.execute(query, params)

    def executescript(self, script: str) -> None:
        if self.backend == "postgres":
            statements = [s.strip() for s in script.split(";") if s.strip()]
            for statement in statements:
                self.execute(statement)
        else:
            self.conn.executescript(script)

    def begin_write(self) -> None:
        # Must be the first statement on a fresh connection.
        if self.backend == "sqlite":
            self.conn.execute("BEGIN IMMEDIATE")

    def for_update(self, query: str) -> str:
        if self.backend == "postgres":
            return f"{query} FOR UPDATE"
        return query

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        try:
            if exc_type is None:
                self.conn.commit()
            else:
                self.conn.rollback()
        finally:
            self.conn.close()


def get_conn() -> DBConn:
    if DB_BACKEND == "postgres":
        conn = psycopg2.connect(DATABASE_URL)
        return DBConn(conn, "postgres")
    conn = sqlite3.connect(DB_PATH)
    conn.row_factory = sqlite3.Row
    return DBConn(conn, "sqlite")


@app.route("/styles.css")
def styles_css():
    public_dir = BASE_DIR / "public"
    return send_from_directory(public_dir, "styles.css")


def send_reset_email(to_email: str, token: str, base_url: str) -> bool:
    api_key = os.environ.get("RESEND_API_KEY", "").strip()
    sender = os.environ.get("RESET_EMAIL_FROM", "").strip()
    if not api_key or not sender:
        return False

    reset_link = f"{base_url.rstrip('/')}/password-reset/{token}"
    payload = {
        "from": sender,
        "to": [to_email],
        "subject": "Reset your Triad Wellbeing password",
        "html": (
            "<p>Click the link below to reset your password. "
            f"This link expires in {RESET_TOKEN_HOURS} hours.</p>"
            f"<p><a href=\"{reset_link}\">{reset_link}</a></p>"
        ),
    }

    try:
        response = requests.post(
            "https://api.resend.com/emails",
            json=payload,
            headers={"Authorization": f"Bearer {api_key}"},
            timeout=10,
        )
    except requests.RequestException:
        logger.exception("Password reset email to %s failed", to_email)
        return False
    if response.status_code not in (200, 201):
        logger.error(
            "Password reset email rejected with status %s", response.status_code
        )
        return False
    return True


SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id {pk},
    email TEXT NOT NULL UNIQUE,
    password_hash TEXT NOT NULL,
    first_name TEXT NOT NULL DEFAULT '',
    last_name TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS password_resets (
    id {pk},
    user_id INTEGER NOT NULL REFERENCES users (id),
    token TEXT NOT NULL UNIQUE,
    created_at TEXT NOT NULL,
    expires_at TEXT NOT NULL,
    used INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS micro_activities (
    id {pk},
    user_id INTEGER NOT NULL REFERENCES users (id),
    pillar TEXT NOT NULL,
    name TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL,
    UNIQUE (user_id, pillar, name)
);

CREATE TABLE IF NOT EXISTS reminder_windows (
    id {pk},
    user_id INTEGER NOT NULL REFERENCES users (id),
    name TEXT NOT NULL,
    start_time TEXT NOT NULL,
    end_time TEXT NOT NULL,
    created_at TEXT NOT NULL,
    UNIQUE (user_id, name)
);

CREATE TABLE IF NOT EXISTS activity_logs (
    id {pk},
    micro_activity_id INTEGER NOT NULL REFERENCES micro_activities (id) ON DELETE CASCADE,
    user_id INTEGER NOT NULL,
    log_date TEXT NOT NULL,
    notes TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL,
    UNIQUE (micro_activity_id, log_date)
);

CREATE TABLE IF NOT EXISTS check_ins (
    user_id INTEGER NOT NULL,
    kind TEXT NOT NULL,
    log_date TEXT NOT NULL,
    content TEXT NOT NULL DEFAULT '',
    checked_in_at TEXT NOT NULL,
    PRIMARY KEY (user_id, kind, log_date)
);

CREATE TABLE IF NOT EXISTS streaks (
    id {pk},
    user_id INTEGER NOT NULL,
    category TEXT NOT NULL,
    current_streak INTEGER NOT NULL DEFAULT 0,
    longest_streak INTEGER NOT NULL DEFAULT 0,
    last_logged_date TEXT,
    updated_at TEXT NOT NULL DEFAULT '',
    UNIQUE (user_id, category)
)
"""

COLUMN_MIGRATIONS = [
    ("users", "first_name", "TEXT NOT NULL DEFAULT ''"),
    ("users", "last_name", "TEXT NOT NULL DEFAULT ''"),
    ("activity_logs", "notes", "TEXT NOT NULL DEFAULT ''"),
    ("streaks", "updated_at", "TEXT NOT NULL DEFAULT ''"),
]


def init_db() -> None:
    with get_conn() as conn:
        if conn.backend == "postgres":
            pk = "SERIAL PRIMARY KEY"
        else:
            pk = "INTEGER PRIMARY KEY AUTOINCREMENT"
        conn.executescript(SCHEMA.format(pk=pk))


def ensure_db() -> None:
    global _db_ready
    if not _db_ready:
        init_db()
        migrate_db()
        _db_ready = True


def table_exists(conn: DBConn, table: str) -> bool:
    if conn.backend == "postgres":
        row = conn.execute(
            "SELECT to_regclass(?) as name",
            (table,),
        ).fetchone()
        return row is not None and row["name"] is not None
    row = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=?",
        (table,),
    ).fetchone()
    return row is not None


def column_exists(conn: DBConn, table: str, column: str) -> bool:
    if conn.backend == "postgres":
        rows = conn.execute(
            """
            SELECT column_name
            FROM information_schema.columns
            WHERE table_name = ? AND column_name = ?
            """,
            (table, column),
        ).fetchall()
        return len(rows) > 0
    rows = conn.execute(f"PRAGMA table_info({table})").fetchall()
    return any(row["name"] == column for row in rows)


def migrate_db() -> None:
    with get_conn() as conn:
        for table, column, definition in COLUMN_MIGRATIONS:
            if table_exists(conn, table) and not column_exists(conn, table, column):
                logger.info("Adding column %s.%s", table, column)
                conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {definition}")


def today_str() -> str:
    return date.today().strftime("%Y-%m-%d")


def now_str() -> str:
    return datetime.now().isoformat(timespec="seconds")


def parse_int(value: str, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def get_activities(user_id: int) -> list:
    with get_conn() as conn:
        return conn.execute(
            """
            SELECT id, pillar, name, description FROM micro_activities
            WHERE user_id = ?
            ORDER BY id ASC
            """,
            (user_id,),
        ).fetchall()


def get_completed_ids(user_id: int, log_date: str) -> set[int]:
    with get_conn() as conn:
        rows = conn.execute(
            """
            SELECT micro_activity_id FROM activity_logs
            WHERE user_id = ? AND log_date = ?
            """,
            (user_id, log_date),
        ).fetchall()
    return {row["micro_activity_id"] for row in rows}


def get_check_in(user_id: int, kind: str, log_date: str) -> str:
    with get_conn() as conn:
        row = conn.execute(
            """
            SELECT content FROM check_ins
            WHERE user_id = ? AND kind = ? AND log_date = ?
            """,
            (user_id, kind, log_date),
        ).fetchone()
    return row["content"] if row is not None else ""


def save_check_in(user_id: int, kind: str, content: str, log_date: str) -> None:
    with get_conn() as conn:
        conn.execute(
            """
            INSERT INTO check_ins (user_id, kind, log_date, content, checked_in_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(user_id, kind, log_date) DO UPDATE SET
                content = excluded.content,
                checked_in_at = excluded.checked_in_at
            """,
            (user_id, kind, log_date, content, now_str()),
        )


def onboarding_complete(user_id: int) -> bool:
    with get_conn() as conn:
        activity = conn.execute(
            "SELECT 1 FROM micro_activities WHERE user_id = ? LIMIT 1",
            (user_id,),
        ).fetchone()
        reminder = conn.execute(
            "SELECT 1 FROM reminder_windows WHERE user_id = ? LIMIT 1",
            (user_id,),
        ).fetchone()
    return activity is not None and reminder is not None


def save_activity_selection(user_id: int, selection: dict[str, list[str]]) -> None:
    """Make the user's micro-activities match ``selection``.

    Activities that stay selected keep their ids so their logs survive a
    second pass through onboarding.
    """
    now = now_str()
    with get_conn() as conn:
        existing = conn.execute(
            "SELECT id, pillar, name FROM micro_activities WHERE user_id = ?",
            (user_id,),
        ).fetchall()
        for row in existing:
            if row["name"] not in selection.get(row["pillar"], []):
                conn.execute(
                    "DELETE FROM activity_logs WHERE micro_activity_id = ? AND user_id = ?",
                    (row["id"], user_id),
                )
                conn.execute(
                    "DELETE FROM micro_activities WHERE id = ? AND user_id = ?",
                    (row["id"], user_id),
                )

        for pillar, names in selection.items():
            for name in names:
                default = find_default_activity(pillar, name)
                if default is None:
                    continue
                conn.execute(
                    """
                    INSERT INTO micro_activities (user_id, pillar, name, description, created_at)
                    VALUES (?, ?, ?, ?, ?)
                    ON CONFLICT(user_id, pillar, name) DO NOTHING
                    """,
                    (user_id, pillar, name, default["description"], now),
                )


def save_reminder_windows(user_id: int, windows: list) -> None:
    now = now_str()
    with get_conn() as conn:
        conn.execute("DELETE FROM reminder_windows WHERE user_id = ?", (user_id,))
        for window in windows:
            conn.execute(
                """
                INSERT INTO reminder_windows (user_id, name, start_time, end_time, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    user_id,
                    window["name"],
                    window["start_time"] + ":00",
                    window["end_time"] + ":00",
                    now,
                ),
            )


def replace_activity_logs(user_id: int, activity_ids, log_date: str) -> int:
    now = now_str()
    with get_conn() as conn:
        owned = {
            row["id"]
            for row in conn.execute(
                "SELECT id FROM micro_activities WHERE user_id = ?",
                (user_id,),
            ).fetchall()
        }
        keep = sorted(owned.intersection(activity_ids))
        conn.execute(
            "DELETE FROM activity_logs WHERE user_id = ? AND log_date = ?",
            (user_id, log_date),
        )
        for activity_id in keep:
            conn.execute(
                """
                INSERT INTO activity_logs (micro_activity_id, user_id, log_date, created_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(micro_activity_id, log_date) DO NOTHING
                """,
                (activity_id, user_id, log_date, now),
            )
    return len(keep)


def update_streaks(user_id: int, today: date | None = None) -> dict[str, Streak]:
    """Evaluate every streak category for ``today`` and persist the result.

    The rows are created if missing and then read under a write lock, so
    overlapping calls for the same user run one after the other and the
    second one sees a ``last_logged_date`` of today.
    """
    today = today or date.today()
    today_iso = today.isoformat()
    now = now_str()
    results: dict[str, Streak] = {}

    with get_conn() as conn:
        conn.begin_write()
        for category in CATEGORY_ORDER:
            conn.execute(
                """
                INSERT INTO streaks (user_id, category, current_streak, longest_streak, last_logged_date, updated_at)
                VALUES (?, ?, 0, 0, NULL, ?)
                ON CONFLICT(user_id, category) DO NOTHING
                """,
                (user_id, category, now),
            )
        rows = conn.execute(
            conn.for_update("SELECT * FROM streaks WHERE user_id = ?"),
            (user_id,),
        ).fetchall()
        existing = {row["category"]: row for row in rows}

        activities = conn.execute(
            "SELECT id, pillar FROM micro_activities WHERE user_id = ?",
            (user_id,),
        ).fetchall()
        logs = conn.execute(
            "SELECT micro_activity_id FROM activity_logs WHERE user_id = ? AND log_date = ?",
            (user_id, today_iso),
        ).fetchall()
        completion = category_completion(
            activities, [row["micro_activity_id"] for row in logs], PILLAR_KEYS
        )
        logger.info(
            "Evaluating streaks for user %s on %s: %d activities, %d logged",
            user_id,
            today_iso,
            len(activities),
            len(logs),
        )

        for category in CATEGORY_ORDER:
            row = existing[category]
            state = advance_streak(
                {
                    "current_streak": row["current_streak"],
                    "longest_streak": row["longest_streak"],
                    "last_logged_date": parse_logged_date(row["last_logged_date"]),
                },
                completion[category],
                today,
            )
            last_logged = state["last_logged_date"]
            conn.execute(
                """
                UPDATE streaks
                SET current_streak = ?, longest_streak = ?, last_logged_date = ?, updated_at = ?
                WHERE user_id = ? AND category = ?
                """,
                (
                    state["current_streak"],
                    state["longest_streak"],
                    last_logged.isoformat() if last_logged else None,
                    now,
                    user_id,
                    category,
                ),
            )
            logger.info(
                "%s streak for user %s: current=%s, longest=%s",
                category_label(category),
                user_id,
                state["current_streak"],
                state["longest_streak"],
            )
            results[category] = state
    return results


def get_streak_cards(user_id: int, today: date | None = None) -> list[dict]:
    """Dashboard cards; a streak whose last log is older than yesterday shows 0."""
    today = today or date.today()
    yesterday = today - timedelta(days=1)
    with get_conn() as conn:
        rows = conn.execute(
            """
            SELECT category, current_streak, longest_streak, last_logged_date
            FROM streaks WHERE user_id = ?
            """,
            (user_id,),
        ).fetchall()
    cards = []
    for row in rows:
        last_logged = parse_logged_date(row["last_logged_date"])
        current = row["current_streak"]
        if last_logged is None or last_logged < yesterday:
            current = 0
        cards.append(
            {
                "category": row["category"],
                "label": category_label(row["category"]),
                "current_streak": current,
                "longest_streak": row["longest_streak"],
            }
        )
    order = {category: index for index, category in enumerate(CATEGORY_ORDER)}
    cards.sort(key=lambda card: order.get(card["category"], len(order)))
    return cards


def serialize_streaks(results: dict[str, Streak]) -> dict[str, dict]:
    return {
        category: {
            "current_streak": state["current_streak"],
            "longest_streak": state["longest_streak"],
            "last_logged_date": (
                state["last_logged_date"].isoformat() if state["last_logged_date"] else None
            ),
        }
        for category, state in results.items()
    }


@app.route("/", methods=["GET"])
def index():
    if g.user is None:
        return redirect(url_for("login"))
    return redirect(url_for("dashboard"))


@app.route("/dashboard", methods=["GET"])
@login_required
def dashboard():
    user_id = g.user["id"]
    if not onboarding_complete(user_id):
        return redirect(url_for("onboarding"))

    today = date.today()
    today_iso = today.isoformat()
    activities = get_activities(user_id)
    completed_ids = get_completed_ids(user_id, today_iso)
    progress = pillar_progress(activities, completed_ids)

    return render_template(
        "dashboard.html",
        now=datetime.now(),
        pillars=PILLARS,
        progress=progress,
        wheel=synergy_wheel(progress),
        streaks=get_streak_cards(user_id, today=today),
        intention=get_check_in(user_id, "morning_intent", today_iso),
        reflection=get_check_in(user_id, "evening_reflection", today_iso),
    )


@app.route("/register", methods=["GET", "POST"])
def register():
    ensure_db()
    if g.user is not None:
        return redirect(url_for("dashboard"))

    error = ""
    if request.method == "POST":
        email = request.form.get("email", "").strip().lower()
        password = request.form.get("password", "")
        confirm = request.form.get("confirm", "")
        first_name = request.form.get("first_name", "").strip()
        last_name = request.form.get("last_name", "").strip()

        if not email or not password:
            error = "Email and password are required."
        elif password != confirm:
            error = "Passwords do not match."
        else:
            try:
                with get_conn() as conn:
                    email_exists = conn.execute(
                        "SELECT 1 FROM users WHERE email = ?",
                        (email,),
                    ).fetchone()
                    if email_exists:
                        error = "That email is already registered."
                    else:
                        conn.execute(
                            """
                            INSERT INTO users (email, password_hash, first_name, last_name, created_at)
                            VALUES (?, ?, ?, ?, ?)
                            """,
                            (
                                email,
                                generate_password_hash(password),
                                first_name,
                                last_name,
                                now_str(),
                            ),
                        )
                        user_id = conn.execute(
                            "SELECT id FROM users WHERE email = ?",
                            (email,),
                        ).fetchone()["id"]
            except (sqlite3.IntegrityError, psycopg2.IntegrityError):
                error = "That email is already registered."

            if not error:
                logger.info("Registered user %s", user_id)
                session["user_id"] = user_id
                return redirect(url_for("onboarding"))

    return render_template("register.html", error=error, now=datetime.now())


@app.route("/login", methods=["GET", "POST"])
def login():
    ensure_db()
    if g.user is not None:
        return redirect(url_for("dashboard"))

    error = ""
    if request.method == "POST":
        email = request.form.get("email", "").strip().lower()
        password = request.form.get("password", "")

        with get_conn() as conn:
            user = conn.execute(
                "SELECT * FROM users WHERE email = ?",
                (email,),
            ).fetchone()

        if user is None or not check_password_hash(user["password_hash"], password):
            logger.warning("Failed sign-in for %s", email)
            error = "Invalid email or password."
        else:
            session["user_id"] = user["id"]
            return redirect(url_for("dashboard"))

    return render_template("login.html", error=error, now=datetime.now())


@app.route("/logout", methods=["POST"])
@login_required
def logout():
    session.clear()
    return redirect(url_for("login"))


@app.route("/account", methods=["GET", "POST"])
@login_required
def account():
    user_id = g.user["id"]
    message = ""
    error = ""

    if request.method == "POST":
        first_name = request.form.get("first_name", "").strip()
        last_name = request.form.get("last_name", "").strip()
        current_password = request.form.get("current_password", "")
        new_password = request.form.get("new_password", "")
        confirm_password = request.form.get("confirm_password", "")

        with get_conn() as conn:
            user = conn.execute(
                "SELECT * FROM users WHERE id = ?",
                (user_id,),
            ).fetchone()

            if new_password:
                if not current_password or not check_password_hash(
                    user["password_hash"], current_password
                ):
                    error = "Current password is incorrect."
                elif new_password != confirm_password:
                    error = "New passwords do not match."

            # Nothing is saved when the password change is rejected.
            if not error:
                if (first_name, last_name) != (user["first_name"], user["last_name"]):
                    conn.execute(
                        "UPDATE users SET first_name = ?, last_name = ? WHERE id = ?",
                        (first_name, last_name, user_id),
                    )
                    message = "Profile updated."
                if new_password:
                    conn.execute(
                        "UPDATE users SET password_hash = ? WHERE id = ?",
                        (generate_password_hash(new_password), user_id),
                    )
                    message = "Password updated."

    with get_conn() as conn:
        user = conn.execute(
            "SELECT email, first_name, last_name FROM users WHERE id = ?",
            (user_id,),
        ).fetchone()

    return render_template(
        "account.html",
        now=datetime.now(),
        user=user,
        message=message,
        error=error,
    )


@app.route("/password-reset", methods=["GET", "POST"])
def password_reset_request():
    ensure_db()
    message = ""
    error = ""
    if request.method == "POST":
        email = request.form.get("email", "").strip().lower()
        if not email:
            error = "Enter your email address."
        else:
            with get_conn() as conn:
                user = conn.execute(
                    "SELECT id, email FROM users WHERE email = ?",
                    (email,),
                ).fetchone()
            if user is None:
                message = "If that email exists, a reset link has been sent."
            else:
                token = secrets.token_urlsafe(24)
                now = datetime.now()
                expires_at = (now + timedelta(hours=RESET_TOKEN_HOURS)).isoformat(
                    timespec="seconds"
                )
                with get_conn() as conn:
                    conn.execute(
                        """
                        INSERT INTO password_resets (user_id, token, created_at, expires_at)
                        VALUES (?, ?, ?, ?)
                        """,
                        (user["id"], token, now.isoformat(timespec="seconds"), expires_at),
                    )
                base_url = os.environ.get("APP_BASE_URL", "").strip()
                if not base_url:
                    base_url = request.host_url.rstrip("/")
                if send_reset_email(user["email"], token, base_url):
                    message = "Reset link sent. Check your email."
                else:
                    error = "Email service is not configured."

    return render_template(
        "password_reset_request.html",
        now=datetime.now(),
        message=message,
        error=error,
    )


@app.route("/password-reset/<token>", methods=["GET", "POST"])
def password_reset(token: str):
    ensure_db()
    error = ""
    with get_conn() as conn:
        reset = conn.execute(
            """
            SELECT * FROM password_resets
            WHERE token = ? AND used = 0 AND expires_at >= ?
            """,
            (token, now_str()),
        ).fetchone()
    if reset is None:
        return render_template("password_reset_invalid.html", now=datetime.now())

    if request.method == "POST":
        password = request.form.get("password", "")
        confirm = request.form.get("confirm", "")
        if not password:
            error = "Password is required."
        elif password != confirm:
            error = "Passwords do not match."
        else:
            with get_conn() as conn:
                conn.execute(
                    "UPDATE users SET password_hash = ? WHERE id = ?",
                    (generate_password_hash(password), reset["user_id"]),
                )
                conn.execute(
                    "UPDATE password_resets SET used = 1 WHERE id = ?",
                    (reset["id"],),
                )
            return redirect(url_for("login"))

    return render_template(
        "password_reset_form.html",
        now=datetime.now(),
        token=token,
        error=error,
    )


@app.route("/onboarding", methods=["GET"])
@login_required
def onboarding():
    return render_template("onboarding.html", now=datetime.now())


@app.route("/onboarding/pillars", methods=["GET", "POST"])
@login_required
def pillar_setup():
    user_id = g.user["id"]
    error = ""

    if request.method == "POST":
        selection = {
            pillar: [
                name
                for name in request.form.getlist(f"activity_{pillar}")
                if find_default_activity(pillar, name) is not None
            ]
            for pillar in PILLAR_KEYS
        }
        if not any(selection.values()):
            error = "Choose at least one micro-activity."
        else:
            save_activity_selection(user_id, selection)
            return redirect(url_for("reminder_setup"))
    else:
        selection = {pillar: [] for pillar in PILLAR_KEYS}
        for activity in get_activities(user_id):
            selection.setdefault(activity["pillar"], []).append(activity["name"])
        if not any(selection.values()):
            selection = {
                pillar: [activity["name"] for activity in activities]
                for pillar, activities in DEFAULT_MICRO_ACTIVITIES.items()
            }

    return render_template(
        "pillar_setup.html",
        now=datetime.now(),
        pillars=PILLARS,
        catalogue=DEFAULT_MICRO_ACTIVITIES,
        selection=selection,
        error=error,
    )


@app.route("/onboarding/reminders", methods=["GET", "POST"])
@login_required
def reminder_setup():
    user_id = g.user["id"]
    error = ""
    reminders = [dict(window) for window in DEFAULT_REMINDERS]

    if request.method == "POST":
        windows = []
        for reminder in reminders:
            key = reminder["name"].lower()
            reminder["start_time"] = request.form.get(f"{key}_start", "")
            reminder["end_time"] = request.form.get(f"{key}_end", "")
            window, window_error = validate_reminder_window(
                reminder["name"], reminder["start_time"], reminder["end_time"]
            )
            if window_error:
                error = window_error
                break
            windows.append(window)
        if not error:
            save_reminder_windows(user_id, windows)
            return redirect(url_for("dashboard"))
    else:
        with get_conn() as conn:
            saved = conn.execute(
                "SELECT name, start_time, end_time FROM reminder_windows WHERE user_id = ?",
                (user_id,),
            ).fetchall()
        saved_map = {row["name"]: row for row in saved}
        for reminder in reminders:
            row = saved_map.get(reminder["name"])
            if row is not None:
                reminder["start_time"] = row["start_time"][:5]
                reminder["end_time"] = row["end_time"][:5]

    return render_template(
        "reminder_setup.html",
        now=datetime.now(),
        reminders=reminders,
        error=error,
    )


@app.route("/check-in", methods=["GET", "POST"])
@login_required
def check_in():
    user_id = g.user["id"]
    today = date.today()
    today_iso = today.isoformat()

    if request.method == "POST":
        activity_ids = {
            parse_int(value, -1) for value in request.form.getlist("activity_id")
        }
        activity_ids.discard(-1)
        replace_activity_logs(user_id, activity_ids, today_iso)
        try:
            update_streaks(user_id, today=today)
        except (sqlite3.Error, psycopg2.Error):
            logger.exception("Streak update failed for user %s", user_id)
        return redirect(url_for("dashboard"))

    activities = get_activities(user_id)
    by_pillar = {pillar: [] for pillar in PILLAR_KEYS}
    for activity in activities:
        by_pillar.setdefault(activity["pillar"], []).append(activity)

    return render_template(
        "check_in.html",
        now=datetime.now(),
        pillars=PILLARS,
        activities_by_pillar=by_pillar,
        has_activities=bool(activities),
        completed_ids=get_completed_ids(user_id, today_iso),
    )


def _check_in_form(kind: str, template: str):
    user_id = g.user["id"]
    today_iso = today_str()
    error = ""
    content = get_check_in(user_id, kind, today_iso)

    if request.method == "POST":
        content = request.form.get("content", "").strip()
        error = validate_check_in_text(content, kind)
        if not error:
            save_check_in(user_id, kind, content, today_iso)
            return redirect(url_for("dashboard"))

    return render_template(template, now=datetime.now(), content=content, error=error)


@app.route("/intention", methods=["GET", "POST"])
@login_required
def morning_intention():
    return _check_in_form("morning_intent", "intention.html")


@app.route("/reflection", methods=["GET", "POST"])
@login_required
def evening_reflection():
    return _check_in_form("evening_reflection", "reflection.html")


@app.route("/api/streaks", methods=["GET", "POST", "OPTIONS"])
def streaks_api():
    if request.method == "OPTIONS":
        return "", 200
    if request.method == "GET":
        return jsonify({"message": "Use POST to calculate streaks"})
    if g.user is None:
        logger.error("Unauthorized streak calculation request")
        return jsonify({"error": "Unauthorized"}), 401

    user_id = g.user["id"]
    try:
        results = update_streaks(user_id)
    except (sqlite3.Error, psycopg2.Error) as exc:
        logger.exception("Error calculating streaks for user %s", user_id)
        return jsonify({"error": str(exc)}), 500

    return jsonify(
        {
            "message": "Streaks calculated and updated successfully",
            "streaks": serialize_streaks(results),
        }
    )


if __name__ == "__main__":
    ensure_db()
    app.run(debug=True)
