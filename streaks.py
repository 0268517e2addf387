from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Iterable, Mapping, TypedDict

HARMONY = "harmony"


class Streak(TypedDict):
    current_streak: int
    longest_streak: int
    last_logged_date: date | None


def new_streak() -> Streak:
    return {"current_streak": 0, "longest_streak": 0, "last_logged_date": None}


def parse_logged_date(value: date | str | None) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.fromisoformat(str(value)).date()


def advance_streak(streak: Streak, completed_today: bool, today: date) -> Streak:
    """Apply one day's evaluation to a streak.

    Safe to call repeatedly for the same ``today``: once a day has been
    counted, ``last_logged_date`` equals ``today`` and nothing moves again.
    A missed day only resets the counter once the gap is wider than one day,
    so the streak stays alive until the next day passes without a log.
    """
    yesterday = today - timedelta(days=1)
    current = streak["current_streak"]
    longest = streak["longest_streak"]
    last_logged = parse_logged_date(streak["last_logged_date"])

    if completed_today:
        if last_logged == yesterday:
            current += 1
        elif last_logged != today:
            current = 1
        last_logged = today
        longest = max(longest, current)
    elif last_logged is not None and last_logged not in (yesterday, today):
        current = 0

    return {
        "current_streak": current,
        "longest_streak": longest,
        "last_logged_date": last_logged,
    }


def category_completion(
    activities: Iterable[Mapping],
    completed_ids: Iterable[int],
    pillars: Iterable[str],
) -> dict[str, bool]:
    completed = set(completed_ids)
    status = {pillar: False for pillar in pillars}
    for activity in activities:
        pillar = activity["pillar"]
        if pillar in status and activity["id"] in completed:
            status[pillar] = True
    status[HARMONY] = any(status.values())
    return status
