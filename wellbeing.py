from __future__ import annotations

import math
from datetime import datetime
from typing import Iterable, Mapping, TypedDict

from streaks import HARMONY

CHECK_IN_MIN_LENGTH = 10
CHECK_IN_MAX_LENGTH = 500
WHEEL_RADIUS = 100


class Pillar(TypedDict):
    key: str
    name: str
    description: str


class MicroActivity(TypedDict):
    name: str
    description: str


class ReminderWindow(TypedDict):
    name: str
    start_time: str
    end_time: str


PILLARS: list[Pillar] = [
    {
        "key": "spiritual",
        "name": "Spiritual",
        "description": "Activities related to inner peace, purpose, and connection.",
    },
    {
        "key": "mental",
        "name": "Mental",
        "description": "Activities focused on cognitive health, learning, and emotional balance.",
    },
    {
        "key": "physical",
        "name": "Physical",
        "description": "Activities for bodily health, movement, and energy.",
    },
]
PILLAR_KEYS = [pillar["key"] for pillar in PILLARS]

DEFAULT_MICRO_ACTIVITIES: dict[str, list[MicroActivity]] = {
    "spiritual": [
        {"name": "Pray (15 - 20 min)", "description": "Quiet time in prayer"},
        {"name": "Read Bible", "description": "A short passage, read slowly"},
        {"name": "Read Spiritual books", "description": "A chapter or a few pages"},
        {"name": "Deep Breathing", "description": "5 minutes of conscious breathing"},
    ],
    "mental": [
        {"name": "Read (20 min)", "description": "Engage with a book or article"},
        {"name": "Learn Something New", "description": "Watch a tutorial or read about a new topic"},
        {"name": "Puzzle/Brain Game", "description": "Solve a puzzle or play a brain-training game"},
        {"name": "Mindful Moment", "description": "Observe your surroundings for 1 minute"},
    ],
    "physical": [
        {"name": "Stretch (5 min)", "description": "Light stretching exercises"},
        {"name": "Walk (15 min)", "description": "A brisk walk"},
        {"name": "Hydrate", "description": "Drink a glass of water"},
        {"name": "Quick Workout (20 min)", "description": "Short burst of physical activity"},
    ],
}

DEFAULT_REMINDERS: list[ReminderWindow] = [
    {"name": "Morning", "start_time": "07:00", "end_time": "09:00"},
    {"name": "Evening", "start_time": "20:00", "end_time": "22:00"},
]

CHECK_IN_KINDS = {
    "morning_intent": "Intention",
    "evening_reflection": "Reflection",
}

CATEGORY_ORDER = [*PILLAR_KEYS, HARMONY]


def category_label(category: str) -> str:
    if category == HARMONY:
        return "Harmony"
    for pillar in PILLARS:
        if pillar["key"] == category:
            return pillar["name"]
    return "Unknown Pillar"


def find_default_activity(pillar: str, name: str) -> MicroActivity | None:
    for activity in DEFAULT_MICRO_ACTIVITIES.get(pillar, []):
        if activity["name"] == name:
            return activity
    return None


def validate_check_in_text(text: str, kind: str) -> str:
    """Return an error message, or an empty string when the text is valid."""
    label = CHECK_IN_KINDS[kind]
    if len(text) < CHECK_IN_MIN_LENGTH:
        return f"{label} must be at least {CHECK_IN_MIN_LENGTH} characters."
    if len(text) > CHECK_IN_MAX_LENGTH:
        return f"{label} must not be longer than {CHECK_IN_MAX_LENGTH} characters."
    return ""


def parse_clock(value: str) -> str | None:
    try:
        return datetime.strptime(value.strip(), "%H:%M").strftime("%H:%M")
    except (AttributeError, ValueError):
        return None


def validate_reminder_window(name: str, start: str, end: str) -> tuple[ReminderWindow | None, str]:
    start_time = parse_clock(start)
    end_time = parse_clock(end)
    if start_time is None or end_time is None:
        return None, f"{name} times must use the HH:MM format."
    if start_time >= end_time:
        return None, f"{name} start time must be before its end time."
    return {"name": name, "start_time": start_time, "end_time": end_time}, ""


def pillar_progress(
    activities: Iterable[Mapping], completed_ids: Iterable[int]
) -> dict[str, float]:
    completed = set(completed_ids)
    counts = {key: [0, 0] for key in PILLAR_KEYS}
    for activity in activities:
        bucket = counts.get(activity["pillar"])
        if bucket is None:
            continue
        bucket[0] += 1
        if activity["id"] in completed:
            bucket[1] += 1
    return {
        key: (done / total) * 100 if total > 0 else 0.0
        for key, (total, done) in counts.items()
    }


def _clamp_percent(value: float) -> float:
    return max(0.0, min(float(value), 100.0))


def synergy_wheel(progress: Mapping[str, float]) -> dict:
    """SVG geometry for the three-ring progress wheel.

    Each pillar is drawn as a full-circumference stroke whose visible length
    is set by ``stroke-dashoffset``; later segments are rotated past the
    arc already covered by earlier ones.
    """
    spiritual = _clamp_percent(progress.get("spiritual", 0))
    mental = _clamp_percent(progress.get("mental", 0))
    physical = _clamp_percent(progress.get("physical", 0))
    circumference = 2 * math.pi * WHEEL_RADIUS

    def offset(percent: float) -> float:
        return circumference - (percent / 100) * circumference

    return {
        "radius": WHEEL_RADIUS,
        "circumference": circumference,
        "segments": [
            {
                "key": "spiritual",
                "progress": spiritual,
                "offset": offset(spiritual),
                "rotation": -90.0,
            },
            {
                "key": "mental",
                "progress": mental,
                "offset": offset(mental),
                "rotation": 30 + (spiritual / 100) * 120,
            },
            {
                "key": "physical",
                "progress": physical,
                "offset": offset(physical),
                "rotation": 150 + (spiritual / 100) * 120 + (mental / 100) * 120,
            },
        ],
    }
