from datetime import date, datetime, timedelta

from streaks import (
    HARMONY,
    advance_streak,
    category_completion,
    new_streak,
    parse_logged_date,
)

TODAY = date(2024, 3, 10)
YESTERDAY = TODAY - timedelta(days=1)


def streak(current, longest, last):
    return {"current_streak": current, "longest_streak": longest, "last_logged_date": last}


def test_first_completion_starts_at_one():
    result = advance_streak(new_streak(), True, TODAY)
    assert result == streak(1, 1, TODAY)


def test_completion_after_yesterday_extends_streak():
    result = advance_streak(streak(4, 4, YESTERDAY), True, TODAY)
    assert result == streak(5, 5, TODAY)


def test_extending_below_longest_keeps_longest():
    result = advance_streak(streak(2, 9, YESTERDAY), True, TODAY)
    assert result == streak(3, 9, TODAY)


def test_same_day_reevaluation_does_not_double_count():
    once = advance_streak(streak(4, 4, YESTERDAY), True, TODAY)
    twice = advance_streak(once, True, TODAY)
    assert twice == once == streak(5, 5, TODAY)


def test_completion_after_gap_restarts_at_one():
    result = advance_streak(streak(6, 6, TODAY - timedelta(days=3)), True, TODAY)
    assert result == streak(1, 6, TODAY)


def test_missed_today_with_log_yesterday_keeps_streak():
    result = advance_streak(streak(3, 5, YESTERDAY), False, TODAY)
    assert result == streak(3, 5, YESTERDAY)


def test_missed_today_after_already_counting_today_keeps_streak():
    result = advance_streak(streak(3, 5, TODAY), False, TODAY)
    assert result == streak(3, 5, TODAY)


def test_missed_with_older_log_resets_current_only():
    last = TODAY - timedelta(days=2)
    result = advance_streak(streak(3, 5, last), False, TODAY)
    assert result == streak(0, 5, last)


def test_missed_with_no_history_stays_empty():
    assert advance_streak(new_streak(), False, TODAY) == new_streak()


def test_advance_does_not_mutate_input():
    original = streak(2, 2, YESTERDAY)
    advance_streak(original, True, TODAY)
    assert original == streak(2, 2, YESTERDAY)


def test_string_dates_are_accepted():
    result = advance_streak(streak(1, 1, YESTERDAY.isoformat()), True, TODAY)
    assert result == streak(2, 2, TODAY)


def test_run_of_days_with_a_break():
    """Five logged days, two missed, then one more."""
    state = new_streak()
    day = date(2024, 1, 1)
    for _ in range(5):
        state = advance_streak(state, True, day)
        day += timedelta(days=1)
    assert state["current_streak"] == 5

    for _ in range(2):
        state = advance_streak(state, False, day)
        day += timedelta(days=1)
    assert state["current_streak"] == 0
    assert state["longest_streak"] == 5

    state = advance_streak(state, True, day)
    assert state == streak(1, 5, day)


def test_parse_logged_date():
    assert parse_logged_date(None) is None
    assert parse_logged_date("") is None
    assert parse_logged_date("2024-03-10") == TODAY
    assert parse_logged_date("2024-03-10T18:30:00") == TODAY
    assert parse_logged_date(datetime(2024, 3, 10, 7, 0)) == TODAY
    assert parse_logged_date(TODAY) == TODAY


def test_category_completion_marks_pillars_and_harmony():
    activities = [
        {"id": 1, "pillar": "spiritual"},
        {"id": 2, "pillar": "mental"},
        {"id": 3, "pillar": "physical"},
    ]
    result = category_completion(activities, [2], ["spiritual", "mental", "physical"])
    assert result == {
        "spiritual": False,
        "mental": True,
        "physical": False,
        HARMONY: True,
    }


def test_category_completion_with_nothing_logged():
    activities = [{"id": 1, "pillar": "spiritual"}]
    result = category_completion(activities, [], ["spiritual", "mental", "physical"])
    assert result == {
        "spiritual": False,
        "mental": False,
        "physical": False,
        HARMONY: False,
    }


def test_category_completion_ignores_unknown_pillars():
    activities = [{"id": 7, "pillar": "financial"}]
    result = category_completion(activities, [7], ["spiritual"])
    assert result == {"spiritual": False, HARMONY: False}
