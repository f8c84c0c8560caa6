from __future__ import annotations

import pytest

from queuedash.errors import ValidationError
from queuedash.models import ActionTag, Job, JobState, created_at, serialize_job
from queuedash.pagination import (
    MAX_PAGE_SIZE,
    clean_params,
    page_window,
    parse_int,
    parse_state,
    search_filter,
)

pytestmark = pytest.mark.basic


@pytest.mark.parametrize(
    "raw,expected",
    [
        (None, None),
        (True, None),
        ("", None),
        ("  12 ", 12),
        ("12.9", 12),
        (7, 7),
        (3.0, 3),
        ("nan", None),
        (float("inf"), None),
        ("abc", None),
    ],
)
def test_parse_int(raw, expected) -> None:
    assert parse_int(raw) == expected


@pytest.mark.parametrize(
    "start,end",
    [(None, None), (-10, -5), (0, 10_000), (50, 10), ("7", "3"), ("x", None), (1_000_000, None)],
)
def test_page_window_always_respects_bounds(start, end) -> None:
    w = page_window(start, end)
    assert 0 <= w.start <= w.end <= w.start + MAX_PAGE_SIZE


def test_page_window_defaults() -> None:
    w = page_window()
    assert (w.start, w.end) == (0, 20)


def test_parse_state() -> None:
    assert parse_state(None) is None
    assert parse_state("") is None
    assert parse_state("failed") is JobState.FAILED
    with pytest.raises(ValidationError) as exc:
        parse_state("Failed")
    assert exc.value.status_code == 400
    assert exc.value.message == "Invalid state: Failed. Must be one of: waiting, active, delayed, completed, failed"


def test_search_filter_omits_unset_fields() -> None:
    assert search_filter() == {"limit": 50}
    assert search_filter(limit="0") == {"limit": 50}
    assert search_filter(limit="-4") == {"limit": 1}
    assert search_filter(name="mail", data="[1, 2]", limit=3) == {"name": "mail", "data": [1, 2], "limit": 3}


def test_clean_params_accepts_numeric_strings_and_integral_floats() -> None:
    p = clean_params(grace="0", limit=None, type="failed")
    assert (p.grace, p.limit, p.type) == (0, 100, "failed")
    p = clean_params(grace=5000.0, limit=0, type="completed")
    assert (p.grace, p.limit) == (5000, 100)


@pytest.mark.parametrize("grace", ["1.5", "1e3", " 2.0 ", "0x10", ""])
def test_clean_params_rejects_non_integer_grace_strings(grace: str) -> None:
    with pytest.raises(ValidationError):
        clean_params(grace=grace, type="completed")


def test_clean_params_accepts_padded_digit_strings() -> None:
    assert clean_params(grace=" 250 ", type="failed").grace == 250


def test_clean_params_validates_grace_before_type() -> None:
    with pytest.raises(ValidationError) as exc:
        clean_params(grace=None, type="nope")
    assert "grace" in exc.value.message


def test_action_tags_are_the_nine_guarded_mutations() -> None:
    assert {t.value for t in ActionTag} == {
        "queue:pause",
        "queue:resume",
        "queue:obliterate",
        "queue:drain",
        "queue:retryAll",
        "queue:clean",
        "job:remove",
        "job:retry",
        "job:promote",
    }


def test_job_from_mapping_accepts_camel_case_fields() -> None:
    raw = {
        "id": 17,
        "name": "send",
        "data": {"to": "a@b"},
        "opts": {"attempts": 3},
        "progress": 50,
        "attemptsMade": 2,
        "timestamp": 1700000000000,
        "failedReason": "smtp down",
        "finishedOn": 1700000000500,
    }
    out = Job.from_engine(raw).to_dict()
    assert out["id"] == "17"
    assert out["attemptsMade"] == 2
    assert out["failedReason"] == "smtp down"
    assert out["finishedOn"] == 1700000000500
    assert "processedOn" not in out
    assert "returnvalue" not in out


def test_job_keeps_falsy_but_present_optional_values() -> None:
    out = serialize_job({"id": "j", "returnvalue": 0, "processedOn": 0}, state="completed")
    assert out["returnvalue"] == 0
    assert out["processedOn"] == 0
    assert out["state"] == "completed"
    assert out["attemptsMade"] == 0
    assert out["timestamp"] is None


def test_created_at_treats_missing_or_invalid_as_zero() -> None:
    assert created_at({"timestamp": 12}) == 12.0
    assert created_at({}) == 0.0
    assert created_at({"timestamp": "later"}) == 0.0
    assert created_at({"timestamp": True}) == 0.0
