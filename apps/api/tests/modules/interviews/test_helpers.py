"""
Unit tests for interview helpers module.
"""

from datetime import date
from uuid import UUID

import pytest

from scholarship_aid.modules.interviews.helpers import (
    RECOMMENDATION_TO_RESULT,
    RESULT_TO_RECOMMENDATION,
    build_meeting_link,
    default_location,
    generate_slot_grid,
    normalize_time,
    subtract_booked,
)
from scholarship_aid.modules.interviews.models import (
    InterviewResult,
    InterviewType,
    Recommendation,
)


class TestGenerateSlotGrid:
    def test_default_grid_is_half_hourly_nine_to_five(self):
        grid = generate_slot_grid()
        assert grid[0] == "09:00"
        assert grid[-1] == "16:30"
        assert len(grid) == 16

    def test_end_is_exclusive(self):
        assert generate_slot_grid("09:00", "10:30", 30) == ["09:00", "09:30", "10:00"]

    def test_custom_step(self):
        assert generate_slot_grid("13:00", "14:00", 20) == ["13:00", "13:20", "13:40"]


class TestNormalizeTime:
    @pytest.mark.parametrize(
        "value,expected",
        [("9:00", "09:00"), ("09:30", "09:30"), ("10:00:00", "10:00"), (" 14:00 ", "14:00")],
    )
    def test_normalizes(self, value, expected):
        assert normalize_time(value) == expected

    @pytest.mark.parametrize("value", ["", "10", "24:00", "10:60", "ten:00", "10:00:00:00"])
    def test_rejects_invalid(self, value):
        with pytest.raises(ValueError):
            normalize_time(value)


class TestSubtractBooked:
    def test_removes_booked_slots_and_keeps_order(self):
        grid = ["09:00", "09:30", "10:00", "10:30"]
        assert subtract_booked(grid, ["10:00", "09:00"]) == ["09:30", "10:30"]

    def test_booked_times_are_normalized(self):
        assert subtract_booked(["09:00", "09:30"], ["9:00:00"]) == ["09:30"]

    def test_no_available_slot_collides_with_a_booking(self):
        grid = generate_slot_grid()
        booked = grid[::3]
        available = subtract_booked(grid, booked)
        assert not set(available) & set(booked)
        assert set(available) | set(booked) == set(grid)


class TestMappings:
    def test_recommendation_to_result(self):
        assert RECOMMENDATION_TO_RESULT[Recommendation.RECOMMENDED] == InterviewResult.PASSED
        assert RECOMMENDATION_TO_RESULT[Recommendation.NOT_RECOMMENDED] == InterviewResult.FAILED
        assert (
            RECOMMENDATION_TO_RESULT[Recommendation.NEEDS_FOLLOWUP]
            == InterviewResult.NEEDS_FOLLOWUP
        )

    def test_result_to_recommendation_is_inverse(self):
        for recommendation, result in RECOMMENDATION_TO_RESULT.items():
            assert RESULT_TO_RECOMMENDATION[result] == recommendation


class TestLocationAndLink:
    def test_default_location_per_type(self):
        assert default_location(InterviewType.IN_PERSON, "Aid Office") == "Aid Office"
        assert default_location(InterviewType.ONLINE, "Aid Office") == "Online"
        assert default_location(InterviewType.PHONE, "Aid Office") == "Phone call"

    def test_meeting_link(self):
        app_id = UUID("12345678-1234-5678-1234-567812345678")
        link = build_meeting_link("https://meet.test/", app_id, date(2024, 12, 15), "10:00")
        assert link == f"https://meet.test/{app_id}-20241215-1000"
