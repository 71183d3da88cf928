"""
Interview Helper Functions

Pure functions for the slot grid and result/recommendation mapping.
"""

from collections.abc import Iterable
from datetime import date
from uuid import UUID

from scholarship_aid.modules.interviews.models import (
    InterviewResult,
    InterviewType,
    Recommendation,
)

RECOMMENDATION_TO_RESULT: dict[Recommendation, InterviewResult] = {
    Recommendation.RECOMMENDED: InterviewResult.PASSED,
    Recommendation.NOT_RECOMMENDED: InterviewResult.FAILED,
    Recommendation.NEEDS_FOLLOWUP: InterviewResult.NEEDS_FOLLOWUP,
}

RESULT_TO_RECOMMENDATION: dict[InterviewResult, Recommendation] = {
    result: recommendation for recommendation, result in RECOMMENDATION_TO_RESULT.items()
}


def _to_minutes(hhmm: str) -> int:
    hours, minutes = hhmm.split(":")
    return int(hours) * 60 + int(minutes)


def format_slot(total_minutes: int) -> str:
    return f"{total_minutes // 60:02d}:{total_minutes % 60:02d}"


def normalize_time(value: str) -> str:
    """
    Normalize "9:00" / "09:00:00" style input to "HH:MM".

    Raises:
        ValueError: If value is not a valid time of day
    """
    parts = value.strip().split(":")
    if len(parts) not in (2, 3) or not all(p.isdigit() for p in parts):
        raise ValueError(f"Invalid time: {value!r}")

    hours, minutes = int(parts[0]), int(parts[1])
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        raise ValueError(f"Invalid time: {value!r}")

    return format_slot(hours * 60 + minutes)


def generate_slot_grid(start: str = "09:00", end: str = "17:00", step_minutes: int = 30) -> list[str]:
    """
    Build the day's slot grid.

    Slots start at `start` and step by `step_minutes`; the last slot starts
    strictly before `end`.

    >>> generate_slot_grid("09:00", "10:30", 30)
    ['09:00', '09:30', '10:00']
    """
    first, last = _to_minutes(start), _to_minutes(end)
    return [format_slot(m) for m in range(first, last, step_minutes)]


def subtract_booked(grid: list[str], booked: Iterable[str]) -> list[str]:
    """Return grid slots not present in booked, preserving grid order."""
    taken = {normalize_time(t) for t in booked}
    return [slot for slot in grid if slot not in taken]


def build_meeting_link(base_url: str, application_id: UUID, interview_date: date, slot: str) -> str:
    return f"{base_url.rstrip('/')}/{application_id}-{interview_date:%Y%m%d}-{slot.replace(':', '')}"


def default_location(interview_type: InterviewType, office: str) -> str:
    if interview_type == InterviewType.IN_PERSON:
        return office
    if interview_type == InterviewType.ONLINE:
        return "Online"
    return "Phone call"
