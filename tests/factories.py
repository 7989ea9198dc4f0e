"""Builders for raw Bagrut record fragments used across the tests."""

from datetime import datetime, timezone

FROZEN_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def empty_grading() -> dict:
    return {
        "playingSkills": {"points": None, "maxPoints": 40, "comments": ""},
        "musicalUnderstanding": {"points": None, "maxPoints": 30, "comments": ""},
        "textKnowledge": {"points": None, "maxPoints": 20, "comments": ""},
        "playingByHeart": {"points": None, "maxPoints": 10, "comments": ""},
    }


def graded(playing_skills, musical_understanding, text_knowledge, playing_by_heart) -> dict:
    grading = empty_grading()
    grading["playingSkills"]["points"] = playing_skills
    grading["musicalUnderstanding"]["points"] = musical_understanding
    grading["textKnowledge"]["points"] = text_knowledge
    grading["playingByHeart"]["points"] = playing_by_heart
    return grading


def presentation(completed=False, grade=None, exam_date=None, **extra) -> dict:
    data = {
        "completed": completed,
        "status": "completed" if completed else "pending",
        "notes": "",
        "recordingLinks": [],
        "grade": grade,
    }
    if exam_date is not None:
        data["examDate"] = exam_date
    data.update(extra)
    return data
