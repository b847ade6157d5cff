from __future__ import annotations

from enum import Enum

from engagement.errors import UnknownActionKind


class ActionKind(str, Enum):
    ENROLL_COURSE = "ENROLL_COURSE"
    ENROLL_SHEET = "ENROLL_SHEET"
    ENROLL_PROJECT = "ENROLL_PROJECT"
    COMPLETE_COURSE_CHAPTER = "COMPLETE_COURSE_CHAPTER"
    COMPLETE_PROJECT_CHAPTER = "COMPLETE_PROJECT_CHAPTER"
    COMPLETE_QUESTION = "COMPLETE_QUESTION"
    COMPLETE_COURSE_CERTIFICATE = "COMPLETE_COURSE_CERTIFICATE"
    COMPLETE_PROJECT = "COMPLETE_PROJECT"
    COMPLETE_INTERVIEW_SHEET = "COMPLETE_INTERVIEW_SHEET"
    PROFILE_COMPLETION = "PROFILE_COMPLETION"
    SOCIAL_SHARE = "SOCIAL_SHARE"
    FEEDBACK_SUBMIT = "FEEDBACK_SUBMIT"
    VIDEO_WATCH_COMPLETE = "VIDEO_WATCH_COMPLETE"
    FIRST_LOGIN = "FIRST_LOGIN"
    DAILY_VISIT = "DAILY_VISIT"
    REFER = "REFER"
    WEBINAR_ATTEND = "WEBINAR_ATTEND"
    DOWNLOAD_CERTIFICATE = "DOWNLOAD_CERTIFICATE"
    HELP_COMMUNITY = "HELP_COMMUNITY"
    RECRUITER_ADDED = "RECRUITER_ADDED"
    PREPLOG_CREATED = "PREPLOG_CREATED"
    COMPLETE_QUIZ = "COMPLETE_QUIZ"
    QUIZ_PERFECT_SCORE = "QUIZ_PERFECT_SCORE"
    QUIZ_STREAK = "QUIZ_STREAK"
    STREAK_3 = "STREAK_3"
    STREAK_7 = "STREAK_7"
    STREAK_15 = "STREAK_15"
    STREAK_30 = "STREAK_30"


POINT_VALUES: dict[ActionKind, int] = {
    ActionKind.ENROLL_COURSE: 5,
    ActionKind.ENROLL_SHEET: 5,
    ActionKind.ENROLL_PROJECT: 5,
    ActionKind.COMPLETE_COURSE_CHAPTER: 10,
    ActionKind.COMPLETE_PROJECT_CHAPTER: 10,
    ActionKind.COMPLETE_QUESTION: 5,
    ActionKind.COMPLETE_COURSE_CERTIFICATE: 50,
    ActionKind.COMPLETE_PROJECT: 50,
    ActionKind.COMPLETE_INTERVIEW_SHEET: 50,
    ActionKind.PROFILE_COMPLETION: 20,
    ActionKind.SOCIAL_SHARE: 5,
    ActionKind.FEEDBACK_SUBMIT: 5,
    ActionKind.VIDEO_WATCH_COMPLETE: 5,
    ActionKind.FIRST_LOGIN: 10,
    ActionKind.DAILY_VISIT: 1,
    ActionKind.REFER: 25,
    ActionKind.WEBINAR_ATTEND: 15,
    ActionKind.DOWNLOAD_CERTIFICATE: 5,
    ActionKind.HELP_COMMUNITY: 10,
    ActionKind.RECRUITER_ADDED: 5,
    ActionKind.PREPLOG_CREATED: 2,
    ActionKind.COMPLETE_QUIZ: 10,
    ActionKind.QUIZ_PERFECT_SCORE: 20,
    ActionKind.QUIZ_STREAK: 10,
    # streak milestone bonuses escalate
    ActionKind.STREAK_3: 15,
    ActionKind.STREAK_7: 35,
    ActionKind.STREAK_15: 75,
    ActionKind.STREAK_30: 150,
}

STREAK_MILESTONES: tuple[int, ...] = (3, 7, 15, 30)


def parse_action(raw) -> ActionKind:
    if isinstance(raw, ActionKind):
        return raw
    key = str(raw or "").strip().upper()
    try:
        return ActionKind(key)
    except ValueError:
        raise UnknownActionKind(f"Unknown action type: {raw!r}", action_type=str(raw or ""))


def value_of(action) -> int:
    kind = parse_action(action)
    try:
        return POINT_VALUES[kind]
    except KeyError:
        raise UnknownActionKind(f"No point value registered for {kind.value}", action_type=kind.value)


def milestone_action(milestone: int) -> ActionKind:
    if int(milestone) not in STREAK_MILESTONES:
        raise UnknownActionKind(f"No streak milestone at {milestone}", action_type=f"STREAK_{milestone}")
    return ActionKind(f"STREAK_{int(milestone)}")
