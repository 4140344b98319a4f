"""Application state shape, defaults and the objective record."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

OBJECTIVE = "objective"
HAS_COMPLETED_ONBOARDING = "hasCompletedOnboarding"
USER_ID = "userId"
SESSIONS = "sessions"
CURRENT_SESSION = "currentSession"
CONTRACT_METER = "contractMeter"
DOMINO_CHAIN = "dominoChain"
VISUAL_PREFS = "visualPrefs"
HABIT_CHALLENGE = "habitChallenge"
REVIEWS = "reviews"
PLANNED_SESSIONS_PER_DAY = "plannedSessionsPerDay"

ObjectiveStatus = Literal["active", "completed", "failed"]

DEFAULT_VISUAL_PREFS: Dict[str, bool] = {
    "breathingGradient": True,
    "circularProgress": True,
    "immersiveFocus": True,
    "confettiOnComplete": True,
    "tiltPostIts": True,
    "bouncingHeart": True,
    "bounceIcons": True,
    "milestoneAnimations": True,
    "streakFire": True,
}


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string (``Z`` suffix allowed); None if unusable."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def new_id() -> str:
    return uuid4().hex


class StateModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    def to_state(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class Objective(StateModel):
    """The single active goal and its cascade down to the next action."""

    id: str = Field(default_factory=new_id)
    someday_goal: str
    year_goal: Optional[str] = None
    month_goal: str
    week_goal: str
    today_goal: str
    right_now_action: str
    title: str = ""
    deadline: str
    why: str = ""
    status: ObjectiveStatus = "active"
    created_at: str = Field(default_factory=utc_now_iso)
    updated_at: Optional[str] = None
    completed_at: Optional[str] = None
    progress: float = Field(default=0, ge=0, le=100)

    def last_modified(self) -> Optional[datetime]:
        return parse_timestamp(self.updated_at) or parse_timestamp(self.created_at)


class Distraction(StateModel):
    id: str = Field(default_factory=new_id)
    text: str
    timestamp: str = Field(default_factory=utc_now_iso)
    handled: bool = False


class FocusSession(StateModel):
    id: str = Field(default_factory=new_id)
    objective_id: str
    started_at: str = Field(default_factory=utc_now_iso)
    ended_at: Optional[str] = None
    duration: int
    actual_duration: Optional[int] = None
    distractions: List[Distraction] = Field(default_factory=list)
    reflection: Optional[str] = None
    next_action: Optional[str] = None


class HabitDay(StateModel):
    date: str  # YYYY-MM-DD
    completed: bool = True
    session_minutes: Optional[int] = None


class HabitChallenge(StateModel):
    """66-day streak tied to the active objective."""

    id: str = Field(default_factory=new_id)
    objective_id: str
    start_date: str = Field(default_factory=utc_now_iso)
    minimum_session_minutes: int
    days: List[HabitDay] = Field(default_factory=list)
    current_streak: int = 0
    longest_streak: int = 0


class WeeklyReview(StateModel):
    id: str = Field(default_factory=new_id)
    objective_id: str
    week_of: str
    accomplishments: str
    blockers: str
    next_week_one_think: str
    created_at: str = Field(default_factory=utc_now_iso)


def default_app_state() -> Dict[str, Any]:
    """Fresh state for a new install or after `clear_all_data`."""
    return {
        "language": "en",
        "firstName": "",
        "aiName": "Tony",
        USER_ID: None,
        OBJECTIVE: None,
        HAS_COMPLETED_ONBOARDING: False,
        "fourOneOne": None,
        "gpsPlan": None,
        "focusBlock": None,
        HABIT_CHALLENGE: None,
        SESSIONS: [],
        CURRENT_SESSION: None,
        REVIEWS: [],
        "thievesAssessment": None,
        "aiPlan": None,
        "aiRoadmap": None,
        "isGeneratingRoadmap": False,
        DOMINO_CHAIN: None,
        CONTRACT_METER: None,
        PLANNED_SESSIONS_PER_DAY: 1,
        "lastDailyCheckDate": None,
        "needsRecenter": False,
        "rightNowCompleted": False,
        "todayGoalCompleted": False,
        "sessionPostIts": [],
        "timetableAnalysis": None,
        "isAnalyzingTimetable": False,
        "aiInsightsCache": {"data": None, "lastFetched": None},
        "postItCollections": [],
        VISUAL_PREFS: dict(DEFAULT_VISUAL_PREFS),
    }
