"""Single in-memory application store with on-device persistence."""
from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from math import ceil
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from app.sync.config import plain_state
from app.sync.state import (
    CONTRACT_METER,
    CURRENT_SESSION,
    DOMINO_CHAIN,
    HABIT_CHALLENGE,
    HAS_COMPLETED_ONBOARDING,
    OBJECTIVE,
    PLANNED_SESSIONS_PER_DAY,
    REVIEWS,
    SESSIONS,
    USER_ID,
    VISUAL_PREFS,
    Distraction,
    FocusSession,
    HabitChallenge,
    HabitDay,
    Objective,
    WeeklyReview,
    default_app_state,
    parse_timestamp,
    utc_now_iso,
)
from app.sync.storage import LocalStateStorage

logger = logging.getLogger(__name__)

State = Dict[str, Any]
Listener = Callable[[State, State], None]
Update = Union[Mapping[str, Any], Callable[[State], Mapping[str, Any]]]

CASCADE_FIELDS = ("somedayGoal", "monthGoal", "weekGoal", "todayGoal", "rightNowAction")
MAX_SESSIONS_PER_DAY = 5
TENSION_RELIEF = 20


class AppStore:
    """
    Holds the whole application state behind one mutation entry point.

    `set_state` applies a partial update atomically: the state is replaced in
    one step, persisted, and each subscriber is notified once with
    ``(new_state, previous_state)``.
    """

    def __init__(
        self,
        storage: Optional[LocalStateStorage] = None,
        *,
        initial: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self._storage = storage
        self._state: State = default_app_state()
        if initial:
            self._state.update(initial)
        self._listeners: List[Listener] = []
        self._hydrated = storage is None

    # --------------- Core ---------------
    @property
    def has_hydrated(self) -> bool:
        return self._hydrated

    def hydrate(self) -> State:
        """Load persisted state over the defaults. Does not notify subscribers."""
        if self._storage is not None:
            persisted = self._storage.read()
            if persisted:
                self._state = {**self._state, **persisted}
                logger.debug("Hydrated %d fields from %s", len(persisted), self._storage.path)
        self._hydrated = True
        return self.get_state()

    def get_state(self) -> State:
        return dict(self._state)

    def set_state(self, update: Update) -> State:
        partial = update(self.get_state()) if callable(update) else update
        if not partial:
            return self.get_state()

        previous = self._state
        self._state = {**previous, **partial}
        self._persist()

        snapshot = self.get_state()
        for listener in list(self._listeners):
            try:
                listener(snapshot, dict(previous))
            except Exception:
                logger.exception("State listener %r failed", listener)
        return snapshot

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _persist(self) -> None:
        if self._storage is None:
            return
        try:
            self._storage.write(plain_state(self._state))
        except OSError:
            # The in-memory state stays authoritative for this run.
            logger.exception("Failed to persist state to %s", self._storage.path)

    # --------------- User tracking ---------------
    def set_user_id(self, user_id: Optional[str]) -> None:
        self.set_state({USER_ID: user_id})

    def clear_all_data(self) -> None:
        """Reset every field except the user's visual preferences."""
        fresh = default_app_state()
        fresh[VISUAL_PREFS] = self._state.get(VISUAL_PREFS, fresh[VISUAL_PREFS])
        fresh[USER_ID] = self._state.get(USER_ID)
        self.set_state(fresh)

    def complete_onboarding(self) -> None:
        self.set_state({HAS_COMPLETED_ONBOARDING: True})

    # --------------- Objective ---------------
    def set_objective(
        self,
        *,
        someday_goal: str,
        month_goal: str,
        week_goal: str,
        today_goal: str,
        right_now_action: str,
        deadline: str,
        why: str = "",
    ) -> Dict[str, Any]:
        now = utc_now_iso()
        objective = Objective(
            someday_goal=someday_goal,
            month_goal=month_goal,
            week_goal=week_goal,
            today_goal=today_goal,
            right_now_action=right_now_action,
            title=today_goal,
            deadline=deadline,
            why=why,
            created_at=now,
            updated_at=now,
        ).to_state()

        planned = int(self._state.get(PLANNED_SESSIONS_PER_DAY) or 1)
        self.set_state(
            {
                OBJECTIVE: objective,
                HAS_COMPLETED_ONBOARDING: True,
                DOMINO_CHAIN: {
                    "totalDominos": _days_until(deadline) * planned,
                    "completedDominos": 0,
                },
                CONTRACT_METER: {
                    "state": "stable",
                    "lastActivityDate": now,
                    "tensionLevel": 0,
                    "daysInactive": 0,
                },
            }
        )
        return objective

    def update_cascade(self, field: str, value: str) -> None:
        if field not in CASCADE_FIELDS:
            raise ValueError(f"Unknown cascade field: {field}")
        objective = self._state.get(OBJECTIVE)
        if not objective:
            return
        changes: Dict[str, Any] = {field: value}
        if field == "todayGoal":
            changes["title"] = value
        self._touch_objective(objective, changes)

    def update_progress(self, progress: float) -> None:
        objective = self._state.get(OBJECTIVE)
        if not objective or objective.get("status") != "active":
            return
        self._touch_objective(objective, {"progress": min(100, max(0, progress))})

    def complete_objective(self) -> None:
        objective = self._state.get(OBJECTIVE)
        if not objective:
            return
        now = utc_now_iso()
        self._touch_objective(
            objective,
            {"status": "completed", "completedAt": now, "progress": 100},
            extra=self._contract_change("fulfilled"),
        )

    def fail_objective(self) -> None:
        objective = self._state.get(OBJECTIVE)
        if not objective:
            return
        self._touch_objective(objective, {"status": "failed"}, extra=self._contract_change("broken"))

    def reset_objective(self) -> bool:
        """Drop a finished objective and its plans; active objectives are kept."""
        objective = self._state.get(OBJECTIVE)
        if not objective or objective.get("status") not in ("completed", "failed"):
            return False
        self.set_state(
            {
                OBJECTIVE: None,
                "fourOneOne": None,
                "gpsPlan": None,
                HABIT_CHALLENGE: None,
                DOMINO_CHAIN: None,
                CONTRACT_METER: None,
            }
        )
        return True

    def set_new_right_now_action(self, action: str) -> None:
        objective = self._state.get(OBJECTIVE)
        if not objective:
            return
        self._touch_objective(objective, {"rightNowAction": action}, extra={"rightNowCompleted": False})

    def _touch_objective(
        self,
        objective: Mapping[str, Any],
        changes: Mapping[str, Any],
        *,
        extra: Optional[Mapping[str, Any]] = None,
    ) -> None:
        updated = {**objective, **changes, "updatedAt": utc_now_iso()}
        self.set_state({OBJECTIVE: updated, **(extra or {})})

    def _contract_change(self, contract_state: str) -> Dict[str, Any]:
        meter = self._state.get(CONTRACT_METER)
        if not meter:
            return {}
        return {CONTRACT_METER: {**meter, "state": contract_state}}

    # --------------- Focus sessions ---------------
    def start_session(self, duration: Optional[int] = None) -> Optional[Dict[str, Any]]:
        objective = self._state.get(OBJECTIVE)
        if not objective:
            return None
        focus_block = self._state.get("focusBlock") or {}
        session = FocusSession(
            objective_id=objective["id"],
            duration=duration or focus_block.get("duration") or 50,
        ).to_state()
        self.set_state({CURRENT_SESSION: session})
        return session

    def add_distraction(self, text: str) -> None:
        current = self._state.get(CURRENT_SESSION)
        if not current:
            return
        distraction = Distraction(text=text).to_state()
        distractions = list(current.get("distractions") or []) + [distraction]
        self.set_state({CURRENT_SESSION: {**current, "distractions": distractions}})

    def end_session(self, reflection: Optional[str] = None, next_action: Optional[str] = None) -> Optional[Dict[str, Any]]:
        current = self._state.get(CURRENT_SESSION)
        if not current:
            return None
        ended_at = datetime.now(timezone.utc)
        started_at = parse_timestamp(current.get("startedAt")) or ended_at
        finished = {
            **current,
            "endedAt": ended_at.isoformat(),
            "actualDuration": max(0, round((ended_at - started_at).total_seconds() / 60)),
        }
        if reflection:
            finished["reflection"] = reflection
        if next_action:
            finished["nextAction"] = next_action
        sessions = list(self._state.get(SESSIONS) or []) + [finished]
        self.set_state({SESSIONS: sessions, CURRENT_SESSION: None})
        return finished

    # --------------- Habit challenge ---------------
    def init_habit_challenge(self, minimum_minutes: int) -> Optional[Dict[str, Any]]:
        objective = self._state.get(OBJECTIVE)
        if not objective:
            return None
        challenge = HabitChallenge(
            objective_id=objective["id"],
            minimum_session_minutes=minimum_minutes,
        ).to_state()
        self.set_state({HABIT_CHALLENGE: challenge})
        return challenge

    def mark_day_complete(self, day: str, session_minutes: int) -> None:
        """Mark `day` (YYYY-MM-DD) done, replacing an earlier entry for it, and refresh streaks."""
        challenge = self._state.get(HABIT_CHALLENGE)
        if not challenge:
            return
        entry = HabitDay(date=day, session_minutes=session_minutes).to_state()
        days = [d for d in challenge.get("days") or [] if d.get("date") != day]
        days.append(entry)
        days.sort(key=lambda d: d.get("date") or "")

        current, longest = _streaks(d["date"] for d in days if d.get("completed"))
        self.set_state(
            {
                HABIT_CHALLENGE: {
                    **challenge,
                    "days": days,
                    "currentStreak": current,
                    "longestStreak": max(longest, int(challenge.get("longestStreak") or 0)),
                }
            }
        )

    # --------------- Weekly reviews ---------------
    def add_weekly_review(
        self,
        accomplishments: str,
        blockers: str,
        next_week_one_think: str,
    ) -> Optional[Dict[str, Any]]:
        objective = self._state.get(OBJECTIVE)
        if not objective:
            return None
        now = datetime.now(timezone.utc)
        # Weeks start on Sunday.
        week_start = (now - timedelta(days=(now.weekday() + 1) % 7)).replace(
            hour=0, minute=0, second=0, microsecond=0
        )
        review = WeeklyReview(
            objective_id=objective["id"],
            week_of=week_start.isoformat(),
            accomplishments=accomplishments,
            blockers=blockers,
            next_week_one_think=next_week_one_think,
        ).to_state()
        self.set_state({REVIEWS: list(self._state.get(REVIEWS) or []) + [review]})
        return review

    # --------------- Domino chain ---------------
    def advance_domino(self) -> None:
        """Count one completed session and relieve contract tension."""
        if not self._state.get(DOMINO_CHAIN) or not self._state.get(CONTRACT_METER):
            return
        self.set_state(self._momentum_update(utc_now_iso()))

    def set_planned_sessions_per_day(self, count: int) -> None:
        planned = max(1, min(MAX_SESSIONS_PER_DAY, count))
        changes: Dict[str, Any] = {PLANNED_SESSIONS_PER_DAY: planned}
        objective = self._state.get(OBJECTIVE)
        chain = self._state.get(DOMINO_CHAIN)
        if objective and chain:
            changes[DOMINO_CHAIN] = {
                **chain,
                "totalDominos": _days_until(objective.get("deadline", "")) * planned,
            }
        self.set_state(changes)

    def complete_right_now(self) -> None:
        self.set_state({"rightNowCompleted": True})

    def complete_today_goal(self) -> None:
        self.set_state({"todayGoalCompleted": True, **self._momentum_update(utc_now_iso())})

    def _momentum_update(self, now: str) -> Dict[str, Any]:
        changes: Dict[str, Any] = {}
        chain = self._state.get(DOMINO_CHAIN)
        if chain:
            changes[DOMINO_CHAIN] = {
                **chain,
                "completedDominos": int(chain.get("completedDominos") or 0) + 1,
                "lastSessionDate": now,
            }
        meter = self._state.get(CONTRACT_METER)
        if meter:
            changes[CONTRACT_METER] = {
                **meter,
                "state": "stable",
                "lastActivityDate": now,
                "tensionLevel": max(0, (meter.get("tensionLevel") or 0) - TENSION_RELIEF),
                "daysInactive": 0,
            }
        return changes


def _streaks(completed_days: Iterable[str]) -> Tuple[int, int]:
    """(run ending at the latest completed day, longest run) over ISO dates."""
    parsed = []
    for value in completed_days:
        try:
            parsed.append(date.fromisoformat(value))
        except (TypeError, ValueError):
            continue
    ordered = sorted(set(parsed))
    if not ordered:
        return 0, 0

    longest = run = 1
    for previous, current in zip(ordered, ordered[1:]):
        run = run + 1 if current - previous == timedelta(days=1) else 1
        longest = max(longest, run)
    return run, longest


def _days_until(deadline: str) -> int:
    target = parse_timestamp(deadline)
    if target is None:
        return 1
    seconds = (target - datetime.now(timezone.utc)).total_seconds()
    return max(1, ceil(seconds / 86400))
