"""
WhisprLog custom goals - progress and streak engine.
Pure functions over plain goal dicts; persistence lives in goal_store.py.
"""

import copy
import logging
import uuid
from datetime import date, datetime, timedelta
from typing import Optional, Dict, Any, List, Iterable

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

DATE_FORMAT = "%Y-%m-%d"
STREAK_LOOKBACK_DAYS = 365

GOAL_TYPES = {
    "FREQUENCY": "frequency",          # "write 3 times a week"
    "STREAK": "streak",                # "maintain a 7-day streak"
    "WORD_COUNT": "word_count",        # "write 500 words per entry"
    "TIME_SPENT": "time_spent",        # declared, not tracked yet
    "CONSISTENCY": "consistency",      # declared, not tracked yet
    "EMOTION_FOCUS": "emotion_focus"   # "focus on gratitude entries"
}

FREQUENCY_OPTIONS = {
    "daily": {"label": "Daily", "days": 1},
    "weekly": {"label": "Weekly", "days": 7},
    "monthly": {"label": "Monthly", "days": 30},
    "biweekly": {"label": "Every 2 weeks", "days": 14}
}

TIMEFRAME_DAYS = {"week": 7, "month": 30, "year": 365}

GRATITUDE_KEYWORDS = ("grateful", "thankful", "gratitude")

GOAL_TEMPLATES = [
    {
        "id": "write_3_weekly",
        "title": "Write 3 times a week",
        "description": "Build a consistent weekly journaling habit",
        "type": GOAL_TYPES["FREQUENCY"],
        "frequency": "weekly",
        "target": 3,
        "icon": "📝"
    },
    {
        "id": "maintain_week_streak",
        "title": "7-day streak",
        "description": "Keep your daily journaling streak alive",
        "type": GOAL_TYPES["STREAK"],
        "target": 7,
        "icon": "🔥"
    },
    {
        "id": "deep_reflection",
        "title": "Deep reflections",
        "description": "Write at least 300 words per entry",
        "type": GOAL_TYPES["WORD_COUNT"],
        "target": 300,
        "icon": "📖"
    },
    {
        "id": "gratitude_focus",
        "title": "Gratitude practice",
        "description": "Include gratitude in 80% of entries",
        "type": GOAL_TYPES["EMOTION_FOCUS"],
        "target": 80,
        "icon": "🙏"
    },
    {
        "id": "monthly_consistency",
        "title": "Monthly consistency",
        "description": "Journal at least 20 days this month",
        "type": GOAL_TYPES["CONSISTENCY"],
        "frequency": "monthly",
        "target": 20,
        "icon": "📅"
    }
]


# =============================================================================
# Helpers
# =============================================================================

def _now(now: Optional[datetime]) -> datetime:
    return now if now is not None else datetime.now()


def _goal_target(goal: Dict[str, Any]) -> int:
    """Positive integer target, falling back to 1 for missing or bad values."""
    try:
        target = int(goal.get("target") or 0)
    except (TypeError, ValueError):
        return 1
    return target if target > 0 else 1


def parse_date_key(value: str) -> Optional[date]:
    """Parse a YYYY-MM-DD string, returning None when it is malformed."""
    try:
        return datetime.strptime(value, DATE_FORMAT).date()
    except (TypeError, ValueError):
        return None


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse an entry timestamp into a naive local datetime.
    Accepts datetime/date objects, ISO-8601 strings and epoch milliseconds.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    elif isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def entry_timestamp(entry: Dict[str, Any]) -> Optional[datetime]:
    return parse_timestamp(entry.get("createdAt") or entry.get("date"))


def entry_text(entry: Dict[str, Any]) -> str:
    text = entry.get("entry") or entry.get("content") or ""
    return text if isinstance(text, str) else str(text)


def word_count(text: str) -> int:
    return len(text.split())


# =============================================================================
# Period Resolver
# =============================================================================

def period_start(frequency: Optional[str], now: Optional[datetime] = None) -> datetime:
    """
    Start of the current period for a goal cadence.
    Weeks start on Sunday. Unknown cadences fall back to seven days ago.
    """
    now = _now(now)
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    # Python counts Monday as 0; cadences here count Sunday as 0
    day_of_week = (now.weekday() + 1) % 7

    if frequency == "daily":
        return midnight
    if frequency == "weekly":
        return midnight - timedelta(days=day_of_week)
    if frequency == "monthly":
        return midnight.replace(day=1)
    if frequency == "biweekly":
        # Anchored to the weekday, not to a fixed epoch
        return midnight - timedelta(days=(day_of_week + 7) % 14)

    return now - timedelta(days=7)


# =============================================================================
# Streak Calculator
# =============================================================================

def current_streak(completed_dates: Iterable[str], today: Optional[date] = None) -> int:
    """
    Count consecutive completed days ending today or yesterday.

    A missing "today" does not break the streak as long as yesterday was
    completed, so users don't lose it before writing today's entry.
    """
    dates = {d for d in (parse_date_key(key) for key in completed_dates or []) if d}
    if not dates:
        return 0

    today = today or date.today()
    yesterday = today - timedelta(days=1)

    if today in dates:
        anchor = today
    elif yesterday in dates:
        anchor = yesterday
    else:
        most_recent = max(dates)
        if (today - most_recent).days > 1:
            return 0
        anchor = most_recent

    streak = 0
    for offset in range(STREAK_LOOKBACK_DAYS):
        if anchor - timedelta(days=offset) in dates:
            streak += 1
        else:
            break

    return streak


# =============================================================================
# Progress Aggregator
# =============================================================================

def _append_dates(completed: List[str], entries: List[Dict[str, Any]]) -> None:
    for entry in entries:
        timestamp = entry_timestamp(entry)
        if timestamp is None:
            continue
        key = timestamp.strftime(DATE_FORMAT)
        if key not in completed:
            completed.append(key)


def _unique(keys: Iterable[str]) -> List[str]:
    seen = []
    for key in keys:
        if key not in seen:
            seen.append(key)
    return seen


def sync_goal(goal: Dict[str, Any], entries: List[Dict[str, Any]],
              now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Recompute a goal's progress, completion dates and streak from entries.
    Returns an updated copy; the given goal is left untouched.
    """
    now = _now(now)
    entries = [e for e in (entries or []) if isinstance(e, dict)]
    updated = copy.deepcopy(goal)
    completed = _unique(updated.get("completedDates") or [])
    goal_type = updated.get("type")
    progress = updated.get("progress", 0)

    if goal_type == GOAL_TYPES["FREQUENCY"]:
        start = period_start(updated.get("frequency"), now)
        period_entries = []
        for entry in entries:
            timestamp = entry_timestamp(entry)
            if timestamp is not None and timestamp >= start:
                period_entries.append(entry)
        progress = len(period_entries)
        _append_dates(completed, period_entries)

    elif goal_type == GOAL_TYPES["WORD_COUNT"]:
        target = _goal_target(updated)
        qualifying = [e for e in entries if word_count(entry_text(e)) >= target]
        progress = len(qualifying)
        _append_dates(completed, qualifying)

    elif goal_type == GOAL_TYPES["EMOTION_FOCUS"]:
        focused = [
            e for e in entries
            if any(kw in entry_text(e).lower() for kw in GRATITUDE_KEYWORDS)
        ]
        # Halves round up
        progress = int(len(focused) / len(entries) * 100 + 0.5) if entries else 0
        _append_dates(completed, focused)

    streak = current_streak(completed, now.date())
    if goal_type == GOAL_TYPES["STREAK"]:
        progress = streak

    updated["progress"] = progress
    updated["completedDates"] = completed
    updated["streakCount"] = streak
    updated["lastUpdated"] = now.isoformat()

    logger.debug(f"Synced goal {updated.get('id')} ({goal_type}): progress={progress}, streak={streak}")
    return updated


def sync_goals(goals: List[Dict[str, Any]], entries: List[Dict[str, Any]],
               now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    """Sync every goal against the same entry snapshot."""
    now = _now(now)
    return [sync_goal(goal, entries, now) for goal in goals]


# =============================================================================
# Period Progress View
# =============================================================================

def get_goal_progress(goal: Dict[str, Any], timeframe: str = "week",
                      now: Optional[datetime] = None) -> Dict[str, Any]:
    """Summarize completions inside a lookback window. Read-only."""
    now = _now(now)
    window_start = now - timedelta(days=TIMEFRAME_DAYS.get(timeframe, 7))
    target = _goal_target(goal)

    completed = 0
    for key in _unique(goal.get("completedDates") or []):
        day = parse_date_key(key)
        if day is None:
            continue
        moment = datetime(day.year, day.month, day.day)
        if window_start <= moment <= now:
            completed += 1

    return {
        "completed": completed,
        "target": goal.get("target", target),
        "percentage": min(completed / target * 100, 100),
        "isCompleted": completed >= target,
        "streak": goal.get("streakCount") or 0
    }


# =============================================================================
# Goal Lifecycle
# =============================================================================

def generate_goal_id(now: Optional[datetime] = None) -> str:
    millis = int(_now(now).timestamp() * 1000)
    return f"goal_{millis}_{uuid.uuid4().hex[:9]}"


def create_goal(goal_data: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    """Build a new goal from user input, filling defaults."""
    if not isinstance(goal_data, dict) or not goal_data.get("title"):
        raise ValueError("Goal data with title required.")

    now = _now(now)
    stamp = now.isoformat()
    return {
        "id": generate_goal_id(now),
        "title": goal_data["title"],
        "description": goal_data.get("description") or "",
        "type": goal_data.get("type") or GOAL_TYPES["FREQUENCY"],
        "target": goal_data.get("target") or 1,
        "frequency": goal_data.get("frequency") or "daily",
        "icon": goal_data.get("icon") or "🎯",
        "createdAt": stamp,
        "isActive": True,
        "progress": 0,
        "streakCount": 0,
        "lastUpdated": stamp,
        "completedDates": []
    }


def get_template(template_id: str) -> Dict[str, Any]:
    for template in GOAL_TEMPLATES:
        if template["id"] == template_id:
            return copy.deepcopy(template)
    raise KeyError(template_id)


def goal_from_template(template_id: str, overrides: Optional[Dict[str, Any]] = None,
                       now: Optional[datetime] = None) -> Dict[str, Any]:
    """Create a goal pre-filled from a built-in template."""
    data = get_template(template_id)
    data.pop("id", None)
    data.update(overrides or {})
    return create_goal(data, now)


def update_goal_progress(goal: Dict[str, Any], progress: Any,
                         on: Optional[date] = None,
                         now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Record a manually reported progress value.
    Reaching the target marks the day as completed and refreshes the streak.
    """
    now = _now(now)
    on = on or now.date()
    updated = copy.deepcopy(goal)
    completed = _unique(updated.get("completedDates") or [])
    key = on.strftime(DATE_FORMAT)

    updated["progress"] = progress
    updated["lastUpdated"] = now.isoformat()

    try:
        reached = float(progress) >= _goal_target(updated)
    except (TypeError, ValueError):
        reached = False

    if reached and key not in completed:
        completed.append(key)
        updated["streakCount"] = current_streak(completed, now.date())

    updated["completedDates"] = completed
    return updated


def toggle_goal_status(goal: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    updated = copy.deepcopy(goal)
    updated["isActive"] = not updated.get("isActive", True)
    updated["lastUpdated"] = _now(now).isoformat()
    return updated


def active_goals(goals: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [g for g in goals if g.get("isActive", True)]


def find_goal(goals: List[Dict[str, Any]], goal_id: str) -> Optional[int]:
    """Index of the goal with the given id, or None."""
    for index, goal in enumerate(goals):
        if goal.get("id") == goal_id:
            return index
    return None


# =============================================================================
# Achievements
# =============================================================================

def get_goal_achievements(goal: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Badges earned by a single goal."""
    streak = goal.get("streakCount") or 0
    completions = len(goal.get("completedDates") or [])
    achievements = []

    if streak >= 7:
        achievements.append({
            "id": "week_streak",
            "title": "Week Streak!",
            "description": "Maintained goal for 7 consecutive days",
            "icon": "🔥"
        })

    if streak >= 30:
        achievements.append({
            "id": "month_streak",
            "title": "Monthly Champion",
            "description": "Maintained goal for 30 consecutive days",
            "icon": "👑"
        })

    if completions >= 50:
        achievements.append({
            "id": "consistency_master",
            "title": "Consistency Master",
            "description": "Completed goal 50 times",
            "icon": "🎯"
        })

    return achievements
