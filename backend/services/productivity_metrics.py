"""Productivity scoring for one team member.

Three views of the same member are computed:

    Option 1  Combined Completion Rate  75% Redmine / 25% daylog
    Option 2  Weighted Performance      50% Redmine / 50% daylog
    Option 3  Time-based Efficiency     completed tasks per 8-hour working day

A member with no daylog activities is scored on Redmine alone for options
1 and 2. The final score is always option 1; option 2 is shown alongside it
for comparison only.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Optional

WORKING_MINUTES_PER_DAY = 480
# Four completed tasks per working day scores 100
TASKS_PER_DAY_BENCHMARK = 4
MIN_DURATION_MINUTES = 1.0

REDMINE_WEIGHT_COMBINED = 0.75
DAYLOG_WEIGHT_COMBINED = 0.25
REDMINE_WEIGHT_BALANCED = 0.50
DAYLOG_WEIGHT_BALANCED = 0.50

OPTION1_LABEL = "Combined Completion Rate"
OPTION2_LABEL = "Weighted Performance"
OPTION3_LABEL = "Time-based Efficiency"
FINAL_LABEL = "Final Productivity Score"

DONE_STATUS = "done"
BLOCKED_STATUS = "blocked"
IN_PROGRESS_STATUSES = {"inprogress", "in progress"}

TIMESTAMP_FORMATS = [
    "%Y-%m-%dT%H:%M:%SZ",        # Redmine
    "%Y-%m-%dT%H:%M:%S.%fZ",
    "%Y-%m-%dT%H:%M:%S%z",
    "%Y-%m-%dT%H:%M:%S.%f%z",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d",
]


def _status_of(activity) -> str:
    return (getattr(activity, "status", None) or "").strip().lower()


def is_done(activity) -> bool:
    return _status_of(activity) == DONE_STATUS


def is_blocked(activity) -> bool:
    return _status_of(activity) == BLOCKED_STATUS


def is_in_progress(activity) -> bool:
    return _status_of(activity) in IN_PROGRESS_STATUSES


def clamp_score(value: float) -> float:
    return max(0.0, min(100.0, value))


def completion_rate(completed: int, total: int) -> float:
    """Percentage of completed items, one decimal, clamped to [0, 100]."""
    if total <= 0:
        return 0
    return clamp_score(round(completed / total * 100, 1))


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def parse_timestamp(value) -> Optional[datetime]:
    """Parse a Redmine or database timestamp into a naive UTC datetime."""
    if not value:
        return None
    if isinstance(value, datetime):
        return _to_naive_utc(value)
    if isinstance(value, date):
        return datetime.combine(value, time())

    for fmt in TIMESTAMP_FORMATS:
        try:
            parsed = datetime.strptime(value, fmt)
        except ValueError:
            continue
        if fmt.endswith("Z"):
            return parsed
        return _to_naive_utc(parsed)

    return None


def activity_start(activity) -> Optional[datetime]:
    """When work on an activity started.

    Uses the logged date plus HH:MM clock time when both exist, otherwise the
    record's creation time.
    """
    activity_date = getattr(activity, "date", None)
    clock_time = getattr(activity, "time", None)

    if activity_date and clock_time:
        if isinstance(activity_date, datetime):
            activity_date = activity_date.date()
        try:
            hours, minutes = (int(part) for part in clock_time.split(":")[:2])
            return datetime.combine(activity_date, time(hours, minutes))
        except ValueError:
            pass

    return parse_timestamp(getattr(activity, "created_at", None))


def _duration_minutes(start: datetime, end: datetime) -> float:
    return max(MIN_DURATION_MINUTES, (end - start).total_seconds() / 60)


def _average(values) -> float:
    values = list(values)
    return sum(values) / len(values) if values else 0


@dataclass(frozen=True)
class TaskDuration:
    minutes: float
    completed: bool


@dataclass(frozen=True)
class ProductivityMetrics:
    """Scores for one member over one report window."""

    total_activities: int
    daylog_rate: float
    redmine_rate: float
    option1_score: float
    option2_score: float
    time_efficiency_score: float
    avg_daylog_duration: float
    avg_redmine_duration: float
    daylog_durations: tuple = ()
    redmine_durations: tuple = ()

    @property
    def final_score(self) -> float:
        return self.option1_score

    @property
    def redmine_only(self) -> bool:
        return self.total_activities == 0

    def final_description(self) -> str:
        if self.redmine_only:
            return "Redmine-only (100% weight): Calculated from Redmine issue completion rate"
        return "Combined score (75% Redmine + 25% Daylog): Weighted completion rate"

    def final_weights(self) -> dict:
        if self.redmine_only:
            return {"redmine": 1.0}
        return {"redmine": REDMINE_WEIGHT_COMBINED, "daylog": DAYLOG_WEIGHT_COMBINED}

    def to_dict(self) -> dict:
        """Serialize for the report payload (duration samples left out)."""
        return {
            "option1": {"score": self.option1_score, "label": OPTION1_LABEL},
            "option2": {"score": self.option2_score, "label": OPTION2_LABEL},
            "option3": {
                "score": self.time_efficiency_score,
                "label": OPTION3_LABEL,
                "avgDaylogDuration": round(self.avg_daylog_duration, 1),
                "avgRedmineDuration": round(self.avg_redmine_duration, 1),
                "timeEfficiencyScore": self.time_efficiency_score,
            },
            "finalScore": {
                "score": self.final_score,
                "label": FINAL_LABEL,
                "description": self.final_description(),
                "weights": self.final_weights(),
            },
        }


def _weighted_score(redmine_rate: float, daylog_rate: float,
                    redmine_weight: float, daylog_weight: float) -> float:
    return clamp_score(round(redmine_rate * redmine_weight + daylog_rate * daylog_weight, 1))


def calculate_productivity_metrics(activities: list, remote_issues: list,
                                   closed_issues: list,
                                   now: Optional[datetime] = None) -> ProductivityMetrics:
    """Score one member.

    Args:
        activities: The member's daylog activities in the window
        remote_issues: All of the member's Redmine issues (open and closed)
        closed_issues: The member's closed Redmine issues
        now: Reference time for open-issue ages (defaults to current UTC time)
    """
    now = _to_naive_utc(now) if now else utcnow()

    total_activities = len(activities)
    completed_activities = [a for a in activities if is_done(a)]

    daylog_rate = (len(completed_activities) / total_activities * 100) if total_activities else 0
    redmine_rate = (len(closed_issues) / len(remote_issues) * 100) if remote_issues else 0

    if total_activities == 0:
        option1_score = clamp_score(redmine_rate)
        option2_score = clamp_score(redmine_rate)
    else:
        option1_score = _weighted_score(
            redmine_rate, daylog_rate, REDMINE_WEIGHT_COMBINED, DAYLOG_WEIGHT_COMBINED
        )
        option2_score = _weighted_score(
            redmine_rate, daylog_rate, REDMINE_WEIGHT_BALANCED, DAYLOG_WEIGHT_BALANCED
        )

    # Daylog: from start of work until the activity was last updated (marked done)
    daylog_durations = []
    for activity in completed_activities:
        completed_at = parse_timestamp(getattr(activity, "updated_at", None))
        started_at = activity_start(activity)
        if completed_at and started_at:
            daylog_durations.append(
                TaskDuration(_duration_minutes(started_at, completed_at), True)
            )

    closed_ids = {issue.get("id") for issue in closed_issues}

    closed_durations = []
    for issue in closed_issues:
        created_on = parse_timestamp(issue.get("created_on"))
        closed_on = parse_timestamp(issue.get("closed_on"))
        if created_on and closed_on:
            closed_durations.append(TaskDuration(_duration_minutes(created_on, closed_on), True))

    # Open issue ages are reported for context only, never scored
    open_durations = []
    for issue in remote_issues:
        if issue.get("id") in closed_ids:
            continue
        created_on = parse_timestamp(issue.get("created_on"))
        if created_on:
            open_durations.append(TaskDuration(_duration_minutes(created_on, now), False))

    completed_count = len(daylog_durations) + len(closed_durations)
    total_working_minutes = sum(d.minutes for d in daylog_durations) + sum(
        d.minutes for d in closed_durations
    )
    working_days = total_working_minutes / WORKING_MINUTES_PER_DAY
    tasks_per_working_day = completed_count / working_days if working_days > 0 else 0
    time_efficiency_score = clamp_score(
        round(tasks_per_working_day / TASKS_PER_DAY_BENCHMARK * 100, 1)
    )

    return ProductivityMetrics(
        total_activities=total_activities,
        daylog_rate=daylog_rate,
        redmine_rate=redmine_rate,
        option1_score=option1_score,
        option2_score=option2_score,
        time_efficiency_score=time_efficiency_score,
        avg_daylog_duration=_average(d.minutes for d in daylog_durations),
        avg_redmine_duration=_average(d.minutes for d in closed_durations),
        daylog_durations=tuple(daylog_durations),
        redmine_durations=tuple(closed_durations + open_durations),
    )
