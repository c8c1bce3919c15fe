"""Team report assembly: productivity and activity reports for team leads."""

import logging
import time
from calendar import monthrange
from collections import defaultdict
from datetime import date
from typing import Callable, Optional

from sqlalchemy import select

from app.models import ADMIN_ROLE, TEAM_ADMIN_ROLE, Activity, Team, TeamMember, User, db
from services.errors import AuthenticationError, AuthorizationError, NotFoundError
from services.productivity_metrics import (
    calculate_productivity_metrics,
    clamp_score,
    completion_rate,
    is_blocked,
    is_done,
    is_in_progress,
    utcnow,
)
from services.redmine_client import UserIssues
from services.status_classifier import classify

logger = logging.getLogger(__name__)


def current_month_range(today: date) -> tuple:
    """First and last day of the month containing ``today``."""
    last_day = monthrange(today.year, today.month)[1]
    return today.replace(day=1), today.replace(day=last_day)


class TeamReportService:
    """Builds team reports from daylog activities and Redmine issues.

    Args:
        fetcher: Object with ``batch_fetch(usernames, date_from, date_to)``,
            normally a ``RedmineClient``
        clock: Returns the current naive-UTC datetime
    """

    def __init__(self, fetcher, clock: Optional[Callable] = None):
        self.fetcher = fetcher
        self._clock = clock or utcnow

    def ensure_report_access(self, requester_id: Optional[str], team_id: str,
                             report_name: str = "productivity") -> User:
        """Allow global admins, or the team's lead when they are not a team admin."""
        requester = db.session.get(User, requester_id) if requester_id else None
        if requester is None:
            raise AuthenticationError("User not found")

        if requester.is_admin:
            return requester

        membership = db.session.execute(
            select(TeamMember).filter_by(user_id=requester_id, team_id=team_id)
        ).scalar_one_or_none()

        if membership is None or not membership.is_lead or membership.role == TEAM_ADMIN_ROLE:
            raise AuthorizationError(f"Only team leads and admins can view {report_name} reports")

        return requester

    def _get_team(self, team_id: str) -> Team:
        team = db.session.get(Team, team_id)
        if team is None:
            raise NotFoundError("Team")
        return team

    def _scored_members(self, team_id: str) -> list:
        """Team members excluding global admins, ordered by username."""
        return db.session.execute(
            select(TeamMember)
            .join(TeamMember.user)
            .where(TeamMember.team_id == team_id, User.role != ADMIN_ROLE)
            .order_by(User.username)
        ).scalars().all()

    def _load_activities(self, user_ids: list, start_date: Optional[date],
                         end_date: Optional[date]) -> list:
        if not user_ids:
            return []

        query = select(Activity).where(Activity.user_id.in_(user_ids))
        if start_date:
            query = query.where(Activity.date >= start_date)
        if end_date:
            query = query.where(Activity.date <= end_date)

        return db.session.execute(query).scalars().all()

    def build_report(self, team_id: str, requester_id: Optional[str],
                     start_date: Optional[date] = None,
                     end_date: Optional[date] = None) -> dict:
        """Build the productivity report for a team.

        Redmine data is best effort: if the batch fetch times out or the
        tracker is unavailable, members are scored with zeroed Redmine counts
        and ``dataCompleteness.redmineFetchSucceeded`` is False.
        """
        started = time.monotonic()

        self.ensure_report_access(requester_id, team_id)
        team = self._get_team(team_id)

        members = self._scored_members(team_id)
        activities = self._load_activities([m.user_id for m in members], start_date, end_date)

        activities_by_user = defaultdict(list)
        for activity in activities:
            activities_by_user[activity.user_id].append(activity)

        now = self._clock()
        month_start, month_end = current_month_range(now.date())
        date_from = start_date or month_start
        date_to = end_date or month_end

        usernames = [m.user.username for m in members]
        issues_map = self.fetcher.batch_fetch(usernames, date_from, date_to)

        member_productivity = [
            self._member_productivity(
                member,
                activities_by_user.get(member.user_id, []),
                issues_map.get(member.user.username) or UserIssues(fetch_succeeded=False),
                now,
            )
            for member in members
        ]

        rates = [m["completionRate"] for m in member_productivity]
        average_rate = clamp_score(round(sum(rates) / len(rates), 1)) if rates else 0

        elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            f"Productivity report generated for team {team_id} in {elapsed_ms}ms "
            f"({len(member_productivity)} members)"
        )

        return {
            "team": {"id": team.id, "name": team.name},
            "period": self._period(start_date, end_date),
            "memberProductivity": member_productivity,
            "summary": {
                "totalMembers": len(members),
                "totalActivities": len(activities),
                "totalCompleted": sum(1 for a in activities if is_done(a)),
                "averageCompletionRate": average_rate,
            },
        }

    @staticmethod
    def _period(start_date: Optional[date], end_date: Optional[date]):
        if start_date and end_date:
            return {"startDate": start_date.isoformat(), "endDate": end_date.isoformat()}
        return "all"

    def _member_productivity(self, member: TeamMember, activities: list,
                             user_issues: UserIssues, now) -> dict:
        counts = classify(user_issues.issues, user_issues.closed_issues)

        total_tasks = len(activities)
        completed_tasks = sum(1 for a in activities if is_done(a))

        metrics = calculate_productivity_metrics(
            activities,
            user_issues.issues + user_issues.closed_issues,
            user_issues.closed_issues,
            now=now,
        )

        return {
            "memberId": member.user.id,
            "username": member.user.username,
            "role": member.role,
            "isLead": member.is_lead,
            "totalTasks": total_tasks,
            "completedTasks": completed_tasks,
            "blockedTasks": sum(1 for a in activities if is_blocked(a)),
            "completionRate": completion_rate(completed_tasks, total_tasks),
            "redmineStats": {
                "assignedIssues": counts.assigned,
                "newIssues": counts.new,
                "inProgressIssues": counts.in_progress,
                "closedIssues": counts.closed,
                "completionRate": completion_rate(counts.closed, counts.assigned),
            },
            "productivityMetrics": metrics.to_dict(),
            "dataCompleteness": {"redmineFetchSucceeded": user_issues.fetch_succeeded},
        }

    def build_activity_report(self, team_id: str, requester_id: Optional[str],
                              start_date: Optional[date] = None,
                              end_date: Optional[date] = None,
                              member_id: Optional[str] = None) -> dict:
        """Build the daylog activity report (no Redmine data) for a team.

        ``member_id`` narrows the activities to one user; every member still
        appears in the output.
        """
        self.ensure_report_access(requester_id, team_id, report_name="activity")
        team = self._get_team(team_id)

        members = self._scored_members(team_id)
        user_ids = [m.user_id for m in members]
        if member_id:
            user_ids = [uid for uid in user_ids if uid == member_id]

        activities = self._load_activities(user_ids, start_date, end_date)

        activities_by_user = defaultdict(list)
        for activity in activities:
            activities_by_user[activity.user_id].append(activity)

        member_reports = []
        for member in members:
            member_activities = sorted(
                activities_by_user.get(member.user_id, []),
                key=lambda a: a.date,
                reverse=True,
            )
            completed = sum(1 for a in member_activities if is_done(a))
            wfh_dates = {a.date for a in member_activities if a.is_wfh}

            member_reports.append({
                "memberId": member.user.id,
                "username": member.user.username,
                "email": member.user.email or "",
                "role": member.role,
                "isLead": member.is_lead,
                "stats": {
                    "totalActivities": len(member_activities),
                    "wfhDays": len(wfh_dates),
                    "completedTasks": completed,
                    "inProgressTasks": sum(1 for a in member_activities if is_in_progress(a)),
                    "blockedTasks": sum(1 for a in member_activities if is_blocked(a)),
                    "completionRate": completion_rate(completed, len(member_activities)),
                    "lastActivityDate": (
                        member_activities[0].date.isoformat() if member_activities else None
                    ),
                },
                "activities": [self._activity_dict(a) for a in member_activities],
            })

        total_completed = sum(1 for a in activities if is_done(a))
        wfh_member_days = {(a.user_id, a.date) for a in activities if a.is_wfh}

        return {
            "team": {
                "id": team.id,
                "name": team.name,
                "wfhLimitPerMonth": team.wfh_limit_per_month,
            },
            "period": self._period(start_date, end_date),
            "members": member_reports,
            "summary": {
                "totalMembers": len(members),
                "totalActivities": len(activities),
                "totalWfhDays": len(wfh_member_days),
                "averageCompletionRate": completion_rate(total_completed, len(activities)),
            },
        }

    @staticmethod
    def _activity_dict(activity: Activity) -> dict:
        return {
            "id": activity.id,
            "subject": activity.subject,
            "description": activity.description,
            "status": activity.status,
            "date": activity.date.isoformat(),
            "time": activity.time,
            "isWfh": bool(activity.is_wfh),
            "blockedReason": activity.blocked_reason,
            "project": activity.project,
        }
