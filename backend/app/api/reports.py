"""Team report API endpoints."""

import time
from datetime import date

from flask import Blueprint, current_app, jsonify, request

from app.auth import get_authenticated_user_id
from services.errors import ReportError, ValidationError
from services.redmine_client import RedmineClient
from services.team_report import TeamReportService

bp = Blueprint("reports", __name__, url_prefix="/api/reports")

REPORT_CACHE_CONTROL = "private, max-age=300"


def get_redmine_client() -> RedmineClient:
    """Application-wide Redmine client, so the user-id cache spans requests."""
    client = current_app.extensions.get("redmine_client")
    if client is None:
        client = RedmineClient.from_config(current_app.config)
        current_app.extensions["redmine_client"] = client
    return client


def _parse_date(name: str):
    value = request.args.get(name)
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        raise ValidationError(f"{name} must be an ISO date (YYYY-MM-DD)")


def get_date_range():
    """Get optional date range from query params.

    Query params:
        - startDate: ISO date string (e.g., "2024-01-01")
        - endDate: ISO date string (e.g., "2024-01-31")

    Returns:
        Tuple of (start_date, end_date) as dates, either can be None
    """
    start_date = _parse_date("startDate")
    end_date = _parse_date("endDate")
    if start_date and end_date and start_date > end_date:
        raise ValidationError("startDate must not be after endDate")
    return start_date, end_date


@bp.route("/team/<team_id>/productivity", methods=["GET"])
def get_productivity(team_id):
    """Get the productivity report for a team.

    Query params:
        - startDate: Optional ISO date
        - endDate: Optional ISO date

    Returns:
        - Per-member daylog counts, Redmine issue counts and scores
        - Team summary
    """
    started = time.monotonic()

    user_id = get_authenticated_user_id()
    if not user_id:
        return jsonify({"error": "Authentication required"}), 401

    try:
        start_date, end_date = get_date_range()
        service = TeamReportService(get_redmine_client())
        report = service.build_report(team_id, user_id, start_date, end_date)
    except ReportError as e:
        return jsonify({"error": e.message}), e.status_code
    except Exception as e:
        elapsed_ms = int((time.monotonic() - started) * 1000)
        current_app.logger.exception(
            f"Error generating productivity report for team {team_id} after {elapsed_ms}ms"
        )
        return jsonify({"error": "Failed to generate productivity report", "details": str(e)}), 500

    response = jsonify(report)
    response.headers["Cache-Control"] = REPORT_CACHE_CONTROL
    return response


@bp.route("/team/<team_id>/activity", methods=["GET"])
def get_activity(team_id):
    """Get the daylog activity report for a team.

    Query params:
        - startDate: Optional ISO date
        - endDate: Optional ISO date
        - memberId: Optional user id to narrow activities to one member
    """
    user_id = get_authenticated_user_id()
    if not user_id:
        return jsonify({"error": "Authentication required"}), 401

    try:
        start_date, end_date = get_date_range()
        service = TeamReportService(get_redmine_client())
        report = service.build_activity_report(
            team_id, user_id, start_date, end_date,
            member_id=request.args.get("memberId") or None
        )
        return jsonify(report)
    except ReportError as e:
        return jsonify({"error": e.message}), e.status_code
    except Exception as e:
        current_app.logger.exception(f"Error fetching activity report for team {team_id}")
        return jsonify({"error": "Internal server error", "details": str(e)}), 500
