"""Team membership API endpoints."""

from flask import Blueprint, current_app, jsonify, request

from app.auth import get_authenticated_user_id
from services.errors import ReportError
from services.team_membership import member_dict, set_team_lead

bp = Blueprint("teams", __name__, url_prefix="/api/teams")


@bp.route("/<team_id>/members/<member_id>/lead", methods=["PATCH"])
def update_team_lead(team_id, member_id):
    """Set or clear a member's team lead flag.

    Expects JSON body with:
        - isLead: boolean

    Setting a new lead clears the previous one.
    """
    user_id = get_authenticated_user_id()
    if not user_id:
        return jsonify({"error": "Authentication required"}), 401

    data = request.get_json(silent=True)
    if not isinstance(data, dict) or not isinstance(data.get("isLead"), bool):
        return jsonify({"error": "Missing required field: isLead (boolean)"}), 400

    try:
        member = set_team_lead(team_id, member_id, data["isLead"], user_id)
        return jsonify({"data": member_dict(member)})
    except ReportError as e:
        return jsonify({"error": e.message}), e.status_code
    except Exception as e:
        current_app.logger.exception(f"Failed to update lead for team {team_id}")
        return jsonify({"error": "Failed to update team lead", "details": str(e)}), 500
