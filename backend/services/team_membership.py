"""Team membership changes that must keep per-team invariants."""

import logging
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from app.models import TEAM_ADMIN_ROLE, Team, TeamMember, User, db
from services.errors import AuthenticationError, AuthorizationError, NotFoundError

logger = logging.getLogger(__name__)


def set_team_lead(team_id: str, member_id: str, is_lead: bool,
                  requester_id: Optional[str]) -> TeamMember:
    """Make a member the team lead, or remove their lead flag.

    Clearing the previous lead and setting the new one happen in a single
    commit, so a team never ends up with two leads.

    Only global admins and the team's ``team_admin`` members may do this.
    """
    requester = db.session.get(User, requester_id) if requester_id else None
    if requester is None:
        raise AuthenticationError("User not found")

    if db.session.get(Team, team_id) is None:
        raise NotFoundError("Team")

    member = db.session.get(TeamMember, member_id)
    if member is None or member.team_id != team_id:
        raise NotFoundError("Team member")

    if not requester.is_admin:
        requester_membership = db.session.execute(
            select(TeamMember).filter_by(user_id=requester_id, team_id=team_id)
        ).scalar_one_or_none()
        if requester_membership is None or requester_membership.role != TEAM_ADMIN_ROLE:
            raise AuthorizationError("Only team admins and admins can change the team lead")

    try:
        if is_lead:
            db.session.execute(
                update(TeamMember)
                .where(
                    TeamMember.team_id == team_id,
                    TeamMember.id != member_id,
                    TeamMember.is_lead.is_(True),
                )
                .values(is_lead=False)
            )
        member.is_lead = is_lead
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception(f"Failed to update lead for team {team_id}")
        raise

    logger.info(f"Team {team_id} member {member_id} lead set to {is_lead}")
    return member


def member_dict(member: TeamMember) -> dict:
    return {
        "id": member.id,
        "userId": member.user_id,
        "teamId": member.team_id,
        "role": member.role,
        "isLead": member.is_lead,
    }
