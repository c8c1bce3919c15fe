"""SQLAlchemy models for users, teams, memberships and daylog activities."""

import uuid
from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

ADMIN_ROLE = "admin"
MEMBER_ROLE = "member"
TEAM_ADMIN_ROLE = "team_admin"


def _uuid():
    return str(uuid.uuid4())


def _now():
    return datetime.now(timezone.utc)


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    username = db.Column(db.String(150), nullable=False, unique=True)
    email = db.Column(db.String(255))
    role = db.Column(db.String(20), nullable=False, default=MEMBER_ROLE)
    created_at = db.Column(db.DateTime(timezone=True), default=_now, nullable=False)

    memberships = db.relationship("TeamMember", back_populates="user", lazy=True)

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username} role={self.role}>"


class Team(db.Model):
    __tablename__ = "teams"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text)
    wfh_limit_per_month = db.Column(db.Integer, default=3, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_now, nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), default=_now, onupdate=_now, nullable=False)

    members = db.relationship(
        "TeamMember", back_populates="team", cascade="all, delete-orphan", lazy=True
    )

    def __repr__(self) -> str:
        return f"<Team id={self.id} name={self.name}>"


class TeamMember(db.Model):
    """A user's seat on a team.

    At most one member per team has ``is_lead`` set; changes go through
    ``services.team_membership.set_team_lead``.
    """

    __tablename__ = "team_members"
    __table_args__ = (db.UniqueConstraint("user_id", "team_id", name="uq_team_member"),)

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False)
    team_id = db.Column(db.String(36), db.ForeignKey("teams.id"), nullable=False)
    role = db.Column(db.String(20), nullable=False, default=MEMBER_ROLE)
    is_lead = db.Column(db.Boolean, nullable=False, default=False)

    user = db.relationship("User", back_populates="memberships")
    team = db.relationship("Team", back_populates="members")

    def __repr__(self) -> str:
        return f"<TeamMember team={self.team_id} user={self.user_id} role={self.role} lead={self.is_lead}>"


class Activity(db.Model):
    """One logged unit of work on a given day."""

    __tablename__ = "activities"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)
    date = db.Column(db.Date, nullable=False, index=True)
    # HH:MM, 24-hour
    time = db.Column(db.String(5))
    subject = db.Column(db.String(255), nullable=False, default="")
    description = db.Column(db.Text, nullable=False, default="")
    status = db.Column(db.String(20), nullable=False, default="InProgress")
    blocked_reason = db.Column(db.Text)
    is_wfh = db.Column(db.Boolean, nullable=False, default=False)
    project = db.Column(db.String(255))
    created_at = db.Column(db.DateTime(timezone=True), default=_now, nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), default=_now, onupdate=_now, nullable=False)

    user = db.relationship("User")

    def __repr__(self) -> str:
        return f"<Activity id={self.id} user={self.user_id} date={self.date} status={self.status}>"
