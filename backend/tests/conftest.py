"""Shared fixtures for the daylog report tests."""

import os
import sys
from datetime import date, datetime
from types import SimpleNamespace

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from app import create_app  # noqa: E402
from app.models import Activity, Team, TeamMember, User, db  # noqa: E402
from services.redmine_client import UserIssues  # noqa: E402


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeFetcher:
    """Stands in for RedmineClient.batch_fetch and records its calls."""

    def __init__(self, results=None):
        self.results = results or {}
        self.calls = []

    def batch_fetch(self, usernames, date_from, date_to, deadline=None):
        self.calls.append((list(usernames), date_from, date_to))
        return self.results


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def fake_fetcher():
    return FakeFetcher()


@pytest.fixture
def mock_redmine_config():
    """Redmine settings for a client using API key auth."""
    return {
        "base_url": "https://redmine.test/",
        "api_key": "test-api-key",
    }


@pytest.fixture
def app():
    """Create Flask test app on an in-memory database."""
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
        "JWT_SECRET": "test-secret",
        "REDMINE_URL": "",
    })
    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """Create Flask test client."""
    return app.test_client()


def _issue(issue_id, status_id, status_name, created_on="2024-01-02T09:00:00Z", closed_on=None):
    issue = {
        "id": issue_id,
        "status": {"id": status_id, "name": status_name},
        "assigned_to": {"id": 7, "name": "Alice"},
        "created_on": created_on,
    }
    if closed_on:
        issue["closed_on"] = closed_on
    return issue


@pytest.fixture
def sample_open_issues():
    """Open issues: one New, one In Progress, one Testing, one Feedback."""
    return [
        _issue(1, 1, "New"),
        _issue(2, 2, "In Progress"),
        _issue(3, 7, "Testing"),
        _issue(4, 4, "Feedback"),
    ]


@pytest.fixture
def sample_closed_issues():
    """Closed issues, each open for exactly two hours."""
    return [
        _issue(10, 5, "Closed", "2024-01-03T09:00:00Z", "2024-01-03T11:00:00Z"),
        _issue(11, 5, "Closed", "2024-01-04T09:00:00Z", "2024-01-04T11:00:00Z"),
    ]


@pytest.fixture
def seeded(app):
    """A team with a lead, a team admin, two members and a global admin on the roster.

    January 2024 activities:
        alice  4 (2 done, 1 in progress, 1 blocked; 2 WFH days)
        lead   1 (done)
        bob    none
        admin  1 (never reported)
    alice also has one done activity in February.
    """
    with app.app_context():
        admin = User(username="admin", email="admin@example.com", role="admin")
        lead = User(username="lead", email="lead@example.com")
        team_admin = User(username="teamadmin", email="ta@example.com")
        alice = User(username="alice", email="alice@example.com")
        bob = User(username="bob", email="bob@example.com")
        outsider = User(username="outsider")
        db.session.add_all([admin, lead, team_admin, alice, bob, outsider])

        team = Team(name="Platform", wfh_limit_per_month=3)
        db.session.add(team)
        db.session.flush()

        members = {
            "admin": TeamMember(user_id=admin.id, team_id=team.id),
            "lead": TeamMember(user_id=lead.id, team_id=team.id, is_lead=True),
            "teamadmin": TeamMember(user_id=team_admin.id, team_id=team.id, role="team_admin"),
            "alice": TeamMember(user_id=alice.id, team_id=team.id),
            "bob": TeamMember(user_id=bob.id, team_id=team.id),
        }
        db.session.add_all(members.values())

        db.session.add_all([
            Activity(user_id=alice.id, date=date(2024, 1, 10), time="09:00",
                     subject="API review", status="Done",
                     created_at=datetime(2024, 1, 10, 8, 0),
                     updated_at=datetime(2024, 1, 10, 11, 0)),
            Activity(user_id=alice.id, date=date(2024, 1, 11),
                     subject="Deploy", status="done",
                     created_at=datetime(2024, 1, 11, 8, 0),
                     updated_at=datetime(2024, 1, 11, 10, 0)),
            Activity(user_id=alice.id, date=date(2024, 1, 12),
                     subject="Refactor", status="InProgress", is_wfh=True,
                     created_at=datetime(2024, 1, 12, 8, 0),
                     updated_at=datetime(2024, 1, 12, 8, 0)),
            Activity(user_id=alice.id, date=date(2024, 1, 15),
                     subject="Migration", status="Blocked", is_wfh=True,
                     blocked_reason="Waiting on DBA",
                     created_at=datetime(2024, 1, 15, 8, 0),
                     updated_at=datetime(2024, 1, 15, 9, 0)),
            Activity(user_id=alice.id, date=date(2024, 2, 5),
                     subject="Later work", status="Done",
                     created_at=datetime(2024, 2, 5, 8, 0),
                     updated_at=datetime(2024, 2, 5, 9, 0)),
            Activity(user_id=lead.id, date=date(2024, 1, 10),
                     subject="Planning", status="Done",
                     created_at=datetime(2024, 1, 10, 9, 0),
                     updated_at=datetime(2024, 1, 10, 10, 0)),
            Activity(user_id=admin.id, date=date(2024, 1, 10),
                     subject="Admin work", status="Done",
                     created_at=datetime(2024, 1, 10, 9, 0),
                     updated_at=datetime(2024, 1, 10, 10, 0)),
        ])
        db.session.commit()

        return SimpleNamespace(
            team_id=team.id,
            admin_id=admin.id,
            lead_id=lead.id,
            team_admin_id=team_admin.id,
            alice_id=alice.id,
            bob_id=bob.id,
            outsider_id=outsider.id,
            member_ids={name: m.id for name, m in members.items()},
        )


@pytest.fixture
def auth_headers(app):
    """Build Authorization headers for a user id and global role."""
    from app.auth import issue_token

    def _headers(user_id, role="member"):
        with app.app_context():
            token = issue_token(user_id, role)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def alice_issues(sample_closed_issues):
    """One New open issue and four closed ones: Redmine rate 80%."""
    closed = sample_closed_issues + [
        _issue(12, 5, "Closed", "2024-01-05T09:00:00Z", "2024-01-05T13:00:00Z"),
        _issue(13, 5, "Closed", "2024-01-06T09:00:00Z", "2024-01-06T13:00:00Z"),
    ]
    return UserIssues(issues=[_issue(1, 1, "New")], closed_issues=closed)
