"""
Shared pytest fixtures for the Challenge Review Service test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - directory: in-memory challenge / resource directory and event bus,
      patched onto the platform gateway singletons
    - scorecard: a two-question scorecard (YES_NO + SCALE 0..10)
    - headers: bearer-token header factory (member, admin, machine)
"""

from unittest.mock import patch

import pytest

from app import create_app
from app.integrations import platform_gateway as gw
from app.integrations.platform_gateway import (
    ChallengeSnapshot,
    DirectoryError,
    ResourceRecord,
)
from app.models import db as _db
from app.models.scorecard import (
    Scorecard,
    ScorecardGroup,
    ScorecardQuestion,
    ScorecardSection,
)
from app.services.jwt_service import issue_token

ENDED = "2026-01-10T12:00:00Z"


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Directory fakes ──────────────────────────────────────────────────────


def make_phase(name, *, is_open=False, ended=False, phase_id=None, ref=None):
    """Challenge-API shaped phase dict."""
    key = name.lower().replace(" ", "-")
    return {
        "id": ref or f"ph-{key}",
        "phaseId": phase_id or f"tpl-{key}",
        "name": name,
        "isOpen": is_open,
        "actualEndTime": ENDED if ended else None,
    }


class FakeDirectory:
    """Challenge and resource directories plus the event bus, kept in memory."""

    def __init__(self):
        self.challenges: dict[str, dict] = {}
        self.resources: list[ResourceRecord] = []
        self.events: list[tuple[str, dict]] = []
        self.unavailable: set[str] = set()

    def add_challenge(self, challenge_id="c1", *, status="ACTIVE", phases=(),
                      type_name="Challenge", legacy=None):
        data = {
            "id": challenge_id,
            "name": f"Challenge {challenge_id}",
            "status": status,
            "type": {"name": type_name},
            "phases": list(phases),
            "legacy": legacy or {},
        }
        self.challenges[challenge_id] = data
        return data

    def add_resource(self, resource_id, member_id, role_name, *, challenge_id="c1",
                     handle=None, phase_id=None):
        record = ResourceRecord(
            id=resource_id,
            challenge_id=challenge_id,
            member_id=str(member_id),
            member_handle=handle or f"member{member_id}",
            role_id=None,
            role_name=role_name,
            phase_id=phase_id,
        )
        self.resources.append(record)
        return record

    # Gateway method doubles

    def get_challenge_detail(self, challenge_id):
        if challenge_id in self.unavailable:
            raise DirectoryError("challenge", "HTTP 503: unavailable", status_code=503)
        data = self.challenges.get(challenge_id)
        if data is None:
            raise DirectoryError("challenge", "HTTP 404: not found", status_code=404)
        return ChallengeSnapshot.from_api(data)

    def get_resources(self, challenge_id=None, member_id=None):
        if "resources" in self.unavailable:
            raise DirectoryError("resource", "HTTP 503: unavailable", status_code=503)
        return [
            r for r in self.resources
            if (challenge_id is None or r.challenge_id == challenge_id)
            and (member_id is None or r.member_id == str(member_id))
        ]

    def get_member_resources_roles(self, challenge_id, member_id):
        return self.get_resources(challenge_id=challenge_id, member_id=member_id)

    def get_resource(self, resource_id):
        for record in self.get_resources():
            if record.id == resource_id:
                return record
        return None

    def publish(self, topic, payload):
        self.events.append((topic, payload))


@pytest.fixture()
def directory():
    """Patch the gateway singletons with a FakeDirectory and yield it."""
    fake = FakeDirectory()
    with patch.object(gw.challenge_directory, "get_challenge_detail",
                      side_effect=fake.get_challenge_detail), \
         patch.object(gw.resource_directory, "get_resources",
                      side_effect=fake.get_resources), \
         patch.object(gw.resource_directory, "get_member_resources_roles",
                      side_effect=fake.get_member_resources_roles), \
         patch.object(gw.resource_directory, "get_resource",
                      side_effect=fake.get_resource), \
         patch.object(gw.event_publisher, "publish", side_effect=fake.publish):
        yield fake


# ── Scorecard & auth fixtures ────────────────────────────────────────────


@pytest.fixture()
def scorecard():
    """Scorecard with one group, one section and two questions.

    ``q_yes`` (YES_NO, weight 40) and ``q_scale`` (SCALE 0..10, weight 60).
    """
    card = Scorecard(id="sc-review", name="Review Scorecard", type="REVIEW",
                     minimum_passing_score=75.0)
    group = ScorecardGroup(id="sc-group", name="Quality", weight=100.0)
    section = ScorecardSection(id="sc-section", name="Code", weight=100.0)
    section.questions = [
        ScorecardQuestion(id="q_yes", type="YES_NO", weight=40.0, sort_order=1,
                          description="Does it build?"),
        ScorecardQuestion(id="q_scale", type="SCALE", weight=60.0, sort_order=2,
                          scale_min=0, scale_max=10, description="Code quality"),
    ]
    group.sections = [section]
    card.groups = [group]
    _db.session.add(card)
    _db.session.commit()
    return card


@pytest.fixture()
def headers():
    """Factory for Authorization headers.

    headers("1001")                    member token
    headers("9000", admin=True)        administrator token
    headers(machine=True)              client-credentials token
    """

    def _headers(member_id=None, *, admin=False, machine=False, handle=None):
        if machine:
            claims = {"sub": "review-bot@clients", "gty": "client-credentials",
                      "scope": "all:reviews"}
        else:
            claims = {
                "userId": member_id,
                "handle": handle or f"member{member_id}",
                "roles": ["administrator"] if admin else ["Topcoder User"],
            }
        return {"Authorization": f"Bearer {issue_token(claims)}"}

    return _headers
