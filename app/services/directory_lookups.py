"""
Per-request memoisation of directory lookups.

Challenge snapshots and a member's challenge-scoped resources are fetched
at most once per request and kept on ``flask.g``; nothing survives the
request.  Failures propagate as ``DirectoryError`` so callers decide how to
fail closed.
"""

from __future__ import annotations

import logging

from flask import g

from app.integrations.platform_gateway import (
    ChallengeSnapshot,
    ResourceRecord,
    challenge_directory,
    resource_directory,
)
from app.services.access_policy import MemberRoles

logger = logging.getLogger(__name__)


class DirectoryLookups:
    def __init__(self) -> None:
        self._challenges: dict[str, ChallengeSnapshot] = {}
        self._member_roles: dict[tuple[str, str], MemberRoles] = {}
        self._challenge_resources: dict[str, list[ResourceRecord]] = {}
        self._resources: dict[str, ResourceRecord | None] = {}

    def challenge(self, challenge_id: str) -> ChallengeSnapshot:
        if challenge_id not in self._challenges:
            self._challenges[challenge_id] = challenge_directory.get_challenge_detail(challenge_id)
        return self._challenges[challenge_id]

    def member_roles(self, challenge_id: str, member_id: str | None) -> MemberRoles:
        if not member_id:
            return MemberRoles()
        key = (challenge_id, str(member_id))
        if key not in self._member_roles:
            resources = resource_directory.get_member_resources_roles(challenge_id, str(member_id))
            self._member_roles[key] = MemberRoles.resolve(member_id, resources)
            logger.debug(
                "Resolved %d resource(s) for member %s on challenge %s",
                len(self._member_roles[key].resources), member_id, challenge_id,
                extra={"challenge_id": challenge_id},
            )
        return self._member_roles[key]

    def challenge_resources(self, challenge_id: str) -> list[ResourceRecord]:
        if challenge_id not in self._challenge_resources:
            self._challenge_resources[challenge_id] = resource_directory.get_resources(
                challenge_id=challenge_id)
        return self._challenge_resources[challenge_id]

    def resource(self, resource_id: str) -> ResourceRecord | None:
        if resource_id not in self._resources:
            self._resources[resource_id] = resource_directory.get_resource(resource_id)
        return self._resources[resource_id]


def get_lookups() -> DirectoryLookups:
    """The current request's lookup cache, created on first use."""
    lookups = g.get("directory_lookups")
    if lookups is None:
        lookups = DirectoryLookups()
        g.directory_lookups = lookups
    return lookups


def init_directory_lookups(app) -> None:
    """Drop the cache at request teardown, even when the app context outlives the request."""

    @app.teardown_request
    def _drop_directory_lookups(exc):
        g.pop("directory_lookups", None)
