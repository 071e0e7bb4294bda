"""Platform directory gateway: challenge API, resource API and event bus.

The review engine treats these services as read-only directories (plus one
write-only bus).  All outbound HTTP goes through ``_DirectoryClient._call``,
which enforces M2M auth injection, a timeout and a retry on transient failure.

Provider constants:
  timeout    = DIRECTORY_TIMEOUT_SECONDS (default 10 s)
  retry_max  = 1     (one extra attempt on connection errors / 5xx)
  backoff    = 0.2 s

Unlike fire-and-forget integrations, failures here are raised as
``DirectoryError``: authorization decisions must never fall open because a
directory could not be reached.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import requests
from flask import current_app

logger = logging.getLogger(__name__)

_RETRY_MAX = 1
_RETRY_BACKOFF_SECONDS = 0.2
_TOKEN_TIMEOUT = 10


class DirectoryError(Exception):
    """Raised when a directory lookup or bus publish fails."""

    def __init__(self, service: str, message: str, status_code: int | None = None) -> None:
        self.service = service
        self.status_code = status_code
        super().__init__(f"{service}: {message}")


# ── Value objects ─────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ChallengePhase:
    id: str
    phase_id: str | None
    name: str
    is_open: bool | None
    actual_end: str | None

    @property
    def closed_with_end(self) -> bool:
        """Phase has run and ended: not open and carries an actual end timestamp."""
        return self.is_open is not True and bool(self.actual_end)

    def matches(self, ref: str | None) -> bool:
        return bool(ref) and ref in (self.id, self.phase_id)

    @classmethod
    def from_api(cls, data: dict) -> "ChallengePhase":
        actual_end = (
            data.get("actualEndTime")
            or data.get("actualEndDate")
            or data.get("actualEnd")
        )
        is_open = data.get("isOpen")
        return cls(
            id=str(data.get("id") or data.get("phaseId") or ""),
            phase_id=str(data["phaseId"]) if data.get("phaseId") else None,
            name=str(data.get("name") or ""),
            is_open=is_open if isinstance(is_open, bool) else None,
            actual_end=str(actual_end).strip() or None if actual_end else None,
        )


@dataclass(frozen=True)
class ChallengeSnapshot:
    id: str
    status: str | None
    type_name: str
    phases: tuple[ChallengePhase, ...]
    legacy_track: str = ""
    legacy_sub_track: str = ""
    name: str = ""

    def find_phase(self, ref: str | None) -> ChallengePhase | None:
        for phase in self.phases:
            if phase.matches(ref):
                return phase
        return None

    @classmethod
    def from_api(cls, data: dict) -> "ChallengeSnapshot":
        raw_type = data.get("type")
        if isinstance(raw_type, dict):
            raw_type = raw_type.get("name")
        legacy = data.get("legacy") or {}
        return cls(
            id=str(data.get("id") or ""),
            status=data.get("status"),
            type_name=str(raw_type or ""),
            phases=tuple(ChallengePhase.from_api(p) for p in data.get("phases") or ()),
            legacy_track=str(legacy.get("track") or ""),
            legacy_sub_track=str(legacy.get("subTrack") or ""),
            name=str(data.get("name") or ""),
        )


@dataclass(frozen=True)
class ResourceRecord:
    """A challenge-scoped role assignment."""

    id: str
    challenge_id: str | None
    member_id: str | None
    member_handle: str | None
    role_id: str | None
    role_name: str
    phase_id: str | None = None

    @classmethod
    def from_api(cls, data: dict, role_names: dict[str, str] | None = None) -> "ResourceRecord":
        role_id = data.get("roleId")
        role_name = data.get("roleName") or (role_names or {}).get(str(role_id), "")
        return cls(
            id=str(data.get("id") or ""),
            challenge_id=data.get("challengeId"),
            member_id=str(data["memberId"]) if data.get("memberId") is not None else None,
            member_handle=data.get("memberHandle"),
            role_id=str(role_id) if role_id is not None else None,
            role_name=str(role_name or ""),
            phase_id=data.get("phaseId"),
        )


# ── M2M token ────────────────────────────────────────────────────────────────


class M2MTokenProvider:
    """Client-credentials token for outbound calls.

    Token is fetched from M2M_AUTH_URL and cached in-process by client id
    until one minute before expiry.  Returns None when M2M is not configured.
    """

    _token_cache: dict[str, dict] = {}

    def get_token(self, session: requests.Session) -> str | None:
        cfg = current_app.config
        client_id = cfg.get("M2M_CLIENT_ID")
        if not cfg.get("M2M_AUTH_URL") or not client_id:
            return None

        cached = self._token_cache.get(client_id)
        if cached and datetime.now(timezone.utc) < cached["expires_at"]:
            return cached["access_token"]

        try:
            resp = session.post(
                cfg["M2M_AUTH_URL"],
                json={
                    "grant_type": "client_credentials",
                    "client_id": client_id,
                    "client_secret": cfg.get("M2M_CLIENT_SECRET"),
                    "audience": cfg.get("M2M_AUDIENCE"),
                },
                timeout=_TOKEN_TIMEOUT,
            )
        except requests.RequestException as exc:
            raise DirectoryError("m2m", f"token request failed: {exc}") from exc
        if not resp.ok:
            raise DirectoryError("m2m", f"token fetch failed: HTTP {resp.status_code}",
                                 status_code=resp.status_code)
        payload = resp.json()
        token = payload["access_token"]
        expires_in = int(payload.get("expires_in", 3600))
        self._token_cache[client_id] = {
            "access_token": token,
            "expires_at": datetime.now(timezone.utc) + timedelta(seconds=max(expires_in - 60, 0)),
        }
        return token

    def invalidate(self) -> None:
        self._token_cache.clear()


# ── Clients ──────────────────────────────────────────────────────────────────


class _DirectoryClient:
    service = "directory"
    base_url_key = ""

    def __init__(self, session: requests.Session | None = None) -> None:
        self.session = session or requests.Session()
        self._tokens = M2MTokenProvider()

    def _base_url(self) -> str:
        return (current_app.config.get(self.base_url_key) or "").rstrip("/")

    def _timeout(self) -> float:
        return float(current_app.config.get("DIRECTORY_TIMEOUT_SECONDS", 10))

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        token = self._tokens.get_token(self.session)
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _call(
        self,
        method: str,
        url: str,
        *,
        params: dict | None = None,
        json_body: Any = None,
    ) -> Any:
        """Execute a request with timeout and one retry on transient failure.

        4xx responses are not retried.  Returns the decoded JSON body
        (``None`` for empty bodies); raises DirectoryError otherwise.
        """
        last_error = "Unknown error"
        last_status: int | None = None

        for attempt in range(_RETRY_MAX + 1):
            try:
                kwargs: dict[str, Any] = {"headers": self._headers(), "timeout": self._timeout()}
                if params:
                    kwargs["params"] = params
                if json_body is not None:
                    kwargs["json"] = json_body

                t0 = time.perf_counter()
                resp = self.session.request(method, url, **kwargs)
                duration_ms = int((time.perf_counter() - t0) * 1000)
                last_status = resp.status_code

                if resp.ok:
                    logger.debug("%s %s %s -> %d (%dms)", self.service, method, url,
                                 resp.status_code, duration_ms)
                    if not resp.content:
                        return None
                    try:
                        return resp.json()
                    except ValueError as exc:
                        raise DirectoryError(self.service, "malformed JSON response",
                                             status_code=resp.status_code) from exc

                last_error = f"HTTP {resp.status_code}: {resp.text[:300]}"
                if resp.status_code == 401:
                    self._tokens.invalidate()
                if resp.status_code < 500:
                    break
            except (requests.ConnectionError, requests.Timeout) as exc:
                last_error = str(exc)
                last_status = None

            logger.warning(
                "%s request failed attempt=%d/%d status=%s url=%s",
                self.service, attempt + 1, _RETRY_MAX + 1, last_status, url,
            )
            if attempt < _RETRY_MAX:
                time.sleep(_RETRY_BACKOFF_SECONDS)

        raise DirectoryError(self.service, last_error, status_code=last_status)


class ChallengeDirectory(_DirectoryClient):
    """Read-only access to challenge details (status, type, phases)."""

    service = "challenge"
    base_url_key = "CHALLENGE_API_URL"

    def get_challenge_detail(self, challenge_id: str) -> ChallengeSnapshot:
        data = self._call("GET", f"{self._base_url()}/challenges/{challenge_id}")
        if not isinstance(data, dict):
            raise DirectoryError(self.service, f"challenge {challenge_id} returned no body")
        return ChallengeSnapshot.from_api(data)

    def get_challenges(self, challenge_ids) -> list[ChallengeSnapshot]:
        """Fetch several challenges; unreachable ones are skipped and logged."""
        snapshots = []
        for challenge_id in dict.fromkeys(challenge_ids):
            try:
                snapshots.append(self.get_challenge_detail(challenge_id))
            except DirectoryError as exc:
                logger.warning("Skipping challenge %s: %s", challenge_id, exc,
                               extra={"challenge_id": challenge_id})
        return snapshots


class ResourceDirectory(_DirectoryClient):
    """Read-only access to challenge resources and the resource-role catalog."""

    service = "resource"
    base_url_key = "RESOURCE_API_URL"

    def get_resource_roles(self) -> dict[str, str]:
        """Map role id to role name."""
        data = self._call("GET", f"{self._base_url()}/resource-roles") or []
        return {str(role.get("id")): str(role.get("name") or "") for role in data}

    def get_resources(
        self,
        challenge_id: str | None = None,
        member_id: str | None = None,
    ) -> list[ResourceRecord]:
        params = {}
        if challenge_id:
            params["challengeId"] = challenge_id
        if member_id:
            params["memberId"] = member_id
        data = self._call("GET", f"{self._base_url()}/resources", params=params) or []
        role_names: dict[str, str] | None = None
        if any(not r.get("roleName") for r in data):
            role_names = self.get_resource_roles()
        return [ResourceRecord.from_api(r, role_names) for r in data]

    def get_member_resources_roles(self, challenge_id: str | None, member_id: str) -> list[ResourceRecord]:
        """Resources held by ``member_id`` on ``challenge_id`` with role names joined."""
        return [
            r for r in self.get_resources(challenge_id=challenge_id, member_id=member_id)
            if r.member_id == str(member_id)
        ]

    def get_resource(self, resource_id: str) -> ResourceRecord | None:
        data = self._call("GET", f"{self._base_url()}/resources", params={"id": resource_id}) or []
        role_names = self.get_resource_roles() if any(not r.get("roleName") for r in data) else None
        for raw in data:
            if str(raw.get("id")) == str(resource_id):
                return ResourceRecord.from_api(raw, role_names)
        return None


class EventPublisher(_DirectoryClient):
    """Posts messages to the platform event bus."""

    service = "bus"
    base_url_key = "BUS_API_URL"

    def publish(self, topic: str, payload: dict) -> None:
        message = {
            "topic": topic,
            "originator": current_app.config.get("EVENT_ORIGINATOR", "review-api"),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "mime-type": "application/json",
            "payload": payload,
        }
        self._call("POST", self._base_url(), json_body=message)
        logger.info("Published %s", topic, extra={"event_topic": topic})


# Module-level singletons; tests patch methods on these objects.
challenge_directory = ChallengeDirectory()
resource_directory = ResourceDirectory()
event_publisher = EventPublisher()
