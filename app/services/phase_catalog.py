"""
Phase and challenge-type helpers for the review engine.

Phase names from the challenge directory are free text ("Iterative Review",
"Post-Mortem", "appeals_response").  Everything here compares normalised
names: lower-case with spaces, underscores and hyphens removed, so
"PostMortem" and "Post-Mortem" compare equal.  The set of phases that can
carry reviews is configuration (``REVIEW_PHASE_CATALOG``), not a constant.

Rules:
    - A phase has "completed" when it is not open and has an actual end time.
    - COMPLETED, CANCELLED and every CANCELLED_* status are terminal.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from flask import current_app

from app.integrations.platform_gateway import ChallengePhase, ChallengeSnapshot

_SEPARATORS = re.compile(r"[\s_\-]+")

SCREENING = "screening"
CHECKPOINT_SCREENING = "checkpointscreening"
CHECKPOINT_REVIEW = "checkpointreview"
REVIEW = "review"
ITERATIVE_REVIEW = "iterativereview"
APPROVAL = "approval"
POST_MORTEM = "postmortem"
APPEALS = "appeals"
APPEALS_RESPONSE = "appealsresponse"
SUBMISSION = "submission"

SCREENING_PHASES = frozenset({SCREENING, CHECKPOINT_SCREENING})

# Phases whose completion lets a submitter inspect reviews of their own work
SUBMITTER_REVIEW_PHASES = (
    CHECKPOINT_SCREENING,
    CHECKPOINT_REVIEW,
    SCREENING,
    REVIEW,
    ITERATIVE_REVIEW,
)

# Phases a standard review may be created against, in preference order
REVIEW_TARGET_PHASES = (REVIEW, ITERATIVE_REVIEW)


def normalize_phase_name(name: str | None) -> str:
    if not name:
        return ""
    return _SEPARATORS.sub("", str(name).lower())


def review_phase_catalog() -> frozenset[str]:
    """Normalised names of phases that can carry reviews."""
    return frozenset(
        normalize_phase_name(n) for n in current_app.config.get("REVIEW_PHASE_CATALOG", ())
    )


def is_review_capable(name: str | None) -> bool:
    return normalize_phase_name(name) in review_phase_catalog()


# ── Challenge status / type ──────────────────────────────────────────────────


def is_completed_or_cancelled(status: str | None) -> bool:
    if not status:
        return False
    status = str(status).upper()
    return status in ("COMPLETED", "CANCELLED") or status.startswith("CANCELLED_")


def is_first2finish(challenge: ChallengeSnapshot | None) -> bool:
    if challenge is None:
        return False
    type_name = challenge.type_name.strip().lower()
    if type_name in ("first2finish", "first 2 finish", "topgear task"):
        return True
    return challenge.legacy_sub_track.strip().lower() == "first_2_finish"


def is_marathon_match(challenge: ChallengeSnapshot | None) -> bool:
    if challenge is None:
        return False
    if challenge.type_name.strip().lower() == "marathon match":
        return True
    return (
        "marathon" in challenge.legacy_sub_track.lower()
        or "marathon" in challenge.legacy_track.lower()
    )


# ── Phase queries ────────────────────────────────────────────────────────────


def phases_named(challenge: ChallengeSnapshot | None, names: Iterable[str]) -> list[ChallengePhase]:
    if challenge is None:
        return []
    wanted = {normalize_phase_name(n) for n in names}
    return [p for p in challenge.phases if normalize_phase_name(p.name) in wanted]


def phase_ids_for(challenge: ChallengeSnapshot | None, names: Iterable[str]) -> list[str]:
    ids: list[str] = []
    for phase in phases_named(challenge, names):
        for ref in (phase.id, phase.phase_id):
            if ref and ref not in ids:
                ids.append(ref)
    return ids


def is_phase_open(challenge: ChallengeSnapshot | None, name: str) -> bool:
    return any(p.is_open is True for p in phases_named(challenge, [name]))


def has_phase_named(challenge: ChallengeSnapshot | None, name: str) -> bool:
    return bool(phases_named(challenge, [name]))


def is_phase_closed(challenge: ChallengeSnapshot | None, name: str) -> bool:
    return any(p.is_open is False for p in phases_named(challenge, [name]))


def has_phase_completed(challenge: ChallengeSnapshot | None, names: Iterable[str]) -> bool:
    """True when any phase with one of ``names`` is not open and has ended."""
    return any(p.closed_with_end for p in phases_named(challenge, names))


def phase_name_for(challenge: ChallengeSnapshot | None, phase_ref: str | None) -> str | None:
    if challenge is None or not phase_ref:
        return None
    phase = challenge.find_phase(phase_ref)
    return phase.name if phase else None


def resolve_target_phase(challenge: ChallengeSnapshot, post_mortem: bool = False) -> ChallengePhase | None:
    """Phase a new review attaches to.

    Post-Mortem reviews target the Post-Mortem phase.  Otherwise the first
    of Review / Iterative Review present on the challenge, preferring an
    open one.
    """
    targets = (POST_MORTEM,) if post_mortem else REVIEW_TARGET_PHASES
    catalog = review_phase_catalog()
    candidates = [
        p for p in phases_named(challenge, targets)
        if normalize_phase_name(p.name) in catalog
    ]
    if not candidates:
        return None
    for phase in candidates:
        if phase.is_open is True:
            return phase
    return candidates[0]
