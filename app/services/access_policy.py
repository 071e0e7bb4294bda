"""
Access decision engine for review reads and writes.

Pure functions: every input (actor, challenge-scoped roles, review, challenge
snapshot, parsed patch) is resolved by the caller beforehand.  Nothing here
touches the database or the network, and nothing here raises on a denial;
callers get a ``Decision`` and call ``raise_if_denied()``.

Rules (summary):
    - Machine actors and admins are allowed everything, except that
      immutable review fields stay immutable and admins must leave a
      manager comment when they change a score.
    - Reviewer-owner: full control of their own review and its items while
      the challenge is not COMPLETED.
    - Copilot: status-only or reopen review updates, score-only item
      updates (with a manager comment), review deletion, full read.
    - Reviewers read only their own reviews until the challenge is terminal,
      except screening-type phases.
    - Submitters read reviews of their own submissions once a review phase
      has closed or appeals are open; everything after completion only with
      a passing summation.  Marathon match and First2Finish widen the
      windows.

Usage:
    decision = decide(AccessRequest(actor=actor, action=Action.UPDATE_REVIEW,
                                    roles=roles, review=review,
                                    challenge=challenge, review_patch=patch))
    decision.raise_if_denied()
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from app.core.actor import Actor
from app.core.exceptions import ForbiddenError
from app.integrations.platform_gateway import ChallengePhase, ChallengeSnapshot, ResourceRecord
from app.services import phase_catalog as phases
from app.services.review_filters import (
    MATCH_ALL,
    MATCH_NOTHING,
    Predicate,
    all_of,
    any_of,
    field_equals,
    field_in,
    submission_type_is,
)
from app.services.review_patches import ReviewItemPatch, ReviewPatch
from app.services.visibility import MaskLevel

logger = logging.getLogger(__name__)


# ── Reason codes ─────────────────────────────────────────────────────────────


class Reason:
    """Closed set of denial reason codes (surfaced as ``code`` on 403s)."""

    NOT_OWNER = "NOT_OWNER"
    NOT_COPILOT = "NOT_COPILOT"
    COPILOT_SCOPE = "COPILOT_SCOPE"
    MANAGER_COMMENT_REQUIRED = "MANAGER_COMMENT_REQUIRED"
    IMMUTABLE_FIELDS = "IMMUTABLE_FIELDS"
    RESOURCE_PHASE_MISMATCH = "RESOURCE_PHASE_MISMATCH"
    RESOURCE_MEMBER_MISMATCH = "RESOURCE_MEMBER_MISMATCH"
    PHASE_CLOSED = "PHASE_CLOSED"
    CHALLENGE_COMPLETED = "CHALLENGE_COMPLETED"
    FORBIDDEN_ROLE = "FORBIDDEN_ROLE"
    FORBIDDEN_CREATE_REVIEW = "FORBIDDEN_CREATE_REVIEW"
    MISSING_MEMBER_ID = "MISSING_MEMBER_ID"
    OWNERSHIP_UNVERIFIED = "OWNERSHIP_UNVERIFIED"
    FORBIDDEN_REVIEW_ACCESS = "FORBIDDEN_REVIEW_ACCESS"
    FORBIDDEN_REVIEW_ACCESS_PHASE = "FORBIDDEN_REVIEW_ACCESS_PHASE"
    FORBIDDEN_REVIEW_ACCESS_OWN_ONLY = "FORBIDDEN_REVIEW_ACCESS_OWN_ONLY"
    FORBIDDEN_REVIEW_ACCESS_REVIEWER_SELF = "FORBIDDEN_REVIEW_ACCESS_REVIEWER_SELF"


# ── Roles ────────────────────────────────────────────────────────────────────


class RoleKind(enum.Enum):
    SCREENER = "screener"
    CHECKPOINT_SCREENER = "checkpoint_screener"
    CHECKPOINT_REVIEWER = "checkpoint_reviewer"
    REVIEWER = "reviewer"
    ITERATIVE_REVIEWER = "iterative_reviewer"
    APPROVER = "approver"
    COPILOT = "copilot"
    SUBMITTER = "submitter"
    OTHER = "other"


# Role kinds that author reviews and get reviewer-tier read access
REVIEWER_KINDS = frozenset({
    RoleKind.SCREENER,
    RoleKind.CHECKPOINT_SCREENER,
    RoleKind.CHECKPOINT_REVIEWER,
    RoleKind.REVIEWER,
    RoleKind.ITERATIVE_REVIEWER,
    RoleKind.APPROVER,
})


def classify_role(role_name: str | None) -> RoleKind:
    """Map a free-text resource role name to its RoleKind.

    This is the only place role names are inspected.
    """
    name = phases.normalize_phase_name(role_name)
    if not name:
        return RoleKind.OTHER
    if "copilot" in name:
        return RoleKind.COPILOT
    if "checkpoint" in name and "screener" in name:
        return RoleKind.CHECKPOINT_SCREENER
    if "checkpoint" in name and "reviewer" in name:
        return RoleKind.CHECKPOINT_REVIEWER
    if "screener" in name:
        return RoleKind.SCREENER
    if "approver" in name or "approval" in name:
        return RoleKind.APPROVER
    if "iterative" in name and "reviewer" in name:
        return RoleKind.ITERATIVE_REVIEWER
    if "reviewer" in name:
        return RoleKind.REVIEWER
    if "submitter" in name:
        return RoleKind.SUBMITTER
    return RoleKind.OTHER


@dataclass(frozen=True)
class MemberRoles:
    """A member's resources on one challenge, classified once."""

    member_id: str | None = None
    resources: tuple[ResourceRecord, ...] = ()

    @classmethod
    def resolve(cls, member_id: str | None, resources: Iterable[ResourceRecord]) -> "MemberRoles":
        mine = tuple(r for r in resources if member_id and r.member_id == str(member_id))
        return cls(member_id=str(member_id) if member_id else None, resources=mine)

    def of_kind(self, *kinds: RoleKind) -> tuple[ResourceRecord, ...]:
        return tuple(r for r in self.resources if classify_role(r.role_name) in kinds)

    @property
    def kinds(self) -> frozenset[RoleKind]:
        return frozenset(classify_role(r.role_name) for r in self.resources)

    @property
    def is_copilot(self) -> bool:
        return RoleKind.COPILOT in self.kinds

    @property
    def is_submitter(self) -> bool:
        return RoleKind.SUBMITTER in self.kinds

    @property
    def reviewer_resources(self) -> tuple[ResourceRecord, ...]:
        return self.of_kind(*REVIEWER_KINDS)

    @property
    def reviewer_resource_ids(self) -> frozenset[str]:
        return frozenset(r.id for r in self.reviewer_resources)

    @property
    def is_reviewer(self) -> bool:
        return bool(self.reviewer_resources)

    @property
    def is_resource(self) -> bool:
        return bool(self.resources)

    def owns(self, resource_id: str | None) -> bool:
        """Reviewer-owner test: the member holds the review's resource."""
        return bool(resource_id) and any(r.id == resource_id for r in self.resources)


# ── Decisions ────────────────────────────────────────────────────────────────


class Effect(enum.Enum):
    ALLOW = "allow"
    ALLOW_WITH_MASK = "allow_with_mask"
    DENY = "deny"


@dataclass(frozen=True)
class Decision:
    effect: Effect
    reason: str | None = None
    message: str = ""
    mask: MaskLevel | None = None
    requires_manager_comment: bool = False
    details: dict = field(default_factory=dict)

    @classmethod
    def allow(cls, *, requires_manager_comment: bool = False) -> "Decision":
        return cls(Effect.ALLOW, requires_manager_comment=requires_manager_comment)

    @classmethod
    def masked(cls, mask: MaskLevel, reason: str) -> "Decision":
        return cls(Effect.ALLOW_WITH_MASK, reason=reason, mask=mask)

    @classmethod
    def deny(cls, reason: str, message: str, **details) -> "Decision":
        return cls(Effect.DENY, reason=reason, message=message, details=details)

    @property
    def allowed(self) -> bool:
        return self.effect is not Effect.DENY

    def raise_if_denied(self) -> None:
        if not self.allowed:
            logger.info("Access denied: %s", self.message, extra={"reason_code": self.reason})
            raise ForbiddenError(self.reason, self.message, self.details)


class Action(enum.Enum):
    LIST_REVIEWS = "list_reviews"
    READ_REVIEW = "read_review"
    CREATE_REVIEW = "create_review"
    UPDATE_REVIEW = "update_review"
    DELETE_REVIEW = "delete_review"
    CREATE_ITEM = "create_item"
    UPDATE_ITEM = "update_item"
    DELETE_ITEM = "delete_item"


ITEM_ACTIONS = frozenset({Action.CREATE_ITEM, Action.UPDATE_ITEM, Action.DELETE_ITEM})


# ── Reader context ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class SubmitterVisibility:
    allow_any: bool
    allow_own: bool


def submitter_visibility(challenge: ChallengeSnapshot | None) -> SubmitterVisibility:
    """What a submitter may see on ``challenge`` regardless of specific reviews.

    allow_any: challenge is terminal.
    allow_own: terminal, appeals or appeals response open, iterative review
               closed on a challenge without appeals phases, or First2Finish.
    """
    if challenge is None:
        return SubmitterVisibility(False, False)
    allow_any = phases.is_completed_or_cancelled(challenge.status)
    has_appeals = (
        phases.has_phase_named(challenge, phases.APPEALS)
        or phases.has_phase_named(challenge, phases.APPEALS_RESPONSE)
    )
    allow_own = (
        allow_any
        or phases.is_phase_open(challenge, phases.APPEALS)
        or phases.is_phase_open(challenge, phases.APPEALS_RESPONSE)
        or (not has_appeals and phases.is_phase_closed(challenge, phases.ITERATIVE_REVIEW))
        or phases.is_first2finish(challenge)
    )
    return SubmitterVisibility(allow_any=allow_any, allow_own=allow_own)


@dataclass(frozen=True)
class ReaderContext:
    """Everything the engine needs about one reader on one challenge."""

    actor: Actor
    challenge: ChallengeSnapshot | None
    roles: MemberRoles = MemberRoles()
    own_submission_ids: frozenset[str] = frozenset()
    has_passing_submission: bool = False

    @property
    def terminal(self) -> bool:
        return self.challenge is not None and phases.is_completed_or_cancelled(self.challenge.status)

    @property
    def visibility(self) -> SubmitterVisibility:
        return submitter_visibility(self.challenge)

    @property
    def is_submitter(self) -> bool:
        return bool(self.own_submission_ids)

    @property
    def full_access(self) -> bool:
        return self.actor.is_privileged or self.roles.is_copilot

    def phase_name_of(self, review) -> str:
        return phases.normalize_phase_name(phases.phase_name_for(self.challenge, review.phase_id))


@dataclass(frozen=True)
class ListScope:
    decision: Decision
    predicate: Predicate = MATCH_ALL


# ── Request envelope ─────────────────────────────────────────────────────────


@dataclass(frozen=True)
class AccessRequest:
    actor: Actor
    action: Action
    roles: MemberRoles = MemberRoles()
    review: Any = None
    challenge: ChallengeSnapshot | None = None
    review_patch: ReviewPatch | None = None
    item_patch: ReviewItemPatch | None = None
    existing_item: Any = None
    resource: ResourceRecord | None = None
    target_phase: ChallengePhase | None = None
    reader: ReaderContext | None = None


def decide(request: AccessRequest) -> Decision:
    """Single entry point: route the request to the rule set for its action."""
    match request.action:
        case Action.CREATE_REVIEW:
            return decide_create_review(request.actor, request.resource, request.target_phase)
        case Action.UPDATE_REVIEW:
            return decide_update_review(request.actor, request.roles, request.review,
                                        request.review_patch, request.challenge)
        case Action.DELETE_REVIEW:
            return decide_delete_review(request.actor, request.roles)
        case Action.CREATE_ITEM | Action.UPDATE_ITEM | Action.DELETE_ITEM:
            return decide_item_change(request.actor, request.roles, request.review, request.action,
                                      request.item_patch, request.existing_item)
        case Action.READ_REVIEW:
            return decide_read_review(request.reader, request.review)
        case Action.LIST_REVIEWS:
            return scope_reviews_for_challenge(request.reader).decision
    raise ValueError(f"Unknown action: {request.action!r}")


# ── Mutation rules ───────────────────────────────────────────────────────────


def decide_create_review(
    actor: Actor,
    resource: ResourceRecord,
    target_phase: ChallengePhase,
) -> Decision:
    if resource.phase_id and not target_phase.matches(resource.phase_id):
        return Decision.deny(
            Reason.RESOURCE_PHASE_MISMATCH,
            f"Resource {resource.id} is assigned to a different phase than {target_phase.name}",
            resource_id=resource.id,
            resource_phase_id=resource.phase_id,
            target_phase_id=target_phase.id,
        )
    if actor.is_privileged:
        return Decision.allow()
    if not actor.member_id:
        return Decision.deny(Reason.MISSING_MEMBER_ID, "Member id missing from token")
    if resource.member_id != actor.member_id:
        return Decision.deny(
            Reason.RESOURCE_MEMBER_MISMATCH,
            "The resource does not belong to the requesting member",
            resource_id=resource.id,
        )
    if classify_role(resource.role_name) not in REVIEWER_KINDS:
        return Decision.deny(
            Reason.FORBIDDEN_CREATE_REVIEW,
            "Only reviewer resources may create reviews",
            resource_id=resource.id,
            role_name=resource.role_name,
        )
    return Decision.allow()


def decide_update_review(
    actor: Actor,
    roles: MemberRoles,
    review,
    patch: ReviewPatch,
    challenge: ChallengeSnapshot | None,
) -> Decision:
    if patch.immutable_touched:
        return Decision.deny(
            Reason.IMMUTABLE_FIELDS,
            "resource_id, phase_id and submission_id cannot be changed",
            review_id=review.id,
            fields=list(patch.immutable_touched),
        )
    if actor.is_privileged:
        return Decision.allow()
    if not actor.member_id:
        return Decision.deny(Reason.MISSING_MEMBER_ID, "Member id missing from token")

    reopen = patch.is_reopen(review.status)
    if not roles.owns(review.resource_id):
        copilot_allowed = roles.is_copilot and (
            patch.is_status_only or patch.is_copilot_reopen(review.status)
        )
        if not copilot_allowed:
            return Decision.deny(
                Reason.NOT_OWNER,
                "Only the reviewer who owns this review may update it",
                review_id=review.id,
                requester=actor.member_id,
            )

    if challenge is not None and str(challenge.status or "").upper() == "COMPLETED":
        return Decision.deny(
            Reason.CHALLENGE_COMPLETED,
            "Reviews cannot be changed once the challenge is completed",
            review_id=review.id,
            challenge_id=challenge.id,
        )

    if reopen and challenge is not None:
        phase = challenge.find_phase(review.phase_id)
        if phase is not None and phase.closed_with_end:
            return Decision.deny(
                Reason.PHASE_CLOSED,
                f"The {phase.name} phase has closed; the review cannot be reopened",
                review_id=review.id,
                phase_id=review.phase_id,
            )
    return Decision.allow()


def decide_delete_review(actor: Actor, roles: MemberRoles) -> Decision:
    if actor.is_privileged:
        return Decision.allow()
    if not actor.member_id:
        return Decision.deny(Reason.MISSING_MEMBER_ID, "Member id missing from token")
    if roles.is_copilot:
        return Decision.allow()
    return Decision.deny(Reason.NOT_COPILOT, "Only a copilot of the challenge may delete reviews",
                         requester=actor.member_id)


def copilot_forbidden_fields(patch: ReviewItemPatch, existing) -> list[str]:
    """Fields a copilot tried to change beyond the score."""
    final_changed = patch.final_answer_changed(existing)
    forbidden = []
    if patch.changed("manager_comment", existing) and not final_changed:
        forbidden.append("manager_comment")
    if patch.touched("comments"):
        forbidden.append("comments")
    if patch.changed("initial_answer", existing):
        forbidden.append("initial_answer")
    if patch.changed("scorecard_question_id", existing):
        forbidden.append("scorecard_question_id")
    return forbidden


def decide_item_change(
    actor: Actor,
    roles: MemberRoles,
    review,
    action: Action,
    patch: ReviewItemPatch | None = None,
    existing=None,
) -> Decision:
    if action not in ITEM_ACTIONS:
        raise ValueError(f"Not an item action: {action!r}")
    if actor.is_machine:
        return Decision.allow()

    requires_comment = actor.is_admin
    if not actor.is_admin:
        if not actor.member_id:
            return Decision.deny(Reason.MISSING_MEMBER_ID, "Member id missing from token")
        if roles.owns(review.resource_id):
            return Decision.allow()
        if not roles.is_copilot:
            if roles.is_reviewer:
                return Decision.deny(
                    Reason.NOT_OWNER,
                    "Only the reviewer who owns this review may change its items",
                    review_id=review.id,
                )
            return Decision.deny(
                Reason.FORBIDDEN_ROLE,
                "A reviewer or copilot role on this challenge is required",
                review_id=review.id,
            )
        if action is not Action.UPDATE_ITEM:
            return Decision.deny(
                Reason.COPILOT_SCOPE,
                "Copilots may only change the score of an existing item",
                review_id=review.id,
            )
        forbidden = copilot_forbidden_fields(patch, existing)
        if forbidden:
            return Decision.deny(
                Reason.COPILOT_SCOPE,
                "Copilots may only change final_answer (with a manager comment)",
                review_id=review.id,
                fields=forbidden,
            )
        requires_comment = True

    if (
        action is Action.UPDATE_ITEM
        and requires_comment
        and patch.final_answer_changed(existing)
        and not patch.manager_comment_present
    ):
        return Decision.deny(
            Reason.MANAGER_COMMENT_REQUIRED,
            "A manager comment is required when changing a score",
            review_id=review.id,
            review_item_id=getattr(existing, "id", None),
        )
    return Decision.allow(requires_manager_comment=requires_comment)


# ── Read rules ───────────────────────────────────────────────────────────────


def _review_phases_completed(challenge: ChallengeSnapshot | None) -> bool:
    return phases.has_phase_completed(challenge, phases.SUBMITTER_REVIEW_PHASES)


def reviewer_role_filter(roles: MemberRoles, challenge: ChallengeSnapshot | None) -> Predicate:
    """Reviews a reviewer-tier member may list on a non-terminal challenge.

    Screening reviews are shared among screeners, reviewers and checkpoint
    reviewers; checkpoint screening among checkpoint screeners.  Every other
    phase is restricted to the member's own resources.
    """
    own = field_in("resource_id", roles.reviewer_resource_ids)
    if challenge is None:
        return own

    kinds = {classify_role(r.role_name) for r in roles.reviewer_resources}
    clauses: list[Predicate] = [own]

    screening_ids = phases.phase_ids_for(challenge, [phases.SCREENING])
    if screening_ids and kinds & {RoleKind.SCREENER, RoleKind.REVIEWER, RoleKind.CHECKPOINT_REVIEWER}:
        clauses.append(all_of(submission_type_is("CONTEST_SUBMISSION"),
                              field_in("phase_id", screening_ids)))

    checkpoint_screening_ids = phases.phase_ids_for(challenge, [phases.CHECKPOINT_SCREENING])
    if checkpoint_screening_ids and RoleKind.CHECKPOINT_SCREENER in kinds:
        clauses.append(all_of(submission_type_is("CHECKPOINT_SUBMISSION"),
                              field_in("phase_id", checkpoint_screening_ids)))

    scoped = (
        (RoleKind.CHECKPOINT_REVIEWER, phases.CHECKPOINT_REVIEW, "CHECKPOINT_SUBMISSION"),
        (RoleKind.REVIEWER, phases.REVIEW, "CONTEST_SUBMISSION"),
        (RoleKind.ITERATIVE_REVIEWER, phases.ITERATIVE_REVIEW, "CONTEST_SUBMISSION"),
        (RoleKind.APPROVER, phases.APPROVAL, "CONTEST_SUBMISSION"),
    )
    for kind, phase_name, submission_type in scoped:
        if kind not in kinds:
            continue
        parts = [
            submission_type_is(submission_type),
            field_in("resource_id", (r.id for r in roles.of_kind(kind))),
        ]
        phase_ids = phases.phase_ids_for(challenge, [phase_name])
        if phase_ids:
            parts.append(field_in("phase_id", phase_ids))
        clauses.append(all_of(*parts))

    return any_of(*clauses)


def scope_reviews_for_challenge(ctx: ReaderContext) -> ListScope:
    """Narrow a challenge's review set to what ``ctx`` may list."""
    if ctx.full_access:
        return ListScope(Decision.allow())

    if ctx.roles.is_reviewer:
        if ctx.terminal:
            return ListScope(Decision.allow())
        return ListScope(Decision.allow(), reviewer_role_filter(ctx.roles, ctx.challenge))

    if not ctx.own_submission_ids:
        return ListScope(Decision.deny(
            Reason.FORBIDDEN_REVIEW_ACCESS,
            "You must be a submitter on this challenge to access reviews",
            challenge_id=ctx.challenge.id if ctx.challenge else None,
            requester=ctx.actor.member_id,
        ), MATCH_NOTHING)

    own = field_in("submission_id", ctx.own_submission_ids)
    challenge = ctx.challenge
    if ctx.terminal:
        return ListScope(Decision.allow(), MATCH_ALL if ctx.has_passing_submission else own)

    appeals_open = (
        phases.is_phase_open(challenge, phases.APPEALS)
        or phases.is_phase_open(challenge, phases.APPEALS_RESPONSE)
    )
    submission_closed = phases.is_phase_closed(challenge, phases.SUBMISSION)

    if phases.is_marathon_match(challenge):
        active_after_submission = (
            challenge is not None
            and str(challenge.status or "").upper() == "ACTIVE"
            and submission_closed
        )
        visible = appeals_open or active_after_submission or _review_phases_completed(challenge)
    else:
        visible = appeals_open or submission_closed or _review_phases_completed(challenge)

    return ListScope(Decision.allow(), own if visible else MATCH_NOTHING)


def scope_reviews_across_challenges(contexts: Iterable[ReaderContext]) -> Predicate:
    """Submitter listing without a challenge filter.

    Terminal challenges: everything with a passing summation, else own.
    Open challenges: own submissions once appeals are open or a review
    phase has completed.  Anything else is hidden.
    """
    clauses: list[Predicate] = []
    for ctx in contexts:
        if ctx.challenge is None or not ctx.own_submission_ids:
            continue
        in_challenge = field_equals("challenge_id", ctx.challenge.id)
        own = field_in("submission_id", ctx.own_submission_ids)
        if ctx.terminal:
            clauses.append(in_challenge if ctx.has_passing_submission else own)
            continue
        appeals_open = (
            phases.is_phase_open(ctx.challenge, phases.APPEALS)
            or phases.is_phase_open(ctx.challenge, phases.APPEALS_RESPONSE)
        )
        if appeals_open or _review_phases_completed(ctx.challenge):
            clauses.append(own)
    return any_of(*clauses)


def decide_record_visibility(ctx: ReaderContext, review) -> Decision:
    """Field-level visibility of one review the reader is allowed to list."""
    if ctx.full_access:
        return Decision.allow()
    if review.resource_id in ctx.roles.reviewer_resource_ids:
        return Decision.allow()

    phase_name = ctx.phase_name_of(review)
    if ctx.roles.is_reviewer and not ctx.terminal and phase_name not in phases.SCREENING_PHASES:
        return Decision.masked(MaskLevel.SCORES, "OTHER_REVIEWER")

    if review.submission_id in ctx.own_submission_ids:
        phase_done = bool(phase_name) and phases.has_phase_completed(ctx.challenge, [phase_name])
        if ctx.visibility.allow_own or phase_done:
            return Decision.allow()
        return Decision.masked(MaskLevel.FULL, "NOT_YET_VISIBLE")

    if ctx.is_submitter:
        if phases.is_first2finish(ctx.challenge) and phase_name == phases.ITERATIVE_REVIEW:
            return Decision.masked(MaskLevel.ITEMS, "OTHER_SUBMITTER_ITERATIVE")
        if not ctx.visibility.allow_any:
            return Decision.masked(MaskLevel.FULL, "OTHER_SUBMITTER")
    return Decision.allow()


def decide_read_review(ctx: ReaderContext, review) -> Decision:
    """Whether ``ctx`` may read one specific review, and with which mask."""
    if ctx.full_access:
        return Decision.allow()

    phase_name = ctx.phase_name_of(review)
    if ctx.roles.is_reviewer:
        if review.resource_id in ctx.roles.reviewer_resource_ids:
            return Decision.allow()
        if not ctx.terminal and phase_name not in phases.SCREENING_PHASES:
            return Decision.deny(
                Reason.FORBIDDEN_REVIEW_ACCESS_REVIEWER_SELF,
                "Reviewers may only read their own reviews until the challenge completes",
                review_id=review.id,
            )
        return decide_record_visibility(ctx, review)

    if not ctx.own_submission_ids:
        return Decision.deny(
            Reason.FORBIDDEN_REVIEW_ACCESS,
            "You must be a submitter on this challenge to access reviews",
            review_id=review.id,
            requester=ctx.actor.member_id,
        )

    if review.submission_id in ctx.own_submission_ids:
        phase_done = bool(phase_name) and phases.has_phase_completed(ctx.challenge, [phase_name])
        if ctx.visibility.allow_own or phase_done:
            return decide_record_visibility(ctx, review)
        return Decision.deny(
            Reason.FORBIDDEN_REVIEW_ACCESS_PHASE,
            "This review is not visible until its phase has closed",
            review_id=review.id,
            phase_id=review.phase_id,
        )

    if ctx.terminal and ctx.has_passing_submission:
        return Decision.allow()
    if phases.is_first2finish(ctx.challenge):
        return decide_record_visibility(ctx, review)
    return Decision.deny(
        Reason.FORBIDDEN_REVIEW_ACCESS_OWN_ONLY,
        "Only reviews of your own submissions are visible",
        review_id=review.id,
    )
