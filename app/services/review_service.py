"""
Review service: the eight core review operations plus progress and audit.

Every mutation runs the same pipeline:

    parse payload -> resolve challenge / roles -> access decision
        -> apply + commit -> recompute scores -> audit (privileged)
        -> completion event (on a transition into COMPLETED)

Reads resolve a ``ReaderContext`` per challenge, narrow the query with the
access engine's predicate, then mask each returned record.

Failure policy:
    - Access denials raise ForbiddenError with a reason code.
    - Directory failures during authorization never fall open: role lookups
      become OWNERSHIP_UNVERIFIED, challenge lookups become UpstreamError.
    - Score recompute, audit persistence and event publication are
      best-effort; they log and continue.
"""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from app.core.actor import Actor
from app.core.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)
from app.integrations.platform_gateway import (
    ChallengeSnapshot,
    DirectoryError,
    event_publisher,
    resource_directory,
)
from app.models import db
from app.models.review import Review, ReviewItem, ReviewItemComment
from app.models.scorecard import PASSING_SCORECARD_TYPES, Scorecard
from app.models.submission import ReviewSummation, Submission
from app.services import phase_catalog as phases
from app.services import review_audit
from app.services.access_policy import (
    AccessRequest,
    Action,
    MemberRoles,
    ReaderContext,
    Reason,
    RoleKind,
    classify_role,
    decide,
    decide_record_visibility,
    scope_reviews_across_challenges,
    scope_reviews_for_challenge,
)
from app.services.directory_lookups import get_lookups
from app.services.review_filters import (
    Predicate,
    ReviewListQuery,
    all_of,
    any_of,
    compile_predicate,
    field_equals,
)
from app.services.review_patches import (
    ReviewDraft,
    ReviewItemInput,
    ReviewItemPatch,
    ReviewPatch,
)
from app.services.score_recompute import recompute
from app.services.scorecard_catalog import get_question, scorecard_id_of_question
from app.services.visibility import apply_mask

logger = logging.getLogger(__name__)

COMPLETION_TOPIC = "review.action.completed"

DEFAULT_PER_PAGE = 20
MAX_PER_PAGE = 100

# Challenge statuses on which submitter identity is shown to resources
_SUBMITTER_METADATA_STATUSES = frozenset({"COMPLETED", "CANCELLED_FAILED_REVIEW"})

_PROGRESS_REVIEWER_KINDS = frozenset({
    RoleKind.REVIEWER,
    RoleKind.ITERATIVE_REVIEWER,
    RoleKind.CHECKPOINT_REVIEWER,
})


# ── Lookups ──────────────────────────────────────────────────────────────────


def _get_review_or_404(review_id: str) -> Review:
    review = db.session.get(Review, review_id)
    if review is None:
        raise NotFoundError("Review", review_id)
    return review


def _get_item_or_404(item_id: str) -> ReviewItem:
    item = db.session.get(ReviewItem, item_id)
    if item is None:
        raise NotFoundError("ReviewItem", item_id)
    return item


def _challenge(challenge_id: str, code: str = "CHALLENGE_UNAVAILABLE") -> ChallengeSnapshot:
    try:
        return get_lookups().challenge(challenge_id)
    except DirectoryError as exc:
        if exc.status_code == 404:
            raise NotFoundError("Challenge", challenge_id) from exc
        logger.warning("Challenge lookup failed for %s: %s", challenge_id, exc,
                       extra={"challenge_id": challenge_id})
        raise UpstreamError("challenge", f"Challenge {challenge_id} could not be loaded",
                            code=code) from exc


def _challenge_or_none(challenge_id: str | None) -> ChallengeSnapshot | None:
    """Challenge for display enrichment only; failures degrade to None."""
    if not challenge_id:
        return None
    try:
        return get_lookups().challenge(challenge_id)
    except DirectoryError as exc:
        logger.warning("Phase name enrichment skipped for challenge %s: %s", challenge_id, exc,
                       extra={"challenge_id": challenge_id})
        return None


def _member_roles(actor: Actor, challenge_id: str | None) -> MemberRoles:
    if actor.is_privileged or not actor.member_id or not challenge_id:
        return MemberRoles()
    try:
        return get_lookups().member_roles(challenge_id, actor.member_id)
    except DirectoryError as exc:
        logger.warning("Role lookup failed for member %s on challenge %s: %s",
                       actor.member_id, challenge_id, exc,
                       extra={"challenge_id": challenge_id, "reason_code": Reason.OWNERSHIP_UNVERIFIED})
        raise ForbiddenError(
            Reason.OWNERSHIP_UNVERIFIED,
            "Challenge roles could not be verified",
            {"challenge_id": challenge_id},
        ) from exc


def _own_submission_ids(challenge_id: str, member_id: str | None) -> frozenset[str]:
    if not member_id:
        return frozenset()
    rows = db.session.execute(
        select(Submission.id).where(
            Submission.challenge_id == challenge_id,
            Submission.member_id == str(member_id),
        )
    ).scalars()
    return frozenset(rows)


def _has_passing_submission(challenge_id: str, member_id: str | None) -> bool:
    """A passing summation on a review-type scorecard for one of the member's submissions."""
    if not member_id:
        return False
    stmt = (
        select(ReviewSummation.id)
        .join(Submission, ReviewSummation.submission_id == Submission.id)
        .join(Scorecard, ReviewSummation.scorecard_id == Scorecard.id)
        .where(
            Submission.challenge_id == challenge_id,
            Submission.member_id == str(member_id),
            ReviewSummation.is_passing.is_(True),
            Scorecard.type.in_(PASSING_SCORECARD_TYPES),
        )
        .limit(1)
    )
    return db.session.execute(stmt).first() is not None


def _reader_context(
    actor: Actor,
    challenge_id: str | None,
    roles: MemberRoles | None = None,
) -> ReaderContext:
    if not challenge_id:
        return ReaderContext(actor=actor, challenge=None)
    challenge = _challenge(challenge_id)
    if roles is None:
        roles = _member_roles(actor, challenge_id)
    return ReaderContext(
        actor=actor,
        challenge=challenge,
        roles=roles,
        own_submission_ids=_own_submission_ids(challenge_id, actor.member_id),
        has_passing_submission=_has_passing_submission(challenge_id, actor.member_id),
    )


# ── Serialisation ────────────────────────────────────────────────────────────


def _serialize(
    review: Review,
    *,
    challenge: ChallengeSnapshot | None,
    thin: bool = False,
    show_submitter: bool = False,
) -> dict:
    record = review.to_dict(include_items=not thin)
    record["phase_name"] = phases.phase_name_for(challenge, review.phase_id)
    if show_submitter and review.submission is not None:
        record["submitter_handle"] = review.submission.member_handle
        record["submitter_max_rating"] = review.submission.member_max_rating
    return record


def _shows_submitter(actor: Actor, challenge: ChallengeSnapshot | None, roles: MemberRoles) -> bool:
    if challenge is None or str(challenge.status or "").upper() not in _SUBMITTER_METADATA_STATUSES:
        return False
    return actor.is_privileged or roles.is_resource


# ── Item building / integrity ────────────────────────────────────────────────


def _validate_questions(scorecard_id: str | None, question_ids) -> None:
    for question_id in dict.fromkeys(question_ids):
        question = get_question(question_id)
        owner = scorecard_id_of_question(question)
        if owner != scorecard_id:
            raise ValidationError(
                f"Scorecard question {question_id} does not belong to scorecard {scorecard_id}",
                details={
                    "scorecard_question_id": question_id,
                    "scorecard_id": scorecard_id,
                    "question_scorecard_id": owner,
                },
                code="SCORECARD_QUESTION_MISMATCH",
            )


def _build_comments(comments, resource_id: str) -> list[ReviewItemComment]:
    return [
        ReviewItemComment(
            resource_id=c.resource_id or resource_id,
            content=c.content,
            type=c.type,
            sort_order=c.sort_order,
        )
        for c in comments
    ]


def _build_item(data: ReviewItemInput, review: Review, actor: Actor) -> ReviewItem:
    return ReviewItem(
        scorecard_question_id=data.scorecard_question_id,
        initial_answer=data.initial_answer,
        final_answer=data.final_answer,
        manager_comment=data.manager_comment,
        comments=_build_comments(data.comments, review.resource_id),
        created_by=actor.actor_id,
        updated_by=actor.actor_id,
    )


def _commit(conflict_on: Review | None = None) -> None:
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        if conflict_on is None:
            raise
        raise ConflictError(
            "Review",
            "resource_id/submission_id/scorecard_id",
            f"{conflict_on.resource_id}/{conflict_on.submission_id}/{conflict_on.scorecard_id}",
        ) from exc


def _recompute(review_id: str) -> None:
    result = recompute(review_id)
    if not result.ok:
        logger.warning("Scores not recomputed for review %s: %s", review_id, result.error,
                       extra={"review_id": review_id})


# ── Completion event ─────────────────────────────────────────────────────────


def _completion_payload(review: Review) -> dict:
    reviewer = None
    try:
        reviewer = get_lookups().resource(review.resource_id)
    except DirectoryError as exc:
        logger.warning("Reviewer resource %s unavailable for completion event: %s",
                       review.resource_id, exc, extra={"review_id": review.id})
    submission = review.submission
    completed_at = review.review_date or review.updated_at or datetime.now(timezone.utc)
    return {
        "challengeId": review.challenge_id,
        "submissionId": review.submission_id,
        "phaseId": review.phase_id,
        "reviewId": review.id,
        "scorecardId": review.scorecard_id,
        "reviewerResourceId": review.resource_id,
        "reviewerHandle": reviewer.member_handle if reviewer else None,
        "reviewerMemberId": reviewer.member_id if reviewer else None,
        "submitterMemberId": submission.member_id if submission else None,
        "submitterHandle": submission.member_handle if submission else None,
        "completedAt": completed_at.isoformat(),
        "initialScore": review.initial_score,
    }


def _publish_completion(review: Review) -> None:
    payload = _completion_payload(review)
    try:
        event_publisher.publish(COMPLETION_TOPIC, payload)
    except DirectoryError:
        logger.error("Failed to publish %s for review %s", COMPLETION_TOPIC, review.id,
                     exc_info=True, extra={"review_id": review.id, "event_topic": COMPLETION_TOPIC})


# ═════════════════════════════════════════════════════════════════════════════
# Reviews
# ═════════════════════════════════════════════════════════════════════════════


def create_review(actor: Actor, payload) -> dict:
    """Create a review (and its items) for the reviewer resource in the payload.

    Post-Mortem scorecards may omit the submission; the challenge then comes
    from the reviewer resource and the Post-Mortem phase must be open.
    """
    draft = ReviewDraft.from_payload(payload)

    scorecard = db.session.get(Scorecard, draft.scorecard_id)
    if scorecard is None:
        raise NotFoundError("Scorecard", draft.scorecard_id)
    post_mortem = scorecard.type == "POST_MORTEM"

    submission = None
    if draft.submission_id:
        submission = db.session.get(Submission, draft.submission_id)
        if submission is None:
            raise NotFoundError("Submission", draft.submission_id)
    elif not post_mortem:
        raise ValidationError(
            "submission_id is required unless the scorecard is a Post-Mortem scorecard",
            details={"submission_id": "required"},
            code="SUBMISSION_ID_REQUIRED",
        )

    try:
        resource = get_lookups().resource(draft.resource_id)
    except DirectoryError as exc:
        raise UpstreamError("resource", f"Resource {draft.resource_id} could not be loaded") from exc
    if resource is None:
        raise NotFoundError("Resource", draft.resource_id)

    challenge_id = submission.challenge_id if submission else resource.challenge_id
    if not challenge_id:
        raise ValidationError("Unable to determine the challenge for this review",
                              details={"resource_id": resource.id}, code="MISSING_CHALLENGE_ID")
    if submission and resource.challenge_id and resource.challenge_id != submission.challenge_id:
        raise ValidationError(
            "The resource and the submission belong to different challenges",
            details={"resource_id": resource.id, "submission_id": submission.id},
            code="RESOURCE_CHALLENGE_MISMATCH",
        )

    challenge = _challenge(challenge_id)
    target = phases.resolve_target_phase(challenge, post_mortem=post_mortem)
    if target is None:
        raise ValidationError(
            f"Challenge {challenge_id} does not have a "
            f"{'Post-Mortem' if post_mortem else 'Review'} phase",
            details={"challenge_id": challenge_id},
            code="POST_MORTEM_PHASE_NOT_FOUND" if post_mortem else "REVIEW_PHASE_NOT_FOUND",
        )
    if post_mortem and target.is_open is not True:
        raise ValidationError(
            f"Post-Mortem phase is not currently open for challenge {challenge_id}",
            details={"challenge_id": challenge_id},
            code="POST_MORTEM_PHASE_CLOSED",
        )

    decide(AccessRequest(
        actor=actor,
        action=Action.CREATE_REVIEW,
        resource=resource,
        target_phase=target,
    )).raise_if_denied()

    _validate_questions(scorecard.id, (i.scorecard_question_id for i in draft.items))

    review = Review(
        resource_id=resource.id,
        phase_id=target.id,
        submission_id=submission.id if submission else None,
        scorecard_id=scorecard.id,
        challenge_id=challenge_id,
        type_id=draft.type_id,
        status=draft.status,
        committed=draft.committed,
        review_date=draft.review_date,
        review_metadata=draft.metadata,
        created_by=actor.actor_id,
        updated_by=actor.actor_id,
    )
    review.items = [_build_item(i, review, actor) for i in draft.items]
    db.session.add(review)
    _commit(conflict_on=review)
    logger.info("Review %s created on phase %s", review.id, target.name,
                extra={"review_id": review.id, "challenge_id": challenge_id,
                       "submission_id": review.submission_id, "actor_id": actor.actor_id})

    _recompute(review.id)
    if review.status == "COMPLETED":
        _publish_completion(review)
    return _serialize(review, challenge=challenge)


def update_review(actor: Actor, review_id: str, payload) -> dict:
    """Partial update; ``review_items`` replaces the whole item set."""
    review = _get_review_or_404(review_id)
    patch = ReviewPatch.from_payload(payload)

    challenge = None
    roles = MemberRoles()
    if not actor.is_privileged and actor.member_id and not patch.immutable_touched:
        if review.challenge_id:
            challenge = _challenge(review.challenge_id, code="CHALLENGE_STATUS_UNAVAILABLE")
        roles = _member_roles(actor, review.challenge_id)

    decide(AccessRequest(
        actor=actor,
        action=Action.UPDATE_REVIEW,
        roles=roles,
        review=review,
        challenge=challenge,
        review_patch=patch,
    )).raise_if_denied()

    scorecard_id = patch.get("scorecard_id", review.scorecard_id)
    if patch.touched("scorecard_id") and db.session.get(Scorecard, scorecard_id) is None:
        raise NotFoundError("Scorecard", scorecard_id)
    if patch.touched("review_items"):
        _validate_questions(scorecard_id, (i.scorecard_question_id for i in patch.get("review_items")))
    elif scorecard_id != review.scorecard_id:
        _validate_questions(scorecard_id, (i.scorecard_question_id for i in review.items))

    before = review_audit.snapshot_review(review)
    was_completed = review.status == "COMPLETED"
    reopen = patch.is_reopen(review.status)

    for name in ("status", "committed", "review_date", "type_id", "scorecard_id"):
        if patch.touched(name):
            setattr(review, name, patch.get(name))
    if patch.touched("metadata"):
        review.review_metadata = patch.get("metadata")
    if patch.touched("review_items"):
        review.items.clear()
        db.session.flush()
        review.items.extend(_build_item(i, review, actor) for i in patch.get("review_items"))
    if reopen:
        review.committed = False
        review.initial_score = None
        review.final_score = None
        review.review_date = patch.get("review_date")
    review.updated_by = actor.actor_id

    _commit()
    logger.info("Review %s updated (%s)", review.id, ", ".join(sorted(patch.keys)),
                extra={"review_id": review.id, "actor_id": actor.actor_id})

    if not reopen:
        _recompute(review.id)

    after = review_audit.snapshot_review(review)
    review_audit.record_if_privileged(actor, before, after, copilot=roles.is_copilot)

    if not was_completed and review.status == "COMPLETED":
        _publish_completion(review)
    return _serialize(review, challenge=challenge or _challenge_or_none(review.challenge_id))


def delete_review(actor: Actor, review_id: str) -> None:
    review = _get_review_or_404(review_id)
    roles = _member_roles(actor, review.challenge_id)
    decide(AccessRequest(actor=actor, action=Action.DELETE_REVIEW, roles=roles,
                         review=review)).raise_if_denied()
    db.session.delete(review)
    _commit()
    logger.info("Review %s deleted", review_id,
                extra={"review_id": review_id, "actor_id": actor.actor_id})


def get_review(actor: Actor, review_id: str) -> dict:
    review = _get_review_or_404(review_id)
    if actor.is_privileged:
        challenge = _challenge_or_none(review.challenge_id)
        return _serialize(review, challenge=challenge,
                          show_submitter=_shows_submitter(actor, challenge, MemberRoles()))

    ctx = _reader_context(actor, review.challenge_id)
    decision = decide(AccessRequest(actor=actor, action=Action.READ_REVIEW,
                                    review=review, reader=ctx))
    decision.raise_if_denied()
    record = _serialize(review, challenge=ctx.challenge,
                        show_submitter=_shows_submitter(actor, ctx.challenge, ctx.roles))
    return apply_mask(record, decision)


def _pagination(args) -> tuple[int, int]:
    try:
        page = int(args.get("page", 1))
        per_page = int(args.get("per_page", DEFAULT_PER_PAGE))
    except (TypeError, ValueError) as exc:
        raise ValidationError("page and per_page must be integers",
                              code="ERR_VALIDATION_INVALID") from exc
    return max(page, 1), max(1, min(per_page, MAX_PER_PAGE))


def _member_contexts(actor: Actor) -> tuple[dict[str, ReaderContext], Predicate]:
    """Reader contexts for every challenge the member takes part in, and their scope."""
    try:
        resources = resource_directory.get_resources(member_id=actor.member_id)
    except DirectoryError as exc:
        raise ForbiddenError(Reason.OWNERSHIP_UNVERIFIED, "Challenge roles could not be verified",
                             {"member_id": actor.member_id}) from exc

    by_challenge: dict[str, list] = defaultdict(list)
    for resource in resources:
        if resource.challenge_id:
            by_challenge[str(resource.challenge_id)].append(resource)
    submitted = db.session.execute(
        select(Submission.challenge_id)
        .where(Submission.member_id == str(actor.member_id), Submission.challenge_id.is_not(None))
        .distinct()
    ).scalars()
    challenge_ids = list(dict.fromkeys([*by_challenge, *submitted]))

    contexts: dict[str, ReaderContext] = {}
    role_clauses = []
    submitter_contexts = []
    for challenge_id in challenge_ids:
        roles = MemberRoles.resolve(actor.member_id, by_challenge.get(challenge_id, ()))
        try:
            ctx = _reader_context(actor, challenge_id, roles=roles)
        except UpstreamError:
            logger.warning("Skipping reviews of challenge %s: challenge unavailable", challenge_id,
                           extra={"challenge_id": challenge_id})
            continue
        contexts[challenge_id] = ctx
        if ctx.full_access or roles.is_reviewer:
            scope = scope_reviews_for_challenge(ctx)
            role_clauses.append(all_of(field_equals("challenge_id", challenge_id), scope.predicate))
        else:
            submitter_contexts.append(ctx)
    predicate = any_of(*role_clauses, scope_reviews_across_challenges(submitter_contexts))
    return contexts, predicate


def list_reviews(actor: Actor, args) -> dict:
    """List reviews visible to ``actor``, filtered by ``args`` and paginated.

    Returns ``{"data": [...], "meta": {page, per_page, total_count, total_pages}}``.
    """
    query = ReviewListQuery.from_args(args)
    page, per_page = _pagination(args)
    thin = str(args.get("thin", "")).strip().lower() == "true"

    predicate = query.predicate()
    contexts: dict[str, ReaderContext] = {}
    if not actor.is_privileged:
        if not actor.member_id:
            raise ForbiddenError(Reason.MISSING_MEMBER_ID, "Member id missing from token")
        if query.challenge_id:
            ctx = _reader_context(actor, query.challenge_id)
            scope = scope_reviews_for_challenge(ctx)
            scope.decision.raise_if_denied()
            contexts[query.challenge_id] = ctx
            predicate = all_of(predicate, scope.predicate)
        else:
            contexts, scoped = _member_contexts(actor)
            predicate = all_of(predicate, scoped)

    stmt = select(Review).where(compile_predicate(predicate))
    total = db.session.scalar(select(func.count()).select_from(stmt.subquery())) or 0
    reviews = db.session.execute(
        stmt.order_by(Review.created_at.desc(), Review.id)
        .offset((page - 1) * per_page)
        .limit(per_page)
    ).scalars().all()

    data = []
    for review in reviews:
        if actor.is_privileged:
            challenge = _challenge_or_none(review.challenge_id)
            data.append(_serialize(review, challenge=challenge, thin=thin,
                                   show_submitter=_shows_submitter(actor, challenge, MemberRoles())))
            continue
        ctx = contexts[review.challenge_id]
        record = _serialize(review, challenge=ctx.challenge, thin=thin,
                            show_submitter=_shows_submitter(actor, ctx.challenge, ctx.roles))
        data.append(apply_mask(record, decide_record_visibility(ctx, review)))

    return {
        "data": data,
        "meta": {
            "page": page,
            "per_page": per_page,
            "total_count": total,
            "total_pages": math.ceil(total / per_page) if total else 0,
        },
    }


# ═════════════════════════════════════════════════════════════════════════════
# Review items
# ═════════════════════════════════════════════════════════════════════════════


def _item_roles(actor: Actor, review: Review) -> MemberRoles:
    if actor.is_privileged:
        return MemberRoles()
    return _member_roles(actor, review.challenge_id)


def _after_item_change(actor: Actor, review_id: str, before: dict, roles: MemberRoles) -> None:
    _recompute(review_id)
    review = db.session.get(Review, review_id)
    if review is not None:
        review_audit.record_if_privileged(actor, before, review_audit.snapshot_review(review),
                                          copilot=roles.is_copilot)


def create_review_item(actor: Actor, payload) -> dict:
    data = ReviewItemInput.from_payload(payload, require_review_id=True)
    review = _get_review_or_404(data.review_id)
    roles = _item_roles(actor, review)
    decide(AccessRequest(actor=actor, action=Action.CREATE_ITEM, roles=roles,
                         review=review)).raise_if_denied()
    _validate_questions(review.scorecard_id, [data.scorecard_question_id])

    before = review_audit.snapshot_review(review)
    item = _build_item(data, review, actor)
    review.items.append(item)
    _commit()
    logger.info("Review item %s added to review %s", item.id, review.id,
                extra={"review_id": review.id, "review_item_id": item.id})

    _after_item_change(actor, review.id, before, roles)
    return item.to_dict()


def update_review_item(actor: Actor, item_id: str, payload) -> dict:
    item = _get_item_or_404(item_id)
    patch = ReviewItemPatch.from_payload(payload)
    if patch.get("review_id") not in (None, item.review_id):
        raise ValidationError(
            f"Review item {item_id} belongs to review {item.review_id}",
            details={"review_item_id": item_id, "review_id": patch.get("review_id")},
            code="REVIEW_ITEM_REVIEW_MISMATCH",
        )
    review = item.review
    roles = _item_roles(actor, review)
    decide(AccessRequest(
        actor=actor,
        action=Action.UPDATE_ITEM,
        roles=roles,
        review=review,
        item_patch=patch,
        existing_item=item,
    )).raise_if_denied()
    if patch.changed("scorecard_question_id", item):
        _validate_questions(review.scorecard_id, [patch.get("scorecard_question_id")])

    before = review_audit.snapshot_review(review)
    for name in ("scorecard_question_id", "initial_answer", "final_answer", "manager_comment"):
        if patch.touched(name):
            setattr(item, name, patch.get(name))
    if patch.touched("comments"):
        item.comments.clear()
        db.session.flush()
        item.comments.extend(_build_comments(patch.get("comments"), review.resource_id))
    item.updated_by = actor.actor_id
    _commit()
    logger.info("Review item %s updated", item.id,
                extra={"review_id": review.id, "review_item_id": item.id, "actor_id": actor.actor_id})

    _after_item_change(actor, review.id, before, roles)
    return item.to_dict()


def delete_review_item(actor: Actor, item_id: str) -> None:
    item = _get_item_or_404(item_id)
    review = item.review
    roles = _item_roles(actor, review)
    decide(AccessRequest(actor=actor, action=Action.DELETE_ITEM, roles=roles, review=review,
                         existing_item=item)).raise_if_denied()

    before = review_audit.snapshot_review(review)
    review_id = review.id
    review.items.remove(item)
    _commit()
    logger.info("Review item %s deleted", item_id,
                extra={"review_id": review_id, "review_item_id": item_id})

    _after_item_change(actor, review_id, before, roles)


# ═════════════════════════════════════════════════════════════════════════════
# Progress / audit read-out
# ═════════════════════════════════════════════════════════════════════════════


def get_review_progress(actor: Actor, challenge_id: str) -> dict:
    """Committed reviews against reviewers x active submissions, as a percentage."""
    if not challenge_id or not challenge_id.strip():
        raise ValidationError("challenge_id is required", code="ERR_VALIDATION_REQUIRED")
    if not actor.is_privileged:
        roles = _member_roles(actor, challenge_id)
        if not roles.is_resource:
            raise ForbiddenError(Reason.FORBIDDEN_ROLE, "A role on this challenge is required",
                                 {"challenge_id": challenge_id})

    try:
        resources = get_lookups().challenge_resources(challenge_id)
    except DirectoryError as exc:
        raise UpstreamError("resource", f"Resources for challenge {challenge_id} could not be loaded") from exc
    total_reviewers = sum(1 for r in resources if classify_role(r.role_name) in _PROGRESS_REVIEWER_KINDS)

    submission_ids = select(Submission.id).where(
        Submission.challenge_id == challenge_id,
        Submission.status == "ACTIVE",
    )
    total_submissions = db.session.scalar(
        select(func.count()).select_from(submission_ids.subquery())) or 0
    total_committed = db.session.scalar(
        select(func.count(Review.id)).where(
            Review.submission_id.in_(submission_ids),
            Review.committed.is_(True),
        )
    ) or 0

    percentage = 0.0
    if total_reviewers and total_submissions:
        percentage = round(total_committed / (total_reviewers * total_submissions) * 100, 2)
    percentage = min(percentage, 100.0)

    logger.info("Review progress %.2f%% for challenge %s", percentage, challenge_id,
                extra={"challenge_id": challenge_id})
    return {
        "challenge_id": challenge_id,
        "total_reviewers": total_reviewers,
        "total_submissions": total_submissions,
        "total_submitted_reviews": total_committed,
        "progress_percentage": percentage,
        "calculated_at": datetime.now(timezone.utc).isoformat(),
    }


def list_review_audit(actor: Actor, review_id: str) -> list[dict]:
    if not actor.is_privileged:
        raise ForbiddenError(Reason.FORBIDDEN_ROLE,
                             "Audit entries are available to administrators and machine tokens only",
                             {"review_id": review_id})
    _get_review_or_404(review_id)
    return [entry.to_dict() for entry in review_audit.list_review_audit(review_id)]
