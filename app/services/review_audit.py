"""
Field-level audit trail for privileged review changes.

Machine, admin and copilot mutations are diffed against a snapshot taken
before the change and stored as one ``ReviewAudit`` row.  Each changed field
renders as ``field: before -> after``; per-item fields are keyed by the
scorecard question, e.g. ``review_item[scorecard_question_id=q1].final_answer``.

Audit persistence is best-effort: a failure is logged and rolled back, it
never fails the mutation that was already committed.
"""

from __future__ import annotations

import json
import logging
from datetime import date, datetime

from sqlalchemy.exc import SQLAlchemyError

from app.core.actor import Actor
from app.models import db
from app.models.audit import ReviewAudit

logger = logging.getLogger(__name__)

TRACKED_REVIEW_FIELDS = (
    "status",
    "committed",
    "final_score",
    "initial_score",
    "review_date",
    "metadata",
    "type_id",
    "scorecard_id",
)
TRACKED_ITEM_FIELDS = ("initial_answer", "final_answer", "manager_comment")


def snapshot_review(review) -> dict:
    """Capture the audited fields of ``review`` as plain values."""
    return {
        "id": review.id,
        "submission_id": review.submission_id,
        "challenge_id": review.challenge_id,
        "status": review.status,
        "committed": review.committed,
        "final_score": review.final_score,
        "initial_score": review.initial_score,
        "review_date": review.review_date,
        "metadata": review.review_metadata,
        "type_id": review.type_id,
        "scorecard_id": review.scorecard_id,
        "items": {
            item.scorecard_question_id: {name: getattr(item, name) for name in TRACKED_ITEM_FIELDS}
            for item in review.items
        },
    }


def _canonical(value):
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (dict, list)):
        return json.dumps(value, sort_keys=True, default=str)
    return value


def values_equal(before, after) -> bool:
    return _canonical(before) == _canonical(after)


def format_value(value) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (dict, list)):
        return json.dumps(value, sort_keys=True, default=str)
    return str(value)


def diff_snapshots(before: dict, after: dict) -> list[str]:
    changes = []
    for name in TRACKED_REVIEW_FIELDS:
        old, new = before.get(name), after.get(name)
        if not values_equal(old, new):
            changes.append(f"{name}: {format_value(old)} -> {format_value(new)}")

    before_items = before.get("items") or {}
    after_items = after.get("items") or {}
    for question_id in sorted(set(before_items) | set(after_items), key=str):
        old_item = before_items.get(question_id) or {}
        new_item = after_items.get(question_id) or {}
        for name in TRACKED_ITEM_FIELDS:
            old, new = old_item.get(name), new_item.get(name)
            if not values_equal(old, new):
                changes.append(
                    f"review_item[scorecard_question_id={question_id}].{name}: "
                    f"{format_value(old)} -> {format_value(new)}"
                )
    return changes


def record_if_privileged(
    actor: Actor,
    before: dict,
    after: dict,
    *,
    copilot: bool = False,
) -> ReviewAudit | None:
    """Persist one audit row when a machine, admin or copilot changed something."""
    if not (actor.is_machine or actor.is_admin or copilot):
        return None
    actor_id = actor.actor_id
    if not actor_id:
        logger.warning("Audit skipped for review %s: actor id unresolved", after.get("id"),
                       extra={"review_id": after.get("id")})
        return None
    changes = diff_snapshots(before, after)
    if not changes:
        return None

    entry = ReviewAudit(
        review_id=after.get("id") or before.get("id"),
        submission_id=after.get("submission_id") or before.get("submission_id"),
        challenge_id=after.get("challenge_id") or before.get("challenge_id"),
        actor_id=actor_id,
        description="; ".join(changes),
    )
    try:
        db.session.add(entry)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.error("Failed to persist audit for review %s", entry.review_id,
                     exc_info=True, extra={"review_id": entry.review_id, "actor_id": actor_id})
        return None
    logger.info("Audit recorded for review %s (%d change(s))", entry.review_id, len(changes),
                extra={"review_id": entry.review_id, "actor_id": actor_id})
    return entry


def list_review_audit(review_id: str) -> list[ReviewAudit]:
    return list(db.session.execute(
        db.select(ReviewAudit)
        .where(ReviewAudit.review_id == review_id)
        .order_by(ReviewAudit.created_at.desc(), ReviewAudit.id.desc())
    ).scalars())
