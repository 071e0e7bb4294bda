"""
Best-effort score recomputation for a review.

``recompute(review_id)`` reads the review's current items, aggregates them
against the review's scorecard and writes the new pair only when it differs
from what is stored.  It never raises: scoring is a derived value and must
not block the mutation that triggered it.  Callers get a ``RecomputeResult``
and can tell "nothing to do", "written" and "failed, logged" apart.

Must run after the triggering mutation is committed; it commits its own write.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import NotFoundError
from app.models import db
from app.models.review import Review
from app.services.score_aggregator import Scores, aggregate, answers_from_items
from app.services.scorecard_catalog import get_scorecard_tree

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecomputeResult:
    scores: Scores | None
    written: bool = False
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def compute_review_scores(review: Review) -> RecomputeResult:
    """Aggregate ``review``'s items without writing anything."""
    if not review.scorecard_id:
        return RecomputeResult(Scores(review.initial_score, review.final_score))
    try:
        tree = get_scorecard_tree(review.scorecard_id)
    except NotFoundError as exc:
        logger.warning("Scorecard missing for review %s: %s", review.id, exc,
                       extra={"review_id": review.id})
        return RecomputeResult(None, error=str(exc))
    return RecomputeResult(aggregate(tree, answers_from_items(review.items)))


def recompute(review_id: str) -> RecomputeResult:
    try:
        review = db.session.get(Review, review_id)
        if review is None:
            return RecomputeResult(None, error=f"Review id={review_id} not found")
        db.session.expire(review)

        computed = compute_review_scores(review)
        if not computed.ok or computed.scores is None:
            return computed

        scores = computed.scores
        if (review.initial_score, review.final_score) == (scores.initial_score, scores.final_score):
            logger.debug("Scores unchanged for review %s", review_id, extra={"review_id": review_id})
            return RecomputeResult(scores, written=False)

        review.initial_score = scores.initial_score
        review.final_score = scores.final_score
        db.session.commit()
        logger.debug(
            "Scores updated for review %s: initial=%s final=%s",
            review_id, scores.initial_score, scores.final_score,
            extra={"review_id": review_id},
        )
        return RecomputeResult(scores, written=True)
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("Score recompute failed for review %s", review_id,
                     exc_info=True, extra={"review_id": review_id})
        return RecomputeResult(None, error=str(exc))
