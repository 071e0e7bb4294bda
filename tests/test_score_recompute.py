"""
Score recomputation tests (database-backed).
"""

from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from app.models import db
from app.models.review import Review, ReviewItem
from app.models.submission import Submission
from app.services.score_recompute import compute_review_scores, recompute


def _make_review(scorecard_id="sc-review", answers=None, **kwargs):
    submission = Submission(id="sub-1", challenge_id="c1", member_id="2001")
    db.session.add(submission)
    review = Review(
        id="rv-1",
        resource_id="res-1",
        phase_id="ph-review",
        submission_id=submission.id,
        scorecard_id=scorecard_id,
        challenge_id="c1",
        **kwargs,
    )
    review.items = [
        ReviewItem(scorecard_question_id=qid, initial_answer=initial, final_answer=final)
        for qid, (initial, final) in (answers or {}).items()
    ]
    db.session.add(review)
    db.session.commit()
    return review


def test_recompute_writes_new_scores(scorecard):
    """Scores are written when they differ from the stored pair."""
    _make_review(answers={"q_yes": ("yes", None), "q_scale": ("5", "10")})

    result = recompute("rv-1")

    assert result.ok and result.written
    review = db.session.get(Review, "rv-1")
    assert review.initial_score == 70.0
    assert review.final_score == 100.0


def test_recompute_is_noop_when_unchanged(scorecard):
    """A second run with the same items writes nothing."""
    _make_review(answers={"q_yes": ("yes", None)})
    assert recompute("rv-1").written is True

    result = recompute("rv-1")
    assert result.ok
    assert result.written is False
    assert result.scores.initial_score == 40.0


def test_recompute_missing_review():
    """An unknown review id is reported, not raised."""
    result = recompute("nope")
    assert not result.ok
    assert "nope" in result.error


def test_recompute_without_scorecard_keeps_scores(scorecard):
    """Reviews without a scorecard keep whatever scores they hold."""
    review = _make_review(scorecard_id=None, initial_score=12.0, final_score=15.0)
    result = compute_review_scores(review)
    assert result.ok
    assert (result.scores.initial_score, result.scores.final_score) == (12.0, 15.0)


def test_recompute_storage_failure_is_logged_not_raised(scorecard):
    """A storage error rolls back and surfaces as a failed result."""
    _make_review(answers={"q_yes": ("yes", None)})
    with patch.object(db.session, "commit",
                      side_effect=OperationalError("UPDATE", {}, Exception("locked"))):
        result = recompute("rv-1")
    assert not result.ok
    assert result.written is False
