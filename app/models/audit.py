"""
Review audit trail model.

Models:
    - ReviewAudit: append-only record of a privileged actor's changes to a
      review, one row per mutation, with every changed field folded into
      ``description`` as ``field: before -> after`` joined by ``"; "``.
"""

from datetime import datetime, timezone

from app.models import db, new_id


class ReviewAudit(db.Model):
    """
    Immutable audit row written by the review audit recorder.

    Rows are never updated.  Deleting a review removes its audit rows
    through the FK cascade.
    """

    __tablename__ = "review_audits"
    __table_args__ = (
        db.Index("ix_review_audit_review", "review_id"),
        db.Index("ix_review_audit_submission", "submission_id"),
    )

    id = db.Column(db.String(14), primary_key=True, default=new_id)
    review_id = db.Column(
        db.String(14),
        db.ForeignKey("reviews.id", ondelete="CASCADE"),
        nullable=False,
    )
    submission_id = db.Column(db.String(14), nullable=True)
    challenge_id = db.Column(db.String(64), nullable=True)
    actor_id = db.Column(db.String(64), nullable=False)
    description = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False,
                           default=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "review_id": self.review_id,
            "submission_id": self.submission_id,
            "challenge_id": self.challenge_id,
            "actor_id": self.actor_id,
            "description": self.description,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<ReviewAudit {self.id} review={self.review_id} actor={self.actor_id}>"
