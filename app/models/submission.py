"""
Submission store models.

Models:
    - Submission: one uploaded entry by a member on a challenge.
    - ReviewSummation: aggregate outcome of a submission against a scorecard;
      ``is_passing`` drives post-completion visibility for submitters.
"""

from datetime import datetime, timezone

from app.models import db, new_id

SUBMISSION_TYPES = frozenset({"CONTEST_SUBMISSION", "CHECKPOINT_SUBMISSION"})


class Submission(db.Model):
    __tablename__ = "submissions"
    __table_args__ = (
        db.Index("ix_submission_challenge_member", "challenge_id", "member_id"),
    )

    id = db.Column(db.String(14), primary_key=True, default=new_id)
    challenge_id = db.Column(db.String(64), nullable=True, index=True)
    member_id = db.Column(db.String(64), nullable=True, index=True)
    member_handle = db.Column(db.String(100), nullable=True)
    member_max_rating = db.Column(db.Integer, nullable=True)
    type = db.Column(db.String(30), nullable=False, default="CONTEST_SUBMISSION")
    status = db.Column(db.String(20), nullable=False, default="ACTIVE")
    created_at = db.Column(db.DateTime(timezone=True), nullable=False,
                           default=lambda: datetime.now(timezone.utc))

    summations = db.relationship(
        "ReviewSummation",
        backref="submission",
        cascade="all, delete-orphan",
        lazy="select",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "challenge_id": self.challenge_id,
            "member_id": self.member_id,
            "type": self.type,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Submission {self.id} challenge={self.challenge_id} member={self.member_id}>"


class ReviewSummation(db.Model):
    __tablename__ = "review_summations"

    id = db.Column(db.String(14), primary_key=True, default=new_id)
    submission_id = db.Column(
        db.String(14),
        db.ForeignKey("submissions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    scorecard_id = db.Column(
        db.String(14),
        db.ForeignKey("scorecards.id", ondelete="SET NULL"),
        nullable=True,
    )
    aggregate_score = db.Column(db.Float, nullable=False, default=0.0)
    is_passing = db.Column(db.Boolean, nullable=False, default=False)
    is_final = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False,
                           default=lambda: datetime.now(timezone.utc))

    scorecard = db.relationship("Scorecard", lazy="joined")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "submission_id": self.submission_id,
            "scorecard_id": self.scorecard_id,
            "aggregate_score": self.aggregate_score,
            "is_passing": self.is_passing,
            "is_final": self.is_final,
        }
