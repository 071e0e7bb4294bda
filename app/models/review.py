"""
Review domain models.

Models:
    - Review:            one reviewer's evaluation of a submission against a scorecard.
    - ReviewItem:        the answer to one scorecard question inside a review.
    - ReviewItemComment: reviewer remarks attached to an item.
    - Appeal:            a submitter's challenge against one comment.

Business rules (enforced in review_service, not here):
    - initial_score / final_score are derived by the score aggregator and are
      never accepted from callers.
    - resource_id, phase_id and submission_id are fixed after creation.
    - (resource_id, submission_id, scorecard_id) is unique.
"""

from datetime import datetime, timezone

from app.models import db, new_id

# ── Constants ─────────────────────────────────────────────────────────────────

REVIEW_STATUSES = frozenset({
    "PENDING",
    "IN_PROGRESS",
    "COMPLETED",
    "DRAFT",
    "SUBMITTED",
    "APPROVED",
    "REJECTED",
})

# Statuses a COMPLETED review may be reopened into
REOPEN_STATUSES = frozenset({"PENDING", "IN_PROGRESS"})

COMMENT_TYPES = frozenset({"COMMENT", "REQUIRED", "RECOMMENDED"})


def _iso(value):
    return value.isoformat() if value else None


class Review(db.Model):
    __tablename__ = "reviews"
    __table_args__ = (
        db.UniqueConstraint(
            "resource_id", "submission_id", "scorecard_id",
            name="uq_review_resource_submission_scorecard",
        ),
        db.Index("ix_review_challenge_phase", "challenge_id", "phase_id"),
    )

    id = db.Column(db.String(14), primary_key=True, default=new_id)
    resource_id = db.Column(db.String(64), nullable=False, index=True)
    phase_id = db.Column(db.String(64), nullable=False, index=True)
    submission_id = db.Column(
        db.String(14),
        db.ForeignKey("submissions.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
        comment="NULL for submission-less review types (Post-Mortem)",
    )
    scorecard_id = db.Column(
        db.String(14),
        db.ForeignKey("scorecards.id"),
        nullable=True,
        index=True,
    )
    challenge_id = db.Column(db.String(64), nullable=True, index=True)
    type_id = db.Column(db.String(64), nullable=True)
    status = db.Column(db.String(20), nullable=True, default="PENDING", index=True)
    committed = db.Column(db.Boolean, nullable=False, default=False)
    initial_score = db.Column(db.Float, nullable=True)
    final_score = db.Column(db.Float, nullable=True)
    review_date = db.Column(db.DateTime(timezone=True), nullable=True)
    review_metadata = db.Column("metadata", db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False,
                           default=lambda: datetime.now(timezone.utc))
    created_by = db.Column(db.String(64), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True,
                           onupdate=lambda: datetime.now(timezone.utc))
    updated_by = db.Column(db.String(64), nullable=True)

    items = db.relationship(
        "ReviewItem",
        backref="review",
        cascade="all, delete-orphan",
        order_by="ReviewItem.created_at",
        lazy="selectin",
    )
    submission = db.relationship("Submission", lazy="joined")

    @property
    def appeals(self) -> list:
        return [
            appeal
            for item in self.items
            for comment in item.comments
            for appeal in comment.appeals
        ]

    def to_dict(self, include_items: bool = True) -> dict:
        result = {
            "id": self.id,
            "resource_id": self.resource_id,
            "phase_id": self.phase_id,
            "submission_id": self.submission_id,
            "scorecard_id": self.scorecard_id,
            "challenge_id": self.challenge_id,
            "type_id": self.type_id,
            "status": self.status,
            "committed": self.committed,
            "initial_score": self.initial_score,
            "final_score": self.final_score,
            "review_date": _iso(self.review_date),
            "metadata": self.review_metadata,
            "created_at": _iso(self.created_at),
            "created_by": self.created_by,
            "updated_at": _iso(self.updated_at),
            "updated_by": self.updated_by,
        }
        if include_items:
            result["review_items"] = [i.to_dict() for i in self.items]
            result["appeals"] = [a.to_dict() for a in self.appeals]
        return result

    def __repr__(self):
        return f"<Review {self.id} [{self.status}] submission={self.submission_id}>"


class ReviewItem(db.Model):
    __tablename__ = "review_items"

    id = db.Column(db.String(14), primary_key=True, default=new_id)
    review_id = db.Column(
        db.String(14),
        db.ForeignKey("reviews.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    scorecard_question_id = db.Column(
        db.String(14),
        db.ForeignKey("scorecard_questions.id"),
        nullable=False,
        index=True,
    )
    initial_answer = db.Column(db.Text, nullable=False)
    final_answer = db.Column(db.Text, nullable=True)
    manager_comment = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False,
                           default=lambda: datetime.now(timezone.utc))
    created_by = db.Column(db.String(64), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True,
                           onupdate=lambda: datetime.now(timezone.utc))
    updated_by = db.Column(db.String(64), nullable=True)

    comments = db.relationship(
        "ReviewItemComment",
        backref="review_item",
        cascade="all, delete-orphan",
        order_by="ReviewItemComment.sort_order",
        lazy="selectin",
    )

    @property
    def effective_final_answer(self):
        return self.final_answer if self.final_answer is not None else self.initial_answer

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "review_id": self.review_id,
            "scorecard_question_id": self.scorecard_question_id,
            "initial_answer": self.initial_answer,
            "final_answer": self.final_answer,
            "manager_comment": self.manager_comment,
            "comments": [c.to_dict() for c in self.comments],
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class ReviewItemComment(db.Model):
    __tablename__ = "review_item_comments"

    id = db.Column(db.String(14), primary_key=True, default=new_id)
    review_item_id = db.Column(
        db.String(14),
        db.ForeignKey("review_items.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    resource_id = db.Column(db.String(64), nullable=False)
    content = db.Column(db.Text, nullable=False)
    type = db.Column(db.String(20), nullable=False, default="COMMENT",
                     comment="COMMENT | REQUIRED | RECOMMENDED")
    sort_order = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False,
                           default=lambda: datetime.now(timezone.utc))

    appeals = db.relationship(
        "Appeal",
        backref="comment",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "resource_id": self.resource_id,
            "content": self.content,
            "type": self.type,
            "sort_order": self.sort_order,
        }


class Appeal(db.Model):
    __tablename__ = "appeals"

    id = db.Column(db.String(14), primary_key=True, default=new_id)
    review_item_comment_id = db.Column(
        db.String(14),
        db.ForeignKey("review_item_comments.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    resource_id = db.Column(db.String(64), nullable=False)
    content = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False,
                           default=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "review_item_comment_id": self.review_item_comment_id,
            "resource_id": self.resource_id,
            "content": self.content,
            "created_at": _iso(self.created_at),
        }
