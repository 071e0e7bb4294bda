"""
Scorecard catalog models.

A scorecard is a weighted three-level hierarchy:

    Scorecard ─┬─ ScorecardGroup (weight)
               │     └─ ScorecardSection (weight)
               │           └─ ScorecardQuestion (weight, type, scale_min/scale_max)

Rows are written by the catalog owners and only read by the review engine;
the engine never mutates a scorecard while reviews reference it.
"""

from datetime import datetime, timezone

from app.models import db, new_id

# ── Constants ─────────────────────────────────────────────────────────────────

SCORECARD_TYPES = frozenset({
    "SCREENING",
    "REVIEW",
    "APPROVAL",
    "POST_MORTEM",
    "SPECIFICATION_REVIEW",
    "CHECKPOINT_SCREENING",
    "CHECKPOINT_REVIEW",
    "ITERATIVE_REVIEW",
})

# Scorecard types whose passing summation unlocks full visibility for a submitter
PASSING_SCORECARD_TYPES = frozenset({"REVIEW", "ITERATIVE_REVIEW", "APPROVAL"})

QUESTION_TYPES = frozenset({"YES_NO", "SCALE", "TEST_CASE", "OTHER"})


class Scorecard(db.Model):
    """Top-level scorecard definition."""

    __tablename__ = "scorecards"

    id = db.Column(db.String(14), primary_key=True, default=new_id)
    name = db.Column(db.String(255), nullable=False)
    type = db.Column(db.String(30), nullable=False, default="REVIEW",
                     comment="SCREENING | REVIEW | APPROVAL | POST_MORTEM | ...")
    status = db.Column(db.String(20), nullable=False, default="ACTIVE")
    version = db.Column(db.String(20), nullable=False, default="1.0")
    minimum_passing_score = db.Column(db.Float, nullable=False, default=50.0)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False,
                           default=lambda: datetime.now(timezone.utc))

    groups = db.relationship(
        "ScorecardGroup",
        backref="scorecard",
        cascade="all, delete-orphan",
        order_by="ScorecardGroup.sort_order",
        lazy="selectin",
    )

    def to_dict(self, include_tree: bool = False) -> dict:
        result = {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "status": self.status,
            "version": self.version,
            "minimum_passing_score": self.minimum_passing_score,
        }
        if include_tree:
            result["groups"] = [g.to_dict() for g in self.groups]
        return result

    def __repr__(self):
        return f"<Scorecard {self.id}: {self.name}>"


class ScorecardGroup(db.Model):
    __tablename__ = "scorecard_groups"

    id = db.Column(db.String(14), primary_key=True, default=new_id)
    scorecard_id = db.Column(
        db.String(14),
        db.ForeignKey("scorecards.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = db.Column(db.String(255), nullable=False, default="")
    weight = db.Column(db.Float, nullable=False, default=0.0)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    sections = db.relationship(
        "ScorecardSection",
        backref="group",
        cascade="all, delete-orphan",
        order_by="ScorecardSection.sort_order",
        lazy="selectin",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "weight": self.weight,
            "sections": [s.to_dict() for s in self.sections],
        }


class ScorecardSection(db.Model):
    __tablename__ = "scorecard_sections"

    id = db.Column(db.String(14), primary_key=True, default=new_id)
    group_id = db.Column(
        db.String(14),
        db.ForeignKey("scorecard_groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = db.Column(db.String(255), nullable=False, default="")
    weight = db.Column(db.Float, nullable=False, default=0.0)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    questions = db.relationship(
        "ScorecardQuestion",
        backref="section",
        cascade="all, delete-orphan",
        order_by="ScorecardQuestion.sort_order",
        lazy="selectin",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "weight": self.weight,
            "questions": [q.to_dict() for q in self.questions],
        }


class ScorecardQuestion(db.Model):
    __tablename__ = "scorecard_questions"

    id = db.Column(db.String(14), primary_key=True, default=new_id)
    section_id = db.Column(
        db.String(14),
        db.ForeignKey("scorecard_sections.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    type = db.Column(db.String(20), nullable=False, default="YES_NO",
                     comment="YES_NO | SCALE | TEST_CASE | OTHER")
    description = db.Column(db.Text, nullable=False, default="")
    weight = db.Column(db.Float, nullable=False, default=0.0)
    scale_min = db.Column(db.Integer, nullable=True)
    scale_max = db.Column(db.Integer, nullable=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "description": self.description,
            "weight": self.weight,
            "scale_min": self.scale_min,
            "scale_max": self.scale_max,
        }

    def __repr__(self):
        return f"<ScorecardQuestion {self.id} [{self.type}]>"
