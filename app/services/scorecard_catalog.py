"""
Scorecard lookup for the score aggregator.

Converts the ORM hierarchy into an immutable ``ScorecardTree`` so the
aggregator stays a pure function with no database access.

Usage:
    tree = get_scorecard_tree(review.scorecard_id)   # raises NotFoundError
    tree.question_ids                               # frozenset of question ids
"""

from __future__ import annotations

from dataclasses import dataclass

from app.core.exceptions import NotFoundError
from app.models import db
from app.models.scorecard import Scorecard, ScorecardQuestion


@dataclass(frozen=True)
class QuestionNode:
    id: str
    weight: float
    type: str
    scale_min: float | None = None
    scale_max: float | None = None


@dataclass(frozen=True)
class SectionNode:
    weight: float
    questions: tuple[QuestionNode, ...]


@dataclass(frozen=True)
class GroupNode:
    weight: float
    sections: tuple[SectionNode, ...]


@dataclass(frozen=True)
class ScorecardTree:
    id: str
    type: str
    groups: tuple[GroupNode, ...]

    @property
    def question_ids(self) -> frozenset[str]:
        return frozenset(
            q.id for g in self.groups for s in g.sections for q in s.questions
        )


def build_tree(scorecard: Scorecard) -> ScorecardTree:
    return ScorecardTree(
        id=scorecard.id,
        type=scorecard.type,
        groups=tuple(
            GroupNode(
                weight=group.weight or 0.0,
                sections=tuple(
                    SectionNode(
                        weight=section.weight or 0.0,
                        questions=tuple(
                            QuestionNode(
                                id=q.id,
                                weight=q.weight or 0.0,
                                type=q.type,
                                scale_min=q.scale_min,
                                scale_max=q.scale_max,
                            )
                            for q in section.questions
                        ),
                    )
                    for section in group.sections
                ),
            )
            for group in scorecard.groups
        ),
    )


def get_scorecard_tree(scorecard_id: str) -> ScorecardTree:
    scorecard = db.session.get(Scorecard, scorecard_id) if scorecard_id else None
    if scorecard is None:
        raise NotFoundError("Scorecard", scorecard_id, code="SCORECARD_NOT_FOUND")
    return build_tree(scorecard)


def get_question(question_id: str) -> ScorecardQuestion:
    question = db.session.get(ScorecardQuestion, question_id) if question_id else None
    if question is None:
        raise NotFoundError("ScorecardQuestion", question_id, code="SCORECARD_QUESTION_NOT_FOUND")
    return question


def scorecard_id_of_question(question: ScorecardQuestion) -> str:
    return question.section.group.scorecard_id
