"""
Weighted score aggregation over a scorecard tree.

Pure functions, no I/O.  Given a ScorecardTree and the answers recorded for
its questions, produce the (initial, final) score pair in [0, 100] rounded
to two decimals.

Per-question scoring:
    YES_NO             100 if the answer is "yes" (any case), else 0
    SCALE / TEST_CASE  clamp((value - min) / (max - min) * 100, 0, 100);
                         non-numeric answer or max == min gives 0
    anything else      0
    unanswered         0, but the question still consumes its weight share

Aggregation runs question, then section, then group, then overall.  At every level the
weights are normalised against the sum of the sibling weights; when that
sum is zero each sibling gets an equal share (1 / count).

The final chain uses ``final_answer`` and falls back to ``initial_answer``.
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from app.services.scorecard_catalog import QuestionNode, ScorecardTree


@dataclass(frozen=True)
class AnswerPair:
    initial: str | None
    final: str | None = None

    @property
    def effective_final(self) -> str | None:
        return self.final if self.final is not None else self.initial


@dataclass(frozen=True)
class Scores:
    initial_score: float | None
    final_score: float | None

    @classmethod
    def unresolved(cls) -> "Scores":
        return cls(None, None)


def _to_number(value) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(str(value).strip()) if not isinstance(value, (int, float)) else float(value)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def question_score(question: QuestionNode, answer) -> float:
    if answer is None:
        return 0.0
    qtype = (question.type or "").upper()
    if qtype == "YES_NO":
        return 100.0 if str(answer).strip().upper() == "YES" else 0.0
    if qtype in ("SCALE", "TEST_CASE"):
        value = _to_number(answer)
        low = _to_number(question.scale_min)
        high = _to_number(question.scale_max)
        low = 0.0 if low is None else low
        high = 0.0 if high is None else high
        if value is None or high == low:
            return 0.0
        return min(max((value - low) / (high - low) * 100.0, 0.0), 100.0)
    return 0.0


def _normalized_weights(weights: Sequence[float]) -> list[float]:
    total = sum(weights)
    if total > 0:
        return [w / total for w in weights]
    share = 1.0 / max(1, len(weights))
    return [share] * len(weights)


def _weighted(tree: ScorecardTree, pick) -> float:
    group_weights = _normalized_weights([g.weight for g in tree.groups])
    overall = 0.0
    for group, gw in zip(tree.groups, group_weights):
        section_weights = _normalized_weights([s.weight for s in group.sections])
        group_score = 0.0
        for section, sw in zip(group.sections, section_weights):
            question_weights = _normalized_weights([q.weight for q in section.questions])
            section_score = sum(
                question_score(q, pick(q.id)) * qw
                for q, qw in zip(section.questions, question_weights)
            )
            group_score += section_score * sw
        overall += group_score * gw
    return overall


def _finish(value: float) -> float:
    return round(min(max(value, 0.0), 100.0), 2)


def aggregate(tree: ScorecardTree | None, answers: Mapping[str, AnswerPair]) -> Scores:
    """Score ``answers`` (keyed by question id) against ``tree``.

    Returns ``Scores(None, None)`` when the tree could not be resolved.
    """
    if tree is None:
        return Scores.unresolved()

    def initial(qid):
        pair = answers.get(qid)
        return pair.initial if pair else None

    def final(qid):
        pair = answers.get(qid)
        return pair.effective_final if pair else None

    return Scores(
        initial_score=_finish(_weighted(tree, initial)),
        final_score=_finish(_weighted(tree, final)),
    )


def answers_from_items(items) -> dict[str, AnswerPair]:
    """Collect answers from ReviewItem-like objects, keyed by question id."""
    return {
        item.scorecard_question_id: AnswerPair(item.initial_answer, item.final_answer)
        for item in items
    }
