"""
Typed predicate builder for review queries.

Access scoping and request filters are expressed as small immutable
predicate values, combined with ``all_of`` / ``any_of``, and compiled to a
SQLAlchemy clause only at the query site.  The same predicate can be
evaluated in memory with ``matches()``, so scoping rules are testable
without a database.

Usage:
    pred = all_of(field_equals("challenge_id", cid),
                  any_of(field_in("resource_id", mine), submission_type_is("CONTEST_SUBMISSION")))
    stmt = select(Review).where(compile_predicate(pred))
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from sqlalchemy import and_, false, or_, true

from app.core.exceptions import ValidationError
from app.models.review import REVIEW_STATUSES, Review
from app.models.submission import Submission

# Fields a predicate may reference, mapped to their columns
FILTERABLE_FIELDS = {
    "id": Review.id,
    "resource_id": Review.resource_id,
    "submission_id": Review.submission_id,
    "phase_id": Review.phase_id,
    "scorecard_id": Review.scorecard_id,
    "challenge_id": Review.challenge_id,
    "status": Review.status,
    "committed": Review.committed,
}


class Predicate:
    """Marker base for predicate values."""


@dataclass(frozen=True)
class MatchAll(Predicate):
    pass


@dataclass(frozen=True)
class MatchNothing(Predicate):
    pass


MATCH_ALL = MatchAll()
MATCH_NOTHING = MatchNothing()


@dataclass(frozen=True)
class FieldIn(Predicate):
    field: str
    values: tuple


@dataclass(frozen=True)
class FieldEquals(Predicate):
    field: str
    value: object


@dataclass(frozen=True)
class SubmissionTypeIs(Predicate):
    submission_type: str


@dataclass(frozen=True)
class AllOf(Predicate):
    clauses: tuple[Predicate, ...]


@dataclass(frozen=True)
class AnyOf(Predicate):
    clauses: tuple[Predicate, ...]


# ── Constructors ─────────────────────────────────────────────────────────────


def _check_field(field: str) -> None:
    if field not in FILTERABLE_FIELDS:
        raise ValueError(f"Unsupported review filter field: {field!r}")


def field_in(field: str, values: Iterable) -> Predicate:
    _check_field(field)
    unique = tuple(dict.fromkeys(str(v) for v in values if v is not None))
    if not unique:
        return MATCH_NOTHING
    return FieldIn(field, unique)


def field_equals(field: str, value) -> FieldEquals:
    _check_field(field)
    return FieldEquals(field, value)


def submission_type_is(submission_type: str) -> SubmissionTypeIs:
    return SubmissionTypeIs(submission_type)


def all_of(*clauses: Predicate) -> Predicate:
    flat: list[Predicate] = []
    for clause in clauses:
        if isinstance(clause, MatchNothing):
            return MATCH_NOTHING
        if isinstance(clause, MatchAll):
            continue
        flat.extend(clause.clauses if isinstance(clause, AllOf) else (clause,))
    if not flat:
        return MATCH_ALL
    return flat[0] if len(flat) == 1 else AllOf(tuple(flat))


def any_of(*clauses: Predicate) -> Predicate:
    flat: list[Predicate] = []
    for clause in clauses:
        if isinstance(clause, MatchAll):
            return MATCH_ALL
        if isinstance(clause, MatchNothing):
            continue
        flat.extend(clause.clauses if isinstance(clause, AnyOf) else (clause,))
    if not flat:
        return MATCH_NOTHING
    return flat[0] if len(flat) == 1 else AnyOf(tuple(flat))


# ── Evaluation ───────────────────────────────────────────────────────────────


def compile_predicate(pred: Predicate):
    """Translate a predicate into a SQLAlchemy boolean clause over Review."""
    match pred:
        case MatchAll():
            return true()
        case MatchNothing():
            return false()
        case FieldIn(field=field, values=values):
            return FILTERABLE_FIELDS[field].in_(values)
        case FieldEquals(field=field, value=None):
            return FILTERABLE_FIELDS[field].is_(None)
        case FieldEquals(field=field, value=value):
            return FILTERABLE_FIELDS[field] == value
        case SubmissionTypeIs(submission_type=stype):
            return Review.submission.has(Submission.type == stype)
        case AllOf(clauses=clauses):
            return and_(*(compile_predicate(c) for c in clauses))
        case AnyOf(clauses=clauses):
            return or_(*(compile_predicate(c) for c in clauses))
    raise TypeError(f"Unknown predicate: {pred!r}")


def matches(pred: Predicate, review) -> bool:
    """Evaluate a predicate against a Review-like object in memory."""
    match pred:
        case MatchAll():
            return True
        case MatchNothing():
            return False
        case FieldIn(field=field, values=values):
            value = getattr(review, field, None)
            return value is not None and str(value) in values
        case FieldEquals(field=field, value=value):
            return getattr(review, field, None) == value
        case SubmissionTypeIs(submission_type=stype):
            submission = getattr(review, "submission", None)
            return submission is not None and submission.type == stype
        case AllOf(clauses=clauses):
            return all(matches(c, review) for c in clauses)
        case AnyOf(clauses=clauses):
            return any(matches(c, review) for c in clauses)
    raise TypeError(f"Unknown predicate: {pred!r}")


# ── Request filters ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ReviewListQuery:
    """Caller-supplied list filters, validated."""

    challenge_id: str | None = None
    submission_id: str | None = None
    resource_id: str | None = None
    phase_id: str | None = None
    scorecard_id: str | None = None
    status: str | None = None
    committed: bool | None = None

    @classmethod
    def from_args(cls, args) -> "ReviewListQuery":
        status = args.get("status")
        if status:
            status = status.strip().upper()
            if status not in REVIEW_STATUSES:
                raise ValidationError(f"Invalid status '{status}'",
                                      details={"status": sorted(REVIEW_STATUSES)},
                                      code="ERR_VALIDATION_INVALID")
        committed = args.get("committed")
        if committed is not None:
            lowered = committed.strip().lower()
            if lowered not in ("true", "false"):
                raise ValidationError("committed must be true or false",
                                      code="ERR_VALIDATION_INVALID")
            committed = lowered == "true"
        return cls(
            challenge_id=args.get("challenge_id") or None,
            submission_id=args.get("submission_id") or None,
            resource_id=args.get("resource_id") or None,
            phase_id=args.get("phase_id") or None,
            scorecard_id=args.get("scorecard_id") or None,
            status=status or None,
            committed=committed,
        )

    def predicate(self) -> Predicate:
        clauses = [
            field_equals(name, value)
            for name in ("challenge_id", "submission_id", "resource_id", "phase_id",
                         "scorecard_id", "status", "committed")
            if (value := getattr(self, name)) is not None
        ]
        return all_of(*clauses)
