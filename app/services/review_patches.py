"""
Validated input values for review and review-item mutations.

Request bodies are parsed once, at the service boundary, into small frozen
value types.  A patch records exactly which fields the caller sent, so the
access policy can reason about "touched" fields without re-reading JSON.

Rules:
    - initial_score / final_score are derived and never accepted.
    - resource_id / phase_id / submission_id are recorded as "immutable
      fields touched" on a ReviewPatch; the access policy denies them.
    - Unknown keys are rejected.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime

from app.core.exceptions import ValidationError
from app.models.review import COMMENT_TYPES, REOPEN_STATUSES, REVIEW_STATUSES

IMMUTABLE_REVIEW_FIELDS = ("resource_id", "phase_id", "submission_id")
DERIVED_REVIEW_FIELDS = ("initial_score", "final_score")
MUTABLE_REVIEW_FIELDS = (
    "status",
    "committed",
    "review_date",
    "metadata",
    "type_id",
    "scorecard_id",
    "review_items",
)
ITEM_FIELDS = (
    "review_id",
    "scorecard_question_id",
    "initial_answer",
    "final_answer",
    "manager_comment",
    "comments",
)


# ── Field coercion ───────────────────────────────────────────────────────────


def _require_mapping(payload, what: str) -> Mapping:
    if not isinstance(payload, Mapping):
        raise ValidationError(f"{what} must be a JSON object", code="ERR_VALIDATION_INVALID")
    return payload


def _reject_unknown(payload: Mapping, allowed, what: str) -> None:
    unknown = sorted(set(payload) - set(allowed))
    if unknown:
        raise ValidationError(
            f"Unknown field(s) in {what}: {', '.join(unknown)}",
            details={"unknown_fields": unknown},
            code="ERR_VALIDATION_INVALID",
        )


def _string(value, name: str, *, required: bool = False) -> str | None:
    if value is None:
        if required:
            raise ValidationError(f"{name} is required", details={name: "required"},
                                  code="ERR_VALIDATION_REQUIRED")
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{name} must be a string", details={name: "must be a string"},
                              code="ERR_VALIDATION_INVALID")
    value = value.strip()
    if required and not value:
        raise ValidationError(f"{name} is required", details={name: "required"},
                              code="ERR_VALIDATION_REQUIRED")
    return value


def _answer(value, name: str, *, required: bool = False) -> str | None:
    if value is None:
        if required:
            raise ValidationError(f"{name} is required", details={name: "required"},
                                  code="ERR_VALIDATION_REQUIRED")
        return None
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise ValidationError(f"{name} must be a string or number",
                              details={name: "must be a string or number"},
                              code="ERR_VALIDATION_INVALID")
    return str(value)


def _bool(value, name: str) -> bool:
    if not isinstance(value, bool):
        raise ValidationError(f"{name} must be a boolean", details={name: "must be a boolean"},
                              code="ERR_VALIDATION_INVALID")
    return value


def _status(value) -> str:
    status = _string(value, "status", required=True).upper()
    if status not in REVIEW_STATUSES:
        raise ValidationError(
            f"Invalid status '{value}'",
            details={"status": f"must be one of {sorted(REVIEW_STATUSES)}"},
            code="ERR_VALIDATION_INVALID",
        )
    return status


def _datetime(value, name: str) -> datetime | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{name} must be an ISO-8601 string", code="ERR_VALIDATION_INVALID")
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as exc:
        raise ValidationError(f"{name} must be an ISO-8601 string",
                              details={name: str(exc)}, code="ERR_VALIDATION_INVALID") from exc


def _metadata(value):
    if value is not None and not isinstance(value, (dict, list)):
        raise ValidationError("metadata must be an object or array", code="ERR_VALIDATION_INVALID")
    return value


# ── Value types ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class CommentInput:
    content: str
    type: str = "COMMENT"
    sort_order: int = 0
    resource_id: str | None = None

    @classmethod
    def from_payload(cls, raw, index: int) -> "CommentInput":
        raw = _require_mapping(raw, f"comments[{index}]")
        _reject_unknown(raw, ("content", "type", "sort_order", "resource_id"), f"comments[{index}]")
        ctype = (_string(raw.get("type"), "type") or "COMMENT").upper()
        if ctype not in COMMENT_TYPES:
            raise ValidationError(f"Invalid comment type '{ctype}'",
                                  details={"type": sorted(COMMENT_TYPES)},
                                  code="ERR_VALIDATION_INVALID")
        sort_order = raw.get("sort_order", index)
        if isinstance(sort_order, bool) or not isinstance(sort_order, int):
            raise ValidationError("sort_order must be an integer", code="ERR_VALIDATION_INVALID")
        return cls(
            content=_string(raw.get("content"), "content", required=True),
            type=ctype,
            sort_order=sort_order,
            resource_id=_string(raw.get("resource_id"), "resource_id"),
        )


def _comments(value) -> tuple[CommentInput, ...]:
    if value is None:
        return ()
    if not isinstance(value, list):
        raise ValidationError("comments must be an array", code="ERR_VALIDATION_INVALID")
    return tuple(CommentInput.from_payload(c, i) for i, c in enumerate(value))


@dataclass(frozen=True)
class ReviewItemInput:
    """A complete item, as sent on review creation or item creation."""

    scorecard_question_id: str
    initial_answer: str
    final_answer: str | None = None
    manager_comment: str | None = None
    comments: tuple[CommentInput, ...] = ()
    review_id: str | None = None

    @classmethod
    def from_payload(cls, raw, *, require_review_id: bool = False) -> "ReviewItemInput":
        raw = _require_mapping(raw, "review item")
        _reject_unknown(raw, ITEM_FIELDS + ("id",), "review item")
        return cls(
            scorecard_question_id=_string(raw.get("scorecard_question_id"),
                                          "scorecard_question_id", required=True),
            initial_answer=_answer(raw.get("initial_answer"), "initial_answer", required=True),
            final_answer=_answer(raw.get("final_answer"), "final_answer"),
            manager_comment=_string(raw.get("manager_comment"), "manager_comment"),
            comments=_comments(raw.get("comments")),
            review_id=_string(raw.get("review_id"), "review_id", required=require_review_id),
        )


@dataclass(frozen=True)
class ReviewItemPatch:
    """Partial item update: only the fields the caller sent are present."""

    values: dict = field(default_factory=dict)

    @classmethod
    def from_payload(cls, raw) -> "ReviewItemPatch":
        raw = _require_mapping(raw, "review item")
        _reject_unknown(raw, ITEM_FIELDS, "review item")
        values: dict = {}
        if "review_id" in raw:
            values["review_id"] = _string(raw["review_id"], "review_id")
        if "scorecard_question_id" in raw:
            values["scorecard_question_id"] = _string(
                raw["scorecard_question_id"], "scorecard_question_id", required=True)
        if "initial_answer" in raw:
            values["initial_answer"] = _answer(raw["initial_answer"], "initial_answer", required=True)
        if "final_answer" in raw:
            values["final_answer"] = _answer(raw["final_answer"], "final_answer")
        if "manager_comment" in raw:
            values["manager_comment"] = _string(raw["manager_comment"], "manager_comment")
        if "comments" in raw:
            values["comments"] = _comments(raw["comments"])
        return cls(values)

    def touched(self, name: str) -> bool:
        return name in self.values

    def get(self, name: str, default=None):
        return self.values.get(name, default)

    def final_answer_changed(self, existing) -> bool:
        """The caller sent a final answer that differs from the effective one.

        Sending null clears an override, which reverts the score to the
        initial answer and so counts as a change when an override exists.
        """
        if "final_answer" not in self.values:
            return False
        sent = self.values["final_answer"]
        if sent is None:
            return existing.final_answer is not None
        return sent != existing.effective_final_answer

    def changed(self, name: str, existing) -> bool:
        return name in self.values and self.values[name] != getattr(existing, name)

    @property
    def manager_comment_present(self) -> bool:
        return bool((self.values.get("manager_comment") or "").strip())


@dataclass(frozen=True)
class ReviewDraft:
    """A new review, validated."""

    scorecard_id: str
    submission_id: str | None = None
    resource_id: str | None = None
    type_id: str | None = None
    status: str = "PENDING"
    committed: bool = False
    review_date: datetime | None = None
    metadata: dict | list | None = None
    items: tuple[ReviewItemInput, ...] = ()

    @classmethod
    def from_payload(cls, raw) -> "ReviewDraft":
        raw = _require_mapping(raw, "review")
        if any(f in raw for f in DERIVED_REVIEW_FIELDS):
            raise ValidationError(
                "initial_score and final_score are computed and cannot be supplied",
                details={"fields": [f for f in DERIVED_REVIEW_FIELDS if f in raw]},
                code="ERR_VALIDATION_INVALID",
            )
        _reject_unknown(
            raw,
            ("scorecard_id", "submission_id", "resource_id", "type_id", "status",
             "committed", "review_date", "metadata", "review_items"),
            "review",
        )
        items_raw = raw.get("review_items") or []
        if not isinstance(items_raw, list):
            raise ValidationError("review_items must be an array", code="ERR_VALIDATION_INVALID")
        return cls(
            scorecard_id=_string(raw.get("scorecard_id"), "scorecard_id", required=True),
            submission_id=_string(raw.get("submission_id"), "submission_id") or None,
            resource_id=_string(raw.get("resource_id"), "resource_id", required=True),
            type_id=_string(raw.get("type_id"), "type_id"),
            status=_status(raw["status"]) if raw.get("status") is not None else "PENDING",
            committed=_bool(raw["committed"], "committed") if "committed" in raw else False,
            review_date=_datetime(raw.get("review_date"), "review_date"),
            metadata=_metadata(raw.get("metadata")),
            items=tuple(ReviewItemInput.from_payload(i) for i in items_raw),
        )


@dataclass(frozen=True)
class ReviewPatch:
    """Partial review update."""

    values: dict = field(default_factory=dict)
    immutable_touched: tuple[str, ...] = ()

    @classmethod
    def from_payload(cls, raw) -> "ReviewPatch":
        raw = _require_mapping(raw, "review")
        if any(f in raw for f in DERIVED_REVIEW_FIELDS):
            raise ValidationError(
                "initial_score and final_score are computed and cannot be supplied",
                details={"fields": [f for f in DERIVED_REVIEW_FIELDS if f in raw]},
                code="ERR_VALIDATION_INVALID",
            )
        _reject_unknown(raw, MUTABLE_REVIEW_FIELDS + IMMUTABLE_REVIEW_FIELDS, "review")

        values: dict = {}
        if "status" in raw:
            values["status"] = _status(raw["status"])
        if "committed" in raw:
            values["committed"] = _bool(raw["committed"], "committed")
        if "review_date" in raw:
            values["review_date"] = _datetime(raw["review_date"], "review_date")
        if "metadata" in raw:
            values["metadata"] = _metadata(raw["metadata"])
        if "type_id" in raw:
            values["type_id"] = _string(raw["type_id"], "type_id")
        if "scorecard_id" in raw:
            values["scorecard_id"] = _string(raw["scorecard_id"], "scorecard_id", required=True)
        if "review_items" in raw:
            items_raw = raw["review_items"]
            if not isinstance(items_raw, list):
                raise ValidationError("review_items must be an array", code="ERR_VALIDATION_INVALID")
            values["review_items"] = tuple(ReviewItemInput.from_payload(i) for i in items_raw)

        return cls(
            values=values,
            immutable_touched=tuple(f for f in IMMUTABLE_REVIEW_FIELDS if f in raw),
        )

    def touched(self, name: str) -> bool:
        return name in self.values

    def get(self, name: str, default=None):
        return self.values.get(name, default)

    @property
    def keys(self) -> frozenset[str]:
        return frozenset(self.values) | frozenset(self.immutable_touched)

    @property
    def is_status_only(self) -> bool:
        return self.keys == {"status"}

    def is_reopen(self, current_status: str | None) -> bool:
        return current_status == "COMPLETED" and self.values.get("status") in REOPEN_STATUSES

    def is_copilot_reopen(self, current_status: str | None) -> bool:
        """A reopen carrying nothing but status and (absent or false) committed."""
        return (
            self.is_reopen(current_status)
            and self.keys <= {"status", "committed"}
            and self.values.get("committed") is not True
        )
