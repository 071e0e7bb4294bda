"""
Payload parsing tests for review and review-item mutations, plus record masking.
"""

import pytest

from app.core.exceptions import ValidationError
from app.models.review import ReviewItem
from app.services.access_policy import Decision
from app.services.review_patches import (
    ReviewDraft,
    ReviewItemInput,
    ReviewItemPatch,
    ReviewPatch,
)
from app.services.visibility import MaskLevel, apply_mask


class TestReviewDraft:
    def test_minimal_draft(self):
        """Defaults apply to omitted fields."""
        draft = ReviewDraft.from_payload({
            "scorecard_id": "sc-review",
            "resource_id": "res-1",
            "submission_id": "sub-1",
            "review_items": [{"scorecard_question_id": "q_yes", "initial_answer": "yes"}],
        })
        assert draft.status == "PENDING"
        assert draft.committed is False
        assert draft.items[0].initial_answer == "yes"

    def test_scores_cannot_be_supplied(self):
        """Derived scores are refused on input."""
        with pytest.raises(ValidationError) as excinfo:
            ReviewDraft.from_payload({"scorecard_id": "sc", "resource_id": "r",
                                      "final_score": 100})
        assert excinfo.value.details == {"fields": ["final_score"]}

    def test_unknown_fields_rejected(self):
        """Unexpected keys are reported by name."""
        with pytest.raises(ValidationError) as excinfo:
            ReviewDraft.from_payload({"scorecard_id": "sc", "resource_id": "r", "colour": "red"})
        assert excinfo.value.details == {"unknown_fields": ["colour"]}

    def test_resource_required(self):
        """resource_id is mandatory on creation."""
        with pytest.raises(ValidationError) as excinfo:
            ReviewDraft.from_payload({"scorecard_id": "sc"})
        assert excinfo.value.code == "ERR_VALIDATION_REQUIRED"

    @pytest.mark.parametrize("payload", [
        {"scorecard_id": "sc", "resource_id": "r", "status": "LOST"},
        {"scorecard_id": "sc", "resource_id": "r", "committed": "yes"},
        {"scorecard_id": "sc", "resource_id": "r", "review_date": "last tuesday"},
        {"scorecard_id": "sc", "resource_id": "r", "metadata": "plain"},
        {"scorecard_id": "sc", "resource_id": "r", "review_items": {"a": 1}},
        ["not", "an", "object"],
    ])
    def test_invalid_payloads(self, payload):
        """Malformed values never reach the service."""
        with pytest.raises(ValidationError):
            ReviewDraft.from_payload(payload)

    def test_numeric_answers_are_stringified(self):
        """Numbers are accepted as answers and stored as text."""
        item = ReviewItemInput.from_payload({"scorecard_question_id": "q", "initial_answer": 7})
        assert item.initial_answer == "7"

    def test_comment_type_validated(self):
        """Comment types come from a closed set."""
        with pytest.raises(ValidationError):
            ReviewItemInput.from_payload({
                "scorecard_question_id": "q",
                "initial_answer": "yes",
                "comments": [{"content": "x", "type": "SHOUTING"}],
            })


class TestReviewPatch:
    def test_status_only_and_reopen(self):
        """A COMPLETED -> PENDING status change is a copilot reopen."""
        patch = ReviewPatch.from_payload({"status": "pending"})
        assert patch.is_status_only
        assert patch.is_reopen("COMPLETED")
        assert patch.is_copilot_reopen("COMPLETED")
        assert not patch.is_reopen("IN_PROGRESS")

    def test_reopen_with_commit_is_not_copilot_reopen(self):
        """Reopening while committing is outside the copilot allowance."""
        patch = ReviewPatch.from_payload({"status": "IN_PROGRESS", "committed": True})
        assert patch.is_reopen("COMPLETED")
        assert not patch.is_copilot_reopen("COMPLETED")

    def test_immutable_fields_recorded(self):
        """Immutable keys are recorded rather than rejected at parse time."""
        patch = ReviewPatch.from_payload({"submission_id": "sub-x", "resource_id": "r"})
        assert patch.immutable_touched == ("resource_id", "submission_id")
        assert not patch.values


class TestReviewItemPatch:
    def test_final_answer_change_detection(self):
        """Only a final answer different from the effective one counts as a change."""
        existing = ReviewItem(scorecard_question_id="q", initial_answer="yes")
        assert not ReviewItemPatch.from_payload({"final_answer": "yes"}).final_answer_changed(existing)
        assert ReviewItemPatch.from_payload({"final_answer": "no"}).final_answer_changed(existing)
        assert not ReviewItemPatch.from_payload({"final_answer": None}).final_answer_changed(existing)
        assert not ReviewItemPatch.from_payload({}).final_answer_changed(existing)

    def test_clearing_override_is_a_change(self):
        """A null final answer over an existing override reverts the score."""
        existing = ReviewItem(scorecard_question_id="q", initial_answer="yes", final_answer="no")
        assert ReviewItemPatch.from_payload({"final_answer": None}).final_answer_changed(existing)

    def test_blank_manager_comment_is_absent(self):
        """Whitespace does not satisfy the manager comment requirement."""
        assert not ReviewItemPatch.from_payload({"manager_comment": "   "}).manager_comment_present
        assert ReviewItemPatch.from_payload({"manager_comment": "ok"}).manager_comment_present


class TestApplyMask:
    record = {
        "id": "rv-1",
        "initial_score": 80.0,
        "final_score": 90.0,
        "review_items": [{"id": "it-1"}],
        "appeals": [{"id": "ap-1"}],
        "metadata": {"k": "v"},
        "committed": True,
        "submitter_handle": "coder1",
    }

    def test_full_mask(self):
        """FULL strips scores, detail and classification metadata."""
        out = apply_mask(self.record, Decision.masked(MaskLevel.FULL, "NOT_YET_VISIBLE"))
        assert out["initial_score"] is None and out["final_score"] is None
        assert out["review_items"] == [] and out["appeals"] == []
        assert "metadata" not in out and "committed" not in out
        assert "submitter_handle" not in out

    def test_scores_mask(self):
        """SCORES keeps metadata but hides scores and items."""
        out = apply_mask(self.record, Decision.masked(MaskLevel.SCORES, "OTHER_REVIEWER"))
        assert out["final_score"] is None
        assert out["review_items"] == []
        assert out["metadata"] == {"k": "v"}

    def test_items_mask_keeps_scores(self):
        """ITEMS trims detail only."""
        out = apply_mask(self.record, Decision.masked(MaskLevel.ITEMS, "OTHER_SUBMITTER_ITERATIVE"))
        assert out["final_score"] == 90.0
        assert out["review_items"] == []

    def test_thin_records_stay_thin(self):
        """Absent lists are not reintroduced by masking."""
        thin = {"id": "rv-1", "initial_score": 1.0, "final_score": 2.0}
        out = apply_mask(thin, Decision.masked(MaskLevel.SCORES, "OTHER_REVIEWER"))
        assert "review_items" not in out

    def test_denied_decision_cannot_be_applied(self):
        """Masking a denial is a programming error."""
        with pytest.raises(ValueError):
            apply_mask(self.record, Decision.deny("NOT_OWNER", "no"))
