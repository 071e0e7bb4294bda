"""
Review API integration tests.

The challenge / resource directories and the event bus are replaced by the
``directory`` fixture; everything else (blueprint, service, access engine,
scoring, audit, SQLite) runs for real.

Cast on challenge c1:
    1001  Reviewer   res-r1
    1002  Reviewer   res-r2
    3001  Copilot    res-c
    2001  Submitter  res-s1   (submission sub-1)
    2002  Submitter  res-s2   (submission sub-2)
    4444  no role
"""

import pytest

from conftest import make_phase

from app.models import db
from app.models.audit import ReviewAudit
from app.models.review import Review, ReviewItem
from app.models.scorecard import Scorecard, ScorecardGroup, ScorecardQuestion, ScorecardSection
from app.models.submission import ReviewSummation, Submission
from app.services.review_service import COMPLETION_TOPIC


def _review_phases():
    return [
        make_phase("Submission", ended=True),
        make_phase("Review", is_open=True),
        make_phase("Appeals"),
    ]


@pytest.fixture()
def world(directory, scorecard):
    """Challenge c1 in its Review phase with the cast above."""
    directory.add_challenge("c1", phases=_review_phases())
    directory.add_resource("res-r1", "1001", "Reviewer")
    directory.add_resource("res-r2", "1002", "Reviewer")
    directory.add_resource("res-c", "3001", "Copilot")
    directory.add_resource("res-s1", "2001", "Submitter")
    directory.add_resource("res-s2", "2002", "Submitter")
    db.session.add_all([
        Submission(id="sub-1", challenge_id="c1", member_id="2001",
                   member_handle="coder1", member_max_rating=1500),
        Submission(id="sub-2", challenge_id="c1", member_id="2002", member_handle="coder2"),
    ])
    db.session.commit()
    return directory


def _make_review(rid="rv-1", *, resource_id="res-r1", submission_id="sub-1",
                 status="IN_PROGRESS", committed=False, answers=None, **kwargs):
    review = Review(id=rid, resource_id=resource_id, phase_id="ph-review",
                    submission_id=submission_id, scorecard_id="sc-review", challenge_id="c1",
                    status=status, committed=committed, **kwargs)
    review.items = [
        ReviewItem(id=f"{rid}-{qid}", scorecard_question_id=qid, initial_answer=answer)
        for qid, answer in (answers or {"q_yes": "yes", "q_scale": "5"}).items()
    ]
    db.session.add(review)
    db.session.commit()
    return review


def _create_payload(**overrides):
    payload = {
        "scorecard_id": "sc-review",
        "submission_id": "sub-1",
        "resource_id": "res-r1",
        "review_items": [
            {"scorecard_question_id": "q_yes", "initial_answer": "yes"},
            {"scorecard_question_id": "q_scale", "initial_answer": "5",
             "comments": [{"content": "Readable", "type": "COMMENT"}]},
        ],
    }
    payload.update(overrides)
    return payload


# ═════════════════════════════════════════════════════════════════════════
# Create
# ═════════════════════════════════════════════════════════════════════════


class TestCreateReview:
    def test_reviewer_creates_review_with_scores(self, client, world, headers):
        """POST /reviews stores items, resolves the phase and derives scores."""
        res = client.post("/api/v1/reviews", json=_create_payload(), headers=headers("1001"))
        assert res.status_code == 201
        body = res.get_json()
        assert body["phase_id"] == "ph-review"
        assert body["phase_name"] == "Review"
        assert body["challenge_id"] == "c1"
        assert body["initial_score"] == 70.0
        assert body["final_score"] == 70.0
        assert len(body["review_items"]) == 2
        assert body["created_by"] == "1001"

    def test_duplicate_review_conflicts(self, client, world, headers):
        """The same resource cannot review the same submission twice on one scorecard."""
        assert client.post("/api/v1/reviews", json=_create_payload(),
                           headers=headers("1001")).status_code == 201
        res = client.post("/api/v1/reviews", json=_create_payload(), headers=headers("1001"))
        assert res.status_code == 409
        assert res.get_json()["code"] == "CONFLICT_DUPLICATE"

    def test_resource_of_another_member(self, client, world, headers):
        """A reviewer cannot create a review on someone else's resource."""
        res = client.post("/api/v1/reviews", json=_create_payload(), headers=headers("1002"))
        assert res.status_code == 403
        assert res.get_json()["code"] == "RESOURCE_MEMBER_MISMATCH"

    def test_submitter_cannot_create(self, client, world, headers):
        """Submitter resources are not reviewer resources."""
        res = client.post("/api/v1/reviews", json=_create_payload(resource_id="res-s1"),
                          headers=headers("2001"))
        assert res.status_code == 403
        assert res.get_json()["code"] == "FORBIDDEN_CREATE_REVIEW"

    def test_question_from_another_scorecard(self, client, world, headers):
        """Items must answer questions of the review's scorecard."""
        other = Scorecard(id="sc-other", name="Other", type="REVIEW")
        group = ScorecardGroup(weight=1.0)
        section = ScorecardSection(weight=1.0)
        section.questions = [ScorecardQuestion(id="q_other", type="YES_NO", weight=1.0)]
        group.sections = [section]
        other.groups = [group]
        db.session.add(other)
        db.session.commit()

        payload = _create_payload(review_items=[
            {"scorecard_question_id": "q_other", "initial_answer": "yes"},
        ])
        res = client.post("/api/v1/reviews", json=payload, headers=headers("1001"))
        assert res.status_code == 400
        assert res.get_json()["code"] == "SCORECARD_QUESTION_MISMATCH"

    def test_submission_required_for_review_scorecards(self, client, world, headers):
        """Only Post-Mortem scorecards may omit the submission."""
        res = client.post("/api/v1/reviews", json=_create_payload(submission_id=None),
                          headers=headers("1001"))
        assert res.status_code == 400
        assert res.get_json()["code"] == "SUBMISSION_ID_REQUIRED"

    def test_missing_scorecard(self, client, world, headers):
        """An unknown scorecard is a 404."""
        res = client.post("/api/v1/reviews", json=_create_payload(scorecard_id="nope"),
                          headers=headers("1001"))
        assert res.status_code == 404
        assert res.get_json()["code"] == "SCORECARD_NOT_FOUND"

    def test_requires_authentication(self, client, world):
        """No bearer token, no access."""
        res = client.post("/api/v1/reviews", json=_create_payload())
        assert res.status_code == 401
        assert res.get_json()["code"] == "UNAUTHENTICATED"

    def test_invalid_token_is_unauthenticated(self, client, world):
        """A token signed with another key is ignored."""
        res = client.get("/api/v1/reviews", headers={"Authorization": "Bearer not.a.jwt"})
        assert res.status_code == 401


class TestPostMortem:
    @pytest.fixture()
    def post_mortem_card(self):
        card = Scorecard(id="sc-pm", name="Post-Mortem", type="POST_MORTEM")
        db.session.add(card)
        db.session.commit()
        return card

    def test_created_without_submission(self, client, world, headers, post_mortem_card):
        """Post-Mortem reviews attach to the open Post-Mortem phase."""
        world.challenges["c1"]["phases"].append(make_phase("Post-Mortem", is_open=True))
        world.add_resource("res-pm", "1001", "Reviewer")
        res = client.post("/api/v1/reviews", headers=headers("1001"), json={
            "scorecard_id": "sc-pm",
            "resource_id": "res-pm",
        })
        assert res.status_code == 201
        body = res.get_json()
        assert body["submission_id"] is None
        assert body["phase_id"] == "ph-post-mortem"

    def test_phase_name_without_separator(self, client, world, headers, post_mortem_card):
        """A phase spelled "PostMortem" is the Post-Mortem phase."""
        world.challenges["c1"]["phases"].append(make_phase("PostMortem", is_open=True))
        world.add_resource("res-pm", "1001", "Reviewer")
        res = client.post("/api/v1/reviews", headers=headers("1001"), json={
            "scorecard_id": "sc-pm",
            "resource_id": "res-pm",
        })
        assert res.status_code == 201
        assert res.get_json()["phase_id"] == "ph-postmortem"

    def test_closed_post_mortem_phase(self, client, world, headers, post_mortem_card):
        """A closed Post-Mortem phase rejects new reviews."""
        world.challenges["c1"]["phases"].append(make_phase("Post-Mortem", ended=True))
        world.add_resource("res-pm", "1001", "Reviewer")
        res = client.post("/api/v1/reviews", headers=headers("1001"), json={
            "scorecard_id": "sc-pm",
            "resource_id": "res-pm",
        })
        assert res.status_code == 400
        assert res.get_json()["code"] == "POST_MORTEM_PHASE_CLOSED"


# ═════════════════════════════════════════════════════════════════════════
# Update / delete
# ═════════════════════════════════════════════════════════════════════════


class TestUpdateReview:
    def test_owner_completes_review_and_event_is_published(self, client, world, headers):
        """Completing a review publishes one completion event."""
        _make_review()
        res = client.patch("/api/v1/reviews/rv-1", headers=headers("1001"),
                           json={"status": "COMPLETED", "committed": True})
        assert res.status_code == 200
        assert res.get_json()["final_score"] == 70.0

        assert len(world.events) == 1
        topic, payload = world.events[0]
        assert topic == COMPLETION_TOPIC
        assert payload["reviewId"] == "rv-1"
        assert payload["submissionId"] == "sub-1"
        assert payload["reviewerResourceId"] == "res-r1"
        assert payload["reviewerHandle"] == "member1001"
        assert payload["submitterHandle"] == "coder1"
        assert payload["initialScore"] == 70.0
        assert payload["completedAt"]

    def test_no_event_when_already_completed(self, client, world, headers):
        """Updating a completed review does not re-publish."""
        _make_review(status="COMPLETED")
        res = client.put("/api/v1/reviews/rv-1", headers=headers("1001"),
                         json={"metadata": {"note": "typo fixed"}})
        assert res.status_code == 200
        assert world.events == []

    def test_other_reviewer_denied(self, client, world, headers):
        """Reviewers cannot update each other's reviews."""
        _make_review()
        res = client.patch("/api/v1/reviews/rv-1", headers=headers("1002"),
                           json={"status": "COMPLETED"})
        assert res.status_code == 403
        assert res.get_json()["code"] == "NOT_OWNER"

    def test_immutable_fields_denied_for_admin(self, client, world, headers):
        """Even admins cannot move a review to another phase."""
        _make_review()
        res = client.patch("/api/v1/reviews/rv-1", headers=headers("9000", admin=True),
                           json={"phase_id": "ph-other"})
        assert res.status_code == 403
        assert res.get_json()["code"] == "IMMUTABLE_FIELDS"

    def test_scores_cannot_be_written(self, client, world, headers):
        """Scores in the body are rejected."""
        _make_review()
        res = client.patch("/api/v1/reviews/rv-1", headers=headers("1001"),
                           json={"final_score": 100})
        assert res.status_code == 400

    def test_completed_challenge_is_frozen(self, client, world, headers):
        """Reviews are read-only once the challenge is COMPLETED."""
        world.challenges["c1"]["status"] = "COMPLETED"
        _make_review()
        res = client.patch("/api/v1/reviews/rv-1", headers=headers("1001"),
                           json={"committed": True})
        assert res.status_code == 403
        assert res.get_json()["code"] == "CHALLENGE_COMPLETED"

    def test_copilot_reopens_review_and_is_audited(self, client, world, headers):
        """A copilot reopen clears committed and scores and leaves an audit row."""
        _make_review(status="COMPLETED", committed=True, initial_score=70.0, final_score=70.0)
        res = client.patch("/api/v1/reviews/rv-1", headers=headers("3001"),
                           json={"status": "PENDING"})
        assert res.status_code == 200
        body = res.get_json()
        assert body["status"] == "PENDING"
        assert body["committed"] is False
        assert body["initial_score"] is None and body["final_score"] is None

        audit = client.get("/api/v1/reviews/rv-1/audit", headers=headers("9000", admin=True))
        assert audit.status_code == 200
        entries = audit.get_json()["items"]
        assert len(entries) == 1
        assert entries[0]["actor_id"] == "3001"
        assert "status: COMPLETED -> PENDING" in entries[0]["description"]
        assert "committed: true -> false" in entries[0]["description"]

    def test_copilot_cannot_edit_other_fields(self, client, world, headers):
        """Copilots only change status."""
        _make_review()
        res = client.patch("/api/v1/reviews/rv-1", headers=headers("3001"),
                           json={"committed": True})
        assert res.status_code == 403
        assert res.get_json()["code"] == "NOT_OWNER"

    def test_role_lookup_failure_fails_closed(self, client, world, headers):
        """An unreachable resource directory denies instead of allowing."""
        _make_review()
        world.unavailable.add("resources")
        res = client.patch("/api/v1/reviews/rv-1", headers=headers("1001"),
                           json={"status": "COMPLETED"})
        assert res.status_code == 403
        assert res.get_json()["code"] == "OWNERSHIP_UNVERIFIED"

    def test_replacing_items_recomputes(self, client, world, headers):
        """review_items replaces the item set and rescoring follows."""
        _make_review()
        res = client.patch("/api/v1/reviews/rv-1", headers=headers("1001"), json={
            "review_items": [{"scorecard_question_id": "q_scale", "initial_answer": "10"}],
        })
        assert res.status_code == 200
        body = res.get_json()
        assert [i["scorecard_question_id"] for i in body["review_items"]] == ["q_scale"]
        assert body["initial_score"] == 60.0

    def test_machine_update_is_audited(self, client, world, headers):
        """Machine changes are recorded as System."""
        _make_review()
        res = client.patch("/api/v1/reviews/rv-1", headers=headers(machine=True),
                           json={"status": "COMPLETED"})
        assert res.status_code == 200
        entry = db.session.query(ReviewAudit).one()
        assert entry.actor_id == "System"


class TestDeleteReview:
    def test_reviewer_cannot_delete(self, client, world, headers):
        """Deletion is reserved for copilots and admins."""
        _make_review()
        res = client.delete("/api/v1/reviews/rv-1", headers=headers("1001"))
        assert res.status_code == 403
        assert res.get_json()["code"] == "NOT_COPILOT"

    def test_copilot_deletes(self, client, world, headers):
        """A copilot removes the review and its items."""
        _make_review()
        res = client.delete("/api/v1/reviews/rv-1", headers=headers("3001"))
        assert res.status_code == 200
        assert res.get_json() == {"deleted": True, "id": "rv-1"}
        assert db.session.get(Review, "rv-1") is None
        assert db.session.query(ReviewItem).count() == 0

    def test_missing_review(self, client, world, headers):
        """Unknown review ids are 404s."""
        res = client.delete("/api/v1/reviews/nope", headers=headers("3001"))
        assert res.status_code == 404
        assert res.get_json()["code"] == "REVIEW_NOT_FOUND"


# ═════════════════════════════════════════════════════════════════════════
# Items
# ═════════════════════════════════════════════════════════════════════════


class TestReviewItems:
    def test_owner_adds_item(self, client, world, headers):
        """A new item is stored and the review is rescored."""
        _make_review(answers={"q_yes": "yes"})
        res = client.post("/api/v1/reviews/items", headers=headers("1001"), json={
            "review_id": "rv-1",
            "scorecard_question_id": "q_scale",
            "initial_answer": "10",
        })
        assert res.status_code == 201
        assert res.get_json()["review_id"] == "rv-1"
        assert db.session.get(Review, "rv-1").final_score == 100.0

    def test_item_requires_review_id(self, client, world, headers):
        """POST /reviews/items needs the parent review id."""
        res = client.post("/api/v1/reviews/items", headers=headers("1001"), json={
            "scorecard_question_id": "q_scale",
            "initial_answer": "10",
        })
        assert res.status_code == 400

    def test_copilot_score_change_needs_manager_comment(self, client, world, headers):
        """A copilot must justify a changed final answer."""
        _make_review()
        res = client.patch("/api/v1/reviews/items/rv-1-q_yes", headers=headers("3001"),
                           json={"final_answer": "no"})
        assert res.status_code == 403
        assert res.get_json()["code"] == "MANAGER_COMMENT_REQUIRED"

    def test_copilot_score_change_with_comment(self, client, world, headers):
        """With a manager comment the final score is recomputed and audited."""
        _make_review()
        res = client.patch("/api/v1/reviews/items/rv-1-q_yes", headers=headers("3001"), json={
            "final_answer": "no",
            "manager_comment": "Does not build on a clean checkout",
        })
        assert res.status_code == 200
        body = res.get_json()
        assert body["final_answer"] == "no"
        assert body["initial_answer"] == "yes"
        assert body["scorecard_question_id"] == "q_yes"

        review = db.session.get(Review, "rv-1")
        assert review.final_score == 30.0
        entry = db.session.query(ReviewAudit).one()
        assert "review_item[scorecard_question_id=q_yes].final_answer: null -> no" in entry.description

    def test_copilot_may_resend_current_initial_answer(self, client, world, headers):
        """An unchanged initial answer alongside a new final answer is accepted."""
        _make_review()
        res = client.patch("/api/v1/reviews/items/rv-1-q_yes", headers=headers("3001"), json={
            "initial_answer": "yes",
            "scorecard_question_id": "q_yes",
            "final_answer": "no",
            "manager_comment": "Fails the acceptance tests",
        })
        assert res.status_code == 200
        item = db.session.get(ReviewItem, "rv-1-q_yes")
        assert item.initial_answer == "yes"
        assert item.scorecard_question_id == "q_yes"
        assert item.final_answer == "no"

    def test_copilot_clearing_override_needs_manager_comment(self, client, world, headers):
        """Clearing a final answer reverts the score, so it needs a manager comment."""
        _make_review()
        item = db.session.get(ReviewItem, "rv-1-q_yes")
        item.final_answer = "no"
        db.session.commit()

        res = client.patch("/api/v1/reviews/items/rv-1-q_yes", headers=headers("3001"),
                           json={"final_answer": None})
        assert res.status_code == 403
        assert res.get_json()["code"] == "MANAGER_COMMENT_REQUIRED"
        assert db.session.get(ReviewItem, "rv-1-q_yes").final_answer == "no"

    def test_item_review_mismatch(self, client, world, headers):
        """An item cannot be moved to another review."""
        _make_review()
        res = client.patch("/api/v1/reviews/items/rv-1-q_yes", headers=headers("1001"),
                           json={"review_id": "rv-other", "initial_answer": "no"})
        assert res.status_code == 400
        assert res.get_json()["code"] == "REVIEW_ITEM_REVIEW_MISMATCH"

    def test_owner_deletes_item(self, client, world, headers):
        """Deleting an item rescores the review."""
        _make_review()
        res = client.delete("/api/v1/reviews/items/rv-1-q_scale", headers=headers("1001"))
        assert res.status_code == 200
        review = db.session.get(Review, "rv-1")
        assert [i.scorecard_question_id for i in review.items] == ["q_yes"]
        assert review.initial_score == 40.0

    def test_outsider_cannot_touch_items(self, client, world, headers):
        """Members without a role on the challenge are refused."""
        _make_review()
        res = client.delete("/api/v1/reviews/items/rv-1-q_scale", headers=headers("4444"))
        assert res.status_code == 403
        assert res.get_json()["code"] == "FORBIDDEN_ROLE"


# ═════════════════════════════════════════════════════════════════════════
# Reads
# ═════════════════════════════════════════════════════════════════════════


class TestGetReview:
    def test_admin_reads_anything(self, client, world, headers):
        """Admins read reviews unmasked."""
        _make_review()
        res = client.get("/api/v1/reviews/rv-1", headers=headers("9000", admin=True))
        assert res.status_code == 200
        assert res.get_json()["phase_name"] == "Review"

    def test_submitter_waits_for_phase_end(self, client, world, headers):
        """A submitter's own review stays hidden during the Review phase."""
        _make_review()
        res = client.get("/api/v1/reviews/rv-1", headers=headers("2001"))
        assert res.status_code == 403
        assert res.get_json()["code"] == "FORBIDDEN_REVIEW_ACCESS_PHASE"

    def test_submitter_reads_after_completion(self, client, world, headers):
        """After completion the submitter sees the review and submitter metadata."""
        world.challenges["c1"]["status"] = "COMPLETED"
        _make_review(initial_score=70.0, final_score=70.0)
        res = client.get("/api/v1/reviews/rv-1", headers=headers("2001"))
        assert res.status_code == 200
        body = res.get_json()
        assert body["final_score"] == 70.0
        assert body["submitter_handle"] == "coder1"
        assert body["submitter_max_rating"] == 1500

    def test_peer_reviewer_denied(self, client, world, headers):
        """Reviewers cannot read a peer's review mid-challenge."""
        _make_review()
        res = client.get("/api/v1/reviews/rv-1", headers=headers("1002"))
        assert res.status_code == 403
        assert res.get_json()["code"] == "FORBIDDEN_REVIEW_ACCESS_REVIEWER_SELF"

    def test_challenge_unavailable(self, client, world, headers):
        """A challenge directory outage surfaces as 503."""
        _make_review()
        world.unavailable.add("c1")
        res = client.get("/api/v1/reviews/rv-1", headers=headers("2001"))
        assert res.status_code == 503
        assert res.get_json()["code"] == "CHALLENGE_UNAVAILABLE"


class TestListReviews:
    @pytest.fixture()
    def two_reviews(self, world):
        _make_review("rv-1", resource_id="res-r1", submission_id="sub-1")
        _make_review("rv-2", resource_id="res-r2", submission_id="sub-2")
        return world

    def test_reviewer_lists_own_reviews_only(self, client, two_reviews, headers):
        """Mid-review, a reviewer sees only their own reviews."""
        res = client.get("/api/v1/reviews?challenge_id=c1", headers=headers("1001"))
        assert res.status_code == 200
        body = res.get_json()
        assert [r["id"] for r in body["data"]] == ["rv-1"]
        assert body["meta"]["total_count"] == 1

    def test_submitter_on_completed_challenge(self, client, two_reviews, headers):
        """Without a passing submission only own reviews are listed."""
        two_reviews.challenges["c1"]["status"] = "COMPLETED"
        res = client.get("/api/v1/reviews?challenge_id=c1", headers=headers("2001"))
        data = res.get_json()["data"]
        assert [r["submission_id"] for r in data] == ["sub-1"]
        assert data[0]["submitter_handle"] == "coder1"

    def test_passing_submitter_sees_all(self, client, two_reviews, headers):
        """A passing summation unlocks every review after completion."""
        two_reviews.challenges["c1"]["status"] = "COMPLETED"
        db.session.add(ReviewSummation(submission_id="sub-1", scorecard_id="sc-review",
                                       aggregate_score=92.0, is_passing=True))
        db.session.commit()
        res = client.get("/api/v1/reviews?challenge_id=c1", headers=headers("2001"))
        assert sorted(r["id"] for r in res.get_json()["data"]) == ["rv-1", "rv-2"]

    def test_submitter_listing_without_challenge_filter(self, client, two_reviews, headers):
        """Cross-challenge listing applies the same windows."""
        two_reviews.challenges["c1"]["status"] = "COMPLETED"
        res = client.get("/api/v1/reviews", headers=headers("2001"))
        assert [r["id"] for r in res.get_json()["data"]] == ["rv-1"]

    def test_submitter_sees_masked_review_mid_review(self, client, two_reviews, headers):
        """During the Review phase a submitter's own review is listed fully masked."""
        res = client.get("/api/v1/reviews?challenge_id=c1", headers=headers("2001"))
        assert res.status_code == 200
        data = res.get_json()["data"]
        assert [r["id"] for r in data] == ["rv-1"]
        assert data[0]["final_score"] is None
        assert data[0]["review_items"] == []
        assert "committed" not in data[0]

    def test_outsider(self, client, two_reviews, headers):
        """Non-participants are refused per challenge and see nothing overall."""
        res = client.get("/api/v1/reviews?challenge_id=c1", headers=headers("4444"))
        assert res.status_code == 403
        assert res.get_json()["code"] == "FORBIDDEN_REVIEW_ACCESS"

        res = client.get("/api/v1/reviews", headers=headers("4444"))
        assert res.status_code == 200
        assert res.get_json()["meta"]["total_count"] == 0

    def test_machine_pagination_and_thin(self, client, two_reviews, headers):
        """Machine tokens list everything; thin drops item detail."""
        res = client.get("/api/v1/reviews?per_page=1&thin=true", headers=headers(machine=True))
        body = res.get_json()
        assert body["meta"] == {"page": 1, "per_page": 1, "total_count": 2, "total_pages": 2}
        assert "review_items" not in body["data"][0]

    def test_status_filter(self, client, two_reviews, headers):
        """Query filters narrow the scoped set."""
        db.session.get(Review, "rv-2").status = "COMPLETED"
        db.session.commit()
        res = client.get("/api/v1/reviews?status=completed", headers=headers("9000", admin=True))
        assert [r["id"] for r in res.get_json()["data"]] == ["rv-2"]

    def test_invalid_pagination(self, client, two_reviews, headers):
        """Non-numeric paging is a validation error."""
        res = client.get("/api/v1/reviews?page=first", headers=headers(machine=True))
        assert res.status_code == 400


# ═════════════════════════════════════════════════════════════════════════
# Progress / audit
# ═════════════════════════════════════════════════════════════════════════


class TestProgress:
    def test_progress_percentage(self, client, world, headers):
        """Committed reviews over reviewers x active submissions."""
        _make_review("rv-1", committed=True)
        _make_review("rv-2", resource_id="res-r2", submission_id="sub-1")
        res = client.get("/api/v1/reviews/progress/c1", headers=headers("3001"))
        assert res.status_code == 200
        body = res.get_json()
        assert body["total_reviewers"] == 2
        assert body["total_submissions"] == 2
        assert body["total_submitted_reviews"] == 1
        assert body["progress_percentage"] == 25.0
        assert body["calculated_at"]

    def test_outsider_denied(self, client, world, headers):
        """Progress needs a role on the challenge."""
        res = client.get("/api/v1/reviews/progress/c1", headers=headers("4444"))
        assert res.status_code == 403
        assert res.get_json()["code"] == "FORBIDDEN_ROLE"


def test_audit_is_admin_only(client, world, headers):
    """Members cannot read the audit trail."""
    _make_review()
    res = client.get("/api/v1/reviews/rv-1/audit", headers=headers("1001"))
    assert res.status_code == 403


def test_health_live(client):
    """The liveness probe reports the database."""
    res = client.get("/api/v1/health/live")
    assert res.status_code == 200
    assert res.get_json()["checks"]["database"]["status"] == "ok"
