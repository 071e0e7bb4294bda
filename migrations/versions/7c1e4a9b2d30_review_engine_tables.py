"""review_engine_tables

Creates the review engine schema:
  - scorecards, scorecard_groups, scorecard_sections, scorecard_questions
  - submissions, review_summations
  - reviews, review_items, review_item_comments, appeals
  - review_audits

Tables created conditionally (IF NOT EXISTS semantics) to support idempotent
execution against databases that already received these tables via
db.create_all() in a development environment.

Revision ID: 7c1e4a9b2d30
Revises:
Create Date: 2026-10-18 09:12:44.318201
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = '7c1e4a9b2d30'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(*, updated: bool = True):
    cols = [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_by", sa.String(length=64), nullable=True),
    ]
    if updated:
        cols += [
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_by", sa.String(length=64), nullable=True),
        ]
    return cols


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing = set(inspector.get_table_names())

    # ── Scorecard catalog ─────────────────────────────────────────────────
    if "scorecards" not in existing:
        op.create_table(
            "scorecards",
            sa.Column("id", sa.String(length=14), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column(
                "type", sa.String(length=30), nullable=False, server_default="REVIEW",
                comment="SCREENING | REVIEW | APPROVAL | POST_MORTEM | ...",
            ),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="ACTIVE"),
            sa.Column("version", sa.String(length=20), nullable=False, server_default="1.0"),
            sa.Column("minimum_passing_score", sa.Float(), nullable=False, server_default="50"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )

    if "scorecard_groups" not in existing:
        op.create_table(
            "scorecard_groups",
            sa.Column("id", sa.String(length=14), nullable=False),
            sa.Column("scorecard_id", sa.String(length=14), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False, server_default=""),
            sa.Column("weight", sa.Float(), nullable=False, server_default="0"),
            sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
            sa.ForeignKeyConstraint(["scorecard_id"], ["scorecards.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_scorecard_groups_scorecard_id", "scorecard_groups", ["scorecard_id"])

    if "scorecard_sections" not in existing:
        op.create_table(
            "scorecard_sections",
            sa.Column("id", sa.String(length=14), nullable=False),
            sa.Column("group_id", sa.String(length=14), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False, server_default=""),
            sa.Column("weight", sa.Float(), nullable=False, server_default="0"),
            sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
            sa.ForeignKeyConstraint(["group_id"], ["scorecard_groups.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_scorecard_sections_group_id", "scorecard_sections", ["group_id"])

    if "scorecard_questions" not in existing:
        op.create_table(
            "scorecard_questions",
            sa.Column("id", sa.String(length=14), nullable=False),
            sa.Column("section_id", sa.String(length=14), nullable=False),
            sa.Column(
                "type", sa.String(length=20), nullable=False, server_default="YES_NO",
                comment="YES_NO | SCALE | TEST_CASE | OTHER",
            ),
            sa.Column("description", sa.Text(), nullable=False, server_default=""),
            sa.Column("weight", sa.Float(), nullable=False, server_default="0"),
            sa.Column("scale_min", sa.Integer(), nullable=True),
            sa.Column("scale_max", sa.Integer(), nullable=True),
            sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
            sa.ForeignKeyConstraint(["section_id"], ["scorecard_sections.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_scorecard_questions_section_id", "scorecard_questions", ["section_id"])

    # ── Submission store ──────────────────────────────────────────────────
    if "submissions" not in existing:
        op.create_table(
            "submissions",
            sa.Column("id", sa.String(length=14), nullable=False),
            sa.Column("challenge_id", sa.String(length=64), nullable=True),
            sa.Column("member_id", sa.String(length=64), nullable=True),
            sa.Column("member_handle", sa.String(length=100), nullable=True),
            sa.Column("member_max_rating", sa.Integer(), nullable=True),
            sa.Column("type", sa.String(length=30), nullable=False,
                      server_default="CONTEST_SUBMISSION"),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="ACTIVE"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_submissions_challenge_id", "submissions", ["challenge_id"])
        op.create_index("ix_submissions_member_id", "submissions", ["member_id"])
        op.create_index("ix_submission_challenge_member", "submissions",
                        ["challenge_id", "member_id"])

    if "review_summations" not in existing:
        op.create_table(
            "review_summations",
            sa.Column("id", sa.String(length=14), nullable=False),
            sa.Column("submission_id", sa.String(length=14), nullable=False),
            sa.Column("scorecard_id", sa.String(length=14), nullable=True),
            sa.Column("aggregate_score", sa.Float(), nullable=False, server_default="0"),
            sa.Column("is_passing", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("is_final", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["submission_id"], ["submissions.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["scorecard_id"], ["scorecards.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_review_summations_submission_id", "review_summations",
                        ["submission_id"])

    # ── Reviews ───────────────────────────────────────────────────────────
    if "reviews" not in existing:
        op.create_table(
            "reviews",
            sa.Column("id", sa.String(length=14), nullable=False),
            sa.Column("resource_id", sa.String(length=64), nullable=False),
            sa.Column("phase_id", sa.String(length=64), nullable=False),
            sa.Column(
                "submission_id", sa.String(length=14), nullable=True,
                comment="NULL for submission-less review types (Post-Mortem)",
            ),
            sa.Column("scorecard_id", sa.String(length=14), nullable=True),
            sa.Column("challenge_id", sa.String(length=64), nullable=True),
            sa.Column("type_id", sa.String(length=64), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=True, server_default="PENDING"),
            sa.Column("committed", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("initial_score", sa.Float(), nullable=True),
            sa.Column("final_score", sa.Float(), nullable=True),
            sa.Column("review_date", sa.DateTime(timezone=True), nullable=True),
            sa.Column("metadata", sa.JSON(), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["submission_id"], ["submissions.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["scorecard_id"], ["scorecards.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("resource_id", "submission_id", "scorecard_id",
                                name="uq_review_resource_submission_scorecard"),
        )
        for column in ("resource_id", "phase_id", "submission_id", "scorecard_id",
                       "challenge_id", "status"):
            op.create_index(f"ix_reviews_{column}", "reviews", [column])
        op.create_index("ix_review_challenge_phase", "reviews", ["challenge_id", "phase_id"])

    if "review_items" not in existing:
        op.create_table(
            "review_items",
            sa.Column("id", sa.String(length=14), nullable=False),
            sa.Column("review_id", sa.String(length=14), nullable=False),
            sa.Column("scorecard_question_id", sa.String(length=14), nullable=False),
            sa.Column("initial_answer", sa.Text(), nullable=False),
            sa.Column("final_answer", sa.Text(), nullable=True),
            sa.Column("manager_comment", sa.Text(), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["review_id"], ["reviews.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["scorecard_question_id"], ["scorecard_questions.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_review_items_review_id", "review_items", ["review_id"])
        op.create_index("ix_review_items_scorecard_question_id", "review_items",
                        ["scorecard_question_id"])

    if "review_item_comments" not in existing:
        op.create_table(
            "review_item_comments",
            sa.Column("id", sa.String(length=14), nullable=False),
            sa.Column("review_item_id", sa.String(length=14), nullable=False),
            sa.Column("resource_id", sa.String(length=64), nullable=False),
            sa.Column("content", sa.Text(), nullable=False),
            sa.Column(
                "type", sa.String(length=20), nullable=False, server_default="COMMENT",
                comment="COMMENT | REQUIRED | RECOMMENDED",
            ),
            sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["review_item_id"], ["review_items.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_review_item_comments_review_item_id", "review_item_comments",
                        ["review_item_id"])

    if "appeals" not in existing:
        op.create_table(
            "appeals",
            sa.Column("id", sa.String(length=14), nullable=False),
            sa.Column("review_item_comment_id", sa.String(length=14), nullable=False),
            sa.Column("resource_id", sa.String(length=64), nullable=False),
            sa.Column("content", sa.Text(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["review_item_comment_id"], ["review_item_comments.id"],
                                    ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("review_item_comment_id"),
        )

    # ── Audit trail ───────────────────────────────────────────────────────
    if "review_audits" not in existing:
        op.create_table(
            "review_audits",
            sa.Column("id", sa.String(length=14), nullable=False),
            sa.Column("review_id", sa.String(length=14), nullable=False),
            sa.Column("submission_id", sa.String(length=14), nullable=True),
            sa.Column("challenge_id", sa.String(length=64), nullable=True),
            sa.Column("actor_id", sa.String(length=64), nullable=False),
            sa.Column("description", sa.Text(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["review_id"], ["reviews.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_review_audit_review", "review_audits", ["review_id"])
        op.create_index("ix_review_audit_submission", "review_audits", ["submission_id"])


def downgrade():
    for table in (
        "review_audits",
        "appeals",
        "review_item_comments",
        "review_items",
        "reviews",
        "review_summations",
        "submissions",
        "scorecard_questions",
        "scorecard_sections",
        "scorecard_groups",
        "scorecards",
    ):
        op.drop_table(table)
