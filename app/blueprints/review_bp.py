"""
Review API blueprint.

Endpoints:
    GET    /api/v1/reviews                        list (filters, pagination, thin)
    POST   /api/v1/reviews                        create a review with its items
    GET    /api/v1/reviews/<id>                   read one review (masked per reader)
    PATCH  /api/v1/reviews/<id>                   partial update
    PUT    /api/v1/reviews/<id>                   update (same semantics as PATCH)
    DELETE /api/v1/reviews/<id>                   copilot / admin only
    POST   /api/v1/reviews/items                  add an item to a review
    PATCH  /api/v1/reviews/items/<id>             update an item
    PUT    /api/v1/reviews/items/<id>             update an item
    DELETE /api/v1/reviews/items/<id>             delete an item
    GET    /api/v1/reviews/progress/<challenge>   committed reviews vs expected
    GET    /api/v1/reviews/<id>/audit             privileged change log

Layer contract:
    - Blueprint: resolve the actor, read the body, call review_service.
    - All authorization, validation and writes live in review_service.
    - Errors are raised as app.core.exceptions types and mapped here.
"""

import logging

from flask import Blueprint, g, jsonify, request

from app.core.exceptions import (
    AuthenticationError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)
from app.services import review_service
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)

review_bp = Blueprint("reviews", __name__, url_prefix="/api/v1")


# ── Helpers ───────────────────────────────────────────────────────────────────


def _actor():
    actor = g.get("actor")
    if actor is None:
        raise AuthenticationError("A valid bearer token is required")
    return actor


def _body():
    return request.get_json(silent=True)


# ── Error handlers ────────────────────────────────────────────────────────────


@review_bp.errorhandler(AuthenticationError)
def _handle_unauthenticated(error: AuthenticationError):
    return api_error(E.UNAUTHENTICATED, str(error) or "Authentication required")


@review_bp.errorhandler(NotFoundError)
def _handle_not_found(error: NotFoundError):
    details = {"resource_id": error.resource_id} if error.resource_id else None
    return api_error(error.code, str(error), status=404, details=details)


@review_bp.errorhandler(ValidationError)
def _handle_validation(error: ValidationError):
    return api_error(error.code, str(error), status=400, details=error.details)


@review_bp.errorhandler(ForbiddenError)
def _handle_forbidden(error: ForbiddenError):
    return api_error(error.code, str(error), status=403, details=error.details)


@review_bp.errorhandler(ConflictError)
def _handle_conflict(error: ConflictError):
    return api_error(error.code, str(error), status=409,
                     details={"field": error.field, "value": error.value})


@review_bp.errorhandler(UpstreamError)
def _handle_upstream(error: UpstreamError):
    logger.error("Upstream failure (%s): %s", error.service, error,
                 extra={"reason_code": error.code})
    return api_error(error.code, str(error), status=503, details={"service": error.service})


@review_bp.errorhandler(Exception)
def _handle_unexpected(error: Exception):
    logger.exception("Unexpected error in reviews endpoint=%s", request.endpoint)
    return api_error(E.INTERNAL, "Internal server error")


# ═════════════════════════════════════════════════════════════════════════
# Reviews
# ═════════════════════════════════════════════════════════════════════════


@review_bp.route("/reviews", methods=["GET"])
def list_reviews():
    """List reviews visible to the caller.

    Query params: challenge_id, submission_id, resource_id, phase_id,
    scorecard_id, status, committed, page, per_page, thin.
    """
    return jsonify(review_service.list_reviews(_actor(), request.args)), 200


@review_bp.route("/reviews", methods=["POST"])
def create_review():
    review = review_service.create_review(_actor(), _body())
    return jsonify(review), 201


@review_bp.route("/reviews/<review_id>", methods=["GET"])
def get_review(review_id):
    return jsonify(review_service.get_review(_actor(), review_id)), 200


@review_bp.route("/reviews/<review_id>", methods=["PATCH", "PUT"])
def update_review(review_id):
    return jsonify(review_service.update_review(_actor(), review_id, _body())), 200


@review_bp.route("/reviews/<review_id>", methods=["DELETE"])
def delete_review(review_id):
    review_service.delete_review(_actor(), review_id)
    return jsonify({"deleted": True, "id": review_id}), 200


@review_bp.route("/reviews/<review_id>/audit", methods=["GET"])
def list_review_audit(review_id):
    entries = review_service.list_review_audit(_actor(), review_id)
    return jsonify({"items": entries, "total": len(entries)}), 200


@review_bp.route("/reviews/progress/<challenge_id>", methods=["GET"])
def get_review_progress(challenge_id):
    return jsonify(review_service.get_review_progress(_actor(), challenge_id)), 200


# ═════════════════════════════════════════════════════════════════════════
# Review items
# ═════════════════════════════════════════════════════════════════════════


@review_bp.route("/reviews/items", methods=["POST"])
def create_review_item():
    item = review_service.create_review_item(_actor(), _body())
    return jsonify(item), 201


@review_bp.route("/reviews/items/<item_id>", methods=["PATCH", "PUT"])
def update_review_item(item_id):
    return jsonify(review_service.update_review_item(_actor(), item_id, _body())), 200


@review_bp.route("/reviews/items/<item_id>", methods=["DELETE"])
def delete_review_item(item_id):
    review_service.delete_review_item(_actor(), item_id)
    return jsonify({"deleted": True, "id": item_id}), 200
