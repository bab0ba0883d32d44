"""
JSON error responses for pipeline failures, plus the health check.
"""
import logging

from flask import Blueprint, jsonify

from leadflow.errors import (
    DeduplicationInProgress, HistoryWriteFailed, InvalidCriterion, InvalidFieldValue,
    LeadNotFound, NoOpTransition, PipelineError, ReadOnlyField, ScoreWriteFailed, UnknownStage,
)

logger = logging.getLogger('routes.errors')

bp = Blueprint('errors', __name__)

STATUS_CODES = {
    UnknownStage: 400,
    ReadOnlyField: 400,
    InvalidCriterion: 400,
    InvalidFieldValue: 400,
    LeadNotFound: 404,
    NoOpTransition: 409,
    DeduplicationInProgress: 409,
    HistoryWriteFailed: 500,
    ScoreWriteFailed: 500,
}


def error_response(message, status, **extra):
    body = {'error': message}
    body.update(extra)
    return jsonify(body), status


def _details(exc):
    if isinstance(exc, ReadOnlyField):
        return {'fields': exc.fields}
    if isinstance(exc, InvalidFieldValue):
        return {'field': exc.field}
    if isinstance(exc, ScoreWriteFailed):
        return {'written': exc.written}
    return {}


@bp.app_errorhandler(PipelineError)
def handle_pipeline_error(exc):
    status = STATUS_CODES.get(type(exc), 500)
    if status >= 500:
        logger.error("%s: %s", type(exc).__name__, exc)
    return error_response(str(exc), status, code=type(exc).__name__, **_details(exc))


@bp.route('/health')
def health_check():
    """Basic health check."""
    return jsonify({"status": "healthy"}), 200
