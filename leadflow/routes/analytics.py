"""
Analytics blueprint — attribution, funnel and daily series per session.
"""
from flask import Blueprint, jsonify, request

from leadflow.config import ATTRIBUTION_DIMENSIONS
from leadflow.services import engine

bp = Blueprint('analytics', __name__)


@bp.route('/api/sessions/<session_id>/analytics')
def full_report(session_id):
    """All views from one pass over the session."""
    return jsonify(engine.attribution_report(session_id))


@bp.route('/api/sessions/<session_id>/analytics/attribution')
def attribution(session_id):
    dimension = request.args.get('dimension', 'utm_source')
    if dimension not in ATTRIBUTION_DIMENSIONS:
        return jsonify({'error': f'Unsupported dimension: {dimension}'}), 400
    rows = engine.aggregate_by_dimension(session_id, dimension)
    return jsonify({'dimension': dimension, 'rows': [r.to_dict() for r in rows]})


@bp.route('/api/sessions/<session_id>/analytics/funnel')
def funnel(session_id):
    return jsonify([r.to_dict() for r in engine.aggregate_funnel(session_id)])


@bp.route('/api/sessions/<session_id>/analytics/daily')
def daily(session_id):
    return jsonify([r.to_dict() for r in engine.aggregate_daily(session_id)])
