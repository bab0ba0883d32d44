"""
Leads blueprint — stage moves, edits, scoring, dedup and cross-reference API.
"""
from flask import Blueprint, jsonify, request

from leadflow.routes.errors import error_response
from leadflow.services import engine

bp = Blueprint('leads', __name__)


# ── Stage pipeline ───────────────────────────────────────────────────────────

@bp.route('/api/leads/<int:lead_id>/stage', methods=['POST'])
def move_stage(lead_id):
    data = request.get_json(silent=True) or {}
    new_stage = data.get('stage')
    if not new_stage:
        return jsonify({'error': 'stage is required'}), 400
    lead, entry = engine.transition_stage(
        lead_id, new_stage,
        actor=data.get('actor'),
        actor_name=data.get('actor_name'),
    )
    return jsonify({'lead': lead.to_dict(), 'history_entry': entry.to_dict()})


@bp.route('/api/leads/<int:lead_id>/history')
def stage_history(lead_id):
    entries = engine.get_stage_history(lead_id)
    return jsonify([e.to_dict() for e in entries])


@bp.route('/api/leads/<int:lead_id>', methods=['PATCH'])
def edit_lead(lead_id):
    changes = request.get_json(silent=True) or {}
    if not isinstance(changes, dict) or not changes:
        return jsonify({'error': 'No changes supplied'}), 400
    lead = engine.update_lead(lead_id, changes)
    return jsonify(lead.to_dict())


# ── Scoring ──────────────────────────────────────────────────────────────────

@bp.route('/api/leads/<int:lead_id>/score', methods=['POST'])
def rescore_lead(lead_id):
    lead, result = engine.recompute_score(lead_id)
    return jsonify({'lead': lead.to_dict(), 'score': result.to_dict()})


@bp.route('/api/sessions/<session_id>/rescore', methods=['POST'])
def rescore_session(session_id):
    batch_size = request.args.get('batch_size', type=int)
    if request.args.get('async') in ('1', 'true'):
        job_id = engine.enqueue_session_rescore(session_id, batch_size)
        return jsonify({'session_id': session_id, 'job_id': job_id}), 202
    if batch_size:
        return jsonify(engine.rescore_session(session_id, batch_size))
    return jsonify(engine.rescore_session(session_id))


# ── Deduplication ────────────────────────────────────────────────────────────

@bp.route('/api/sessions/<session_id>/dedup', methods=['POST'])
def dedup_session(session_id):
    removed = engine.deduplicate_session(session_id)
    return jsonify({'session_id': session_id, 'removed': removed})


# ── Cross-reference ──────────────────────────────────────────────────────────

@bp.route('/api/leads/<int:lead_id>/customer-match')
def customer_match(lead_id):
    return jsonify(engine.match_against_external(lead_id).to_dict())


@bp.route('/api/sessions/<session_id>/customer-matches')
def session_customer_matches(session_id):
    matches = engine.match_session_against_external(session_id)
    return jsonify({str(lead_id): m.to_dict() for lead_id, m in matches.items()})


@bp.route('/api/sessions/<session_id>/meeting-matches', methods=['POST'])
def session_meeting_matches(session_id):
    """Body: {"upcoming": [event, ...], "past": [event, ...]}."""
    data = request.get_json(silent=True) or {}
    matches = engine.match_session_meetings(session_id, data.get('upcoming') or [], data.get('past') or [])
    return jsonify({str(lead_id): m.to_dict() for lead_id, m in matches.items()})


# ── Qualification criteria ───────────────────────────────────────────────────

@bp.route('/api/sessions/<session_id>/criteria')
def list_criteria(session_id):
    return jsonify(engine.list_criteria(session_id))


@bp.route('/api/sessions/<session_id>/criteria', methods=['POST'])
def add_criterion(session_id):
    data = request.get_json(silent=True) or {}
    criterion = engine.add_criterion(
        session_id,
        data.get('field_name'),
        data.get('operator'),
        value=data.get('value', ''),
        weight=data.get('weight', 1.0),
    )
    return jsonify(criterion), 201


@bp.route('/api/criteria/<int:criterion_id>', methods=['DELETE'])
def delete_criterion(criterion_id):
    if not engine.delete_criterion(criterion_id):
        return error_response('Criterion not found', 404)
    return '', 204


@bp.route('/api/sessions/<session_id>/criteria-fit')
def criteria_fit(session_id):
    fits = engine.criteria_fit(session_id)
    return jsonify({str(lead_id): f.to_dict() for lead_id, f in fits.items()})
