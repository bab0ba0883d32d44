"""
Lead pipeline engine — the caller-facing operations.

Each operation opens its own session, owns the transaction boundary and
returns explicit values (updated lead, new history entry, counts) so callers
decide what to refresh. Failures surface as leadflow.errors exceptions.
"""
import logging
from typing import Dict, Iterable, List, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError

from leadflow.config import ATTRIBUTION_DIMENSIONS, RESCORE_BATCH_SIZE, RESCORE_JOB_TIMEOUT
from leadflow.database import get_session
from leadflow.errors import (
    HistoryWriteFailed, InvalidCriterion, InvalidFieldValue, PipelineError, ReadOnlyField,
    ScoreWriteFailed,
)
from leadflow.extensions import get_queue
from leadflow.models.lead import (
    EDITABLE_FIELD_TYPES, EDITABLE_FIELDS, NULLABLE_EDITABLE_FIELDS, PIPELINE_FIELDS,
)
from leadflow.models.qualification_criterion import QualificationCriterion
from leadflow.pipeline import attribution
from leadflow.pipeline.criteria import OPERATORS, CriteriaFit, evaluate_criteria
from leadflow.pipeline.dedup import find_duplicate_ids
from leadflow.pipeline.matching import CustomerMatch, MeetingMatch, match_lead, match_leads, match_meetings
from leadflow.pipeline.scoring import LeadScore, apply_score, score_lead
from leadflow.pipeline.stages import apply_transition, validate_stage
from leadflow.services.db import (
    append_history, delete_leads, get_lead, get_lead_for_update, iter_external_records,
    iter_session_leads, iter_session_leads_by_age, iter_session_pages, lead_history,
    session_criteria,
)
from leadflow.services.locks import session_lock

logger = logging.getLogger('services.engine')


# ── Stage pipeline ───────────────────────────────────────────────────────────

def transition_stage(lead_id, new_stage, actor=None, actor_name=None):
    """
    Move a lead to new_stage and record the history entry atomically.

    Returns (lead, entry). Raises UnknownStage / NoOpTransition before anything
    is written, LeadNotFound for a missing lead, and HistoryWriteFailed when the
    audit entry cannot be stored (the stage change is rolled back with it).
    """
    validate_stage(new_stage)

    session = get_session()
    try:
        lead = get_lead_for_update(session, lead_id)
        previous = lead.stage
        entry = apply_transition(lead, new_stage, actor=actor, actor_name=actor_name)
        try:
            append_history(session, entry)
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error("History write failed for lead %s (%s → %s)", lead_id, previous, new_stage,
                         exc_info=True)
            raise HistoryWriteFailed(lead_id, previous) from exc

        session.refresh(lead)
        session.refresh(entry)
        logger.info("Lead %s moved %s → %s by %s", lead_id, previous, new_stage, actor or 'system',
                    extra={'lead_id': lead_id, 'session_id': lead.session_id, 'stage': new_stage})
        return lead, entry
    except PipelineError:
        session.rollback()
        raise
    except Exception:
        session.rollback()
        logger.error("Stage transition failed for lead %s", lead_id, exc_info=True)
        raise
    finally:
        session.close()


def get_stage_history(lead_id):
    """A lead's stage history, most recent first."""
    session = get_session()
    try:
        get_lead(session, lead_id)
        return list(lead_history(session, lead_id))
    finally:
        session.close()


# ── Lead edits ───────────────────────────────────────────────────────────────

def update_lead(lead_id, changes: Mapping):
    """Apply user edits. Pipeline-owned, unknown and mistyped fields are rejected up front."""
    rejected = [k for k in changes if k not in EDITABLE_FIELDS]
    if rejected:
        owned = [k for k in rejected if k in PIPELINE_FIELDS]
        if owned:
            logger.warning("Lead %s: direct edit of pipeline-owned %s refused", lead_id, owned,
                           extra={'lead_id': lead_id})
        raise ReadOnlyField(rejected)

    for key, value in changes.items():
        if value is None and key in NULLABLE_EDITABLE_FIELDS:
            continue
        expected = EDITABLE_FIELD_TYPES[key]
        # bool is an int subclass but never a valid order_index
        if isinstance(value, bool) or not isinstance(value, expected):
            raise InvalidFieldValue(key, value, expected.__name__)

    session = get_session()
    try:
        lead = get_lead(session, lead_id)
        for key, value in changes.items():
            setattr(lead, key, value)
        session.commit()
        session.refresh(lead)
        logger.info("Lead %s updated (%s)", lead_id, ', '.join(sorted(changes)))
        return lead
    except PipelineError:
        session.rollback()
        raise
    except Exception:
        session.rollback()
        logger.error("Failed to update lead %s", lead_id, exc_info=True)
        raise
    finally:
        session.close()


# ── Scoring ──────────────────────────────────────────────────────────────────

def recompute_score(lead_id):
    """Re-score one lead and persist the verdict. Returns (lead, LeadScore)."""
    session = get_session()
    try:
        lead = get_lead(session, lead_id)
        result: LeadScore = score_lead(lead)
        if apply_score(lead, result):
            session.commit()
            session.refresh(lead)
            logger.info("Lead %s rescored: %d (qualified=%s)", lead_id, result.score, result.qualified)
        return lead, result
    except PipelineError:
        session.rollback()
        raise
    except Exception:
        session.rollback()
        logger.error("Failed to rescore lead %s", lead_id, exc_info=True)
        raise
    finally:
        session.close()


def rescore_session(session_id, batch_size: int = RESCORE_BATCH_SIZE):
    """
    Re-score every lead in a session, committing one bounded batch at a time.

    A failed batch is rolled back and raises ScoreWriteFailed; batches before
    it stay committed (`written` on the exception).
    """
    batch_size = max(1, int(batch_size or RESCORE_BATCH_SIZE))
    scored = 0
    changed = 0
    written = 0

    session = get_session()
    try:
        for page in iter_session_pages(session, session_id, page_size=batch_size):
            for lead in page:
                if apply_score(lead, score_lead(lead)):
                    changed += 1
            scored += len(page)
            try:
                session.commit()
            except SQLAlchemyError as exc:
                session.rollback()
                logger.error("Score write failed for session %s after %d leads", session_id, written,
                             exc_info=True)
                raise ScoreWriteFailed(session_id, written) from exc
            written = scored

        logger.info("Session %s rescored: %d leads, %d changed", session_id, scored, changed,
                    extra={'session_id': session_id})
        return {'session_id': session_id, 'scored': scored, 'changed': changed}
    finally:
        session.close()


def enqueue_session_rescore(session_id, batch_size: Optional[int] = None):
    """Run rescore_session as a background RQ job. Returns the job id."""
    job = get_queue().enqueue(
        rescore_session, session_id, batch_size or RESCORE_BATCH_SIZE,
        job_timeout=RESCORE_JOB_TIMEOUT,
    )
    logger.info("Enqueued rescore of session %s (job %s)", session_id, job.id,
                extra={'session_id': session_id, 'job_id': job.id})
    return job.id


# ── Deduplication ────────────────────────────────────────────────────────────

def deduplicate_session(session_id) -> int:
    """
    Remove duplicate leads in a session, keeping the oldest per matching key.

    Returns the number of leads removed; 0 is a normal result. Raises
    DeduplicationInProgress when another run holds the session lock.
    """
    with session_lock(session_id):
        session = get_session()
        try:
            doomed = find_duplicate_ids(iter_session_leads_by_age(session, session_id), presorted=True)
            if not doomed:
                logger.info("Session %s: no duplicates", session_id)
                return 0
            removed = delete_leads(session, doomed)
            session.commit()
            logger.info("Session %s: removed %d duplicate leads", session_id, removed,
                        extra={'session_id': session_id})
            return removed
        except Exception:
            session.rollback()
            logger.error("Deduplication failed for session %s", session_id, exc_info=True)
            raise
        finally:
            session.close()


# ── Cross-reference ──────────────────────────────────────────────────────────

def match_against_external(lead_id) -> CustomerMatch:
    session = get_session()
    try:
        lead = get_lead(session, lead_id)
        return match_lead(lead, iter_external_records(session))
    finally:
        session.close()


def match_session_against_external(session_id) -> Dict[int, CustomerMatch]:
    """Existing-customer flags for every matching lead in a session."""
    session = get_session()
    try:
        return match_leads(iter_session_leads(session, session_id), iter_external_records(session))
    finally:
        session.close()


def match_session_meetings(session_id, upcoming: Iterable[Mapping],
                           past: Iterable[Mapping]) -> Dict[int, MeetingMatch]:
    session = get_session()
    try:
        return match_meetings(iter_session_leads(session, session_id), list(upcoming or []),
                              list(past or []))
    finally:
        session.close()


# ── Qualification criteria ───────────────────────────────────────────────────

def list_criteria(session_id) -> List[dict]:
    session = get_session()
    try:
        return [c.to_dict() for c in session_criteria(session, session_id)]
    finally:
        session.close()


def add_criterion(session_id, field_name, operator, value='', weight=1.0) -> dict:
    if not field_name or not str(field_name).strip():
        raise InvalidCriterion('field_name is required')
    if operator not in OPERATORS:
        raise InvalidCriterion(f"unknown operator '{operator}'")
    try:
        weight = float(weight)
    except (TypeError, ValueError):
        raise InvalidCriterion(f"weight must be a number, got {weight!r}")
    if weight <= 0:
        raise InvalidCriterion('weight must be positive')

    session = get_session()
    try:
        criterion = QualificationCriterion(
            session_id=session_id,
            field_name=str(field_name).strip(),
            operator=operator,
            value='' if value is None else str(value),
            weight=weight,
        )
        session.add(criterion)
        session.commit()
        session.refresh(criterion)
        logger.info("Criterion %s added to session %s", criterion.id, session_id)
        return criterion.to_dict()
    except Exception:
        session.rollback()
        logger.error("Failed to add criterion to session %s", session_id, exc_info=True)
        raise
    finally:
        session.close()


def delete_criterion(criterion_id) -> bool:
    session = get_session()
    try:
        criterion = session.get(QualificationCriterion, criterion_id)
        if criterion is None:
            return False
        session.delete(criterion)
        session.commit()
        return True
    except Exception:
        session.rollback()
        logger.error("Failed to delete criterion %s", criterion_id, exc_info=True)
        raise
    finally:
        session.close()


def criteria_fit(session_id) -> Dict[int, CriteriaFit]:
    """Weighted criteria fit per lead. Informational; nothing is written."""
    session = get_session()
    try:
        criteria = session_criteria(session, session_id)
        return {lead.id: evaluate_criteria(lead, criteria)
                for lead in iter_session_leads(session, session_id)}
    finally:
        session.close()


# ── Attribution analytics ────────────────────────────────────────────────────

def aggregate_by_dimension(session_id, dimension) -> List[attribution.AttributionRow]:
    session = get_session()
    try:
        return attribution.aggregate(iter_session_leads(session, session_id), dimension)
    finally:
        session.close()


def aggregate_funnel(session_id) -> List[attribution.FunnelRow]:
    session = get_session()
    try:
        return attribution.aggregate_funnel(iter_session_leads(session, session_id))
    finally:
        session.close()


def aggregate_daily(session_id) -> List[attribution.DailyRow]:
    session = get_session()
    try:
        return attribution.aggregate_daily(iter_session_leads(session, session_id))
    finally:
        session.close()


def attribution_report(session_id, dimensions=ATTRIBUTION_DIMENSIONS) -> dict:
    """Every analytics view for a session from a single pass over its leads."""
    session = get_session()
    try:
        report = attribution.build_report(iter_session_leads(session, session_id), dimensions)
        report['session_id'] = session_id
        return report
    finally:
        session.close()
