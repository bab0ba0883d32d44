"""
Lead repository — query helpers shared by the engine operations.

These functions take an open session and never commit; transaction boundaries
belong to leadflow.services.engine. Session reads are exhaustive keyset
pagination: every lead is visited exactly once, with no truncating cap.
"""
import logging
from typing import Iterator, List, Sequence

from sqlalchemy import and_, or_, delete, select

from leadflow.config import LEAD_PAGE_SIZE
from leadflow.errors import LeadNotFound
from leadflow.models.external_record import ExternalRecord
from leadflow.models.lead import Lead
from leadflow.models.qualification_criterion import QualificationCriterion
from leadflow.models.stage_history import StageHistoryEntry

logger = logging.getLogger('services.db')


# ── Leads ────────────────────────────────────────────────────────────────────

def get_lead(session, lead_id) -> Lead:
    lead = session.get(Lead, lead_id)
    if lead is None:
        raise LeadNotFound(lead_id)
    return lead


def get_lead_for_update(session, lead_id) -> Lead:
    """
    Load a lead with a row lock held until the transaction ends.

    The lock is real on Postgres only. SQLite ignores FOR UPDATE, so there two
    concurrent identical moves can both pass the no-op check.
    """
    lead = session.execute(
        select(Lead).where(Lead.id == lead_id).with_for_update()
    ).scalar_one_or_none()
    if lead is None:
        raise LeadNotFound(lead_id)
    return lead


def iter_session_pages(session, session_id, page_size: int = LEAD_PAGE_SIZE) -> Iterator[List[Lead]]:
    """A session's leads in id order, one page (list) at a time."""
    last_id = 0
    while True:
        page = session.execute(
            select(Lead)
            .where(Lead.session_id == session_id, Lead.id > last_id)
            .order_by(Lead.id)
            .limit(page_size)
        ).scalars().all()
        if not page:
            return
        # read before yielding; the consumer may commit and expire the rows
        last_id = page[-1].id
        yield page
        if len(page) < page_size:
            return


def iter_session_leads(session, session_id, page_size: int = LEAD_PAGE_SIZE) -> Iterator[Lead]:
    """Every lead of a session, exhaustively."""
    for page in iter_session_pages(session, session_id, page_size):
        yield from page


def iter_session_leads_by_age(session, session_id, page_size: int = LEAD_PAGE_SIZE) -> Iterator[Lead]:
    """Every lead of a session ordered oldest first (created_at, then id)."""
    cursor = None
    while True:
        stmt = select(Lead).where(Lead.session_id == session_id)
        if cursor is not None:
            created, lead_id = cursor
            stmt = stmt.where(or_(
                Lead.created_at > created,
                and_(Lead.created_at == created, Lead.id > lead_id),
            ))
        page = session.execute(
            stmt.order_by(Lead.created_at, Lead.id).limit(page_size)
        ).scalars().all()
        if not page:
            return
        cursor = (page[-1].created_at, page[-1].id)
        yield from page
        if len(page) < page_size:
            return


def delete_leads(session, lead_ids: Sequence[int], chunk_size: int = 500) -> int:
    """Delete leads and their stage history. Returns the number of leads removed."""
    removed = 0
    ids = list(lead_ids)
    for start in range(0, len(ids), chunk_size):
        chunk = ids[start:start + chunk_size]
        # explicit: the FK cascade only fires where the backend enforces it
        session.execute(delete(StageHistoryEntry).where(StageHistoryEntry.lead_id.in_(chunk)))
        result = session.execute(delete(Lead).where(Lead.id.in_(chunk)))
        removed += result.rowcount or 0
    logger.debug("Deleted %d leads in %d chunk(s)", removed, -(-len(ids) // chunk_size))
    return removed


# ── Stage history ────────────────────────────────────────────────────────────

def append_history(session, entry: StageHistoryEntry) -> StageHistoryEntry:
    """Stage the entry and flush so storage errors surface inside the transaction."""
    session.add(entry)
    session.flush()
    return entry


def lead_history(session, lead_id) -> List[StageHistoryEntry]:
    """History entries most recent first."""
    return session.execute(
        select(StageHistoryEntry)
        .where(StageHistoryEntry.lead_id == lead_id)
        .order_by(StageHistoryEntry.changed_at.desc(), StageHistoryEntry.id.desc())
    ).scalars().all()


# ── Sales records ────────────────────────────────────────────────────────────

def iter_external_records(session, page_size: int = LEAD_PAGE_SIZE) -> Iterator[ExternalRecord]:
    last_id = 0
    while True:
        page = session.execute(
            select(ExternalRecord)
            .where(ExternalRecord.id > last_id)
            .order_by(ExternalRecord.id)
            .limit(page_size)
        ).scalars().all()
        if not page:
            return
        last_id = page[-1].id
        yield from page
        if len(page) < page_size:
            return


# ── Qualification criteria ───────────────────────────────────────────────────

def session_criteria(session, session_id) -> List[QualificationCriterion]:
    return session.execute(
        select(QualificationCriterion)
        .where(QualificationCriterion.session_id == session_id)
        .order_by(QualificationCriterion.id)
    ).scalars().all()
