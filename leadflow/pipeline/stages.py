"""
Stage pipeline — funnel state machine with an append-only audit trail.

  LEAD → QUALIFIED → SCHEDULED → HELD → WON

Any move to a *different* known stage is allowed (backwards and skips
included). A move to the current stage is a no-op and is rejected before
anything is mutated or written.

This module is storage-free: it validates, mutates the in-memory lead and builds
the history entry. leadflow.services.engine.transition_stage wraps it in a
locked, atomic DB transaction.
"""
import logging
from datetime import datetime, timezone
from typing import Iterable, Optional

from leadflow.config import STAGES, INITIAL_STAGE
from leadflow.errors import NoOpTransition, UnknownStage
from leadflow.models.stage_history import StageHistoryEntry

logger = logging.getLogger('pipeline.stages')


def validate_stage(stage) -> str:
    if stage not in STAGES:
        raise UnknownStage(stage)
    return stage


def check_transition(current: Optional[str], new_stage: str, lead_id=None) -> None:
    """Raise UnknownStage / NoOpTransition if the move is not allowed."""
    validate_stage(new_stage)
    if current == new_stage:
        raise NoOpTransition(lead_id, new_stage)


def apply_transition(lead, new_stage: str, actor: str = None, actor_name: str = None,
                     now: datetime = None) -> StageHistoryEntry:
    """
    Move the lead to new_stage and return the matching (unsaved) history entry.

    Raises before touching the lead if the transition is invalid.
    """
    previous = lead.stage
    check_transition(previous, new_stage, getattr(lead, 'id', None))

    lead.stage = new_stage
    entry = StageHistoryEntry(
        lead_id=lead.id,
        previous_stage=previous,
        new_stage=new_stage,
        actor=actor,
        actor_name=actor_name,
        changed_at=now or datetime.now(timezone.utc),
    )
    logger.debug("Lead %s: %s → %s (actor=%s)", lead.id, previous, new_stage, actor)
    return entry


def replay_history(entries: Iterable[StageHistoryEntry], initial: str = INITIAL_STAGE) -> str:
    """
    Replay chronological history entries and return the resulting stage.

    With no history the lead is still in the stage it was imported with, which
    the caller passes as `initial`.
    """
    stage = initial
    for entry in entries:
        stage = entry.new_stage
    return stage
