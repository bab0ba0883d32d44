"""
StageHistoryEntry model — append-only audit trail of stage transitions.

Rows are never updated. They are removed only together with their lead.
"""
from sqlalchemy import Column, Integer, Text, DateTime, ForeignKey

from leadflow.database import Base


class StageHistoryEntry(Base):
    __tablename__ = 'lead_stage_history'

    id = Column(Integer, primary_key=True, autoincrement=True)
    lead_id = Column(Integer, ForeignKey('leads.id', ondelete='CASCADE'), nullable=False, index=True)
    previous_stage = Column(Text, nullable=True)   # NULL for the initial transition
    new_stage = Column(Text, nullable=False)
    actor = Column(Text, nullable=True)
    actor_name = Column(Text, nullable=True)
    changed_at = Column(DateTime(timezone=True), nullable=False)

    def to_dict(self):
        return {
            'id': self.id,
            'lead_id': self.lead_id,
            'previous_stage': self.previous_stage,
            'new_stage': self.new_stage,
            'actor': self.actor,
            'actor_name': self.actor_name,
            'changed_at': self.changed_at.isoformat() if self.changed_at else None,
        }
