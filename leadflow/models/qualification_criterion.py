"""
QualificationCriterion model — per-session weighted fit criteria.
"""
from sqlalchemy import Column, Integer, Text, Float, DateTime
from sqlalchemy.sql import func

from leadflow.database import Base


class QualificationCriterion(Base):
    __tablename__ = 'qualification_criteria'

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(Text, nullable=False, index=True)
    field_name = Column(Text, nullable=False)
    operator = Column(Text, nullable=False)   # equals/contains/greater_than/less_than/not_empty
    value = Column(Text, default='')
    weight = Column(Float, nullable=False, default=1.0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def to_dict(self):
        return {
            'id': self.id,
            'session_id': self.session_id,
            'field_name': self.field_name,
            'operator': self.operator,
            'value': self.value or '',
            'weight': self.weight,
        }
