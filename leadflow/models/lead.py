"""
Lead model — one row per lead in a campaign session.

stage / is_qualified / qualification_score are pipeline-owned: stage moves only
through leadflow.pipeline.stages, the other two only through the scoring engine.
"""
from sqlalchemy import Column, Integer, Text, Boolean, DateTime, JSON, Index
from sqlalchemy.sql import func

from leadflow.database import Base

EDITABLE_FIELDS = ('name', 'email', 'phone', 'observation', 'order_index')
# expected value type per editable field; None is allowed for the nullable ones
EDITABLE_FIELD_TYPES = {
    'name': str,
    'email': str,
    'phone': str,
    'observation': str,
    'order_index': int,
}
NULLABLE_EDITABLE_FIELDS = ('email', 'phone', 'observation')
PIPELINE_FIELDS = ('stage', 'is_qualified', 'qualification_score')


class Lead(Base):
    __tablename__ = 'leads'
    __table_args__ = (
        Index('ix_leads_session_created', 'session_id', 'created_at', 'id'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(Text, nullable=False, index=True)
    name = Column(Text, default='')
    email = Column(Text, nullable=True)
    phone = Column(Text, nullable=True)
    stage = Column(Text, nullable=False, default='lead')
    is_qualified = Column(Boolean, nullable=False, default=False)
    qualification_score = Column(Integer, nullable=True)
    utm_source = Column(Text, nullable=True)
    utm_medium = Column(Text, nullable=True)
    utm_campaign = Column(Text, nullable=True)
    utm_content = Column(Text, nullable=True)
    attributes = Column(JSON, default=dict)       # raw importer columns, key spelling varies
    order_index = Column(Integer, default=0)
    observation = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def to_dict(self):
        return {
            'id': self.id,
            'session_id': self.session_id,
            'name': self.name or '',
            'email': self.email,
            'phone': self.phone,
            'stage': self.stage,
            'is_qualified': bool(self.is_qualified),
            'qualification_score': self.qualification_score,
            'utm_source': self.utm_source,
            'utm_medium': self.utm_medium,
            'utm_campaign': self.utm_campaign,
            'utm_content': self.utm_content,
            'attributes': self.attributes or {},
            'order_index': self.order_index or 0,
            'observation': self.observation,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
