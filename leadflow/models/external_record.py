"""
ExternalRecord model — completed sales synced from payment platforms.

Read-only to the lead pipeline; used to flag leads that are existing customers.
"""
from sqlalchemy import Column, Integer, Text, DateTime
from sqlalchemy.sql import func

from leadflow.database import Base


class ExternalRecord(Base):
    __tablename__ = 'sales'

    id = Column(Integer, primary_key=True, autoincrement=True)
    client_email = Column(Text, nullable=True)
    client_phone = Column(Text, nullable=True)
    product_name = Column(Text, nullable=True)
    platform = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
