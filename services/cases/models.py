"""SQLAlchemy models for raw case records."""

from sqlalchemy import Column, String, DateTime, Integer, JSON
from sqlalchemy.sql import func
from common.db import Base


# one row per member case, as delivered by the source system
class CaseRecord(Base):
    """Loosely-typed case payload; field names vary by health plan source."""

    __tablename__ = "case_records"

    id = Column(Integer, primary_key=True, index=True)
    record_id = Column(String(100), unique=True, index=True, nullable=False)  # payload id or client_ID2
    health_plan = Column(String(50), nullable=True, index=True)  # free text, normalized downstream
    payload = Column(JSON, nullable=False)

    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)
