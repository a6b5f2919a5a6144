"""
Statement Model - immutable statement-of-account snapshots
"""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship

from haulage.db.database import Base


class Statement(Base):
    """Point-in-time statement; ``details`` holds the serialized StatementDocument"""

    __tablename__ = "statements"

    id = Column(Integer, primary_key=True, index=True)
    contractor_id = Column(Integer, ForeignKey("contractors.id"), nullable=True, index=True)
    name = Column(String(200), nullable=False)
    type = Column(String(60), nullable=False)
    details = Column(Text, nullable=False)
    letterhead = Column(String(20), nullable=False, default="RVT")
    date = Column(DateTime, nullable=False, default=datetime.utcnow)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    contractor = relationship("Contractor")
