"""
Contractor and Site Models - Customers and their priced work sites
"""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from haulage.db.database import Base


class Contractor(Base):
    """A customer the fleet hauls for and invoices"""

    __tablename__ = "contractors"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    # Short code embedded in invoice numbers (RVT/JAN/25/<ABBR>/001)
    abbreviation = Column(String(20), nullable=True)
    phone = Column(String(30), nullable=True)
    email = Column(String(200), nullable=True)
    status = Column(String(20), default="Active")

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    sites = relationship("Site", back_populates="contractor")


class Site(Base):
    """A contractor's project site holding its material price list"""

    __tablename__ = "sites"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    status = Column(String(20), default="Active")
    contractor_id = Column(Integer, ForeignKey("contractors.id"), nullable=True, index=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    contractor = relationship("Contractor", back_populates="sites")
    rates = relationship(
        "SiteMaterialRate",
        back_populates="site",
        order_by="SiteMaterialRate.id",
    )
