"""
Trip Model - one haul by a driver and vehicle
"""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from haulage.db.database import Base


class Trip(Base):
    """Single haul with material and route, optionally billed on an invoice"""

    __tablename__ = "trips"

    id = Column(Integer, primary_key=True, index=True)
    date = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    material_type = Column(String(200), nullable=True)
    from_location = Column(String(200), nullable=False)
    to_location = Column(String(200), nullable=False)

    driver_id = Column(Integer, ForeignKey("drivers.id"), nullable=True)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id"), nullable=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id"), nullable=True, index=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    driver = relationship("Driver")
    vehicle = relationship("Vehicle")
    invoice = relationship("Invoice", back_populates="trips")
