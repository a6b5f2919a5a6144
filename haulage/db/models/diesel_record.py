"""
Diesel Record Model - fuel purchases per vehicle
"""
from datetime import datetime
from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from haulage.db.database import Base


class DieselRecord(Base):
    __tablename__ = "diesel_records"

    id = Column(Integer, primary_key=True, index=True)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id"), nullable=False, index=True)
    driver_id = Column(Integer, ForeignKey("drivers.id"), nullable=True)
    date = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    liters = Column(Numeric(10, 2), nullable=False)
    price_per_liter = Column(Numeric(10, 3), nullable=False)
    total_amount = Column(Numeric(12, 2), nullable=False)
    odometer = Column(Integer, nullable=True)
    receipt_url = Column(String(500), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    vehicle = relationship("Vehicle")
    driver = relationship("Driver")
