"""
Fleet Models - vehicles and drivers
"""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime

from haulage.db.database import Base


class Vehicle(Base):
    """Truck or tipper used on trips"""

    __tablename__ = "vehicles"

    id = Column(Integer, primary_key=True, index=True)
    plate_number = Column(String(30), nullable=False, unique=True)
    # Free text as entered by admins ("15", "15 tons"); parsed leniently for Per Ton pricing
    capacity = Column(String(30), nullable=True)
    ownership = Column(String(20), default="RVT")  # RVT (own fleet) or Taxi (hired)

    created_at = Column(DateTime, default=datetime.utcnow)


class Driver(Base):
    __tablename__ = "drivers"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    phone = Column(String(30), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
