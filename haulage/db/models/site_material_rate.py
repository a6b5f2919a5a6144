"""
Site Material Rate Model - priced hauling routes
"""
import enum
from decimal import Decimal
from sqlalchemy import Column, Integer, String, Numeric, ForeignKey
from sqlalchemy.orm import relationship

from haulage.db.database import Base


class RateUnit(str, enum.Enum):
    PER_TRIP = "Per Trip"
    PER_TON = "Per Ton"
    PER_HOUR = "Per Hour"
    PER_CUBIC_METER = "Per Cubic Meter"

    @classmethod
    def parse(cls, value: str | None) -> "RateUnit | None":
        """Return the unit for a stored label, or None when it is not one we know."""
        if isinstance(value, cls):
            return value
        if not value:
            return None
        cleaned = value.strip().lower()
        for unit in cls:
            if unit.value.lower() == cleaned:
                return unit
        return None


class SiteMaterialRate(Base):
    """Price for hauling one material from one location to another for a site"""

    __tablename__ = "site_material_rates"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)  # material
    location_from = Column(String(200), nullable=False)
    location_to = Column(String(200), nullable=False)
    price = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    # Stored as free text; labels outside RateUnit price as a flat rate
    unit = Column(String(30), nullable=False, default=RateUnit.PER_TRIP.value)
    site_id = Column(Integer, ForeignKey("sites.id"), nullable=False, index=True)

    site = relationship("Site", back_populates="rates")

    @property
    def site_name(self) -> str | None:
        return self.site.name if self.site is not None else None

    @property
    def contractor_name(self) -> str | None:
        if self.site is None or self.site.contractor is None:
            return None
        return self.site.contractor.name

    @property
    def contractor_id(self) -> int | None:
        return self.site.contractor_id if self.site is not None else None
