"""
Rate Resolver - estimated trip revenue from the site material price list.

A trip is priced only when its (material, from, to) matches a rate exactly
after trimming and lower-casing each part. Unmatched trips contribute zero
revenue and are never an error; guessing at near matches is left to the
diagnostic checks in ``rate_audit_service``.
"""
import re
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Iterable, NamedTuple, Optional

from haulage.core.logging import log_operation
from haulage.db.models.site_material_rate import RateUnit, SiteMaterialRate
from haulage.domain.money import ZERO, to_decimal


class RateKey(NamedTuple):
    """Normalized (material, from, to) lookup key"""
    material: str
    origin: str
    destination: str


def normalize(value: Optional[str]) -> str:
    return (value or "").strip().lower()


def normalize_key(material: Optional[str], origin: Optional[str], destination: Optional[str]) -> RateKey:
    return RateKey(normalize(material), normalize(origin), normalize(destination))


def rate_key(rate: SiteMaterialRate) -> RateKey:
    return normalize_key(rate.name, rate.location_from, rate.location_to)


def trip_key(trip: Any) -> RateKey:
    return normalize_key(trip.material_type, trip.from_location, trip.to_location)


# ==================== Capacity ====================

# Leading decimal number, the way admins type capacities ("15", "15.5 tons")
_LEADING_NUMBER = re.compile(r"^\s*[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")

# Anything past seven integer digits is a typo, not a truck
_MAX_CAPACITY_EXPONENT = 6


def _sane_capacity(parsed: Optional[Decimal]) -> Decimal:
    if parsed is None or not parsed.is_finite() or parsed.adjusted() > _MAX_CAPACITY_EXPONENT:
        return ZERO
    return parsed


def parse_capacity(value: Any) -> Decimal:
    """Parse a vehicle capacity; missing, unparseable or absurd values count as 0."""
    if value is None:
        return ZERO
    if isinstance(value, (int, float, Decimal)):
        return _sane_capacity(to_decimal(value))

    match = _LEADING_NUMBER.match(str(value))
    if not match:
        return ZERO
    try:
        return _sane_capacity(Decimal(match.group().strip()))
    except InvalidOperation:
        return ZERO


def trip_capacity(trip: Any) -> Decimal:
    vehicle = getattr(trip, "vehicle", None)
    return parse_capacity(vehicle.capacity if vehicle is not None else None)


# ==================== Pricing rules ====================

PricingRule = Callable[[Decimal, Decimal], Decimal]


def _flat(price: Decimal, capacity: Decimal) -> Decimal:
    return price


def _per_capacity(price: Decimal, capacity: Decimal) -> Decimal:
    return price * capacity


PRICING_RULES: dict[RateUnit, PricingRule] = {
    RateUnit.PER_TRIP: _flat,
    RateUnit.PER_TON: _per_capacity,
    RateUnit.PER_HOUR: _flat,
    RateUnit.PER_CUBIC_METER: _flat,
}

_unpriced_units = set(RateUnit) - set(PRICING_RULES)
if _unpriced_units:
    raise RuntimeError(f"No pricing rule for rate units: {sorted(u.value for u in _unpriced_units)}")


def price_for(rate: SiteMaterialRate, capacity: Decimal) -> Decimal:
    """Revenue of one trip on ``rate``. Unknown unit labels price flat."""
    unit = RateUnit.parse(rate.unit)
    rule = PRICING_RULES[unit] if unit is not None else _flat
    return rule(to_decimal(rate.price) or ZERO, _sane_capacity(capacity))


# ==================== Resolution ====================

@dataclass
class TripRevenue:
    matched: bool
    revenue: Decimal
    rate: Optional[SiteMaterialRate] = None


@dataclass
class RevenueSummary:
    matched_count: int
    total_count: int
    total_revenue: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "matched_count": self.matched_count,
            "total_count": self.total_count,
            "total_revenue": float(self.total_revenue),
        }


@dataclass
class DailyRevenue:
    day: date
    amount: Decimal


def build_rate_index(rates: Iterable[SiteMaterialRate]) -> dict[RateKey, SiteMaterialRate]:
    """Exact-match index. ``rates`` must be in creation order; later rows win on key collision."""
    index: dict[RateKey, SiteMaterialRate] = {}
    for rate in rates:
        index[rate_key(rate)] = rate
    return index


def resolve_route(
    index: dict[RateKey, SiteMaterialRate],
    material: Optional[str],
    origin: Optional[str],
    destination: Optional[str],
    capacity: Decimal = ZERO,
) -> TripRevenue:
    key = normalize_key(material, origin, destination)
    if not key.material:
        return TripRevenue(matched=False, revenue=ZERO)

    rate = index.get(key)
    if rate is None:
        return TripRevenue(matched=False, revenue=ZERO)
    return TripRevenue(matched=True, revenue=price_for(rate, capacity), rate=rate)


def resolve_trip(
    index: dict[RateKey, SiteMaterialRate],
    trip: Any,
    capacity: Optional[Decimal] = None,
) -> TripRevenue:
    """Price a single trip; ``capacity`` defaults to the trip's vehicle capacity."""
    if capacity is None:
        capacity = trip_capacity(trip)
    return resolve_route(index, trip.material_type, trip.from_location, trip.to_location, capacity)


@log_operation("estimate_revenue")
def estimate_revenue(rates: Iterable[SiteMaterialRate], trips: Iterable[Any]) -> RevenueSummary:
    index = build_rate_index(rates)
    matched = 0
    total_count = 0
    total = ZERO

    for trip in trips:
        total_count += 1
        result = resolve_trip(index, trip)
        if result.matched:
            matched += 1
            total += result.revenue

    return RevenueSummary(matched_count=matched, total_count=total_count, total_revenue=total)


def revenue_trend(rates: Iterable[SiteMaterialRate], trips: Iterable[Any]) -> list[DailyRevenue]:
    """Matched revenue per calendar day, ascending."""
    index = build_rate_index(rates)
    by_day: dict[date, Decimal] = defaultdict(lambda: ZERO)

    for trip in trips:
        result = resolve_trip(index, trip)
        if result.matched:
            day = trip.date.date() if isinstance(trip.date, datetime) else trip.date
            by_day[day] += result.revenue

    return [DailyRevenue(day=day, amount=by_day[day]) for day in sorted(by_day)]
