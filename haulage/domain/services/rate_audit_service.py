"""
Rate Audit - diagnostic checks over the price list and trip log.

Two read-only reports for an admin to reconcile by hand:

- price conflicts: the same normalized (material, from, to) priced
  differently somewhere in the price list, regardless of contractor;
- trip mismatches: trips with no exact rate whose (material, to) does match
  a priced route, which usually means the "from" location was mistyped.
"""
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable, NamedTuple, Optional

from haulage.core.logging import get_logger, log_operation
from haulage.db.models.site_material_rate import SiteMaterialRate
from haulage.domain.money import ZERO, to_decimal
from haulage.domain.services.rate_resolver import RateKey, build_rate_index, normalize, rate_key, trip_key

logger = get_logger(__name__)

UNKNOWN = "Unknown"


class RouteKey(NamedTuple):
    """Partial key: normalized (material, to)"""
    material: str
    destination: str


@dataclass
class ConflictEntry:
    contractor_name: str
    site_name: str
    price: Decimal
    unit: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "contractor_name": self.contractor_name,
            "site_name": self.site_name,
            "price": float(self.price),
            "unit": self.unit,
        }


@dataclass
class PriceConflict:
    key: RateKey
    entries: list[ConflictEntry] = field(default_factory=list)

    @property
    def distinct_prices(self) -> list[Decimal]:
        return sorted({entry.price for entry in self.entries})

    @property
    def single_contractor(self) -> bool:
        """True when all disagreeing rows belong to one contractor (different sites)."""
        return len({entry.contractor_name for entry in self.entries}) == 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "material": self.key.material,
            "from": self.key.origin,
            "to": self.key.destination,
            "single_contractor": self.single_contractor,
            "distinct_prices": [float(price) for price in self.distinct_prices],
            "entries": [entry.to_dict() for entry in self.entries],
        }


@dataclass
class MismatchCandidate:
    expected_from: str
    contractor_name: str


@dataclass
class TripMismatch:
    trip_id: Optional[int]
    date: Optional[datetime]
    current_material: str
    current_from: str
    current_to: str
    candidates: list[MismatchCandidate]

    def to_dict(self) -> dict[str, Any]:
        return {
            "trip_id": self.trip_id,
            "date": _iso_day(self.date),
            "current_material": self.current_material,
            "current_from": self.current_from,
            "current_to": self.current_to,
            "candidates": [
                {"expected_from": c.expected_from, "contractor_name": c.contractor_name}
                for c in self.candidates
            ],
        }


@dataclass
class MismatchReport:
    mismatches: list[TripMismatch]

    @property
    def count(self) -> int:
        return len(self.mismatches)

    def to_dict(self) -> dict[str, Any]:
        return {"count": self.count, "mismatches": [m.to_dict() for m in self.mismatches]}


def _iso_day(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    day = value.date() if isinstance(value, datetime) else value
    return day.isoformat()


def _entry_for(rate: SiteMaterialRate) -> ConflictEntry:
    return ConflictEntry(
        contractor_name=rate.contractor_name or UNKNOWN,
        site_name=rate.site_name or UNKNOWN,
        price=to_decimal(rate.price) or ZERO,
        unit=rate.unit or "",
    )


@log_operation("find_price_conflicts")
def find_price_conflicts(rates: Iterable[SiteMaterialRate]) -> list[PriceConflict]:
    """Groups sharing a normalized key but carrying more than one distinct price."""
    groups: dict[RateKey, list[ConflictEntry]] = defaultdict(list)
    for rate in rates:
        groups[rate_key(rate)].append(_entry_for(rate))

    conflicts = []
    for key, entries in groups.items():
        if len(entries) < 2:
            continue
        if len({entry.price for entry in entries}) > 1:
            conflicts.append(PriceConflict(key=key, entries=entries))

    if conflicts:
        logger.warning(
            "Conflicting prices in rate list",
            extra_data={"conflict_count": len(conflicts)}
        )
    return conflicts


def build_route_candidates(rates: Iterable[SiteMaterialRate]) -> dict[RouteKey, list[MismatchCandidate]]:
    candidates: dict[RouteKey, list[MismatchCandidate]] = defaultdict(list)
    for rate in rates:
        key = RouteKey(normalize(rate.name), normalize(rate.location_to))
        candidates[key].append(MismatchCandidate(
            expected_from=rate.location_from,
            contractor_name=rate.contractor_name or UNKNOWN,
        ))
    return candidates


@log_operation("find_trip_mismatches")
def find_trip_mismatches(rates: Iterable[SiteMaterialRate], trips: Iterable[Any]) -> MismatchReport:
    rates = list(rates)
    exact = build_rate_index(rates)
    candidates = build_route_candidates(rates)

    mismatches = []
    for trip in trips:
        key = trip_key(trip)
        if not key.material:
            continue
        if key in exact:
            continue

        route_candidates = candidates.get(RouteKey(key.material, key.destination))
        if not route_candidates:
            continue

        mismatches.append(TripMismatch(
            trip_id=trip.id,
            date=trip.date,
            current_material=trip.material_type,
            current_from=trip.from_location,
            current_to=trip.to_location,
            candidates=list(route_candidates),
        ))

    return MismatchReport(mismatches=mismatches)
