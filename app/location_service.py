"""
Coastal Location Service - Catalog, Search and Nearest-Coast Resolution

This module holds the static catalog of coastal locations and the geographic
helpers that operate on it:

- Case-insensitive text search over name, region and description
- Great-circle (Haversine) distance between two coordinates
- Nearest-location resolution by linear scan

The catalog is built once on first use and never mutated afterwards, so it is
safe to share between threads without locking.
"""
import logging
import math
from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

# Mean Earth radius in kilometers
EARTH_RADIUS_KM = 6371.0


class InvalidCoordinateError(ValueError):
    """Raised when a latitude/longitude pair is outside the valid range."""


class EmptyCatalogError(ValueError):
    """Raised when nearest-location resolution is given no candidates."""


@dataclass(frozen=True)
class Coordinate:
    """
    A point on the Earth's surface in signed decimal degrees.

    Coordinates validate on construction, so any Coordinate that exists is
    within latitude [-90, 90] and longitude [-180, 180].
    """
    lat: float
    lon: float

    def __post_init__(self):
        lat, lon = self.lat, self.lon
        if not (math.isfinite(lat) and math.isfinite(lon)):
            raise InvalidCoordinateError(f"Coordinate values must be finite, got ({lat}, {lon})")
        if not -90.0 <= lat <= 90.0:
            raise InvalidCoordinateError(f"Latitude {lat} is outside [-90, 90]")
        if not -180.0 <= lon <= 180.0:
            raise InvalidCoordinateError(f"Longitude {lon} is outside [-180, 180]")


@dataclass(frozen=True)
class Location:
    """A named coastal point in the catalog."""
    id: str
    name: str
    coordinate: Coordinate
    country: str
    timezone: str
    region: Optional[str] = None
    description: Optional[str] = None

    @property
    def lat(self) -> float:
        return self.coordinate.lat

    @property
    def lon(self) -> float:
        return self.coordinate.lon

    def matches(self, term: str) -> bool:
        """Whether a lowercased search term occurs in name, region or description."""
        for field in (self.name, self.region, self.description):
            if field and term in field.lower():
                return True
        return False

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'lat': self.lat,
            'lon': self.lon,
            'country': self.country,
            'region': self.region,
            'timezone': self.timezone,
            'description': self.description,
        }


class LocationCatalog:
    """
    Ordered, read-only collection of coastal locations.

    Insertion order is preserved everywhere: ``all()`` and ``search()`` both
    return locations in the order they were given to the constructor.
    """

    def __init__(self, locations: Iterable[Location]):
        """
        Build a catalog from an iterable of locations.

        Args:
            locations: Locations in catalog order

        Raises:
            ValueError: If the catalog is empty or contains duplicate ids
        """
        self._locations: Tuple[Location, ...] = tuple(locations)
        if not self._locations:
            raise ValueError("Location catalog must contain at least one location")

        self._by_id = {}
        for location in self._locations:
            if location.id in self._by_id:
                raise ValueError(f"Duplicate location id in catalog: {location.id}")
            self._by_id[location.id] = location

    def __len__(self) -> int:
        return len(self._locations)

    def __iter__(self):
        return iter(self._locations)

    def all(self) -> List[Location]:
        """Every location in catalog order."""
        return list(self._locations)

    def search(self, query: str) -> List[Location]:
        """
        Find locations whose name, region or description contains the query.

        Matching is a case-insensitive substring test; results keep catalog
        order and are not ranked or limited.

        Args:
            query: Free-text search string

        Returns:
            Matching locations, or the whole catalog if the query is blank
        """
        term = (query or '').strip().lower()
        if not term:
            return self.all()
        return [location for location in self._locations if location.matches(term)]

    def by_id(self, location_id: str) -> Optional[Location]:
        """Exact lookup by identifier; None when no location has that id."""
        return self._by_id.get(location_id)


def distance_km(a: Coordinate, b: Coordinate) -> float:
    """
    Great-circle distance between two coordinates using the Haversine formula.

    Args:
        a: First coordinate
        b: Second coordinate

    Returns:
        Distance in kilometers (mean Earth radius 6371 km)
    """
    lat1 = math.radians(a.lat)
    lat2 = math.radians(b.lat)
    dlat = math.radians(b.lat - a.lat)
    dlon = math.radians(b.lon - a.lon)

    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    # atan2 keeps the result stable as h approaches 1 (near-antipodal points)
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def find_nearest_with_distance(
    point: Coordinate,
    candidates: Optional[Sequence[Location]] = None
) -> Tuple[Location, float]:
    """
    Find the candidate closest to a point, along with its distance.

    This is a single O(n) scan. On exact ties the earlier candidate wins,
    so results are stable for a given catalog order.

    Args:
        point: Query coordinate
        candidates: Locations to scan; defaults to the built-in catalog

    Returns:
        Tuple of (nearest location, distance in km)

    Raises:
        EmptyCatalogError: If there are no candidates
    """
    if candidates is None:
        candidates = get_catalog().all()
    if not candidates:
        raise EmptyCatalogError("Cannot resolve nearest location from an empty catalog")

    nearest = candidates[0]
    min_distance = distance_km(point, nearest.coordinate)

    for location in candidates[1:]:
        distance = distance_km(point, location.coordinate)
        if distance < min_distance:
            min_distance = distance
            nearest = location

    logger.debug(
        "Resolved (%.4f, %.4f) to %s at %.2f km",
        point.lat, point.lon, nearest.id, min_distance
    )
    return nearest, min_distance


def find_nearest(point: Coordinate, candidates: Optional[Sequence[Location]] = None) -> Location:
    """Nearest candidate to ``point``; see find_nearest_with_distance."""
    return find_nearest_with_distance(point, candidates)[0]


def _coast(id, name, lat, lon, region, description, country='India', timezone='Asia/Kolkata'):
    return Location(
        id=id,
        name=name,
        coordinate=Coordinate(lat, lon),
        country=country,
        timezone=timezone,
        region=region,
        description=description,
    )


# Indian coastline, west coast north to south, then east coast south to north,
# then the island territories.
INDIA_COASTLINES = (
    # Gujarat
    _coast('ahmedabad-coast', 'Kandla Port', 23.0225, 70.2167, 'Gujarat', 'Major port in Gulf of Kutch'),
    _coast('dwarka', 'Dwarka Beach', 22.2394, 68.9678, 'Gujarat', 'Sacred coastal city'),
    _coast('porbandar', 'Porbandar Beach', 21.6417, 69.6293, 'Gujarat', 'Birthplace of Mahatma Gandhi'),
    _coast('veraval', 'Veraval Port', 20.9077, 70.3665, 'Gujarat', 'Major fishing port'),
    _coast('diu', 'Diu Beach', 20.7144, 70.9876, 'Daman and Diu', 'Popular tourist destination'),
    # Maharashtra
    _coast('mumbai', 'Mumbai Coast (Gateway of India)', 18.9220, 72.8347, 'Maharashtra', 'Financial capital coastline'),
    _coast('alibag', 'Alibag Beach', 18.6414, 72.8722, 'Maharashtra', 'Popular weekend getaway'),
    _coast('ratnagiri', 'Ratnagiri Coast', 16.9902, 73.3120, 'Maharashtra', 'Konkan coast gem'),
    # Goa
    _coast('goa-north', 'Calangute Beach', 15.5447, 73.7547, 'Goa', 'Queen of beaches'),
    _coast('goa-south', 'Palolem Beach', 15.0100, 74.0233, 'Goa', 'Paradise beach'),
    _coast('panaji', 'Panaji Waterfront', 15.4909, 73.8278, 'Goa', 'Capital city coast'),
    # Karnataka
    _coast('mangalore', 'Mangalore Port', 12.8697, 74.8420, 'Karnataka', 'Major port city'),
    _coast('udupi', 'Udupi Beach', 13.3409, 74.7421, 'Karnataka', 'Temple town coast'),
    _coast('karwar', 'Karwar Beach', 14.8142, 74.1297, 'Karnataka', 'Naval base coast'),
    # Kerala
    _coast('kochi', 'Kochi Port (Cochin)', 9.9312, 76.2673, 'Kerala', 'Queen of Arabian Sea'),
    _coast('trivandrum', 'Kovalam Beach', 8.4004, 76.9784, 'Kerala', 'Lighthouse beach'),
    _coast('alleppey', 'Alleppey Beach', 9.4981, 76.3388, 'Kerala', 'Venice of the East'),
    _coast('kozhikode', 'Kozhikode Beach', 11.2588, 75.7804, 'Kerala', 'City of spices coast'),
    # Tamil Nadu
    _coast('chennai', 'Chennai Marina Beach', 13.0827, 80.2707, 'Tamil Nadu', 'Longest urban beach in India'),
    _coast('pondicherry', 'Pondicherry Beach', 11.9416, 79.8083, 'Puducherry', 'French colonial coast'),
    _coast('rameswaram', 'Rameswaram Beach', 9.2876, 79.3129, 'Tamil Nadu', 'Sacred island'),
    _coast('kanyakumari', 'Kanyakumari Beach', 8.0883, 77.5385, 'Tamil Nadu', 'Southernmost tip of India'),
    # Andhra Pradesh
    _coast('visakhapatnam', 'Visakhapatnam Beach', 17.6868, 83.2185, 'Andhra Pradesh', 'Jewel of the East Coast'),
    _coast('vijayawada', 'Machilipatnam Port', 16.1874, 81.1385, 'Andhra Pradesh', 'Historic port city'),
    # Odisha
    _coast('puri', 'Puri Beach', 19.8135, 85.8312, 'Odisha', 'Jagannath temple coast'),
    _coast('bhubaneswar-coast', 'Chandrabhaga Beach', 19.8762, 86.0965, 'Odisha', 'Konark temple nearby'),
    # West Bengal
    _coast('kolkata', 'Kolkata Port (Hooghly)', 22.5726, 88.3639, 'West Bengal', 'Cultural capital port'),
    _coast('digha', 'Digha Beach', 21.6269, 87.5069, 'West Bengal', 'Popular seaside resort'),
    # Andaman & Nicobar Islands
    _coast('port-blair', 'Port Blair', 11.6234, 92.7265, 'Andaman and Nicobar Islands', 'Island capital'),
    _coast('havelock', 'Havelock Island', 12.0067, 92.9797, 'Andaman and Nicobar Islands', 'Radhanagar Beach'),
    # Lakshadweep
    _coast('kavaratti', 'Kavaratti Island', 10.5669, 72.6420, 'Lakshadweep', 'Coral island paradise'),
)


@lru_cache(maxsize=None)
def get_catalog() -> LocationCatalog:
    """Process-wide catalog of built-in coastal locations, built on first use."""
    catalog = LocationCatalog(INDIA_COASTLINES)
    logger.debug("Loaded location catalog with %d locations", len(catalog))
    return catalog
