"""
US postal-code geography.

A bundled table of postal-code centroids (major cities and research
hospitals) plus great-circle distances in miles via geopy. Codes missing from
the table have no coordinates and yield unknown distances.
"""
import re
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Tuple

from geopy.distance import geodesic

from trialscout.core.records import Location

Coordinates = Tuple[float, float]

_ZIPCODE_PATTERN = re.compile(r"^\d{5}$")

ZIPCODE_CENTROIDS: Dict[str, Coordinates] = {
    # Northeast
    "10001": (40.7484, -73.9967),    # New York, NY
    "10019": (40.7654, -73.9856),    # New York, NY
    "02101": (42.3704, -71.0266),    # Boston, MA
    "02115": (42.3420, -71.0944),    # Boston, MA
    "19102": (39.9526, -75.1680),    # Philadelphia, PA
    "20001": (38.9120, -77.0160),    # Washington, DC
    "21201": (39.2908, -76.6209),    # Baltimore, MD
    # Southeast
    "30301": (33.7490, -84.3880),    # Atlanta, GA
    "30303": (33.7537, -84.3930),    # Atlanta, GA
    "33101": (25.7617, -80.1918),    # Miami, FL
    "33130": (25.7656, -80.2052),    # Miami, FL
    "28201": (35.2271, -80.8431),    # Charlotte, NC
    "37201": (36.1627, -86.7816),    # Nashville, TN
    # Midwest
    "60601": (41.8819, -87.6278),    # Chicago, IL
    "60611": (41.8930, -87.6166),    # Chicago, IL
    "48201": (42.3314, -83.0458),    # Detroit, MI
    "44101": (41.4993, -81.6944),    # Cleveland, OH
    "55401": (44.9833, -93.2667),    # Minneapolis, MN
    "63101": (38.6270, -90.1994),    # St. Louis, MO
    # Southwest
    "75201": (32.7876, -96.7985),    # Dallas, TX
    "77001": (29.7604, -95.3698),    # Houston, TX
    "77030": (29.7105, -95.3965),    # Houston, TX (Medical Center)
    "85001": (33.4484, -112.0740),   # Phoenix, AZ
    "87101": (35.0844, -106.6504),   # Albuquerque, NM
    "73101": (35.4676, -97.5164),    # Oklahoma City, OK
    # West Coast
    "90001": (33.9425, -118.2551),   # Los Angeles, CA
    "90024": (34.0633, -118.4333),   # Los Angeles, CA (Westwood)
    "94102": (37.7792, -122.4191),   # San Francisco, CA
    "94143": (37.7631, -122.4586),   # San Francisco, CA (UCSF)
    "92101": (32.7195, -117.1628),   # San Diego, CA
    "98101": (47.6062, -122.3321),   # Seattle, WA
    "97201": (45.5051, -122.6750),   # Portland, OR
    "89101": (36.1699, -115.1398),   # Las Vegas, NV
    # Research centres
    "55905": (44.0225, -92.4669),    # Rochester, MN (Mayo Clinic)
    "27710": (36.0014, -78.9382),    # Durham, NC (Duke)
    "02114": (42.3626, -71.0688),    # Boston, MA (MGH)
    "21287": (39.2965, -76.5927),    # Baltimore, MD (Johns Hopkins)
    "10065": (40.7649, -73.9632),    # New York, NY (Memorial Sloan Kettering)
    "10016": (40.7425, -73.9780),    # New York, NY (NYU Langone)
    "20892": (39.0000, -77.1000),    # Bethesda, MD (NIH)
    "94305": (37.4275, -122.1697),   # Stanford, CA
}


def is_valid_zipcode(zipcode: str) -> bool:
    return bool(_ZIPCODE_PATTERN.match(zipcode or ""))


def get_coordinates(zipcode: str) -> Optional[Coordinates]:
    if not is_valid_zipcode(zipcode):
        return None
    return ZIPCODE_CENTROIDS.get(zipcode)


def distance_miles(origin_zip: str, target_zip: str) -> Optional[float]:
    """Distance between two postal codes in miles, one decimal; None if either is unknown."""
    origin = get_coordinates(origin_zip)
    target = get_coordinates(target_zip)
    if origin is None or target is None:
        return None
    return round(geodesic(origin, target).miles, 1)


def add_distances(locations: Iterable[Location], origin_zip: str) -> List[Location]:
    """Attach distances where both ends are known; order is unchanged."""
    return [
        replace(location, distance_miles=distance_miles(origin_zip, location.zipcode))
        for location in locations
    ]


def filter_by_radius(
    locations: Iterable[Location], origin_zip: str, radius_miles: float
) -> List[Location]:
    """
    Locations within ``radius_miles`` of the origin, nearest first.

    Locations whose distance cannot be computed are dropped.
    """
    within = [
        location for location in add_distances(locations, origin_zip)
        if location.distance_miles is not None and location.distance_miles <= radius_miles
    ]
    return sorted(within, key=lambda location: location.distance_miles)
