"""
Approximate distances between city/state locations.

No geocoding service is involved: cities resolve against a built-in gazetteer of
US freight markets, and unknown cities fall back to their state's geographic
centroid. Distances are great-circle miles, which is close enough for ranking
deadhead and haul legs.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

EARTH_RADIUS_MILES = 3958.8

# Returned when either side cannot be placed on the map
UNKNOWN_DISTANCE_MILES = 9999.0

Coordinates = Tuple[float, float]


@dataclass(frozen=True)
class Location:
    city: Optional[str] = None
    state: Optional[str] = None

    @property
    def city_key(self) -> str:
        return normalize_city(self.city)

    @property
    def state_code(self) -> str:
        return normalize_state(self.state)

    @property
    def is_complete(self) -> bool:
        return bool(self.city_key and self.state_code)

    def __str__(self) -> str:
        return f"{self.city or '?'}, {self.state or '?'}"


def normalize_city(city: Optional[str]) -> str:
    if not city:
        return ""
    return " ".join(city.replace(".", "").split()).lower()


def normalize_state(state: Optional[str]) -> str:
    if not state:
        return ""
    value = state.strip()
    code = STATE_NAMES.get(value.lower())
    return code or value.upper()


STATE_CENTROIDS: Dict[str, Coordinates] = {
    "AL": (32.806671, -86.791130),
    "AK": (61.370716, -152.404419),
    "AZ": (33.729759, -111.431221),
    "AR": (34.969704, -92.373123),
    "CA": (36.116203, -119.681564),
    "CO": (39.059811, -105.311104),
    "CT": (41.597782, -72.755371),
    "DE": (39.318523, -75.507141),
    "DC": (38.897438, -77.026817),
    "FL": (27.766279, -81.686783),
    "GA": (33.040619, -83.643074),
    "HI": (21.094318, -157.498337),
    "ID": (44.240459, -114.478828),
    "IL": (40.349457, -88.986137),
    "IN": (39.849426, -86.258278),
    "IA": (42.011539, -93.210526),
    "KS": (38.526600, -96.726486),
    "KY": (37.668140, -84.670067),
    "LA": (31.169546, -91.867805),
    "ME": (44.693947, -69.381927),
    "MD": (39.063946, -76.802101),
    "MA": (42.230171, -71.530106),
    "MI": (43.326618, -84.536095),
    "MN": (45.694454, -93.900192),
    "MS": (32.741646, -89.678696),
    "MO": (38.456085, -92.288368),
    "MT": (46.921925, -110.454353),
    "NE": (41.125370, -98.268082),
    "NV": (38.313515, -117.055374),
    "NH": (43.452492, -71.563896),
    "NJ": (40.298904, -74.521011),
    "NM": (34.840515, -106.248482),
    "NY": (42.165726, -74.948051),
    "NC": (35.630066, -79.806419),
    "ND": (47.528912, -99.784012),
    "OH": (40.388783, -82.764915),
    "OK": (35.565342, -96.928917),
    "OR": (44.572021, -122.070938),
    "PA": (40.590752, -77.209755),
    "RI": (41.680893, -71.511780),
    "SC": (33.856892, -80.945007),
    "SD": (44.299782, -99.438828),
    "TN": (35.747845, -86.692345),
    "TX": (31.054487, -97.563461),
    "UT": (40.150032, -111.862434),
    "VT": (44.045876, -72.710686),
    "VA": (37.769337, -78.169968),
    "WA": (47.400902, -121.490494),
    "WV": (38.491226, -80.954453),
    "WI": (44.268543, -89.616508),
    "WY": (42.755966, -107.302490),
}

STATE_NAMES: Dict[str, str] = {
    "alabama": "AL", "alaska": "AK", "arizona": "AZ", "arkansas": "AR", "california": "CA",
    "colorado": "CO", "connecticut": "CT", "delaware": "DE", "district of columbia": "DC",
    "florida": "FL", "georgia": "GA", "hawaii": "HI", "idaho": "ID", "illinois": "IL",
    "indiana": "IN", "iowa": "IA", "kansas": "KS", "kentucky": "KY", "louisiana": "LA",
    "maine": "ME", "maryland": "MD", "massachusetts": "MA", "michigan": "MI", "minnesota": "MN",
    "mississippi": "MS", "missouri": "MO", "montana": "MT", "nebraska": "NE", "nevada": "NV",
    "new hampshire": "NH", "new jersey": "NJ", "new mexico": "NM", "new york": "NY",
    "north carolina": "NC", "north dakota": "ND", "ohio": "OH", "oklahoma": "OK", "oregon": "OR",
    "pennsylvania": "PA", "rhode island": "RI", "south carolina": "SC", "south dakota": "SD",
    "tennessee": "TN", "texas": "TX", "utah": "UT", "vermont": "VT", "virginia": "VA",
    "washington": "WA", "west virginia": "WV", "wisconsin": "WI", "wyoming": "WY",
}

CITY_COORDINATES: Dict[Tuple[str, str], Coordinates] = {
    ("albuquerque", "NM"): (35.0844, -106.6504),
    ("atlanta", "GA"): (33.7490, -84.3880),
    ("aurora", "CO"): (39.7294, -104.8319),
    ("aurora", "IL"): (41.7606, -88.3201),
    ("austin", "TX"): (30.2672, -97.7431),
    ("baltimore", "MD"): (39.2904, -76.6122),
    ("billings", "MT"): (45.7833, -108.5007),
    ("birmingham", "AL"): (33.5186, -86.8104),
    ("boise", "ID"): (43.6150, -116.2023),
    ("boston", "MA"): (42.3601, -71.0589),
    ("boulder", "CO"): (40.0150, -105.2705),
    ("charlotte", "NC"): (35.2271, -80.8431),
    ("cheyenne", "WY"): (41.1400, -104.8202),
    ("chicago", "IL"): (41.8781, -87.6298),
    ("cincinnati", "OH"): (39.1031, -84.5120),
    ("cleveland", "OH"): (41.4993, -81.6944),
    ("colorado springs", "CO"): (38.8339, -104.8214),
    ("columbus", "OH"): (39.9612, -82.9988),
    ("dallas", "TX"): (32.7767, -96.7970),
    ("denver", "CO"): (39.7392, -104.9903),
    ("des moines", "IA"): (41.5868, -93.6250),
    ("detroit", "MI"): (42.3314, -83.0458),
    ("el paso", "TX"): (31.7619, -106.4850),
    ("fort collins", "CO"): (40.5853, -105.0844),
    ("fort worth", "TX"): (32.7555, -97.3308),
    ("grand junction", "CO"): (39.0639, -108.5506),
    ("houston", "TX"): (29.7604, -95.3698),
    ("indianapolis", "IN"): (39.7684, -86.1581),
    ("jacksonville", "FL"): (30.3322, -81.6557),
    ("kansas city", "MO"): (39.0997, -94.5786),
    ("kansas city", "KS"): (39.1141, -94.6275),
    ("las vegas", "NV"): (36.1699, -115.1398),
    ("lincoln", "NE"): (40.8136, -96.7026),
    ("little rock", "AR"): (34.7465, -92.2896),
    ("los angeles", "CA"): (34.0522, -118.2437),
    ("louisville", "KY"): (38.2527, -85.7585),
    ("memphis", "TN"): (35.1495, -90.0490),
    ("miami", "FL"): (25.7617, -80.1918),
    ("milwaukee", "WI"): (43.0389, -87.9065),
    ("minneapolis", "MN"): (44.9778, -93.2650),
    ("nashville", "TN"): (36.1627, -86.7816),
    ("new orleans", "LA"): (29.9511, -90.0715),
    ("new york", "NY"): (40.7128, -74.0060),
    ("newark", "NJ"): (40.7357, -74.1724),
    ("oklahoma city", "OK"): (35.4676, -97.5164),
    ("omaha", "NE"): (41.2565, -95.9345),
    ("orlando", "FL"): (28.5383, -81.3792),
    ("philadelphia", "PA"): (39.9526, -75.1652),
    ("phoenix", "AZ"): (33.4484, -112.0740),
    ("pittsburgh", "PA"): (40.4406, -79.9959),
    ("portland", "OR"): (45.5152, -122.6784),
    ("pueblo", "CO"): (38.2544, -104.6091),
    ("raleigh", "NC"): (35.7796, -78.6382),
    ("reno", "NV"): (39.5296, -119.8138),
    ("richmond", "VA"): (37.5407, -77.4360),
    ("sacramento", "CA"): (38.5816, -121.4944),
    ("salt lake city", "UT"): (40.7608, -111.8910),
    ("san antonio", "TX"): (29.4241, -98.4936),
    ("san diego", "CA"): (32.7157, -117.1611),
    ("san francisco", "CA"): (37.7749, -122.4194),
    ("seattle", "WA"): (47.6062, -122.3321),
    ("spokane", "WA"): (47.6588, -117.4260),
    ("st louis", "MO"): (38.6270, -90.1994),
    ("saint louis", "MO"): (38.6270, -90.1994),
    ("tampa", "FL"): (27.9506, -82.4572),
    ("tucson", "AZ"): (32.2226, -110.9747),
    ("tulsa", "OK"): (36.1540, -95.9928),
    ("washington", "DC"): (38.9072, -77.0369),
    ("wichita", "KS"): (37.6872, -97.3301),
}


def haversine_miles(a: Coordinates, b: Coordinates) -> float:
    """Great-circle distance between two (lat, lng) points in miles."""
    lat1, lng1 = a
    lat2, lng2 = b
    lat1_rad, lat2_rad = math.radians(lat1), math.radians(lat2)
    delta_lat = math.radians(lat2 - lat1)
    delta_lng = math.radians(lng2 - lng1)
    h = math.sin(delta_lat / 2) ** 2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(delta_lng / 2) ** 2
    return EARTH_RADIUS_MILES * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def resolve(location: Location) -> Optional[Coordinates]:
    """City coordinates when known, else the state centroid, else None."""
    if not location.is_complete:
        return None
    state = location.state_code
    coords = CITY_COORDINATES.get((location.city_key, state))
    if coords is not None:
        return coords
    return STATE_CENTROIDS.get(state)


def distance(a: Location, b: Location) -> float:
    """Approximate miles between two locations; UNKNOWN_DISTANCE_MILES if either is unplaceable."""
    if not a.is_complete or not b.is_complete:
        return UNKNOWN_DISTANCE_MILES
    if a.city_key == b.city_key and a.state_code == b.state_code:
        return 0.0

    origin = resolve(a)
    target = resolve(b)
    if origin is None or target is None:
        return UNKNOWN_DISTANCE_MILES
    return haversine_miles(origin, target)
