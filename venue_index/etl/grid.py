"""Scan-point generation for the regions the cache covers."""

import math
from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, List, Tuple

from venue_index.core.models import ScanArea

DEFAULT_RADIUS = 1500
DENSE_STEP = 0.008


@dataclass(frozen=True)
class Bounds:
    min_lat: float
    max_lat: float
    min_lng: float
    max_lng: float

    def contains(self, lat: float, lng: float) -> bool:
        return self.min_lat <= lat <= self.max_lat and self.min_lng <= lng <= self.max_lng


@dataclass(frozen=True)
class TargetArea:
    """A metro area whose venues the cache accepts."""

    bounds: Bounds
    city_names: FrozenSet[str]
    canonical_city: str

    def name_matches(self, city: str) -> bool:
        if not city:
            return False
        lowered = city.strip().lower()
        return any(lowered == name.lower() for name in self.city_names)


TEL_AVIV = TargetArea(
    bounds=Bounds(min_lat=32.035, max_lat=32.135, min_lng=34.755, max_lng=34.825),
    city_names=frozenset(
        {
            "Tel Aviv-Yafo",
            "Tel Aviv",
            "Tel-Aviv",
            "Tel Aviv Yafo",
            "Tel Aviv-Jaffa",
            "Jaffa",
            "Yafo",
            "TLV",
            "תל אביב",
            "תל אביב-יפו",
            "תל אביב יפו",
            "יפו",
        }
    ),
    canonical_city="Tel Aviv-Yafo",
)


def _steps(low: float, high: float, step: float) -> int:
    # Index-based stepping keeps the last row/column despite float drift.
    return int(math.floor((high - low) / step + 1e-9)) + 1


def generate_grid(bounds: Bounds, step: float, prefix: str, radius: int = DEFAULT_RADIUS) -> List[ScanArea]:
    """Cover ``bounds`` row-major (latitude outer, longitude inner) at ``step`` degrees."""
    if step <= 0:
        raise ValueError("step must be positive")
    areas: List[ScanArea] = []
    rows = _steps(bounds.min_lat, bounds.max_lat, step)
    cols = _steps(bounds.min_lng, bounds.max_lng, step)
    for row in range(rows):
        lat = round(bounds.min_lat + row * step, 4)
        for col in range(cols):
            lng = round(bounds.min_lng + col * step, 4)
            areas.append(ScanArea(name=f"{prefix} {len(areas) + 1}", lat=lat, lng=lng, radius=radius))
    return areas


TEL_AVIV_DENSE_BOUNDS = Bounds(min_lat=32.04, max_lat=32.13, min_lng=34.76, max_lng=34.82)

LANDMARKS: Tuple[Tuple[str, float, float], ...] = (
    # Gush Dan
    ("Ramat Gan Center", 32.11, 34.84),
    ("Givatayim", 32.09, 34.85),
    ("Bnei Brak", 32.12, 34.87),
    ("Bat Yam North", 32.055, 34.755),
    ("Bat Yam South", 32.02, 34.75),
    ("Holon", 32.01, 34.765),
    ("Kiryat Ono", 32.085, 34.815),
    ("Petah Tikva West", 32.14, 34.83),
    ("Petah Tikva East", 32.15, 34.88),
    ("Rosh HaAyin", 32.17, 34.91),
    ("Or Yehuda", 32.05, 34.87),
    ("Yehud", 32.03, 34.85),
    # Sharon
    ("Kfar Saba", 32.18, 34.87),
    ("Hod HaSharon", 32.185, 34.92),
    ("Raanana", 32.22, 34.85),
    ("Herzliya", 32.27, 34.85),
    ("Netanya South", 32.3215, 34.8532),
    ("Netanya Center", 32.35, 34.86),
    ("Netanya North", 32.38, 34.87),
    ("Hadera", 32.434, 34.9196),
    ("Pardes Hanna", 32.48, 34.95),
    ("Zichron Yaakov", 32.52, 34.94),
    ("Caesarea", 32.45, 35.0),
    # Haifa and the Krayot
    ("Haifa Downtown", 32.794, 34.9896),
    ("Haifa Carmel", 32.82, 34.99),
    ("Haifa Bay", 32.77, 35.02),
    ("Nesher", 32.85, 35.08),
    ("Tirat Carmel", 32.75, 35.0),
    ("Atlit", 32.72, 35.07),
    ("Kiryat Ata", 32.83, 35.07),
    ("Kiryat Bialik", 32.84, 35.09),
    ("Kiryat Motzkin", 32.86, 35.08),
    ("Kiryat Yam", 32.89, 35.07),
    # Galilee and Golan
    ("Akko", 32.928, 35.084),
    ("Nahariya", 33.01, 35.097),
    ("Karmiel", 32.96, 35.16),
    ("Tzfat", 32.92, 35.3),
    ("Tiberias", 32.79, 35.49),
    ("Kinneret", 32.85, 35.54),
    ("Kiryat Shmona", 33.0, 35.65),
    ("Metula", 32.97, 35.7),
    ("Katzrin", 32.77, 35.69),
    ("Nazareth", 32.69, 35.3),
    ("Afula", 32.61, 35.29),
    ("Yokneam", 32.57, 35.17),
    ("Beit Shean", 32.56, 35.35),
    ("Beit Alfa", 32.47, 35.48),
    # Jerusalem
    ("Jerusalem Center", 31.7683, 35.2137),
    ("Mahane Yehuda", 31.7857, 35.2007),
    ("Jerusalem North", 31.8, 35.23),
    ("German Colony", 31.75, 35.22),
    ("Baka", 31.73, 35.21),
    ("Ein Kerem", 31.76, 35.18),
    ("Mevaseret Zion", 31.85, 35.18),
    ("Beit Shemesh", 31.71, 35.1),
    ("Modiin West", 31.87, 35.05),
    ("Modiin Center", 31.9, 35.01),
    # Judean lowlands
    ("Rehovot", 31.89, 34.81),
    ("Rishon LeZion", 31.93, 34.87),
    ("Ness Ziona", 31.97, 34.77),
    ("Ashdod North", 31.85, 34.74),
    ("Ashdod South", 31.81, 34.65),
    ("Ashkelon", 31.67, 34.57),
    ("Kiryat Malachi", 31.75, 34.75),
    ("Ramle", 31.9, 34.7),
    ("Lod", 31.93, 34.89),
    # Negev and Eilat
    ("Beer Sheva Center", 31.2518, 34.7913),
    ("Beer Sheva North", 31.28, 34.76),
    ("Beer Sheva Old City", 31.22, 34.81),
    ("Ofakim", 31.31, 34.63),
    ("Arad", 31.33, 34.89),
    ("Dimona", 31.09, 34.8),
    ("Mitzpe Ramon", 30.95, 34.95),
    ("Sde Boker", 30.61, 34.8),
    ("Eilat North", 29.5577, 34.9519),
    ("Eilat Center", 29.54, 34.94),
    ("Eilat South", 29.52, 34.93),
    # Dead Sea
    ("Ein Gedi", 31.5, 35.38),
    ("Masada", 31.2, 35.36),
    ("Ein Bokek", 31.05, 35.35),
)


def _landmarks(radius: int) -> List[ScanArea]:
    return [ScanArea(name=name, lat=lat, lng=lng, radius=radius) for name, lat, lng in LANDMARKS]


def _tel_aviv(radius: int) -> List[ScanArea]:
    return generate_grid(TEL_AVIV_DENSE_BOUNDS, DENSE_STEP, "TLV", radius)


def _israel(radius: int) -> List[ScanArea]:
    return _tel_aviv(radius) + _landmarks(radius)


def _filtered(predicate: Callable[[ScanArea], bool]) -> Callable[[int], List[ScanArea]]:
    def build(radius: int) -> List[ScanArea]:
        return [area for area in _israel(radius) if predicate(area)]

    return build


def _gush_dan(radius: int) -> List[ScanArea]:
    dense = _tel_aviv(radius)
    dense_points = {(a.lat, a.lng) for a in dense}
    surroundings = [
        area
        for area in _landmarks(radius)
        if 32.0 <= area.lat <= 32.2 and 34.7 <= area.lng <= 34.95 and (area.lat, area.lng) not in dense_points
    ]
    return dense + surroundings


REGIONS: Dict[str, Callable[[int], List[ScanArea]]] = {
    "israel": _israel,
    "tel_aviv": _tel_aviv,
    "gush_dan": _gush_dan,
    "center": _filtered(lambda a: 31.7 <= a.lat <= 32.4 and 34.6 <= a.lng <= 35.1),
    "north": _filtered(lambda a: a.lat >= 32.4),
    "south": _filtered(lambda a: a.lat < 31.5),
    "jerusalem": _filtered(lambda a: 31.7 <= a.lat <= 31.95 and 35.0 <= a.lng <= 35.3),
}


def areas_for_region(region: str, radius: int = DEFAULT_RADIUS) -> List[ScanArea]:
    """Resolve a region name to its scan areas; unknown names scan all of Israel."""
    builder = REGIONS.get(region, REGIONS["israel"])
    return builder(radius)
