"""Core data models shared by the ingestion pipeline and the read path."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Set


@dataclass(slots=True)
class ScanArea:
    """One named scan centre with the radius to search around it (meters)."""

    name: str
    lat: float
    lng: float
    radius: int = 1500


@dataclass(slots=True)
class PlaceCandidate:
    """Validated snapshot of a nearby-search result."""

    place_id: str
    name: str
    lat: float
    lng: float
    rating: Optional[float] = None
    review_count: Optional[int] = None
    price_level: Optional[int] = None
    types: List[str] = field(default_factory=list)
    vicinity: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)


@dataclass(slots=True)
class PlaceDetails:
    address: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    opening_hours: Optional[Dict[str, Any]] = None
    reviews: List[Dict[str, Any]] = field(default_factory=list)
    photos: List[Dict[str, Any]] = field(default_factory=list)
    address_components: List[Dict[str, Any]] = field(default_factory=list)


@dataclass(slots=True)
class Classification:
    summary: str
    categories: List[str] = field(default_factory=list)


@dataclass(slots=True)
class CachedVenue:
    """The persisted unit of the venue cache, keyed by ``place_id``."""

    place_id: str
    name: str
    latitude: float
    longitude: float
    name_local: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    rating: Optional[float] = None
    review_count: Optional[int] = None
    price_level: Optional[int] = None
    categories: List[str] = field(default_factory=list)
    is_kosher: bool = False
    is_vegetarian: bool = False
    opening_hours: Optional[Dict[str, Any]] = None
    photos: List[Dict[str, Any]] = field(default_factory=list)
    reviews: List[Dict[str, Any]] = field(default_factory=list)
    summary_text: Optional[str] = None
    summary_embedding: Optional[List[float]] = field(default=None, repr=False)
    reviews_embedding: Optional[List[float]] = field(default=None, repr=False)
    reviews_text: Optional[str] = field(default=None, repr=False)
    last_updated: Optional[datetime] = None


class EnrichOutcome(str, Enum):
    ADDED = "added"
    SKIPPED = "skipped"
    FILTERED = "filtered"


@dataclass(slots=True)
class ScanContext:
    """Run-scoped state shared by every subdivision call of one ingestion run."""

    seen: Set[str] = field(default_factory=set)
    scans: int = 0
    subdivisions: int = 0
    saturated_areas: int = 0


@dataclass(slots=True)
class PopulateStats:
    areas_scanned: int = 0
    found: int = 0
    processed: int = 0
    added: int = 0
    skipped: int = 0
    filtered: int = 0
    errors: int = 0
    subdivisions: int = 0

    def as_dict(self) -> Dict[str, int]:
        return {
            "areasScanned": self.areas_scanned,
            "found": self.found,
            "processed": self.processed,
            "added": self.added,
            "skipped": self.skipped,
            "filtered": self.filtered,
            "errors": self.errors,
            "subdivisions": self.subdivisions,
        }
