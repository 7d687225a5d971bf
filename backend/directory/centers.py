# backend/directory/centers.py
# Healthcare-center directory loaded from centers.yaml

from collections import Counter
from pathlib import Path
from typing import Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel

from core import get_logger

logger = get_logger("Directory")

DATA_FILE = Path(__file__).with_name("centers.yaml")

CenterType = Literal["hospital", "clinic", "research", "specialty"]


class Coordinates(BaseModel):
    x: float
    y: float


class CenterContact(BaseModel):
    phone: str
    email: str
    website: Optional[str] = None
    address: str


class HealthcareCenter(BaseModel):
    id: str
    name: str
    city: str
    province: str
    coordinates: Coordinates
    type: CenterType
    specialties: List[str]
    contact: CenterContact
    services: List[str]
    description: str
    established_year: Optional[int] = None
    certifications: List[str] = []


def load_centers(path: Path = DATA_FILE) -> List[HealthcareCenter]:
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    centers = [HealthcareCenter.model_validate(item) for item in data.get("centers", [])]
    logger.info(f"Loaded {len(centers)} healthcare centers")
    return centers


class CenterDirectory:
    """In-memory lookups over the center list"""

    def __init__(self, centers: List[HealthcareCenter] = None):
        self.centers = centers if centers is not None else load_centers()
        self._by_id = {c.id: c for c in self.centers}

    def get_by_id(self, center_id: str) -> Optional[HealthcareCenter]:
        return self._by_id.get(center_id)

    def get_by_province(self, province: str) -> List[HealthcareCenter]:
        return [c for c in self.centers if c.province == province.upper()]

    def get_by_type(self, center_type: str) -> List[HealthcareCenter]:
        return [c for c in self.centers if c.type == center_type]

    def search(self, query: str) -> List[HealthcareCenter]:
        """Case-insensitive match on name, city, specialties, services"""
        needle = query.strip().lower()
        if not needle:
            return list(self.centers)

        def haystack(c: HealthcareCenter) -> List[str]:
            return [c.name, c.city, *c.specialties, *c.services]

        return [c for c in self.centers if any(needle in text.lower() for text in haystack(c))]

    def find(self, province: str = None, center_type: str = None, query: str = None) -> List[HealthcareCenter]:
        results = self.search(query) if query else list(self.centers)
        if province:
            results = [c for c in results if c.province == province.upper()]
        if center_type:
            results = [c for c in results if c.type == center_type]
        return results

    def province_counts(self) -> Dict[str, int]:
        return dict(Counter(c.province for c in self.centers))


# Global instance
center_directory = CenterDirectory()
