"""Geographic risk lookup: maps coordinates to a region and its crime profile.

Each region has a circular catchment around its center. Regions are tested in
a fixed priority order and the first catchment containing the point wins;
points outside every catchment resolve to the default profile.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone

from safeguard.core.models import AreaAnalysis, CrimeProfile, Region, RegionMatch

# Earth radius in kilometers (for Haversine).
EARTH_RADIUS_KM = 6371.0

DEFAULT_REGION_ID = "default"

DEFAULT_PROFILE = CrimeProfile(
    risk_level=0.5, total_crimes=500, violent_crimes=60, thefts=180,
    assaults=40, burglaries=120, recent_incidents=25, safety_score=75,
)

# Priority order matters: the first matching catchment wins.
DEFAULT_REGIONS: tuple[Region, ...] = (
    Region("delhi", 28.6139, 77.2090, 50.0, CrimeProfile(
        risk_level=0.7, total_crimes=1250, violent_crimes=180, thefts=420,
        assaults=95, burglaries=280, recent_incidents=45, safety_score=65,
    )),
    Region("mumbai", 19.0760, 72.8777, 40.0, CrimeProfile(
        risk_level=0.6, total_crimes=980, violent_crimes=120, thefts=350,
        assaults=75, burglaries=220, recent_incidents=32, safety_score=72,
    )),
    Region("bangalore", 12.9716, 77.5946, 35.0, CrimeProfile(
        risk_level=0.4, total_crimes=750, violent_crimes=85, thefts=280,
        assaults=60, burglaries=180, recent_incidents=28, safety_score=78,
    )),
    Region("chennai", 13.0827, 80.2707, 30.0, CrimeProfile(
        risk_level=0.3, total_crimes=620, violent_crimes=70, thefts=220,
        assaults=45, burglaries=150, recent_incidents=22, safety_score=82,
    )),
)

MAP_LINK_BASE = "https://maps.google.com/?q="

# Area status thresholds on the profile's risk level.
SAFE_BELOW = 0.3
MODERATE_BELOW = 0.7


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometers between two points."""
    rlat1, rlat2 = math.radians(lat1), math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)
    a = math.sin(dlat / 2) ** 2 + math.cos(rlat1) * math.cos(rlat2) * math.sin(dlon / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(a)))


def map_link(lat: float, lng: float, base: str = MAP_LINK_BASE) -> str:
    return f"{base}{lat:.6f},{lng:.6f}"


def area_status(risk_level: float) -> str:
    if risk_level < SAFE_BELOW:
        return "safe"
    if risk_level < MODERATE_BELOW:
        return "moderate"
    return "risk"


def safety_recommendations(status: str, profile: CrimeProfile) -> list[str]:
    """Human-readable advice for an area. Category counts only feed this text."""
    recommendations = []
    if status == "risk":
        recommendations.append("High-risk area detected. Stay alert and avoid isolated areas.")
        recommendations.append("Keep emergency contacts readily accessible.")
        recommendations.append("Consider traveling with companions when possible.")
    elif status == "moderate":
        recommendations.append("Moderate risk area. Stay aware of your surroundings.")
        recommendations.append("Stick to well-lit and populated areas.")
    else:
        recommendations.append("Safe zone confirmed. Continue normal precautions.")

    if profile.violent_crimes > 100:
        recommendations.append("High violent crime rate in this area. Exercise extra caution.")
    if profile.thefts > 200:
        recommendations.append("High theft incidents reported. Secure your belongings.")
    return recommendations


class GeoRiskLookup:
    """Resolves coordinates to exactly one region."""

    def __init__(
        self,
        regions: tuple[Region, ...] | list[Region] = DEFAULT_REGIONS,
        default_profile: CrimeProfile = DEFAULT_PROFILE,
    ) -> None:
        self._regions = tuple(regions)
        self._default = RegionMatch(DEFAULT_REGION_ID, default_profile)

    @property
    def regions(self) -> tuple[Region, ...]:
        return self._regions

    def lookup(self, lat: float, lng: float) -> RegionMatch:
        for region in self._regions:
            if haversine_km(lat, lng, region.center_lat, region.center_lng) <= region.radius_km:
                return RegionMatch(region.region_id, region.profile)
        return self._default

    def analyze_area(self, lat: float, lng: float) -> AreaAnalysis:
        """Classify the area around a point and attach safety advice."""
        match = self.lookup(lat, lng)
        status = area_status(match.profile.risk_level)
        return AreaAnalysis(
            region_id=match.region_id,
            status=status,
            risk_level=match.profile.risk_level,
            profile=match.profile,
            recommendations=tuple(safety_recommendations(status, match.profile)),
            timestamp_iso=datetime.now(timezone.utc).isoformat(),
        )
