"""Nearby pharmacy search against the places API."""

from __future__ import annotations

import asyncio
import math
from typing import Any

from medireport.flows.base import Flow
from medireport.flows.clients import PlacesClient
from medireport.flows.retry import RetryPolicy, Sleeper
from medireport.flows.schemas import (
    Coordinates,
    NearbyPharmaciesInput,
    NearbyPharmaciesOutput,
    Pharmacy,
    PlaceSearchResult,
    PlaceSuggestion,
    dump,
    validate,
)

EARTH_RADIUS_M = 6_371_000.0


def haversine_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two points in metres."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(math.sqrt(min(1.0, a)))


class FindNearbyPharmaciesFlow(Flow[NearbyPharmaciesInput, NearbyPharmaciesOutput]):
    name = "find_nearby_pharmacies"
    input_schema = NearbyPharmaciesInput
    output_schema = NearbyPharmaciesOutput

    def __init__(
        self,
        *,
        client: PlacesClient,
        policy: RetryPolicy,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        super().__init__(policy=policy, sleep=sleep)
        self.client = client

    async def _call(self, request: NearbyPharmaciesInput) -> dict[str, Any]:
        raw = await self.client.search_nearby(
            latitude=request.latitude,
            longitude=request.longitude,
            keyword=request.keyword,
        )
        places = validate(PlaceSearchResult, raw, stage="output", flow=self.name)
        pharmacies = [_to_pharmacy(place, request) for place in places.suggested_locations]
        pharmacies.sort(key=lambda item: item.distance if item.distance is not None else math.inf)
        return dump(NearbyPharmaciesOutput(pharmacies=pharmacies))


def _to_pharmacy(place: PlaceSuggestion, origin: NearbyPharmaciesInput) -> Pharmacy:
    distance = place.distance
    if distance is None:
        distance = round(
            haversine_m(origin.latitude, origin.longitude, place.latitude, place.longitude), 1
        )
    return Pharmacy(
        id=place.e_loc,
        name=place.place_name,
        address=place.place_address,
        distance=distance,
        coords=Coordinates(lat=place.latitude, lng=place.longitude),
    )
