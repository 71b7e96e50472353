# FILE: app/offgrid.py
# ==============================================================================
# Off-grid analysis for a map point. Counts buildings, roads and light sources
# within 3 km from OpenStreetMap (Overpass) and asks Nominatim what kind of
# place it is. Higher scores mean more remote.
# ==============================================================================
import asyncio
import logging
from typing import Optional

import httpx

from . import config
from .errors import ValidationError
from .schemas import OffGridScoreOut
from .security import Identity, ensure_user

RADIUS_METERS = 3000
NOMINATIM_USER_AGENT = "NaOdludzie/1.0 (kontakt@naodludzie.pl)"

LOCATION_TYPE_BONUS = {
    "city": -20,
    "town": -20,
    "suburb": -10,
    "village": 0,
    "hamlet": 10,
    "isolated_dwelling": 20,
    "farm": 20,
    "forest": 20,
    "wood": 20,
}
DEFAULT_TYPE_BONUS = 5


def buildings_query(lat: float, lon: float, radius: int = RADIUS_METERS) -> str:
    return f'[out:json][timeout:15];way["building"](around:{radius},{lat},{lon});out body;'


def roads_query(lat: float, lon: float, radius: int = RADIUS_METERS) -> str:
    return f'[out:json][timeout:15];way["highway"](around:{radius},{lat},{lon});out body;'


def lighting_query(lat: float, lon: float, radius: int = RADIUS_METERS) -> str:
    return (
        "[out:json][timeout:15];("
        f'node["highway"="street_lamp"](around:{radius},{lat},{lon});'
        f'way["landuse"~"commercial|industrial|retail"](around:{radius},{lat},{lon});'
        f'node["amenity"](around:{radius},{lat},{lon});'
        ");out body;"
    )


async def count_elements(client: httpx.AsyncClient, label: str, query: str) -> int:
    """Runs one Overpass query. Any failure counts as zero elements."""
    try:
        response = await client.post(config.OVERPASS_API_URL, data={"data": query})
        if response.status_code >= 400:
            logging.error(f"OFFGRID: Overpass {label} query returned {response.status_code}.")
            return 0
        count = len(response.json().get("elements") or [])
    except (httpx.HTTPError, ValueError) as e:
        logging.error(f"OFFGRID: Overpass {label} query failed: {e}")
        return 0
    logging.info(f"OFFGRID: {label} found: {count}")
    return count


async def location_type(client: httpx.AsyncClient, lat: float, lon: float) -> str:
    try:
        response = await client.get(
            config.NOMINATIM_URL,
            params={"format": "json", "lat": lat, "lon": lon, "zoom": 14},
            headers={"User-Agent": NOMINATIM_USER_AGENT},
        )
        if response.status_code >= 400:
            return "unknown"
        data = response.json()
    except (httpx.HTTPError, ValueError) as e:
        logging.error(f"OFFGRID: Reverse geocoding failed: {e}")
        return "unknown"
    return data.get("addresstype") or data.get("type") or "unknown"


def _clamp(value: float, low: float = 0, high: float = 100) -> float:
    return max(low, min(high, value))


def score(buildings: int, roads: int, lights: int, place_type: str) -> OffGridScoreOut:
    building_density = round(_clamp(100 - min(buildings * 2, 100)))
    road_density = round(_clamp(100 - min(roads * 2, 100)))
    light_pollution = round(_clamp(100 - min(lights * 1.5, 100)))
    bonus = LOCATION_TYPE_BONUS.get(place_type, DEFAULT_TYPE_BONUS)
    base = light_pollution * 0.35 + building_density * 0.35 + road_density * 0.30
    return OffGridScoreOut(
        total=round(_clamp(base + bonus)),
        light_pollution=light_pollution,
        building_density=building_density,
        road_density=road_density,
    )


def validate_coordinates(latitude, longitude) -> None:
    if isinstance(latitude, bool) or isinstance(longitude, bool) \
            or not isinstance(latitude, (int, float)) or not isinstance(longitude, (int, float)):
        raise ValidationError("Invalid latitude or longitude format")
    if not -90 <= latitude <= 90 or not -180 <= longitude <= 180:
        raise ValidationError("Latitude must be between -90 and 90, longitude between -180 and 180")


async def analyze_offgrid(identity: Optional[Identity], latitude: float, longitude: float,
                          transport: Optional[httpx.AsyncBaseTransport] = None) -> OffGridScoreOut:
    ensure_user(identity)
    validate_coordinates(latitude, longitude)
    logging.info(f"OFFGRID: Analyzing {latitude}, {longitude} for user {identity.user_id}.")

    async with httpx.AsyncClient(timeout=config.OVERPASS_TIMEOUT, transport=transport) as client:
        buildings, roads, lights, place_type = await asyncio.gather(
            count_elements(client, "Buildings", buildings_query(latitude, longitude)),
            count_elements(client, "Roads", roads_query(latitude, longitude)),
            count_elements(client, "Light sources", lighting_query(latitude, longitude)),
            location_type(client, latitude, longitude),
        )

    result = score(buildings, roads, lights, place_type)
    logging.info(
        f"OFFGRID: Buildings {buildings}, roads {roads}, lights {lights}, type {place_type} -> total {result.total}."
    )
    return result
