"""Off-grid scoring."""

from urllib.parse import parse_qs

import httpx
import pytest

from app import offgrid
from app.errors import AuthenticationError, ValidationError
from app.security import Identity

USER = Identity(user_id="host-1")


def overpass_handler(buildings, roads, lights, place_type="hamlet", overpass_status=200):
    def handler(request):
        if "nominatim" in request.url.host:
            assert request.url.params["zoom"] == "14"
            return httpx.Response(200, json={"addresstype": place_type})
        if overpass_status != 200:
            return httpx.Response(overpass_status)
        query = parse_qs(request.content.decode())["data"][0]
        if "street_lamp" in query:
            count = lights
        elif '"building"' in query:
            count = buildings
        else:
            count = roads
        return httpx.Response(200, json={"elements": [{"id": i} for i in range(count)]})
    return handler


def test_remote_place_scores_full_marks():
    result = offgrid.score(0, 0, 0, "isolated_dwelling")
    assert (result.total, result.light_pollution, result.building_density, result.road_density) == (100, 100, 100, 100)


def test_village_score():
    result = offgrid.score(10, 20, 10, "village")
    assert result.building_density == 80
    assert result.road_density == 60
    assert result.light_pollution == 85
    # 85 * 0.35 + 80 * 0.35 + 60 * 0.30 = 75.75
    assert result.total == 76


def test_city_score_is_clamped_at_zero():
    result = offgrid.score(500, 500, 500, "city")
    assert result.total == 0


def test_unknown_place_type_gets_default_bonus():
    assert offgrid.score(50, 50, 100, "unknown").total == 5


@pytest.mark.parametrize("lat, lon", [(91, 20), (-91, 20), (52, 181), (52, -181)])
def test_coordinates_out_of_range(lat, lon):
    with pytest.raises(ValidationError):
        offgrid.validate_coordinates(lat, lon)


async def test_analyze_needs_a_user():
    with pytest.raises(AuthenticationError):
        await offgrid.analyze_offgrid(None, 52.0, 21.0)


async def test_analyze_combines_all_queries():
    transport = httpx.MockTransport(overpass_handler(buildings=5, roads=10, lights=4, place_type="hamlet"))
    result = await offgrid.analyze_offgrid(USER, 53.7, 21.8, transport=transport)
    assert result.building_density == 90
    assert result.road_density == 80
    assert result.light_pollution == 94
    # 94 * 0.35 + 90 * 0.35 + 80 * 0.30 + 10 = 98.4
    assert result.total == 98


async def test_failed_queries_count_as_nothing_found():
    transport = httpx.MockTransport(overpass_handler(0, 0, 0, place_type="village", overpass_status=504))
    result = await offgrid.analyze_offgrid(USER, 53.7, 21.8, transport=transport)
    assert result.total == 100
