import math
import time

import pytest

from zoneclash.core.exceptions import InvalidCoordinates, ZoneNotFound
from zoneclash.services.geo_grid import GeoGrid, distance_meters, validate_point, within_radius


@pytest.fixture()
def grid():
    return GeoGrid(0.001)


def test_zone_id_of_reference_point(grid):
    assert grid.zone_id_of(40.0, -73.0) == "zone_4000000_-7300000"


def test_zone_id_of_is_deterministic(grid):
    points = [(40.0, -73.0), (37.7749, -122.4194), (-33.8688, 151.2093), (0.0, 0.0), (51.5, -0.1276)]
    for lat, lng in points:
        first = grid.zone_id_of(lat, lng)
        assert all(grid.zone_id_of(lat, lng) == first for _ in range(5))


def test_points_in_same_cell_share_an_id(grid):
    assert grid.zone_id_of(40.0001, -72.9999) == grid.zone_id_of(40.0009, -72.9991)


def test_adjacent_cells_differ_by_one_grid_step(grid):
    i, j = grid.cell_of(40.0, -73.0)
    assert grid.zone_id_for_cell((i + 1, j)) == "zone_4000100_-7300000"
    assert grid.zone_id_for_cell((i, j + 1)) == "zone_4000000_-7299900"
    assert grid.zone_id_of(40.001, -73.0) == "zone_4000100_-7300000"


def test_negative_coordinates_floor_toward_south_west(grid):
    # -73.0005 lies in the cell whose anchor is -73.001
    assert grid.zone_id_of(40.0, -73.0005) == "zone_4000000_-7300100"


def test_parse_zone_id_returns_anchor(grid):
    center = grid.parse_zone_id("zone_4000000_-7300000")
    assert center.lat == 40.0
    assert center.lng == -73.0
    assert grid.zone_id_of(*center) == "zone_4000000_-7300000"


@pytest.mark.parametrize("zone_id", [
    "zone_abc_def",
    "zone_4000000",
    "4000000_-7300000",
    "zone_4000050_-7300000",  # not on a 0.001 grid line
    "zone_99999900_0",  # latitude out of range
    "",
])
def test_parse_zone_id_rejects_bad_ids(grid, zone_id):
    with pytest.raises(ZoneNotFound):
        grid.parse_zone_id(zone_id)


def test_distance_to_self_is_zero():
    assert distance_meters((40.0, -73.0), (40.0, -73.0)) == 0.0


def test_distance_is_symmetric():
    a, b = (40.0, -73.0), (40.7128, -74.006)
    assert distance_meters(a, b) == pytest.approx(distance_meters(b, a))


def test_distance_one_degree_latitude():
    assert distance_meters((0.0, 0.0), (1.0, 0.0)) == pytest.approx(111195, rel=1e-3)


def test_triangle_inequality():
    a, b, c = (40.0, -73.0), (40.01, -73.02), (39.99, -72.97)
    assert distance_meters(a, c) <= distance_meters(a, b) + distance_meters(b, c) + 1e-6


def test_within_radius():
    center = (40.0, -73.0)
    assert within_radius((40.0001, -73.0), center, 20)
    assert not within_radius((40.001, -73.0), center, 20)


@pytest.mark.parametrize("lat,lng", [(91, 0), (-90.5, 0), (0, 181), (math.nan, 0), (0, math.inf), ("north", 0)])
def test_validate_point_rejects_bad_coordinates(lat, lng):
    with pytest.raises(InvalidCoordinates):
        validate_point(lat, lng)


def test_cells_within_nearest_first_and_limited(grid):
    cells = grid.cells_within(40.0, -73.0, 300, limit=10)
    assert len(cells) == 10
    assert cells[0][0] == "zone_4000000_-7300000"
    assert cells[0][2] == 0.0
    distances = [d for _, _, d in cells]
    assert distances == sorted(distances)
    assert all(d <= 300 for d in distances)


def test_cells_within_small_radius_only_own_cell(grid):
    cells = grid.cells_within(40.0, -73.0, 10, limit=50)
    assert [zone_id for zone_id, _, _ in cells] == ["zone_4000000_-7300000"]


def test_grid_size_must_be_positive():
    with pytest.raises(ValueError):
        GeoGrid(0)


def test_cells_within_matches_exhaustive_scan(grid):
    origin = (40.0, -73.0)
    expected = set()
    for i in range(39990, 40011):
        for j in range(-73010, -72989):
            zone_id = grid.zone_id_for_cell((i, j))
            if distance_meters(origin, grid.zone_center(zone_id)) <= 300:
                expected.add(zone_id)

    cells = grid.cells_within(*origin, 300, limit=1000)

    assert {zone_id for zone_id, _, _ in cells} == expected
    assert len(cells) == len(expected)


def test_cells_within_near_pole_stays_cheap(grid):
    started = time.perf_counter()
    cells = grid.cells_within(89.9, 0.0, 5000, limit=50)
    elapsed = time.perf_counter() - started

    assert elapsed < 1.0
    assert len(cells) == 50
    assert len({zone_id for zone_id, _, _ in cells}) == 50
    distances = [d for _, _, d in cells]
    assert distances == sorted(distances)
    assert all(d <= 5000 for d in distances)


def test_cells_within_at_the_pole_itself(grid):
    cells = grid.cells_within(90.0, 0.0, 5000, limit=50)
    assert len(cells) == 50
    assert cells[0][2] == 0.0


def test_cells_within_wraps_the_antimeridian(grid):
    ids = [zone_id for zone_id, _, _ in grid.cells_within(10.0, 179.9995, 200, limit=50)]

    assert "zone_1000000_17999900" in ids
    assert "zone_1000000_-18000000" in ids
    assert "zone_1000000_-17999900" in ids
