"""
GeoGrid: coordinate -> zone id mapping and distance math.

Pure computation, no database access.

The map is cut into square cells of `grid_size` degrees. A cell's identity
is its south-west corner (the grid anchor), encoded as fixed-point integers:

    zone_<round(latGrid * 100000)>_<round(lngGrid * 100000)>

The floor division is done in decimal arithmetic on the shortest repr of the
float, so 40.0 / 0.001 is exactly 40000 and never 39999.999...
"""
import heapq
import math
import re
from decimal import Decimal, ROUND_HALF_EVEN
from typing import List, NamedTuple, Tuple

from zoneclash.core.exceptions import InvalidCoordinates, ZoneNotFound

EARTH_RADIUS_M = 6371000.0
METERS_PER_DEGREE_LAT = EARTH_RADIUS_M * math.pi / 180
FIXED_POINT_SCALE = Decimal(100000)

_ZONE_ID_RE = re.compile(r"^zone_(-?\d+)_(-?\d+)$")


class GeoPoint(NamedTuple):
    lat: float
    lng: float


def validate_point(lat, lng) -> GeoPoint:
    """
    Check that (lat, lng) is a usable coordinate.

    Raises:
        InvalidCoordinates: non-numeric, NaN/inf or out of range
    """
    try:
        lat_f = float(lat)
        lng_f = float(lng)
    except (TypeError, ValueError):
        raise InvalidCoordinates(lat, lng)

    if not (math.isfinite(lat_f) and math.isfinite(lng_f)):
        raise InvalidCoordinates(lat, lng)
    if not (-90.0 <= lat_f <= 90.0 and -180.0 <= lng_f <= 180.0):
        raise InvalidCoordinates(lat, lng)

    return GeoPoint(lat_f, lng_f)


def distance_meters(a: Tuple[float, float], b: Tuple[float, float]) -> float:
    """
    Haversine great-circle distance in meters.

    Symmetric, 0 for identical points.
    """
    lat1, lng1 = a
    lat2, lng2 = b
    if lat1 == lat2 and lng1 == lng2:
        return 0.0

    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    h = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    # rounding can push h a hair past 1 for antipodal points
    h = min(1.0, max(0.0, h))
    return 2 * EARTH_RADIUS_M * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def within_radius(point: Tuple[float, float], center: Tuple[float, float], radius: float) -> bool:
    """Range gate shared by claim, check-in and attack."""
    return distance_meters(point, center) <= radius


class GeoGrid:
    """Deterministic partition of the map into zone-sized cells."""

    def __init__(self, grid_size: float = 0.001):
        if grid_size <= 0:
            raise ValueError(f"grid_size must be positive, got {grid_size}")
        self.grid_size = grid_size
        self._grid = Decimal(repr(grid_size))
        self._j_min = math.floor(Decimal(-180) / self._grid)
        self._j_max = math.floor(Decimal(180) / self._grid)
        # columns around the globe, None when grid_size does not divide 360
        lng_cells = Decimal(360) / self._grid
        self._lng_cells = int(lng_cells) if lng_cells == lng_cells.to_integral_value() else None

    # ---------- cells ----------

    def cell_of(self, lat: float, lng: float) -> Tuple[int, int]:
        """Integer cell indices (floor(lat / g), floor(lng / g))."""
        point = validate_point(lat, lng)
        return (
            math.floor(Decimal(repr(point.lat)) / self._grid),
            math.floor(Decimal(repr(point.lng)) / self._grid),
        )

    def _fixed_point(self, index: int) -> int:
        scaled = Decimal(index) * self._grid * FIXED_POINT_SCALE
        return int(scaled.to_integral_value(rounding=ROUND_HALF_EVEN))

    def _anchor(self, index: int) -> float:
        return float(Decimal(index) * self._grid)

    def zone_id_for_cell(self, cell: Tuple[int, int]) -> str:
        i, j = cell
        return f"zone_{self._fixed_point(i)}_{self._fixed_point(j)}"

    def zone_id_of(self, lat: float, lng: float) -> str:
        """
        Map a coordinate to its zone id.

        Example (grid_size=0.001):
            zone_id_of(40.0, -73.0) -> "zone_4000000_-7300000"
        """
        return self.zone_id_for_cell(self.cell_of(lat, lng))

    # ---------- ids ----------

    def parse_zone_id(self, zone_id: str) -> GeoPoint:
        """
        Decode a zone id back into its grid anchor.

        Raises:
            ZoneNotFound: malformed id, or an id that is not on this grid
        """
        match = _ZONE_ID_RE.match(zone_id or "")
        if not match:
            raise ZoneNotFound(zone_id)

        lat = int(match.group(1)) / 100000
        lng = int(match.group(2)) / 100000
        try:
            canonical = self.zone_id_of(lat, lng)
        except InvalidCoordinates:
            raise ZoneNotFound(zone_id)

        if canonical != zone_id:
            raise ZoneNotFound(zone_id)
        return GeoPoint(lat, lng)

    def zone_center(self, zone_id: str) -> GeoPoint:
        """A zone is centered on the grid anchor its id encodes."""
        return self.parse_zone_id(zone_id)

    # ---------- neighbourhood ----------

    def _wrap_column(self, j: int) -> int:
        """Column index folded back onto [-180, 180) when the grid tiles the globe."""
        if self._lng_cells is None:
            return j
        return self._j_min + (j - self._j_min) % self._lng_cells

    def _walk_allowed(self, j: int, step: int, taken: int) -> bool:
        if self._lng_cells is None:
            return self._j_min <= j <= self._j_max
        # the two walks of a row split the circle, so no column is visited twice
        west_steps = self._lng_cells // 2
        if step < 0:
            return taken <= west_steps
        return taken <= self._lng_cells - 2 - west_steps

    def _push_column(self, heap, origin: GeoPoint, radius: float, i: int, j: int, step: int, taken: int) -> None:
        if not self._walk_allowed(j, step, taken):
            return
        column = self._wrap_column(j)
        center = GeoPoint(self._anchor(i), self._anchor(column))
        distance = distance_meters(origin, center)
        if distance > radius:
            # farther columns of this row are farther still
            return
        zone_id = self.zone_id_for_cell((i, column))
        heapq.heappush(heap, (distance, zone_id, center, i, j, step, taken))

    def cells_within(self, lat: float, lng: float, radius: float, limit: int) -> List[Tuple[str, GeoPoint, float]]:
        """
        Zone ids whose centers lie within `radius` meters of (lat, lng).

        Every grid row in reach is walked east and west from the origin's
        column. Along a row the distance only grows, so the walks are merged
        nearest first and the search stops after `limit` hits: the work is
        bounded by the number of rows plus `limit`, next to the poles too.
        Rows wrap across the antimeridian.

        Returns:
            [(zone_id, center, distance)], nearest first, at most `limit`
        """
        origin = validate_point(lat, lng)
        if radius < 0 or limit <= 0:
            return []

        d_lat = radius / METERS_PER_DEGREE_LAT
        i_lo, j_origin = self.cell_of(max(-90.0, origin.lat - d_lat), origin.lng)
        i_hi, _ = self.cell_of(min(90.0, origin.lat + d_lat), origin.lng)

        heap = []
        for i in range(i_lo, i_hi + 1):
            # west walk starts on the origin's own column, east walk right after it
            self._push_column(heap, origin, radius, i, j_origin, -1, 0)
            self._push_column(heap, origin, radius, i, j_origin + 1, 1, 0)

        found = []
        while heap and len(found) < limit:
            distance, zone_id, center, i, j, step, taken = heapq.heappop(heap)
            found.append((zone_id, center, distance))
            self._push_column(heap, origin, radius, i, j + step, step, taken + 1)
        return found
