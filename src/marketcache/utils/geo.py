"""Great-circle distance and coarse grid cells for spatial indexing."""

from __future__ import annotations

import math

EARTH_RADIUS_KM = 6371.0

# Size of one spatial-index cell, in degrees of latitude and longitude.
CELL_DEGREES = 1.0
# Widens the search box so rounding never drops a cell on its edge.
_BOX_MARGIN = 1.01
_MAX_CELLS = 64


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Haversine distance in kilometres on a sphere of radius 6371 km."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def cell_for(latitude: float, longitude: float) -> str:
    """Grid cell id (``"{row}:{col}"``) containing a point."""
    row = math.floor(latitude / CELL_DEGREES)
    col = math.floor(_normalize_lon(longitude) / CELL_DEGREES)
    return f"{row}:{col}"


def cells_for_area(latitude: float, longitude: float, radius_km: float) -> list[str] | None:
    """Cells overlapping the bounding box of a circle.

    Returns None when the box reaches a pole or spans more than a handful
    of cells; callers should then scan every cell.
    """
    d_lat = math.degrees(radius_km / EARTH_RADIUS_KM) * _BOX_MARGIN
    south, north = latitude - d_lat, latitude + d_lat
    if south <= -90 or north >= 90:
        return None
    # Widest longitude span of the box occurs at its most poleward edge.
    cos_edge = math.cos(math.radians(max(abs(south), abs(north))))
    d_lon = d_lat / cos_edge
    if d_lon >= 180:
        return None

    rows = range(math.floor(south / CELL_DEGREES), math.floor(north / CELL_DEGREES) + 1)
    first_col = math.floor((longitude - d_lon) / CELL_DEGREES)
    last_col = math.floor((longitude + d_lon) / CELL_DEGREES)
    # Columns past the antimeridian wrap around; use cell centres to map them.
    cols = sorted({
        math.floor(_normalize_lon((col + 0.5) * CELL_DEGREES) / CELL_DEGREES)
        for col in range(first_col, last_col + 1)
    })
    if len(rows) * len(cols) > _MAX_CELLS:
        return None
    return [f"{row}:{col}" for row in rows for col in cols]


def _normalize_lon(longitude: float) -> float:
    """Wrap a longitude into [-180, 180)."""
    return ((longitude + 180.0) % 360.0) - 180.0
