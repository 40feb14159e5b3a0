"""
Quantization module for converting between WGS84 coordinates and the 20-bit grid.

Latitude and longitude are each reduced to a 20-bit unsigned integer:

    qlat = round((lat + 90) / 180 * 2^20) & 0xFFFFF
    qlon = round((lon + 180) / 360 * 2^20) & 0xFFFFF

The mask wraps the upper bound (lat = +90, lon = +180) onto 0, which keeps
every value inside the 20 bits the city record reserves for it.

Quantization uses round-half-away-from-zero rounding.
"""

from typing import Tuple

GRID_BITS = 20
GRID_SIZE = 1 << GRID_BITS
GRID_MASK = GRID_SIZE - 1

# Size of one grid cell in degrees
LAT_STEP = 180.0 / GRID_SIZE
LON_STEP = 360.0 / GRID_SIZE


def clamp_coords(lat: float, lon: float) -> Tuple[float, float]:
    """
    Clamp latitude and longitude to valid WGS84 ranges.

    Args:
        lat: Latitude in degrees
        lon: Longitude in degrees

    Returns:
        Tuple of (clamped_lat, clamped_lon)
    """
    clamped_lat = max(-90.0, min(90.0, lat))
    clamped_lon = max(-180.0, min(180.0, lon))
    return clamped_lat, clamped_lon


def _round_half_away_from_zero(x: float) -> int:
    """
    Round to nearest integer, with ties going away from zero.

    Python's round() uses banker's rounding, which would make grid cells
    depend on the parity of the cell index.
    """
    if x >= 0:
        return int(x + 0.5)
    else:
        return int(x - 0.5)


def quantize(lat: float, lon: float) -> Tuple[int, int]:
    """
    Convert WGS84 coordinates to 20-bit grid indices.

    Args:
        lat: Latitude in degrees [-90, 90]
        lon: Longitude in degrees [-180, 180]

    Returns:
        Tuple of (qlat, qlon)
    """
    lat, lon = clamp_coords(lat, lon)

    qlat = _round_half_away_from_zero((lat + 90.0) / 180.0 * GRID_SIZE) & GRID_MASK
    qlon = _round_half_away_from_zero((lon + 180.0) / 360.0 * GRID_SIZE) & GRID_MASK

    return qlat, qlon


def dequantize(qlat: int, qlon: int) -> Tuple[float, float]:
    """
    Convert 20-bit grid indices back to WGS84 coordinates.

    Args:
        qlat: Latitude index
        qlon: Longitude index

    Returns:
        Tuple of (lat, lon) as floating point degrees
    """
    lat = qlat * LAT_STEP - 90.0
    lon = qlon * LON_STEP - 180.0
    return lat, lon
