"""
Encoded polyline codec.

Routing services return route geometry as an ASCII string in which each
coordinate is stored as a zig-zag encoded delta from the previous one, at a
fixed precision of 1e-5 degrees, split into 5-bit chunks offset by 63.
"""

from typing import Iterable, List, NamedTuple, Optional, Tuple
import logging

from .geometry import GeoPoint

logger = logging.getLogger(__name__)

PRECISION = 1e5

# Shift of the last 5-bit chunk a 32-bit value can need
MAX_SHIFT = 30


class PolylineDecodeError(ValueError):
    """Raised when strict decoding finds a truncated or corrupt polyline."""


class DecodeResult(NamedTuple):
    """Outcome of a checked decode."""

    points: List[GeoPoint]
    complete: bool  # True if every character belonged to a complete point
    consumed: int  # Number of characters belonging to complete points


def _decode_value(encoded: str, index: int) -> Optional[Tuple[int, int]]:
    """
    Decode one variable-length value starting at index.

    Values are at most 32 bits wide, so at most seven chunks are read.

    Returns:
        Tuple of (value, next_index), or None if the string ends before the
        value's final chunk or the value runs past seven chunks
    """
    result = 0
    shift = 0
    while index < len(encoded):
        if shift > MAX_SHIFT:
            return None
        byte = ord(encoded[index]) - 63
        index += 1
        result |= (byte & 0x1F) << shift
        shift += 5
        if byte < 0x20:
            value = ~(result >> 1) if result & 1 else result >> 1
            return value, index
    return None


def _decode(encoded: str) -> DecodeResult:
    points: List[GeoPoint] = []
    index = 0
    lat = 0
    lng = 0

    while index < len(encoded):
        decoded_lat = _decode_value(encoded, index)
        if decoded_lat is None:
            break
        dlat, lng_index = decoded_lat

        decoded_lng = _decode_value(encoded, lng_index)
        if decoded_lng is None:
            break
        dlng, index = decoded_lng

        lat += dlat
        lng += dlng
        points.append(GeoPoint(latitude=lat / PRECISION, longitude=lng / PRECISION))

    return DecodeResult(points=points, complete=index == len(encoded), consumed=index)


def decode_polyline(encoded: str) -> List[GeoPoint]:
    """
    Decode an encoded polyline into a list of points.

    Decoding is best effort and never raises: if the string is truncated in
    the middle of a point, or a value is longer than 32 bits, decoding stops
    after the last complete point.

    Args:
        encoded: Encoded polyline string (may be empty)

    Returns:
        List of GeoPoint objects in route order
    """
    return _decode(encoded).points


def decode_polyline_checked(encoded: str) -> DecodeResult:
    """
    Decode an encoded polyline and report whether the whole input was used.

    Args:
        encoded: Encoded polyline string

    Returns:
        DecodeResult with the decoded points and completeness information
    """
    result = _decode(encoded)
    if not result.complete:
        logger.debug(
            f"Polyline truncated: decoded {len(result.points)} points from "
            f"{result.consumed}/{len(encoded)} characters"
        )
    return result


def decode_polyline_strict(encoded: str) -> List[GeoPoint]:
    """
    Decode an encoded polyline, rejecting truncated input.

    Raises:
        PolylineDecodeError: If trailing characters do not form a complete point,
            including values too long to be valid
    """
    result = decode_polyline_checked(encoded)
    if not result.complete:
        raise PolylineDecodeError(
            f"Encoded polyline is truncated after {len(result.points)} points "
            f"({len(encoded) - result.consumed} trailing characters)"
        )
    return result.points


def _encode_value(value: int) -> List[str]:
    """Encode a single coordinate delta value."""
    value = ~(value << 1) if value < 0 else (value << 1)

    chunks = []
    while value >= 0x20:
        chunks.append(chr((0x20 | (value & 0x1F)) + 63))
        value >>= 5

    chunks.append(chr(value + 63))
    return chunks


def encode_polyline(points: Iterable[GeoPoint]) -> str:
    """
    Encode points into a polyline string.

    Args:
        points: Points in route order

    Returns:
        Encoded polyline string, rounded to 1e-5 degrees
    """
    encoded: List[str] = []
    prev_lat = 0
    prev_lng = 0

    for point in points:
        lat = int(round(point.latitude * PRECISION))
        lng = int(round(point.longitude * PRECISION))

        encoded.extend(_encode_value(lat - prev_lat))
        encoded.extend(_encode_value(lng - prev_lng))

        prev_lat = lat
        prev_lng = lng

    return "".join(encoded)
