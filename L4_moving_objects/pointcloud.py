# =============================================================================
# L4 Moving Objects - Point Cloud Decoding
# =============================================================================
# Self-describing binary point records:
# - Field catalog resolution (name -> byte offset and width)
# - Coordinate extraction with explicit byte-order correction
# - Wire (de)serialization of the field catalog
# =============================================================================

import struct
import sys
import logging
import numpy as np
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from .types import PointCloud, PointField
from .errors import FieldResolutionError, UnsupportedCoordinateWidth

logger = logging.getLogger(__name__)

# Datatype codes of the field catalog
INT8 = 1
UINT8 = 2
INT16 = 3
UINT16 = 4
INT32 = 5
UINT32 = 6
FLOAT32 = 7
FLOAT64 = 8

DATATYPE_WIDTHS = {
    INT8: 1, UINT8: 1,
    INT16: 2, UINT16: 2,
    INT32: 4, UINT32: 4, FLOAT32: 4,
    FLOAT64: 8,
}


@dataclass(frozen=True)
class FieldLayout:
    """Where one coordinate lives inside a point record."""
    name: str
    offset: int
    width: int


def needs_byte_reversal(is_bigendian: bool, host_byteorder: str = sys.byteorder) -> bool:
    """True if the message byte order differs from the host's."""
    return is_bigendian != (host_byteorder == "big")


def float_dtype(width: int, byteorder: str, field_name: str = "") -> np.dtype:
    """
    Floating-point dtype used to interpret a coordinate field.

    Only 4- and 8-byte coordinates can be read; 4-byte integer fields are
    interpreted as float32.
    """
    prefix = ">" if byteorder == "big" else "<"
    if width == 4:
        return np.dtype(prefix + "f4")
    if width == 8:
        return np.dtype(prefix + "f8")
    raise UnsupportedCoordinateWidth(field_name, width)


# =============================================================================
# Field Resolution
# =============================================================================

def resolve_fields(fields: Sequence[PointField],
                   names: Sequence[str]) -> Dict[str, FieldLayout]:
    """
    Find byte offset and width of the named fields.

    Args:
        fields: Field catalog of a point cloud
        names: Field names to resolve (x, y, z)

    Returns:
        Dictionary name -> FieldLayout

    Raises:
        FieldResolutionError: a field is absent or has an unknown datatype code
    """
    by_name = {f.name: f for f in fields}
    layouts = {}
    for name in names:
        if name not in by_name:
            raise FieldResolutionError(f"Cannot find field '{name}' in point cloud")
        field = by_name[name]
        width = DATATYPE_WIDTHS.get(field.datatype)
        if width is None:
            raise FieldResolutionError(
                f"Unknown datatype {field.datatype} of field '{name}'")
        layouts[name] = FieldLayout(name, field.offset, width)
    return layouts


class FieldResolver:
    """
    Resolves the field catalog once per catalog shape.

    Only the last catalog and its layouts are kept. A failed resolution
    stays in force for the life of the resolver, so a detector has to be
    reset before it accepts clouds again.
    """

    def __init__(self, names: Sequence[str]):
        self.names = tuple(names)
        self._fields: Optional[Tuple[PointField, ...]] = None
        self._layouts: Optional[Dict[str, FieldLayout]] = None
        self.error: Optional[FieldResolutionError] = None

    def resolve(self, fields: Sequence[PointField]) -> Dict[str, FieldLayout]:
        if self.error is not None:
            raise self.error
        key = tuple(fields)
        if key != self._fields:
            try:
                layouts = resolve_fields(fields, self.names)
            except FieldResolutionError as e:
                self.error = e
                raise
            self._fields, self._layouts = key, layouts
            logger.debug("Resolved point cloud fields: %s", layouts)
        return self._layouts


# =============================================================================
# Coordinate Extraction
# =============================================================================

def point_records(cloud: PointCloud) -> np.ndarray:
    """
    View the payload as an (n_points, point_step) byte matrix.

    Row padding (row_step larger than width * point_step) is skipped.
    """
    n_points = cloud.height * cloud.width
    if n_points == 0:
        return np.zeros((0, cloud.point_step), dtype=np.uint8)

    payload = np.frombuffer(cloud.data, dtype=np.uint8)
    row_bytes = cloud.width * cloud.point_step
    if cloud.row_step == row_bytes or cloud.height == 1:
        records = payload[:n_points * cloud.point_step]
    else:
        rows = payload[:cloud.height * cloud.row_step].reshape(cloud.height, cloud.row_step)
        records = rows[:, :row_bytes]
    return records.reshape(n_points, cloud.point_step)


def extract_field(records: np.ndarray, layout: FieldLayout,
                  reverse: bool, host_byteorder: str = sys.byteorder) -> np.ndarray:
    """
    Extract one coordinate of every record as float64.

    Args:
        records: (n_points, point_step) byte matrix
        layout: Offset and width of the field
        reverse: Reverse the bytes of each value before interpreting it
        host_byteorder: 'little' or 'big', byte order values are read in

    Returns:
        Array of n_points values
    """
    dtype = float_dtype(layout.width, host_byteorder, layout.name)
    raw = records[:, layout.offset:layout.offset + layout.width]
    if reverse:
        raw = raw[:, ::-1]
    return np.ascontiguousarray(raw).view(dtype).reshape(-1).astype(float)


def decode_coordinates(cloud: PointCloud, layouts: Dict[str, FieldLayout],
                       names: Sequence[str], host_byteorder: str = sys.byteorder
                       ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Decode x, y and z of every point of a cloud."""
    reverse = needs_byte_reversal(cloud.is_bigendian, host_byteorder)
    records = point_records(cloud)
    x, y, z = (extract_field(records, layouts[name], reverse, host_byteorder)
               for name in names)
    return x, y, z


# =============================================================================
# Field Catalog Wire Format
# =============================================================================
# Per field: uint32 name length, name (utf-8), uint32 offset,
#            uint8 datatype, uint32 count

def _prefix(is_bigendian: bool) -> str:
    return ">" if is_bigendian else "<"


def pack_field_catalog(fields: Sequence[PointField], is_bigendian: bool) -> bytes:
    """Serialize a field catalog in the message byte order."""
    prefix = _prefix(is_bigendian)
    chunks = [struct.pack(prefix + "I", len(fields))]
    for field in fields:
        name = field.name.encode("utf-8")
        chunks.append(struct.pack(prefix + "I", len(name)))
        chunks.append(name)
        chunks.append(struct.pack(prefix + "IBI", field.offset, field.datatype, field.count))
    return b"".join(chunks)


def unpack_field_catalog(payload: bytes, is_bigendian: bool) -> List[PointField]:
    """Read a field catalog written by pack_field_catalog."""
    prefix = _prefix(is_bigendian)
    (n_fields,) = struct.unpack_from(prefix + "I", payload, 0)
    position = 4
    fields = []
    for _ in range(n_fields):
        (name_length,) = struct.unpack_from(prefix + "I", payload, position)
        position += 4
        name = payload[position:position + name_length].decode("utf-8")
        position += name_length
        offset, datatype, count = struct.unpack_from(prefix + "IBI", payload, position)
        position += struct.calcsize(prefix + "IBI")
        fields.append(PointField(name, offset, datatype, count))
    return fields


def encode_points(points: np.ndarray, is_bigendian: bool = False,
                  datatype: int = FLOAT32, names: Sequence[str] = ("x", "y", "z"),
                  stamp: float = 0.0, frame_id: str = "") -> PointCloud:
    """
    Pack an (n, 3) array into a single-row PointCloud.

    Args:
        points: Coordinates, one row per point
        is_bigendian: Byte order of the payload
        datatype: FLOAT32 or FLOAT64
        names: Field names of the three columns
    """
    width = DATATYPE_WIDTHS[datatype]
    dtype = float_dtype(width, "big" if is_bigendian else "little")
    points = np.asarray(points, dtype=float).reshape(-1, 3)
    fields = [PointField(name, i * width, datatype) for i, name in enumerate(names)]
    data = points.astype(dtype).tobytes()
    return PointCloud(
        stamp=stamp, frame_id=frame_id,
        height=1, width=len(points),
        fields=fields, is_bigendian=is_bigendian,
        point_step=3 * width, row_step=3 * width * len(points),
        data=data,
    )
