# =============================================================================
# L4 Moving Objects - Ingestion Adapters
# =============================================================================
# Turns sensor messages into range profiles of points_per_scan values:
# - LaserScanAdapter: ranges are already angular, copied verbatim
# - PointCloudAdapter: decodes binary records, filters a height band and
#   bins points by angle keeping the nearest range per bin
# =============================================================================

import sys
import logging
import numpy as np

from .config import BankConfig
from .types import LaserScan, PointCloud
from .pointcloud import FieldResolver, decode_coordinates
from .errors import NoPointsIngested, ScanShapeError

logger = logging.getLogger(__name__)


class LaserScanAdapter:
    """Direct-copy adapter for scans that already have one range per bank index."""

    def __init__(self, config: BankConfig):
        self.config = config

    def to_ranges(self, scan: LaserScan) -> np.ndarray:
        ranges = np.asarray(scan.ranges, dtype=float)
        if ranges.shape != (self.config.points_per_scan,):
            raise ScanShapeError(
                f"Scan from '{scan.frame_id}' has {ranges.size} ranges, "
                f"the bank was opened with {self.config.points_per_scan}"
            )
        return ranges.copy()


class PointCloudAdapter:
    """
    Flattens a point cloud into an angular range profile.

    Every accepted point is projected onto the bins its physical width
    (voxel leaf size) covers as seen from the sensor; each bin keeps the
    nearest range, so closer points occlude farther ones.
    """

    def __init__(self, config: BankConfig, host_byteorder: str = sys.byteorder):
        """
        Initialize the adapter.

        Args:
            config: Bank configuration (field names, z band, leaf size, geometry)
            host_byteorder: 'little' or 'big', byte order coordinates are
                            interpreted in after any reversal
        """
        config.validate_point_cloud()
        self.config = config
        self.host_byteorder = host_byteorder
        self.field_names = (config.pc2_x_field, config.pc2_y_field, config.pc2_z_field)
        self.resolver = FieldResolver(self.field_names)

    def new_profile(self) -> np.ndarray:
        """Profile with every bin set to the 'no point seen' range."""
        return np.full(self.config.points_per_scan, self.config.empty_bin_range, dtype=float)

    def bin_points(self, cloud: PointCloud, profile: np.ndarray) -> int:
        """
        Write the points of a cloud into profile.

        Args:
            cloud: Point cloud message
            profile: Range profile to update in place (nearest range wins)

        Returns:
            Number of points inside the z band

        Raises:
            FieldResolutionError: x, y or z cannot be found in the catalog
            UnsupportedCoordinateWidth: a coordinate is not 4 or 8 bytes wide
        """
        cfg = self.config
        layouts = self.resolver.resolve(cloud.fields)
        x, y, z = decode_coordinates(cloud, layouts, self.field_names, self.host_byteorder)

        in_band = (z >= cfg.pc2_z_min) & (z <= cfg.pc2_z_max)
        accepted = int(np.count_nonzero(in_band))
        if accepted == 0:
            return 0

        x, y, z = x[in_band], y[in_band], z[in_band]
        ranges = np.sqrt(x * x + y * y + z * z)
        angles = np.arctan2(y, x)

        # A point spreads over the angle its leaf covers at its planar distance
        planar = np.hypot(x, y)
        with np.errstate(divide="ignore", invalid="ignore"):
            half_width = np.nan_to_num(np.arctan((cfg.pc2_voxel_leaf_size / 2.0) / planar))

        n_bins = cfg.points_per_scan
        if cfg.angle_increment > 0.0:
            index_min = np.floor((angles - half_width - cfg.angle_min) / cfg.angle_increment)
            index_max = np.floor((angles + half_width - cfg.angle_min) / cfg.angle_increment)
        else:
            index_min = np.zeros_like(angles)
            index_max = np.zeros_like(angles)

        in_view = (index_max >= 0) & (index_min <= n_bins - 1)
        if not np.all(in_view):
            logger.debug("%d points outside the angular view skipped",
                         int(np.count_nonzero(~in_view)))
        index_min = np.clip(index_min[in_view], 0, n_bins - 1).astype(int)
        index_max = np.clip(index_max[in_view], 0, n_bins - 1).astype(int)
        ranges = ranges[in_view]

        # Expand each point to every bin it covers, then keep the minimum
        spans = index_max - index_min + 1
        starts = np.cumsum(spans) - spans
        bins = np.repeat(index_min, spans) + (np.arange(spans.sum()) - np.repeat(starts, spans))
        np.minimum.at(profile, bins, np.repeat(ranges, spans))

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("Binned %d of %d points into %d bins",
                         accepted, in_band.size, int(np.unique(bins).size))
        return accepted

    def to_ranges(self, cloud: PointCloud) -> np.ndarray:
        """
        Range profile of a cloud, built in a scratch buffer.

        Raises:
            NoPointsIngested: no point was inside the z band
        """
        profile = self.new_profile()
        accepted = self.bin_points(cloud, profile)
        if accepted == 0:
            raise NoPointsIngested(
                f"No point of the cloud from '{cloud.frame_id}' at {cloud.stamp:.6f} "
                f"lies within z in [{self.config.pc2_z_min}, {self.config.pc2_z_max}]"
            )
        return profile
