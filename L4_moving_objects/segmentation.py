# =============================================================================
# L4 Moving Objects - Segmentation
# =============================================================================
# Splits one range profile into candidate objects: contiguous angular runs
# of in-bounds ranges whose neighbour-to-neighbour jump stays within the
# edge tolerance.
# =============================================================================

import logging
import numpy as np
from typing import List, Optional

from .config import BankConfig
from .types import Segment
from .transforms import law_of_cosines_width

logger = logging.getLogger(__name__)


def _in_bounds(value: float, range_min: float, range_max: float) -> bool:
    return range_min <= value <= range_max


def _walk(ranges: np.ndarray, start: int, step: int, range_min: float,
          range_max: float, edge_max_delta_range: float) -> int:
    """Last index reached from start in direction step under the edge rule."""
    last = start
    previous = ranges[start]
    i = start + step
    while 0 <= i < len(ranges):
        value = ranges[i]
        if not (_in_bounds(value, range_min, range_max)
                and abs(value - previous) <= edge_max_delta_range):
            break
        last = i
        previous = value
        i += step
    return last


def make_segment(ranges: np.ndarray, index_min: int, index_max: int) -> Segment:
    """Summarize ranges[index_min:index_max + 1] as a Segment."""
    span = ranges[index_min:index_max + 1]
    closest_offset = int(np.argmin(span))
    return Segment(
        index_min=index_min,
        index_max=index_max,
        range_sum=float(np.sum(span)),
        range_at_min=float(ranges[index_min]),
        range_at_max=float(ranges[index_max]),
        closest_index=index_min + closest_offset,
        closest_range=float(span[closest_offset]),
    )


def expand_segment(ranges: np.ndarray, center: int, range_min: float,
                   range_max: float, edge_max_delta_range: float) -> Optional[Segment]:
    """
    Grow a segment leftward and rightward from center.

    Returns:
        The segment around center, or None if center is outside the profile
        or its range is out of bounds
    """
    if not 0 <= center < len(ranges):
        return None
    if not _in_bounds(ranges[center], range_min, range_max):
        return None
    left = _walk(ranges, center, -1, range_min, range_max, edge_max_delta_range)
    right = _walk(ranges, center, +1, range_min, range_max, edge_max_delta_range)
    return make_segment(ranges, left, right)


def seen_width(segment: Segment, angle_increment: float) -> float:
    """Physical width in meters of a segment (law of cosines over its end ranges)."""
    return law_of_cosines_width(segment.range_at_min, segment.range_at_max,
                                segment.width * angle_increment)


class ScanSegmenter:
    """
    Left-to-right segmentation of a smoothed scan.

    A candidate starts at the first in-bounds index, extends while the edge
    rule holds and the scan resumes right after it. Candidates narrower than
    min_points are skipped.
    """

    def __init__(self, config: BankConfig):
        self.config = config
        self.range_min = config.range_min
        self.range_max = config.tracking_range_max
        self.edge_max_delta_range = config.edge_max_delta_range
        self.min_points = config.min_points

    def candidates(self, ranges: np.ndarray) -> List[Segment]:
        """All contiguous runs, regardless of width."""
        found = []
        n = len(ranges)
        i = 0
        while i < n:
            if not _in_bounds(ranges[i], self.range_min, self.range_max):
                i += 1
                continue
            last = _walk(ranges, i, +1, self.range_min, self.range_max,
                         self.edge_max_delta_range)
            found.append(make_segment(ranges, i, last))
            i = last + 1
        return found

    def find_segments(self, ranges: np.ndarray) -> List[Segment]:
        """Runs of at least min_points points."""
        segments = [s for s in self.candidates(ranges) if s.width >= self.min_points]
        logger.debug("Segmentation: %d objects", len(segments))
        return segments
