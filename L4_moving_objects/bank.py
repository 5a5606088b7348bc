# =============================================================================
# L4 Moving Objects - Scan Bank Storage
# =============================================================================
# Fixed-depth circular history of smoothed range profiles and their
# timestamps, indexed by two cursors:
#   put    - the slot about to be written (holds the oldest scan once filled)
#   newest - the most recently completed slot
# =============================================================================

import logging
import numpy as np

from .errors import ScanShapeError
from .smoothing import ScanSmoother

logger = logging.getLogger(__name__)


class ScanBank:
    """
    Circular array of `nr_scans` range profiles of `points_per_scan` points.

    Lifecycle:
    1. write_first() stores the first scan in slot 0 (no smoothing) and
       sets put=1, newest=0
    2. write() stores every later scan in the put slot, blended against the
       newest slot, then advances both cursors
    3. filled becomes True once every slot holds a scan

    Not thread safe: one bank per sensor stream, calls serialized by the caller.
    """

    def __init__(self, nr_scans: int, points_per_scan: int, alpha: float = 1.0):
        """
        Initialize an empty bank.

        Args:
            nr_scans: Depth of the bank (at least 2, checked by BankConfig)
            points_per_scan: Angular resolution, fixed for the bank's lifetime
            alpha: EMA smoothing factor
        """
        self.nr_scans = nr_scans
        self.points_per_scan = points_per_scan
        self.smoother = ScanSmoother(alpha)

        self._ranges = np.zeros((nr_scans, points_per_scan), dtype=float)
        self._stamps = np.zeros(nr_scans, dtype=float)

        self.index_put = -1
        self.index_newest = -1
        self.initialized = False
        self.filled = False
        self.nr_writes = 0

    # =========================================================================
    # Index Bookkeeping
    # =========================================================================

    def init_indices(self):
        """Used once after the very first slot is written."""
        self.index_put = 1
        self.index_newest = 0
        self.initialized = True

    def advance(self):
        """Move put and newest forward; detect the first wrap of put."""
        self.index_put = (self.index_put + 1) % self.nr_scans        # oldest scan
        self.index_newest = (self.index_newest + 1) % self.nr_scans  # this scan
        if self.index_put < self.index_newest:
            self.filled = True

    def previous_index(self, index: int) -> int:
        """Slot holding the scan acquired just before the one at index."""
        return (index - 1) % self.nr_scans

    # =========================================================================
    # Writing
    # =========================================================================

    def write_first(self, stamp: float, ranges: np.ndarray):
        """Store the first scan verbatim in slot 0."""
        self._check_shape(ranges)
        self._stamps[0] = stamp
        self._ranges[0, :] = ranges
        self.init_indices()
        self.filled = False
        self.nr_writes = 1
        logger.debug("Bank opened with first scan at %.6f", stamp)

    def write(self, stamp: float, ranges: np.ndarray):
        """
        Store a new scan in the put slot, smoothed against the newest slot,
        and advance the cursors.
        """
        if not self.initialized:
            self.write_first(stamp, ranges)
            return

        self._check_shape(ranges)
        put = self.index_put
        self._stamps[put] = stamp
        self._ranges[put, :] = self.smoother.smooth(ranges, self._ranges[self.index_newest])
        self.nr_writes += 1

        was_filled = self.filled
        self.advance()
        if self.filled and not was_filled:
            logger.info("Bank filled after %d scans", self.nr_writes)

    def _check_shape(self, ranges: np.ndarray):
        if np.shape(ranges) != (self.points_per_scan,):
            raise ScanShapeError(
                f"Expected {self.points_per_scan} ranges, got shape {np.shape(ranges)}"
            )

    # =========================================================================
    # Reading
    # =========================================================================

    def slot(self, index: int) -> np.ndarray:
        """Read-only view of the ranges in a slot."""
        view = self._ranges[index]
        view.flags.writeable = False
        return view

    def stamp(self, index: int) -> float:
        return float(self._stamps[index])

    @property
    def newest(self) -> np.ndarray:
        return self.slot(self.index_newest)

    @property
    def newest_stamp(self) -> float:
        return self.stamp(self.index_newest)

    @property
    def oldest_index(self) -> int:
        """Slot of the oldest scan once the bank is filled."""
        return self.index_put if self.filled else 0

    @property
    def oldest_stamp(self) -> float:
        return self.stamp(self.oldest_index)

    def reset(self):
        """Forget all scans."""
        self._ranges[:] = 0.0
        self._stamps[:] = 0.0
        self.index_put = -1
        self.index_newest = -1
        self.initialized = False
        self.filled = False
        self.nr_writes = 0
