# =============================================================================
# L4 Moving Objects - Cross-Time Tracker
# =============================================================================
# Follows an object found in the newest scan backward through every older
# scan in the bank. Single path, no backtracking: at most one candidate
# segment is examined per slot.
# =============================================================================

import logging

from .bank import ScanBank
from .config import BankConfig
from .types import Segment, TrackFound, TrackNotFound, TrackResult
from .segmentation import expand_segment

logger = logging.getLogger(__name__)


class CrossTimeTracker:
    """
    Backward walk from the slot before newest, wrapping circularly, for
    nr_scans_in_bank - 1 steps.

    At each step the edge rule is re-applied around the mean index of the
    last accepted segment. A continuation is accepted if:
    1. It has at least min_points points
    2. Its width differs by at most max_delta_width_points
    3. Its mean range differs by at most tracking_max_delta_distance

    Each rejection is a miss. The walk aborts once the consecutive misses
    exceed tracking_max_consecutive_misses. After a tolerated miss the last
    accepted segment stays the reference.
    """

    def __init__(self, config: BankConfig):
        self.config = config
        self.range_min = config.range_min
        self.range_max = config.tracking_range_max

    def is_continuation(self, previous: Segment, candidate: Segment) -> bool:
        cfg = self.config
        if candidate.width < cfg.min_points:
            return False
        if abs(candidate.width - previous.width) > cfg.max_delta_width_points:
            return False
        return abs(candidate.mean_range - previous.mean_range) <= cfg.tracking_max_delta_distance

    def track(self, bank: ScanBank, segment: Segment) -> TrackResult:
        """
        Find the historical counterpart of a segment of the newest slot.

        Args:
            bank: Filled scan bank
            segment: Segment found in the newest slot

        Returns:
            TrackFound with the oldest matched segment, its slot and stamp,
            or TrackNotFound if the miss tolerance was exceeded
        """
        tolerance = self.config.tracking_max_consecutive_misses
        reference = segment
        matched_slot = bank.index_newest
        misses = 0

        slot = bank.index_newest
        for level in range(1, bank.nr_scans):
            slot = bank.previous_index(slot)
            candidate = expand_segment(bank.slot(slot), reference.index_mean,
                                       self.range_min, self.range_max,
                                       self.config.edge_max_delta_range)

            if candidate is not None and self.is_continuation(reference, candidate):
                reference = candidate
                matched_slot = slot
                misses = 0
                continue

            misses += 1
            if misses > tolerance:
                logger.debug("Lost object at index %d after %d levels",
                             segment.index_mean, level)
                return TrackNotFound(slot=slot, levels_searched=level, misses=misses)

        if matched_slot == bank.index_newest:
            # Every step was a tolerated miss
            return TrackNotFound(slot=slot, levels_searched=bank.nr_scans - 1, misses=misses)

        return TrackFound(segment=reference, slot=matched_slot,
                          stamp=bank.stamp(matched_slot), misses=misses)
