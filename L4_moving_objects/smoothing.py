# =============================================================================
# L4 Moving Objects - Temporal Smoothing
# =============================================================================
# Exponential moving average applied scan-wide when a new scan is written
# into the bank.
# =============================================================================

import numpy as np


def ema_blend(raw: np.ndarray, previous: np.ndarray, alpha: float) -> np.ndarray:
    """
    Blend a new range profile with the previous smoothed one.

    S_t = alpha * x_t + (1 - alpha) * S_{t-1}

    Args:
        raw: New ranges (x_t)
        previous: Newest smoothed ranges (S_{t-1})
        alpha: Smoothing factor in [0, 1]
               1 = no smoothing (raw ranges are returned unchanged)
               0 = new data is ignored

    Returns:
        Smoothed ranges, a new array
    """
    raw = np.asarray(raw, dtype=float)
    if alpha >= 1.0:
        return raw.copy()
    if alpha <= 0.0:
        return np.array(previous, dtype=float)
    return alpha * raw + (1.0 - alpha) * np.asarray(previous, dtype=float)


class ScanSmoother:
    """
    Scan-wide EMA with a fixed smoothing factor.

    The first scan passes through untouched since there is nothing to
    blend it with.
    """

    def __init__(self, alpha: float):
        self.alpha = alpha

    @property
    def enabled(self) -> bool:
        return self.alpha < 1.0

    def smooth(self, raw: np.ndarray, previous: np.ndarray = None) -> np.ndarray:
        if previous is None:
            return np.asarray(raw, dtype=float).copy()
        return ema_blend(raw, previous, self.alpha)
