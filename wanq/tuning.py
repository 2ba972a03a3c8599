# wanq/tuning.py
# Measurement -> shaping target, and the threshold gate against the last applied pair
from dataclasses import dataclass

from . import config


@dataclass(frozen=True)
class RatePair:
    download_mbit: int
    upload_mbit: int

    @property
    def valid(self):
        return self.download_mbit > 0 and self.upload_mbit > 0

    @classmethod
    def parse(cls, raw):
        """Parse a persisted "down up" record; None if missing or unusable."""
        if not raw:
            return None
        parts = str(raw).split()
        if len(parts) < 2:
            return None
        try:
            pair = cls(int(float(parts[0])), int(float(parts[1])))
        except ValueError:
            return None
        return pair if pair.valid else None

    def dump(self):
        return f"{self.download_mbit} {self.upload_mbit}"

    def __str__(self):
        return f"{self.download_mbit}/{self.upload_mbit} Mbps"


def clamp(v, lo, hi):
    if v < lo:
        v = lo
    if v > hi:
        v = hi
    return v


def compute_target(measured, pct, floor, ceiling):
    return clamp(measured * pct // 100, floor, ceiling)


def compute_targets(measured):
    return RatePair(
        compute_target(measured.download_mbit, config.DOWN_PCT, config.MIN_DOWN_MBIT, config.CAP_DOWN_MBIT),
        compute_target(measured.upload_mbit, config.UP_PCT, config.MIN_UP_MBIT, config.CAP_UP_MBIT),
    )


def change_pct_ge(new, old, threshold_pct):
    if old <= 0:
        return True
    return abs(new - old) * 100 >= old * threshold_pct


def should_retune(target, previous):
    """Return (apply, apply_down, apply_up); either direction crossing its threshold applies both."""
    if previous is None or not previous.valid:
        return True, True, True
    apply_down = change_pct_ge(target.download_mbit, previous.download_mbit, config.THRESH_DOWN_PCT)
    apply_up = change_pct_ge(target.upload_mbit, previous.upload_mbit, config.THRESH_UP_PCT)
    return apply_down or apply_up, apply_down, apply_up
