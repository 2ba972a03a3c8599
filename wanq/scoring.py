# wanq/scoring.py
# Pure scoring functions; no I/O
from . import config


def detect_activity(prev_count, curr_count, spike_threshold=None):
    """Return (active, delta) for the classified packet counter between two ticks.

    A counter that went backwards (classifier table reload) re-anchors at the
    new value with delta 0; an unreadable count (None) also means no change.
    """
    if spike_threshold is None:
        spike_threshold = config.GAME_PKT_SPIKE
    if prev_count is None or curr_count is None:
        return False, 0
    delta = curr_count - prev_count
    if delta < 0:
        delta = 0
    return delta > spike_threshold, delta


def drop_delta(prev_drops, curr_drops):
    return max(0, curr_drops - prev_drops)


def congestion_score(drop_delta, backlog_bytes, low_watermark=None, high_watermark=None, levels=None):
    low_watermark = config.BACKLOG_LOW_BYTES if low_watermark is None else low_watermark
    high_watermark = config.BACKLOG_HIGH_BYTES if high_watermark is None else high_watermark
    levels = levels or config.CONGESTION_LEVELS

    # any drop wins outright, regardless of backlog depth
    if drop_delta > 0:
        return levels["drops"]
    if backlog_bytes > high_watermark:
        return levels["high"]
    if backlog_bytes > low_watermark:
        return levels["medium"]
    return levels["low"]
