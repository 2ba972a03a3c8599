# wanq/sampler.py
import time

from .signals import read_bytes


def sample_rate(interface, window_seconds=2, sleep=time.sleep, reader=read_bytes):
    """Average (rx, tx) bytes/sec over `window_seconds`; unreadable counters read as 0."""
    r1, t1 = reader(interface, "rx"), reader(interface, "tx")
    sleep(window_seconds)
    r2, t2 = reader(interface, "rx"), reader(interface, "tx")
    window = max(window_seconds, 1e-9)
    return max(0, r2 - r1) / window, max(0, t2 - t1) / window


def rates_between(prev, curr):
    """Rates from two CounterSamples, used by the loop instead of a blocking sample."""
    dt = curr.timestamp - prev.timestamp
    if dt <= 0:
        return 0.0, 0.0
    return max(0, curr.rx_bytes - prev.rx_bytes) / dt, max(0, curr.tx_bytes - prev.tx_bytes) / dt


def is_busy(rates, rx_threshold, tx_threshold):
    rx, tx = rates
    return rx >= rx_threshold or tx >= tx_threshold


def is_idle_enough(rates, rx_idle_threshold, tx_idle_threshold):
    rx, tx = rates
    return rx <= rx_idle_threshold and tx <= tx_idle_threshold
