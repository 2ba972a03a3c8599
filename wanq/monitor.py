# wanq/monitor.py
import os
import threading
import time

from . import config, shaper
from .db import get_state, insert_usage, log_event, prune_usage, set_state
from .lock import LockHeld, instance_lock
from .modes import ControllerState, Mode, derive_mode, should_apply, telemetry_bias
from .sampler import is_busy, rates_between, sample_rate
from .scoring import congestion_score, detect_activity, drop_delta
from .signals import read_frame_time_ms, read_sample


class Monitor:
    """Continuous mode-switching loop. Runs in the calling thread; one tick at a time."""

    def __init__(self, iface, interval=None):
        self.iface = iface
        self.interval = interval if interval is not None else config.LOOP_INTERVAL
        self.state = ControllerState.load()
        self._stop = threading.Event()
        self._last = None  # only the most recent sample is kept between ticks
        self._last_prune = 0.0
        self._deferred = False

    def tick(self, now=None):
        now = time.time() if now is None else now
        sample = read_sample(self.iface, now)
        prev, self._last = self._last, sample

        if prev is None:
            rates, active, delta, drops = (0.0, 0.0), False, 0, 0
        else:
            rates = rates_between(prev, sample)
            active, delta = detect_activity(prev.classified_packets, sample.classified_packets)
            drops = drop_delta(prev.shaper_drops, sample.shaper_drops)
        congestion = congestion_score(drops, sample.shaper_backlog_bytes)
        bias = telemetry_bias(read_frame_time_ms())

        elevated = self.state.step(active, now)
        mode = derive_mode(elevated, congestion, bias)
        self.state.save_activity()
        changed = self._switch(mode)

        insert_usage(int(rates[0]), int(rates[1]), delta, drops, sample.shaper_backlog_bytes,
                     congestion, self.state.score, mode.value)
        if now - self._last_prune >= 3600:
            prune_usage(now - config.USAGE_RETENTION_SECONDS)
            self._last_prune = now

        return {
            "mode": mode.value,
            "changed": changed,
            "score": self.state.score,
            "hold_remaining": self.state.hold_remaining(now),
            "game_delta": delta,
            "congestion": congestion,
            "telemetry_bias": bias,
            "rx_bps": rates[0],
            "tx_bps": rates[1],
            "busy": is_busy(rates, config.BUSY_RX_BYTES_PER_SEC, config.BUSY_TX_BYTES_PER_SEC),
        }

    def _switch(self, mode):
        """Apply `mode` to the shaper if it differs from the persisted one.

        The shaper and the prev_mode marker are written only under the shared
        lock, so a short command (apply-base, autotune) never interleaves with
        a switch. When the lock is busy or the apply fails, prev_mode is left
        as it was and the next tick tries again.
        """
        # apply-base may have reset the marker while the shaper went back to base rates
        self.state.prev_mode = Mode.parse(get_state("prev_mode"), self.state.prev_mode)
        if not should_apply(mode, self.state.prev_mode):
            return False
        try:
            with instance_lock(config.LOCK_DIR):
                self._deferred = False
                prev_mode = Mode.parse(get_state("prev_mode"), self.state.prev_mode)
                self.state.prev_mode = prev_mode
                if not should_apply(mode, prev_mode):
                    return False
                if not shaper.apply_mode(mode, prev_mode) and shaper.shaper_available():
                    log_event("WARN", f"Mode switch to {mode.value} failed; retrying next tick")
                    return False
                set_state("prev_mode", mode.value)
                self.state.prev_mode = mode
                return True
        except LockHeld:
            if not self._deferred:
                log_event("INFO", f"Shaper busy with another wanq command; mode {mode.value} deferred")
                self._deferred = True
            return False

    def next_interval(self):
        try:
            load1 = os.getloadavg()[0]
        except OSError:
            return self.interval
        # back off so the loop does not add to an already loaded router
        return config.LOADED_INTERVAL if load1 > config.LOAD_CEILING else self.interval

    def run_forever(self):
        log_event("INFO", f"Monitor started on {self.iface} (mode {self.state.prev_mode.value}, score {self.state.score})")
        while not self._stop.is_set():
            try:
                self.tick()
            except Exception as e:
                log_event("ERROR", f"Monitor tick failed: {e}")
            self._stop.wait(self.next_interval())
        log_event("INFO", "Monitor stopped")

    def stop(self):
        self._stop.set()


def status_summary(dev, window_seconds=0):
    """Read-only snapshot for `wanq status` and the API. Never mutates state."""
    now = time.time()
    state = ControllerState.load()
    summary = {
        "wan_dev": dev,
        "last_rates": str(shaper.last_applied() or "none"),
        "mode": state.prev_mode.value,
        "score": state.score,
        "elevated": state.is_elevated(now),
        "hold_remaining": round(state.hold_remaining(now), 1),
        "dry_run": bool(config.DRY_RUN),
    }
    if window_seconds:
        rates = sample_rate(dev, window_seconds)
        summary.update({
            "rx_bps": int(rates[0]),
            "tx_bps": int(rates[1]),
            "busy": is_busy(rates, config.BUSY_RX_BYTES_PER_SEC, config.BUSY_TX_BYTES_PER_SEC),
        })
    return summary
