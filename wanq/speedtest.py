# wanq/speedtest.py
# Gated link measurement and measurement-driven retuning
import re
import time
from dataclasses import dataclass
from typing import Optional

from . import config, shaper
from .db import get_int_state, get_state, log_event, set_state
from .modes import Mode
from .sampler import is_busy, is_idle_enough, sample_rate
from .scoring import detect_activity
from .signals import read_classified_packets
from .system import have_cmd, resolve_wan_dev, run_cmd
from .tuning import RatePair, compute_targets, should_retune

_NUMBER_RE = re.compile(r"^[0-9]+(\.[0-9]+)?$")


@dataclass(frozen=True)
class MeasureResult:
    rates: Optional[RatePair] = None
    reason: str = ""

    @property
    def ok(self):
        return self.rates is not None


@dataclass(frozen=True)
class AutotuneOutcome:
    status: str  # skipped | failed | unchanged | applied
    reason: str = ""
    measured: Optional[RatePair] = None
    target: Optional[RatePair] = None


def _first_number(output, label):
    for line in output.splitlines():
        if label not in line:
            continue
        for tok in line.split(label, 1)[1].split():
            if _NUMBER_RE.match(tok):
                return tok
    return None


def _positive_int(tok):
    if tok is None:
        return None
    try:
        value = int(round(float(tok)))
    except ValueError:
        return None
    return value if value > 0 else None


def parse_result(output, bad_markers=None):
    """Parse measurement tool output; any known error marker invalidates the whole result."""
    bad_markers = bad_markers if bad_markers is not None else config.MEASURE_BAD_MARKERS
    text = (output or "").replace("\r", "")
    if not text.strip():
        return MeasureResult(reason="empty output")
    for marker in bad_markers:
        if marker in text:
            return MeasureResult(reason=f"tool reported error: {marker}")

    down_tok = _first_number(text, "Download:")
    up_tok = _first_number(text, "Upload:")
    if down_tok is None or up_tok is None:
        return MeasureResult(reason="missing Download/Upload value")

    down, up = _positive_int(down_tok), _positive_int(up_tok)
    if down is None or up is None:
        return MeasureResult(reason=f"non-positive result {down_tok}/{up_tok}")
    return MeasureResult(rates=RatePair(down, up))


def run_measurement():
    if not have_cmd(config.MEASURE_CMD):
        return MeasureResult(reason=f"{config.MEASURE_CMD} not installed")
    cmd = [config.MEASURE_CMD, f"-{config.MEASURE_IP_VERSION}"]
    # the measurement is read-only for the shaper, so it runs even in dry run
    rc, out = run_cmd(cmd, dry_run=False, timeout=config.MEASURE_TIMEOUT_SECONDS)
    if rc != 0:
        return MeasureResult(reason=f"{config.MEASURE_CMD} exited {rc}")
    for line in out.splitlines()[-80:]:
        if line.strip():
            log_event("DEBUG", f"[ST] {line.rstrip()}")
    return parse_result(out)


def in_time_window(hour, start, end):
    if start == end:
        return False
    if start < end:
        return start <= hour < end
    # wraps midnight
    return hour >= start or hour < end


def game_traffic_active():
    """Compare the classifier counter with the value stored by the previous run."""
    curr = read_classified_packets()
    prev = get_int_state("game_pkts_last", 0)
    set_state("game_pkts_last", curr)
    active, delta = detect_activity(prev, curr, config.GAME_PKT_DELTA_SKIP)
    return active, delta


def _skip(reason):
    log_event("SKIP", f"{reason}; skipping speedtest.")
    return AutotuneOutcome("skipped", reason)


def autotune(dev=None, now=None):
    log_event("INFO", "AutoTune requested...")
    dev = dev or resolve_wan_dev()
    now = time.time() if now is None else now

    if config.ENABLE_GAMING_HOURS_SKIP:
        hour = time.localtime(now).tm_hour
        if in_time_window(hour, config.GAMING_START_HOUR, config.GAMING_END_HOUR):
            return _skip("Gaming hours window active")

    if config.ENABLE_GAME_TRAFFIC_SKIP:
        active, delta = game_traffic_active()
        if active:
            return _skip(f"Game UDP traffic active ({delta} pkts)")

    rates = sample_rate(dev, config.SAMPLE_WINDOW_SECONDS)
    log_event("INFO", f"WAN load: rx={int(rates[0])}B/s tx={int(rates[1])}B/s")
    if not is_idle_enough(rates, config.IDLE_RX_BYTES_PER_SEC, config.IDLE_TX_BYTES_PER_SEC):
        busy = is_busy(rates, config.BUSY_RX_BYTES_PER_SEC, config.BUSY_TX_BYTES_PER_SEC)
        return _skip("Link busy" if busy else "Link not idle enough")

    result = run_measurement()
    if not result.ok:
        log_event("WARN", f"Speedtest failed ({result.reason}); not changing SQM.")
        return AutotuneOutcome("failed", result.reason)

    measured = result.rates
    log_event("INFO", f"Measured: {measured}")
    target = compute_targets(measured)
    log_event("INFO", f"Target (pct+clamp): {target}")

    previous = shaper.last_applied()
    apply, _, _ = should_retune(target, previous)
    if not apply:
        log_event("OK", f"Changes below thresholds (down {config.THRESH_DOWN_PCT}%, "
                        f"up {config.THRESH_UP_PCT}%); keeping SQM at {previous}")
        return AutotuneOutcome("unchanged", "below thresholds", measured, target)

    log_event("INFO", f"Applying SQM (prev {previous or 'none'})...")
    mode = Mode.parse(get_state("prev_mode"))
    if not shaper.apply_target(target, mode):
        return AutotuneOutcome("failed", "shaper apply failed", measured, target)
    return AutotuneOutcome("applied", "", measured, target)
