# wanq/shaper.py
# The only module that mutates the SQM shaper configuration
import os

from . import config
from .db import get_state, insert_transition, log_event, set_state
from .modes import Mode
from .system import resolve_wan_dev, run_cmd
from .tuning import RatePair, clamp

_warned_missing = False


def shaper_available():
    global _warned_missing
    if config.DRY_RUN or os.access(config.SQM_INIT, os.X_OK):
        return True
    if not _warned_missing:
        log_event("WARN", "SQM not installed; shaper changes disabled.")
        _warned_missing = True
    return False


def _uci_set(option, value):
    return run_cmd(["uci", "-q", "set", f"sqm.@queue[0].{option}={value}"])


def _set_queue_options(dev):
    _uci_set("interface", dev)
    _uci_set("qdisc", config.SQM_QDISC)
    _uci_set("script", config.SQM_SCRIPT)
    _uci_set("qdisc_advanced", "1")
    _uci_set("qdisc_really_really_advanced", "1")
    _uci_set("ingress_ecn", "ECN")
    _uci_set("egress_ecn", "ECN")
    _uci_set("qdisc_opts", config.SQM_QDISC_OPTS)
    _uci_set("qdisc_opts_ingress", config.SQM_QDISC_OPTS)


def last_applied():
    return RatePair.parse(get_state("last_rates"))


def apply_sqm(rates, persist=True, options=True, dev=None):
    """Write the down/up pair (kbit/s) and restart SQM once.

    `options` also rewrites the queueing options; mode switches only touch
    the rates. `persist` records the pair as the last applied base.
    """
    if rates is None or not rates.valid:
        log_event("WARN", f"Refusing to apply unusable rates {rates}")
        return False
    if not shaper_available():
        return False

    if options:
        _set_queue_options(dev or resolve_wan_dev())
    # SQM expects kbit/s; the pair is written as one unit
    _uci_set("download", rates.download_mbit * 1000)
    _uci_set("upload", rates.upload_mbit * 1000)
    run_cmd(["uci", "-q", "commit", "sqm"])

    rc, _ = run_cmd([config.SQM_INIT, "restart"], timeout=60)
    if rc != 0:
        log_event("ERROR", f"SQM restart failed while applying {rates}")
        return False

    if persist:
        set_state("last_rates", rates.dump())
    log_event("OK", f"SQM applied: {rates}")
    return True

# --- Mode profiles ---

def base_rates():
    return last_applied() or RatePair(config.CAP_DOWN_MBIT, config.CAP_UP_MBIT)


def profile_rates(base, mode):
    profile = config.MODE_PROFILES.get(Mode(mode).value, config.MODE_PROFILES["normal"])
    down = clamp(base.download_mbit * profile["pct_down"] // 100,
                 config.MIN_DOWN_MBIT, max(config.MIN_DOWN_MBIT, profile["cap_down"]))
    up = clamp(base.upload_mbit * profile["pct_up"] // 100,
               config.MIN_UP_MBIT, max(config.MIN_UP_MBIT, profile["cap_up"]))
    return RatePair(down, up)


def apply_mode(mode, prev_mode=None, base=None):
    rates = profile_rates(base or base_rates(), mode)
    if not apply_sqm(rates, persist=False, options=False):
        return False
    prev = Mode(prev_mode).value if prev_mode else None
    insert_transition(prev, Mode(mode).value, rates.download_mbit, rates.upload_mbit)
    log_event("AUTO", f"Mode {prev or '-'} -> {Mode(mode).value} at {rates}")
    return True


def apply_target(target, mode=Mode.NORMAL):
    """Apply a new base pair under the currently active mode's profile."""
    rates = profile_rates(target, mode)
    if not apply_sqm(rates, persist=False):
        return False
    set_state("last_rates", target.dump())
    return True


def apply_last_if_present():
    rates = last_applied()
    if rates is None:
        log_event("INFO", "No last applied rates; leaving SQM as configured.")
        return False
    log_event("INFO", f"Re-applying last SQM: {rates}")
    return apply_sqm(rates)
