# wanq/config.py
# Global configuration for the WAN latency shaper
import os

DRY_RUN = 0  # 1 = dry run (print shaper/classifier commands), 0 = execute them

WAN_DEV = ""  # empty -> resolve from uci / default route

# Observed link maximum (Mbit/s)
CAP_DOWN_MBIT = 777
CAP_UP_MBIT = 140

# Safety floors (avoid bad/low measurement results)
MIN_DOWN_MBIT = 120
MIN_UP_MBIT = 20

# Shaping target as percentage of measured speed
DOWN_PCT = 92
UP_PCT = 88

# Only re-apply if change >= threshold; upload matters more for latency
THRESH_DOWN_PCT = 10
THRESH_UP_PCT = 6

WAN_MTU = 1370

# DSCP marking of game traffic (also provides the classified packet counter)
ENABLE_DSCP = True
DSCP_GAME = 46
GAME_PORTS = "{ 3074, 3478-3479, 3659, 9295-9304, 1935 }"
NFT_TABLE = "inet wanq"
NFT_CHAIN = "prerouting_mangle"
GAME_SET = "game_udp_ports"
RULE_TAGS = ("WQ_GAME_DSCP4", "WQ_GAME_DSCP6")

# Busy gate (bytes/sec) and the stricter idle gate used before measuring
BUSY_RX_BYTES_PER_SEC = 2500000   # ~2.5 MB/s
BUSY_TX_BYTES_PER_SEC = 1000000   # ~1.0 MB/s
IDLE_RX_BYTES_PER_SEC = 1250000
IDLE_TX_BYTES_PER_SEC = 400000
SAMPLE_WINDOW_SECONDS = 2

# No measurement during the play window (wraps past midnight)
ENABLE_GAMING_HOURS_SKIP = True
GAMING_START_HOUR = 18
GAMING_END_HOUR = 1

# Skip measurement while classified game packets are flowing
ENABLE_GAME_TRAFFIC_SKIP = True
GAME_PKT_DELTA_SKIP = 10

# Measurement tool
MEASURE_CMD = "speedtest-netperf.sh"
MEASURE_IP_VERSION = 4
MEASURE_TIMEOUT_SECONDS = 180
MEASURE_BAD_MARKERS = (
    "WARNING: netperf returned errors",
    "netperf: send_omni",
    "establish control",
    "are you sure there is a netserver",
    "Error: speedtest",
)

# Mode state machine
SCORE_MAX = 30
ACTIVITY_INCREMENT = 5
DECAY = 1
HOLD_SECONDS = 300
ENTER_THRESHOLD = 12
GAME_PKT_SPIKE = 10
EXTENDED_MODES = True

# Congestion scoring
BACKLOG_LOW_BYTES = 30000
BACKLOG_HIGH_BYTES = 150000
CONGESTION_LEVELS = {
    "drops": 0.85,
    "high": 0.75,
    "medium": 0.55,
    "low": 0.20,
}
CONGESTION_TIGHT_AT = 0.75

# Optional frame-time telemetry (a file holding a single ms value)
TELEMETRY_FILE = ""
FRAME_TIME_BUDGET_MS = 20.0

# Mode profiles: percent of base rates, with a per-mode cap (Mbit/s)
MODE_PROFILES = {
    "normal":                   {"pct_down": 100, "pct_up": 100, "cap_down": 777, "cap_up": 140},
    "normal_tight":             {"pct_down": 90,  "pct_up": 88,  "cap_down": 777, "cap_up": 140},
    "elevated":                 {"pct_down": 85,  "pct_up": 85,  "cap_down": 600, "cap_up": 110},
    "elevated_telemetry_tight": {"pct_down": 80,  "pct_up": 78,  "cap_down": 560, "cap_up": 100},
    "elevated_tight":           {"pct_down": 75,  "pct_up": 72,  "cap_down": 520, "cap_up": 90},
}

# Queueing options, set once with every SQM apply
SQM_QDISC = "cake"
SQM_SCRIPT = "piece_of_cake.qos"
SQM_QDISC_OPTS = "diffserv4 nat wash rtt 20ms memlimit 32mb"
SQM_INIT = "/etc/init.d/sqm"

# Control loop
LOOP_INTERVAL = 2.0
LOADED_INTERVAL = 5.0
LOAD_CEILING = 2.5
ENABLE_MODE_LOOP = True
USAGE_RETENTION_SECONDS = 86400

# Schedules (router local time)
DAILY_HOUR = 4
DAILY_MINUTE = 17
AUTOTUNE_MINUTE = 7
AUTOTUNE_EVERY_N_HOURS = 3
BOOT_DELAY_SECONDS = 20
RC_LOCAL = "/etc/rc.local"
CRONTAB = "/etc/crontabs/root"
CRON_INIT = "/etc/init.d/cron"
SELF_CMD = "wanq"

# Paths
STATE_DIR = os.environ.get("WANQ_STATE_DIR", "/root/wanq/state")
LOG_DIR = os.environ.get("WANQ_LOG_DIR", "/root/wanq/logs")
LOCK_DIR = os.environ.get("WANQ_LOCK_DIR", "/tmp/wanq.lock")

# Status API
API_HOST = "0.0.0.0"
API_PORT = 8000

_BOOL_TRUE = ("1", "true", "yes", "on")
_BOOL_FALSE = ("0", "false", "no", "off")

# Resolved before overrides are loaded (db path, lock path, API bind), so a stored value never applies
_FIXED_KEYS = ("STATE_DIR", "LOCK_DIR", "API_HOST", "API_PORT")


def overridable_keys():
    return sorted(k.lower() for k, v in globals().items()
                  if k.isupper() and k not in _FIXED_KEYS and isinstance(v, (bool, int, float, str)))


def coerce(key, raw):
    """Convert a stored string to the type of the built-in default for `key`."""
    current = globals()[key.upper()]
    text = str(raw).strip()
    if isinstance(current, bool):
        if text.lower() in _BOOL_TRUE:
            return True
        if text.lower() in _BOOL_FALSE:
            return False
        raise ValueError(f"not a boolean: {raw!r}")
    if isinstance(current, int):
        return int(text)
    if isinstance(current, float):
        return float(text)
    return text


def load_overrides(quiet=False):
    """Apply rows of the config table. `quiet` skips the WARN events (read-only commands)."""
    from .db import all_config, log_event
    applied = {}
    allowed = set(overridable_keys())
    for key, raw in all_config().items():
        if key not in allowed:
            if not quiet:
                log_event("WARN", f"Ignoring unknown config key {key}")
            continue
        try:
            value = coerce(key, raw)
        except ValueError as e:
            if not quiet:
                log_event("WARN", f"Ignoring config {key}={raw!r}: {e}")
            continue
        globals()[key.upper()] = value
        applied[key] = value
    return applied
