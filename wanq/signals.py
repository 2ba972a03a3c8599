# wanq/signals.py
# Point-in-time counter reads: link bytes, classifier packets, shaper drops/backlog
import re
import time
from dataclasses import dataclass

from . import config
from .system import have_cmd, read_cmd

SYSFS_NET = "/sys/class/net"

_DROPPED_RE = re.compile(r"\bdropped (\d+)")
_BACKLOG_RE = re.compile(r"\bbacklog\s+(\d+)([KMG]?)b\s+\d+p")
_UNITS = {"": 1, "K": 1000, "M": 1000 ** 2, "G": 1000 ** 3}


@dataclass(frozen=True)
class CounterSample:
    timestamp: float
    rx_bytes: int
    tx_bytes: int
    classified_packets: int
    shaper_drops: int
    shaper_backlog_bytes: int


def read_bytes(dev, direction):
    try:
        with open(f"{SYSFS_NET}/{dev}/statistics/{direction}_bytes", "r") as f:
            return int(f.read().strip())
    except (OSError, ValueError):
        return 0

# --- Packet classifier (nft rule counters) ---

def parse_rule_packets(output, tags=None):
    tags = tags or config.RULE_TAGS
    total = 0
    for line in output.splitlines():
        if not any(tag in line for tag in tags):
            continue
        parts = line.split()
        for i, tok in enumerate(parts[:-1]):
            if tok == "packets" and parts[i + 1].isdigit():
                total += int(parts[i + 1])
                break
    return total


def read_classified_packets():
    if not have_cmd("nft"):
        return 0
    out = read_cmd(["nft", "-a", "list", "chain", *config.NFT_TABLE.split(), config.NFT_CHAIN])
    return parse_rule_packets(out)

# --- Traffic shaper (qdisc stats) ---

def parse_qdisc_stats(output):
    """Sum `dropped` and `backlog` over every qdisc in `tc -s qdisc show` output."""
    drops = sum(int(m.group(1)) for m in _DROPPED_RE.finditer(output))
    backlog = sum(int(m.group(1)) * _UNITS[m.group(2)] for m in _BACKLOG_RE.finditer(output))
    return drops, backlog


def read_shaper_stats(dev):
    if not have_cmd("tc"):
        return 0, 0
    drops, backlog = 0, 0
    # SQM shapes ingress on an ifb mirror of the WAN device
    for d in (dev, f"ifb4{dev}"):
        out = read_cmd(["tc", "-s", "qdisc", "show", "dev", d])
        dd, bb = parse_qdisc_stats(out)
        drops += dd
        backlog += bb
    return drops, backlog


def read_sample(dev, now=None):
    drops, backlog = read_shaper_stats(dev)
    return CounterSample(
        timestamp=time.time() if now is None else now,
        rx_bytes=read_bytes(dev, "rx"),
        tx_bytes=read_bytes(dev, "tx"),
        classified_packets=read_classified_packets(),
        shaper_drops=drops,
        shaper_backlog_bytes=backlog,
    )

# --- Optional frame-time telemetry ---

def read_frame_time_ms(path=None):
    path = path if path is not None else config.TELEMETRY_FILE
    if not path:
        return None
    try:
        with open(path, "r") as f:
            return float(f.read().strip())
    except (OSError, ValueError):
        return None
