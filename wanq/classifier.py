# wanq/classifier.py
# nftables DSCP marking for game UDP ports (IPv4 + IPv6) with per-rule counters
from . import config
from .db import log_event
from .system import have_cmd, read_cmd, resolve_wan_dev, run_cmd, set_mtu_safe


def _nft(*args):
    return ["nft", *args]


def _exists(kind, *names):
    return bool(read_cmd(_nft("list", kind, *config.NFT_TABLE.split(), *names)))


def ensure_classifier():
    if not config.ENABLE_DSCP:
        log_event("INFO", "DSCP disabled by config (ENABLE_DSCP=0).")
        return False
    if not have_cmd("nft"):
        log_event("WARN", "nft not installed; skipping nft/DSCP.")
        return False

    table = config.NFT_TABLE.split()
    if not _exists("table"):
        run_cmd(_nft("add", "table", *table))

    rules = read_cmd(_nft("-a", "list", "chain", *table, config.NFT_CHAIN))
    # the tagged rules carry the classified packet counters; rebuilding them zeroes the counts
    keep_rules = all(f'"{tag}"' in rules for tag in config.RULE_TAGS)
    if not rules:
        run_cmd(_nft("add", "chain", *table, config.NFT_CHAIN,
                     "{ type filter hook prerouting priority -150; policy accept; }"))
    elif not keep_rules:
        run_cmd(_nft("flush", "chain", *table, config.NFT_CHAIN))

    if _exists("set", config.GAME_SET):
        run_cmd(_nft("flush", "set", *table, config.GAME_SET))
    else:
        run_cmd(_nft("add", "set", *table, config.GAME_SET, "{ type inet_service; flags interval; }"))

    run_cmd(_nft("add", "element", *table, config.GAME_SET, config.GAME_PORTS))

    if keep_rules:
        log_event("OK", "nftables DSCP rules already present; counters kept.")
        return True

    tag4, tag6 = config.RULE_TAGS
    for family, tag in (("ip", tag4), ("ip6", tag6)):
        run_cmd(_nft("add", "rule", *table, config.NFT_CHAIN,
                     "udp", "dport", f"@{config.GAME_SET}",
                     family, "dscp", "set", str(config.DSCP_GAME),
                     "counter", "comment", f'"{tag}"'))

    log_event("OK", "nftables DSCP ensured (IPv4+IPv6) with counters.")
    return True


def apply_base():
    dev = resolve_wan_dev()
    log_event("INFO", f"WAN_DEV: {dev}")
    set_mtu_safe(dev, config.WAN_MTU)
    ensure_classifier()
    log_event("OK", "Base rules applied.")
    return dev
