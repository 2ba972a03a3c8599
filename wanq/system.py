# wanq/system.py
import shutil
import subprocess

from . import config
from .db import log_event


def have_cmd(name):
    return shutil.which(name) is not None


def run_cmd(cmd_list, dry_run=None, timeout=30, quiet=False):
    """Run an external command, returning (rc, output). Never raises.

    `dry_run=None` follows config.DRY_RUN; reads pass dry_run=False so they
    still execute while mutations are only printed.
    """
    if dry_run is None:
        dry_run = config.DRY_RUN
    cmd_str = " ".join(cmd_list) if isinstance(cmd_list, list) else cmd_list
    if dry_run:
        log_event("DEBUG", f"DRY RUN: {cmd_str}")
        return 0, "DRY"
    try:
        result = subprocess.run(cmd_list, capture_output=True, text=True, check=True, timeout=timeout)
        if not quiet:
            log_event("DEBUG", f"Executed: {cmd_str}")
        return 0, result.stdout
    except subprocess.CalledProcessError as e:
        err = (e.stderr or "").strip() or (e.output or "").strip()
        if not quiet:
            log_event("ERROR", f"Command failed ({cmd_str}): {err}")
        return e.returncode or 1, err
    except subprocess.TimeoutExpired:
        log_event("ERROR", f"Command timed out after {timeout}s: {cmd_str}")
        return 124, "timeout"
    except FileNotFoundError:
        if not quiet:
            log_event("ERROR", f"Command not found: {cmd_list[0]}")
        return 127, "Command not found"


def read_cmd(cmd_list, timeout=10):
    """Run a read-only query (executed even in dry run); '' on failure."""
    rc, out = run_cmd(cmd_list, dry_run=False, timeout=timeout, quiet=True)
    return out if rc == 0 else ""


def resolve_wan_dev():
    if config.WAN_DEV:
        return config.WAN_DEV

    for key in ("network.wan.device", "network.wan.ifname"):
        dev = read_cmd(["uci", "-q", "get", key]).strip()
        if dev:
            return dev

    for line in read_cmd(["ip", "route", "show", "default"]).splitlines():
        parts = line.split()
        if "dev" in parts and parts.index("dev") + 1 < len(parts):
            return parts[parts.index("dev") + 1]

    return "wan"


def set_mtu_safe(dev, mtu):
    rc, _ = run_cmd(["ip", "link", "set", "dev", dev, "mtu", str(mtu)])
    if rc == 0:
        log_event("OK", f"MTU set: dev={dev} mtu={mtu}")
    else:
        log_event("WARN", f"MTU not set on {dev}")
    return rc
