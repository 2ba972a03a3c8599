# wanq/schedule.py
# Boot hook (rc.local) and cron entries for periodic invocation
import os

from . import config
from .db import log_event
from .system import run_cmd

MARKER = "# wanq"


def _read_lines(path):
    try:
        with open(path, "r") as f:
            return f.read().splitlines()
    except FileNotFoundError:
        return []


def _write_lines(path, lines):
    with open(path, "w") as f:
        f.write("\n".join(lines) + "\n")


def _strip_ours(lines):
    return [l for l in lines if MARKER not in l]


def boot_lines():
    log = os.path.join(config.LOG_DIR, "boot_apply.log")
    cmd = f"{config.SELF_CMD} apply-base"
    if config.ENABLE_MODE_LOOP:
        cmd += f" && {config.SELF_CMD} run"
    return [f"(sleep {config.BOOT_DELAY_SECONDS}; {cmd}) >>{log} 2>&1 & {MARKER}"]


def cron_lines():
    apply_log = os.path.join(config.LOG_DIR, "cron_apply.log")
    tune_log = os.path.join(config.LOG_DIR, f"autotune_{config.AUTOTUNE_EVERY_N_HOURS}hour.log")
    return [
        f"{config.DAILY_MINUTE} {config.DAILY_HOUR} * * * {config.SELF_CMD} apply-base >>{apply_log} 2>&1 {MARKER}",
        f"{config.AUTOTUNE_MINUTE} */{config.AUTOTUNE_EVERY_N_HOURS} * * * "
        f"{config.SELF_CMD} autotune >>{tune_log} 2>&1 {MARKER}",
    ]


def install_hooks():
    log_event("INFO", f"Installing boot + daily + autotune every {config.AUTOTUNE_EVERY_N_HOURS} hours...")
    if config.DRY_RUN:
        for line in boot_lines() + cron_lines():
            log_event("DEBUG", f"DRY RUN: would add {line}")
        return

    os.makedirs(config.LOG_DIR, exist_ok=True)

    # BOOT: rc.local, hook goes before the final `exit 0`
    rc = _strip_ours(_read_lines(config.RC_LOCAL)) or ["#!/bin/sh", "exit 0"]
    exits = [i for i, l in enumerate(rc) if l.strip() == "exit 0"]
    if exits:
        rc = rc[:exits[-1]] + boot_lines() + rc[exits[-1]:]
    else:
        rc = rc + boot_lines() + ["exit 0"]
    _write_lines(config.RC_LOCAL, rc)
    os.chmod(config.RC_LOCAL, 0o755)
    log_event("OK", "Boot hook installed.")

    # CRON: drop older entries so nothing is duplicated
    cron = _strip_ours(_read_lines(config.CRONTAB)) + cron_lines()
    _write_lines(config.CRONTAB, cron)
    run_cmd([config.CRON_INIT, "restart"])
    log_event("DONE", f"Installed boot + daily + autotune every {config.AUTOTUNE_EVERY_N_HOURS} hours.")


def uninstall_hooks():
    log_event("INFO", "Removing boot/cron hooks...")
    if config.DRY_RUN:
        log_event("DEBUG", "DRY RUN: would remove wanq lines from rc.local and crontab")
        return
    for path in (config.RC_LOCAL, config.CRONTAB):
        if os.path.exists(path):
            _write_lines(path, _strip_ours(_read_lines(path)))
    run_cmd([config.CRON_INIT, "restart"])
    log_event("DONE", "Hooks removed.")
