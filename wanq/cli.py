# wanq/cli.py
import argparse
import sys

from . import config
from .classifier import apply_base
from .db import get_config, init_db, list_events, log_event, set_config, set_state
from .lock import LockHeld, instance_lock
from .modes import Mode
from .monitor import Monitor, status_summary
from .schedule import install_hooks, uninstall_hooks
from .shaper import apply_last_if_present
from .speedtest import autotune
from .system import resolve_wan_dev

EXIT_OK = 0
EXIT_USAGE = 2


def cmd_default(args):
    dev = apply_base()
    autotune(dev)
    return EXIT_OK


def cmd_apply_base(args):
    apply_base()
    # the shaper goes back to the base pair, so the loop must re-apply its profile
    set_state("prev_mode", Mode.NORMAL.value)
    apply_last_if_present()
    return EXIT_OK


def cmd_autotune(args):
    dev = apply_base()
    outcome = autotune(dev)
    log_event("INFO", f"AutoTune result: {outcome.status}{' (' + outcome.reason + ')' if outcome.reason else ''}")
    return EXIT_OK


def cmd_run(args):
    # the loop holds its own lock; base rules are written under the shared one
    try:
        with instance_lock(config.LOCK_DIR):
            dev = apply_base()
    except LockHeld:
        log_event("INFO", "Base rules are being applied by another wanq command.")
        dev = resolve_wan_dev()
    monitor = Monitor(dev, interval=args.interval)
    try:
        monitor.run_forever()
    except KeyboardInterrupt:
        monitor.stop()
        log_event("INFO", "Monitor interrupted")
    return EXIT_OK


def cmd_install(args):
    dev = apply_base()
    autotune(dev)
    install_hooks()
    return EXIT_OK


def cmd_uninstall(args):
    uninstall_hooks()
    return EXIT_OK


def cmd_status(args):
    summary = status_summary(resolve_wan_dev(), 0 if args.no_sample else config.SAMPLE_WINDOW_SECONDS)
    for key, value in summary.items():
        print(f"{key}: {value}")
    events = list_events(args.events)
    if events:
        print("recent events:")
        for e in events:
            print(f"  [{e['level']}] {e['message']}")
    return EXIT_OK


def cmd_serve(args):
    from .api import create_app
    app = create_app()
    app.run(host=args.host, port=args.port)
    return EXIT_OK


def cmd_config(args):
    key = args.key.lower()
    if key not in config.overridable_keys():
        print(f"unknown config key: {args.key}", file=sys.stderr)
        return EXIT_USAGE
    if args.action == "get":
        print(get_config(key, getattr(config, key.upper())))
        return EXIT_OK
    if args.value is None:
        print("config set needs a value", file=sys.stderr)
        return EXIT_USAGE
    try:
        config.coerce(key, args.value)
    except ValueError as e:
        print(f"invalid value for {key}: {e}", file=sys.stderr)
        return EXIT_USAGE
    set_config(key, args.value)
    log_event("INFO", f"Config {key} set to {args.value}")
    return EXIT_OK


def build_parser():
    parser = argparse.ArgumentParser(prog="wanq", description="Adaptive WAN shaping for low latency under load.")
    parser.add_argument("--dry-run", action="store_true", help="print shaper/classifier changes instead of applying them")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("apply-base", help="re-apply classifier, MTU and last known SQM rates (no speedtest)")
    sub.add_parser("autotune", help="speedtest + adjust SQM (skips if busy/gaming)")
    p = sub.add_parser("run", help="continuous mode-switching loop")
    p.add_argument("--interval", type=float, default=None)
    p = sub.add_parser("status", help="read-only report")
    p.add_argument("--no-sample", action="store_true", help="skip the link rate sample")
    p.add_argument("--events", type=int, default=10)
    sub.add_parser("install", help="apply + install boot hook, daily apply and periodic autotune")
    sub.add_parser("uninstall", help="remove boot + cron hooks")
    p = sub.add_parser("serve", help="read-only status API")
    p.add_argument("--host", default=config.API_HOST)
    p.add_argument("--port", type=int, default=config.API_PORT)
    p = sub.add_parser("config", help="get or set a persistent config override")
    p.add_argument("action", choices=("get", "set"))
    p.add_argument("key")
    p.add_argument("value", nargs="?")
    return parser


HANDLERS = {
    None: cmd_default,
    "apply-base": cmd_apply_base,
    "autotune": cmd_autotune,
    "run": cmd_run,
    "install": cmd_install,
    "uninstall": cmd_uninstall,
    "status": cmd_status,
    "serve": cmd_serve,
    "config": cmd_config,
}

READ_ONLY = ("status", "serve")


def _needs_lock(args):
    if args.command == "config":
        return args.action == "set"
    return args.command not in READ_ONLY


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)  # exits 2 on invalid invocation
    handler = HANDLERS[args.command]

    if not _needs_lock(args):
        config.load_overrides(quiet=True)
        if args.dry_run:
            config.DRY_RUN = 1
        return handler(args)

    lock_path = config.LOCK_DIR + ".loop" if args.command == "run" else config.LOCK_DIR
    try:
        with instance_lock(lock_path):
            init_db()
            config.load_overrides()
            if args.dry_run:
                config.DRY_RUN = 1
            return handler(args)
    except LockHeld:
        print(f"[INFO] Another wanq instance holds {lock_path}; exiting.", flush=True)
        return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
