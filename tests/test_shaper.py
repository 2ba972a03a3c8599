import subprocess

from wanq import config, db, shaper
from wanq.modes import Mode
from wanq.tuning import RatePair


def test_profiles_tighten_in_order():
    base = RatePair(500, 100)
    normal = shaper.profile_rates(base, Mode.NORMAL)
    elevated = shaper.profile_rates(base, Mode.ELEVATED)
    tele = shaper.profile_rates(base, Mode.ELEVATED_TELEMETRY_TIGHT)
    tight = shaper.profile_rates(base, Mode.ELEVATED_TIGHT)
    assert normal == base
    assert normal.download_mbit > elevated.download_mbit > tele.download_mbit > tight.download_mbit
    assert normal.upload_mbit > elevated.upload_mbit > tele.upload_mbit > tight.upload_mbit


def test_profile_respects_floor_and_mode_cap():
    assert shaper.profile_rates(RatePair(130, 22), Mode.ELEVATED_TIGHT) == RatePair(120, 20)
    assert shaper.profile_rates(RatePair(777, 140), Mode.ELEVATED) == RatePair(600, 110)


def test_apply_sqm_writes_pair_and_restarts_once(commands, sqm_init):
    assert shaper.apply_sqm(RatePair(460, 88)) is True
    calls = commands.joined()
    assert "uci -q set sqm.@queue[0].download=460000" in calls
    assert "uci -q set sqm.@queue[0].upload=88000" in calls
    assert "uci -q set sqm.@queue[0].qdisc=cake" in calls
    assert "uci -q commit sqm" in calls
    assert calls.count(f"{sqm_init} restart") == 1
    assert shaper.last_applied() == RatePair(460, 88)


def test_mode_switch_only_rewrites_rates(commands, sqm_init):
    db.set_state("last_rates", "500 100")
    assert shaper.apply_mode(Mode.ELEVATED, Mode.NORMAL) is True
    calls = commands.joined()
    assert not any("qdisc" in c or "interface" in c for c in calls)
    assert "uci -q set sqm.@queue[0].download=425000" in calls
    # the base pair is not replaced by the profile
    assert shaper.last_applied() == RatePair(500, 100)
    row = db.list_transitions(1)[0]
    assert (row["prev_mode"], row["new_mode"], row["down_mbit"], row["up_mbit"]) == ("normal", "elevated", 425, 85)


def test_mode_switch_without_base_uses_caps(commands, sqm_init):
    assert shaper.apply_mode(Mode.NORMAL_TIGHT) is True
    assert "uci -q set sqm.@queue[0].download=699000" in commands.joined()


def test_missing_shaper_disables_mutation(commands):
    assert shaper.apply_sqm(RatePair(460, 88)) is False
    assert shaper.apply_sqm(RatePair(460, 88)) is False
    assert commands.calls == []
    warns = [e for e in db.list_events(20) if e["level"] == "WARN"]
    assert len(warns) == 1


def test_unusable_rates_are_refused(commands, sqm_init):
    assert shaper.apply_sqm(RatePair(0, 88)) is False
    assert shaper.apply_sqm(None) is False
    assert commands.calls == []


def test_failed_restart_does_not_persist(commands, sqm_init):
    commands.outputs[f"{sqm_init} restart"] = subprocess.CalledProcessError(1, [sqm_init], output="", stderr="boom")
    assert shaper.apply_sqm(RatePair(460, 88)) is False
    assert shaper.last_applied() is None


def test_apply_last_if_present(commands, sqm_init):
    assert shaper.apply_last_if_present() is False
    db.set_state("last_rates", "300 40")
    assert shaper.apply_last_if_present() is True
    assert "uci -q set sqm.@queue[0].download=300000" in commands.joined()


def test_dry_run_prints_without_executing(commands):
    config.DRY_RUN = 1
    assert shaper.apply_sqm(RatePair(460, 88)) is True
    assert commands.calls == []
    assert shaper.last_applied() == RatePair(460, 88)
