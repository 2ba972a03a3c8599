import random

from wanq import config, db
from wanq.modes import ControllerState, Mode, derive_mode, should_apply, telemetry_bias


def test_score_stays_within_bounds_for_random_ticks():
    rng = random.Random(7)
    for _ in range(50):
        state = ControllerState()
        now = 0.0
        for _ in range(200):
            now += 2
            state.step(rng.random() < 0.4, now)
            assert 0 <= state.score <= config.SCORE_MAX


def test_score_caps_and_decays_to_zero():
    state = ControllerState()
    for t in range(10):
        state.step(True, t)
    assert state.score == config.SCORE_MAX
    for t in range(10, 60):
        state.step(False, t)
    assert state.score == 0


def test_single_activity_holds_elevated_for_hold_window():
    state = ControllerState()
    assert state.step(True, 0.0) is True
    assert state.score == config.ACTIVITY_INCREMENT
    assert state.score < config.ENTER_THRESHOLD

    # activity gone from the very next tick; the hold is still a hard floor
    for t in range(2, config.HOLD_SECONDS, 2):
        assert state.step(False, float(t)) is True
    assert state.score == 0
    assert state.step(False, float(config.HOLD_SECONDS + 2)) is False


def test_sustained_activity_enters_by_score():
    state = ControllerState()
    for t in range(3):
        state.step(True, float(t))
    assert state.score >= config.ENTER_THRESHOLD
    # score alone keeps it elevated even with the hold already expired
    assert state.is_elevated(10_000.0) is True


def test_derive_mode_extended():
    assert derive_mode(True, 0.20, False) == Mode.ELEVATED
    assert derive_mode(True, 0.85, True) == Mode.ELEVATED_TIGHT
    assert derive_mode(True, 0.75, False) == Mode.ELEVATED_TIGHT
    assert derive_mode(True, 0.55, True) == Mode.ELEVATED_TELEMETRY_TIGHT
    assert derive_mode(False, 0.20, True) == Mode.NORMAL
    assert derive_mode(False, 0.85, False) == Mode.NORMAL_TIGHT


def test_derive_mode_simple_variant_ignores_congestion():
    assert derive_mode(True, 0.85, True, extended=False) == Mode.ELEVATED
    assert derive_mode(False, 0.85, True, extended=False) == Mode.NORMAL


def test_telemetry_bias():
    assert telemetry_bias(None) is False
    assert telemetry_bias(config.FRAME_TIME_BUDGET_MS) is False
    assert telemetry_bias(config.FRAME_TIME_BUDGET_MS + 0.1) is True
    assert telemetry_bias(9.0, budget_ms=8.0) is True


def test_should_apply_only_on_change():
    assert should_apply(Mode.ELEVATED, Mode.NORMAL) is True
    assert should_apply(Mode.NORMAL, Mode.NORMAL) is False


def test_state_cold_start_defaults():
    state = ControllerState.load()
    assert state == ControllerState(0, 0.0, Mode.NORMAL)


def test_state_round_trip():
    ControllerState(score=17, hold_until=1234.5, prev_mode=Mode.ELEVATED_TIGHT).save()
    state = ControllerState.load()
    assert state.score == 17
    assert state.hold_until == 1234.5
    assert state.prev_mode is Mode.ELEVATED_TIGHT


def test_malformed_state_treated_as_absent():
    db.set_states({"mode_score": "lots", "hold_until": "soon", "prev_mode": "turbo"})
    assert ControllerState.load() == ControllerState()

    db.set_state("mode_score", 999)
    assert ControllerState.load().score == 0
