# wanq/modes.py
# Hysteresis state machine: activity score + hold window -> shaping mode
from dataclasses import dataclass
from enum import Enum

from . import config
from .db import get_float_state, get_int_state, get_state, set_states


class Mode(str, Enum):
    NORMAL = "normal"
    NORMAL_TIGHT = "normal_tight"
    ELEVATED = "elevated"
    ELEVATED_TIGHT = "elevated_tight"
    ELEVATED_TELEMETRY_TIGHT = "elevated_telemetry_tight"

    @classmethod
    def parse(cls, value, default=None):
        try:
            return cls(value)
        except ValueError:
            return default if default is not None else cls.NORMAL

    @property
    def elevated(self):
        return self.value.startswith("elevated")


@dataclass
class ControllerState:
    score: int = 0
    hold_until: float = 0.0
    prev_mode: Mode = Mode.NORMAL

    @classmethod
    def load(cls):
        score = get_int_state("mode_score", 0)
        # a corrupt or out-of-range score is treated as absent
        if not 0 <= score <= config.SCORE_MAX:
            score = 0
        return cls(
            score=score,
            hold_until=get_float_state("hold_until", 0.0),
            prev_mode=Mode.parse(get_state("prev_mode")),
        )

    def save(self):
        set_states({
            "mode_score": self.score,
            "hold_until": f"{self.hold_until:.3f}",
            "prev_mode": self.prev_mode.value,
        })

    def save_activity(self):
        # prev_mode is only written by whoever holds the shaper lock
        set_states({
            "mode_score": self.score,
            "hold_until": f"{self.hold_until:.3f}",
        })

    def step(self, activity_detected, now):
        """Advance one tick; return whether elevated mode holds."""
        if activity_detected:
            self.score = min(config.SCORE_MAX, self.score + config.ACTIVITY_INCREMENT)
            self.hold_until = now + config.HOLD_SECONDS
        else:
            self.score = max(0, self.score - config.DECAY)
        return self.is_elevated(now)

    def is_elevated(self, now):
        # the hold deadline is a floor independent of the decayed score
        return self.score >= config.ENTER_THRESHOLD or now < self.hold_until

    def hold_remaining(self, now):
        return max(0.0, self.hold_until - now)


def telemetry_bias(frame_time_ms, budget_ms=None):
    budget_ms = config.FRAME_TIME_BUDGET_MS if budget_ms is None else budget_ms
    return frame_time_ms is not None and frame_time_ms > budget_ms


def derive_mode(elevated, congestion, bias=False, extended=None):
    if extended is None:
        extended = config.EXTENDED_MODES
    if not extended:
        return Mode.ELEVATED if elevated else Mode.NORMAL

    tight = congestion >= config.CONGESTION_TIGHT_AT
    if elevated:
        if tight:
            return Mode.ELEVATED_TIGHT
        if bias:
            return Mode.ELEVATED_TELEMETRY_TIGHT
        return Mode.ELEVATED
    return Mode.NORMAL_TIGHT if tight else Mode.NORMAL


def should_apply(new_mode, prev_mode):
    return new_mode != prev_mode
