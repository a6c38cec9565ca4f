"""Speed, flow-rate and volume control for a PWM-driven peristaltic pump."""

from __future__ import annotations

import time
from enum import Enum
from typing import Callable, Optional

TIME_MASK = 0xFFFFFFFF
"""Millisecond timestamps wrap around at 32 bits."""

RAMP_SPEED_PERCENTAGE_PER_MS = 10.0
"""Ramp rate in percentage points per millisecond (full speed in 10 ms)."""

PWM_MAX = 255

Clock = Callable[[], int]
Output = Callable[[int, int], None]


def _millis() -> int:
    return (time.monotonic_ns() // 1_000_000) & TIME_MASK


def safe_time_difference(start_time: int, end_time: int) -> int:
    """Return the milliseconds from start_time to end_time, allowing for wrap-around."""
    if end_time >= start_time:
        return end_time - start_time
    return TIME_MASK - start_time + end_time


def _clamp(value: float, low: float, high: float) -> float:
    if value < low:
        return low
    if value > high:
        return high
    return value


def _pwm_duty(speed_percentage: float) -> int:
    """Scale a whole-number speed percentage onto the 0-255 PWM range."""
    scaled = int(speed_percentage) * PWM_MAX
    return scaled // 100 if scaled >= 0 else -((-scaled) // 100)


class PumpTargetMode(Enum):
    """What the pump is currently working towards."""

    NONE = "none"
    SPEED = "speed"
    FLOW_RATE = "flow_rate"
    VOLUME = "volume"


class PeristalticPumpController:
    """Drive a peristaltic pump towards a target speed, flow rate or volume.

    Ramping avoids back EMF from the motor. ``clock`` returns milliseconds
    (wrapping at 32 bits) and ``output``, when given, receives ``(pin, duty)``
    with a duty cycle between 0 and 255.
    """

    def __init__(
        self,
        control_pin: int,
        ramp: bool,
        max_flow_rate_ml_min: float,
        *,
        clock: Optional[Clock] = None,
        output: Optional[Output] = None,
    ) -> None:
        if max_flow_rate_ml_min <= 0:
            raise ValueError("maximum flow rate must be positive")
        self._pin = control_pin
        self._ramp_enabled = ramp
        self._max_flow_rate = float(max_flow_rate_ml_min)
        self._clock: Clock = clock or _millis
        self._output: Optional[Output] = output

        self._pump_on = False
        self._flow_rate = 0.0
        self._speed = 0.0
        self._duty = 0
        self._mode = PumpTargetMode.NONE

        self._target_flow_rate = 0.0
        self._target_speed = 0.0
        self._target_volume = 0.0

        self._ramping = False
        self._ramp_start_time = 0
        self._ramp_start_speed = 0.0

        self._volume_last_calc_time = 0
        self._pumped_volume = 0.0

        self._write_duty(0)

    @property
    def control_pin(self) -> int:
        return self._pin

    @property
    def ramp_enabled(self) -> bool:
        return self._ramp_enabled

    @property
    def max_flow_rate(self) -> float:
        """Flow rate at full speed, in ml/min."""
        return self._max_flow_rate

    @property
    def pump_on(self) -> bool:
        return self._pump_on

    @property
    def speed_percentage(self) -> float:
        """Current speed as a percentage of the maximum."""
        return self._speed

    @property
    def duty(self) -> int:
        """PWM duty cycle (0-255) last written to the control pin."""
        return self._duty

    @property
    def flow_rate(self) -> float:
        """Theoretical current flow rate in ml/min."""
        return self._flow_rate

    @property
    def target_mode(self) -> PumpTargetMode:
        """Current target; NONE once an operation has completed."""
        return self._mode

    @property
    def pumped_volume(self) -> float:
        """Volume in ml pumped so far by the latest volume operation."""
        return self._pumped_volume

    def set_target_speed(self, target_speed_percentage: float) -> None:
        """Aim for a speed given as a percentage (clamped to 0-100)."""
        self._target_speed = _clamp(target_speed_percentage, 0.0, 100.0)
        self._mode = PumpTargetMode.SPEED
        self._retarget(self._target_speed)
        if not self._ramp_enabled:
            self._mode = PumpTargetMode.NONE

    def set_target_flow_rate(self, target_flow_rate: float) -> None:
        """Aim for a flow rate in ml/min (clamped to 0 and the maximum)."""
        self._target_flow_rate = _clamp(target_flow_rate, 0.0, self._max_flow_rate)
        self._mode = PumpTargetMode.FLOW_RATE
        self._retarget((self._target_flow_rate / self._max_flow_rate) * 100.0)
        if not self._ramp_enabled:
            self._mode = PumpTargetMode.NONE

    def pump_target_volume(self, target_volume: float) -> None:
        """Pump the given volume in ml as quickly as possible; ignored unless positive."""
        if target_volume <= 0:
            return
        self._target_volume = target_volume
        self._volume_last_calc_time = self._clock()
        self._pumped_volume = 0.0
        self._mode = PumpTargetMode.VOLUME

        if not self._ramp_enabled:
            self._retarget(100.0)
            return

        ramp_time = 100.0 / RAMP_SPEED_PERCENTAGE_PER_MS
        ramp_volume = (ramp_time * self._max_flow_rate) / (2.0 * 60.0 * 1000.0)
        if target_volume <= 2 * ramp_volume:
            # Too little to reach full speed: ramp only as high as needed.
            self._retarget((target_volume * 60000.0) / (ramp_time * self._max_flow_rate))
        else:
            self._retarget(100.0)

    def control_loop(self) -> None:
        """Advance ramping and volume tracking; call this repeatedly."""
        now = self._clock()
        last_flow_rate = self._flow_rate

        if self._ramping:
            self._advance_ramp(now)

        if self._mode is PumpTargetMode.VOLUME:
            self._track_volume(now, last_flow_rate)

    def _advance_ramp(self, now: int) -> None:
        elapsed = safe_time_difference(self._ramp_start_time, now)
        delta = RAMP_SPEED_PERCENTAGE_PER_MS * elapsed
        if self._target_speed > self._ramp_start_speed:
            new_speed = self._ramp_start_speed + delta
            if new_speed >= self._target_speed:
                new_speed = self._target_speed
                self._ramping = False
        else:
            new_speed = self._ramp_start_speed - delta
            if new_speed <= self._target_speed:
                new_speed = self._target_speed
                self._ramping = False

        self._apply_speed(new_speed)

        if not self._ramping and (
            self._mode is not PumpTargetMode.VOLUME or self._target_speed == 0.0
        ):
            self._mode = PumpTargetMode.NONE

    def _track_volume(self, now: int, last_flow_rate: float) -> None:
        pump_time = safe_time_difference(self._volume_last_calc_time, now)
        self._pumped_volume += last_flow_rate * (pump_time / (60.0 * 1000.0))
        self._volume_last_calc_time = now

        if self._ramp_enabled:
            if self._ramping:
                return
            ramp_down_time = self._speed / RAMP_SPEED_PERCENTAGE_PER_MS
            ramp_down_volume = (self._flow_rate * ramp_down_time) / (2.0 * 60.0 * 1000.0)
            if self._pumped_volume + ramp_down_volume >= self._target_volume:
                self._retarget(0.0)
        elif self._pumped_volume >= self._target_volume:
            self._retarget(0.0)
            self._mode = PumpTargetMode.NONE

    def _write_duty(self, duty: int) -> None:
        self._duty = duty
        if self._output is not None:
            self._output(self._pin, duty)

    def _apply_speed(self, speed_percentage: float) -> None:
        self._speed = speed_percentage
        self._flow_rate = (self._speed / 100.0) * self._max_flow_rate
        self._write_duty(_pwm_duty(self._speed))
        self._pump_on = self._speed > 0

    def _retarget(self, target_speed_percentage: float) -> None:
        if self._ramping and target_speed_percentage == self._target_speed:
            return
        self._target_speed = target_speed_percentage
        if not self._ramp_enabled:
            self._apply_speed(self._target_speed)
        else:
            self._ramp_start_time = self._clock()
            self._ramp_start_speed = self._speed
            self._ramping = True