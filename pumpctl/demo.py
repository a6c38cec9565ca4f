"""Bench test sequence that exercises the pump controller in a loop."""

from __future__ import annotations

import argparse
import sys
import time
from typing import Callable, NamedTuple, Optional

from pumpctl.controller import TIME_MASK, PeristalticPumpController, PumpTargetMode

THREE_MINUTES_MS = 3 * 60 * 1000
SETTLE_MS = 5000
REPEAT_PAUSE_MS = 60000
START_DELAY_MS = 10000
FIRST_STATE = -2
LAST_STATE = 6


class Step(NamedTuple):
    message: str
    start: Callable[[PeristalticPumpController], None]
    wait_ms: int


STEPS = {
    -2: Step(
        "Running at full speed for 3 mins to check output flow rate...",
        lambda pump: pump.set_target_speed(100.0),
        THREE_MINUTES_MS,
    ),
    0: Step(
        "Ramping pump up to run at half speed for 3 mins...",
        lambda pump: pump.set_target_speed(50.0),
        THREE_MINUTES_MS,
    ),
    2: Step(
        "Ramping pump down to 35 ml/min for 3 mins...",
        lambda pump: pump.set_target_flow_rate(35.0),
        THREE_MINUTES_MS,
    ),
    4: Step("Stopping pump...", lambda pump: pump.set_target_speed(0.0), 0),
    6: Step("Pumping 80 ml...", lambda pump: pump.pump_target_volume(80.0), 0),
}


def _elapsed(since: int, now: int) -> int:
    return (now - since) & TIME_MASK


def run_sequence(
    controller: PeristalticPumpController,
    clock: Callable[[], int],
    sleep: Callable[[int], None],
    write: Callable[[str], None],
    cycles: Optional[int] = None,
) -> None:
    """Run the test steps, repeating them ``cycles`` times (forever if None).

    ``clock`` returns milliseconds and ``sleep`` waits a number of milliseconds.
    """
    if cycles is not None and cycles < 1:
        raise ValueError("cycles must be at least 1")

    state = FIRST_STATE
    wait_ms = 0
    last_action = clock()
    completed = 0

    while True:
        controller.control_loop()

        step = STEPS.get(state)
        if step is not None:
            last_action = clock()
            write(step.message)
            step.start(controller)
            wait_ms = step.wait_ms
            state += 1
            continue

        elapsed = _elapsed(last_action, clock())
        idle = controller.target_mode is PumpTargetMode.NONE
        if elapsed >= wait_ms and idle:
            write(f"Done in {_elapsed(last_action, clock())} ms.\n")
            sleep(SETTLE_MS)
            state += 1
            if state > LAST_STATE:
                state = 0
                completed += 1
                if cycles is not None and completed >= cycles:
                    return
                sleep(REPEAT_PAUSE_MS)
            continue

        # Nothing to control while idle, so wait out the rest of the step.
        sleep(wait_ms - elapsed if idle else 1)


class _VirtualClock:
    def __init__(self) -> None:
        self.now = 0

    def __call__(self) -> int:
        return self.now & TIME_MASK

    def sleep(self, ms: int) -> None:
        self.now += ms


def _real_millis() -> int:
    return (time.monotonic_ns() // 1_000_000) & TIME_MASK


def _real_sleep(ms: int) -> None:
    time.sleep(ms / 1000.0)


def _write(text: str) -> None:
    sys.stdout.write(text)
    sys.stdout.flush()


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="pumpctl-demo", description="Cycle a peristaltic pump through a test sequence."
    )
    parser.add_argument("--pin", type=int, default=3, help="PWM control pin")
    parser.add_argument(
        "--max-flow", type=float, default=70.0, help="flow rate at full speed in ml/min"
    )
    parser.add_argument("--no-ramp", action="store_true", help="change speed without ramping")
    parser.add_argument("--cycles", type=int, default=None, help="repeat this many times")
    parser.add_argument(
        "--simulate", action="store_true", help="run against a virtual clock"
    )
    args = parser.parse_args(argv)

    if args.simulate:
        virtual = _VirtualClock()
        clock: Callable[[], int] = virtual
        sleep: Callable[[int], None] = virtual.sleep
    else:
        clock, sleep = _real_millis, _real_sleep

    try:
        controller = PeristalticPumpController(
            args.pin, not args.no_ramp, args.max_flow, clock=clock
        )
        _write("Starting pump control test in 10 seconds...\n")
        sleep(START_DELAY_MS)
        run_sequence(controller, clock, sleep, _write, args.cycles)
    except ValueError as exc:
        parser.error(str(exc))
    except KeyboardInterrupt:
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())