import re

import pytest

from pumpctl.controller import TIME_MASK, PeristalticPumpController, PumpTargetMode
from pumpctl.demo import THREE_MINUTES_MS, main, run_sequence


class FakeClock:
    def __init__(self):
        self.now = 0

    def __call__(self):
        return self.now & TIME_MASK

    def sleep(self, ms):
        self.now += ms


def run(cycles, ramp=True):
    clock = FakeClock()
    pump = PeristalticPumpController(3, ramp, 70.0, clock=clock)
    lines = []
    run_sequence(pump, clock, clock.sleep, lines.append, cycles)
    return pump, "".join(lines)


def done_times(text):
    return [int(m) for m in re.findall(r"Done in (\d+) ms\.", text)]


def test_one_cycle_runs_every_step_in_order():
    pump, text = run(1)
    messages = [
        "Running at full speed for 3 mins to check output flow rate...",
        "Ramping pump up to run at half speed for 3 mins...",
        "Ramping pump down to 35 ml/min for 3 mins...",
        "Stopping pump...",
        "Pumping 80 ml...",
    ]
    positions = [text.index(m) for m in messages]
    assert positions == sorted(positions)
    assert len(done_times(text)) == len(messages)
    assert pump.target_mode is PumpTargetMode.NONE
    assert pump.pump_on is False


def test_timed_steps_wait_three_minutes():
    _, text = run(1)
    times = done_times(text)
    assert all(t >= THREE_MINUTES_MS for t in times[:3])


def test_volume_step_pumps_about_80_ml():
    pump, _ = run(1)
    assert pump.pumped_volume == pytest.approx(80.0, abs=0.1)


def test_full_speed_step_only_runs_once():
    _, text = run(2)
    assert text.count("Running at full speed") == 1
    assert text.count("Ramping pump up to run at half speed") == 2
    assert text.count("Pumping 80 ml...") == 2


def test_without_ramp():
    pump, text = run(1, ramp=False)
    assert text.count("Done in") == 5
    assert pump.pumped_volume >= 80.0
    assert pump.speed_percentage == 0.0


def test_invalid_cycles():
    clock = FakeClock()
    pump = PeristalticPumpController(3, True, 70.0, clock=clock)
    with pytest.raises(ValueError):
        run_sequence(pump, clock, clock.sleep, lambda text: None, 0)


def test_main_simulated(capsys):
    assert main(["--simulate", "--cycles", "1"]) == 0
    out = capsys.readouterr().out
    assert out.startswith("Starting pump control test in 10 seconds...")
    assert "Pumping 80 ml..." in out
    assert out.count("Done in") == 5


def test_main_rejects_bad_flow():
    with pytest.raises(SystemExit):
        main(["--simulate", "--cycles", "1", "--max-flow", "0"])