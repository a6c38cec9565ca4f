# pumpctl

Control a peristaltic pump driven by a PWM output. You can:

- run the pump at a target speed, as a percentage of its maximum;
- run the pump at a target flow rate, in ml/min;
- pump a set volume, in ml, as fast as possible.

Speed changes can be ramped at a fixed rate (10 percentage points per millisecond,
so 0 to full speed takes 10 ms) to avoid back EMF from the pump motor. When ramping
is on, a volume run works out how much liquid the ramp down will move and starts
slowing early, so the total comes out on target. A volume too small to reach full
speed ramps only as high as it needs to.

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Usage

```python
from pumpctl.controller import PeristalticPumpController, PumpTargetMode

def write_pwm(pin, duty):
    ...  # send the 0-255 duty cycle to your hardware

# pin 3, ramping enabled, 70 ml/min at full speed
pump = PeristalticPumpController(3, True, 70.0, output=write_pwm)

pump.pump_target_volume(80.0)           # pump 80 ml, then stop
while pump.target_mode is not PumpTargetMode.NONE:
    pump.control_loop()
```

Other targets:

```python
pump.set_target_speed(50.0)             # 50 % of maximum speed
pump.set_target_flow_rate(35.0)         # 35 ml/min
```

Call `control_loop()` often, from your main loop. It moves a ramp forward and keeps
track of the volume pumped. A target is finished when `target_mode` is back to
`PumpTargetMode.NONE`. Without ramping, speed and flow-rate targets take effect
at once and the mode returns to `NONE` straight away.

Speed targets are clamped to 0–100 %. Flow-rate targets are clamped to the range
from 0 to the maximum flow rate. A volume target of zero or less is ignored. A
maximum flow rate of zero or less raises `ValueError`.

The constructor takes two optional keyword arguments:

- `clock`: a callable returning milliseconds, wrapping at 32 bits. By default the
  system's monotonic clock is used.
- `output`: a callable receiving `(pin, duty)` whenever the duty cycle changes,
  including a duty of 0 when the controller is created.

Read-only properties report the state: `control_pin`, `ramp_enabled`,
`max_flow_rate`, `pump_on`, `speed_percentage`, `flow_rate` (ml/min), `duty`
(0–255), `target_mode` and `pumped_volume` (ml pumped by the latest volume run).

`safe_time_difference(start_time, end_time)` returns the number of milliseconds
between two readings of a 32-bit millisecond counter, and copes with the counter
wrapping around.

## Demonstration sequence

`pumpctl.demo.run_sequence(controller, clock, sleep, write, cycles=None)` runs a
fixed test sequence against a controller:

1. full speed, held for at least 3 minutes;
2. ramp to half speed, held for at least 3 minutes;
3. ramp down to 35 ml/min, held for at least 3 minutes;
4. stop;
5. pump 80 ml.

After each step it writes how long the step took and pauses 5 seconds. After the
last step it pauses a minute and starts again from step 2. `cycles` sets how many
times to go round (forever if `None`); a value below 1 raises `ValueError`.

From the command line:

```
pumpctl-demo --simulate --cycles 1
```

Options:

- `--pin N`: PWM control pin (default 3)
- `--max-flow ML`: flow rate at full speed in ml/min (default 70)
- `--no-ramp`: change speed without ramping
- `--cycles N`: repeat this many times (default: forever)
- `--simulate`: run against a virtual clock, so the waits pass instantly

Without `--simulate` the command waits in real time, and a full cycle takes more
than ten minutes.

## What this package does not do

The controller does not talk to hardware itself. It only computes duty cycles and
passes them to the `output` callable you supply; without one, nothing drives a pin.
The `pumpctl-demo` command creates its controller with no `output`, so it only
prints the sequence's progress.