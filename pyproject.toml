[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "pumpctl"
version = "0.1.0"
description = "Speed, flow-rate and volume control for a PWM-driven peristaltic pump, with optional ramping"
requires-python = ">=3.10"
dependencies = []
keywords = ["peristaltic", "pump", "pwm", "flow rate", "ramping", "control"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Science/Research",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
pumpctl-demo = "pumpctl.demo:main"

[tool.hatch.build.targets.wheel]
packages = ["pumpctl"]

[tool.pytest.ini_options]
addopts = "-ra"
