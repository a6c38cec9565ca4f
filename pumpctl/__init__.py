"""Peristaltic pump control: speed, flow-rate and volume targets with optional ramping, plus a demonstration sequence."""

__version__ = "0.1.0"
__all__ = ["controller", "demo"]