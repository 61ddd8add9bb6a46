"""Furby BLE command bridge."""

__version__ = "0.1.0"
