"""Sensor checks, mode/reset requests and map-change detection for the system."""

from __future__ import annotations

import threading
from dataclasses import dataclass

from .settings import Sensor

__all__ = [
    "SensorMismatchError",
    "ModeRequests",
    "ModeControl",
    "MapChangeWatcher",
    "check_sensor",
]


class SensorMismatchError(RuntimeError):
    """Raised when input is tracked with a method for another sensor."""


def check_sensor(expected, actual):
    """Raise ``SensorMismatchError`` unless the system's sensor is ``expected``."""
    expected = Sensor(expected)
    actual = Sensor(actual)
    if expected is not actual:
        raise SensorMismatchError(
            f"tracking for {expected.name} called but input sensor was set to {actual.name}"
        )


@dataclass(frozen=True)
class ModeRequests:
    """Pending localization-mode changes taken from a ``ModeControl``."""

    activate: bool = False
    deactivate: bool = False


class ModeControl:
    """Thread-safe requests to switch localization mode and to reset."""

    def __init__(self):
        self._mode_lock = threading.Lock()
        self._reset_lock = threading.Lock()
        self._activate = False
        self._deactivate = False
        self._reset = False

    def activate_localization_mode(self):
        with self._mode_lock:
            self._activate = True

    def deactivate_localization_mode(self):
        with self._mode_lock:
            self._deactivate = True

    def request_reset(self):
        with self._reset_lock:
            self._reset = True

    def take_mode_requests(self):
        """Return the pending mode requests and clear them."""
        with self._mode_lock:
            requests = ModeRequests(self._activate, self._deactivate)
            self._activate = False
            self._deactivate = False
            return requests

    def take_reset(self):
        """Return whether a reset was requested, and clear the request."""
        with self._reset_lock:
            requested = self._reset
            self._reset = False
            return requested


class MapChangeWatcher:
    """Tells whether the map had a big change since the last check."""

    def __init__(self):
        self._seen = 0

    def changed(self, last_big_change_idx):
        if self._seen < last_big_change_idx:
            self._seen = last_big_change_idx
            return True
        return False