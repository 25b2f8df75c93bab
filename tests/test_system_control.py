import pytest

from slamgeom.settings import Sensor
from slamgeom.system_control import (
    MapChangeWatcher,
    ModeControl,
    ModeRequests,
    SensorMismatchError,
    check_sensor,
)


def test_check_sensor_mismatch_raises():
    with pytest.raises(SensorMismatchError):
        check_sensor(Sensor.STEREO, Sensor.MONOCULAR)
    with pytest.raises(SensorMismatchError):
        check_sensor(Sensor.RGBD, Sensor.STEREO)


@pytest.mark.parametrize("sensor", list(Sensor))
def test_check_sensor_match_returns_none(sensor):
    assert check_sensor(sensor, sensor) is None


def test_no_requests_initially():
    control = ModeControl()
    assert control.take_mode_requests() == ModeRequests(False, False)
    assert control.take_reset() is False


def test_activate_request_taken_once():
    control = ModeControl()
    control.activate_localization_mode()
    assert control.take_mode_requests() == ModeRequests(activate=True, deactivate=False)
    assert control.take_mode_requests() == ModeRequests(False, False)


def test_both_mode_requests():
    control = ModeControl()
    control.activate_localization_mode()
    control.deactivate_localization_mode()
    requests = control.take_mode_requests()
    assert requests.activate and requests.deactivate


def test_reset_request_taken_once():
    control = ModeControl()
    control.request_reset()
    assert control.take_reset() is True
    assert control.take_reset() is False


def test_reset_independent_of_mode():
    control = ModeControl()
    control.request_reset()
    assert control.take_mode_requests() == ModeRequests(False, False)
    assert control.take_reset() is True


def test_map_change_watcher():
    watcher = MapChangeWatcher()
    assert watcher.changed(0) is False
    assert watcher.changed(2) is True
    assert watcher.changed(2) is False
    assert watcher.changed(1) is False
    assert watcher.changed(3) is True


def test_watchers_are_independent():
    a = MapChangeWatcher()
    b = MapChangeWatcher()
    assert a.changed(4) is True
    assert b.changed(4) is True