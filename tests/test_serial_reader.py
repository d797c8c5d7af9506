import pytest

from models import TiltReading, VisionReading, StabilityReading, HeadPosition
from serial_reader import SerialReader


@pytest.fixture
def reader(clock):
    return SerialReader(port="TEST", baud_rate=9600, clock=clock)


def test_parse_tilt(reader, clock):
    reading = reader.parse_line("TILT,12.5\r\n")

    assert isinstance(reading, TiltReading)
    assert reading.tilt_angle == 12.5
    assert reading.timestamp == clock()


def test_parse_vision(reader):
    reading = reader.parse_line("VISION,48.5,4.0,-2.5,3.0,0.92,1")

    assert isinstance(reading, VisionReading)
    assert reading.head_distance == 48.5
    assert reading.head_position == HeadPosition(x=4.0, y=-2.5, rotation=3.0)
    assert reading.confidence == 0.92
    assert reading.face_detected


def test_parse_stability(reader):
    reading = reader.parse_line("stable,0")

    assert isinstance(reading, StabilityReading)
    assert not reading.device_stable


@pytest.mark.parametrize("line", [
    "",
    "Device ready",
    "TILT,abc",
    "VISION,48.5,4.0",
    "STABLE",
    "HEART,72",
])
def test_unusable_lines_are_skipped(reader, line):
    assert reader.parse_line(line) is None


def test_haptic_command(reader):
    assert reader.format_haptic_command((0, 100)) == b"VIBRATE,0,100\n"


def test_haptic_without_connection(reader):
    assert not reader.send_haptic((0, 100))


def test_recent_readings_empty_before_reading(reader):
    assert reader.get_recent_readings() == []
