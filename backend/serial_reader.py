"""
Serial port reader for live sensor data from the tracking device
"""

import serial
import threading
import time
from datetime import datetime
from typing import Optional, Callable, List, Tuple, Union

from config import SERIAL_PORT, BAUD_RATE
from models import TiltReading, VisionReading, StabilityReading, HeadPosition
from utils import now_local

ChannelReading = Union[TiltReading, VisionReading, StabilityReading]


class SerialReader:
    """
    Reads CSV channel lines from the device via serial port.
    Runs in a separate thread to avoid blocking the main application.

    Expected lines:
        TILT,<degrees>
        VISION,<distance_cm>,<x_pct>,<y_pct>,<rotation_deg>,<confidence>,<face 0|1>
        STABLE,<0|1>
    """

    def __init__(self, port: str = SERIAL_PORT, baud_rate: int = BAUD_RATE,
                 clock: Callable[[], datetime] = now_local):
        self.port = port
        self.baud_rate = baud_rate
        self.clock = clock
        self.serial_connection: Optional[serial.Serial] = None
        self.is_running = False
        self.read_thread: Optional[threading.Thread] = None

        # Callback for real-time processing
        self.on_reading_callback: Optional[Callable[[ChannelReading], None]] = None

        # Buffer for recent readings
        self.recent_readings: List[ChannelReading] = []
        self.max_recent_readings = 100

    def connect(self) -> bool:
        """
        Establish connection to the serial port.
        Returns True if successful, False otherwise.
        """
        try:
            self.serial_connection = serial.Serial(
                port=self.port,
                baudrate=self.baud_rate,
                timeout=1
            )
            print(f"Connected to {self.port} at {self.baud_rate} baud")

            # Wait for the board to reset after connection
            time.sleep(2)

            # Clear any startup messages
            self.serial_connection.reset_input_buffer()

            return True

        except serial.SerialException as e:
            print(f"Error connecting to {self.port}: {e}")
            return False

    def disconnect(self):
        """Close the serial connection"""
        if self.serial_connection and self.serial_connection.is_open:
            self.serial_connection.close()
            print(f"Disconnected from {self.port}")

    def parse_line(self, line: str) -> Optional[ChannelReading]:
        """
        Parse one CSV channel line.
        Example: VISION,48.5,4.0,-2.5,3.0,0.92,1
        """
        try:
            parts = line.strip().split(",")
            channel = parts[0].strip().upper()
            timestamp = self.clock()

            if channel == "TILT" and len(parts) == 2:
                return TiltReading(tilt_angle=float(parts[1]), timestamp=timestamp)

            if channel == "VISION" and len(parts) == 7:
                return VisionReading(
                    head_distance=float(parts[1]),
                    head_position=HeadPosition(
                        x=float(parts[2]),
                        y=float(parts[3]),
                        rotation=float(parts[4])
                    ),
                    confidence=float(parts[5]),
                    face_detected=int(parts[6]) == 1,
                    timestamp=timestamp
                )

            if channel == "STABLE" and len(parts) == 2:
                return StabilityReading(device_stable=int(parts[1]) == 1, timestamp=timestamp)

            # Header, debug output or unknown channel
            return None

        except (ValueError, IndexError):
            # Invalid line format - skip it
            return None

    def format_haptic_command(self, pattern: Tuple[int, ...]) -> bytes:
        return ("VIBRATE," + ",".join(str(ms) for ms in pattern) + "\n").encode("utf-8")

    def send_haptic(self, pattern: Tuple[int, ...]) -> bool:
        """Ask the device to play a vibration pattern"""
        if not self.serial_connection or not self.serial_connection.is_open:
            return False
        try:
            self.serial_connection.write(self.format_haptic_command(pattern))
            return True
        except serial.SerialException as e:
            print(f"Error writing to serial: {e}")
            return False

    def _read_loop(self):
        """Main reading loop - runs in separate thread"""
        print("Serial reading started...")

        while self.is_running:
            try:
                if self.serial_connection and self.serial_connection.in_waiting > 0:
                    # Read line from serial
                    line = self.serial_connection.readline().decode('utf-8', errors='ignore')

                    reading = self.parse_line(line)

                    if reading:
                        # Store in recent readings buffer
                        self.recent_readings.append(reading)
                        if len(self.recent_readings) > self.max_recent_readings:
                            self.recent_readings.pop(0)

                        # Call callback if registered
                        if self.on_reading_callback:
                            self.on_reading_callback(reading)

                else:
                    # Small delay to prevent busy waiting
                    time.sleep(0.05)

            except Exception as e:
                print(f"Error reading from serial: {e}")
                time.sleep(0.5)

        print("Serial reading stopped.")

    def start_reading(self):
        """Start the background reading thread"""
        if self.is_running:
            print("Already reading")
            return

        if not self.serial_connection or not self.serial_connection.is_open:
            if not self.connect():
                print("Failed to connect. Cannot start reading.")
                return

        self.is_running = True
        self.read_thread = threading.Thread(target=self._read_loop, daemon=True)
        self.read_thread.start()
        print("Background reading thread started")

    def stop_reading(self):
        """Stop the background reading thread"""
        self.is_running = False

        if self.read_thread:
            self.read_thread.join(timeout=2)

        self.disconnect()

    def get_recent_readings(self, count: int = 50) -> List[ChannelReading]:
        """Get the most recent readings"""
        return self.recent_readings[-count:]

    def set_callback(self, callback: Callable[[ChannelReading], None]):
        """Set callback function to be called for each new reading"""
        self.on_reading_callback = callback
