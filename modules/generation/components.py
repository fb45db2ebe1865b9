"""Arduino component catalog."""

from __future__ import annotations

import json
from pathlib import Path
from typing import List

DEFAULT_COMPONENTS: tuple[str, ...] = (
    "LED",
    "RGB LED",
    "Push Button",
    "Potentiometer",
    "Servo Motor",
    "DC Motor (L298N)",
    "Stepper Motor (28BYJ-48)",
    "DHT11 Temperature & Humidity Sensor",
    "DHT22 Temperature & Humidity Sensor",
    "Ultrasonic Sensor (HC-SR04)",
    "PIR Motion Sensor",
    "Photoresistor (LDR)",
    "Piezo Buzzer",
    "16x2 LCD Display (I2C)",
    "OLED Display (SSD1306)",
    "Relay Module",
    "IR Receiver",
    "Soil Moisture Sensor",
    "MPU6050 Accelerometer/Gyroscope",
    "RFID Reader (RC522)",
    "7-Segment Display",
    "4x4 Keypad",
    "Bluetooth Module (HC-05)",
)


class ComponentCatalog:
    """Ordered in-memory catalog of components offered in the UI."""

    def __init__(self) -> None:
        self._names: List[str] = []

    @classmethod
    def default(cls) -> "ComponentCatalog":
        catalog = cls()
        for name in DEFAULT_COMPONENTS:
            catalog.add(name)
        return catalog

    def load_from_file(self, path: Path) -> None:
        """Load extra components from a JSON list of names or {"name": ...} objects."""
        if not path.exists():
            return
        with path.open("r", encoding="utf-8") as fp:
            data = json.load(fp)
        for entry in data:
            self.add(entry if isinstance(entry, str) else entry["name"])

    def add(self, name: str) -> None:
        """Register a component name, ignoring blanks and duplicates."""
        cleaned = name.strip()
        if cleaned and cleaned not in self._names:
            self._names.append(cleaned)

    def names(self) -> List[str]:
        return list(self._names)

    def __contains__(self, name: object) -> bool:
        return name in self._names

    def __len__(self) -> int:
        return len(self._names)
