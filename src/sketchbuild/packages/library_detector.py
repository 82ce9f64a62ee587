"""Library detection from sketch source.

Maps `#include` directives in sketch source to the Arduino library-manager
names that provide them. Headers shipped with the cores (Wire, SPI, WiFi,
BluetoothSerial) map to None and never trigger an install.
"""

import re
from typing import Dict, FrozenSet, Optional

# Header file -> library-manager name (None = built into the core)
HEADER_LIBRARIES: Dict[str, Optional[str]] = {
    "Servo.h": "Servo",
    "ESP32Servo.h": "ESP32Servo",
    "LiquidCrystal_I2C.h": "LiquidCrystal I2C",
    "Adafruit_NeoPixel.h": "Adafruit NeoPixel",
    "DHT.h": "DHT sensor library",
    "Adafruit_GFX.h": "Adafruit GFX Library",
    "Adafruit_SSD1306.h": "Adafruit SSD1306",
    "TM1637Display.h": "TM1637",
    "Wire.h": None,
    "SPI.h": None,
    "WiFi.h": None,
    "BluetoothSerial.h": None,
}

# Matches #include <Header.h> and #include "Header.h", tolerating whitespace
_INCLUDE_PATTERN = re.compile(r'^\s*#\s*include\s*[<"]\s*([^>"\s]+)\s*[>"]', re.MULTILINE)


def detect_required_libraries(source_text: str) -> FrozenSet[str]:
    """Find the libraries a sketch needs from its include directives.

    Args:
        source_text: Sketch source code

    Returns:
        Set of library-manager names (built-in headers excluded)
    """
    if not source_text:
        return frozenset()

    libraries = set()
    for match in _INCLUDE_PATTERN.finditer(source_text):
        library = HEADER_LIBRARIES.get(match.group(1))
        if library:
            libraries.add(library)

    return frozenset(libraries)
