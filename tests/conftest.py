"""Shared pytest configuration and fakes for the scanner test suite."""

import sys
import time
from pathlib import Path
from typing import Optional

import numpy as np
import pytest

# Ensure the project root is in the path for imports
PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from bookscan.backends.base import RecognitionBackend
from bookscan.camera import CameraError, DeviceInfo, MediaDevices, VideoTrack
from bookscan.frames import Frame
from bookscan.models import RecognitionCandidate, SourceMethod


# =============================================================================
# Synthetic barcodes
# =============================================================================

L_CODES = ["0001101", "0011001", "0010011", "0111101", "0100011",
           "0110001", "0101111", "0111011", "0110111", "0001011"]
PARITY = ["LLLLLL", "LLGLGG", "LLGGLG", "LLGGGL", "LGLLGG",
          "LGGLLG", "LGGGLG", "LGLGLG", "LGLGGL", "LGGLGL"]


def _r_code(d: int) -> str:
    return "".join("1" if b == "0" else "0" for b in L_CODES[d])


def ean13_modules(code: str) -> str:
    digits = [int(c) for c in code]
    bits = "101"
    for d, p in zip(digits[1:7], PARITY[digits[0]]):
        bits += L_CODES[d] if p == "L" else _r_code(d)[::-1]
    bits += "01010"
    for d in digits[7:]:
        bits += _r_code(d)
    return bits + "101"


def ean13_pixels(code: str, module: int = 3, quiet: int = 12, height: int = 80) -> np.ndarray:
    """RGB raster of an EAN-13 symbol: black bars on white, full height."""
    bits = "0" * quiet + ean13_modules(code) + "0" * quiet
    row = np.repeat(np.array([0 if b == "1" else 255 for b in bits], dtype=np.uint8), module)
    gray = np.tile(row, (height, 1))
    return np.repeat(gray[:, :, None], 3, axis=2)


@pytest.fixture
def barcode_frame():
    def make(code: str = "9788535914849", **kw) -> Frame:
        return Frame.from_array(ean13_pixels(code, **kw))
    return make


@pytest.fixture
def blank_frame() -> Frame:
    return Frame.from_array(np.full((120, 160, 3), 255, dtype=np.uint8))


# =============================================================================
# Fake camera
# =============================================================================

class FakeTrack(VideoTrack):
    def __init__(self, devices: "FakeDevices"):
        super().__init__()
        self.devices = devices
        self.torch = None

    def read(self) -> Optional[Frame]:
        if self.devices.read_error is not None:
            raise self.devices.read_error
        return self.devices.frame

    def capabilities(self) -> dict:
        return {"torch": self.devices.torch_capable}

    def apply_constraints(self, **constraints) -> bool:
        self.torch = constraints.get("torch")
        return True

    def _release(self):
        self.devices.stop_calls += 1


class FakeDevices(MediaDevices):
    def __init__(self, cameras=("cam0",), frame: Optional[Frame] = None, open_error: Optional[CameraError] = None,
                 secure_context: bool = True, supported: bool = True, handheld: bool = False,
                 torch_capable: bool = False):
        super().__init__()
        self.cameras = [DeviceInfo(c, label=c, facing="environment" if c.endswith("back") else "user")
                        for c in cameras]
        self.frame = frame
        self.open_error = open_error
        self.read_error: Optional[Exception] = None
        self.secure_context = secure_context
        self.supported = supported
        self.handheld = handheld
        self.torch_capable = torch_capable
        self.open_calls = 0
        self.stop_calls = 0
        self.last_constraints = None
        self.open_delay = 0.0
        self.enumerate_delay = 0.0
        # stop_calls observed at each successful open
        self.open_log: list[int] = []

    def supports_media(self) -> bool:
        return self.supported

    def enumerate_devices(self):
        if self.enumerate_delay:
            time.sleep(self.enumerate_delay)
        return list(self.cameras)

    def _open(self, device, constraints):
        self.last_constraints = constraints
        if self.open_delay:
            time.sleep(self.open_delay)
        if self.open_error is not None:
            raise self.open_error
        self.open_calls += 1
        self.open_log.append(self.stop_calls)
        return [FakeTrack(self)]


@pytest.fixture
def devices(barcode_frame):
    return FakeDevices(frame=barcode_frame())


# =============================================================================
# Fake backends
# =============================================================================

class FakeBackend(RecognitionBackend):
    def __init__(self, method: SourceMethod, text: Optional[str] = None, confidence: float = 0.8,
                 error: Optional[Exception] = None, available: bool = True, continuous: bool = True,
                 delay: float = 0.0):
        self.source_method = method
        self.text = text
        self.confidence = confidence
        self.error = error
        self._available = available
        self.continuous = continuous
        self.delay = delay
        self.calls = 0

    def available(self) -> bool:
        return self._available

    def _decode(self, frame):
        self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.text is None:
            return None
        return RecognitionCandidate(self.text, "EAN-13", self.confidence, self.source_method)


@pytest.fixture
def fake_backend():
    return FakeBackend


class ManualClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock():
    return ManualClock()
