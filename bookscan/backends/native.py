from typing import Optional

import cv2

from ..frames import Frame
from ..models import RecognitionCandidate, SourceMethod
from ..utils import validate_isbn
from .base import RecognitionBackend

# OpenCV reports formats as "EAN_13", "UPC_A", ...
_FORMATS = {"EAN_13", "EAN_8", "CODE_128", "CODE_39", "UPC_A", "UPC_E"}

_SUPPORTED: Optional[bool] = None


def native_supported() -> bool:
    """Probe once per process whether OpenCV ships its barcode module."""
    global _SUPPORTED
    if _SUPPORTED is None:
        try:
            cv2.barcode.BarcodeDetector()
            _SUPPORTED = True
        except (AttributeError, cv2.error):
            _SUPPORTED = False
    return _SUPPORTED


class NativeDecoder(RecognitionBackend):
    """On-device detector built into OpenCV. Confidence is not exposed, so a
    constant is used: the detector only answers for fully formed symbols."""

    source_method = SourceMethod.NATIVE
    confidence = 0.9

    def __init__(self):
        self._detector = None

    def available(self) -> bool:
        return native_supported()

    def _detect(self, bgr):
        if self._detector is None:
            self._detector = cv2.barcode.BarcodeDetector()
        if hasattr(self._detector, "detectAndDecodeWithType"):
            ok, texts, types, _ = self._detector.detectAndDecodeWithType(bgr)
        else:
            ok, texts, types, _ = self._detector.detectAndDecode(bgr)
        if not ok:
            return []
        return [(t, str(f)) for t, f in zip(texts, types) if t]

    def _decode(self, frame: Frame) -> Optional[RecognitionCandidate]:
        results = [(t, f) for t, f in self._detect(frame.to_bgr()) if f in _FORMATS or not f]
        if not results:
            return None
        # prefer a symbol that is already an ISBN
        text, fmt = next(((t, f) for t, f in results if validate_isbn(t)), results[0])
        return self._candidate(text, fmt)
