from typing import Optional

import zxingcpp

from ..frames import Frame
from ..models import RecognitionCandidate, SourceMethod
from ..utils import validate_isbn
from .base import RecognitionBackend

_FORMATS = (
    zxingcpp.BarcodeFormat.EAN13,
    zxingcpp.BarcodeFormat.EAN8,
    zxingcpp.BarcodeFormat.Code128,
    zxingcpp.BarcodeFormat.Code39,
    zxingcpp.BarcodeFormat.UPCA,
    zxingcpp.BarcodeFormat.UPCE,
)


def _format_name(fmt) -> str:
    return getattr(fmt, "name", str(fmt))


class LibraryDecoder(RecognitionBackend):
    """zxing-cpp multi-format reader limited to book symbologies."""

    source_method = SourceMethod.LIBRARY
    confidence = 0.8

    def _decode(self, frame: Frame) -> Optional[RecognitionCandidate]:
        results = zxingcpp.read_barcodes(frame.to_image(), formats=_FORMATS)
        found = []
        for res in results:
            if not getattr(res, "valid", True):
                continue
            raw = (res.text or "").strip()
            if raw:
                found.append((raw, _format_name(res.format)))
        if not found:
            # "not found" is the normal answer, not a failure
            return None
        text, fmt = next(((t, f) for t, f in found if validate_isbn(t)), found[0])
        return self._candidate(text, fmt)
