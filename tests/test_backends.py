"""Recognition backends: pixel heuristic, library/native wrappers and cloud OCR."""

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import numpy as np
import pytest
import requests

from bookscan.backends import heuristic, library, native
from bookscan.backends.cloud_ocr import CloudOCRBackend
from bookscan.backends.heuristic import HeuristicAnalyzer, decode_scanline, run_lengths
from bookscan.backends.library import LibraryDecoder
from bookscan.backends.native import NativeDecoder
from bookscan.backends.registry import build_backends
from bookscan.config import CloudOCRConfig, ScannerConfig
from bookscan.models import SourceMethod


# =============================================================================
# Heuristic analyzer
# =============================================================================

class TestHeuristicAnalyzer:
    def test_decodes_clean_ean13(self, barcode_frame):
        candidate = HeuristicAnalyzer().attempt(barcode_frame("9788535914849"))
        assert candidate is not None
        assert candidate.text == "9788535914849"
        assert candidate.format == "EAN-13"
        assert candidate.source_method is SourceMethod.HEURISTIC
        assert candidate.confidence == 0.7

    def test_other_leading_digit(self, barcode_frame):
        candidate = HeuristicAnalyzer().attempt(barcode_frame("9780306406157", module=2))
        assert candidate is not None
        assert candidate.text == "9780306406157"

    def test_confidence_never_exceeds_cap(self, barcode_frame):
        candidate = HeuristicAnalyzer().attempt(barcode_frame(module=4))
        assert candidate.confidence <= heuristic.MAX_CONFIDENCE

    def test_blank_frame_has_no_result(self, blank_frame):
        assert HeuristicAnalyzer().attempt(blank_frame) is None

    def test_reads_upside_down(self, barcode_frame):
        frame = barcode_frame("9788561721305")
        row = frame.binarize()[frame.height // 2]
        assert decode_scanline(row[::-1]) == "9788561721305"

    def test_run_lengths(self):
        values, lengths = run_lengths(np.array([True, True, False, True, False, False]))
        assert values.tolist() == [True, False, True, False]
        assert lengths.tolist() == [2, 1, 1, 2]


# =============================================================================
# Library / native wrappers
# =============================================================================

def _zx_result(text, fmt="EAN13", valid=True):
    return SimpleNamespace(text=text, format=SimpleNamespace(name=fmt), valid=valid)


class TestLibraryDecoder:
    def test_prefers_isbn_among_results(self, blank_frame):
        results = [_zx_result("12345", "Code128"), _zx_result("9788535914849")]
        with patch.object(library.zxingcpp, "read_barcodes", return_value=results):
            candidate = LibraryDecoder().attempt(blank_frame)
        assert candidate.text == "9788535914849"
        assert candidate.format == "EAN13"
        assert candidate.confidence == 0.8

    def test_requests_book_symbologies_as_tuple(self, blank_frame):
        with patch.object(library.zxingcpp, "read_barcodes", return_value=[]) as read:
            LibraryDecoder().attempt(blank_frame)
        formats = read.call_args.kwargs["formats"]
        assert isinstance(formats, tuple)
        assert library.zxingcpp.BarcodeFormat.EAN13 in formats
        assert len(formats) == 6

    def test_not_found_is_none(self, blank_frame):
        with patch.object(library.zxingcpp, "read_barcodes", return_value=[_zx_result("978", valid=False)]):
            assert LibraryDecoder().attempt(blank_frame) is None

    def test_decoder_crash_is_absorbed(self, blank_frame):
        with patch.object(library.zxingcpp, "read_barcodes", side_effect=RuntimeError("boom")):
            assert LibraryDecoder().attempt(blank_frame) is None


class TestNativeDecoder:
    def test_reports_detector_result(self, blank_frame):
        detector = MagicMock()
        detector.detectAndDecodeWithType.return_value = (True, ["9788535914849"], ["EAN_13"], None)
        decoder = NativeDecoder()
        decoder._detector = detector
        with patch.object(native, "native_supported", return_value=True):
            candidate = decoder.attempt(blank_frame)
        assert candidate.text == "9788535914849"
        assert candidate.source_method is SourceMethod.NATIVE
        assert candidate.confidence == 0.9

    def test_unavailable_backend_is_skipped(self, blank_frame):
        decoder = NativeDecoder()
        decoder._detector = MagicMock()
        with patch.object(native, "native_supported", return_value=False):
            assert decoder.available() is False
            assert decoder.attempt(blank_frame) is None
        decoder._detector.detectAndDecodeWithType.assert_not_called()

    def test_ignores_other_symbologies(self, blank_frame):
        detector = MagicMock()
        detector.detectAndDecodeWithType.return_value = (True, ["https://x"], ["QR_CODE"], None)
        decoder = NativeDecoder()
        decoder._detector = detector
        with patch.object(native, "native_supported", return_value=True):
            assert decoder.attempt(blank_frame) is None


# =============================================================================
# Cloud OCR
# =============================================================================

def _vision_response(*texts):
    resp = MagicMock()
    resp.json.return_value = {"responses": [{"textAnnotations": [{"description": t} for t in texts]}]}
    resp.raise_for_status.return_value = None
    return resp


class TestCloudOCR:
    def test_not_configured_is_unavailable(self, blank_frame):
        http = MagicMock()
        backend = CloudOCRBackend(CloudOCRConfig(), session=http)
        assert backend.available() is False
        assert backend.attempt(blank_frame) is None
        http.post.assert_not_called()

    def test_returns_validated_isbn(self, blank_frame):
        http = MagicMock()
        http.post.return_value = _vision_response("Some Title\nISBN 978-85-359-1484-9", "Some", "978-85-359-1484-9")
        backend = CloudOCRBackend(CloudOCRConfig(api_key="k"), timeout=3.0, session=http)

        candidate = backend.attempt(blank_frame)

        assert candidate.text == "9788535914849"
        assert candidate.source_method is SourceMethod.CLOUD_OCR
        _, kwargs = http.post.call_args
        assert kwargs["params"] == {"key": "k"}
        assert kwargs["timeout"] == 3.0
        assert kwargs["json"]["requests"][0]["features"][0]["type"] == "TEXT_DETECTION"

    def test_text_without_isbn(self, blank_frame):
        http = MagicMock()
        http.post.return_value = _vision_response("Penguin Classics 1234")
        backend = CloudOCRBackend(CloudOCRConfig(api_key="k"), session=http)
        assert backend.attempt(blank_frame) is None

    def test_http_error_is_absorbed(self, blank_frame):
        http = MagicMock()
        http.post.side_effect = requests.ConnectionError("offline")
        backend = CloudOCRBackend(CloudOCRConfig(api_key="k"), session=http)
        assert backend.attempt(blank_frame) is None

    def test_manual_capture_only(self):
        assert CloudOCRBackend.continuous is False


def test_registry_builds_enabled_backends():
    config = ScannerConfig(
        enabled_backends=(SourceMethod.HEURISTIC, SourceMethod.CLOUD_OCR),
        cloud=CloudOCRConfig(api_key="k"),
        backend_timeout=2.5,
    )
    backends = build_backends(config)
    assert [b.source_method for b in backends] == [SourceMethod.HEURISTIC, SourceMethod.CLOUD_OCR]
    assert backends[1].timeout == 2.5


@pytest.mark.parametrize("method", list(SourceMethod))
def test_backend_names_match_source_method(method):
    backend = build_backends(ScannerConfig(enabled_backends=(method,)))[0]
    assert backend.name == method.value
