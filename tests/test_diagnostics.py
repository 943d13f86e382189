from bookscan.arbitrator import Arbitrator
from bookscan.camera import CameraError
from bookscan.diagnostics import FAIL, PASS, WARNING, run_diagnostics
from bookscan.models import ErrorCategory, SourceMethod

from conftest import FakeBackend, FakeDevices


def _by_test(results):
    return {r.test: r for r in results}


def test_healthy_setup(barcode_frame):
    devices = FakeDevices(frame=barcode_frame())
    arb = Arbitrator([FakeBackend(SourceMethod.LIBRARY), FakeBackend(SourceMethod.NATIVE, available=False)])

    report = _by_test(run_diagnostics(devices, arb))

    assert report["Camera support"].status == PASS
    assert report["Secure context"].status == PASS
    assert report["Cameras"].message == "1 camera(s) found"
    assert report["Camera permission"].status == PASS
    assert report["Backend library-decoder"].status == PASS
    assert report["Backend native-detector"].status == WARNING
    assert "Recognition" not in report
    # the permission probe does not keep the camera
    assert devices.stop_calls == devices.open_calls == 1
    assert not devices.in_use("cam0")


def test_permission_denied_is_reported(barcode_frame):
    devices = FakeDevices(frame=barcode_frame(), open_error=CameraError(ErrorCategory.PERMISSION_DENIED))
    report = _by_test(run_diagnostics(devices))
    assert report["Camera permission"].status == FAIL
    assert report["Camera permission"].message.startswith("permission-denied")


def test_insecure_context_skips_probe():
    devices = FakeDevices(secure_context=False)
    report = _by_test(run_diagnostics(devices))
    assert report["Secure context"].status == FAIL
    assert "Camera permission" not in report
    assert devices.open_calls == 0


def test_no_backends_means_manual_entry():
    devices = FakeDevices(cameras=())
    arb = Arbitrator([FakeBackend(SourceMethod.CLOUD_OCR, available=False, continuous=False)])
    report = _by_test(run_diagnostics(devices, arb))
    assert report["Cameras"].status == FAIL
    assert report["Recognition"].status == FAIL


def test_manual_only_backends_warn():
    arb = Arbitrator([FakeBackend(SourceMethod.CLOUD_OCR, continuous=False)])
    report = _by_test(run_diagnostics(FakeDevices(), arb))
    assert report["Recognition"].status == WARNING
