import logging
from dataclasses import dataclass
from typing import Optional

from .arbitrator import Arbitrator
from .camera import CameraError, MediaDevices, StreamConstraints
from .models import ErrorCategory

logger = logging.getLogger(__name__)

PASS, WARNING, FAIL = "pass", "warning", "fail"


@dataclass(frozen=True)
class DiagnosticResult:
    test: str
    status: str
    message: str


def run_diagnostics(devices: MediaDevices, arbitrator: Optional[Arbitrator] = None) -> list[DiagnosticResult]:
    """
    Camera health report for the settings / troubleshooting screen. The
    permission check opens the camera and releases it straight away.
    """
    results = []

    if devices.supports_media():
        results.append(DiagnosticResult("Camera support", PASS, "Camera access is available"))
    else:
        results.append(DiagnosticResult("Camera support", FAIL, ErrorCategory.UNSUPPORTED_BROWSER.hint))

    if devices.secure_context:
        results.append(DiagnosticResult("Secure context", PASS, "Secure context active"))
    else:
        results.append(DiagnosticResult("Secure context", FAIL, ErrorCategory.INSECURE_CONTEXT.hint))

    cameras = []
    try:
        cameras = devices.enumerate_devices()
    except Exception as e:
        logger.warning("camera enumeration failed: %s", e)
        results.append(DiagnosticResult("Cameras", FAIL, "Could not list cameras"))
    else:
        if cameras:
            results.append(DiagnosticResult("Cameras", PASS, f"{len(cameras)} camera(s) found"))
        else:
            results.append(DiagnosticResult("Cameras", FAIL, ErrorCategory.NO_CAMERA.hint))

    if cameras and devices.supports_media() and devices.secure_context:
        try:
            stream = devices.get_user_media(StreamConstraints(device_id=cameras[0].device_id))
        except CameraError as e:
            results.append(DiagnosticResult("Camera permission", FAIL, f"{e.category.value}: {e}"))
        else:
            stream.stop()
            results.append(DiagnosticResult("Camera permission", PASS, "Permission granted"))

    if arbitrator is not None:
        caps = arbitrator.capabilities()
        for name, ok in caps.items():
            results.append(DiagnosticResult(f"Backend {name}", PASS if ok else WARNING,
                                            "available" if ok else "not available on this platform"))
        if not any(caps.values()):
            results.append(DiagnosticResult("Recognition", FAIL, "No recognition backend available; use manual entry"))
        elif not arbitrator.supports_continuous:
            results.append(DiagnosticResult("Recognition", WARNING, "Only manual capture is possible"))

    return results
