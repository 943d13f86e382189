"""
Camera access for scanner sessions.

MediaDevices is the platform seam: it enumerates cameras and hands out
MediaStreams. Every implementation shares one rule: a physical camera is held
by at most one open stream at a time, across all sessions.
"""
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

import cv2

from .frames import Frame
from .models import ErrorCategory

logger = logging.getLogger(__name__)


class CameraError(Exception):
    def __init__(self, category: ErrorCategory, message: str = ""):
        super().__init__(message or category.hint)
        self.category = category

    @property
    def message(self) -> str:
        return str(self)


@dataclass(frozen=True)
class DeviceInfo:
    device_id: str
    label: str = ""
    facing: str = ""        # "environment", "user" or unknown


@dataclass(frozen=True)
class StreamConstraints:
    device_id: Optional[str] = None
    facing_mode: Optional[str] = None
    width: int = 1280
    height: int = 720


class VideoTrack(ABC):
    def __init__(self):
        self.stopped = False

    @abstractmethod
    def read(self) -> Optional[Frame]:
        raise NotImplementedError

    def capabilities(self) -> dict:
        return {}

    def apply_constraints(self, **constraints) -> bool:
        return False

    def stop(self):
        if self.stopped:
            return
        self.stopped = True
        self._release()

    def _release(self):
        pass


class MediaStream:
    def __init__(self, device_id: str, tracks: list[VideoTrack], on_stop: Callable[["MediaStream"], None] | None = None):
        self.device_id = device_id
        self.tracks = tracks
        self._on_stop = on_stop
        self._lock = threading.Lock()

    @property
    def active(self) -> bool:
        return any(not t.stopped for t in self.tracks)

    @property
    def video(self) -> VideoTrack:
        return self.tracks[0]

    def read_frame(self) -> Optional[Frame]:
        with self._lock:
            if not self.active:
                return None
            return self.video.read()

    def stop(self):
        with self._lock:
            if not self.active:
                return
            for track in self.tracks:
                track.stop()
        if self._on_stop:
            self._on_stop(self)


class MediaDevices(ABC):
    secure_context: bool = True
    handheld: bool = False

    def __init__(self):
        self._held: set[str] = set()
        self._held_lock = threading.Lock()

    def supports_media(self) -> bool:
        return True

    @abstractmethod
    def enumerate_devices(self) -> list[DeviceInfo]:
        raise NotImplementedError

    @abstractmethod
    def _open(self, device: DeviceInfo, constraints: StreamConstraints) -> list[VideoTrack]:
        raise NotImplementedError

    def pick_device(self, constraints: StreamConstraints, devices: list[DeviceInfo]) -> DeviceInfo:
        if not devices:
            raise CameraError(ErrorCategory.NO_CAMERA)
        if constraints.device_id is not None:
            for d in devices:
                if d.device_id == constraints.device_id:
                    return d
            raise CameraError(ErrorCategory.NO_CAMERA, f"Camera {constraints.device_id!r} not found.")
        if constraints.facing_mode:
            for d in devices:
                if d.facing == constraints.facing_mode:
                    return d
        return devices[0]

    def in_use(self, device_id: str) -> bool:
        with self._held_lock:
            return device_id in self._held

    def get_user_media(self, constraints: StreamConstraints) -> MediaStream:
        if not self.supports_media():
            raise CameraError(ErrorCategory.UNSUPPORTED_BROWSER)
        if not self.secure_context:
            raise CameraError(ErrorCategory.INSECURE_CONTEXT)
        device = self.pick_device(constraints, self.enumerate_devices())
        with self._held_lock:
            if device.device_id in self._held:
                raise CameraError(ErrorCategory.CAMERA_IN_USE, f"Camera {device.device_id!r} already has an open stream.")
            self._held.add(device.device_id)
        try:
            tracks = self._open(device, constraints)
        except BaseException:
            self._release(device.device_id)
            raise
        logger.debug("opened camera %s", device.device_id)
        return MediaStream(device.device_id, tracks, on_stop=lambda s: self._release(s.device_id))

    def _release(self, device_id: str):
        with self._held_lock:
            self._held.discard(device_id)
        logger.debug("released camera %s", device_id)


class VideoSink(Protocol):
    def attach(self, stream: MediaStream) -> None: ...
    def show(self, frame: Frame) -> None: ...
    def detach(self) -> None: ...


class NullSink:
    def attach(self, stream):
        pass

    def show(self, frame):
        pass

    def detach(self):
        pass


# ==========================================
# Local cameras (OpenCV)
# ==========================================

class OpenCVTrack(VideoTrack):
    def __init__(self, cap: "cv2.VideoCapture"):
        super().__init__()
        self._cap = cap

    def read(self) -> Optional[Frame]:
        ok, img = self._cap.read()
        if not ok or img is None:
            return None
        return Frame.from_array(img, bgr=True)

    def capabilities(self) -> dict:
        return {
            "width": int(self._cap.get(cv2.CAP_PROP_FRAME_WIDTH)),
            "height": int(self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT)),
            "torch": False,
        }

    def _release(self):
        self._cap.release()


class OpenCVDevices(MediaDevices):
    """Cameras reachable through cv2.VideoCapture, probed by index."""

    def __init__(self, max_index: int = 4, sources: Optional[list] = None):
        super().__init__()
        self.max_index = max_index
        self.sources = sources
        self._devices: Optional[list[DeviceInfo]] = None

    def supports_media(self) -> bool:
        return hasattr(cv2, "VideoCapture")

    def _source(self, device_id: str):
        return int(device_id) if device_id.isdigit() else device_id

    def enumerate_devices(self) -> list[DeviceInfo]:
        if self._devices is not None:
            return self._devices
        if self.sources is not None:
            self._devices = [DeviceInfo(str(s), label=str(s)) for s in self.sources]
            return self._devices
        found = []
        for idx in range(self.max_index):
            if self.in_use(str(idx)):
                found.append(DeviceInfo(str(idx), label=f"Camera {idx}"))
                continue
            cap = cv2.VideoCapture(idx)
            try:
                if cap.isOpened():
                    found.append(DeviceInfo(str(idx), label=f"Camera {idx}"))
            finally:
                cap.release()
        self._devices = found
        return found

    def _open(self, device: DeviceInfo, constraints: StreamConstraints) -> list[VideoTrack]:
        try:
            cap = cv2.VideoCapture(self._source(device.device_id))
        except PermissionError as e:
            raise CameraError(ErrorCategory.PERMISSION_DENIED, str(e)) from e
        if not cap.isOpened():
            cap.release()
            # the device was enumerated a moment ago, so something else holds it
            raise CameraError(ErrorCategory.CAMERA_IN_USE)
        cap.set(cv2.CAP_PROP_FRAME_WIDTH, constraints.width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, constraints.height)
        return [OpenCVTrack(cap)]


# ==========================================
# A single still image presented as a camera
# ==========================================

class SnapshotTrack(VideoTrack):
    def __init__(self, frame: Frame):
        super().__init__()
        self._frame = frame

    def read(self) -> Optional[Frame]:
        return self._frame


class SnapshotDevices(MediaDevices):
    """
    Used where the browser owns the real camera (st.camera_input) and the
    server only ever sees one captured image.
    """

    def __init__(self, image, device_id: str = "snapshot"):
        super().__init__()
        self.frame = Frame.from_source(image).scaled()
        self.device_id = device_id

    def enumerate_devices(self) -> list[DeviceInfo]:
        return [DeviceInfo(self.device_id, label="Captured image")]

    def _open(self, device: DeviceInfo, constraints: StreamConstraints) -> list[VideoTrack]:
        return [SnapshotTrack(self.frame)]
