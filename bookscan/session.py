"""
Scanner session controller.

One ScanSession is bound to one open scanner UI. It owns the camera stream
from acquisition to release, runs either the continuous detection loop or
waits for manual captures, and hands the first accepted ISBN to `on_scan`.

    Idle -> Initializing -> Streaming -> Detecting | AwaitingManualCapture -> Closed
                 \\______________\\__________-> Error -> Closed

`close()` is reachable from every state, is synchronous and idempotent, and
is the only place the camera is released for good.
"""
import asyncio
import contextlib
import logging
import time
from typing import Callable, Optional

from .arbitrator import Arbitrator
from .camera import CameraError, MediaDevices, MediaStream, NullSink, StreamConstraints, VideoSink
from .config import ScannerConfig
from .models import NO_RESULT, ErrorCategory, RecognitionOutcome, ScanState

logger = logging.getLogger(__name__)

_ACTIVE = (ScanState.DETECTING, ScanState.AWAITING_MANUAL_CAPTURE)


class SessionStateError(RuntimeError):
    pass


class StreamConflictError(RuntimeError):
    """A session tried to hold two streams at once."""


class ScanSession:
    def __init__(
        self,
        devices: MediaDevices,
        arbitrator: Arbitrator,
        config: Optional[ScannerConfig] = None,
        on_scan: Optional[Callable[[str], None]] = None,
        on_close: Optional[Callable[[], None]] = None,
        on_state_change: Optional[Callable[[ScanState, ScanState], None]] = None,
        sink: Optional[VideoSink] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.devices = devices
        self.arbitrator = arbitrator
        self.config = config or ScannerConfig()
        self.on_scan = on_scan
        self.on_close = on_close
        self.on_state_change = on_state_change
        self.sink = sink or NullSink()
        self._clock = clock

        self.state = ScanState.IDLE
        self.error: Optional[CameraError] = None
        self.device_id: Optional[str] = None
        self.stream: Optional[MediaStream] = None
        self.diagnostics: dict = {}
        self.last_detection_at: Optional[float] = None
        self.consecutive_failures = 0
        self.torch_on = False
        self.result: Optional[str] = None

        # successful acquisitions vs. streams stopped
        self.acquisitions = 0
        self.releases = 0

        self._finished = False
        self._delivered = False
        self._capturing = False
        self._loop_task: Optional[asyncio.Task] = None
        self._done = asyncio.Event()

    # ------------------------------------------------------------------
    # properties

    @property
    def mode(self) -> Optional[ScanState]:
        return self.state if self.state in _ACTIVE else None

    @property
    def closed(self) -> bool:
        return self._finished

    @property
    def should_hint_manual_entry(self) -> bool:
        return self.consecutive_failures >= self.config.miss_hint_after

    # ------------------------------------------------------------------
    # lifecycle

    async def open(self, device_id: Optional[str] = None) -> ScanState:
        if self._finished:
            raise SessionStateError("session is closed")
        if self.state is not ScanState.IDLE:
            raise SessionStateError(f"cannot open a session in state {self.state.value}")
        await self._initialize(device_id)
        return self.state

    async def switch_camera(self, device_id: str) -> ScanState:
        if self._finished:
            raise SessionStateError("session is closed")
        if self.state in (ScanState.IDLE, ScanState.INITIALIZING):
            raise SessionStateError(f"cannot switch camera in state {self.state.value}")
        await self._stop_loop()
        self._release_stream()
        self._transition(ScanState.CLOSED)
        await self._initialize(device_id)
        return self.state

    async def retry(self) -> ScanState:
        """Re-run initialization after a device error (no camera, camera busy)."""
        return await self._recover(lambda c: c.recoverable)

    async def request_permission(self) -> ScanState:
        """Ask for camera access again after the user denied it."""
        return await self._recover(lambda c: c is ErrorCategory.PERMISSION_DENIED)

    async def _recover(self, allowed: Callable[[ErrorCategory], bool]) -> ScanState:
        if self.state is not ScanState.ERROR or self.error is None:
            raise SessionStateError(f"nothing to recover from in state {self.state.value}")
        if not allowed(self.error.category):
            raise SessionStateError(f"{self.error.category.value} cannot be fixed by this action")
        await self._initialize(self.device_id)
        return self.state

    def close(self):
        if self._finished:
            return
        self._finished = True
        task, self._loop_task = self._loop_task, None
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()
        self._release_stream()
        self._transition(ScanState.CLOSED)
        self._done.set()
        if not self._delivered and self.on_close:
            self.on_close()

    async def wait(self) -> Optional[str]:
        """Block until the session closes; returns the delivered ISBN, if any."""
        await self._done.wait()
        return self.result

    async def __aenter__(self) -> "ScanSession":
        await self.open()
        return self

    async def __aexit__(self, *exc):
        self.close()

    # ------------------------------------------------------------------
    # capture

    async def capture(self) -> RecognitionOutcome:
        """
        Single-shot capture. A miss keeps the session where it is; the caller
        gets the no-result outcome back.
        """
        if self.state not in _ACTIVE:
            raise SessionStateError(f"cannot capture in state {self.state.value}")
        if self._capturing:
            return NO_RESULT
        self._capturing = True
        try:
            frame = await asyncio.to_thread(self.stream.read_frame)
            if frame is None:
                self._miss()
                return NO_RESULT
            self.sink.show(frame)
            outcome = await self.arbitrator.recognize(frame.scaled())
        except CameraError as e:
            self._fail(e)
            return NO_RESULT
        finally:
            self._capturing = False

        if self._finished:
            return NO_RESULT
        if not outcome.found:
            self._miss()
            return NO_RESULT
        return outcome if self._accept(outcome) else NO_RESULT

    def toggle_torch(self) -> bool:
        """Flip the flash where the track supports it; False when it does not."""
        if self.stream is None:
            return False
        track = self.stream.video
        if not track.capabilities().get("torch"):
            return False
        if track.apply_constraints(torch=not self.torch_on):
            self.torch_on = not self.torch_on
            return True
        return False

    # ------------------------------------------------------------------
    # internals

    def _transition(self, state: ScanState):
        prev, self.state = self.state, state
        logger.info("scan session %s -> %s", prev.value, state.value)
        if self.on_state_change:
            self.on_state_change(prev, state)

    def _facing(self) -> Optional[str]:
        if self.config.preferred_facing == "auto":
            return "environment" if self.devices.handheld else "user"
        return self.config.preferred_facing

    async def _initialize(self, device_id: Optional[str]):
        self._transition(ScanState.INITIALIZING)
        self.error = None
        if self.stream is not None:
            raise StreamConflictError("previous stream must be released before acquiring a new one")
        try:
            self.diagnostics = {"backends": self.arbitrator.capabilities()}
            if not self.devices.supports_media():
                raise CameraError(ErrorCategory.UNSUPPORTED_BROWSER)
            cameras = await asyncio.to_thread(self.devices.enumerate_devices)
            if self._finished:
                return
            self.diagnostics["cameras"] = len(cameras)
            if not cameras:
                raise CameraError(ErrorCategory.NO_CAMERA)
            self.diagnostics["secure_context"] = self.devices.secure_context
            if not self.devices.secure_context:
                raise CameraError(ErrorCategory.INSECURE_CONTEXT)
            width, height = self.config.resolution
            stream = await self._acquire(StreamConstraints(
                device_id=device_id, facing_mode=self._facing(), width=width, height=height,
            ))
        except CameraError as e:
            if not self._finished:
                self._fail(e)
            return

        if self._finished or self.state is not ScanState.INITIALIZING:
            # closed while the camera was opening
            self._stop(stream)
            return
        self.stream = stream
        self.device_id = stream.device_id
        self.sink.attach(stream)
        self._transition(ScanState.STREAMING)

        if self.config.continuous and self.arbitrator.supports_continuous:
            self._transition(ScanState.DETECTING)
            self._loop_task = asyncio.create_task(self._detect_loop())
        else:
            self._transition(ScanState.AWAITING_MANUAL_CAPTURE)

    async def _acquire(self, constraints: StreamConstraints) -> MediaStream:
        pending = asyncio.ensure_future(asyncio.to_thread(self.devices.get_user_media, constraints))
        try:
            stream = await asyncio.shield(pending)
        except asyncio.CancelledError:
            # the open still completes in its thread; make sure it is released
            pending.add_done_callback(self._discard)
            raise
        self.acquisitions += 1
        return stream

    def _discard(self, fut: asyncio.Future):
        if fut.cancelled() or fut.exception() is not None:
            return
        self.acquisitions += 1
        self._stop(fut.result())

    def _stop(self, stream: MediaStream):
        stream.stop()
        self.releases += 1

    def _release_stream(self):
        stream, self.stream = self.stream, None
        if stream is not None:
            self._stop(stream)
            self.sink.detach()
        self.torch_on = False

    async def _stop_loop(self):
        task, self._loop_task = self._loop_task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    def _fail(self, error: CameraError):
        if self._finished:
            # closed is terminal
            logger.debug("ignoring %s after close", error.category.value)
            return
        self.error = error
        logger.warning("scanner error (%s): %s", error.category.value, error)
        self._release_stream()
        self._transition(ScanState.ERROR)

    def _miss(self):
        self.consecutive_failures += 1
        if self.consecutive_failures == self.config.miss_hint_after:
            logger.info("%d attempts without a result; manual entry may be easier", self.consecutive_failures)

    def _accept(self, outcome: RecognitionOutcome) -> bool:
        now = self._clock()
        if self.last_detection_at is not None and now - self.last_detection_at < self.config.debounce:
            logger.debug("suppressed %s inside the debounce window", outcome.isbn)
            return False
        self.last_detection_at = now
        if self._delivered or self._finished:
            return False
        self._delivered = True
        self.result = outcome.isbn
        self.consecutive_failures = 0
        try:
            if self.on_scan:
                self.on_scan(outcome.isbn)
        finally:
            self.close()
        return True

    async def _detect_loop(self):
        # one attempt in flight; the next is scheduled after this one finishes
        while self.state is ScanState.DETECTING:
            stream = self.stream
            try:
                frame = await asyncio.to_thread(stream.read_frame)
                if frame is not None and self.state is ScanState.DETECTING:
                    self.sink.show(frame)
                    outcome = await self.arbitrator.recognize(frame, continuous=True)
                    if self.state is not ScanState.DETECTING:
                        return
                    if outcome.found:
                        if self._accept(outcome):
                            return
                    else:
                        self._miss()
            except CameraError as e:
                self._fail(e)
                return
            except Exception as e:
                if self._finished:
                    logger.exception("on_scan handler failed")
                    return
                logger.exception("detection loop stopped")
                self._fail(CameraError(ErrorCategory.UNKNOWN, str(e)))
                return
            await asyncio.sleep(self.config.detect_interval)


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None
