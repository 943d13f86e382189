"""Runs the recognition backends against one frame and picks the winner."""
import asyncio
import logging
from typing import Iterable, Optional, Sequence

from .backends.base import RecognitionBackend
from .backends.registry import build_backends
from .config import ScannerConfig
from .frames import Frame
from .models import NO_RESULT, RecognitionCandidate, RecognitionOutcome
from .utils import validate_isbn

logger = logging.getLogger(__name__)


def select(candidates: Iterable[Optional[RecognitionCandidate]], min_confidence: float) -> RecognitionOutcome:
    """
    Deterministic choice: drop anything that is not an ISBN, take the highest
    confidence, break ties by source priority, then apply the threshold
    (inclusive).
    """
    valid = [c for c in candidates if c is not None and validate_isbn(c.text)]
    if not valid:
        return NO_RESULT
    best = max(valid, key=lambda c: (c.confidence, c.source_method.priority))
    if best.confidence < min_confidence:
        logger.debug("best candidate %s below threshold (%.2f < %.2f)", best.text, best.confidence, min_confidence)
        return NO_RESULT
    return RecognitionOutcome(best)


class Arbitrator:
    def __init__(self, backends: Sequence[RecognitionBackend], min_confidence: float = 0.7, timeout: float = 4.0):
        self.backends = list(backends)
        self.min_confidence = min_confidence
        self.timeout = timeout

    @classmethod
    def from_config(cls, config: ScannerConfig) -> "Arbitrator":
        return cls(build_backends(config), min_confidence=config.min_confidence, timeout=config.backend_timeout)

    def capabilities(self) -> dict[str, bool]:
        return {b.name: b.available() for b in self.backends}

    @property
    def supports_continuous(self) -> bool:
        return any(b.continuous and b.available() for b in self.backends)

    async def _run(self, backend: RecognitionBackend, frame: Frame) -> Optional[RecognitionCandidate]:
        try:
            return await asyncio.wait_for(asyncio.to_thread(backend.attempt, frame), self.timeout)
        except asyncio.TimeoutError:
            logger.warning("%s timed out after %.1fs", backend.name, self.timeout)
            return None

    async def gather(self, frame: Frame, continuous: bool = False) -> list[RecognitionCandidate]:
        """All non-null candidates from the backends that apply to this attempt."""
        active = [b for b in self.backends if b.available() and (b.continuous or not continuous)]
        results = await asyncio.gather(*(self._run(b, frame) for b in active))
        return [c for c in results if c is not None]

    async def recognize(self, frame: Frame, continuous: bool = False) -> RecognitionOutcome:
        candidates = await self.gather(frame, continuous=continuous)
        outcome = select(candidates, self.min_confidence)
        if outcome.found:
            logger.info("recognized %s via %s (%.2f)", outcome.isbn,
                        outcome.candidate.source_method.value, outcome.candidate.confidence)
        else:
            logger.debug("no result from %d candidate(s)", len(candidates))
        return outcome
