"""Recognition backend contract shared by every decoding strategy."""
import logging
from abc import ABC, abstractmethod
from typing import Optional

from ..frames import Frame
from ..models import RecognitionCandidate, SourceMethod

logger = logging.getLogger(__name__)

# Symbologies printed on books and their retail packaging.
BOOK_SYMBOLOGIES = ("EAN-13", "EAN-8", "Code-128", "Code-39", "UPC-A", "UPC-E")


class RecognitionBackend(ABC):
    source_method: SourceMethod
    confidence: float = 0.0
    # Cheap enough to run on every tick of the detection loop.
    continuous: bool = True

    @property
    def name(self) -> str:
        return self.source_method.value

    def available(self) -> bool:
        return True

    def attempt(self, frame: Frame) -> Optional[RecognitionCandidate]:
        """
        Decode one frame. Never raises: failures inside the backend become None
        so the arbitrator can carry on with the others.
        """
        if not self.available():
            return None
        try:
            return self._decode(frame)
        except Exception as e:
            logger.debug("%s failed: %s", self.name, e)
            return None

    @abstractmethod
    def _decode(self, frame: Frame) -> Optional[RecognitionCandidate]:
        raise NotImplementedError

    def _candidate(self, text: str, fmt: str, confidence: Optional[float] = None) -> RecognitionCandidate:
        return RecognitionCandidate(
            text=text.strip(),
            format=fmt,
            confidence=self.confidence if confidence is None else confidence,
            source_method=self.source_method,
        )
