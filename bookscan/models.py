from dataclasses import dataclass, asdict
from enum import Enum
from typing import Optional

from .utils import clean_isbn


class SourceMethod(str, Enum):
    NATIVE = "native-detector"
    LIBRARY = "library-decoder"
    HEURISTIC = "heuristic-analysis"
    CLOUD_OCR = "cloud-ocr"

    @property
    def priority(self) -> int:
        """Higher wins a confidence tie."""
        return _PRIORITY[self]


_PRIORITY = {
    SourceMethod.NATIVE: 4,
    SourceMethod.LIBRARY: 3,
    SourceMethod.CLOUD_OCR: 2,
    SourceMethod.HEURISTIC: 1,
}


@dataclass(frozen=True)
class RecognitionCandidate:
    text: str
    format: str
    confidence: float
    source_method: SourceMethod


@dataclass(frozen=True)
class RecognitionOutcome:
    candidate: Optional[RecognitionCandidate] = None

    @property
    def found(self) -> bool:
        return self.candidate is not None

    @property
    def isbn(self) -> str:
        return clean_isbn(self.candidate.text) if self.candidate else ""


NO_RESULT = RecognitionOutcome()


class ScanState(str, Enum):
    IDLE = "idle"
    INITIALIZING = "initializing"
    STREAMING = "streaming"
    DETECTING = "detecting"
    AWAITING_MANUAL_CAPTURE = "awaiting-manual-capture"
    ERROR = "error"
    CLOSED = "closed"


class ErrorCategory(str, Enum):
    PERMISSION_DENIED = "permission-denied"
    NO_CAMERA = "no-camera"
    INSECURE_CONTEXT = "insecure-context"
    UNSUPPORTED_BROWSER = "unsupported-browser"
    CAMERA_IN_USE = "camera-in-use"
    UNKNOWN = "unknown"

    @property
    def recoverable(self) -> bool:
        return self not in (ErrorCategory.INSECURE_CONTEXT, ErrorCategory.UNSUPPORTED_BROWSER)

    @property
    def remediation(self) -> Optional[str]:
        """Action the UI should offer: 'request-permission', 'retry' or None."""
        if self is ErrorCategory.PERMISSION_DENIED:
            return "request-permission"
        if self.recoverable:
            return "retry"
        return None

    @property
    def hint(self) -> str:
        return _HINTS[self]


_HINTS = {
    ErrorCategory.PERMISSION_DENIED: "Camera permission denied. Allow camera access and try again.",
    ErrorCategory.NO_CAMERA: "No camera found on this device.",
    ErrorCategory.INSECURE_CONTEXT: "Camera access requires HTTPS (or localhost).",
    ErrorCategory.UNSUPPORTED_BROWSER: "This platform cannot access cameras. Try Chrome or Safari.",
    ErrorCategory.CAMERA_IN_USE: "The camera is being used by another application.",
    ErrorCategory.UNKNOWN: "The camera could not be started.",
}


@dataclass
class Book:
    isbn: str = ""
    title: str = ""
    author: str = ""
    thumbnail: str = ""
    page_count: int = 0
    published_date: str = ""
    publisher: str = ""
    categories: str = ""
    language: str = ""
    description: str = ""
    source: str = ""        # google / openlibrary / manual

    @classmethod
    def headers(cls) -> list[str]:
        return list(asdict(cls()).keys())

    @classmethod
    def from_record(cls, rec: dict) -> "Book":
        known = set(cls.headers())
        return cls(**{k: v for k, v in rec.items() if k in known and v is not None})

    def to_row(self) -> dict:
        return asdict(self)
