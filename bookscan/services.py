import asyncio
from dataclasses import replace
from typing import Optional

from .arbitrator import Arbitrator
from .camera import SnapshotDevices
from .config import ScannerConfig
from .lookups import google_books, openlibrary
from .models import NO_RESULT, Book, RecognitionOutcome, ScanState
from .session import ScanSession
from .utils import clean_isbn, extract_isbn13_from_text, validate_isbn, isbn10_to_isbn13

class BookLookupService:
    def __init__(self, google_api_key: str | None = None):
        self.google_api_key = google_api_key or None

    def by_isbn(self, raw: str) -> Optional[Book]:
        if not raw: return None
        s = clean_isbn(raw)
        if not validate_isbn(s):
            s = extract_isbn13_from_text(raw) or ""
        if not s: return None
        if len(s) == 10:
            s = isbn10_to_isbn13(s) or s

        rec = google_books.by_isbn(s, self.google_api_key)
        if rec: return Book.from_record(rec)

        rec = openlibrary.by_isbn(s)
        if rec: return Book.from_record(rec)
        return None

async def scan_snapshot(image, config: ScannerConfig, arbitrator: Arbitrator | None = None) -> RecognitionOutcome:
    """
    One manual-capture session over a still image (an st.camera_input
    snapshot or an uploaded photo).
    """
    arbitrator = arbitrator or Arbitrator.from_config(config)
    session = ScanSession(SnapshotDevices(image), arbitrator, config=replace(config, continuous=False))
    try:
        await session.open()
        if session.state is not ScanState.AWAITING_MANUAL_CAPTURE:
            return NO_RESULT
        return await session.capture()
    finally:
        session.close()

def scan_image(image, config: ScannerConfig, arbitrator: Arbitrator | None = None) -> RecognitionOutcome:
    return asyncio.run(scan_snapshot(image, config, arbitrator))
