# bookscan/backends/cloud_ocr.py
import logging
from typing import Optional

import requests
from google.cloud import vision as gcv
from google.oauth2.service_account import Credentials

from ..config import CloudOCRConfig
from ..frames import Frame
from ..models import RecognitionCandidate, SourceMethod
from ..utils import extract_isbn_from_text
from .base import RecognitionBackend

logger = logging.getLogger(__name__)

SCOPE_VISION = ["https://www.googleapis.com/auth/cloud-platform"]


class CloudOCRBackend(RecognitionBackend):
    """
    Google Vision text detection. Uses the client library when service-account
    credentials are configured, otherwise the REST endpoint with an API key.
    Text is only returned once it passes ISBN validation.
    """

    source_method = SourceMethod.CLOUD_OCR
    confidence = 0.9
    continuous = False

    def __init__(self, config: CloudOCRConfig, timeout: float = 4.0, session: requests.Session | None = None):
        self.config = config
        self.timeout = timeout
        self._http = session or requests.Session()
        self._client = None

    def available(self) -> bool:
        return self.config.configured

    def _vision_client(self):
        if self._client is None:
            creds = Credentials.from_service_account_info(self.config.service_account, scopes=SCOPE_VISION)
            self._client = gcv.ImageAnnotatorClient(credentials=creds)
        return self._client

    def annotations(self, frame: Frame) -> list[str]:
        """Text annotation descriptions; the first one is the full page text."""
        if self.config.service_account:
            img = gcv.Image(content=frame.to_jpeg())
            resp = self._vision_client().text_detection(image=img, timeout=self.timeout)
            return [a.description for a in resp.text_annotations]

        body = {
            "requests": [{
                "image": {"content": frame.to_base64()},
                "features": [{"type": "TEXT_DETECTION", "maxResults": 10}],
            }]
        }
        r = self._http.post(self.config.endpoint, params={"key": self.config.api_key}, json=body, timeout=self.timeout)
        r.raise_for_status()
        responses = r.json().get("responses", [])
        if not responses:
            return []
        return [a.get("description", "") for a in responses[0].get("textAnnotations", [])]

    def _decode(self, frame: Frame) -> Optional[RecognitionCandidate]:
        texts = self.annotations(frame.scaled())
        # single tokens first, the full-page blob last
        for text in texts[1:] + texts[:1]:
            isbn = extract_isbn_from_text(text or "")
            if isbn:
                return self._candidate(isbn, "ISBN")
        logger.debug("cloud OCR returned %d annotations without an ISBN", len(texts))
        return None
