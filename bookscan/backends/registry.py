from ..config import ScannerConfig
from ..models import SourceMethod
from .base import RecognitionBackend
from .cloud_ocr import CloudOCRBackend
from .heuristic import HeuristicAnalyzer
from .library import LibraryDecoder
from .native import NativeDecoder

BACKENDS: dict[SourceMethod, type[RecognitionBackend]] = {
    SourceMethod.NATIVE: NativeDecoder,
    SourceMethod.LIBRARY: LibraryDecoder,
    SourceMethod.HEURISTIC: HeuristicAnalyzer,
    SourceMethod.CLOUD_OCR: CloudOCRBackend,
}


def build_backends(config: ScannerConfig) -> list[RecognitionBackend]:
    out = []
    for method in config.enabled_backends:
        if method is SourceMethod.CLOUD_OCR:
            out.append(CloudOCRBackend(config.cloud, timeout=config.backend_timeout))
        else:
            out.append(BACKENDS[method]())
    return out
