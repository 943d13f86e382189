"""
Last-resort EAN-13 reader working directly on pixels.

The frame is binarized with a fixed threshold, checked for a bar-dense region
(vertical strips that are mostly dark), then a handful of horizontal scanlines
through the middle of the image are run-length encoded and matched against the
EAN-13 module widths. Confidence comes from how many scanlines agree.
"""
import logging
from collections import Counter
from typing import Optional

import numpy as np

from ..frames import Frame
from ..models import RecognitionCandidate, SourceMethod
from ..utils import validate_isbn13
from .base import RecognitionBackend

logger = logging.getLogger(__name__)

STRIP_STEP = 10          # px between sampled vertical strips
STRIP_DARK_RATIO = 0.3
MIN_DENSE_STRIPS = 5
SCANLINES = 15
MAX_CONFIDENCE = 0.7

# Module widths (space, bar, space, bar) of the left-hand odd-parity set.
# Right-hand digits use the same widths starting with a bar; even parity (G)
# is the mirror image.
_L_WIDTHS = np.array([
    (3, 2, 1, 1), (2, 2, 2, 1), (2, 1, 2, 2), (1, 4, 1, 1), (1, 1, 3, 2),
    (1, 2, 3, 1), (1, 1, 1, 4), (1, 3, 1, 2), (1, 2, 1, 3), (3, 1, 1, 2),
], dtype=float)
_G_WIDTHS = _L_WIDTHS[:, ::-1]

# Parity of the six left digits encodes the leading digit.
_FIRST_DIGIT = {
    "LLLLLL": 0, "LLGLGG": 1, "LLGGLG": 2, "LLGGGL": 3, "LGLLGG": 4,
    "LGGLLG": 5, "LGGGLG": 6, "LGLGLG": 7, "LGLGGL": 8, "LGGLGL": 9,
}

_RUNS = 59                  # 3 + 24 + 5 + 24 + 3
_MODULES = 95
_MAX_DIGIT_ERROR = 1.5


def dense_strips(dark: np.ndarray) -> int:
    """Count sampled vertical strips whose dark share suggests a bar."""
    height = dark.shape[0]
    strips = dark[:, ::STRIP_STEP]
    return int((strips.sum(axis=0) > height * STRIP_DARK_RATIO).sum())


def run_lengths(line: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """(values, lengths) of consecutive equal pixels in a boolean row."""
    change = np.flatnonzero(np.diff(line.astype(np.int8))) + 1
    bounds = np.concatenate(([0], change, [line.size]))
    return line[bounds[:-1]], np.diff(bounds)


def _is_guard(widths: np.ndarray, module: float) -> bool:
    return bool(np.all((widths >= 0.5 * module) & (widths <= 1.7 * module)))


def _match(widths: np.ndarray, table: np.ndarray) -> tuple[int, float]:
    norm = widths * 7.0 / widths.sum()
    errors = np.abs(table - norm).sum(axis=1)
    digit = int(errors.argmin())
    return digit, float(errors[digit])


def decode_runs(values: np.ndarray, lengths: np.ndarray) -> Optional[str]:
    n = len(lengths)
    for start in range(n - _RUNS + 1):
        if not values[start]:
            continue
        seg = lengths[start:start + _RUNS].astype(float)
        module = seg.sum() / _MODULES
        if not (_is_guard(seg[0:3], module) and _is_guard(seg[27:32], module) and _is_guard(seg[56:59], module)):
            continue

        digits, parity = [], ""
        for k in range(6):
            widths = seg[3 + 4 * k:7 + 4 * k]
            d_l, err_l = _match(widths, _L_WIDTHS)
            d_g, err_g = _match(widths, _G_WIDTHS)
            if min(err_l, err_g) > _MAX_DIGIT_ERROR:
                break
            if err_l <= err_g:
                digits.append(d_l); parity += "L"
            else:
                digits.append(d_g); parity += "G"
        else:
            first = _FIRST_DIGIT.get(parity)
            if first is None:
                continue
            for k in range(6):
                d, err = _match(seg[32 + 4 * k:36 + 4 * k], _L_WIDTHS)
                if err > _MAX_DIGIT_ERROR:
                    break
                digits.append(d)
            else:
                code = str(first) + "".join(map(str, digits))
                if validate_isbn13(code):
                    return code
    return None


def decode_scanline(line: np.ndarray) -> Optional[str]:
    values, lengths = run_lengths(line)
    return decode_runs(values, lengths) or decode_runs(values[::-1], lengths[::-1])


class HeuristicAnalyzer(RecognitionBackend):
    source_method = SourceMethod.HEURISTIC
    confidence = MAX_CONFIDENCE

    def _decode(self, frame: Frame) -> Optional[RecognitionCandidate]:
        dark = frame.binarize()
        if dense_strips(dark) <= MIN_DENSE_STRIPS:
            return None

        rows = np.linspace(frame.height * 0.3, frame.height * 0.7, SCANLINES).astype(int)
        reads = [code for code in (decode_scanline(dark[r]) for r in rows) if code]
        if not reads:
            logger.debug("bar pattern present but no scanline decoded")
            return None

        code, votes = Counter(reads).most_common(1)[0]
        agreement = votes / len(rows)
        return self._candidate(code, "EAN-13", round(min(MAX_CONFIDENCE, 0.5 + 0.2 * agreement), 2))
