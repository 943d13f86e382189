"""
Image source adapter: turns camera reads, uploads and still images into one
RGB raster the recognition backends can share.
"""
import base64
import io
from dataclasses import dataclass

import numpy as np
from PIL import Image

BINARY_THRESHOLD = 128
CAPTURE_MAX_WIDTH = 800

_GRAY_WEIGHTS = np.array([0.299, 0.587, 0.114], dtype=np.float32)


@dataclass(frozen=True, eq=False)
class Frame:
    width: int
    height: int
    pixels: np.ndarray      # (height, width, 3) uint8, RGB

    @classmethod
    def from_array(cls, arr: np.ndarray, bgr: bool = False) -> "Frame":
        arr = np.asarray(arr)
        if arr.ndim == 2:
            arr = np.repeat(arr[:, :, None], 3, axis=2)
        elif arr.ndim == 3 and arr.shape[2] == 4:
            arr = arr[:, :, :3]
        if arr.ndim != 3 or arr.shape[2] != 3:
            raise ValueError(f"Unsupported pixel buffer shape: {arr.shape}")
        if bgr:
            arr = arr[:, :, ::-1]
        pixels = np.ascontiguousarray(arr, dtype=np.uint8)
        return cls(width=pixels.shape[1], height=pixels.shape[0], pixels=pixels)

    @classmethod
    def from_image(cls, img: Image.Image) -> "Frame":
        return cls.from_array(np.asarray(img.convert("RGB")))

    @classmethod
    def from_bytes(cls, data: bytes) -> "Frame":
        return cls.from_image(Image.open(io.BytesIO(data)))

    @classmethod
    def from_base64(cls, data: str) -> "Frame":
        # data URLs ("data:image/jpeg;base64,...") carry a header before the payload
        if data.startswith("data:"):
            data = data.split(",", 1)[1]
        return cls.from_bytes(base64.b64decode(data))

    @classmethod
    def from_source(cls, source) -> "Frame":
        """
        Accepts a Frame, encoded image bytes, a PIL image, an RGB numpy array,
        a base64 / data-URL string, or a live stream exposing read_frame().
        """
        if isinstance(source, Frame):
            return source
        if isinstance(source, (bytes, bytearray)):
            return cls.from_bytes(bytes(source))
        if isinstance(source, Image.Image):
            return cls.from_image(source)
        if isinstance(source, np.ndarray):
            return cls.from_array(source)
        if isinstance(source, str):
            return cls.from_base64(source)
        if hasattr(source, "read_frame"):
            frame = source.read_frame()
            if frame is None:
                raise ValueError("Stream has no frame available")
            return frame
        raise TypeError(f"Unsupported image source: {type(source).__name__}")

    def to_image(self) -> Image.Image:
        return Image.fromarray(self.pixels)

    def to_bgr(self) -> np.ndarray:
        return np.ascontiguousarray(self.pixels[:, :, ::-1])

    def grayscale(self) -> np.ndarray:
        return (self.pixels.astype(np.float32) @ _GRAY_WEIGHTS).astype(np.uint8)

    def binarize(self, threshold: int = BINARY_THRESHOLD) -> np.ndarray:
        """Boolean raster, True where the pixel is dark."""
        return self.grayscale() <= threshold

    def scaled(self, max_width: int = CAPTURE_MAX_WIDTH) -> "Frame":
        if self.width <= max_width:
            return self
        ratio = max_width / self.width
        img = self.to_image().resize((max_width, max(1, round(self.height * ratio))), Image.BILINEAR)
        return Frame.from_image(img)

    def to_jpeg(self, quality: int = 80) -> bytes:
        buf = io.BytesIO()
        self.to_image().save(buf, format="JPEG", quality=quality)
        return buf.getvalue()

    def to_base64(self, quality: int = 80) -> str:
        return base64.b64encode(self.to_jpeg(quality)).decode("ascii")
