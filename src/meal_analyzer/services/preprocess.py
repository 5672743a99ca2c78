"""Image decoding and preparation for the detectors."""

import base64
import io
from dataclasses import dataclass

import numpy as np
from PIL import Image, UnidentifiedImageError

from meal_analyzer.domain.errors import DecodeError


@dataclass(frozen=True)
class PreprocessedImage:
    """Decoded image in the shapes each detector expects."""

    tensor: np.ndarray
    encoded_payload: str
    mime_type: str
    width: int
    height: int


@dataclass(frozen=True)
class ImagePreprocessor:
    """Turns raw upload bytes into a classifier tensor and a vision payload."""

    input_size: int = 224

    def preprocess(self, raw_bytes: bytes) -> PreprocessedImage:
        """Decode ``raw_bytes``; raises DecodeError for anything but an image."""
        if not raw_bytes:
            raise DecodeError("Image payload is empty")
        try:
            with Image.open(io.BytesIO(raw_bytes)) as image:
                image.load()
                width, height = image.size
                rgb = image.convert("RGB")
        except (
            UnidentifiedImageError,
            Image.DecompressionBombError,
            OSError,
            ValueError,
        ) as exc:
            raise DecodeError(f"Failed to decode image: {exc}") from exc

        resized = rgb.resize((self.input_size, self.input_size), Image.Resampling.BILINEAR)
        tensor = np.asarray(resized, dtype=np.float32) / 255.0
        mime_type = _detect_mime_type(raw_bytes)
        return PreprocessedImage(
            tensor=tensor,
            encoded_payload=_to_data_url(raw_bytes, mime_type),
            mime_type=mime_type,
            width=width,
            height=height,
        )


def _to_data_url(image_bytes: bytes, mime_type: str) -> str:
    """Convert bytes to a base64 data URL for image input."""
    encoded = base64.b64encode(image_bytes).decode("utf-8")
    return f"data:{mime_type};base64,{encoded}"


def _detect_mime_type(image_bytes: bytes) -> str:
    """Infer a basic image MIME type from file signatures."""
    if image_bytes.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if image_bytes.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if image_bytes[:4] == b"RIFF" and image_bytes[8:12] == b"WEBP":
        return "image/webp"
    return "image/jpeg"
